"""Hindsight memory backend client."""

from .client import HindsightClient
from .errors import BackendError, ErrorCode
from .models import HealthStatus, Memory, SignalAck

__all__ = [
    "HindsightClient",
    "BackendError",
    "ErrorCode",
    "HealthStatus",
    "Memory",
    "SignalAck",
]
