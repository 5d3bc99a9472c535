"""CLI command modules."""

from .feedback import feedback

__all__ = ["feedback"]
