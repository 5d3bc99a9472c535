"""Response types for the Hindsight memory backend."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Memory:
    """A fact returned by recall."""

    id: str
    text: str
    fact_type: str = "world"
    context: Optional[str] = None
    created_at: Optional[str] = None
    score: float = 0.0
    confidence: Optional[float] = None

    @classmethod
    def from_api(cls, raw: dict) -> "Memory":
        return cls(
            id=str(raw.get("id", "")),
            text=raw.get("text", ""),
            fact_type=raw.get("fact_type", "world"),
            context=raw.get("context"),
            created_at=raw.get("created_at"),
            score=float(raw.get("score") or 0.0),
            confidence=raw.get("confidence"),
        )


@dataclass
class SignalAck:
    accepted: int = 0
    updated_facts: list[str] = field(default_factory=list)


@dataclass
class HealthStatus:
    healthy: bool
    version: Optional[str] = None
    banks: int = 0
    error: Optional[str] = None
