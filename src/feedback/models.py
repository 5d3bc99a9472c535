"""Data models for the recall feedback loop.

Persisted shapes (sessions, signals) are pydantic models so that loading a file is a
decode step that either yields a typed value or raises ``ValidationError``. On disk they
use the camelCase keys of the session and queue documents. In-memory pipeline values
are plain dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from shared_types import (
    DetectionType,
    FactType,
    NegativeSignalType,
    QueryType,
    SignalType,
    Verdict,
)

from .constants import DEFAULT_FACT_TYPES, DEFAULT_RECALL_BUDGET, DEFAULT_RECALL_LIMIT


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base for persisted models: snake_case attributes, camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# --- Recall sessions ---


class RecalledFact(CamelModel):
    """Snapshot of one fact as it was shown to the consumer."""

    fact_id: str
    text: str = ""
    fact_type: FactType = FactType.OTHER
    score: float = 0.0
    position: int = Field(ge=1)

    @field_validator("fact_type", mode="before")
    @classmethod
    def coerce_fact_type(cls, v):
        return FactType.coerce(v)

    @field_validator("text", "score", mode="before")
    @classmethod
    def null_to_default(cls, v, info: ValidationInfo):
        return cls.model_fields[info.field_name].default if v is None else v


class RecallParameters(CamelModel):
    limit: int = DEFAULT_RECALL_LIMIT
    budget: str = DEFAULT_RECALL_BUDGET
    fact_types: list[str] = Field(default_factory=lambda: list(DEFAULT_FACT_TYPES))
    time_window: Optional[str] = None


class SessionContext(CamelModel):
    branch: Optional[str] = None
    recent_files: list[str] = Field(default_factory=list)
    project_type: Optional[str] = None


class RecallParams(CamelModel):
    """Metadata about the query that triggered the recall."""

    query: str = ""
    query_type: QueryType = QueryType.FIXED
    parameters: RecallParameters = Field(default_factory=RecallParameters)
    context: SessionContext = Field(default_factory=SessionContext)


class RecallSession(CamelModel):
    """The unit of tracking: every fact recalled under one session id."""

    session_id: str = Field(min_length=1)
    started_at: datetime
    project: str
    recall: RecallParams = Field(default_factory=RecallParams)
    facts_recalled: list[RecalledFact]
    total_facts: int = 0
    total_tokens: int = 0

    @field_validator("facts_recalled", mode="before")
    @classmethod
    def fill_missing_positions(cls, v):
        # unranked entries take their list order
        if not isinstance(v, list):
            return v
        return [
            {**f, "position": i} if isinstance(f, dict) and f.get("position") is None else f
            for i, f in enumerate(v, start=1)
        ]

    @property
    def fact_ids(self) -> list[str]:
        return [f.fact_id for f in self.facts_recalled]


# --- Signals ---


class SignalItem(CamelModel):
    """A feedback item about one fact, as accepted by the memory backend."""

    fact_id: str
    signal_type: SignalType
    confidence: float = Field(ge=0.0, le=1.0)
    query: str = ""
    context: Optional[str] = None

    def to_wire(self) -> dict:
        """Backend request body entry (snake_case, optional fields omitted)."""
        body = {
            "fact_id": self.fact_id,
            "signal_type": self.signal_type.value,
            "confidence": self.confidence,
            "query": self.query,
        }
        if self.context is not None:
            body["context"] = self.context
        return body


class OfflineSignal(SignalItem):
    """A signal waiting in the offline queue."""

    id: str
    queued_at: datetime = Field(default_factory=utcnow)
    synced: bool = False

    def to_signal_item(self) -> SignalItem:
        return SignalItem(
            fact_id=self.fact_id,
            signal_type=self.signal_type,
            confidence=self.confidence,
            query=self.query,
            context=self.context,
        )


# --- Detection ---


@dataclass
class SessionActivity:
    """Structured evidence of what happened during a session."""

    files_accessed: list[str] = field(default_factory=list)
    tasks_completed: list[Any] = field(default_factory=list)
    summary: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict | None) -> Optional["SessionActivity"]:
        """Build from a hook payload; accepts camelCase or snake_case keys."""
        if not data:
            return None
        return cls(
            files_accessed=list(data.get("files_accessed", data.get("filesAccessed")) or []),
            tasks_completed=list(data.get("tasks_completed", data.get("tasksCompleted")) or []),
            summary=data.get("summary"),
        )

    def task_descriptions(self) -> list[str]:
        descriptions = []
        for task in self.tasks_completed:
            if isinstance(task, dict):
                text = task.get("description") or task.get("title") or ""
            else:
                text = str(task)
            if text:
                descriptions.append(text)
        return descriptions


@dataclass
class Detection:
    """Evidence that a specific fact was used."""

    fact_id: str
    detection_type: DetectionType
    confidence: float
    evidence: dict = field(default_factory=dict)


@dataclass
class NegativeSignalDetail:
    type: NegativeSignalType
    weight: float
    detail: str


@dataclass
class NegativeSignal:
    """Evidence that a fact was not used."""

    fact_id: str
    signals: list[NegativeSignalDetail]
    ignore_confidence: float

    @property
    def detection_type(self) -> DetectionType:
        return DetectionType.NEGATIVE_SIGNALS

    @property
    def confidence(self) -> float:
        return self.ignore_confidence

    @property
    def reasons(self) -> list[NegativeSignalType]:
        return [s.type for s in self.signals]


@dataclass
class DetectionResults:
    explicit: list[Detection] = field(default_factory=list)
    semantic: list[Detection] = field(default_factory=list)
    behavioral: list[Detection] = field(default_factory=list)
    negative: list[NegativeSignal] = field(default_factory=list)

    def positive(self) -> list[Detection]:
        return [*self.explicit, *self.semantic, *self.behavioral]

    def used_fact_ids(self) -> set[str]:
        return {d.fact_id for d in self.positive()}


# --- Scoring ---


@dataclass
class FactScore:
    """Aggregated verdict for one fact."""

    fact_id: str
    verdict: Verdict
    confidence: float
    used_score: float = 0.0
    ignored_score: float = 0.0
    detections: list[Detection | NegativeSignal] = field(default_factory=list)

    @property
    def detection_types(self) -> list[str]:
        """Distinct contributing detection types, in first-seen order."""
        return list(dict.fromkeys(str(d.detection_type) for d in self.detections))


@dataclass
class FeedbackSummary:
    total: int = 0
    used: int = 0
    ignored: int = 0
    uncertain: int = 0
    usage_rate: float = 0.0
    avg_used_confidence: float = 0.0
    avg_ignored_confidence: float = 0.0
    top_used: list[dict] = field(default_factory=list)
    top_ignored: list[dict] = field(default_factory=list)


@dataclass
class TrackRecallResult:
    success: bool
    session_id: Optional[str] = None
    facts_tracked: Optional[int] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    memories: list[Any] = field(default_factory=list)


@dataclass
class FeedbackResult:
    success: bool
    session_id: str
    summary: FeedbackSummary = field(default_factory=FeedbackSummary)
    fact_scores: list[FactScore] = field(default_factory=list)
    feedback: list[SignalItem] = field(default_factory=list)
    reason: Optional[str] = None
    error: Optional[str] = None
    lookup_status: Optional[str] = None
