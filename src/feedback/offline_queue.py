"""Durable local buffer for feedback signals the backend could not take.

The queue file is ``<project>/.claude/offline-feedback.json``. Every operation re-reads
the file, applies its change and writes the whole document back. A missing or unreadable
file is an empty queue; only writes raise.
"""

import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import structlog
from pydantic import Field, ValidationError

from .constants import OFFLINE_QUEUE_FILE, QUEUE_VERSION
from .models import CamelModel, OfflineSignal, SignalItem, utcnow
from .storage import read_json, write_json_atomic

logger = structlog.get_logger().bind(source="offline_queue")


class QueueDocument(CamelModel):
    version: int = QUEUE_VERSION
    signals: list[OfflineSignal] = Field(default_factory=list)
    last_sync_attempt: Optional[str] = None
    last_sync_success: Optional[str] = None


@dataclass
class QueueStats:
    total: int = 0
    pending: int = 0
    synced: int = 0
    last_sync_attempt: Optional[str] = None
    last_sync_success: Optional[str] = None


def _signal_id() -> str:
    return f"signal-{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"


def _as_signal_item(item: SignalItem | dict) -> SignalItem:
    if isinstance(item, SignalItem):
        return item
    return SignalItem.model_validate(item)


class OfflineFeedbackQueue:
    """File-backed queue of signals awaiting delivery."""

    def __init__(self, project_dir: str | Path, storage_path: Optional[str | Path] = None):
        self.project_dir = Path(project_dir).expanduser()
        self.path = Path(storage_path) if storage_path else self.project_dir.joinpath(*OFFLINE_QUEUE_FILE)

    def _load(self) -> QueueDocument:
        result = read_json(self.path)
        if result.missing:
            return QueueDocument()
        if not result.ok:
            logger.warning("feedback.queue_unreadable", path=str(self.path), error=result.error)
            return QueueDocument()
        try:
            return QueueDocument.model_validate(result.data)
        except ValidationError as e:
            logger.warning("feedback.queue_invalid", path=str(self.path), errors=e.error_count())
            return QueueDocument()

    def _save(self, doc: QueueDocument) -> None:
        write_json_atomic(self.path, doc.model_dump(mode="json", by_alias=True, exclude_none=True))

    def enqueue(self, item: SignalItem | dict) -> str:
        """Queue one signal. Returns its local id."""
        return self.enqueue_batch([item])[0]

    def enqueue_batch(self, items: Iterable[SignalItem | dict]) -> list[str]:
        """Queue signals in one write. Returns their ids in input order."""
        signals = [_as_signal_item(i) for i in items]
        if not signals:
            return []

        doc = self._load()
        ids = []
        for signal in signals:
            queued = OfflineSignal(
                **signal.model_dump(), id=_signal_id(), queued_at=utcnow(), synced=False
            )
            doc.signals.append(queued)
            ids.append(queued.id)
        self._save(doc)

        logger.info("feedback.queue_enqueued", count=len(ids), total=len(doc.signals))
        return ids

    def get_unsynced(self) -> list[OfflineSignal]:
        return [s for s in self._load().signals if not s.synced]

    def mark_synced(self, ids: Iterable[str]) -> int:
        """Flag signals as delivered and stamp the last successful sync. Returns count flagged."""
        wanted = set(ids)
        doc = self._load()
        flagged = 0
        for signal in doc.signals:
            if signal.id in wanted and not signal.synced:
                signal.synced = True
                flagged += 1
        doc.last_sync_success = utcnow().isoformat()
        self._save(doc)
        return flagged

    def record_sync_attempt(self) -> None:
        doc = self._load()
        doc.last_sync_attempt = utcnow().isoformat()
        self._save(doc)

    def clear_synced(self) -> int:
        """Physically remove delivered signals. Returns count removed."""
        doc = self._load()
        before = len(doc.signals)
        doc.signals = [s for s in doc.signals if not s.synced]
        removed = before - len(doc.signals)
        self._save(doc)
        if removed:
            logger.info("feedback.queue_cleared_synced", removed=removed)
        return removed

    def count(self) -> int:
        return len(self._load().signals)

    def clear(self) -> None:
        """Drop every queued signal, delivered or not."""
        self._save(QueueDocument())

    def get_stats(self) -> QueueStats:
        doc = self._load()
        synced = sum(1 for s in doc.signals if s.synced)
        return QueueStats(
            total=len(doc.signals),
            pending=len(doc.signals) - synced,
            synced=synced,
            last_sync_attempt=doc.last_sync_attempt,
            last_sync_success=doc.last_sync_success,
        )
