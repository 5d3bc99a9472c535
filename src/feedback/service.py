"""Feedback service: the one entry point hooks and the CLI talk to.

Lifecycle per session id: ``track_recall`` records the facts handed to the consumer;
``process_feedback`` scores them against what the consumer then did; the resulting
signals go to the backend through ``deliver_feedback`` (queued offline when it is down).
No public method raises; failures come back in the result's ``error`` field.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional

import structlog

from cli.config_models import AppConfig, FeedbackConfig
from cli.retry import RetryOptions, retry_options_from_config, with_retry
from hindsight import BackendError, HindsightClient
from observability import metrics
from shared_types import RecallBudget

from .constants import DEFAULT_RECALL_LIMIT, SESSION_DATA_RETENTION_DAYS
from .delivery import DeliveryResult, FeedbackDelivery, SyncResult
from .detector import run_detection_pipeline
from .models import FeedbackResult, RecallSession, SessionActivity, SignalItem, TrackRecallResult
from .offline_queue import OfflineFeedbackQueue, QueueStats
from .scorer import aggregate_detections, get_detection_breakdown, prepare_feedback, summarize_feedback
from .tracker import LookupStatus, SessionTracker
from .triggers import build_triggers

logger = structlog.get_logger().bind(source="feedback_service")

DISABLED_REASON = "disabled"
NO_SESSION_REASON = "No recall session found for this session ID"


@dataclass
class StatsResult:
    success: bool
    enabled: bool
    current_session: Optional[RecallSession] = None
    archived_sessions: int = 0
    total_facts_tracked: int = 0
    oldest_session: Optional[str] = None
    newest_session: Optional[str] = None
    queue: Optional[QueueStats] = None
    degraded: bool = False
    error: Optional[str] = None


class FeedbackService:
    """Tracks recalls, scores usage and reports verdicts for one project."""

    def __init__(
        self,
        config: Optional[FeedbackConfig],
        project_dir: str | Path,
        client: Optional[HindsightClient] = None,
        bank_id: Optional[str] = None,
        retry_options: Optional[RetryOptions] = None,
        queue: Optional[OfflineFeedbackQueue] = None,
    ):
        self.config = config or FeedbackConfig()
        self.project_dir = Path(project_dir).expanduser()
        self.tracker = SessionTracker(self.project_dir)
        self.queue = queue or OfflineFeedbackQueue(self.project_dir)
        self.delivery = FeedbackDelivery(
            client, self.queue, bank_id or self.project_dir.name, retry_options
        )
        self.triggers = build_triggers(self.config.detection.extra_triggers)

    @classmethod
    def from_app_config(
        cls, config: AppConfig, project_dir: str | Path, client: Optional[HindsightClient] = None
    ) -> "FeedbackService":
        return cls(
            config.feedback,
            project_dir,
            client=client,
            bank_id=config.backend.bank_id,
            retry_options=retry_options_from_config(config.retry),
        )

    def is_enabled(self) -> bool:
        return self.config.enabled

    @property
    def degraded(self) -> bool:
        return self.delivery.degraded

    def track_recall(
        self, session_id: str, query: str, facts: Iterable[Any], **recall_params
    ) -> TrackRecallResult:
        """Record the facts one recall handed to the consumer.

        ``recall_params`` are passed to ``SessionTracker.create_session`` (limit, budget,
        fact_types, time_window, query_type, recent_files).
        """
        if not self.is_enabled():
            return TrackRecallResult(success=False, reason=DISABLED_REASON)

        try:
            session = self.tracker.track_recall(session_id, query, facts, **recall_params)
        except Exception as e:
            logger.error("feedback.track_failed", session_id=session_id, error=str(e))
            return TrackRecallResult(success=False, error=str(e))

        metrics.counter("feedback_recalls_tracked")
        logger.info("feedback.recall_tracked", session_id=session_id, facts=session.total_facts)
        return TrackRecallResult(
            success=True, session_id=session.session_id, facts_tracked=session.total_facts
        )

    async def recall_and_track(
        self,
        session_id: str,
        query: str,
        budget: RecallBudget = RecallBudget.HIGH,
        limit: int = DEFAULT_RECALL_LIMIT,
        **recall_params,
    ) -> TrackRecallResult:
        """Recall facts for ``query`` from the backend, then track what came back.

        Ranking is boosted by past usefulness when ``hindsight.boost_by_usefulness`` is
        set. The recalled memories are returned on the result, tracked or not.
        """
        client = self.delivery.client
        if client is None:
            return TrackRecallResult(success=False, reason="no backend configured")

        boost = self.config.hindsight
        try:
            budget = RecallBudget(budget)
            memories = await with_retry(
                client.recall,
                self.delivery.retry_options,
                self.delivery.bank_id,
                query,
                budget=budget,
                boost_by_usefulness=boost.boost_by_usefulness,
                usefulness_weight=boost.boost_weight if boost.boost_by_usefulness else None,
            )
        except (BackendError, TimeoutError, ValueError) as e:
            logger.warning("feedback.recall_failed", query=query, error=str(e))
            return TrackRecallResult(success=False, error=str(e))

        memories = list(memories)[:limit]
        result = self.track_recall(
            session_id, query, memories, budget=str(budget), limit=limit, **recall_params
        )
        result.memories = memories
        return result

    def _find_session(self, session_id: str) -> tuple[Optional[RecallSession], LookupStatus]:
        lookup = self.tracker.lookup_session(session_id)
        if lookup.status == LookupStatus.CORRUPT:
            logger.warning("feedback.session_corrupt", session_id=session_id, detail=lookup.detail)
        if lookup.session is None and lookup.status == LookupStatus.MISMATCH:
            archived = self.tracker.load_archived_session(session_id)
            if archived is not None:
                return archived, LookupStatus.FOUND
        return lookup.session, lookup.status

    def process_feedback(
        self,
        session_id: str,
        conversation_text: Optional[str] = None,
        session_activity: SessionActivity | dict | None = None,
    ) -> FeedbackResult:
        """Score every recalled fact of ``session_id`` as used, ignored or uncertain.

        Args:
            session_id: Session passed to ``track_recall``.
            conversation_text: What the consumer wrote during the session.
            session_activity: Files touched, tasks completed and a summary.
        """
        if not self.is_enabled():
            return FeedbackResult(success=False, session_id=session_id, reason=DISABLED_REASON)

        try:
            session, status = self._find_session(session_id)
            if session is None:
                return FeedbackResult(
                    success=False,
                    session_id=session_id,
                    reason=NO_SESSION_REASON,
                    lookup_status=str(status),
                )

            with metrics.timer("feedback_detection"):
                detections = run_detection_pipeline(
                    conversation_text,
                    session_activity,
                    session.facts_recalled,
                    self.config.detection,
                    triggers=self.triggers,
                )
            scores = aggregate_detections(detections)
            summary = summarize_feedback(scores)
            feedback: list[SignalItem] = []
            if self.config.hindsight.send_feedback:
                feedback = prepare_feedback(scores, session.recall.query)
        except Exception as e:
            logger.error("feedback.process_failed", session_id=session_id, error=str(e))
            return FeedbackResult(success=False, session_id=session_id, error=str(e))

        metrics.counter("feedback_facts_used", summary.used)
        metrics.counter("feedback_facts_ignored", summary.ignored)
        log = logger.info if self.config.debug else logger.debug
        log(
            "feedback.processed",
            session_id=session_id,
            used=summary.used,
            ignored=summary.ignored,
            uncertain=summary.uncertain,
            breakdown=get_detection_breakdown(scores),
        )
        return FeedbackResult(
            success=True,
            session_id=session_id,
            summary=summary,
            fact_scores=scores,
            feedback=feedback,
            lookup_status=str(LookupStatus.FOUND),
        )

    async def deliver_feedback(self, items: FeedbackResult | Iterable[SignalItem]) -> DeliveryResult:
        """Send prepared signals to the backend, queueing them offline when it is down."""
        if not self.is_enabled():
            return DeliveryResult(skipped=DISABLED_REASON)
        if not self.config.hindsight.send_feedback:
            return DeliveryResult(skipped="feedback sending disabled")

        if isinstance(items, FeedbackResult):
            items = items.feedback
        try:
            return await self.delivery.deliver(items)
        except Exception as e:
            logger.error("feedback.deliver_failed", error=str(e))
            return DeliveryResult(degraded=self.degraded, error=str(e))

    async def sync_offline_feedback(self, clear: bool = True) -> SyncResult:
        """Flush the offline queue to the backend."""
        try:
            return await self.delivery.flush_offline_queue(clear=clear)
        except Exception as e:
            logger.error("feedback.sync_error", error=str(e))
            return SyncResult(error=str(e))

    def cleanup_sessions(self, max_age_days: int = SESSION_DATA_RETENTION_DAYS) -> int:
        return self.tracker.cleanup_old_sessions(max_age_days)

    def get_stats(self) -> StatsResult:
        """Session and queue statistics for operators."""
        try:
            sessions = self.tracker.get_session_stats()
            queue = self.queue.get_stats()
        except Exception as e:
            return StatsResult(success=False, enabled=self.is_enabled(), error=str(e))

        return StatsResult(
            success=True,
            enabled=self.is_enabled(),
            current_session=sessions.current_session,
            archived_sessions=sessions.archived_sessions,
            total_facts_tracked=sessions.total_facts_tracked,
            oldest_session=sessions.oldest_session,
            newest_session=sessions.newest_session,
            queue=queue,
            degraded=self.degraded,
        )
