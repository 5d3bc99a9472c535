"""Deliver feedback signals to the memory backend, falling back to the offline queue."""

from dataclasses import dataclass, field
from typing import Iterable, Optional

import structlog

from cli.retry import RetryOptions, is_default_retryable, with_retry
from hindsight import BackendError, HindsightClient
from observability import metrics

from .models import SignalItem
from .offline_queue import OfflineFeedbackQueue

logger = structlog.get_logger().bind(source="feedback_delivery")


@dataclass
class DeliveryResult:
    sent: int = 0
    queued: int = 0
    queued_ids: list[str] = field(default_factory=list)
    degraded: bool = False
    skipped: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SyncResult:
    synced: int = 0
    pending: int = 0
    cleared: int = 0
    skipped: Optional[str] = None
    error: Optional[str] = None


def _is_outage(error: BaseException) -> bool:
    if isinstance(error, BackendError):
        return error.is_unavailable or error.is_timeout
    return isinstance(error, TimeoutError)


class FeedbackDelivery:
    """Sends signals with retry, and parks them in the offline queue during outages.

    Once a send fails because the backend is unreachable the delivery enters degraded
    mode: later sends go straight to the queue until a flush finds the backend healthy.
    """

    def __init__(
        self,
        client: Optional[HindsightClient],
        queue: OfflineFeedbackQueue,
        bank_id: str,
        retry_options: Optional[RetryOptions] = None,
    ):
        self.client = client
        self.queue = queue
        self.bank_id = bank_id
        self.retry_options = retry_options or RetryOptions()
        self.degraded = False

    def enter_degraded_mode(self, reason: str) -> None:
        if not self.degraded:
            self.degraded = True
            logger.warning("feedback.degraded_mode_entered", reason=reason)

    def exit_degraded_mode(self) -> None:
        if self.degraded:
            self.degraded = False
            logger.info("feedback.degraded_mode_exited")

    def _park(self, items: list[SignalItem], error: Optional[str] = None) -> DeliveryResult:
        ids = self.queue.enqueue_batch(items)
        metrics.counter("feedback_signals_queued", len(ids))
        return DeliveryResult(queued=len(ids), queued_ids=ids, degraded=self.degraded, error=error)

    async def deliver(self, items: Iterable[SignalItem]) -> DeliveryResult:
        """Send ``items`` now, or queue them when the backend cannot take them.

        Rejected requests (validation, auth, unknown bank) are reported, not queued.
        """
        items = list(items)
        if not items:
            return DeliveryResult(degraded=self.degraded)

        if self.client is None or self.degraded:
            return self._park(items)

        try:
            ack = await with_retry(self.client.signal, self.retry_options, self.bank_id, items)
        except (BackendError, TimeoutError) as e:
            if not is_default_retryable(e):
                metrics.counter("feedback_signals_rejected", len(items))
                logger.error("feedback.delivery_rejected", error=str(e), count=len(items))
                return DeliveryResult(error=str(e))
            if _is_outage(e):
                self.enter_degraded_mode(str(e))
            logger.warning("feedback.delivery_failed", error=str(e), queued=len(items))
            return self._park(items, error=str(e))

        metrics.counter("feedback_signals_sent", ack.accepted)
        logger.info("feedback.delivered", sent=ack.accepted, bank_id=self.bank_id)
        return DeliveryResult(sent=ack.accepted)

    async def flush_offline_queue(self, clear: bool = True) -> SyncResult:
        """Send every unsynced queued signal in one batch.

        Args:
            clear: Remove delivered signals from the queue file afterwards.
        """
        if self.client is None:
            return SyncResult(pending=len(self.queue.get_unsynced()), skipped="no backend configured")

        self.queue.record_sync_attempt()

        if self.degraded:
            health = await self.client.health()
            if not health.healthy:
                return SyncResult(pending=len(self.queue.get_unsynced()), skipped="backend unavailable")
            self.exit_degraded_mode()

        unsynced = self.queue.get_unsynced()
        if not unsynced:
            return SyncResult()

        try:
            await with_retry(
                self.client.signal,
                self.retry_options,
                self.bank_id,
                [s.to_signal_item() for s in unsynced],
            )
        except (BackendError, TimeoutError) as e:
            if _is_outage(e):
                self.enter_degraded_mode(str(e))
            logger.warning("feedback.sync_failed", error=str(e), pending=len(unsynced))
            return SyncResult(pending=len(unsynced), error=str(e))

        self.queue.mark_synced([s.id for s in unsynced])
        metrics.counter("feedback_signals_synced", len(unsynced))
        cleared = self.queue.clear_synced() if clear else 0
        logger.info("feedback.queue_synced", synced=len(unsynced), cleared=cleared)
        return SyncResult(synced=len(unsynced), cleared=cleared)
