"""Tests for the FeedbackService facade."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from cli.config_models import AppConfig, FeedbackConfig, HindsightFeedbackConfig
from feedback.service import DISABLED_REASON, NO_SESSION_REASON, FeedbackService
from hindsight import BackendError, ErrorCode, Memory, SignalAck
from shared_types import RecallBudget, SignalType, Verdict

JWT_RESPONSE = "Based on the recalled context, auth uses JWT tokens."


@pytest.fixture
def client():
    mock = MagicMock()
    mock.signal = AsyncMock(return_value=SignalAck(accepted=3))
    return mock


@pytest.fixture
def service(enabled_config, project_dir, client, fast_retry):
    return FeedbackService(enabled_config, project_dir, client=client, retry_options=fast_retry)


class TestDisabled:
    def test_track_recall(self, project_dir, recalled_memories):
        service = FeedbackService(FeedbackConfig(enabled=False), project_dir)
        result = service.track_recall("s1", "auth", recalled_memories)
        assert not result.success
        assert result.reason == DISABLED_REASON
        assert not (project_dir / ".claude").exists()

    def test_process_feedback(self, project_dir):
        result = FeedbackService(None, project_dir).process_feedback("s1", JWT_RESPONSE)
        assert not result.success
        assert result.reason == DISABLED_REASON

    @pytest.mark.asyncio
    async def test_deliver(self, project_dir, client):
        service = FeedbackService(FeedbackConfig(), project_dir, client=client)
        result = await service.deliver_feedback([])
        assert result.skipped == DISABLED_REASON
        client.signal.assert_not_awaited()


class TestTrackRecall:
    def test_success(self, service, recalled_memories):
        result = service.track_recall("s1", "auth", recalled_memories, limit=10)
        assert result.success
        assert result.session_id == "s1"
        assert result.facts_tracked == 3
        assert service.tracker.load_session("s1").recall.parameters.limit == 10

    def test_error_captured(self, tmp_path, enabled_config, recalled_memories):
        not_a_dir = tmp_path / "file.txt"
        not_a_dir.write_text("x")
        result = FeedbackService(enabled_config, not_a_dir).track_recall("s1", "q", recalled_memories)
        assert not result.success
        assert result.error

    def test_empty_session_id(self, service, recalled_memories):
        result = service.track_recall("", "q", recalled_memories)
        assert not result.success
        assert result.error


class TestProcessFeedback:
    def test_jwt_scenario(self, service, recalled_memories):
        service.track_recall("s1", "how does auth work", recalled_memories)
        result = service.process_feedback("s1", JWT_RESPONSE)

        assert result.success
        assert result.lookup_status == "found"
        by_id = {s.fact_id: s for s in result.fact_scores}
        assert by_id["f1"].verdict == Verdict.USED
        assert by_id["f1"].confidence == pytest.approx(0.95)
        assert result.summary.used == 1
        f1_signal = next(i for i in result.feedback if i.fact_id == "f1")
        assert f1_signal.signal_type == SignalType.USED
        assert f1_signal.query == "how does auth work"

    def test_unrelated_facts_ignored(self, service, recalled_memories):
        service.track_recall("s1", "auth", recalled_memories)
        result = service.process_feedback("s1", JWT_RESPONSE)
        by_id = {s.fact_id: s for s in result.fact_scores}
        # topic mismatch alone: 0 - 0.5 * 0.5
        assert by_id["f3"].verdict == Verdict.IGNORED
        assert by_id["f3"].confidence == pytest.approx(0.25)

    def test_low_position_with_activity(self, service):
        facts = [{"id": f"f{i}", "text": f"Filler fact number {i}"} for i in range(1, 20)]
        facts.append({"id": "f20", "text": "Prefers tabs over spaces in Makefiles"})
        service.track_recall("s1", "oauth", facts)

        result = service.process_feedback(
            "s1", session_activity={"summary": "Implemented OAuth login flow for the dashboard"}
        )
        by_id = {s.fact_id: s for s in result.fact_scores}
        assert by_id["f20"].verdict == Verdict.IGNORED
        assert by_id["f20"].confidence == pytest.approx(0.4)

    def test_no_session(self, service):
        result = service.process_feedback("nope", JWT_RESPONSE)
        assert not result.success
        assert result.reason == NO_SESSION_REASON
        assert result.lookup_status == "missing"

    def test_id_mismatch(self, service, recalled_memories):
        service.track_recall("s1", "auth", recalled_memories)
        result = service.process_feedback("other", JWT_RESPONSE)
        assert result.reason == NO_SESSION_REASON
        assert result.lookup_status == "mismatch"

    def test_archived_session_found(self, service, recalled_memories):
        service.track_recall("aaaa1111-first", "auth", recalled_memories)
        service.track_recall("bbbb2222-second", "other", recalled_memories[:1])

        result = service.process_feedback("aaaa1111-first", JWT_RESPONSE)
        assert result.success
        assert result.summary.total == 3

    def test_corrupt_session(self, service):
        service.tracker.session_dir.mkdir(parents=True)
        service.tracker.session_path.write_text("{oops")
        result = service.process_feedback("s1", JWT_RESPONSE)
        assert result.reason == NO_SESSION_REASON
        assert result.lookup_status == "corrupt"

    def test_no_evidence_no_scores(self, service, recalled_memories):
        service.track_recall("s1", "auth", recalled_memories)
        result = service.process_feedback("s1")
        assert result.success
        assert result.fact_scores == []
        assert result.feedback == []

    def test_send_feedback_disabled(self, project_dir, recalled_memories):
        config = FeedbackConfig(enabled=True, hindsight=HindsightFeedbackConfig(send_feedback=False))
        service = FeedbackService(config, project_dir)
        service.track_recall("s1", "auth", recalled_memories)
        result = service.process_feedback("s1", JWT_RESPONSE)
        assert result.summary.used == 1
        assert result.feedback == []


class TestDelivery:
    @pytest.mark.asyncio
    async def test_deliver_feedback_result(self, service, client, recalled_memories):
        service.track_recall("s1", "auth", recalled_memories)
        feedback = service.process_feedback("s1", JWT_RESPONSE)

        result = await service.deliver_feedback(feedback)
        assert result.sent == 3
        _, items = client.signal.await_args.args
        assert {i.fact_id for i in items} == {"f1", "f2", "f3"}

    @pytest.mark.asyncio
    async def test_outage_then_sync(self, service, client, recalled_memories):
        service.track_recall("s1", "auth", recalled_memories)
        feedback = service.process_feedback("s1", JWT_RESPONSE)

        client.signal.side_effect = BackendError("down", ErrorCode.BACKEND_UNAVAILABLE, is_retryable=True)
        result = await service.deliver_feedback(feedback)
        assert result.queued == 3
        assert service.degraded

        client.signal.side_effect = None
        client.health = AsyncMock(return_value=MagicMock(healthy=True))
        sync = await service.sync_offline_feedback()
        assert sync.synced == 3
        assert not service.degraded
        assert service.queue.count() == 0

    @pytest.mark.asyncio
    async def test_sending_disabled(self, project_dir, client):
        config = FeedbackConfig(enabled=True, hindsight=HindsightFeedbackConfig(send_feedback=False))
        service = FeedbackService(config, project_dir, client=client)
        result = await service.deliver_feedback([])
        assert result.skipped == "feedback sending disabled"


class TestRecallAndTrack:
    @pytest.fixture
    def memories(self, recalled_memories):
        return [Memory.from_api(m) for m in recalled_memories]

    @pytest.mark.asyncio
    async def test_boost_settings_reach_backend(self, service, client, memories):
        client.recall = AsyncMock(return_value=memories)
        result = await service.recall_and_track("s1", "how does auth work", budget=RecallBudget.MID)

        assert result.success
        assert result.facts_tracked == 3
        assert [m.id for m in result.memories] == ["f1", "f2", "f3"]
        client.recall.assert_awaited_once_with(
            "my-project",
            "how does auth work",
            budget=RecallBudget.MID,
            boost_by_usefulness=True,
            usefulness_weight=0.3,
        )
        session = service.tracker.load_session("s1")
        assert session.recall.parameters.budget == "mid"
        assert session.fact_ids == ["f1", "f2", "f3"]

    @pytest.mark.asyncio
    async def test_boost_disabled(self, project_dir, client, memories):
        config = FeedbackConfig(
            enabled=True, hindsight=HindsightFeedbackConfig(boost_by_usefulness=False, boost_weight=0.8)
        )
        client.recall = AsyncMock(return_value=memories)
        service = FeedbackService(config, project_dir, client=client)
        await service.recall_and_track("s1", "auth")

        kwargs = client.recall.await_args.kwargs
        assert kwargs["boost_by_usefulness"] is False
        assert kwargs["usefulness_weight"] is None
        assert kwargs["budget"] == RecallBudget.HIGH

    @pytest.mark.asyncio
    async def test_limit_truncates(self, service, client, memories):
        client.recall = AsyncMock(return_value=memories)
        result = await service.recall_and_track("s1", "auth", limit=2)
        assert result.facts_tracked == 2
        assert len(result.memories) == 2
        assert service.tracker.load_session("s1").recall.parameters.limit == 2

    @pytest.mark.asyncio
    async def test_backend_error(self, service, client):
        client.recall = AsyncMock(side_effect=BackendError("bad", ErrorCode.VALIDATION_ERROR))
        result = await service.recall_and_track("s1", "auth")
        assert not result.success
        assert result.error
        assert service.tracker.load_session("s1") is None

    @pytest.mark.asyncio
    async def test_unknown_budget(self, service, client):
        client.recall = AsyncMock(return_value=[])
        result = await service.recall_and_track("s1", "auth", budget="extreme")
        assert not result.success
        client.recall.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_backend(self, project_dir, enabled_config):
        result = await FeedbackService(enabled_config, project_dir).recall_and_track("s1", "auth")
        assert not result.success
        assert result.reason == "no backend configured"

    @pytest.mark.asyncio
    async def test_tracking_disabled_still_returns_memories(self, project_dir, client, memories):
        client.recall = AsyncMock(return_value=memories)
        service = FeedbackService(FeedbackConfig(enabled=False), project_dir, client=client)
        result = await service.recall_and_track("s1", "auth")
        assert result.reason == DISABLED_REASON
        assert len(result.memories) == 3


class TestHousekeeping:
    def test_stats(self, service, recalled_memories):
        service.track_recall("s1", "auth", recalled_memories)
        stats = service.get_stats()
        assert stats.success
        assert stats.enabled
        assert stats.current_session.session_id == "s1"
        assert stats.total_facts_tracked == 3
        assert stats.queue.total == 0
        assert not stats.degraded

    def test_cleanup(self, service):
        assert service.cleanup_sessions(7) == 0

    def test_from_app_config(self, project_dir):
        config = AppConfig.from_dict({"feedback": {"enabled": True}, "backend": {"bank_id": "team"}})
        service = FeedbackService.from_app_config(config, project_dir)
        assert service.is_enabled()
        assert service.delivery.bank_id == "team"

    def test_bank_defaults_to_project_name(self, service, project_dir):
        assert service.delivery.bank_id == project_dir.name
