"""Tests for score aggregation, verdicts and signal preparation."""

import pytest

from feedback.models import (
    Detection,
    DetectionResults,
    FactScore,
    NegativeSignal,
    NegativeSignalDetail,
)
from feedback.scorer import (
    aggregate_detections,
    calculate_verdict,
    filter_high_confidence,
    get_detection_breakdown,
    prepare_feedback,
    summarize_feedback,
)
from shared_types import DetectionType, NegativeSignalType, SignalType, Verdict


def _detection(fact_id, confidence, kind=DetectionType.SEMANTIC_MATCH):
    return Detection(fact_id=fact_id, detection_type=kind, confidence=confidence)


def _negative(fact_id, confidence, reasons=(NegativeSignalType.LOW_POSITION,)):
    details = [NegativeSignalDetail(type=r, weight=confidence / len(reasons), detail="") for r in reasons]
    return NegativeSignal(fact_id=fact_id, signals=details, ignore_confidence=confidence)


def _score(fact_id, verdict, confidence, detections=None):
    return FactScore(fact_id=fact_id, verdict=verdict, confidence=confidence, detections=detections or [])


class TestCalculateVerdict:
    def test_used(self):
        verdict, confidence = calculate_verdict(0.95, 0.0)
        assert verdict == Verdict.USED
        assert confidence == pytest.approx(0.95)

    def test_ignored(self):
        verdict, confidence = calculate_verdict(0.0, 0.8)
        assert verdict == Verdict.IGNORED
        assert confidence == pytest.approx(0.4)

    def test_boundaries_are_uncertain(self):
        assert calculate_verdict(0.2, 0.0)[0] == Verdict.UNCERTAIN
        assert calculate_verdict(0.0, 0.4)[0] == Verdict.UNCERTAIN

    def test_negative_counts_half(self):
        # 0.5 - 0.7 * 0.5 = 0.15
        assert calculate_verdict(0.5, 0.7)[0] == Verdict.UNCERTAIN
        assert calculate_verdict(0.6, 0.6)[0] == Verdict.USED

    @pytest.mark.parametrize("ignored", [0.0, 0.3, 0.6, 0.9, 1.0])
    def test_monotonic_in_used(self, ignored):
        order = {Verdict.IGNORED: 0, Verdict.UNCERTAIN: 1, Verdict.USED: 2}
        ranks = [order[calculate_verdict(u / 10, ignored)[0]] for u in range(11)]
        assert ranks == sorted(ranks)

    @pytest.mark.parametrize("used", [0.0, 0.3, 0.6, 1.0])
    def test_monotonic_in_ignored(self, used):
        order = {Verdict.IGNORED: 0, Verdict.UNCERTAIN: 1, Verdict.USED: 2}
        ranks = [order[calculate_verdict(used, i / 10)[0]] for i in range(11)]
        assert ranks == sorted(ranks, reverse=True)


class TestAggregate:
    def test_positive_detections_add_and_cap(self):
        results = DetectionResults(
            explicit=[_detection("f1", 0.95, DetectionType.EXPLICIT_REFERENCE)],
            semantic=[_detection("f1", 0.68)],
        )
        [score] = aggregate_detections(results)
        assert score.used_score == 1.0
        assert score.verdict == Verdict.USED
        assert score.detection_types == ["explicit_reference", "semantic_match"]

    def test_negative_signals(self):
        results = DetectionResults(
            negative=[_negative("f20", 0.8, (NegativeSignalType.LOW_POSITION, NegativeSignalType.TOPIC_MISMATCH))]
        )
        [score] = aggregate_detections(results)
        assert score.ignored_score == pytest.approx(0.8)
        assert score.verdict == Verdict.IGNORED
        assert score.detection_types == ["negative_signals"]

    def test_sorted_by_confidence(self):
        results = DetectionResults(
            semantic=[_detection("low", 0.3), _detection("high", 0.85)],
            behavioral=[_detection("mid", 0.5, DetectionType.FILE_ACCESS_CORRELATION)],
        )
        assert [s.fact_id for s in aggregate_detections(results)] == ["high", "mid", "low"]

    def test_empty(self):
        assert aggregate_detections(DetectionResults()) == []


class TestPrepareFeedback:
    def test_drops_uncertain(self):
        scores = [
            _score("a", Verdict.USED, 0.95),
            _score("b", Verdict.IGNORED, 0.4),
            _score("c", Verdict.UNCERTAIN, 0.1),
        ]
        items = prepare_feedback(scores, "how does auth work")
        assert len(items) == 2
        assert [(i.fact_id, i.signal_type) for i in items] == [
            ("a", SignalType.USED),
            ("b", SignalType.IGNORED),
        ]
        assert all(i.query == "how does auth work" for i in items)

    def test_wire_format(self):
        [item] = prepare_feedback([_score("a", Verdict.USED, 0.95)], "q")
        assert item.to_wire() == {"fact_id": "a", "signal_type": "used", "confidence": 0.95, "query": "q"}


class TestSummary:
    def test_counts_and_rates(self):
        scores = [
            _score("a", Verdict.USED, 0.9, [_detection("a", 0.9, DetectionType.EXPLICIT_REFERENCE)]),
            _score("b", Verdict.USED, 0.5),
            _score("c", Verdict.IGNORED, 0.4),
            _score("d", Verdict.UNCERTAIN, 0.0),
        ]
        summary = summarize_feedback(scores)
        assert (summary.total, summary.used, summary.ignored, summary.uncertain) == (4, 2, 1, 1)
        assert summary.usage_rate == pytest.approx(0.5)
        assert summary.avg_used_confidence == pytest.approx(0.7)
        assert summary.avg_ignored_confidence == pytest.approx(0.4)
        assert summary.top_used[0] == {
            "fact_id": "a",
            "confidence": 0.9,
            "detection_types": ["explicit_reference"],
        }
        assert summary.top_ignored == [{"fact_id": "c", "confidence": 0.4}]

    def test_top_limited_to_five(self):
        scores = [_score(f"f{i}", Verdict.USED, i / 10) for i in range(8)]
        summary = summarize_feedback(scores)
        assert [t["fact_id"] for t in summary.top_used] == ["f7", "f6", "f5", "f4", "f3"]

    def test_empty(self):
        summary = summarize_feedback([])
        assert summary.total == 0
        assert summary.usage_rate == 0.0


class TestHelpers:
    def test_filter_high_confidence(self):
        scores = [
            _score("a", Verdict.USED, 0.9),
            _score("b", Verdict.IGNORED, 0.3),
            _score("c", Verdict.UNCERTAIN, 0.9),
        ]
        assert [s.fact_id for s in filter_high_confidence(scores)] == ["a"]
        assert [s.fact_id for s in filter_high_confidence(scores, 0.2)] == ["a", "b"]

    def test_detection_breakdown(self):
        results = DetectionResults(
            explicit=[_detection("a", 0.95, DetectionType.EXPLICIT_REFERENCE)],
            semantic=[_detection("a", 0.6), _detection("b", 0.6)],
            negative=[_negative("c", 0.8)],
        )
        breakdown = get_detection_breakdown(aggregate_detections(results))
        assert breakdown["explicit_reference"] == 1
        assert breakdown["semantic_match"] == 2
        assert breakdown["negative_signals"] == 1
        assert breakdown["task_topic_correlation"] == 0
