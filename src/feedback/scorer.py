"""Aggregate detections into per-fact verdicts and backend signals."""

from typing import Iterable

from shared_types import DetectionType, SignalType, Verdict

from .constants import (
    IGNORED_THRESHOLD,
    NEGATIVE_SIGNAL_WEIGHT,
    TOP_FACTS_LIMIT,
    USED_THRESHOLD,
)
from .models import DetectionResults, FactScore, FeedbackSummary, SignalItem


def calculate_verdict(used_score: float, ignored_score: float) -> tuple[Verdict, float]:
    """Classify a fact from its used/ignored scores.

    Negative evidence counts at NEGATIVE_SIGNAL_WEIGHT. Returns (verdict, |net score|).
    """
    net = used_score - ignored_score * NEGATIVE_SIGNAL_WEIGHT
    if net > USED_THRESHOLD:
        verdict = Verdict.USED
    elif net < IGNORED_THRESHOLD:
        verdict = Verdict.IGNORED
    else:
        verdict = Verdict.UNCERTAIN
    return verdict, abs(net)


def aggregate_detections(results: DetectionResults) -> list[FactScore]:
    """Sum detections per fact (each side capped at 1.0), classify, sort by confidence."""
    scores: dict[str, FactScore] = {}

    def entry(fact_id: str) -> FactScore:
        if fact_id not in scores:
            scores[fact_id] = FactScore(fact_id=fact_id, verdict=Verdict.UNCERTAIN, confidence=0.0)
        return scores[fact_id]

    for detection in results.positive():
        score = entry(detection.fact_id)
        score.used_score = min(score.used_score + detection.confidence, 1.0)
        score.detections.append(detection)

    for negative in results.negative:
        score = entry(negative.fact_id)
        score.ignored_score = min(score.ignored_score + negative.ignore_confidence, 1.0)
        score.detections.append(negative)

    for score in scores.values():
        score.verdict, score.confidence = calculate_verdict(score.used_score, score.ignored_score)

    return sorted(scores.values(), key=lambda s: s.confidence, reverse=True)


def prepare_feedback(scores: Iterable[FactScore], query: str) -> list[SignalItem]:
    """Backend signal items for confident verdicts. Uncertain facts send nothing."""
    return [
        SignalItem(
            fact_id=s.fact_id,
            signal_type=SignalType(s.verdict.value),
            confidence=min(s.confidence, 1.0),
            query=query or "",
        )
        for s in scores
        if s.verdict != Verdict.UNCERTAIN
    ]


def summarize_feedback(scores: list[FactScore]) -> FeedbackSummary:
    summary = FeedbackSummary(total=len(scores))
    used = sorted((s for s in scores if s.verdict == Verdict.USED), key=lambda s: s.confidence, reverse=True)
    ignored = sorted(
        (s for s in scores if s.verdict == Verdict.IGNORED), key=lambda s: s.confidence, reverse=True
    )

    summary.used = len(used)
    summary.ignored = len(ignored)
    summary.uncertain = summary.total - summary.used - summary.ignored
    if summary.total:
        summary.usage_rate = summary.used / summary.total
    if used:
        summary.avg_used_confidence = sum(s.confidence for s in used) / len(used)
    if ignored:
        summary.avg_ignored_confidence = sum(s.confidence for s in ignored) / len(ignored)

    summary.top_used = [
        {"fact_id": s.fact_id, "confidence": s.confidence, "detection_types": s.detection_types}
        for s in used[:TOP_FACTS_LIMIT]
    ]
    summary.top_ignored = [
        {"fact_id": s.fact_id, "confidence": s.confidence} for s in ignored[:TOP_FACTS_LIMIT]
    ]
    return summary


def filter_high_confidence(scores: Iterable[FactScore], min_confidence: float = 0.5) -> list[FactScore]:
    return [s for s in scores if s.verdict != Verdict.UNCERTAIN and s.confidence >= min_confidence]


def get_detection_breakdown(scores: Iterable[FactScore]) -> dict[str, int]:
    """Count of contributing detections per detection type (every type present, zero or not)."""
    breakdown = {str(t): 0 for t in DetectionType}
    for score in scores:
        for detection in score.detections:
            key = str(detection.detection_type)
            if key in breakdown:
                breakdown[key] += 1
    return breakdown
