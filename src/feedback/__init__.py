"""Recall feedback loop: track recalled facts, detect usage, report verdicts."""

from .delivery import DeliveryResult, FeedbackDelivery, SyncResult
from .detector import run_detection_pipeline
from .models import (
    Detection,
    DetectionResults,
    FactScore,
    FeedbackResult,
    FeedbackSummary,
    NegativeSignal,
    OfflineSignal,
    RecalledFact,
    RecallSession,
    SessionActivity,
    SignalItem,
    TrackRecallResult,
)
from .offline_queue import OfflineFeedbackQueue, QueueStats
from .scorer import aggregate_detections, calculate_verdict, prepare_feedback, summarize_feedback
from .service import FeedbackService, StatsResult
from .similarity import jaccard, similarity
from .tracker import LookupStatus, SessionLookup, SessionStats, SessionTracker, add_recalled_facts

__all__ = [
    "DeliveryResult",
    "FeedbackDelivery",
    "SyncResult",
    "run_detection_pipeline",
    "Detection",
    "DetectionResults",
    "FactScore",
    "FeedbackResult",
    "FeedbackSummary",
    "NegativeSignal",
    "OfflineSignal",
    "RecalledFact",
    "RecallSession",
    "SessionActivity",
    "SignalItem",
    "TrackRecallResult",
    "OfflineFeedbackQueue",
    "QueueStats",
    "aggregate_detections",
    "calculate_verdict",
    "prepare_feedback",
    "summarize_feedback",
    "FeedbackService",
    "StatsResult",
    "jaccard",
    "similarity",
    "LookupStatus",
    "SessionLookup",
    "SessionStats",
    "SessionTracker",
    "add_recalled_facts",
]
