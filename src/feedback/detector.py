"""Usage detection: which recalled facts did the consumer actually use.

Four independent detectors, in decreasing order of certainty:

1. Explicit references: a citation phrase ("based on the recalled context", "[memory]")
   near text that resembles a fact.
2. Semantic matches: a chunk of the response overlaps heavily with a fact.
3. Behavioral signals: files the fact mentions were touched, or a completed task is on
   the fact's topic.
4. Negative signals: for facts with no positive evidence, reasons to think they were
   ignored (low rank, off-topic, mentioned files untouched).
"""

import re
from typing import Optional, Sequence

import structlog

from cli.config_models import DetectionConfig
from shared_types import DetectionType, NegativeSignalType

from .constants import (
    BEHAVIORAL_CONFIDENCE_BASE,
    CHUNK_MAX_WORDS,
    CHUNK_OVERLAP_WORDS,
    EVIDENCE_PREVIEW_CHARS,
    EXPLICIT_CONFIDENCE,
    EXPLICIT_FACT_MIN_SIMILARITY,
    EXPLICIT_LOOKAHEAD_CHARS,
    EXPLICIT_LOOKBEHIND_CHARS,
    FILE_ACCESS_CONFIDENCE,
    FILES_NOT_ACCESSED_WEIGHT,
    LOW_POSITION_THRESHOLD,
    LOW_POSITION_WEIGHT,
    MAX_IGNORE_CONFIDENCE,
    SEMANTIC_MAX_CONFIDENCE,
    SEMANTIC_THRESHOLD,
    TASK_TOPIC_CONFIDENCE,
    TASK_TOPIC_MIN_OVERLAP,
    TOPIC_MISMATCH_THRESHOLD,
    TOPIC_MISMATCH_WEIGHT,
)
from .models import (
    Detection,
    DetectionResults,
    NegativeSignal,
    NegativeSignalDetail,
    RecalledFact,
    SessionActivity,
)
from .similarity import containment, jaccard, similarity
from .triggers import ExplicitTrigger, build_triggers

logger = structlog.get_logger().bind(source="feedback_detector")

# Length-bounded so pathological input cannot blow up matching time
_FILE_PATTERNS = [
    re.compile(r"(?:^|[\s(,])([a-zA-Z0-9_-]{1,100}\.[a-zA-Z]{2,4})(?=[\s),;:]|\.(?:\s|$)|$)"),
    re.compile(
        r"(?:in |at |from |to |file |path )['\"]?([a-zA-Z0-9_/-]{1,200}\.[a-zA-Z]{2,4})['\"]?",
        re.IGNORECASE,
    ),
    re.compile(
        r"(?:src|lib|app|components|pages|utils|hooks|services|api)/[a-zA-Z0-9_/-]{1,200}\.[a-zA-Z]{2,4}",
        re.IGNORECASE,
    ),
]

_NON_WORD_RE = re.compile(r"[^\w\s]")

STOP_WORDS = frozenset(
    """
    the a an and or but in on at to for of with by from as is was are were be been being
    have has had do does did will would could should may might must shall can this that
    these those it its they them their we us our you your i me my he she him her his
    """.split()
)


# --- Text helpers ---


def normalize_file_name(name: str) -> str:
    """Lowercased basename without surrounding quotes."""
    name = (name or "").lower().strip().strip("'\"").strip()
    parts = [p for p in name.split("/") if p]
    return parts[-1] if parts else ""


def extract_file_references(text: str) -> list[str]:
    """File names mentioned in ``text``, normalized to lowercase basenames."""
    if not text:
        return []

    files: dict[str, None] = {}
    for pattern in _FILE_PATTERNS:
        for match in pattern.finditer(text):
            raw = match.group(1) if pattern.groups else match.group(0)
            if raw and len(raw) > 2:
                name = normalize_file_name(raw)
                if name:
                    files[name] = None
    return list(files)


def extract_topics(text: str) -> set[str]:
    """Keyword set: lowercase words longer than two characters, minus stop words."""
    if not text:
        return set()
    words = _NON_WORD_RE.sub(" ", text.lower()).split()
    return {w for w in words if len(w) > 2 and w not in STOP_WORDS}


def split_into_chunks(
    text: str, max_words: int = CHUNK_MAX_WORDS, overlap: int = CHUNK_OVERLAP_WORDS
) -> list[str]:
    """Overlapping word windows. Short text is a single chunk."""
    words = text.split()
    if len(words) <= max_words:
        return [text]

    step = max_words - overlap
    chunks = []
    for i in range(0, len(words), step):
        window = words[i : i + max_words]
        if len(window) >= overlap:
            chunks.append(" ".join(window))
    return chunks


def _sentence_around(text: str, start: int, end: int) -> str:
    """The sentence containing text[start:end], bounded by a fixed look-behind/ahead."""
    ctx_start = start
    for i in range(start - 1, max(0, start - EXPLICIT_LOOKBEHIND_CHARS) - 1, -1):
        if text[i] in ".\n":
            ctx_start = i + 1
            break
        ctx_start = i

    ctx_end = end
    for i in range(end, min(len(text), end + EXPLICIT_LOOKAHEAD_CHARS)):
        ctx_end = i + 1
        if text[i] in ".\n":
            break

    return text[ctx_start:ctx_end].strip()


def _best_matching_fact(
    context: str, facts: Sequence[RecalledFact], min_similarity: float = EXPLICIT_FACT_MIN_SIMILARITY
) -> Optional[RecalledFact]:
    best, best_score = None, 0.0
    for fact in facts:
        score = similarity(context, fact.text)
        if score > best_score and score > min_similarity:
            best, best_score = fact, score
    return best


# --- Detectors ---


def detect_explicit_references(
    response: str,
    facts: Sequence[RecalledFact],
    triggers: Optional[Sequence[ExplicitTrigger]] = None,
) -> list[Detection]:
    """Citation phrases attributed to the fact most similar to the citing sentence."""
    if not response or not facts:
        return []

    detections = []
    seen: set[str] = set()
    for trigger in triggers if triggers is not None else build_triggers():
        match = trigger.search(response)
        if not match:
            continue

        context = _sentence_around(response, match.start(), match.end())
        fact = _best_matching_fact(context, facts)
        if fact is None or fact.fact_id in seen:
            continue

        seen.add(fact.fact_id)
        detections.append(
            Detection(
                fact_id=fact.fact_id,
                detection_type=DetectionType.EXPLICIT_REFERENCE,
                confidence=EXPLICIT_CONFIDENCE,
                evidence={
                    "trigger": trigger.name,
                    "match": match.group(0),
                    "context": context[:EVIDENCE_PREVIEW_CHARS],
                },
            )
        )
    return detections


def detect_semantic_matches(
    response: str, facts: Sequence[RecalledFact], threshold: float = SEMANTIC_THRESHOLD
) -> list[Detection]:
    """Best chunk-to-fact similarity per fact, kept when at or above ``threshold``."""
    if not response or not facts:
        return []

    best: dict[str, Detection] = {}
    for chunk in split_into_chunks(response):
        for fact in facts:
            score = similarity(chunk, fact.text)
            if score < threshold:
                continue
            confidence = min(score * SEMANTIC_MAX_CONFIDENCE, SEMANTIC_MAX_CONFIDENCE)
            existing = best.get(fact.fact_id)
            if existing is None or confidence > existing.confidence:
                best[fact.fact_id] = Detection(
                    fact_id=fact.fact_id,
                    detection_type=DetectionType.SEMANTIC_MATCH,
                    confidence=confidence,
                    evidence={
                        "chunk": chunk[:EVIDENCE_PREVIEW_CHARS],
                        "fact_text": fact.text[:EVIDENCE_PREVIEW_CHARS],
                        "similarity": score,
                    },
                )
    return list(best.values())


def detect_behavioral_signals(
    activity: Optional[SessionActivity], facts: Sequence[RecalledFact]
) -> list[Detection]:
    """File-access and task-topic correlations.

    A fact can receive one detection of each kind. Both are floored at
    BEHAVIORAL_CONFIDENCE_BASE.
    """
    if activity is None or not facts:
        return []

    detections = []
    accessed = {normalize_file_name(f) for f in activity.files_accessed} - {""}
    if accessed:
        for fact in facts:
            mentioned = extract_file_references(fact.text)
            overlap = [f for f in mentioned if f in accessed]
            if overlap:
                detections.append(
                    Detection(
                        fact_id=fact.fact_id,
                        detection_type=DetectionType.FILE_ACCESS_CORRELATION,
                        confidence=max(BEHAVIORAL_CONFIDENCE_BASE, FILE_ACCESS_CONFIDENCE),
                        evidence={"files_in_fact": mentioned, "files_accessed": overlap},
                    )
                )

    tasks = [(desc, extract_topics(desc)) for desc in activity.task_descriptions()]
    tasks = [(desc, topics) for desc, topics in tasks if topics]
    if tasks:
        for fact in facts:
            fact_topics = extract_topics(fact.text)
            if not fact_topics:
                continue
            for desc, task_topics in tasks:
                overlap = jaccard(fact_topics, task_topics)
                if overlap > TASK_TOPIC_MIN_OVERLAP:
                    detections.append(
                        Detection(
                            fact_id=fact.fact_id,
                            detection_type=DetectionType.TASK_TOPIC_CORRELATION,
                            confidence=max(BEHAVIORAL_CONFIDENCE_BASE, TASK_TOPIC_CONFIDENCE * overlap),
                            evidence={
                                "task": desc[:100],
                                "fact_topics": sorted(fact_topics)[:5],
                                "task_topics": sorted(task_topics)[:5],
                                "overlap": overlap,
                            },
                        )
                    )
                    break

    return detections


def session_topics(activity: Optional[SessionActivity]) -> set[str]:
    """What the session was about, from its summary and task descriptions."""
    topics: set[str] = set()
    if activity is not None:
        topics |= extract_topics(activity.summary or "")
        for desc in activity.task_descriptions():
            topics |= extract_topics(desc)
    return topics


def detect_negative_signals(
    activity: Optional[SessionActivity],
    facts: Sequence[RecalledFact],
    used_fact_ids: set[str],
    conversation_text: Optional[str] = None,
) -> list[NegativeSignal]:
    """Reasons to believe facts without positive evidence were ignored."""
    if not facts:
        return []

    topics = session_topics(activity)
    # conversation topics: share of the fact's topics the response covers
    overlap_fn = jaccard
    if not topics and conversation_text:
        topics = extract_topics(conversation_text)
        overlap_fn = containment
    accessed = set()
    if activity is not None:
        accessed = {normalize_file_name(f) for f in activity.files_accessed} - {""}

    negatives = []
    for fact in facts:
        if fact.fact_id in used_fact_ids:
            continue

        reasons = []
        if fact.position > LOW_POSITION_THRESHOLD:
            reasons.append(
                NegativeSignalDetail(
                    type=NegativeSignalType.LOW_POSITION,
                    weight=LOW_POSITION_WEIGHT,
                    detail=f"Position {fact.position} > {LOW_POSITION_THRESHOLD}",
                )
            )

        if topics:
            overlap = overlap_fn(extract_topics(fact.text), topics)
            if overlap < TOPIC_MISMATCH_THRESHOLD:
                reasons.append(
                    NegativeSignalDetail(
                        type=NegativeSignalType.TOPIC_MISMATCH,
                        weight=TOPIC_MISMATCH_WEIGHT,
                        detail=f"Topic overlap {overlap:.1%} < {TOPIC_MISMATCH_THRESHOLD:.0%}",
                    )
                )

        fact_files = extract_file_references(fact.text)
        if fact_files and not any(f in accessed for f in fact_files):
            reasons.append(
                NegativeSignalDetail(
                    type=NegativeSignalType.FILES_NOT_ACCESSED,
                    weight=FILES_NOT_ACCESSED_WEIGHT,
                    detail=f"Fact mentions {len(fact_files)} files, none accessed",
                )
            )

        if reasons:
            negatives.append(
                NegativeSignal(
                    fact_id=fact.fact_id,
                    signals=reasons,
                    ignore_confidence=min(sum(r.weight for r in reasons), MAX_IGNORE_CONFIDENCE),
                )
            )
    return negatives


def run_detection_pipeline(
    conversation_text: Optional[str],
    session_activity: SessionActivity | dict | None,
    facts: Sequence[RecalledFact],
    config: Optional[DetectionConfig] = None,
    triggers: Optional[Sequence[ExplicitTrigger]] = None,
) -> DetectionResults:
    """Run every enabled detector whose evidence is present.

    Args:
        conversation_text: The consumer's output, needed by explicit and semantic detection.
        session_activity: Files touched, tasks completed and a summary, if known.
        facts: The session's recalled facts.
        config: Detector toggles and semantic threshold. Defaults to all enabled.
        triggers: Explicit trigger library. Defaults to built-ins plus config extras.
    """
    config = config or DetectionConfig()
    if isinstance(session_activity, dict):
        session_activity = SessionActivity.from_dict(session_activity)

    results = DetectionResults()
    if conversation_text:
        if config.explicit:
            if triggers is None:
                triggers = build_triggers(config.extra_triggers)
            results.explicit = detect_explicit_references(conversation_text, facts, triggers)
        if config.semantic:
            results.semantic = detect_semantic_matches(
                conversation_text, facts, config.semantic_threshold
            )

    if session_activity is not None and config.behavioral:
        results.behavioral = detect_behavioral_signals(session_activity, facts)

    results.negative = detect_negative_signals(
        session_activity, facts, results.used_fact_ids(), conversation_text
    )

    logger.debug(
        "feedback.detection_complete",
        facts=len(facts),
        explicit=len(results.explicit),
        semantic=len(results.semantic),
        behavioral=len(results.behavioral),
        negative=len(results.negative),
    )
    return results
