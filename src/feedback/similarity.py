"""Set-overlap text similarity used by usage detection."""

import re
from collections.abc import Iterable

_PUNCT_RE = re.compile(r"[^\w\s]")
_WS_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    text = _PUNCT_RE.sub("", (text or "").lower())
    return _WS_RE.sub(" ", text).strip()


def tokenize(text: str) -> set[str]:
    """Whitespace token set of the normalized text."""
    return {t for t in normalize_text(text).split(" ") if t}


def jaccard(set_a: Iterable[str], set_b: Iterable[str]) -> float:
    """Jaccard index of two token sets.

    Two empty sets are identical (1.0); exactly one empty set gives 0.0.
    """
    a, b = set(set_a), set(set_b)
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def similarity(a: str, b: str) -> float:
    """Jaccard similarity of two strings after normalization. Range [0, 1]."""
    return jaccard(tokenize(a), tokenize(b))


def containment(part: Iterable[str], whole: Iterable[str]) -> float:
    """Share of ``part`` found in ``whole``. An empty ``part`` gives 0.0."""
    a, b = set(part), set(whole)
    if not a:
        return 0.0
    return len(a & b) / len(a)
