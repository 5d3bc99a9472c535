"""Phrases that show the consumer explicitly drew on recalled context."""

import re
from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(frozen=True)
class ExplicitTrigger:
    """A compiled citation pattern."""

    name: str
    pattern: re.Pattern

    @classmethod
    def compile(cls, name: str, source: str) -> "ExplicitTrigger":
        return cls(name=name, pattern=re.compile(source, re.IGNORECASE))

    def search(self, text: str) -> Optional[re.Match]:
        return self.pattern.search(text)


_BUILTIN_SOURCES = [
    # direct references
    ("based_on_context", r"based on the (recalled |session |)context"),
    ("according_to_memory", r"according to (the |my )?(recalled )?memory"),
    ("from_session_context", r"from the session context"),
    ("from_context", r"from the (recalled |)context"),
    ("as_noted_in_context", r"as (mentioned|noted|stated|indicated) (in|from) (the )?(recalled )?context"),
    ("context_states", r"the (recalled |session )?(fact|memory|context) (shows|indicates|mentions|states)"),
    ("referring_to_context", r"referring to the (recalled |session )?context"),
    # bracketed
    ("bracket_from_context", r"\[from context\]"),
    ("bracket_context", r"\[context\]"),
    ("bracket_recalled", r"\[recalled\]"),
    ("bracket_memory", r"\[memory\]"),
    ("paren_from_context", r"\(from context\)"),
    ("paren_from_memory", r"\(from memory\)"),
    # headers
    ("header_context_reference", r"context reference:"),
    ("header_recalled_context", r"recalled context:"),
    ("header_previous_sessions", r"from previous sessions?:"),
    # acknowledgements
    ("i_recall", r"I recall that"),
    ("i_remember", r"I remember that"),
    ("learned", r"from what I've learned"),
    ("prior_knowledge", r"based on prior knowledge"),
    ("drawing_from_context", r"drawing from (the |)context"),
    ("context_tells", r"the context (tells|shows|indicates|mentions) (me |us |)"),
]

BUILTIN_TRIGGERS: tuple[ExplicitTrigger, ...] = tuple(
    ExplicitTrigger.compile(name, source) for name, source in _BUILTIN_SOURCES
)


def build_triggers(extra: Iterable[str] | None = None) -> list[ExplicitTrigger]:
    """Built-in triggers followed by ``extra`` regex sources.

    Raises ``re.error`` for an invalid extra pattern.
    """
    triggers = list(BUILTIN_TRIGGERS)
    for i, source in enumerate(extra or []):
        triggers.append(ExplicitTrigger.compile(f"custom_{i}", source))
    return triggers
