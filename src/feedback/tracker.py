"""Recall session tracking: which facts were handed to the consumer, per session.

One current session file lives at ``<project>/.claude/feedback-sessions/.recall-session.json``.
Saving a session with a different id first renames the current file to
``.recall-session-<id prefix>-<epoch ms>.json``; archives are swept after a retention
window.
"""

import json
import re
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from shared_types import FactType, QueryType

from .constants import (
    ARCHIVE_ID_CHARS,
    ARCHIVE_PREFIX,
    DEFAULT_FACT_TYPES,
    DEFAULT_RECALL_BUDGET,
    DEFAULT_RECALL_LIMIT,
    SESSION_DATA_RETENTION_DAYS,
    SESSION_DIR,
    SESSION_FILE,
)
from .models import (
    RecalledFact,
    RecallParameters,
    RecallParams,
    RecallSession,
    SessionContext,
    utcnow,
)
from .storage import read_json, write_json_atomic

logger = structlog.get_logger().bind(source="feedback_tracker")

_GIT_REF_RE = re.compile(r"ref: refs/heads/(.+)")

# Checked in order; the first dependency present wins
_NODE_FRAMEWORKS = [
    ("expo", "expo-mobile"),
    ("expo-cli", "expo-mobile"),
    ("next", "nextjs"),
    ("react", "react"),
    ("express", "express-api"),
    ("fastify", "fastify-api"),
]
_PYTHON_MANIFESTS = ("pyproject.toml", "requirements.txt", "setup.py")
_PYTHON_FRAMEWORKS = [
    ("django", "django"),
    ("fastapi", "fastapi-api"),
    ("flask", "flask-api"),
]


class LookupStatus(StrEnum):
    FOUND = "found"
    MISSING = "missing"
    CORRUPT = "corrupt"
    MISMATCH = "mismatch"


@dataclass
class SessionLookup:
    session: Optional[RecallSession]
    status: LookupStatus
    detail: str = ""


@dataclass
class SessionStats:
    current_session: Optional[RecallSession] = None
    archived_sessions: int = 0
    total_facts_tracked: int = 0
    oldest_session: Optional[str] = None
    newest_session: Optional[str] = None


# --- Context detection ---


def detect_branch(project_dir: Path) -> Optional[str]:
    """Current git branch from .git/HEAD, None when detached or not a repo."""
    git_path = project_dir / ".git"
    try:
        if git_path.is_file():
            # worktrees and submodules: ".git" holds "gitdir: <path>"
            pointer = git_path.read_text(encoding="utf-8").strip()
            if not pointer.startswith("gitdir:"):
                return None
            git_path = (project_dir / pointer.split(":", 1)[1].strip()).resolve()
        head = (git_path / "HEAD").read_text(encoding="utf-8").strip()
    except (OSError, ValueError):
        return None
    match = _GIT_REF_RE.match(head)
    return match.group(1) if match else None


def detect_project_type(project_dir: Path) -> Optional[str]:
    """Classify the project from its manifest files.

    Node frameworks are checked most-specific first so that a meta-framework wins over
    the library it is built on. Python manifests take precedence over package.json.
    """
    project_type = None

    package_json = project_dir / "package.json"
    if package_json.exists():
        try:
            pkg = json.loads(package_json.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            pkg = {}
        if not isinstance(pkg, dict):
            pkg = {}
        deps = {}
        for section in ("dependencies", "devDependencies"):
            if isinstance(pkg.get(section), dict):
                deps.update(pkg[section])
        project_type = next((label for dep, label in _NODE_FRAMEWORKS if dep in deps), "nodejs")

    manifests = [project_dir / name for name in _PYTHON_MANIFESTS if (project_dir / name).exists()]
    if manifests:
        text = ""
        for manifest in manifests:
            try:
                text += manifest.read_text(encoding="utf-8", errors="replace").lower()
            except OSError:
                continue
        project_type = next(
            (label for dep, label in _PYTHON_FRAMEWORKS if re.search(rf"\b{dep}\b", text)),
            "python",
        )

    return project_type


# --- Pure session operations ---


def _fact_value(fact: Any, *names: str, default=None):
    for name in names:
        value = fact.get(name) if isinstance(fact, Mapping) else getattr(fact, name, None)
        if value not in (None, ""):
            return value
    return default


def estimate_tokens(text: str) -> int:
    """Whitespace word count as a token proxy."""
    return len((text or "").split())


def add_recalled_facts(session: RecallSession, facts: Optional[Iterable[Any]]) -> RecallSession:
    """Return a new session with ``facts`` appended at the next positions.

    Accepts backend ``Memory`` objects or mappings. A fact without an id gets
    ``unknown-<index>``, where index is its zero-based slot in the session.
    """
    facts = list(facts or [])
    if not facts:
        return session

    start = len(session.facts_recalled)
    appended = []
    for offset, fact in enumerate(facts):
        index = start + offset
        fact_id = _fact_value(fact, "id", "fact_id", "factId")
        appended.append(
            RecalledFact(
                fact_id=str(fact_id) if fact_id is not None else f"unknown-{index}",
                text=_fact_value(fact, "text", default=""),
                fact_type=_fact_value(fact, "fact_type", "factType", default=FactType.OTHER),
                score=float(_fact_value(fact, "score", default=0.0)),
                position=index + 1,
            )
        )

    recalled = [*session.facts_recalled, *appended]
    return session.model_copy(
        update={
            "facts_recalled": recalled,
            "total_facts": len(recalled),
            "total_tokens": session.total_tokens + sum(estimate_tokens(f.text) for f in appended),
        }
    )


def _archive_key(session_id: str) -> str:
    return re.sub(r"[^\w-]", "_", session_id)[:ARCHIVE_ID_CHARS]


class SessionTracker:
    """File-backed recall session store for one project."""

    def __init__(self, project_dir: str | Path):
        self.project_dir = Path(project_dir).expanduser()
        self.session_dir = self.project_dir.joinpath(*SESSION_DIR)
        self.session_path = self.session_dir / SESSION_FILE

    def create_session(
        self,
        session_id: str,
        query: str = "",
        query_type: QueryType | str = QueryType.FIXED,
        limit: Optional[int] = None,
        budget: Optional[str] = None,
        fact_types: Optional[list[str]] = None,
        time_window: Optional[str] = None,
        recent_files: Optional[list[str]] = None,
    ) -> RecallSession:
        """Build an empty session with recall metadata and detected project context."""
        return RecallSession(
            session_id=session_id,
            started_at=utcnow(),
            project=self.project_dir.name,
            recall=RecallParams(
                query=query or "",
                query_type=query_type or QueryType.FIXED,
                parameters=RecallParameters(
                    limit=limit or DEFAULT_RECALL_LIMIT,
                    budget=budget or DEFAULT_RECALL_BUDGET,
                    fact_types=list(fact_types or DEFAULT_FACT_TYPES),
                    time_window=time_window,
                ),
                context=SessionContext(
                    branch=detect_branch(self.project_dir),
                    recent_files=list(recent_files or []),
                    project_type=detect_project_type(self.project_dir),
                ),
            ),
            facts_recalled=[],
        )

    def save_session(self, session: RecallSession) -> Path:
        """Persist ``session`` as the current session, archiving a different one first."""
        self.session_dir.mkdir(parents=True, exist_ok=True)

        current = read_json(self.session_path)
        if current.ok and isinstance(current.data, dict):
            existing_id = current.data.get("sessionId")
            if existing_id and existing_id != session.session_id:
                archive = self.session_dir / (
                    f"{ARCHIVE_PREFIX}{_archive_key(existing_id)}-{int(time.time() * 1000)}.json"
                )
                self.session_path.rename(archive)
                logger.info("feedback.session_archived", session_id=existing_id, path=archive.name)
        elif current.error:
            logger.warning("feedback.session_overwrite_unreadable", error=current.error)

        write_json_atomic(self.session_path, session.to_json_dict())
        logger.debug(
            "feedback.session_saved", session_id=session.session_id, facts=session.total_facts
        )
        return self.session_path

    def lookup_session(self, session_id: Optional[str] = None) -> SessionLookup:
        """Load the current session and say why when there is none."""
        result = read_json(self.session_path)
        if result.missing:
            return SessionLookup(None, LookupStatus.MISSING)
        if not result.ok:
            return SessionLookup(None, LookupStatus.CORRUPT, result.error or "")

        try:
            session = RecallSession.model_validate(result.data)
        except ValidationError as e:
            return SessionLookup(None, LookupStatus.CORRUPT, f"{e.error_count()} validation errors")

        if session_id and session.session_id != session_id:
            return SessionLookup(None, LookupStatus.MISMATCH, f"current is {session.session_id}")
        return SessionLookup(session, LookupStatus.FOUND)

    def load_session(self, session_id: Optional[str] = None) -> Optional[RecallSession]:
        """Current session, or None when absent, unreadable, invalid or for another id."""
        return self.lookup_session(session_id).session

    def load_archived_session(self, session_id: str) -> Optional[RecallSession]:
        """Most recent archived snapshot for ``session_id``, if any."""
        if not session_id or not self.session_dir.is_dir():
            return None

        prefix = f"{ARCHIVE_PREFIX}{_archive_key(session_id)}-"
        candidates = sorted(
            (p for p in self.session_dir.glob(f"{prefix}*.json")),
            key=lambda p: p.name,
            reverse=True,
        )
        for path in candidates:
            result = read_json(path)
            if not result.ok:
                continue
            try:
                session = RecallSession.model_validate(result.data)
            except ValidationError:
                continue
            if session.session_id == session_id:
                return session
        return None

    def track_recall(self, session_id: str, query: str, facts: Iterable[Any], **params) -> RecallSession:
        """Create, fill and save a session in one step."""
        session = self.create_session(session_id, query=query, **params)
        session = add_recalled_facts(session, facts)
        self.save_session(session)
        return session

    def _archived_files(self) -> list[Path]:
        if not self.session_dir.is_dir():
            return []
        return [
            p
            for p in self.session_dir.iterdir()
            if p.name.startswith(ARCHIVE_PREFIX) and p.name.endswith(".json") and p.is_file()
        ]

    def cleanup_old_sessions(self, max_age_days: int = SESSION_DATA_RETENTION_DAYS) -> int:
        """Delete archived session files older than ``max_age_days``. Returns count deleted."""
        cutoff = time.time() - max_age_days * 86400
        deleted = 0
        for path in self._archived_files():
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    deleted += 1
            except OSError as e:
                logger.warning("feedback.session_cleanup_failed", path=path.name, error=str(e))

        if deleted:
            logger.info("feedback.sessions_cleaned", deleted=deleted, max_age_days=max_age_days)
        return deleted

    def get_session_stats(self) -> SessionStats:
        stats = SessionStats()

        current = self.load_session()
        if current:
            stats.current_session = current
            stats.total_facts_tracked += current.total_facts
            stats.oldest_session = stats.newest_session = current.started_at.isoformat()

        for path in self._archived_files():
            stats.archived_sessions += 1
            result = read_json(path)
            if not result.ok:
                continue
            try:
                session = RecallSession.model_validate(result.data)
            except ValidationError:
                continue
            stats.total_facts_tracked += session.total_facts
            started = session.started_at.isoformat()
            if not stats.oldest_session or started < stats.oldest_session:
                stats.oldest_session = started
            if not stats.newest_session or started > stats.newest_session:
                stats.newest_session = started

        return stats
