"""JSON file I/O at the storage boundary.

Reads never raise: they return a ``ReadResult`` holding either the parsed document or a
description of what went wrong. Writes go to a sibling temp file that is renamed into
place, and raise ``OSError`` on failure.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional


@dataclass(frozen=True)
class ReadResult:
    data: Any = None
    error: Optional[str] = None
    missing: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.missing


def read_json(path: str | Path) -> ReadResult:
    """Read and parse a JSON document."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ReadResult(missing=True)
    except OSError as e:
        return ReadResult(error=f"read failed: {e}")
    except UnicodeDecodeError as e:
        return ReadResult(error=f"not UTF-8: {e}")

    try:
        return ReadResult(data=json.loads(text))
    except ValueError as e:
        return ReadResult(error=f"invalid JSON: {e}")


def write_json_atomic(path: str | Path, payload: Any) -> None:
    """Write ``payload`` as pretty JSON, replacing ``path`` in one rename."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
