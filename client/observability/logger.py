"""
JSONL event logger.

- One JSON object per line on stdout
- No buffering, no batching
- Stamps ts_ms (wall clock) when the caller did not
- Never raises: logging must not take a recognition session down
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, Mapping, Callable


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event to stdout.

    The caller supplies event_type and any session context
    (VoiceSession.log_context()); ts_ms is added if missing.
    Non-JSON values (exceptions, enums, bytes) are rendered with repr().
    """
    record: dict[str, Any] = {"ts_ms": int(time.time() * 1000)}
    record.update(event)

    try:
        line = json.dumps(record, ensure_ascii=False, separators=(",", ":"), default=repr)
    except (TypeError, ValueError) as e:
        # Last-resort fallback (e.g. circular structures)
        fallback: dict[str, Any] = {
            "ts_ms": record.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
