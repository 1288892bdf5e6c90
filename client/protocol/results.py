# client/protocol/results.py
"""
Inbound IAT message decoding.

Wire shape (outer envelope):

    {"header": {"code": 0, "message": "success", "sid": "..", "status": 1},
     "payload": {"result": {"status": 1, "text": "<base64 of inner JSON>"}}}

Inner JSON (after base64 + UTF-8 decode):

    {"sn": 3, "ls": false, "pgs": "rpl", "rg": [1, 2],
     "ws": [{"cw": [{"w": "你"}, ...]}, {"cw": [{"w": "好"}]}]}

The first candidate of every word segment is authoritative.

Terminal message: inner `ls` true, or status 2 in header or result.

Failure rules:
- header.code != 0 is NOT a decode failure; it decodes fine and the caller
  treats it as a fatal ProtocolError.
- Bad JSON / bad base64 / wrong shapes raise MalformedMessage for that one
  message; `terminal` is set if the envelope was still readable and said
  status 2.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, replace
from typing import Any

from errors import MalformedMessage
from spec import IAT_CODE_OK, PGS_REPLACE

_STATUS_LAST = 2


@dataclass(frozen=True)
class RecognitionResult:
    """One decoded inner result."""
    words: tuple[str, ...]
    is_last: bool = False
    sn: int | None = None
    pgs: str | None = None
    rg: tuple[int, int] | None = None

    @property
    def text(self) -> str:
        return "".join(self.words)


@dataclass(frozen=True)
class DecodedMessage:
    """One decoded server push."""
    code: int
    message: str = ""
    sid: str | None = None
    status: int | None = None
    result: RecognitionResult | None = None

    @property
    def is_error(self) -> bool:
        return self.code != IAT_CODE_OK

    @property
    def is_terminal(self) -> bool:
        if self.status == _STATUS_LAST:
            return True
        return self.result is not None and self.result.is_last


# -------------------------
# Helpers
# -------------------------

def _as_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _as_dict(value: Any, what: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedMessage(f"{what} is not an object")
    return value


def _first_candidate(segment: Any) -> str:
    if not isinstance(segment, dict):
        return ""
    cw = segment.get("cw")
    if not isinstance(cw, list) or not cw or not isinstance(cw[0], dict):
        return ""
    w = cw[0].get("w", "")
    return w if isinstance(w, str) else str(w)


# -------------------------
# Decoding
# -------------------------

def decode_result_text(text: Any) -> RecognitionResult:
    """
    Decode `payload.result.text`: base64 -> UTF-8 -> JSON -> RecognitionResult.

    Raises:
        MalformedMessage on any decoding or shape failure.
    """
    if not isinstance(text, str):
        raise MalformedMessage("result.text is not a string")

    try:
        decoded = base64.b64decode(text, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise MalformedMessage(f"result.text is not base64 UTF-8: {e}") from e

    try:
        inner = json.loads(decoded)
    except ValueError as e:
        raise MalformedMessage(f"result.text is not JSON: {e}") from e

    if not isinstance(inner, dict):
        raise MalformedMessage("inner result is not an object")

    ws = inner.get("ws", [])
    if not isinstance(ws, list):
        raise MalformedMessage("inner result 'ws' is not a list")

    rg_raw = inner.get("rg")
    rg: tuple[int, int] | None = None
    if isinstance(rg_raw, list) and len(rg_raw) == 2:
        lo, hi = _as_int(rg_raw[0]), _as_int(rg_raw[1])
        if lo is not None and hi is not None:
            rg = (lo, hi)

    pgs = inner.get("pgs")
    return RecognitionResult(
        words=tuple(_first_candidate(seg) for seg in ws),
        is_last=inner.get("ls") is True,
        sn=_as_int(inner.get("sn")),
        pgs=pgs if isinstance(pgs, str) else None,
        rg=rg,
    )


def decode_message(raw: str | bytes) -> DecodedMessage:
    """
    Decode one inbound message.

    Raises:
        MalformedMessage if the envelope or inner payload cannot be decoded.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedMessage(f"envelope is not JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedMessage("envelope is not an object")

    header = _as_dict(data.get("header"), "header")
    code = _as_int(header.get("code"))
    if code is None:
        raise MalformedMessage("header.code missing or not an integer")

    header_status = _as_int(header.get("status"))
    message = header.get("message")
    sid = header.get("sid")
    base = DecodedMessage(
        code=code,
        message=message if isinstance(message, str) else "",
        sid=sid if isinstance(sid, str) else None,
        status=header_status,
    )
    # Provider errors win over whatever the payload looks like
    if base.is_error:
        return base

    payload = _as_dict(data.get("payload"), "payload")
    result = _as_dict(payload.get("result"), "payload.result")
    result_status = _as_int(result.get("status"))
    if _STATUS_LAST in (header_status, result_status):
        base = replace(base, status=_STATUS_LAST)
    if "text" not in result:
        return base

    try:
        recognition = decode_result_text(result["text"])
    except MalformedMessage as e:
        raise MalformedMessage(e.reason, terminal=base.is_terminal) from e

    return replace(base, result=recognition)


# -------------------------
# Transcript accumulation
# -------------------------

class Transcript:
    """
    Ordered accumulation of decoded results.

    - Results append in arrival order (keyed by `sn` when present).
    - A result with pgs == "rpl" and rg == [a, b] first removes the earlier
      results numbered a..b (the provider's dynamic correction).
    """

    def __init__(self) -> None:
        self._parts: dict[int, str] = {}
        self._next_auto_sn = 1

    def apply(self, result: RecognitionResult) -> str:
        """Fold one result in. Returns the full transcript so far."""
        if result.pgs == PGS_REPLACE and result.rg is not None:
            lo, hi = result.rg
            for sn in [k for k in self._parts if lo <= k <= hi]:
                del self._parts[sn]

        sn = result.sn
        if sn is None:
            sn = self._next_auto_sn
        self._next_auto_sn = max(self._next_auto_sn, sn + 1)
        self._parts[sn] = result.text
        return self.text

    @property
    def text(self) -> str:
        return "".join(self._parts[k] for k in sorted(self._parts))
