# client/protocol/frames.py
"""
Outbound IAT frame encoding.

Three frame variants, tagged by status:

- Start (status 0): header + full recognition parameters + first audio chunk
- Continuation (status 1): header + next audio chunk
- Final (status 2): header + empty or residual audio; end of input

Shapes (JSON):

    {"header": {"app_id": .., "status": 0},
     "parameter": {"iat": {"domain", "language", "accent", "eos", "vinfo": 1,
                           "dwa": "wpgs",
                           "result": {"encoding": "utf8", "compress": "raw",
                                      "format": "json"}}},
     "payload": {"audio": {"encoding": "raw", "sample_rate": 16000,
                           "channels": 1, "bit_depth": 16, "seq": 0,
                           "status": 0, "audio": <base64>}}}

Continuation and Final omit "parameter".

Session-level ordering (exactly one Start first, exactly one Final last) is
enforced by the streaming adapter; this module enforces per-frame rules.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from errors import IatError
from spec import (
    AUDIO_BIT_DEPTH,
    AUDIO_BYTES_PER_FRAME_PCM,
    AUDIO_CHANNELS,
    AUDIO_SAMPLE_RATE_HZ,
    IAT_AUDIO_ENCODING,
    IAT_DEFAULT_ACCENT,
    IAT_DEFAULT_DOMAIN,
    IAT_DEFAULT_EOS_MS,
    IAT_DEFAULT_LANGUAGE,
    IAT_DYNAMIC_CORRECTION,
    SEQ_NUM_MAX,
    SEQ_NUM_START,
)


# -------------------------
# Exceptions
# -------------------------

class FrameEncodingError(IatError):
    """Base class for outbound frame errors."""


class InvalidFrameLength(FrameEncodingError):
    """
    Raised when an audio payload does not match the framing contract.

    Start/Continuation frames carry exactly one quantum; Final carries at
    most one.
    """


class InvalidSequenceNumber(FrameEncodingError):
    """Raised when seq is outside [SEQ_NUM_START, SEQ_NUM_MAX]."""


# -------------------------
# Types
# -------------------------

class FrameStatus(IntEnum):
    FIRST = 0
    CONTINUE = 1
    LAST = 2


@dataclass(frozen=True)
class IatParameters:
    """Recognition parameters carried by the Start frame only."""
    domain: str = IAT_DEFAULT_DOMAIN
    language: str = IAT_DEFAULT_LANGUAGE
    accent: str = IAT_DEFAULT_ACCENT
    eos_ms: int = IAT_DEFAULT_EOS_MS

    def to_wire(self) -> dict[str, Any]:
        return {
            "iat": {
                "domain": self.domain,
                "language": self.language,
                "accent": self.accent,
                "eos": int(self.eos_ms),
                "vinfo": 1,
                "dwa": IAT_DYNAMIC_CORRECTION,
                "result": {
                    "encoding": "utf8",
                    "compress": "raw",
                    "format": "json",
                },
            }
        }


@dataclass(frozen=True)
class Frame:
    """One immutable outbound envelope."""
    app_id: str
    status: FrameStatus
    seq: int
    audio: bytes
    parameters: IatParameters | None = None

    def to_wire(self) -> dict[str, Any]:
        msg: dict[str, Any] = {
            "header": {"app_id": self.app_id, "status": int(self.status)},
        }
        if self.parameters is not None:
            msg["parameter"] = self.parameters.to_wire()
        msg["payload"] = {
            "audio": {
                "encoding": IAT_AUDIO_ENCODING,
                "sample_rate": AUDIO_SAMPLE_RATE_HZ,
                "channels": AUDIO_CHANNELS,
                "bit_depth": AUDIO_BIT_DEPTH,
                "seq": self.seq,
                "status": int(self.status),
                "audio": base64.b64encode(self.audio).decode("ascii"),
            }
        }
        return msg

    def encode(self) -> str:
        return json.dumps(self.to_wire(), ensure_ascii=False, separators=(",", ":"))


# -------------------------
# Validation
# -------------------------

def _check_seq(seq: int) -> None:
    if seq < SEQ_NUM_START or seq > SEQ_NUM_MAX:
        raise InvalidSequenceNumber(f"Invalid seq: {seq}")


def _check_full_chunk(pcm_bytes: bytes) -> None:
    if len(pcm_bytes) != AUDIO_BYTES_PER_FRAME_PCM:
        raise InvalidFrameLength(
            f"PCM length {len(pcm_bytes)} != {AUDIO_BYTES_PER_FRAME_PCM}"
        )


# -------------------------
# Builders
# -------------------------

def start_frame(
    *,
    app_id: str,
    parameters: IatParameters,
    pcm_bytes: bytes,
    seq: int = SEQ_NUM_START,
) -> Frame:
    _check_seq(seq)
    _check_full_chunk(pcm_bytes)
    return Frame(
        app_id=app_id,
        status=FrameStatus.FIRST,
        seq=seq,
        audio=pcm_bytes,
        parameters=parameters,
    )


def continuation_frame(*, app_id: str, seq: int, pcm_bytes: bytes) -> Frame:
    _check_seq(seq)
    _check_full_chunk(pcm_bytes)
    return Frame(app_id=app_id, status=FrameStatus.CONTINUE, seq=seq, audio=pcm_bytes)


def final_frame(*, app_id: str, seq: int, pcm_bytes: bytes = b"") -> Frame:
    _check_seq(seq)
    if len(pcm_bytes) > AUDIO_BYTES_PER_FRAME_PCM:
        raise InvalidFrameLength(
            f"Final PCM length {len(pcm_bytes)} > {AUDIO_BYTES_PER_FRAME_PCM}"
        )
    return Frame(app_id=app_id, status=FrameStatus.LAST, seq=seq, audio=pcm_bytes)
