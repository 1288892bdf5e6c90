"""
Voice session container.

- One VoiceSession per start() call; never shared between sessions
- Owns the connection handle, capture handle, chunker (byte queue),
  frame sequence counter, first-frame flag, and accumulated transcript
- Owned and mutated by the streaming recognizer
- NOT a state machine; contains no protocol logic
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from audio.chunker import FrameChunker
from protocol.results import Transcript
from session.state import SessionState
from spec import SEQ_NUM_START


def _new_session_id() -> str:
    return f"iat_{uuid4().hex[:12]}"


@dataclass
class VoiceSession:
    """Mutable runtime container for a single recognition session."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    session_id: str = field(default_factory=_new_session_id)
    state: SessionState = SessionState.IDLE

    # ------------------------------------------------------------------
    # Protocol bookkeeping
    # ------------------------------------------------------------------

    seq: int = SEQ_NUM_START
    first_frame_sent: bool = False
    final_frame_sent: bool = False
    frames_sent: int = 0
    transcript: Transcript = field(default_factory=Transcript)

    # ------------------------------------------------------------------
    # Exclusively owned resources
    # ------------------------------------------------------------------

    websocket: Any = None  # Type: websockets ClientConnection in practice
    capture: Any = None    # Type: audio.capture.AudioCapture
    chunker: FrameChunker | None = None

    # ------------------------------------------------------------------
    # Wiring helpers
    # ------------------------------------------------------------------

    def attach_websocket(self, websocket: Any) -> None:
        self.websocket = websocket

    def attach_capture(self, capture: Any) -> None:
        self.capture = capture

    def attach_chunker(self, chunker: FrameChunker) -> None:
        self.chunker = chunker

    # ------------------------------------------------------------------
    # Sequencing
    # ------------------------------------------------------------------

    def next_seq(self) -> int:
        """Return the current sequence number and advance the counter."""
        seq = self.seq
        self.seq += 1
        return seq

    def reset_protocol(self) -> None:
        """Reset first-frame flag and sequence counter (teardown)."""
        self.seq = SEQ_NUM_START
        self.first_frame_sent = False

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session."""
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "seq": self.seq,
        }
