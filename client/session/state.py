"""
Lifecycle states for one recognition session.

IDLE -> CONNECTING -> AWAITING_FIRST_FRAME -> STREAMING -> CLOSING -> CLOSED

Any failure from a non-terminal state goes straight to CLOSED through the
shared teardown path.
"""
from enum import Enum


class SessionState(str, Enum):
    """
    Streaming session lifecycle.

    AWAITING_FIRST_FRAME and STREAMING are both "open": the connection is up
    and the chunker timer is running.
    """
    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    AWAITING_FIRST_FRAME = "AWAITING_FIRST_FRAME"  # open, Start frame not sent
    STREAMING = "STREAMING"                        # open, Start frame sent
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"

    @property
    def is_open(self) -> bool:
        return self in (SessionState.AWAITING_FIRST_FRAME, SessionState.STREAMING)

    @property
    def is_active(self) -> bool:
        return self not in (SessionState.IDLE, SessionState.CLOSED)
