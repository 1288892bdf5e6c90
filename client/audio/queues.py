# client/audio/queues.py
"""
Byte queue between irregular capture callbacks and fixed-size framing.

Requirements:
- Strict FIFO byte order; nothing lost, nothing duplicated
- take(n) is all-or-nothing: exactly n bytes or None
- Unbounded: if capture outpaces dispatch the queue grows (depth is logged,
  not enforced)
- Deterministic, synchronous behavior; callers serialize access on one loop
"""

from __future__ import annotations

from spec import bytes_to_seconds


class PcmByteQueue:
    """
    Ordered, mutable sequence of raw PCM bytes awaiting chunking.
    """

    def __init__(self) -> None:
        self._buf = bytearray()
        self.appended_bytes: int = 0
        self.taken_bytes: int = 0

    # -------------------------
    # Core queue operations
    # -------------------------

    def append(self, data: bytes) -> None:
        """Append bytes to the tail of the queue."""
        if not data:
            return
        self._buf += data
        self.appended_bytes += len(data)

    def take(self, n: int) -> bytes | None:
        """
        Remove exactly `n` bytes from the head.

        Returns None (and removes nothing) if fewer than n bytes are queued.
        """
        if n <= 0:
            raise ValueError("n must be > 0")
        if len(self._buf) < n:
            return None
        out = bytes(self._buf[:n])
        del self._buf[:n]
        self.taken_bytes += n
        return out

    def clear(self) -> int:
        """
        Drop all queued bytes.

        Returns the number of bytes discarded.
        """
        dropped = len(self._buf)
        self._buf.clear()
        return dropped

    # -------------------------
    # Introspection helpers
    # -------------------------

    def __len__(self) -> int:
        return len(self._buf)

    def is_empty(self) -> bool:
        """Check if the queue is empty."""
        return not self._buf

    def depth_seconds(self) -> float:
        """Queued audio duration in seconds (16kHz mono PCM16)."""
        return bytes_to_seconds(len(self._buf))

    def snapshot(self) -> dict[str, float | int]:
        """
        Lightweight snapshot for logging / metrics.
        """
        return {
            "queued_bytes": len(self._buf),
            "depth_s": self.depth_seconds(),
            "appended_bytes": self.appended_bytes,
            "taken_bytes": self.taken_bytes,
        }
