"""
Frame chunker: irregular capture output -> fixed 1280-byte frames every 40ms.

Contract:
- append(bytes) enqueues at the tail (unbounded)
- Each tick dequeues exactly one AUDIO_BYTES_PER_FRAME_PCM quantum from the
  head and awaits on_frame(chunk); a tick with fewer bytes queued is a no-op
  (queue starvation is normal at stream start/end and is not reported)
- Partial frames are never emitted; leftovers are discarded by the owner at
  teardown via discard()

Timing:
- One asyncio task ticks at a fixed cadence, drift-corrected against the
  loop clock, so a slow send does not shift every later tick.
- The capture side posts appends onto the same loop, which serializes
  append and dequeue without a lock.
- stop() lets an in-flight tick finish before cancelling, so a frame is
  never half-sent; cancel() does not wait.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from audio.queues import PcmByteQueue
from spec import AUDIO_BYTES_PER_FRAME_PCM, FRAME_INTERVAL_S


class FrameChunker:
    """Slices the byte queue into frame payloads on a fixed timer."""

    def __init__(
        self,
        *,
        on_frame: Callable[[bytes], Awaitable[None]],
        frame_bytes: int = AUDIO_BYTES_PER_FRAME_PCM,
        interval_s: float = FRAME_INTERVAL_S,
    ) -> None:
        if frame_bytes <= 0:
            raise ValueError("frame_bytes must be > 0")
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")

        self._on_frame = on_frame
        self._frame_bytes = frame_bytes
        self._interval_s = interval_s
        self.queue = PcmByteQueue()

        self._task: asyncio.Task[None] | None = None
        self._tick_lock = asyncio.Lock()
        self._stopping = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def append(self, data: bytes) -> None:
        self.queue.append(data)

    async def tick(self) -> bool:
        """
        Dispatch at most one frame.

        Returns True if a frame was handed to on_frame, False on starvation.
        """
        chunk = self.queue.take(self._frame_bytes)
        if chunk is None:
            return False
        await self._on_frame(chunk)
        return True

    def start(self) -> None:
        """Start the periodic tick task (no-op if already running)."""
        if self.running:
            return
        self._stopping = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        """Stop ticking immediately, without waiting. Idempotent."""
        task = self._task
        self._task = None
        self._stopping = True
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def stop(self) -> None:
        """Stop ticking once any in-flight tick has finished. Idempotent."""
        task = self._task
        self._task = None
        self._stopping = True
        if task is None or task.done() or task is asyncio.current_task():
            return

        async with self._tick_lock:
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def discard(self) -> int:
        """Clear whatever is still queued. Returns bytes discarded."""
        return self.queue.clear()

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time() + self._interval_s
        while True:
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            next_at += self._interval_s
            async with self._tick_lock:
                if self._stopping:
                    return
                await self.tick()
