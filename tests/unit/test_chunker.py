# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio

import pytest

from audio.chunker import FrameChunker
from spec import AUDIO_BYTES_PER_FRAME_PCM


def _pattern(n_frames: int, extra: int = 0) -> bytes:
    size = n_frames * AUDIO_BYTES_PER_FRAME_PCM + extra
    return bytes(i % 251 for i in range(size))


# ---------------------------------------------------------------------
# Manual ticks
# ---------------------------------------------------------------------

def test_tick_emits_exact_quanta_in_order() -> None:
    async def main() -> tuple[list[bytes], bool]:
        sent: list[bytes] = []

        async def on_frame(chunk: bytes) -> None:
            sent.append(chunk)

        chunker = FrameChunker(on_frame=on_frame)
        data = _pattern(2, extra=300)
        chunker.append(data[:1000])
        chunker.append(data[1000:])

        assert await chunker.tick()
        assert await chunker.tick()
        starved = await chunker.tick()
        assert b"".join(sent) == data[: 2 * AUDIO_BYTES_PER_FRAME_PCM]
        return sent, starved

    sent, starved = asyncio.run(main())

    assert [len(c) for c in sent] == [AUDIO_BYTES_PER_FRAME_PCM] * 2
    assert starved is False


def test_discard_drops_partial_tail() -> None:
    async def main() -> int:
        async def on_frame(chunk: bytes) -> None:  # pylint: disable=unused-argument
            return None

        chunker = FrameChunker(on_frame=on_frame)
        chunker.append(_pattern(1, extra=640))
        await chunker.tick()
        return chunker.discard()

    assert asyncio.run(main()) == 640


def test_invalid_construction() -> None:
    async def on_frame(chunk: bytes) -> None:  # pylint: disable=unused-argument
        return None

    with pytest.raises(ValueError):
        FrameChunker(on_frame=on_frame, frame_bytes=0)
    with pytest.raises(ValueError):
        FrameChunker(on_frame=on_frame, interval_s=0)


# ---------------------------------------------------------------------
# Timer
# ---------------------------------------------------------------------

def test_timer_drains_queue_then_stops() -> None:
    async def main() -> tuple[list[bytes], bool]:
        sent: list[bytes] = []

        async def on_frame(chunk: bytes) -> None:
            sent.append(chunk)

        chunker = FrameChunker(on_frame=on_frame, interval_s=0.002)
        chunker.append(_pattern(3))
        chunker.start()
        for _ in range(200):
            if len(sent) == 3:
                break
            await asyncio.sleep(0.002)
        await chunker.stop()
        return sent, chunker.running

    sent, running = asyncio.run(main())

    assert len(sent) == 3
    assert running is False


def test_stop_waits_for_in_flight_frame() -> None:
    async def main() -> list[str]:
        trace: list[str] = []
        entered = asyncio.Event()

        async def on_frame(chunk: bytes) -> None:  # pylint: disable=unused-argument
            trace.append("begin")
            entered.set()
            await asyncio.sleep(0.01)
            trace.append("end")

        chunker = FrameChunker(on_frame=on_frame, interval_s=0.001)
        chunker.append(_pattern(5))
        chunker.start()
        await entered.wait()
        await chunker.stop()
        trace.append("stopped")
        return trace

    trace = asyncio.run(main())

    assert trace == ["begin", "end", "stopped"]


def test_stop_without_start_is_noop() -> None:
    async def main() -> None:
        async def on_frame(chunk: bytes) -> None:  # pylint: disable=unused-argument
            return None

        chunker = FrameChunker(on_frame=on_frame)
        await chunker.stop()
        chunker.cancel()

    asyncio.run(main())
