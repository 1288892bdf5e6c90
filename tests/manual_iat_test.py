# tests/manual_iat_test.py
"""
Manual end-to-end check against the live service.

    python tests/manual_iat_test.py --seconds 5            # microphone
    python tests/manual_iat_test.py --wav hello.wav        # file, paced at 40ms
    python tests/manual_iat_test.py --wav hello.wav --raasr  # recorded-file API

Credentials come from the environment (.env is loaded).
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass, field
from typing import Callable

import numpy as np
from dotenv import load_dotenv

from adapters.asr.iat_streaming import IatStreamingRecognizer
from adapters.asr.raasr import RaasrRecognizer
from audio.frame_generator import bytes_to_frame_count, split_pcm_into_frames
from audio.wav import pcm16_duration_ms, read_wav_as_pcm16
from config import IatConfig
from errors import IatError
from spec import FRAME_INTERVAL_S


@dataclass
class Counters:
    results: int = 0
    errors: int = 0
    final_text: str | None = None
    done: asyncio.Event = field(default_factory=asyncio.Event)


class WavFeed:
    """Capture stand-in that replays a PCM16 buffer one frame per 40ms."""

    def __init__(self, pcm: bytes, on_pcm: Callable[[bytes], None], on_done: Callable[[], None]) -> None:
        self._frames = split_pcm_into_frames(pcm)
        self._on_pcm = on_pcm
        self._on_done = on_done
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run())

    def close(self) -> None:
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()

    async def _run(self) -> None:
        for seq, frame in enumerate(self._frames, start=1):
            self._on_pcm(frame)
            if seq % 25 == 1:  # about once per second
                mx = int(np.max(np.abs(np.frombuffer(frame, dtype="<i2"))))
                print(f"[FEED] frame={seq}/{len(self._frames)} max_i16={mx}")
            await asyncio.sleep(FRAME_INTERVAL_S)
        # Let the chunker drain the last frame before ending input
        await asyncio.sleep(FRAME_INTERVAL_S * 2)
        self._on_done()


async def _run_streaming(cfg: IatConfig, args: argparse.Namespace, counters: Counters) -> None:
    def on_result(text: str) -> None:
        counters.results += 1
        print(f"[iat] partial: {text!r}")

    def on_error(exc: BaseException) -> None:
        counters.errors += 1
        print(f"[iat] ERROR {type(exc).__name__}: {exc}", file=sys.stderr)
        counters.done.set()

    def on_end(text: str) -> None:
        counters.final_text = text
        print(f"[iat] final: {text!r}")
        counters.done.set()

    capture_factory = None
    if args.wav:
        pcm = read_wav_as_pcm16(args.wav)
        print(f"[iat] {args.wav}: {bytes_to_frame_count(len(pcm))} frames, "
              f"{pcm16_duration_ms(len(pcm))}ms")

        def capture_factory(on_pcm: Callable[[bytes], None]) -> WavFeed:
            return WavFeed(pcm, on_pcm, rec.stop)

    rec = IatStreamingRecognizer(cfg, capture_factory=capture_factory)
    rec.start(on_result, on_error, on_end)

    if not args.wav:
        await asyncio.sleep(args.seconds)
        print("[iat] stopping microphone")
        rec.stop()

    try:
        await asyncio.wait_for(counters.done.wait(), timeout=args.timeout)
    except asyncio.TimeoutError:
        print("[iat] TIMEOUT waiting for final result.", file=sys.stderr)
        rec.stop()
    await rec.wait_closed()


async def _run_raasr(cfg: IatConfig, args: argparse.Namespace, counters: Counters) -> None:
    pcm = read_wav_as_pcm16(args.wav)
    rec = RaasrRecognizer(cfg)
    try:
        text = await rec.transcribe_wav(pcm, pcm16_duration_ms(len(pcm)))
    except IatError as e:
        counters.errors += 1
        print(f"[raasr] ERROR {type(e).__name__}: {e}", file=sys.stderr)
        return
    counters.results += 1
    counters.final_text = text
    print(f"[raasr] final: {text!r}")


async def main() -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--wav", default=None, help="Audio file to stream instead of the microphone.")
    ap.add_argument("--seconds", type=float, default=5.0, help="Microphone recording length.")
    ap.add_argument("--timeout", type=float, default=15.0, help="Seconds to wait for the final result.")
    ap.add_argument("--raasr", action="store_true", help="Use the recorded-file API (requires --wav).")
    args = ap.parse_args()

    load_dotenv()
    cfg = IatConfig.load_from_env()
    counters = Counters()

    if args.raasr:
        if not args.wav:
            ap.error("--raasr requires --wav")
        await _run_raasr(cfg, args, counters)
    else:
        await _run_streaming(cfg, args, counters)

    print(f"[iat] done: results={counters.results}, errors={counters.errors}", file=sys.stderr)

    if counters.errors > 0:
        return 2
    return 0 if counters.final_text is not None else 1


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
