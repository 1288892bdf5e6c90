"""
PCM conversion and resampling utilities.

Pure transforms only (no IO, no device access). Safe to call from the audio
callback thread: each call allocates a handful of numpy arrays and never blocks.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from spec import (
    AUDIO_SAMPLE_RATE_HZ,
    PCM16_NEGATIVE_SCALE,
    PCM16_POSITIVE_SCALE,
)


def downsample(
    samples: NDArray[np.floating],
    in_rate: int,
    out_rate: int = AUDIO_SAMPLE_RATE_HZ,
) -> NDArray[np.float32]:
    """
    Block-averaging decimation from `in_rate` to `out_rate`.

    Output sample i is the mean of the input samples whose index falls in
    [round(i * ratio), round((i + 1) * ratio)), ratio = in_rate / out_rate.
    A slot with no input samples yields 0.0. Equal rates pass through.

    Raises:
        ValueError if a rate is not positive or in_rate < out_rate.
    """
    if in_rate <= 0 or out_rate <= 0:
        raise ValueError("sample rates must be > 0")

    audio = np.asarray(samples, dtype=np.float32).reshape(-1)
    if in_rate == out_rate:
        return audio
    if in_rate < out_rate:
        raise ValueError(f"cannot upsample {in_rate}Hz -> {out_rate}Hz")

    ratio = in_rate / out_rate
    n = audio.shape[0]
    out_len = int(np.floor(n / ratio + 0.5))
    if out_len == 0:
        return np.zeros(0, dtype=np.float32)

    # Round-half-up slot boundaries, clamped to the input
    edges = np.floor(np.arange(out_len + 1) * ratio + 0.5).astype(np.int64)
    edges = np.minimum(edges, n)

    csum = np.concatenate(([0.0], np.cumsum(audio, dtype=np.float64)))
    sums = csum[edges[1:]] - csum[edges[:-1]]
    counts = edges[1:] - edges[:-1]

    out = np.zeros(out_len, dtype=np.float32)
    filled = counts > 0
    out[filled] = sums[filled] / counts[filled]
    return out


def float32_to_pcm16le(audio_f32: NDArray[np.floating]) -> bytes:
    """
    Convert float samples in [-1, 1] to PCM16 little-endian bytes.

    Samples are clipped first; negatives scale by 32768, the rest by 32767,
    and the result truncates toward zero. len(result) == 2 * len(audio_f32).
    """
    s = np.clip(np.asarray(audio_f32, dtype=np.float64).reshape(-1), -1.0, 1.0)
    scaled = np.where(s < 0, s * PCM16_NEGATIVE_SCALE, s * PCM16_POSITIVE_SCALE)
    return scaled.astype("<i2").tobytes()


def pcm16le_to_float32(pcm_bytes: bytes) -> NDArray[np.float32]:
    """
    Convert PCM16 little-endian mono bytes to float32 in [-1.0, 1.0].

    Inverse of float32_to_pcm16le: negatives divide by 32768, the rest by
    32767. No resampling. No channel mixing.
    """
    if len(pcm_bytes) % 2 != 0:
        # Truncated sample; caller should treat as malformed upstream.
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]

    audio = np.frombuffer(pcm_bytes, dtype="<i2").astype(np.float32)
    return np.where(
        audio < 0, audio / PCM16_NEGATIVE_SCALE, audio / PCM16_POSITIVE_SCALE
    ).astype(np.float32)


class Resampler:
    """
    Device-rate float blocks -> 16kHz PCM16LE bytes.

    One instance per capture stream. Multi-channel blocks are reduced to the
    first channel.
    """

    def __init__(self, device_rate: int, target_rate: int = AUDIO_SAMPLE_RATE_HZ) -> None:
        if device_rate <= 0:
            raise ValueError("device_rate must be > 0")
        self.device_rate = device_rate
        self.target_rate = target_rate

    def __call__(self, block: NDArray[np.floating]) -> bytes:
        audio = np.asarray(block, dtype=np.float32)
        if audio.ndim == 2:
            audio = audio[:, 0]
        return float32_to_pcm16le(downsample(audio, self.device_rate, self.target_rate))
