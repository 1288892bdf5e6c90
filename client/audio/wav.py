"""WAV encode/decode helpers (soundfile)."""

from __future__ import annotations

import io
from pathlib import Path

import numpy as np
import soundfile as sf

from audio.pcm import downsample, float32_to_pcm16le
from spec import AUDIO_CHANNELS, AUDIO_SAMPLE_RATE_HZ, AUDIO_SAMPLE_WIDTH_BYTES


def pcm16_to_wav(pcm_bytes: bytes, sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ) -> bytes:
    """Wrap mono PCM16LE bytes in a RIFF/WAVE container (PCM_16 subtype)."""
    if len(pcm_bytes) % AUDIO_SAMPLE_WIDTH_BYTES != 0:
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]
    samples = np.frombuffer(pcm_bytes, dtype="<i2")

    buf = io.BytesIO()
    sf.write(buf, samples, sample_rate_hz, subtype="PCM_16", format="WAV")
    return buf.getvalue()


def pcm16_duration_ms(num_bytes: int, sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ) -> int:
    """Duration of mono PCM16 audio, rounded to the nearest millisecond."""
    samples = num_bytes // (AUDIO_SAMPLE_WIDTH_BYTES * AUDIO_CHANNELS)
    return int(round(samples * 1000 / sample_rate_hz))


def read_wav_as_pcm16(path: str | Path) -> bytes:
    """
    Load an audio file and return 16kHz mono PCM16LE bytes.

    First channel only; higher sample rates are block-averaged down.
    """
    audio, rate = sf.read(str(path), dtype="float32", always_2d=True)
    mono = audio[:, 0]
    return float32_to_pcm16le(downsample(mono, int(rate)))
