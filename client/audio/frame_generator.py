"""
PCM frame splitting utilities (pure).

Purpose:
- Convert a whole PCM blob (e.g. a WAV file read up front) into the same
  fixed-size 40ms PCM16 frames the live chunker produces, so file sources
  can be streamed through a session without a microphone.

Invariants:
- PCM16 signed, little-endian
- Mono
- 16 kHz
- 40 ms frames
- Bytes per frame = spec.AUDIO_BYTES_PER_FRAME_PCM

Design:
- Pure functions only (no queues, no timing, no IO).
- Drops any incomplete trailing frame (same rule as the live chunker).
"""

from __future__ import annotations

from spec import AUDIO_FORMAT_IAT, AudioFormat


def split_pcm_into_frames(
    pcm_bytes: bytes,
    *,
    audio_format: AudioFormat = AUDIO_FORMAT_IAT,
) -> list[bytes]:
    """
    Split raw PCM16 bytes into fixed-size frames.

    Returns:
        List of frame byte strings, each exactly audio_format.bytes_per_frame
        long. Any incomplete trailing frame is dropped (no padding).

    Raises:
        ValueError if the format yields a non-positive frame size.
    """
    bytes_per_frame = audio_format.bytes_per_frame * audio_format.channels
    if bytes_per_frame <= 0:
        raise ValueError("bytes_per_frame must be > 0")

    whole_frames = len(pcm_bytes) // bytes_per_frame
    end = whole_frames * bytes_per_frame
    return [
        pcm_bytes[offset : offset + bytes_per_frame]
        for offset in range(0, end, bytes_per_frame)
    ]


def bytes_to_frame_count(
    num_bytes: int,
    *,
    audio_format: AudioFormat = AUDIO_FORMAT_IAT,
) -> int:
    """
    Return the number of whole frames represented by num_bytes.

    Drops any incomplete trailing frame (floor division).
    """
    if num_bytes <= 0:
        return 0
    return num_bytes // (audio_format.bytes_per_frame * audio_format.channels)
