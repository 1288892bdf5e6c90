"""
SPEC-AS-CONSTANTS
-----------------
Single source of truth for all behavioral invariants of the IAT client.

Rules:
- If changing a value changes wire or timing behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

# =============================================================================
# Audio Format (PCM16 mono @ 16kHz, 40ms frames)
# =============================================================================

AUDIO_SAMPLE_RATE_HZ: Final[int] = 16_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)
AUDIO_BIT_DEPTH: Final[int] = AUDIO_SAMPLE_WIDTH_BYTES * 8
AUDIO_FRAME_MS: Final[int] = 40

AUDIO_SAMPLES_PER_FRAME: Final[int] = (AUDIO_SAMPLE_RATE_HZ * AUDIO_FRAME_MS) // 1000
AUDIO_BYTES_PER_FRAME_PCM: Final[int] = AUDIO_SAMPLES_PER_FRAME * AUDIO_SAMPLE_WIDTH_BYTES
AUDIO_FRAME_DURATION_S: Final[float] = AUDIO_FRAME_MS / 1000.0

# PCM16 scaling: negative samples use the full negative range
PCM16_NEGATIVE_SCALE: Final[int] = 0x8000
PCM16_POSITIVE_SCALE: Final[int] = 0x7FFF

# =============================================================================
# Frame Dispatch Cadence
# =============================================================================

# One dispatch attempt per frame duration
FRAME_INTERVAL_S: Final[float] = AUDIO_FRAME_DURATION_S

# =============================================================================
# IAT WebSocket Protocol
# =============================================================================

IAT_DEFAULT_HOST: Final[str] = "iat.xf-yun.com"
IAT_DEFAULT_PATH: Final[str] = "/v1"

IAT_DEFAULT_DOMAIN: Final[str] = "slm"
IAT_DEFAULT_LANGUAGE: Final[str] = "zh_cn"
IAT_DEFAULT_ACCENT: Final[str] = "mandarin"
IAT_DEFAULT_EOS_MS: Final[int] = 6000

IAT_AUDIO_ENCODING: Final[str] = "raw"
IAT_DYNAMIC_CORRECTION: Final[str] = "wpgs"

SEQ_NUM_START: Final[int] = 0
SEQ_NUM_MAX: Final[int] = 999_999

# Handshake signing
AUTH_ALGORITHM: Final[str] = "hmac-sha256"
AUTH_SIGNED_HEADERS: Final[str] = "host date request-line"

# Inbound success code
IAT_CODE_OK: Final[int] = 0

# Dynamic-correction operations carried in decoded results
PGS_APPEND: Final[str] = "apd"
PGS_REPLACE: Final[str] = "rpl"

# =============================================================================
# Recorded-file Transcription (upload → poll)
# =============================================================================

RAASR_UPLOAD_URL: Final[str] = "https://raasr.xfyun.cn/v2/api/upload"
RAASR_GET_RESULT_URL: Final[str] = "https://raasr.xfyun.cn/v2/api/getResult"
RAASR_LANGUAGE: Final[str] = "cn"
RAASR_FILE_NAME: Final[str] = "recording.wav"

RAASR_POLL_MAX_TRIES: Final[int] = 20
RAASR_POLL_DELAY_S: Final[float] = 1.5

RAASR_ORDER_DONE: Final[int] = 4
RAASR_ORDER_FAILED: Final[int] = -1

# =============================================================================
# Helper Functions
# =============================================================================

def bytes_to_seconds(num_bytes: int) -> float:
    """Duration in seconds of `num_bytes` of 16kHz mono PCM16."""
    if num_bytes <= 0:
        return 0.0
    return num_bytes / (AUDIO_SAMPLE_RATE_HZ * AUDIO_SAMPLE_WIDTH_BYTES)


# =============================================================================
# Convenience Bundles
# =============================================================================

@dataclass(frozen=True)
class AudioFormat:
    """
    Immutable bundle describing the PCM audio format.

    This is a convenience wrapper for passing format metadata around;
    it is NOT a second source of truth.
    """
    sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ
    channels: int = AUDIO_CHANNELS
    sample_width_bytes: int = AUDIO_SAMPLE_WIDTH_BYTES
    frame_ms: int = AUDIO_FRAME_MS

    @property
    def samples_per_frame(self) -> int:
        """Return number of samples per frame."""
        return (self.sample_rate_hz * self.frame_ms) // 1000

    @property
    def bytes_per_frame(self) -> int:
        """Return number of bytes per frame."""
        return self.samples_per_frame * self.sample_width_bytes


AUDIO_FORMAT_IAT: Final[AudioFormat] = AudioFormat()
