# pylint: disable=missing-module-docstring,missing-function-docstring

import base64
import json

import pytest

from protocol.frames import (
    FrameStatus,
    IatParameters,
    InvalidFrameLength,
    InvalidSequenceNumber,
    continuation_frame,
    final_frame,
    start_frame,
)
from spec import AUDIO_BYTES_PER_FRAME_PCM

CHUNK = b"\x01\x02" * (AUDIO_BYTES_PER_FRAME_PCM // 2)


# ---------------------------------------------------------------------
# Shapes
# ---------------------------------------------------------------------

def test_start_frame_carries_parameters_and_audio() -> None:
    params = IatParameters(domain="slm", language="zh_cn", accent="mandarin", eos_ms=6000)

    msg = json.loads(start_frame(app_id="app", parameters=params, pcm_bytes=CHUNK).encode())

    assert msg["header"] == {"app_id": "app", "status": 0}
    assert msg["parameter"]["iat"] == {
        "domain": "slm",
        "language": "zh_cn",
        "accent": "mandarin",
        "eos": 6000,
        "vinfo": 1,
        "dwa": "wpgs",
        "result": {"encoding": "utf8", "compress": "raw", "format": "json"},
    }
    audio = msg["payload"]["audio"]
    assert audio["encoding"] == "raw"
    assert audio["sample_rate"] == 16000
    assert audio["channels"] == 1
    assert audio["bit_depth"] == 16
    assert audio["seq"] == 0
    assert audio["status"] == 0
    assert base64.b64decode(audio["audio"]) == CHUNK


def test_continuation_frame_omits_parameters() -> None:
    frame = continuation_frame(app_id="app", seq=7, pcm_bytes=CHUNK)
    msg = frame.to_wire()

    assert frame.status is FrameStatus.CONTINUE
    assert "parameter" not in msg
    assert msg["header"]["status"] == 1
    assert msg["payload"]["audio"]["seq"] == 7
    assert msg["payload"]["audio"]["status"] == 1


def test_final_frame_defaults_to_empty_audio() -> None:
    msg = final_frame(app_id="app", seq=12).to_wire()

    assert "parameter" not in msg
    assert msg["header"]["status"] == 2
    assert msg["payload"]["audio"]["status"] == 2
    assert msg["payload"]["audio"]["audio"] == ""


def test_encode_is_compact_json() -> None:
    encoded = final_frame(app_id="app", seq=1).encode()

    assert ", " not in encoded
    assert ": " not in encoded


# ---------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------

@pytest.mark.parametrize("seq", [-1, 1_000_000])
def test_sequence_number_out_of_range(seq: int) -> None:
    with pytest.raises(InvalidSequenceNumber):
        continuation_frame(app_id="app", seq=seq, pcm_bytes=CHUNK)


def test_sequence_number_upper_bound_is_inclusive() -> None:
    assert final_frame(app_id="app", seq=999_999).seq == 999_999


@pytest.mark.parametrize("size", [0, AUDIO_BYTES_PER_FRAME_PCM - 2, AUDIO_BYTES_PER_FRAME_PCM + 2])
def test_audio_frames_require_exact_quantum(size: int) -> None:
    with pytest.raises(InvalidFrameLength):
        start_frame(app_id="app", parameters=IatParameters(), pcm_bytes=b"\x00" * size)
    with pytest.raises(InvalidFrameLength):
        continuation_frame(app_id="app", seq=1, pcm_bytes=b"\x00" * size)


def test_final_frame_rejects_oversized_tail() -> None:
    with pytest.raises(InvalidFrameLength):
        final_frame(app_id="app", seq=1, pcm_bytes=b"\x00" * (AUDIO_BYTES_PER_FRAME_PCM + 2))
