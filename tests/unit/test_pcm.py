# pylint: disable=missing-module-docstring,missing-function-docstring

import numpy as np
import pytest

from audio.pcm import Resampler, downsample, float32_to_pcm16le, pcm16le_to_float32


def _i16(pcm: bytes) -> list[int]:
    return np.frombuffer(pcm, dtype="<i2").tolist()


# ---------------------------------------------------------------------
# downsample
# ---------------------------------------------------------------------

@pytest.mark.parametrize("in_rate", [48_000, 44_100, 32_000, 22_050])
def test_constant_signal_stays_constant(in_rate: int) -> None:
    samples = np.full(in_rate // 10, 0.25, dtype=np.float32)

    out = downsample(samples, in_rate, 16_000)

    assert out.shape[0] == pytest.approx(1600, abs=1)
    assert np.allclose(out, 0.25, atol=1e-6)


def test_48k_averages_blocks_of_three() -> None:
    samples = np.array([0.0, 0.3, 0.6, 1.0, 1.0, 1.0], dtype=np.float32)

    out = downsample(samples, 48_000, 16_000)

    assert out.tolist() == pytest.approx([0.3, 1.0])


def test_equal_rates_pass_through() -> None:
    samples = np.array([0.1, -0.2, 0.3], dtype=np.float32)

    out = downsample(samples, 16_000, 16_000)

    assert out.tolist() == pytest.approx([0.1, -0.2, 0.3])


def test_upsampling_is_rejected() -> None:
    with pytest.raises(ValueError):
        downsample(np.zeros(10, dtype=np.float32), 8_000, 16_000)


def test_empty_input_yields_empty_output() -> None:
    assert downsample(np.zeros(0, dtype=np.float32), 48_000).shape == (0,)


# ---------------------------------------------------------------------
# PCM16 conversion
# ---------------------------------------------------------------------

def test_asymmetric_scaling_and_truncation() -> None:
    pcm = float32_to_pcm16le(np.array([-1.0, -0.5, 0.0, 0.5, 1.0]))

    assert _i16(pcm) == [-32768, -16384, 0, 16383, 32767]


def test_out_of_range_samples_are_clipped() -> None:
    pcm = float32_to_pcm16le(np.array([-3.0, 2.5]))

    assert _i16(pcm) == [-32768, 32767]


def test_output_is_two_bytes_per_sample_little_endian() -> None:
    pcm = float32_to_pcm16le(np.array([1.0, 0.0, 0.0]))

    assert len(pcm) == 6
    assert pcm[:2] == b"\xff\x7f"


def test_pcm16_to_float_drops_odd_trailing_byte() -> None:
    out = pcm16le_to_float32(b"\x00\x80\x00\x00\x01")

    assert out.tolist() == [-1.0, 0.0]


# ---------------------------------------------------------------------
# Resampler
# ---------------------------------------------------------------------

def test_resampler_uses_first_channel_only() -> None:
    block = np.zeros((6, 2), dtype=np.float32)
    block[:, 0] = 0.5
    block[:, 1] = -1.0

    pcm = Resampler(48_000)(block)

    assert _i16(pcm) == [16383, 16383]


def test_resampler_rejects_bad_rate() -> None:
    with pytest.raises(ValueError):
        Resampler(0)


@pytest.mark.parametrize("in_rate", [16_000, 22_050, 44_100, 48_000, 96_000])
@pytest.mark.parametrize("level", [-1.0, -0.37, 0.0, 0.123, 0.999])
def test_constant_round_trip_within_one_quantum(in_rate: int, level: float) -> None:
    samples = np.full(in_rate // 20, level, dtype=np.float32)

    back = pcm16le_to_float32(float32_to_pcm16le(downsample(samples, in_rate)))

    assert np.all(np.abs(back - level) <= 1 / 32768 + 1e-7)
