from __future__ import annotations

import numpy as np
import pytest

from dse.dsp import adpcm_encode, pcm16_from_bytes, process_mono, resample, resample_len


@pytest.mark.parametrize(
    ("src", "dst", "length", "expected"),
    [
        (22050, 11025, 100, 50),
        (22050, 22050, 37, 37),
        (11025, 22050, 3, 6),
        (44100, 8000, 1, 1),
        (44100, 22050, 0, 0),
    ],
)
def test_resample_len(src: int, dst: int, length: int, expected: int) -> None:
    assert resample_len(src, dst, length) == expected


def test_resample_same_rate_is_identity() -> None:
    samples = np.array([1, -2, 300, -4000], dtype=np.int16)
    out = resample(samples, 22050, 22050)
    assert out.tolist() == samples.tolist()
    assert out is not samples


def test_resample_halves_a_ramp() -> None:
    samples = np.arange(0, 800, 100, dtype=np.int16)
    assert resample(samples, 22050, 11025).tolist() == [0, 200, 400, 600]


def test_pcm16_from_bytes_drops_odd_byte() -> None:
    assert pcm16_from_bytes(b"\x01\x00\xff\xff\x07").tolist() == [1, -1]


class TestAdpcm:
    def test_silence(self) -> None:
        assert adpcm_encode(np.zeros(8, dtype=np.int16)) == bytes(8)

    def test_preamble_holds_first_sample(self) -> None:
        assert adpcm_encode(np.array([1000], dtype=np.int16)) == bytes.fromhex("e8030000 00")

    def test_two_samples_per_byte(self) -> None:
        encoded = adpcm_encode(np.arange(0, 3200, 100, dtype=np.int16))
        assert len(encoded) == 4 + 16


class TestProcessMono:
    def test_pre_loop_and_loop_are_word_aligned(self) -> None:
        pre = np.arange(3, dtype=np.int16)
        loop = np.arange(5, dtype=np.int16) * 10
        data, rate, loop_start = process_mono(pre, loop, 22050, 22050)
        assert (len(data), rate, loop_start) == (12, 22050, 8)

    def test_no_pre_loop(self) -> None:
        data, _, loop_start = process_mono(
            np.zeros(0, dtype=np.int16), np.arange(16, dtype=np.int16), 22050, 22050
        )
        assert loop_start == 4
        assert len(data) == 4 + 8

    def test_resampled_output_rate(self) -> None:
        data, rate, loop_start = process_mono(
            np.zeros(0, dtype=np.int16), np.arange(32, dtype=np.int16), 44100, 22050
        )
        assert rate == 22050
        assert (loop_start, len(data)) == (4, 4 + 8)

    def test_unlooped_sample_is_padded_with_silence(self) -> None:
        empty = np.zeros(0, dtype=np.int16)
        samples = np.arange(1, 6, dtype=np.int16) * 1000
        data, _, loop_start = process_mono(empty, samples, 22050, 22050, looped=False)
        assert loop_start == 4
        assert data == adpcm_encode(np.concatenate([samples, np.zeros(3, dtype=np.int16)]))

        looped, _, _ = process_mono(empty, samples, 22050, 22050)
        assert looped == adpcm_encode(np.concatenate([samples, samples[:3]]))
        assert looped != data
