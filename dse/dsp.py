"""Sample processing for PCMD: linear resampling and IMA ADPCM encoding.

DSE ADPCM blocks start with a 4-byte preamble (initial predictor as i16,
step index as u8, one zero byte) followed by 4-bit codes, low nibble first.
Sample positions in SWDL are counted in 32-bit words, so the pre-loop part
is padded to a multiple of 8 samples to keep the loop start word-aligned.
"""

from __future__ import annotations

import struct
from typing import Tuple

import numpy as np

ADPCM_PREAMBLE_LEN = 4
SAMPLES_PER_WORD = 8

IMA_INDEX_TABLE = (-1, -1, -1, -1, 2, 4, 6, 8, -1, -1, -1, -1, 2, 4, 6, 8)
IMA_STEP_TABLE = (
    7, 8, 9, 10, 11, 12, 13, 14, 16, 17, 19, 21, 23, 25, 28, 31, 34, 37, 41, 45,
    50, 55, 60, 66, 73, 80, 88, 97, 107, 118, 130, 143, 157, 173, 190, 209, 230,
    253, 279, 307, 337, 371, 408, 449, 494, 544, 598, 658, 724, 796, 876, 963,
    1060, 1166, 1282, 1411, 1552, 1707, 1878, 2066, 2272, 2499, 2749, 3024, 3327,
    3660, 4026, 4428, 4871, 5358, 5894, 6484, 7132, 7845, 8630, 9493, 10442,
    11487, 12635, 13899, 15289, 16818, 18500, 20350, 22385, 24623, 27086, 29794,
    32767,
)


def pcm16_from_bytes(data: bytes) -> np.ndarray:
    return np.frombuffer(data[: len(data) & ~1], dtype="<i2").astype(np.int16)


def resample_len(src_rate: float, dst_rate: float, length: int) -> int:
    if length == 0:
        return 0
    if src_rate == dst_rate:
        return length
    return max(1, int(round(length * dst_rate / src_rate)))


def resample(samples: np.ndarray, src_rate: float, dst_rate: float) -> np.ndarray:
    """Linear-interpolation resample of 16-bit mono PCM."""

    samples = np.asarray(samples, dtype=np.int16)
    n = resample_len(src_rate, dst_rate, len(samples))
    if n == len(samples):
        return samples.copy()
    positions = np.arange(n, dtype=np.float64) * (src_rate / dst_rate)
    out = np.interp(positions, np.arange(len(samples)), samples.astype(np.float64))
    return np.clip(np.round(out), -32768, 32767).astype(np.int16)


def adpcm_encode(samples: np.ndarray) -> bytes:
    """Encode 16-bit mono PCM as one DSE/NDS IMA ADPCM block."""

    samples = np.asarray(samples, dtype=np.int16)
    predictor = int(samples[0]) if len(samples) else 0
    index = 0
    out = bytearray(struct.pack("<hBB", predictor, index, 0))

    low_nibble = None
    for sample in samples.tolist():
        step = IMA_STEP_TABLE[index]
        diff = sample - predictor
        code = 0
        if diff < 0:
            code = 8
            diff = -diff
        delta = step >> 3
        if diff >= step:
            code |= 4
            diff -= step
            delta += step
        if diff >= step >> 1:
            code |= 2
            diff -= step >> 1
            delta += step >> 1
        if diff >= step >> 2:
            code |= 1
            delta += step >> 2
        predictor = predictor - delta if code & 8 else predictor + delta
        predictor = max(-32768, min(32767, predictor))
        index = max(0, min(88, index + IMA_INDEX_TABLE[code]))

        if low_nibble is None:
            low_nibble = code
        else:
            out.append(low_nibble | (code << 4))
            low_nibble = None
    if low_nibble is not None:
        out.append(low_nibble)
    return bytes(out)


def _pad_front(samples: np.ndarray, multiple: int) -> np.ndarray:
    pad = -len(samples) % multiple
    return np.concatenate([np.zeros(pad, dtype=np.int16), samples])


def _pad_loop(samples: np.ndarray, multiple: int) -> np.ndarray:
    pad = -len(samples) % multiple
    if pad == 0 or len(samples) == 0:
        return samples
    # wrap around so the loop stays seamless
    return np.concatenate([samples, np.resize(samples, pad)])


def _pad_back(samples: np.ndarray, multiple: int) -> np.ndarray:
    pad = -len(samples) % multiple
    return np.concatenate([samples, np.zeros(pad, dtype=np.int16)])


def process_mono(
    pre_loop: np.ndarray,
    loop: np.ndarray,
    src_rate: float,
    dst_rate: float,
    looped: bool = True,
) -> Tuple[bytes, float, int]:
    """Resample and ADPCM-encode a sample split at its loop point.

    Returns the encoded bytes (preamble included), the output sample rate and
    the byte offset of the loop start.  Both the loop start and the total
    length are multiples of 4 bytes.  A sample that does not loop is padded
    with silence rather than wrapped.
    """

    pre = _pad_front(resample(pre_loop, src_rate, dst_rate), SAMPLES_PER_WORD)
    pad_body = _pad_loop if looped else _pad_back
    body = pad_body(resample(loop, src_rate, dst_rate), SAMPLES_PER_WORD)
    encoded = adpcm_encode(np.concatenate([pre, body]))
    loop_start = ADPCM_PREAMBLE_LEN + len(pre) // 2
    return encoded, dst_rate, loop_start


__all__ = [
    "adpcm_encode",
    "pcm16_from_bytes",
    "process_mono",
    "resample",
    "resample_len",
]
