from __future__ import annotations

from pathlib import Path
import struct
import sys
from typing import Callable

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


def _chunk(tag: bytes, body: bytes) -> bytes:
    pad = b"\x00" if len(body) % 2 else b""
    return tag + struct.pack("<I", len(body)) + body + pad


def _name(text: str) -> bytes:
    return text.encode("ascii").ljust(20, b"\x00")


def _hydra(records: list[dict], gens_key: str) -> tuple[list[int], bytes, bytes]:
    """Return per-record first-bag indices plus packed bag and gen chunks."""

    bag_starts: list[int] = []
    bags = b""
    gens = b""
    n_bags = 0
    n_gens = 0
    for record in records:
        bag_starts.append(n_bags)
        for zone in record[gens_key]:
            bags += struct.pack("<HH", n_gens, 0)
            n_bags += 1
            for oper, amount in zone:
                gens += struct.pack("<HH", int(oper), amount & 0xFFFF)
                n_gens += 1
    bag_starts.append(n_bags)
    bags += struct.pack("<HH", n_gens, 0)
    gens += struct.pack("<HH", 0, 0)
    return bag_starts, bags, gens


def build_sf2(
    presets: list[dict],
    instruments: list[dict],
    samples: list[dict],
    pcm: bytes,
) -> bytes:
    """Assemble a minimal SoundFont 2 file.

    presets:     {"name", "preset", "bank", "zones": [[(gen, amount), ...], ...]}
    instruments: {"name", "zones": [[(gen, amount), ...], ...]}
    samples:     {"name", "start", "end", "loop_start", "loop_end", "rate",
                  "origpitch", "pitchadj"}
    """

    p_starts, pbag, pgen = _hydra(presets, "zones")
    i_starts, ibag, igen = _hydra(instruments, "zones")

    phdr = b"".join(
        struct.pack("<20sHHHIII", _name(p["name"]), p["preset"], p["bank"], p_starts[i], 0, 0, 0)
        for i, p in enumerate(presets)
    )
    phdr += struct.pack("<20sHHHIII", _name("EOP"), 0, 0, p_starts[-1], 0, 0, 0)
    inst = b"".join(
        struct.pack("<20sH", _name(x["name"]), i_starts[i]) for i, x in enumerate(instruments)
    )
    inst += struct.pack("<20sH", _name("EOI"), i_starts[-1])
    shdr = b"".join(
        struct.pack(
            "<20sIIIIIBbHH",
            _name(s["name"]), s["start"], s["end"], s["loop_start"], s["loop_end"],
            s["rate"], s["origpitch"], s.get("pitchadj", 0), 0, 1,
        )
        for s in samples
    )
    shdr += struct.pack("<20sIIIIIBbHH", _name("EOS"), 0, 0, 0, 0, 0, 0, 0, 0, 0)

    info = b"INFO" + _chunk(b"ifil", struct.pack("<HH", 2, 1))
    sdta = b"sdta" + _chunk(b"smpl", pcm)
    pdta = b"pdta" + b"".join(
        [
            _chunk(b"phdr", phdr),
            _chunk(b"pbag", pbag),
            _chunk(b"pmod", b"\x00" * 10),
            _chunk(b"pgen", pgen),
            _chunk(b"inst", inst),
            _chunk(b"ibag", ibag),
            _chunk(b"imod", b"\x00" * 10),
            _chunk(b"igen", igen),
            _chunk(b"shdr", shdr),
        ]
    )
    body = b"sfbk" + _chunk(b"LIST", info) + _chunk(b"LIST", sdta) + _chunk(b"LIST", pdta)
    return b"RIFF" + struct.pack("<I", len(body)) + body


def _ramp_pcm(n: int, step: int = 500) -> bytes:
    return b"".join(struct.pack("<h", ((i * step) % 20000) - 10000) for i in range(n))


@pytest.fixture
def make_sf2() -> Callable[..., bytes]:
    return build_sf2


@pytest.fixture
def ramp_pcm() -> Callable[..., bytes]:
    """16-bit PCM sawtooth of `n` samples."""

    return _ramp_pcm
