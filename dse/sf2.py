"""Minimal SoundFont 2 reader.

Walks the RIFF ``sfbk`` form and resolves the ``pdta`` hydra into presets,
instruments and zones.  Only what the SWDL translator needs is decoded:
generators (modulators are skipped), sample headers and the 16-bit ``smpl``
sample pool.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional, Tuple

from .binutils import Reader
from .errors import DSEFormatError


class GeneratorType(IntEnum):
    StartAddrsOffset = 0
    EndAddrsOffset = 1
    StartloopAddrsOffset = 2
    EndloopAddrsOffset = 3
    StartAddrsCoarseOffset = 4
    ModLfoToPitch = 5
    VibLfoToPitch = 6
    ModEnvToPitch = 7
    InitialFilterFc = 8
    InitialFilterQ = 9
    ModLfoToFilterFc = 10
    ModEnvToFilterFc = 11
    EndAddrsCoarseOffset = 12
    ModLfoToVolume = 13
    Unused1 = 14
    ChorusEffectsSend = 15
    ReverbEffectsSend = 16
    Pan = 17
    Unused2 = 18
    Unused3 = 19
    Unused4 = 20
    DelayModLFO = 21
    FreqModLFO = 22
    DelayVibLFO = 23
    FreqVibLFO = 24
    DelayModEnv = 25
    AttackModEnv = 26
    HoldModEnv = 27
    DecayModEnv = 28
    SustainModEnv = 29
    ReleaseModEnv = 30
    KeynumToModEnvHold = 31
    KeynumToModEnvDecay = 32
    DelayVolEnv = 33
    AttackVolEnv = 34
    HoldVolEnv = 35
    DecayVolEnv = 36
    SustainVolEnv = 37
    ReleaseVolEnv = 38
    KeynumToVolEnvHold = 39
    KeynumToVolEnvDecay = 40
    Instrument = 41
    Reserved1 = 42
    KeyRange = 43
    VelRange = 44
    StartloopAddrsCoarseOffset = 45
    Keynum = 46
    Velocity = 47
    InitialAttenuation = 48
    Reserved2 = 49
    EndloopAddrsCoarseOffset = 50
    CoarseTune = 51
    FineTune = 52
    SampleID = 53
    SampleModes = 54
    Reserved3 = 55
    ScaleTuning = 56
    ExclusiveClass = 57
    OverridingRootKey = 58
    Unused5 = 59
    EndOper = 60


@dataclass
class Generator:
    ty: int
    amount: int  # raw u16

    def as_i16(self) -> int:
        return self.amount - 0x10000 if self.amount & 0x8000 else self.amount

    def as_u16(self) -> int:
        return self.amount

    def as_range(self) -> Tuple[int, int]:
        return (self.amount & 0xFF, self.amount >> 8)


@dataclass
class Zone:
    gen_list: List[Generator] = field(default_factory=list)

    def find(self, ty: GeneratorType) -> Optional[Generator]:
        for gen in self.gen_list:
            if gen.ty == ty:
                return gen
        return None

    def sample(self) -> Optional[int]:
        gen = self.find(GeneratorType.SampleID)
        return gen.as_u16() if gen is not None else None

    def instrument(self) -> Optional[int]:
        gen = self.find(GeneratorType.Instrument)
        return gen.as_u16() if gen is not None else None


def find_gen_in_zones(zones: List[Zone], ty: GeneratorType) -> Optional[Generator]:
    """First generator of type `ty` across `zones`, searched in order."""

    for zone in zones:
        gen = zone.find(ty)
        if gen is not None:
            return gen
    return None


@dataclass
class Instrument:
    name: str
    zones: List[Zone] = field(default_factory=list)


@dataclass
class Preset:
    name: str
    preset: int
    bank: int
    zones: List[Zone] = field(default_factory=list)


@dataclass
class SampleHeader:
    name: str
    start: int
    end: int
    loop_start: int
    loop_end: int
    sample_rate: int
    origpitch: int
    pitchadj: int
    sample_link: int
    sample_type: int

    _STRUCT = struct.Struct("<20sIIIIIBbHH")

    @classmethod
    def from_bytes(cls, data: bytes) -> "SampleHeader":
        name, *values = cls._STRUCT.unpack(data)
        return cls(_name(name), *values)

    def has_loop(self) -> bool:
        return self.loop_start >= self.start and self.loop_end > self.loop_start


def _name(raw: bytes) -> str:
    return raw.split(b"\x00", 1)[0].decode("latin-1")


_PHDR = struct.Struct("<20sHHHIII")
_INST = struct.Struct("<20sH")
_BAG = struct.Struct("<HH")
_GEN = struct.Struct("<HH")


def _records(data: bytes, record: struct.Struct, tag: str) -> List[tuple]:
    if len(data) % record.size:
        raise DSEFormatError(f"sf2 '{tag}' chunk length {len(data)} is not a multiple of {record.size}")
    return [record.unpack_from(data, i) for i in range(0, len(data), record.size)]


def _zones(bags: List[tuple], gens: List[Generator], first: int, last: int) -> List[Zone]:
    zones = []
    for b in range(first, last):
        gen_first, gen_last = bags[b][0], bags[b + 1][0]
        zones.append(Zone(list(gens[gen_first:gen_last])))
    return zones


@dataclass
class SoundFont2:
    presets: List[Preset] = field(default_factory=list)
    instruments: List[Instrument] = field(default_factory=list)
    sample_headers: List[SampleHeader] = field(default_factory=list)
    smpl: bytes = b""

    @classmethod
    def from_bytes(cls, data: bytes) -> "SoundFont2":
        reader = Reader(data)
        if reader.read_bytes(4) != b"RIFF":
            raise DSEFormatError("not a riff file")
        riff_len = reader.read_u32()
        if reader.read_bytes(4) != b"sfbk":
            raise DSEFormatError("riff form is not 'sfbk'; not a soundfont")
        end = min(len(data), 8 + riff_len)

        smpl = b""
        pdta: Dict[str, bytes] = {}
        while reader.tell() + 8 <= end:
            chunk_id = reader.read_bytes(4)
            chunk_len = reader.read_u32()
            chunk_end = reader.tell() + chunk_len
            if chunk_id == b"LIST":
                list_type = reader.read_bytes(4)
                while reader.tell() + 8 <= chunk_end:
                    sub_id = reader.read_bytes(4).decode("latin-1")
                    sub_len = reader.read_u32()
                    body = reader.read_bytes(sub_len)
                    if sub_len % 2:
                        reader.read_bytes(1)
                    if list_type == b"sdta" and sub_id == "smpl":
                        smpl = body
                    elif list_type == b"pdta":
                        pdta[sub_id] = body
            reader.seek(chunk_end + (chunk_len % 2))

        for tag in ("phdr", "pbag", "pgen", "inst", "ibag", "igen", "shdr"):
            if tag not in pdta:
                raise DSEFormatError(f"soundfont is missing the '{tag}' chunk")
        return cls._from_hydra(pdta, smpl)

    @classmethod
    def _from_hydra(cls, pdta: Dict[str, bytes], smpl: bytes) -> "SoundFont2":
        phdr = _records(pdta["phdr"], _PHDR, "phdr")
        pbag = _records(pdta["pbag"], _BAG, "pbag")
        pgen = [Generator(*g) for g in _records(pdta["pgen"], _GEN, "pgen")]
        inst = _records(pdta["inst"], _INST, "inst")
        ibag = _records(pdta["ibag"], _BAG, "ibag")
        igen = [Generator(*g) for g in _records(pdta["igen"], _GEN, "igen")]
        shdr = pdta["shdr"]
        if len(shdr) % SampleHeader._STRUCT.size:
            raise DSEFormatError("sf2 'shdr' chunk length is not a multiple of 46")

        # The last record of each list is a terminal ("EOP", "EOI", "EOS").
        presets = [
            Preset(_name(p[0]), p[1], p[2], _zones(pbag, pgen, p[3], phdr[i + 1][3]))
            for i, p in enumerate(phdr[:-1])
        ]
        instruments = [
            Instrument(_name(x[0]), _zones(ibag, igen, x[1], inst[i + 1][1]))
            for i, x in enumerate(inst[:-1])
        ]
        size = SampleHeader._STRUCT.size
        sample_headers = [
            SampleHeader.from_bytes(shdr[i : i + size]) for i in range(0, len(shdr) - size, size)
        ]
        return cls(presets=presets, instruments=instruments, sample_headers=sample_headers, smpl=smpl)

    def sample_pcm(self, header: SampleHeader) -> bytes:
        """Raw little-endian 16-bit PCM of one sample."""

        return self.smpl[header.start * 2 : header.end * 2]


__all__ = [
    "Generator",
    "GeneratorType",
    "Instrument",
    "Preset",
    "SampleHeader",
    "SoundFont2",
    "Zone",
    "find_gen_in_zones",
]
