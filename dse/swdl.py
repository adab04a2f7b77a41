"""SWDL (sound bank) codec.

File layout::

    header (80 bytes)
    wavi   ChunkHeader + PointerTable[SampleInfo]
    prgi?  ChunkHeader + PointerTable[ProgramInfo]
    kgrp?  ChunkHeader + Table[Keygroup] (+ 8-byte sentinel when odd)
    pcmd?  ChunkHeader + raw sample bytes, 0x00-padded to 16
    eod    ChunkHeader

Derived fields (lengths, slot counts, sample positions) are recomputed by
`SWDL.regenerate_read_markers` and `SWDL.regenerate_automatic_parameters`.
"""

from __future__ import annotations

import bisect
import struct
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .binutils import Reader, Writer
from .dtype import (
    DSEString,
    PointerTable,
    SongBuilderFlags,
    Table,
    pointer_size_for,
)
from .errors import DSEFormatError, PointerTableTooLarge

SWDL_MAGIC = b"swdl"
WAVI_MAGIC = b"wavi"
PRGI_MAGIC = b"prgi"
KGRP_MAGIC = b"kgrp"
PCMD_MAGIC = b"pcmd"
EOD_MAGIC = b"eod "

DSE_VERSION = 0x415
EXTERNAL_PCMD = 0xAAAA0000
KGRP_SENTINEL = bytes.fromhex("67 C0 40 00 88 00 FF 04")
DEFAULT_DATE = (2008, 11, 16, 13, 40, 57, 3)

SAMPLE_FORMAT_PCM8 = 0x0000
SAMPLE_FORMAT_PCM16 = 0x0100
SAMPLE_FORMAT_ADPCM = 0x0200
SAMPLE_FORMAT_PSG = 0x0300


# ── Envelope duration tables ──────────────────────────────────────────

# Milliseconds per envelope index; selected by ADSRVolumeEnvelope.envmult
# (nonzero → 16-bit table, zero → 32-bit table).
ENVELOPE_DURATION_TABLE_I16: Tuple[int, ...] = tuple(range(0x20)) + (
    0x0020, 0x0023, 0x0028, 0x002D, 0x0033, 0x0039, 0x0040, 0x0048,
    0x0050, 0x0058, 0x0062, 0x006D, 0x0078, 0x0083, 0x0090, 0x009E,
    0x00AC, 0x00BC, 0x00CC, 0x00DE, 0x00F0, 0x0104, 0x0119, 0x012F,
    0x0147, 0x0160, 0x017A, 0x0196, 0x01B3, 0x01D2, 0x01F2, 0x0214,
    0x0238, 0x025E, 0x0285, 0x02AE, 0x02D9, 0x0307, 0x0336, 0x0367,
    0x039B, 0x03D1, 0x0406, 0x0442, 0x047E, 0x04C4, 0x0500, 0x0546,
    0x058C, 0x0622, 0x0672, 0x06CC, 0x071C, 0x0776, 0x07DA, 0x0834,
    0x0898, 0x0906, 0x0974, 0x09EC, 0x0A64, 0x0ADC, 0x0B5E, 0x0BE0,
    0x0C6C, 0x0CF8, 0x0D8E, 0x0E24, 0x0EC4, 0x0F6E, 0x1018, 0x10CC,
    0x1180, 0x1240, 0x1306, 0x13CE, 0x14A0, 0x1574, 0x1654, 0x1736,
    0x1822, 0x190E, 0x1A0E, 0x1B0E, 0x1C18, 0x1D2C, 0x1E40, 0x1F5E,
    0x2080, 0x21AC, 0x22E2, 0x2418, 0x2558, 0x26A2, 0x27F6, 0x7FFF,
)

ENVELOPE_DURATION_TABLE_I32: Tuple[int, ...] = (
    0x00000000, 0x00000004, 0x00000007, 0x0000000A, 0x0000000F, 0x00000015, 0x0000001C, 0x00000024,
    0x0000002E, 0x0000003A, 0x00000048, 0x00000057, 0x00000068, 0x0000007B, 0x00000091, 0x000000A8,
    0x00000185, 0x000001BE, 0x000001FC, 0x0000023F, 0x00000288, 0x000002D6, 0x0000032A, 0x00000385,
    0x000003E5, 0x0000044C, 0x000004BA, 0x0000052E, 0x000005A9, 0x0000062C, 0x000006B5, 0x00000746,
    0x000007DF, 0x00000880, 0x00000929, 0x000009DA, 0x00000A94, 0x00000B56, 0x00000C21, 0x00000CF5,
    0x00000DD2, 0x00000EB8, 0x00000FA7, 0x000010A0, 0x000011A2, 0x000012AE, 0x000013C3, 0x000014E2,
    0x0000160B, 0x0000173E, 0x0000187B, 0x000019C2, 0x00001B13, 0x00001C6E, 0x00001DD4, 0x00001F44,
    0x000020BE, 0x00002242, 0x000023D1, 0x0000256A, 0x0000270E, 0x000028BC, 0x00002A75, 0x00002C38,
    0x00002E06, 0x00002FDE, 0x000031C1, 0x000033AF, 0x000035A7, 0x000037AA, 0x000039B7, 0x00003BCF,
    0x00003DF2, 0x0000401F, 0x00004257, 0x0000449A, 0x000046E7, 0x0000493F, 0x00004BA2, 0x00004E0F,
    0x00005087, 0x0000530A, 0x00005597, 0x0000582F, 0x00005AD2, 0x00005D7F, 0x00006037, 0x000062FA,
    0x000065C7, 0x0000689F, 0x00006B82, 0x00006E6F, 0x00007167, 0x0000746A, 0x00007777, 0x00007A8F,
    0x00007DB2, 0x000080DF, 0x00008417, 0x0000875A, 0x00008AA7, 0x00008DFF, 0x00009162, 0x000094CF,
    0x00009847, 0x00009BCA, 0x00009F57, 0x0000A2EF, 0x0000A692, 0x0000AA3F, 0x0000ADF7, 0x0000B1BA,
    0x0000B587, 0x0000B95F, 0x0000BD42, 0x0000C12F, 0x0000C527, 0x0000C92A, 0x0000CD37, 0x0000D14F,
    0x0000D572, 0x0000D99F, 0x0000DDD7, 0x0000E21A, 0x0000E667, 0x0000EABF, 0x0000EF22, 0x00FFFFFF,
)


def _nearest_index(table: Tuple[int, ...], msec: int) -> int:
    pos = bisect.bisect_left(table, msec)
    if pos >= len(table):
        return len(table) - 1
    if pos > 0 and msec - table[pos - 1] <= table[pos] - msec:
        return pos - 1
    return pos


def lookup_env_time_value_i16(msec: int) -> int:
    """Index of the 16-bit table entry closest to `msec`."""

    return _nearest_index(ENVELOPE_DURATION_TABLE_I16, msec)


def lookup_env_time_value_i32(msec: int) -> int:
    """Index of the 32-bit table entry closest to `msec`."""

    return _nearest_index(ENVELOPE_DURATION_TABLE_I32, msec)


def envelope_duration_ms(index: int, envmult: int) -> int:
    if index < 0:
        return 0
    table = ENVELOPE_DURATION_TABLE_I16 if envmult else ENVELOPE_DURATION_TABLE_I32
    return table[min(index, len(table) - 1)]


# ── Chunk headers ─────────────────────────────────────────────────────

_CHUNK_HEADER = struct.Struct("<4sHHII")


@dataclass
class ChunkHeader:
    label: bytes = b"\x00\x00\x00\x00"
    unk1: int = 0
    unk2: int = DSE_VERSION
    chunkbeg: int = 0x10
    chunklen: int = 0

    SIZE = 16

    @classmethod
    def read(cls, reader: Reader) -> "ChunkHeader":
        return cls(*_CHUNK_HEADER.unpack(reader.read_bytes(cls.SIZE)))

    @classmethod
    def read_expecting(cls, reader: Reader, label: bytes) -> "ChunkHeader":
        at = reader.tell()
        header = cls.read(reader)
        if header.label != label:
            raise DSEFormatError(
                f"expected {label!r} chunk at {at:#x}, found {header.label!r}"
            )
        return header

    def write(self, writer: Writer) -> int:
        return writer.write_bytes(
            _CHUNK_HEADER.pack(self.label, self.unk1, self.unk2, self.chunkbeg, self.chunklen)
        )


# ── Header ────────────────────────────────────────────────────────────

_SWDL_HEADER_HEAD = struct.Struct("<4sIIHBBIIHBBBBBB")
_SWDL_HEADER_TAIL = struct.Struct("<IIIIIHHHHI")


@dataclass
class SWDLHeader:
    magicn: bytes = SWDL_MAGIC
    flags: int = SongBuilderFlags.NONE
    flen: int = 0
    version: int = DSE_VERSION
    unk1: int = 0x00
    unk2: int = 0xFF
    unk3: int = 0
    unk4: int = 0
    year: int = DEFAULT_DATE[0]
    month: int = DEFAULT_DATE[1]
    day: int = DEFAULT_DATE[2]
    hour: int = DEFAULT_DATE[3]
    minute: int = DEFAULT_DATE[4]
    second: int = DEFAULT_DATE[5]
    centisecond: int = DEFAULT_DATE[6]
    fname: DSEString = field(default_factory=lambda: DSEString("", 0xAA))
    unk10: int = 0xAAAAAA00
    unk11: int = 0
    unk12: int = 0
    unk13: int = 0x10
    pcmdlen: int = 0
    unk14: int = 0
    nbwavislots: int = 0
    nbprgislots: int = 0
    unk17: int = 524
    wavilen: int = 0

    SIZE = 80

    @classmethod
    def read(cls, reader: Reader) -> "SWDLHeader":
        at = reader.tell()
        head = _SWDL_HEADER_HEAD.unpack(reader.read_bytes(_SWDL_HEADER_HEAD.size))
        if head[0] != SWDL_MAGIC:
            raise DSEFormatError(f"not an swdl file (magic {head[0]!r} at {at:#x})")
        fname = DSEString.read(reader, 0xAA)
        tail = _SWDL_HEADER_TAIL.unpack(reader.read_bytes(_SWDL_HEADER_TAIL.size))
        return cls(*head, fname, *tail)

    def write(self, writer: Writer) -> int:
        written = writer.write_bytes(
            _SWDL_HEADER_HEAD.pack(
                self.magicn, int(self.flags), self.flen, self.version, self.unk1, self.unk2,
                self.unk3, self.unk4, self.year, self.month, self.day, self.hour,
                self.minute, self.second, self.centisecond,
            )
        )
        written += self.fname.write(writer)
        written += writer.write_bytes(
            _SWDL_HEADER_TAIL.pack(
                self.unk10, self.unk11, self.unk12, self.unk13, self.pcmdlen, self.unk14,
                self.nbwavislots, self.nbprgislots, self.unk17, self.wavilen,
            )
        )
        return written


# ── Envelope and tuning ───────────────────────────────────────────────

_ENVELOPE = struct.Struct("<?BBBHHbbbbbbbb")


@dataclass
class ADSRVolumeEnvelope:
    envon: bool = False
    envmult: int = 0
    unk19: int = 0x1
    unk20: int = 0x3
    unk21: int = 0xFF03
    unk22: int = 0xFFFF
    atkvol: int = 0
    attack: int = 0
    decay: int = 0
    sustain: int = 0
    hold: int = 0
    decay2: int = 0
    release: int = 0
    unk57: int = -1

    SIZE = 16

    @classmethod
    def default2(cls) -> "ADSRVolumeEnvelope":
        """Envelope the SF2 importer gives to freshly created samples."""

        return cls(
            envon=True, envmult=1, atkvol=127, attack=0, decay=0, sustain=127,
            hold=0, decay2=127, release=40,
        )

    @classmethod
    def read(cls, reader: Reader) -> "ADSRVolumeEnvelope":
        return cls(*_ENVELOPE.unpack(reader.read_bytes(cls.SIZE)))

    def write(self, writer: Writer) -> int:
        return writer.write_bytes(
            _ENVELOPE.pack(
                self.envon, self.envmult, self.unk19, self.unk20, self.unk21, self.unk22,
                self.atkvol, self.attack, self.decay, self.sustain, self.hold,
                self.decay2, self.release, self.unk57,
            )
        )


@dataclass
class Tuning:
    """Pitch offset packed as fine (0-255 ≙ 0-100 cents) and coarse (semitones)."""

    ftune: int = 0
    ctune: int = 0

    @classmethod
    def from_cents(cls, cents: int) -> "Tuning":
        if cents == 0:
            return cls(0, 0)
        sign = -1 if cents < 0 else 1
        semitones, fine = divmod(abs(cents), 100)
        ctune = sign * semitones
        fine = sign * fine
        if fine < 0:
            fine += 100
            ctune -= 1
        return cls(ftune=round(fine / 100 * 255), ctune=ctune)

    def to_cents(self) -> int:
        return self.ctune * 100 + round(self.ftune / 255 * 100)

    def add_cents(self, cents: int) -> None:
        normalized = Tuning.from_cents(self.to_cents() + cents)
        self.ftune, self.ctune = normalized.ftune, normalized.ctune

    def add_semitones(self, semitones: int) -> None:
        self.add_cents(semitones * 100)


# ── WAVI ──────────────────────────────────────────────────────────────

_SAMPLE_INFO = struct.Struct("<HHBbbbbbBBHHHHB?HHHIIIII")


@dataclass
class SampleInfo:
    unk1: int = 0xAA01
    id: int = 0
    tuning: Tuning = field(default_factory=Tuning)
    rootkey: int = 60
    ktps: int = 0
    volume: int = 127
    pan: int = 64
    unk5: int = 0x00
    unk58: int = 0x02
    unk6: int = 0x0000
    unk7: int = 0xAAAA
    unk59: int = DSE_VERSION
    smplfmt: int = SAMPLE_FORMAT_PCM16
    unk9: int = 0x09
    smplloop: bool = False
    unk10: int = 0x0801
    unk11: int = 0x0400
    unk12: int = 0x0101
    unk13: int = 0
    smplrate: int = 0
    smplpos: int = 0
    loopbeg: int = 0
    looplen: int = 0
    volume_envelope: ADSRVolumeEnvelope = field(default_factory=ADSRVolumeEnvelope)

    SIZE = 64

    def self_index(self) -> int:
        return self.id

    def byte_len(self) -> int:
        return 4 * (self.loopbeg + self.looplen)

    @classmethod
    def read(cls, reader: Reader) -> "SampleInfo":
        (
            unk1, id_, ftune, ctune, rootkey, ktps, volume, pan, unk5, unk58, unk6, unk7,
            unk59, smplfmt, unk9, smplloop, unk10, unk11, unk12, unk13, smplrate, smplpos,
            loopbeg, looplen,
        ) = _SAMPLE_INFO.unpack(reader.read_bytes(_SAMPLE_INFO.size))
        return cls(
            unk1=unk1, id=id_, tuning=Tuning(ftune, ctune), rootkey=rootkey, ktps=ktps,
            volume=volume, pan=pan, unk5=unk5, unk58=unk58, unk6=unk6, unk7=unk7,
            unk59=unk59, smplfmt=smplfmt, unk9=unk9, smplloop=smplloop, unk10=unk10,
            unk11=unk11, unk12=unk12, unk13=unk13, smplrate=smplrate, smplpos=smplpos,
            loopbeg=loopbeg, looplen=looplen,
            volume_envelope=ADSRVolumeEnvelope.read(reader),
        )

    def write(self, writer: Writer) -> int:
        written = writer.write_bytes(
            _SAMPLE_INFO.pack(
                self.unk1, self.id, self.tuning.ftune, self.tuning.ctune, self.rootkey,
                self.ktps, self.volume, self.pan, self.unk5, self.unk58, self.unk6,
                self.unk7, self.unk59, self.smplfmt, self.unk9, self.smplloop, self.unk10,
                self.unk11, self.unk12, self.unk13, self.smplrate, self.smplpos,
                self.loopbeg, self.looplen,
            )
        )
        return written + self.volume_envelope.write(writer)


@dataclass
class WAVIChunk:
    header: ChunkHeader = field(default_factory=lambda: ChunkHeader(label=WAVI_MAGIC))
    data: PointerTable[SampleInfo] = field(default_factory=PointerTable)

    @classmethod
    def read(cls, reader: Reader, slots: int, pointer_size: int = 2) -> "WAVIChunk":
        header = ChunkHeader.read_expecting(reader, WAVI_MAGIC)
        data = PointerTable.read(
            reader, SampleInfo, slots, header.chunklen, pointer_size=pointer_size
        )
        return cls(header=header, data=data)

    def write(self, writer: Writer) -> int:
        return self.header.write(writer) + self.data.write(writer)


# ── PRGI ──────────────────────────────────────────────────────────────

_PROGRAM_INFO_HEADER = struct.Struct("<HHbbBBHBBBBBB")
_LFO_ENTRY = struct.Struct("<BBBBHHHHHH")
_SPLIT_ENTRY = struct.Struct("<BBBBbbbbbbbbIHHBbbbbbBBHH")


@dataclass
class ProgramInfoHeader:
    id: int = 0
    nbsplits: int = 0
    prgvol: int = 127
    prgpan: int = 64
    unk3: int = 0
    thatFbyte: int = 0x0F
    unk4: int = 0x200
    unk5: int = 0
    nblfos: int = 0
    PadByte: int = 0xAA
    unk7: int = 0
    unk8: int = 0
    unk9: int = 0

    SIZE = 16

    @classmethod
    def read(cls, reader: Reader) -> "ProgramInfoHeader":
        return cls(*_PROGRAM_INFO_HEADER.unpack(reader.read_bytes(cls.SIZE)))

    def write(self, writer: Writer) -> int:
        return writer.write_bytes(
            _PROGRAM_INFO_HEADER.pack(
                self.id, self.nbsplits, self.prgvol, self.prgpan, self.unk3, self.thatFbyte,
                self.unk4, self.unk5, self.nblfos, self.PadByte, self.unk7, self.unk8,
                self.unk9,
            )
        )


@dataclass
class LFOEntry:
    unk34: int = 0
    unk52: int = 0
    dest: int = 0
    wshape: int = 1
    rate: int = 0
    unk29: int = 0
    depth: int = 0
    delay: int = 0
    unk32: int = 0
    unk33: int = 0

    SIZE = 16

    def self_index(self) -> None:
        return None

    @classmethod
    def read(cls, reader: Reader) -> "LFOEntry":
        return cls(*_LFO_ENTRY.unpack(reader.read_bytes(cls.SIZE)))

    def write(self, writer: Writer) -> int:
        return writer.write_bytes(
            _LFO_ENTRY.pack(
                self.unk34, self.unk52, self.dest, self.wshape, self.rate, self.unk29,
                self.depth, self.delay, self.unk32, self.unk33,
            )
        )


@dataclass
class SplitEntry:
    unk10: int = 0
    id: int = 0
    unk11: int = 2
    unk25: int = 1
    lowkey: int = 0
    hikey: int = 127
    lowkey2: int = 0
    hikey2: int = 127
    lovel: int = 0
    hivel: int = 127
    lovel2: int = 0
    hivel2: int = 127
    unk16: int = 0xAAAAAAAA
    unk17: int = 0xAAAA
    SmplID: int = 0
    tuning: Tuning = field(default_factory=Tuning)
    rootkey: int = 60
    ktps: int = 0
    smplvol: int = 127
    smplpan: int = 64
    kgrpid: int = 0
    unk22: int = 2
    unk23: int = 0
    unk24: int = 0xAAAA
    volume_envelope: ADSRVolumeEnvelope = field(default_factory=ADSRVolumeEnvelope)

    SIZE = 48

    def self_index(self) -> int:
        return self.id

    @classmethod
    def read(cls, reader: Reader) -> "SplitEntry":
        (
            unk10, id_, unk11, unk25, lowkey, hikey, lowkey2, hikey2, lovel, hivel, lovel2,
            hivel2, unk16, unk17, smpl_id, ftune, ctune, rootkey, ktps, smplvol, smplpan,
            kgrpid, unk22, unk23, unk24,
        ) = _SPLIT_ENTRY.unpack(reader.read_bytes(_SPLIT_ENTRY.size))
        return cls(
            unk10=unk10, id=id_, unk11=unk11, unk25=unk25, lowkey=lowkey, hikey=hikey,
            lowkey2=lowkey2, hikey2=hikey2, lovel=lovel, hivel=hivel, lovel2=lovel2,
            hivel2=hivel2, unk16=unk16, unk17=unk17, SmplID=smpl_id,
            tuning=Tuning(ftune, ctune), rootkey=rootkey, ktps=ktps, smplvol=smplvol,
            smplpan=smplpan, kgrpid=kgrpid, unk22=unk22, unk23=unk23, unk24=unk24,
            volume_envelope=ADSRVolumeEnvelope.read(reader),
        )

    def write(self, writer: Writer) -> int:
        written = writer.write_bytes(
            _SPLIT_ENTRY.pack(
                self.unk10, self.id, self.unk11, self.unk25, self.lowkey, self.hikey,
                self.lowkey2, self.hikey2, self.lovel, self.hivel, self.lovel2, self.hivel2,
                self.unk16, self.unk17, self.SmplID, self.tuning.ftune, self.tuning.ctune,
                self.rootkey, self.ktps, self.smplvol, self.smplpan, self.kgrpid,
                self.unk22, self.unk23, self.unk24,
            )
        )
        return written + self.volume_envelope.write(writer)


@dataclass
class ProgramInfo:
    header: ProgramInfoHeader = field(default_factory=ProgramInfoHeader)
    lfo_table: Table[LFOEntry] = field(default_factory=Table)
    splits_table: Table[SplitEntry] = field(default_factory=Table)

    def self_index(self) -> int:
        return self.header.id

    @classmethod
    def read(cls, reader: Reader) -> "ProgramInfo":
        header = ProgramInfoHeader.read(reader)
        lfo_table = Table.read(reader, LFOEntry, header.nblfos)
        reader.read_bytes(16)  # PadByte delimiter
        splits_table = Table.read(reader, SplitEntry, header.nbsplits)
        return cls(header=header, lfo_table=lfo_table, splits_table=splits_table)

    def write(self, writer: Writer) -> int:
        written = self.header.write(writer)
        written += self.lfo_table.write(writer)
        written += writer.write_bytes(bytes([self.header.PadByte]) * 16)
        written += self.splits_table.write(writer)
        return written


@dataclass
class PRGIChunk:
    header: ChunkHeader = field(default_factory=lambda: ChunkHeader(label=PRGI_MAGIC))
    data: PointerTable[ProgramInfo] = field(default_factory=PointerTable)

    @classmethod
    def read(cls, reader: Reader, slots: int, pointer_size: int = 2) -> "PRGIChunk":
        header = ChunkHeader.read_expecting(reader, PRGI_MAGIC)
        data = PointerTable.read(
            reader, ProgramInfo, slots, header.chunklen, pointer_size=pointer_size
        )
        return cls(header=header, data=data)

    def write(self, writer: Writer) -> int:
        return self.header.write(writer) + self.data.write(writer)


# ── KGRP ──────────────────────────────────────────────────────────────

_KEYGROUP = struct.Struct("<HbBbbBB")


@dataclass
class Keygroup:
    id: int = 0
    poly: int = -1
    priority: int = 8
    vclow: int = 0
    vchigh: int = 15
    unk50: int = 0
    unk51: int = 0

    SIZE = 8

    def self_index(self) -> int:
        return self.id

    @classmethod
    def read(cls, reader: Reader) -> "Keygroup":
        return cls(*_KEYGROUP.unpack(reader.read_bytes(cls.SIZE)))

    def write(self, writer: Writer) -> int:
        return writer.write_bytes(
            _KEYGROUP.pack(
                self.id, self.poly, self.priority, self.vclow, self.vchigh, self.unk50,
                self.unk51,
            )
        )


@dataclass
class KGRPChunk:
    header: ChunkHeader = field(default_factory=lambda: ChunkHeader(label=KGRP_MAGIC))
    data: Table[Keygroup] = field(default_factory=Table)
    padding: Optional[bytes] = None

    @classmethod
    def read(cls, reader: Reader) -> "KGRPChunk":
        header = ChunkHeader.read_expecting(reader, KGRP_MAGIC)
        data = Table.read(reader, Keygroup, header.chunklen // 8)
        padding: Optional[bytes] = reader.read_bytes(min(8, reader.remaining()))
        if padding[:4] in (PCMD_MAGIC, EOD_MAGIC):
            reader.seek(reader.tell() - len(padding))
            padding = None
        return cls(header=header, data=data, padding=padding)

    def write(self, writer: Writer) -> int:
        written = self.header.write(writer) + self.data.write(writer)
        if len(self.data) % 2 == 1:
            written += writer.write_bytes(KGRP_SENTINEL)
        return written


# ── PCMD ──────────────────────────────────────────────────────────────


@dataclass
class PCMDChunk:
    header: ChunkHeader = field(default_factory=lambda: ChunkHeader(label=PCMD_MAGIC))
    data: bytes = b""

    @classmethod
    def read(cls, reader: Reader) -> "PCMDChunk":
        header = ChunkHeader.read_expecting(reader, PCMD_MAGIC)
        data = reader.read_bytes(header.chunklen)
        while reader.remaining() and reader.peek_magic() != EOD_MAGIC:
            reader.read_u8()
        return cls(header=header, data=data)

    def write(self, writer: Writer) -> int:
        start = writer.tell()
        self.header.write(writer)
        writer.write_bytes(self.data)
        writer.pad_to(16, 0x00, start=start)
        return writer.tell() - start


# ── SWDL ──────────────────────────────────────────────────────────────


def peek_song_builder_flags(data: bytes) -> SongBuilderFlags:
    """Read the builder flags word from an SMDL/SWDL header without decoding it."""

    if len(data) < 8:
        raise DSEFormatError(f"file too short for a dse header ({len(data)} bytes)")
    return SongBuilderFlags(int.from_bytes(data[4:8], "little") & 0x3)


@dataclass
class SWDL:
    header: SWDLHeader = field(default_factory=SWDLHeader)
    wavi: WAVIChunk = field(default_factory=WAVIChunk)
    prgi: Optional[PRGIChunk] = None
    kgrp: Optional[KGRPChunk] = None
    pcmd: Optional[PCMDChunk] = None

    @classmethod
    def read(cls, reader: Reader) -> "SWDL":
        header = SWDLHeader.read(reader)
        flags = header.flags
        wavi = WAVIChunk.read(
            reader,
            header.nbwavislots,
            pointer_size_for(flags, SongBuilderFlags.WAVI_POINTER_EXTENSION),
        )
        prgi = kgrp = pcmd = None
        if reader.peek_magic() == PRGI_MAGIC:
            prgi = PRGIChunk.read(
                reader,
                header.nbprgislots,
                pointer_size_for(flags, SongBuilderFlags.PRGI_POINTER_EXTENSION),
            )
        if reader.peek_magic() == KGRP_MAGIC:
            kgrp = KGRPChunk.read(reader)
        if reader.peek_magic() == PCMD_MAGIC:
            pcmd = PCMDChunk.read(reader)
        ChunkHeader.read_expecting(reader, EOD_MAGIC)
        return cls(header=header, wavi=wavi, prgi=prgi, kgrp=kgrp, pcmd=pcmd)

    @classmethod
    def from_bytes(cls, data: bytes) -> "SWDL":
        return cls.read(Reader(data))

    def write(self, writer: Writer) -> int:
        start = writer.tell()
        self.header.write(writer)
        self.wavi.write(writer)
        if self.prgi is not None:
            self.prgi.write(writer)
        if self.kgrp is not None:
            self.kgrp.write(writer)
        if self.pcmd is not None:
            self.pcmd.write(writer)
        ChunkHeader(label=EOD_MAGIC).write(writer)
        return writer.tell() - start

    def to_bytes(self) -> bytes:
        writer = Writer()
        self.write(writer)
        return writer.getvalue()

    # ── metadata ──

    def get_link_bytes(self) -> Tuple[int, int]:
        return (self.header.unk1, self.header.unk2)

    def set_link_bytes(self, link_bytes: Tuple[int, int]) -> None:
        self.header.unk1, self.header.unk2 = link_bytes

    def set_metadata(self, last_modified: Tuple[int, ...], fname: str) -> None:
        (
            self.header.year, self.header.month, self.header.day, self.header.hour,
            self.header.minute, self.header.second, self.header.centisecond,
        ) = last_modified
        self.header.fname = DSEString(fname, 0xAA)

    # ── regenerate passes ──

    def _apply_pointer_widths(self, auto_extend: bool) -> None:
        flags = SongBuilderFlags(int(self.header.flags))
        tables = [(self.wavi.data, SongBuilderFlags.WAVI_POINTER_EXTENSION)]
        if self.prgi is not None:
            tables.append((self.prgi.data, SongBuilderFlags.PRGI_POINTER_EXTENSION))
        for table, bit in tables:
            table.pointer_size = pointer_size_for(flags, bit)
            if auto_extend and table.pointer_size == 2:
                try:
                    table.to_bytes()
                except PointerTableTooLarge:
                    flags |= bit
                    table.pointer_size = 4
        self.header.flags = flags

    def regenerate_read_markers(self, *, auto_pointer_extension: bool = False) -> None:
        """Recompute lengths, slot counts and chunk labels from the tree."""

        self._apply_pointer_widths(auto_pointer_extension)

        self.header.magicn = SWDL_MAGIC
        self.wavi.header.label = WAVI_MAGIC
        if self.pcmd is not None:
            self.header.pcmdlen = len(self.pcmd.data)
            self.pcmd.header.chunklen = len(self.pcmd.data)
            self.pcmd.header.label = PCMD_MAGIC
        elif self.header.pcmdlen & 0xFFFF0000 != EXTERNAL_PCMD:
            self.header.pcmdlen = 0

        self.header.nbwavislots = self.wavi.data.slots()
        self.header.nbprgislots = self.prgi.data.slots() if self.prgi is not None else 128
        self.header.wavilen = self.wavi.data.encoded_len()
        self.wavi.header.chunklen = self.header.wavilen
        if self.prgi is not None:
            self.prgi.header.label = PRGI_MAGIC
            for program in self.prgi.data:
                program.header.nbsplits = len(program.splits_table)
                program.header.nblfos = len(program.lfo_table)
            self.prgi.header.chunklen = self.prgi.data.encoded_len()
        if self.kgrp is not None:
            self.kgrp.header.label = KGRP_MAGIC
            self.kgrp.header.chunklen = len(self.kgrp.data.to_bytes())
        self.header.flen = len(self.to_bytes())

    def regenerate_automatic_parameters(self) -> None:
        """Recompute values that follow from other fields (ktps, split ranges, smplpos)."""

        for sample in self.wavi.data:
            sample.ktps = 60 - sample.rootkey
        if self.pcmd is not None:
            pos = 0
            for sample in self.wavi.data:
                sample.smplpos = pos
                pos += sample.byte_len()
        if self.prgi is None:
            return
        for program in self.prgi.data:
            pad = program.header.PadByte
            program.header.nbsplits = len(program.splits_table)
            program.header.nblfos = len(program.lfo_table)
            for split in program.splits_table:
                split.lowkey2 = split.lowkey
                split.hikey2 = split.hikey
                split.lovel2 = split.lovel
                split.hivel2 = split.hivel
                split.unk16 = int.from_bytes(bytes([pad]) * 4, "little")
                split.unk17 = int.from_bytes(bytes([pad]) * 2, "little")
                split.unk24 = int.from_bytes(bytes([pad]) * 2, "little")
                split.ktps = 60 - split.rootkey

    def sample_data(self, sample: SampleInfo) -> bytes:
        if self.pcmd is None:
            raise DSEFormatError("swdl has no pcmd chunk; sample data lives in the main bank")
        return self.pcmd.data[sample.smplpos : sample.smplpos + sample.byte_len()]


__all__ = [
    "ADSRVolumeEnvelope",
    "ChunkHeader",
    "KGRPChunk",
    "Keygroup",
    "LFOEntry",
    "PCMDChunk",
    "PRGIChunk",
    "ProgramInfo",
    "ProgramInfoHeader",
    "SWDL",
    "SWDLHeader",
    "SampleInfo",
    "SplitEntry",
    "Tuning",
    "WAVIChunk",
    "lookup_env_time_value_i16",
    "lookup_env_time_value_i32",
    "peek_song_builder_flags",
]
