"""SMDL (sequence) codec.

An SMDL file is a 64-byte header, a 64-byte ``song`` chunk, ``nbtrks`` track
chunks and a closing ``eoc `` chunk.  Each track carries a 4-byte preamble and
an event stream terminated by ``EndOfTrack``; the chunk is padded with 0x98
to a 4-byte boundary.

Events are dispatched on their first byte:

- 0x00-0x7F  PlayNote (velocity, packed note byte, 0-3 duration bytes LE)
- 0x80-0x8F  FixedDurationPause (the byte itself selects the duration)
- 0x90-0xFF  Other (opcode + a fixed number of argument bytes)
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional, Tuple, Union

from .binutils import Reader, Writer
from .dtype import DSEString
from .errors import DSEBoundsError, DSEFormatError, DSESemanticError

SMDL_MAGIC = b"smd "
SMDL_MAGIC_ALT = b"smdl"
SONG_MAGIC = b"song"
TRK_MAGIC = b"trk "
EOC_MAGIC = b"eoc "

DSE_VERSION = 0x415
DEFAULT_DATE = (2008, 11, 16, 13, 40, 57, 3)
TRACK_PAD_BYTE = 0x98
MAX_NOTE_DURATION = 0xFFFFFF

# Tick lengths selected by the FixedDurationPause opcodes 0x80-0x8F.
FIXED_PAUSE_TICKS = (96, 72, 64, 48, 36, 32, 24, 18, 16, 12, 9, 8, 6, 4, 3, 2)


# ── Opcode table ──────────────────────────────────────────────────────


class OpcodeInfo(NamedTuple):
    name: str
    category: str   # pause | flow | track | song | program | unknown
    nargs: int      # argument bytes following the opcode


def _op(name: str, category: str, nargs: int) -> OpcodeInfo:
    return OpcodeInfo(name, category, nargs)


def _unknown(code: int, nargs: int) -> OpcodeInfo:
    return OpcodeInfo(f"0x{code:02X}", "unknown", nargs)


_NAMED: Dict[int, OpcodeInfo] = {
    0x90: _op("RepeatLastPause", "pause", 0),
    0x91: _op("AddToLastPause", "pause", 1),
    0x92: _op("Pause8Bits", "pause", 1),
    0x93: _op("Pause16Bits", "pause", 2),
    0x94: _op("Pause24Bits", "pause", 3),
    0x95: _op("PauseUntilRelease", "pause", 1),
    0x98: _op("EndOfTrack", "flow", 0),
    0x99: _op("LoopPoint", "flow", 0),
    0x9C: _op("Signal", "song", 1),
    0xA0: _op("SetTrackOctave", "track", 1),
    0xA1: _op("AddToTrackOctave", "track", 1),
    0xA4: _op("SetTempo", "song", 1),
    0xA5: _op("SetTempo2", "song", 1),
    0xA8: _op("SetSwdlAndBank", "program", 2),
    0xA9: _op("SetSwdl", "program", 1),
    0xAA: _op("SetBank", "program", 1),
    0xAB: _op("SkipNextByte", "flow", 1),
    0xAC: _op("SetProgram", "program", 1),
    0xCB: _op("SkipNext2Bytes", "flow", 2),
    0xD7: _op("PitchBend", "track", 2),
    0xE0: _op("SetTrackVolume", "track", 1),
    0xE3: _op("SetTrackExpression", "track", 1),
    0xE8: _op("SetTrackPan", "track", 1),
    0xF8: _op("SkipNext2Bytes2", "flow", 2),
}

_UNNAMED_NARGS: Dict[int, int] = {
    0x96: 0, 0x97: 0, 0x9A: 0, 0x9B: 0, 0x9D: 0, 0x9E: 0, 0x9F: 0,
    0xA2: 0, 0xA3: 0, 0xA6: 0, 0xA7: 0,
    0xAD: 0, 0xAE: 0, 0xAF: 3, 0xB0: 0, 0xB1: 1, 0xB2: 1, 0xB3: 1, 0xB4: 2,
    0xB5: 1, 0xB6: 1, 0xB7: 0, 0xB8: 0, 0xB9: 0, 0xBA: 0, 0xBB: 0, 0xBC: 1,
    0xBD: 0, 0xBE: 1, 0xBF: 1, 0xC0: 1, 0xC1: 0, 0xC2: 0, 0xC3: 1, 0xC4: 0,
    0xC5: 0, 0xC6: 0, 0xC7: 0, 0xC8: 0, 0xC9: 0, 0xCA: 0, 0xCC: 0, 0xCD: 0,
    0xCE: 0, 0xCF: 0, 0xD0: 1, 0xD1: 1, 0xD2: 1, 0xD3: 2, 0xD4: 3, 0xD5: 2,
    0xD6: 2, 0xD8: 2, 0xD9: 0, 0xDA: 0, 0xDB: 1, 0xDC: 5, 0xDD: 4, 0xDE: 0,
    0xDF: 1, 0xE1: 1, 0xE2: 3, 0xE4: 5, 0xE5: 4, 0xE6: 0, 0xE7: 1, 0xE9: 1,
    0xEA: 3, 0xEB: 0, 0xEC: 5, 0xED: 4, 0xEE: 0, 0xEF: 1, 0xF0: 5, 0xF1: 4,
    0xF2: 2, 0xF3: 3, 0xF4: 0, 0xF5: 0, 0xF6: 1, 0xF7: 0, 0xF9: 0, 0xFA: 0,
    0xFB: 0, 0xFC: 0, 0xFD: 0, 0xFE: 0, 0xFF: 0,
}

OPCODES: Dict[int, OpcodeInfo] = {
    code: _NAMED[code] if code in _NAMED else _unknown(code, _UNNAMED_NARGS[code])
    for code in range(0x90, 0x100)
}
_BY_NAME: Dict[str, int] = {info.name: code for code, info in OPCODES.items()}
_BY_NAME_LOWER: Dict[str, int] = {name.lower(): code for name, code in _BY_NAME.items()}


def name_to_code(name: str) -> int:
    """Resolve a canonical opcode name (or a ``0x..`` literal) to its byte."""

    key = name.strip()
    if key in _BY_NAME:
        return _BY_NAME[key]
    if key.lower() in _BY_NAME_LOWER:
        return _BY_NAME_LOWER[key.lower()]
    try:
        code = int(key, 0)
    except ValueError:
        raise DSESemanticError(f"unknown dse opcode {name!r}") from None
    if code not in OPCODES:
        raise DSESemanticError(f"opcode {code:#x} is outside 0x90-0xFF")
    return code


def code_to_name(code: int) -> str:
    return opcode_info(code).name


def arg_count(code: int) -> int:
    return opcode_info(code).nargs


def opcode_info(code: int) -> OpcodeInfo:
    try:
        return OPCODES[code]
    except KeyError:
        raise DSEFormatError(f"byte {code:#04x} is not an 'other' opcode") from None


# ── Events ────────────────────────────────────────────────────────────


def duration_byte_len(duration: int) -> int:
    if duration < 0 or duration > MAX_NOTE_DURATION:
        raise DSEBoundsError(f"key-down duration {duration} outside 0..0xFFFFFF")
    if duration == 0:
        return 0
    return (duration.bit_length() + 7) // 8


@dataclass
class PlayNote:
    velocity: int = 0
    octavemod: int = 2
    note: int = 0
    keydownduration: int = 0
    # Duration byte count as read; None means the minimal width.
    nbparambytes: Optional[int] = None

    def param_len(self) -> int:
        needed = duration_byte_len(self.keydownduration)
        if self.nbparambytes is not None and self.nbparambytes >= needed:
            return self.nbparambytes
        return needed

    @classmethod
    def read(cls, reader: Reader) -> "PlayNote":
        velocity = reader.read_u8()
        packed = reader.read_u8()
        nbparambytes = (packed >> 6) & 0x3
        duration = int.from_bytes(reader.read_bytes(nbparambytes), "little")
        return cls(
            velocity=velocity,
            octavemod=(packed >> 4) & 0x3,
            note=packed & 0xF,
            keydownduration=duration,
            nbparambytes=nbparambytes,
        )

    def write(self, writer: Writer) -> int:
        if not 0 <= self.velocity <= 0x7F:
            raise DSEBoundsError(f"note velocity {self.velocity} outside 0..127")
        n = self.param_len()
        writer.write_u8(self.velocity)
        writer.write_u8((n << 6) | ((self.octavemod & 0x3) << 4) | (self.note & 0xF))
        writer.write_bytes(self.keydownduration.to_bytes(4, "little")[:n])
        return 2 + n


@dataclass
class FixedDurationPause:
    duration: int = 0x80

    @classmethod
    def read(cls, reader: Reader) -> "FixedDurationPause":
        return cls(reader.read_u8())

    def write(self, writer: Writer) -> int:
        if not 0x80 <= self.duration <= 0x8F:
            raise DSEBoundsError(f"fixed pause byte {self.duration:#x} outside 0x80..0x8F")
        return writer.write_u8(self.duration)

    def ticks(self) -> int:
        return FIXED_PAUSE_TICKS[self.duration - 0x80]


@dataclass
class Other:
    code: int = 0x98
    parameters: bytes = b""

    @property
    def name(self) -> str:
        return code_to_name(self.code)

    @classmethod
    def named(cls, name: str, parameters: bytes = b"") -> "Other":
        code = name_to_code(name)
        nargs = arg_count(code)
        if len(parameters) != nargs:
            raise DSESemanticError(
                f"{code_to_name(code)} takes {nargs} argument bytes, got {len(parameters)}"
            )
        return cls(code=code, parameters=bytes(parameters))

    @classmethod
    def read(cls, reader: Reader) -> "Other":
        code = reader.read_u8()
        return cls(code=code, parameters=reader.read_bytes(arg_count(code)))

    def write(self, writer: Writer) -> int:
        nargs = arg_count(self.code)
        params = bytes(self.parameters).ljust(nargs, b"\x00")[:nargs]
        writer.write_u8(self.code)
        writer.write_bytes(params)
        return 1 + nargs

    def is_eot_event(self) -> bool:
        return self.code == 0x98

    def pause_ticks(self) -> int:
        """Ticks this event advances the track by (0 for non-pause events)."""

        name = self.name
        if name in ("Pause8Bits", "Pause16Bits", "Pause24Bits"):
            return int.from_bytes(self.parameters, "little")
        return 0


DSEEvent = Union[PlayNote, FixedDurationPause, Other]


def read_event(reader: Reader) -> DSEEvent:
    first = reader.peek_byte()
    if first is None:
        raise DSEFormatError("event stream ended without EndOfTrack")
    if first < 0x80:
        return PlayNote.read(reader)
    if first < 0x90:
        return FixedDurationPause.read(reader)
    return Other.read(reader)


# ── Chunks ────────────────────────────────────────────────────────────

_SMDL_HEADER_HEAD = struct.Struct("<4sIIHBBIIHBBBBBB")
_SMDL_HEADER_TAIL = struct.Struct("<IIII")
_SONG_CHUNK = struct.Struct("<4sIIIHHHBBIIIIHHI16s")
_TRK_HEADER = struct.Struct("<4sIII")
_TRK_PREAMBLE = struct.Struct("<BBBB")


@dataclass
class SMDLHeader:
    magicn: bytes = SMDL_MAGIC
    flags: int = 0
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
    fname: DSEString = field(default_factory=lambda: DSEString("", 0xFF))
    unk5: int = 1
    unk6: int = 1
    unk8: int = 0xFFFFFFFF
    unk9: int = 0xFFFFFFFF

    SIZE = 64

    @classmethod
    def read(cls, reader: Reader) -> "SMDLHeader":
        head = _SMDL_HEADER_HEAD.unpack(reader.read_bytes(_SMDL_HEADER_HEAD.size))
        if head[0] not in (SMDL_MAGIC, SMDL_MAGIC_ALT):
            raise DSEFormatError(f"not an smdl file (magic {head[0]!r})")
        fname = DSEString.read(reader, 0xFF)
        tail = _SMDL_HEADER_TAIL.unpack(reader.read_bytes(_SMDL_HEADER_TAIL.size))
        return cls(*head, fname, *tail)

    def write(self, writer: Writer) -> int:
        written = writer.write_bytes(
            _SMDL_HEADER_HEAD.pack(
                self.magicn, int(self.flags), self.flen, self.version, self.unk1, self.unk2,
                self.unk3, self.unk4, self.year, self.month, self.day, self.hour,
                self.minute, self.second, self.centisecond,
            )
        )
        written += self.fname.write(writer)
        written += writer.write_bytes(
            _SMDL_HEADER_TAIL.pack(self.unk5, self.unk6, self.unk8, self.unk9)
        )
        return written


@dataclass
class SongChunk:
    label: bytes = SONG_MAGIC
    unk1: int = 0x01000000
    unk2: int = 0xFF10
    unk3: int = 0xFFFFFFB0
    unk4: int = 0x1
    tpqn: int = 48
    unk5: int = 0xFF01
    nbtrks: int = 0
    nbchans: int = 0
    unk6: int = 0x0F000000
    unk7: int = 0xFFFFFFFF
    unk8: int = 0x40000000
    unk9: int = 0x00404000
    unk10: int = 0x0200
    unk11: int = 0x0800
    unk12: int = 0xFFFFFF00
    unkpad: bytes = b"\xFF" * 16

    SIZE = 64

    @classmethod
    def read(cls, reader: Reader) -> "SongChunk":
        values = _SONG_CHUNK.unpack(reader.read_bytes(cls.SIZE))
        if values[0] != SONG_MAGIC:
            raise DSEFormatError(f"expected 'song' chunk, found {values[0]!r}")
        return cls(*values)

    def write(self, writer: Writer) -> int:
        return writer.write_bytes(
            _SONG_CHUNK.pack(
                self.label, self.unk1, self.unk2, self.unk3, self.unk4, self.tpqn, self.unk5,
                self.nbtrks, self.nbchans, self.unk6, self.unk7, self.unk8, self.unk9,
                self.unk10, self.unk11, self.unk12, self.unkpad,
            )
        )


@dataclass
class TrkChunkHeader:
    label: bytes = TRK_MAGIC
    param1: int = 0x01000000
    param2: int = 0x0000FF04
    chunklen: int = 0

    SIZE = 16

    @classmethod
    def read(cls, reader: Reader, label: bytes = TRK_MAGIC) -> "TrkChunkHeader":
        at = reader.tell()
        header = cls(*_TRK_HEADER.unpack(reader.read_bytes(cls.SIZE)))
        if header.label != label:
            raise DSEFormatError(f"expected {label!r} chunk at {at:#x}, found {header.label!r}")
        return header

    def write(self, writer: Writer) -> int:
        return writer.write_bytes(
            _TRK_HEADER.pack(self.label, self.param1, self.param2, self.chunklen)
        )


@dataclass
class TrkPreamble:
    trkid: int = 0
    chanid: int = 0
    unk1: int = 0
    unk2: int = 0

    SIZE = 4

    @classmethod
    def read(cls, reader: Reader) -> "TrkPreamble":
        return cls(*_TRK_PREAMBLE.unpack(reader.read_bytes(cls.SIZE)))

    def write(self, writer: Writer) -> int:
        return writer.write_bytes(
            _TRK_PREAMBLE.pack(self.trkid, self.chanid, self.unk1, self.unk2)
        )


@dataclass
class TrkChunk:
    header: TrkChunkHeader = field(default_factory=TrkChunkHeader)
    preamble: TrkPreamble = field(default_factory=TrkPreamble)
    events: List[DSEEvent] = field(default_factory=list)

    @classmethod
    def read(cls, reader: Reader) -> "TrkChunk":
        header = TrkChunkHeader.read(reader)
        preamble = TrkPreamble.read(reader)
        end = reader.tell() + header.chunklen - TrkPreamble.SIZE
        events: List[DSEEvent] = []
        while reader.tell() < end:
            events.append(read_event(reader))
        while reader.peek_byte() == TRACK_PAD_BYTE:
            reader.read_u8()
        return cls(header=header, preamble=preamble, events=events)

    def events_bytes(self) -> bytes:
        writer = Writer()
        for event in self.events:
            event.write(writer)
        return writer.getvalue()

    def write(self, writer: Writer) -> int:
        start = writer.tell()
        self.header.write(writer)
        self.preamble.write(writer)
        writer.write_bytes(self.events_bytes())
        writer.pad_to(4, TRACK_PAD_BYTE, start=start)
        return writer.tell() - start

    def total_ticks(self) -> int:
        """Ticks consumed by every pause in the stream."""

        ticks = 0
        for event in self.events:
            if isinstance(event, Other):
                ticks += event.pause_ticks()
            elif isinstance(event, FixedDurationPause):
                ticks += event.ticks()
        return ticks


@dataclass
class EOCChunk:
    header: TrkChunkHeader = field(default_factory=lambda: TrkChunkHeader(label=EOC_MAGIC))

    @classmethod
    def read(cls, reader: Reader) -> "EOCChunk":
        return cls(TrkChunkHeader.read(reader, EOC_MAGIC))

    def write(self, writer: Writer) -> int:
        return self.header.write(writer)


@dataclass
class SMDL:
    header: SMDLHeader = field(default_factory=SMDLHeader)
    song: SongChunk = field(default_factory=SongChunk)
    trks: List[TrkChunk] = field(default_factory=list)
    eoc: EOCChunk = field(default_factory=EOCChunk)

    @classmethod
    def read(cls, reader: Reader) -> "SMDL":
        header = SMDLHeader.read(reader)
        song = SongChunk.read(reader)
        trks = [TrkChunk.read(reader) for _ in range(song.nbtrks)]
        eoc = EOCChunk.read(reader)
        return cls(header=header, song=song, trks=trks, eoc=eoc)

    @classmethod
    def from_bytes(cls, data: bytes) -> "SMDL":
        return cls.read(Reader(data))

    def write(self, writer: Writer) -> int:
        start = writer.tell()
        self.header.write(writer)
        self.song.write(writer)
        for trk in self.trks:
            trk.write(writer)
        self.eoc.write(writer)
        return writer.tell() - start

    def to_bytes(self) -> bytes:
        writer = Writer()
        self.write(writer)
        return writer.getvalue()

    def get_link_bytes(self) -> Tuple[int, int]:
        return (self.header.unk1, self.header.unk2)

    def set_link_bytes(self, link_bytes: Tuple[int, int]) -> None:
        self.header.unk1, self.header.unk2 = link_bytes

    def set_metadata(self, last_modified: Tuple[int, ...], fname: str) -> None:
        (
            self.header.year, self.header.month, self.header.day, self.header.hour,
            self.header.minute, self.header.second, self.header.centisecond,
        ) = last_modified
        self.header.fname = DSEString(fname, 0xFF)

    def regenerate_read_markers(self) -> None:
        if not self.trks:
            raise DSESemanticError(
                "smdl contains zero tracks; cannot determine the number of channels"
            )
        if self.header.magicn not in (SMDL_MAGIC, SMDL_MAGIC_ALT):
            self.header.magicn = SMDL_MAGIC
        self.song.label = SONG_MAGIC
        self.song.nbtrks = len(self.trks)
        self.song.nbchans = max(trk.preamble.chanid for trk in self.trks) + 1
        for trk in self.trks:
            trk.header.label = TRK_MAGIC
            trk.header.chunklen = TrkPreamble.SIZE + len(trk.events_bytes())
        self.eoc.header.label = EOC_MAGIC
        self.header.flen = len(self.to_bytes())


def create_smdl_shell(last_modified: Tuple[int, ...], name: str) -> SMDL:
    smdl = SMDL()
    smdl.set_metadata(last_modified, name)
    return smdl


__all__ = [
    "DSEEvent",
    "EOCChunk",
    "FixedDurationPause",
    "OPCODES",
    "Other",
    "PlayNote",
    "SMDL",
    "SMDLHeader",
    "SongChunk",
    "TrkChunk",
    "TrkChunkHeader",
    "TrkPreamble",
    "arg_count",
    "code_to_name",
    "create_smdl_shell",
    "name_to_code",
    "read_event",
]
