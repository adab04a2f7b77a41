"""Shared DSE container types: fixed strings, dense tables and pointer tables.

Element types stored in a table implement the small codec protocol used
throughout the package::

    @classmethod
    def read(cls, reader: Reader) -> "T": ...
    def write(self, writer: Writer) -> int: ...
    def self_index(self) -> Optional[int]: ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntFlag
from typing import Generic, List, Optional, Type, TypeVar

from .binutils import Reader, Writer, align_up
from .errors import (
    DSEFormatError,
    DSEStringError,
    PointerTableDuplicateSelfIndex,
    PointerTableTooLarge,
    TableNonMatchingSelfIndex,
)

T = TypeVar("T")

POINTER_TABLE_MAGIC = 0xFFFFFFFF
POINTER_PAD_BYTE = 0xAA


class SongBuilderFlags(IntFlag):
    """Bits of the reserved header word shared by SMDL and SWDL headers."""

    NONE = 0x0
    WAVI_POINTER_EXTENSION = 0x1
    PRGI_POINTER_EXTENSION = 0x2


def pointer_size_for(flags: int, bit: SongBuilderFlags) -> int:
    return 4 if int(flags) & bit else 2


@dataclass
class DSEString:
    """ASCII name stored in a 16-byte field: text, a NUL, then `fill` bytes."""

    text: str = ""
    fill: int = 0xAA

    SIZE = 16

    def __post_init__(self) -> None:
        self.validate(self.text)

    @staticmethod
    def validate(text: str) -> None:
        if not text.isascii():
            raise DSEStringError(f"dse string {text!r} contains non-ascii characters")
        if len(text) > 15:
            raise DSEStringError(f"dse string {text!r} is longer than 15 characters")

    @classmethod
    def read(cls, reader: Reader, fill: int) -> "DSEString":
        raw = reader.read_bytes(cls.SIZE)
        end = raw.find(b"\x00")
        if end < 0:
            end = raw.find(bytes([fill]))
        if end < 0:
            end = 15
        try:
            text = raw[:end].decode("ascii")
        except UnicodeDecodeError as exc:
            raise DSEStringError(f"dse string {raw[:end]!r} is not ascii") from exc
        return cls(text=text, fill=fill)

    def to_bytes(self) -> bytes:
        self.validate(self.text)
        body = self.text.encode("ascii") + b"\x00"
        return body + bytes([self.fill]) * (self.SIZE - len(body))

    def write(self, writer: Writer) -> int:
        return writer.write_bytes(self.to_bytes())


def _self_index(obj: object) -> Optional[int]:
    getter = getattr(obj, "self_index", None)
    return getter() if getter is not None else None


@dataclass
class Table(Generic[T]):
    """Dense ordered sequence; self-indexed elements must sit at their index."""

    objects: List[T] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.objects)

    def __iter__(self):
        return iter(self.objects)

    @classmethod
    def read(cls, reader: Reader, item_type: Type[T], count: int) -> "Table[T]":
        return cls([item_type.read(reader) for _ in range(count)])

    def write(self, writer: Writer) -> int:
        written = 0
        for position, obj in enumerate(self.objects):
            index = _self_index(obj)
            if index is not None and index != position:
                raise TableNonMatchingSelfIndex(position, index)
            written += obj.write(writer)
        return written

    def to_bytes(self) -> bytes:
        writer = Writer()
        self.write(writer)
        return writer.getvalue()


@dataclass
class PointerTable(Generic[T]):
    """Sparse table addressed by a leading array of offsets.

    Layout: an optional `0xFFFFFFFF` magic word (32-bit pointers only), then
    `slots` pointers of `pointer_size` bytes, `0xAA` padding to a 16-byte
    boundary, then the packed element bodies.  Pointers are offsets from the
    start of the table; an empty slot holds 0.
    """

    objects: List[T] = field(default_factory=list)
    pointer_size: int = 2

    def __len__(self) -> int:
        return len(self.objects)

    def __iter__(self):
        return iter(self.objects)

    def slots(self) -> int:
        if not self.objects:
            return 0
        indices = [_self_index(obj) for obj in self.objects]
        if indices[0] is None:
            return len(self.objects)
        return max(indices) + 1

    def by_index(self, index: int) -> Optional[T]:
        for obj in self.objects:
            if _self_index(obj) == index:
                return obj
        return None

    def _header_len(self) -> int:
        return 4 if self.pointer_size == 4 else 0

    def pointer_region_len(self) -> int:
        return align_up(self._header_len() + self.slots() * self.pointer_size, 16)

    def write(self, writer: Writer) -> int:
        slots = self.slots()
        region_len = self.pointer_region_len()
        max_pointer = (1 << (8 * self.pointer_size)) - 1

        pointers = [0] * slots
        body = Writer()
        for position, obj in enumerate(self.objects):
            index = _self_index(obj)
            if index is None:
                index = position
            if pointers[index] != 0:
                raise PointerTableDuplicateSelfIndex(index)
            offset = region_len + len(body)
            if offset > max_pointer:
                raise PointerTableTooLarge(offset, self.pointer_size)
            pointers[index] = offset
            obj.write(body)

        start = writer.tell()
        if self.pointer_size == 4:
            writer.write_u32(POINTER_TABLE_MAGIC)
        for pointer in pointers:
            if self.pointer_size == 4:
                writer.write_u32(pointer)
            else:
                writer.write_u16(pointer)
        writer.pad_to(16, POINTER_PAD_BYTE, start=start)
        writer.write_bytes(body.getvalue())
        return writer.tell() - start

    def encoded_len(self) -> int:
        return len(self.to_bytes())

    def to_bytes(self) -> bytes:
        writer = Writer()
        self.write(writer)
        return writer.getvalue()

    @classmethod
    def read(
        cls,
        reader: Reader,
        item_type: Type[T],
        slots: int,
        chunk_len: int,
        *,
        pointer_size: int = 2,
    ) -> "PointerTable[T]":
        start = reader.tell()
        if pointer_size == 4:
            magic = reader.read_u32()
            if magic != POINTER_TABLE_MAGIC:
                raise DSEFormatError(
                    f"32-bit pointer table at {start:#x} lacks magic word (found {magic:#010x})"
                )
        objects: List[T] = []
        for slot in range(slots):
            pointer = reader.read_u32() if pointer_size == 4 else reader.read_u16()
            if pointer == 0:
                continue
            resume = reader.tell()
            reader.seek(start + pointer)
            objects.append(item_type.read(reader))
            reader.seek(resume)
        reader.seek(start + chunk_len)
        return cls(objects=objects, pointer_size=pointer_size)
