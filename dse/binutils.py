"""Little-endian cursor helpers shared by the SMDL and SWDL codecs."""

from __future__ import annotations

import struct

from .errors import DSEFormatError


def align_up(length: int, alignment: int) -> int:
    """Round `length` up to the next multiple of `alignment`."""

    if length == 0:
        return 0
    return ((length - 1) | (alignment - 1)) + 1


class Reader:
    def __init__(self, data: bytes, pos: int = 0) -> None:
        self.data = bytes(data)
        self.pos = pos

    def tell(self) -> int:
        return self.pos

    def seek(self, pos: int) -> None:
        if pos < 0 or pos > len(self.data):
            raise DSEFormatError(f"seek to {pos:#x} outside of {len(self.data)}-byte buffer")
        self.pos = pos

    def remaining(self) -> int:
        return len(self.data) - self.pos

    def read_bytes(self, n: int) -> bytes:
        end = self.pos + n
        if n < 0 or end > len(self.data):
            raise DSEFormatError(
                f"unexpected end of data at {self.pos:#x} (wanted {n} bytes, "
                f"{self.remaining()} left)"
            )
        chunk = self.data[self.pos : end]
        self.pos = end
        return chunk

    def _unpack(self, fmt: str) -> int:
        size = struct.calcsize(fmt)
        return struct.unpack(fmt, self.read_bytes(size))[0]

    def read_u8(self) -> int:
        return self._unpack("<B")

    def read_i8(self) -> int:
        return self._unpack("<b")

    def read_u16(self) -> int:
        return self._unpack("<H")

    def read_i16(self) -> int:
        return self._unpack("<h")

    def read_u32(self) -> int:
        return self._unpack("<I")

    def read_i32(self) -> int:
        return self._unpack("<i")

    def read_bool(self) -> bool:
        return self.read_u8() != 0

    def peek_magic(self) -> bytes:
        """Return the next 4 bytes without moving the cursor (short at EOF)."""

        return self.data[self.pos : self.pos + 4]

    def peek_byte(self) -> int | None:
        if self.pos >= len(self.data):
            return None
        return self.data[self.pos]


class Writer:
    def __init__(self) -> None:
        self.buf = bytearray()

    def __len__(self) -> int:
        return len(self.buf)

    def tell(self) -> int:
        return len(self.buf)

    def getvalue(self) -> bytes:
        return bytes(self.buf)

    def write_bytes(self, data: bytes) -> int:
        self.buf.extend(data)
        return len(data)

    def _pack(self, fmt: str, value: int) -> int:
        try:
            packed = struct.pack(fmt, value)
        except struct.error as exc:
            raise DSEFormatError(f"value {value!r} does not fit field '{fmt}': {exc}") from exc
        self.buf.extend(packed)
        return len(packed)

    def write_u8(self, value: int) -> int:
        return self._pack("<B", value)

    def write_i8(self, value: int) -> int:
        return self._pack("<b", value)

    def write_u16(self, value: int) -> int:
        return self._pack("<H", value)

    def write_i16(self, value: int) -> int:
        return self._pack("<h", value)

    def write_u32(self, value: int) -> int:
        return self._pack("<I", value)

    def write_i32(self, value: int) -> int:
        return self._pack("<i", value)

    def write_bool(self, value: bool) -> int:
        return self.write_u8(1 if value else 0)

    def pad_to(self, alignment: int, fill: int, *, start: int = 0) -> int:
        """Pad so that the bytes written since `start` are a multiple of `alignment`."""

        written = len(self.buf) - start
        pad = align_up(written, alignment) - written
        self.buf.extend(bytes([fill]) * pad)
        return pad
