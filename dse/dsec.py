"""Parser for ``dsec`` MIDI markers.

A marker such as ``dsec trk 3; SetTrackVolume(100); evttrk; SetTempo(0x78)``
injects raw DSE events while a MIDI file is translated.  ``trk <n>`` and
``evttrk`` retarget the commands that follow; every other command is an
opcode name with its argument bytes.

Arguments are either bare integers (stored as one byte, i8 if it fits, u8
otherwise) or typed values written ``<value>_<type>`` where type is ``i8``,
``u8`` or ``(i|u)(16|32|64|128)(le|be)``, e.g. ``-300_i16le``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Tuple

from .errors import DSECommandParseError, DSEError
from .smdl import arg_count, code_to_name, name_to_code

DSEC_PREFIX = "dsec"
META_TRACK = 0
MAX_TRACK = 16

_TYPED_ARG = re.compile(
    r"^(?P<value>[-+]?(?:0[xX][0-9a-fA-F]+|\d+))_"
    r"(?P<type>(?P<sign>[iu])(?:(?P<byte>8)|(?P<bits>16|32|64|128)(?P<order>le|be)))$"
)


@dataclass
class DSECommand:
    trk: int
    code: int
    parameters: bytes

    @property
    def name(self) -> str:
        return code_to_name(self.code)


def is_dsec_marker(text: str) -> bool:
    head = text.strip()[: len(DSEC_PREFIX) + 1].lower()
    return head == DSEC_PREFIX or (head.startswith(DSEC_PREFIX) and not head[-1].isalnum())


def _parse_int(text: str) -> int:
    try:
        return int(text, 0)
    except ValueError:
        raise DSECommandParseError(f"cannot parse value {text!r}") from None


def encode_argument(arg: str) -> bytes:
    """Serialize one command argument to its byte form."""

    arg = arg.strip()
    typed = _TYPED_ARG.match(arg)
    if typed is None:
        value = _parse_int(arg)
        if -0x80 <= value <= 0x7F:
            return value.to_bytes(1, "little", signed=True)
        if 0 <= value <= 0xFF:
            return value.to_bytes(1, "little")
        raise DSECommandParseError(f"bare value {arg!r} does not fit in one byte")

    value = _parse_int(typed.group("value"))
    size = 1 if typed.group("byte") else int(typed.group("bits")) // 8
    byteorder = "big" if typed.group("order") == "be" else "little"
    try:
        return value.to_bytes(size, byteorder, signed=typed.group("sign") == "i")
    except OverflowError:
        raise DSECommandParseError(
            f"value {value} does not fit type {typed.group('type')}"
        ) from None


def _split_call(statement: str) -> Tuple[str, List[str]]:
    if statement.count("(") != statement.count(")"):
        raise DSECommandParseError(f"unbalanced parentheses in {statement!r}")
    if "(" not in statement:
        parts = statement.split()
        return parts[0], parts[1:]
    open_at = statement.index("(")
    close_at = statement.rindex(")")
    if close_at < open_at or statement[close_at + 1 :].strip():
        raise DSECommandParseError(f"malformed command {statement!r}")
    if "(" in statement[open_at + 1 : close_at]:
        raise DSECommandParseError(f"nested parentheses in {statement!r}")
    name = statement[:open_at].strip()
    inner = statement[open_at + 1 : close_at].strip()
    args = [s.strip() for s in inner.split(",")] if inner else []
    if any(not a for a in args):
        raise DSECommandParseError(f"empty argument in {statement!r}")
    return name, args


def parse_dsec(text: str, default_trk: int = META_TRACK) -> List[DSECommand]:
    """Parse a ``dsec`` marker into commands bound to their target tracks."""

    body = text.strip()
    if not is_dsec_marker(body):
        raise DSECommandParseError(f"marker {text!r} is not a dsec command")
    body = body[len(DSEC_PREFIX) :]

    commands: List[DSECommand] = []
    trk = default_trk
    for statement in body.split(";"):
        statement = statement.strip()
        if not statement:
            continue
        name, args = _split_call(statement)
        lowered = name.lower()
        if lowered == "trk":
            if len(args) != 1:
                raise DSECommandParseError(f"trk takes one track number, got {args!r}")
            trk = _parse_int(args[0])
            if not 0 <= trk <= MAX_TRACK:
                raise DSECommandParseError(f"track {trk} outside 0..{MAX_TRACK}")
            continue
        if lowered == "evttrk":
            if args:
                raise DSECommandParseError("evttrk takes no arguments")
            trk = META_TRACK
            continue

        try:
            code = name_to_code(name)
        except DSEError as exc:
            raise DSECommandParseError(str(exc)) from exc
        parameters = b"".join(encode_argument(a) for a in args)
        expected = arg_count(code)
        if len(parameters) != expected:
            raise DSECommandParseError(
                f"{code_to_name(code)} takes {expected} argument bytes, got {len(parameters)}"
            )
        commands.append(DSECommand(trk=trk, code=code, parameters=parameters))
    return commands


__all__ = ["DSECommand", "encode_argument", "is_dsec_marker", "parse_dsec"]
