"""XML mirror of SMDL and SWDL trees.

Every dataclass becomes an element whose attributes carry its scalar fields
under the same names used in the tree; nested dataclasses and tables become
child elements.  Fields recomputed by the regenerate passes (lengths, slot
counts, chunk labels) are left out, so a tree read back from XML must be
regenerated before it is encoded.

``Other`` events are written with their canonical opcode name; PCMD sample
data is base64 text.
"""

from __future__ import annotations

import base64
import dataclasses
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Tuple, Type, Union

from .dtype import DSEString, PointerTable, Table
from .errors import DSEFormatError
from .smdl import SMDL, FixedDurationPause, Other, PlayNote, TrkChunk, name_to_code
from .swdl import (
    SWDL,
    KGRPChunk,
    Keygroup,
    LFOEntry,
    PCMDChunk,
    PRGIChunk,
    ProgramInfo,
    SampleInfo,
    SplitEntry,
    WAVIChunk,
)

DERIVED_FIELDS = frozenset(
    {
        "flen", "wavilen", "nbwavislots", "nbprgislots", "chunklen", "nbtrks",
        "nbchans", "nbsplits", "nblfos", "label", "padding",
    }
)

_TABLE_ITEMS: Dict[Tuple[type, str], type] = {
    (WAVIChunk, "data"): SampleInfo,
    (PRGIChunk, "data"): ProgramInfo,
    (KGRPChunk, "data"): Keygroup,
    (ProgramInfo, "lfo_table"): LFOEntry,
    (ProgramInfo, "splits_table"): SplitEntry,
}
_OPTIONAL_CHUNKS: Dict[str, type] = {"prgi": PRGIChunk, "kgrp": KGRPChunk, "pcmd": PCMDChunk}
_EVENT_TYPES: Dict[str, type] = {"PlayNote": PlayNote, "FixedDurationPause": FixedDurationPause}


def xml_bool(value: Union[bool, str]) -> bool:
    """Accept a native bool or its attribute spelling."""

    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1"):
        return True
    if text in ("false", "0"):
        return False
    raise DSEFormatError(f"cannot read {value!r} as a boolean")


def _xml_int(value: str) -> int:
    try:
        return int(value, 0)
    except ValueError:
        raise DSEFormatError(f"cannot read {value!r} as an integer") from None


# ── Encoding ──────────────────────────────────────────────────────────


def _to_element(tag: str, obj: Any) -> ET.Element:
    elem = ET.Element(tag)
    for f in dataclasses.fields(obj):
        if f.name in DERIVED_FIELDS:
            continue
        value = getattr(obj, f.name)
        if value is None:
            continue
        if isinstance(value, (Table, PointerTable)):
            table = ET.SubElement(elem, f.name)
            for item in value:
                table.append(_to_element(type(item).__name__, item))
        elif isinstance(value, list):
            continue
        elif isinstance(obj, PCMDChunk) and f.name == "data":
            ET.SubElement(elem, f.name).text = base64.b64encode(value).decode("ascii")
        elif dataclasses.is_dataclass(value) and not isinstance(value, DSEString):
            elem.append(_to_element(f.name, value))
        elif isinstance(value, bool):
            elem.set(f.name, "true" if value else "false")
        elif isinstance(value, int):
            elem.set(f.name, str(int(value)))
        elif isinstance(value, bytes):
            elem.set(f.name, value.hex())
        elif isinstance(value, DSEString):
            elem.set(f.name, value.text)
        else:
            raise DSEFormatError(f"cannot mirror field {f.name} of type {type(value).__name__}")
    return elem


def _event_to_element(event: Any) -> ET.Element:
    if isinstance(event, Other):
        elem = ET.Element("Other")
        elem.set("name", event.name)
        elem.set("parameters", bytes(event.parameters).hex())
        return elem
    return _to_element(type(event).__name__, event)


def _tostring(root: ET.Element) -> str:
    ET.indent(root)
    return ET.tostring(root, encoding="unicode") + "\n"


def smdl_to_xml(smdl: SMDL) -> str:
    root = ET.Element("SMDL")
    root.append(_to_element("header", smdl.header))
    root.append(_to_element("song", smdl.song))
    trks = ET.SubElement(root, "trks")
    for trk in smdl.trks:
        elem = _to_element("trk", trk)
        events = ET.SubElement(elem, "events")
        for event in trk.events:
            events.append(_event_to_element(event))
        trks.append(elem)
    root.append(_to_element("eoc", smdl.eoc))
    return _tostring(root)


def swdl_to_xml(swdl: SWDL) -> str:
    return _tostring(_to_element("SWDL", swdl))


# ── Decoding ──────────────────────────────────────────────────────────


def _child(elem: ET.Element, tag: str) -> ET.Element:
    child = elem.find(tag)
    if child is None:
        raise DSEFormatError(f"<{elem.tag}> lacks a <{tag}> element")
    return child


def _from_element(cls: Type[Any], elem: ET.Element) -> Any:
    """Build `cls` from `elem`, reading each field the way its default is typed."""

    obj = cls()
    for f in dataclasses.fields(cls):
        if f.name in DERIVED_FIELDS:
            continue
        default = getattr(obj, f.name)
        item_type = _TABLE_ITEMS.get((cls, f.name))
        if item_type is not None:
            table = elem.find(f.name)
            items = [] if table is None else [_from_element(item_type, e) for e in table]
            default.objects = items
            continue
        if f.name in _OPTIONAL_CHUNKS:
            child = elem.find(f.name)
            if child is not None:
                setattr(obj, f.name, _from_element(_OPTIONAL_CHUNKS[f.name], child))
            continue
        if cls is PCMDChunk and f.name == "data":
            text = _child(elem, f.name).text or ""
            obj.data = base64.b64decode(text.strip())
            continue
        if isinstance(default, list):
            continue
        if dataclasses.is_dataclass(default) and not isinstance(default, DSEString):
            child = elem.find(f.name)
            if child is not None:
                setattr(obj, f.name, _from_element(type(default), child))
            continue

        raw = elem.get(f.name)
        if raw is None:
            continue
        if isinstance(default, bool):
            value: Any = xml_bool(raw)
        elif isinstance(default, int) or default is None:
            value = _xml_int(raw)
        elif isinstance(default, bytes):
            try:
                value = bytes.fromhex(raw)
            except ValueError:
                raise DSEFormatError(f"field {f.name} holds invalid hex {raw!r}") from None
        elif isinstance(default, DSEString):
            value = DSEString(raw, default.fill)
        else:
            raise DSEFormatError(f"cannot read field {f.name} of {cls.__name__}")
        setattr(obj, f.name, value)
    return obj


def _event_from_element(elem: ET.Element) -> Any:
    if elem.tag == "Other":
        name = elem.get("name")
        if name is None:
            raise DSEFormatError("<Other> event lacks a name")
        try:
            parameters = bytes.fromhex(elem.get("parameters", ""))
        except ValueError:
            raise DSEFormatError(f"invalid parameters on {name} event") from None
        return Other(code=name_to_code(name), parameters=parameters)
    event_type = _EVENT_TYPES.get(elem.tag)
    if event_type is None:
        raise DSEFormatError(f"unknown event element <{elem.tag}>")
    return _from_element(event_type, elem)


def _parse(text: str, root_tag: str) -> ET.Element:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise DSEFormatError(f"invalid xml: {exc}") from exc
    if root.tag != root_tag:
        raise DSEFormatError(f"expected a <{root_tag}> document, found <{root.tag}>")
    return root


def smdl_from_xml(text: str) -> SMDL:
    """Read an SMDL tree; derived fields are zero until regenerated."""

    root = _parse(text, "SMDL")
    smdl = SMDL()
    smdl.header = _from_element(type(smdl.header), _child(root, "header"))
    smdl.song = _from_element(type(smdl.song), _child(root, "song"))
    trks: List[TrkChunk] = []
    for elem in _child(root, "trks"):
        trk = _from_element(TrkChunk, elem)
        trk.events = [_event_from_element(e) for e in _child(elem, "events")]
        trks.append(trk)
    smdl.trks = trks
    eoc = root.find("eoc")
    if eoc is not None:
        smdl.eoc = _from_element(type(smdl.eoc), eoc)
    return smdl


def swdl_from_xml(text: str) -> SWDL:
    """Read an SWDL tree; derived fields are zero until regenerated."""

    return _from_element(SWDL, _parse(text, "SWDL"))


__all__ = [
    "DERIVED_FIELDS",
    "smdl_from_xml",
    "smdl_to_xml",
    "swdl_from_xml",
    "swdl_to_xml",
    "xml_bool",
]
