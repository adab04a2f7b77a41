"""MIDI (SMF 0/1) to SMDL translation.

Messages are read with mido, flattened into one chronological stream and fed
through one `TrkChunkWriter` per DSE track: track 0 carries meta events
(tempo, signals), tracks 1-16 carry MIDI channels 0-15.

Program changes are written as ``SetProgram`` placeholders first.  Once the
whole song has been streamed every distinct ``(bank, program)`` pair gets a
DSE program id, in first-use order, and the placeholders are patched.
"""

from __future__ import annotations

import io
import logging
import re
import struct
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

import mido

from .dsec import is_dsec_marker, parse_dsec
from .errors import (
    DSEBoundsError,
    DSEFormatError,
    DSEInternalError,
    MarkersTooFarApart,
    NotesTooLong,
    TooManyTracks,
)
from .smdl import (
    MAX_NOTE_DURATION,
    SMDL,
    DSEEvent,
    Other,
    PlayNote,
    TrkChunk,
    TrkPreamble,
    create_smdl_shell,
)

logger = logging.getLogger(__name__)

NB_CHANNELS = 16
META_TRACK = 0
DRUM_CHANNEL = 9
DRUM_BANK = 128
MAX_FLATTENED_DELTA = (1 << 28) - 1
MAX_PAUSE = 0xFFFFFF
LOOPEND_KEYS = range(0, 255)

_SIGNAL_MARKER = re.compile(r"^signal\s*\(\s*([^)]+?)\s*\)$", re.IGNORECASE)

MapProgram = Callable[[int, int, int, bool, "TrkChunkWriter", int], Optional[int]]


# ── Reading ───────────────────────────────────────────────────────────


def open_midi(data: bytes) -> mido.MidiFile:
    try:
        return mido.MidiFile(file=io.BytesIO(data))
    except (OSError, EOFError, ValueError, KeyError, IndexError) as exc:
        raise DSEFormatError(f"cannot parse midi file: {exc}") from exc


def get_midi_tpb(mid: mido.MidiFile) -> int:
    tpb = mid.ticks_per_beat
    if tpb & 0x8000:
        raise DSEFormatError("smpte timecode timing is not supported; ticks-per-beat is required")
    return tpb


def _is_channel_message(msg: mido.Message) -> bool:
    return not msg.is_meta and hasattr(msg, "channel")


def get_midi_messages_flattened(mid: mido.MidiFile) -> List[mido.Message]:
    """Return the song as a single delta-timed message stream."""

    if mid.type == 0:
        return list(mid.tracks[0]) if mid.tracks else []
    if mid.type != 1:
        raise DSEFormatError("sequential (type 2) midi files are not supported")

    logger.warning(
        "smf1 midi file detected; each midi track will be mapped to a midi channel"
    )
    first_track_is_meta = not any(_is_channel_message(m) for m in mid.tracks[0])
    if not first_track_is_meta:
        logger.warning(
            "the first track of this smf1 file contains channel events; "
            "it will be treated as a channel track"
        )

    ticks: List[int] = []
    merged: List[mido.Message] = []
    for i, track in enumerate(mid.tracks):
        tick = 0
        for msg in track:
            tick += msg.time
            if _is_channel_message(msg):
                channel = i - 1 if first_track_is_meta else i
                if channel >= NB_CHANNELS:
                    raise TooManyTracks(len(mid.tracks) - (1 if first_track_is_meta else 0))
                msg = msg.copy(channel=channel)
            at = bisect_right(ticks, tick)
            ticks.insert(at, tick)
            merged.insert(at, msg)

    flattened: List[mido.Message] = []
    previous = 0
    for tick, msg in zip(ticks, merged):
        delta = tick - previous
        if delta > MAX_FLATTENED_DELTA:
            raise MarkersTooFarApart(delta)
        flattened.append(msg.copy(time=delta))
        previous = tick
    return flattened


# ── Track writer ──────────────────────────────────────────────────────


@dataclass
class ProgramUsed:
    bank: int
    program: int
    is_default: bool
    # key -> velocities sounded while this program was active
    notes: Dict[int, Set[int]] = field(default_factory=dict)


class TrkChunkWriter:
    """Accumulates the event stream of one DSE track.

    Events live in an append-only arena and are referred to by integer
    handles, so held notes and program placeholders can be patched after
    later events have been appended or removed.
    """

    def __init__(self, trkid: int, chanid: int, link_bytes: Tuple[int, int] = (0, 0xFF)) -> None:
        self.trkid = trkid
        self.chanid = chanid
        self.current_global_tick = 0
        self.bank = 0
        self.program = 0
        self.programs_used: List[ProgramUsed] = []
        self.notes_held: Dict[int, Tuple[int, int]] = {}
        self._arena: List[DSEEvent] = []
        self._order: List[int] = []
        self._last_program_change: Optional[Tuple[int, int]] = None

        self.add_other_with_params_u8("SetTrackExpression", 100)
        if not (trkid == META_TRACK and chanid == 0):
            self.add_swdl(link_bytes[1])
            self.add_bank(link_bytes[0])

    # arena access

    def add(self, event: DSEEvent) -> int:
        handle = len(self._arena)
        self._arena.append(event)
        self._order.append(handle)
        return handle

    def event(self, handle: int) -> DSEEvent:
        return self._arena[handle]

    def remove(self, handle: int) -> None:
        try:
            self._order.remove(handle)
        except ValueError:
            raise DSEInternalError(f"event handle {handle} is not part of track {self.trkid}") from None

    @property
    def events(self) -> List[DSEEvent]:
        return [self._arena[h] for h in self._order]

    # other events

    def add_other_no_params(self, name: str) -> int:
        return self.add(Other.named(name))

    def add_other_with_params(self, name: str, parameters: bytes) -> int:
        return self.add(Other.named(name, parameters))

    def add_other_with_params_u8(self, name: str, value: int) -> int:
        return self.add_other_with_params(name, struct.pack("<B", value))

    def add_other_with_params_u16(self, name: str, value: int) -> int:
        return self.add_other_with_params(name, struct.pack("<H", value))

    def add_other_with_params_u24(self, name: str, value: int) -> int:
        return self.add_other_with_params(name, value.to_bytes(3, "little"))

    def add_swdl(self, swdl: int) -> int:
        return self.add_other_with_params_u8("SetSwdl", swdl)

    def add_bank(self, bank: int) -> int:
        return self.add_other_with_params_u8("SetBank", bank)

    # timing

    def fix_current_global_tick(self, new_global_tick: int) -> None:
        """Emit pauses until the track reaches `new_global_tick`."""

        delta = new_global_tick - self.current_global_tick
        if delta < 0:
            raise DSEInternalError(
                f"track {self.trkid} cannot move back from tick {self.current_global_tick} "
                f"to {new_global_tick}"
            )
        while delta > 0:
            step = min(delta, MAX_PAUSE)
            if step <= 0xFF:
                self.add_other_with_params_u8("Pause8Bits", step)
            elif step <= 0xFFFF:
                self.add_other_with_params_u16("Pause16Bits", step)
            else:
                self.add_other_with_params_u24("Pause24Bits", step)
            self.current_global_tick += step
            delta -= step

    # notes

    def note_on(self, key: int, vel: int) -> None:
        if key in self.notes_held:
            logger.warning(
                "overlapping notes on track %d (key %d); sending a note-off first", self.trkid, key
            )
            self.note_off(key)
        self.add_other_with_params_u8("SetTrackOctave", key // 12)
        handle = self.add(PlayNote(velocity=vel, octavemod=2, note=key % 12))
        self.notes_held[key] = (handle, self.current_global_tick)
        if self.programs_used:
            self.programs_used[-1].notes.setdefault(key, set()).add(vel)

    def note_off(self, key: int) -> None:
        held = self.notes_held.pop(key, None)
        if held is None:
            return
        handle, note_on_tick = held
        duration = self.current_global_tick - note_on_tick
        if duration > MAX_NOTE_DURATION:
            raise NotesTooLong(key, duration)
        event = self._arena[handle]
        if not isinstance(event, PlayNote):
            raise DSEInternalError(f"held note handle {handle} does not refer to a PlayNote")
        event.keydownduration = duration

    # programs

    def bank_select(self, bank: int, is_default: bool, map_program: MapProgram) -> int:
        self.bank = bank
        return self._change_program(is_default, map_program)

    def program_change(self, program: int, is_default: bool, map_program: MapProgram) -> int:
        self.program = program
        return self._change_program(is_default, map_program)

    def _change_program(self, is_default: bool, map_program: MapProgram) -> int:
        notes: Dict[int, Set[int]] = {}
        same_tick = (
            self._last_program_change is not None
            and self._last_program_change[0] == self.current_global_tick
        )
        if same_tick:
            self.remove(self._last_program_change[1])
            notes = self.programs_used.pop().notes

        handle = self.add_other_with_params_u8("SetProgram", 0)
        self.programs_used.append(ProgramUsed(self.bank, self.program, is_default, notes))
        self._last_program_change = (self.current_global_tick, handle)

        program_id = map_program(self.trkid, self.bank, self.program, same_tick, self, handle)
        if program_id is not None:
            self.set_program_id(handle, program_id)
        return handle

    def set_program_id(self, handle: int, program_id: int) -> None:
        event = self._arena[handle]
        if not isinstance(event, Other) or event.name != "SetProgram":
            raise DSEInternalError(f"handle {handle} does not refer to a SetProgram event")
        if not 0 <= program_id <= 0xFF:
            raise DSEBoundsError(f"dse program id {program_id} does not fit in a byte")
        event.parameters = bytes([program_id])

    def close_track(self) -> TrkChunk:
        for key in sorted(self.notes_held):
            self.note_off(key)
        self.add_other_no_params("EndOfTrack")
        return TrkChunk(preamble=TrkPreamble(trkid=self.trkid, chanid=self.chanid), events=self.events)


# ── Translation ───────────────────────────────────────────────────────


def _all_tracks_at(trks: List[TrkChunkWriter], tick: int) -> Iterable[TrkChunkWriter]:
    for trk in trks:
        trk.fix_current_global_tick(tick)
        yield trk


def copy_midi_messages(
    midi_messages: List[mido.Message],
    trks: List[TrkChunkWriter],
    use_midi_prgch: bool,
    map_program: MapProgram,
) -> int:
    """Stream messages into the track writers; return the final global tick."""

    global_tick = 0
    for msg in midi_messages:
        global_tick += msg.time

        if _is_channel_message(msg):
            trk = trks[msg.channel + 1]
            if msg.type == "note_on":
                trk.fix_current_global_tick(global_tick)
                if msg.velocity == 0:
                    trk.note_off(msg.note)
                else:
                    trk.note_on(msg.note, msg.velocity)
            elif msg.type == "note_off":
                trk.fix_current_global_tick(global_tick)
                trk.note_off(msg.note)
            elif msg.type == "control_change":
                trk.fix_current_global_tick(global_tick)
                if msg.control == 0:
                    if use_midi_prgch:
                        logger.info("track %d: bank select %d", trk.trkid, msg.value)
                        trk.bank_select(msg.value, False, map_program)
                elif msg.control == 7:
                    trk.add_other_with_params_u8("SetTrackVolume", msg.value)
                elif msg.control == 10:
                    trk.add_other_with_params_u8("SetTrackPan", msg.value)
                elif msg.control == 11:
                    trk.add_other_with_params_u8("SetTrackExpression", msg.value)
            elif msg.type == "program_change":
                trk.fix_current_global_tick(global_tick)
                if use_midi_prgch:
                    logger.info("track %d: program change %d", trk.trkid, msg.program)
                    trk.program_change(msg.program, False, map_program)
            elif msg.type == "pitchwheel":
                trk.fix_current_global_tick(global_tick)
                trk.add_other_with_params("PitchBend", struct.pack(">h", msg.pitch))
            continue

        if msg.type == "set_tempo":
            meta = trks[META_TRACK]
            meta.fix_current_global_tick(global_tick)
            bpm = round(6e7 / msg.tempo)
            meta.add_other_with_params_u8("SetTempo", max(0, min(0xFF, bpm)))
        elif msg.type == "marker":
            if not _handle_marker(msg.text, trks, global_tick):
                break

    for trk in trks:
        trk.fix_current_global_tick(global_tick)
    return global_tick


def _handle_marker(text: str, trks: List[TrkChunkWriter], tick: int) -> bool:
    """Apply a marker; return False when processing should stop."""

    marker = text.strip()
    lowered = marker.lower()
    signal = _SIGNAL_MARKER.match(marker)
    if lowered == "loopstart":
        for trk in _all_tracks_at(trks, tick):
            trk.add_other_no_params("LoopPoint")
    elif lowered == "loopend":
        for trk in _all_tracks_at(trks, tick):
            for key in LOOPEND_KEYS:
                trk.note_off(key)
        return False
    elif lowered == "loopendnoreset":
        return False
    elif signal is not None:
        try:
            value = int(signal.group(1), 0)
        except ValueError:
            raise DSEFormatError(f"cannot parse signal marker {marker!r}") from None
        if not 0 <= value <= 0xFF:
            raise DSEBoundsError(f"signal value {value} does not fit in a byte")
        meta = trks[META_TRACK]
        meta.fix_current_global_tick(tick)
        meta.add_other_with_params_u8("Signal", value)
    elif is_dsec_marker(marker):
        for command in parse_dsec(marker):
            trk = trks[command.trk]
            trk.fix_current_global_tick(tick)
            trk.add(Other(code=command.code, parameters=command.parameters))
    return True


def _channel_sets_program(midi_messages: List[mido.Message], channel: int) -> bool:
    for msg in midi_messages:
        if not _is_channel_message(msg) or msg.channel != channel:
            continue
        if msg.type == "program_change" or (msg.type == "control_change" and msg.control == 0):
            return True
    return False


def from_midi(
    mid: mido.MidiFile,
    last_modified: Tuple[int, ...],
    name: str,
    link_bytes: Tuple[int, int],
    use_midi_prgch: bool = False,
) -> Tuple[SMDL, Dict[Tuple[int, int], int], List[ProgramUsed]]:
    """Translate a MIDI file into an SMDL.

    Returns the SMDL, the ``(bank, program) -> DSE program id`` map and the
    programs used by every track (with the notes they sounded).
    """

    tpb = get_midi_tpb(mid)
    smdl = create_smdl_shell(last_modified, name)
    smdl.set_link_bytes(link_bytes)
    smdl.song.tpqn = tpb
    midi_messages = get_midi_messages_flattened(mid)

    programs_requiring_mapping: Dict[int, List[Tuple[int, int, int]]] = {}

    def map_program(trkid, bank, program, same_tick, writer, handle):
        log = programs_requiring_mapping.setdefault(trkid, [])
        if same_tick and log:
            log.pop()
        log.append((handle, bank, program))
        return None

    trks = [TrkChunkWriter(META_TRACK, 0, link_bytes)]
    for chanid in range(NB_CHANNELS):
        trk = TrkChunkWriter(chanid + 1, chanid, link_bytes)
        drums = chanid == DRUM_CHANNEL and not (
            use_midi_prgch and _channel_sets_program(midi_messages, chanid)
        )
        trk.bank_select(DRUM_BANK if drums else 0, True, map_program)
        trk.program_change(0, True, map_program)
        trks.append(trk)

    copy_midi_messages(midi_messages, trks, use_midi_prgch, map_program)

    song_preset_map: Dict[Tuple[int, int], int] = {}
    for trkid, log in programs_requiring_mapping.items():
        for handle, bank, program in log:
            program_id = song_preset_map.setdefault((bank, program), len(song_preset_map))
            logger.info("trk%02d bank %d program %d -> dse program %d", trkid, bank, program, program_id)
            trks[trkid].set_program_id(handle, program_id)

    programs_used: List[ProgramUsed] = []
    for trk in trks:
        programs_used.extend(trk.programs_used)
        smdl.trks.append(trk.close_track())
    smdl.regenerate_read_markers()
    return smdl, song_preset_map, programs_used


__all__ = [
    "ProgramUsed",
    "TrkChunkWriter",
    "copy_midi_messages",
    "from_midi",
    "get_midi_messages_flattened",
    "get_midi_tpb",
    "open_midi",
]
