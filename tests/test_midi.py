from __future__ import annotations

import io

import mido
import pytest

from dse.errors import DSEFormatError, MarkersTooFarApart, NotesTooLong, TooManyTracks
from dse.midi import (
    TrkChunkWriter,
    from_midi,
    get_midi_messages_flattened,
    get_midi_tpb,
    open_midi,
)
from dse.smdl import SMDL, DEFAULT_DATE, Other, PlayNote

LINK = (0x00, 0xFF)


def _smf0(messages: list, tpb: int = 48) -> mido.MidiFile:
    mid = mido.MidiFile(type=0, ticks_per_beat=tpb)
    track = mido.MidiTrack()
    track.extend(messages)
    mid.tracks.append(track)
    return mid


def _single_note() -> mido.MidiFile:
    return _smf0(
        [
            mido.Message("note_on", channel=0, note=60, velocity=100, time=0),
            mido.Message("note_off", channel=0, note=60, velocity=0, time=24),
        ]
    )


def _setprogram_params(events) -> list[bytes]:
    return [e.parameters for e in events if isinstance(e, Other) and e.name == "SetProgram"]


class TestSingleNote:
    def test_channel_track_events(self) -> None:
        smdl, song_preset_map, _ = from_midi(_single_note(), DEFAULT_DATE, "song", LINK)
        trk = smdl.trks[1]
        assert trk.events == [
            Other.named("SetTrackExpression", b"\x64"),
            Other.named("SetSwdl", b"\xff"),
            Other.named("SetBank", b"\x00"),
            Other.named("SetProgram", b"\x00"),
            Other.named("SetTrackOctave", b"\x05"),
            PlayNote(velocity=100, octavemod=2, note=0, keydownduration=24),
            Other.named("Pause8Bits", b"\x18"),
            Other.named("EndOfTrack"),
        ]
        assert trk.events_bytes() == bytes.fromhex("e364 a9ff aa00 ac00 a005 646018 9218 98")
        assert song_preset_map[(0, 0)] == 0

    def test_meta_track_has_no_program_events(self) -> None:
        smdl, _, _ = from_midi(_single_note(), DEFAULT_DATE, "song", LINK)
        assert smdl.trks[0].events_bytes() == bytes.fromhex("e364 9218 98")

    def test_song_layout(self) -> None:
        smdl, _, _ = from_midi(_single_note(), DEFAULT_DATE, "song", LINK)
        assert smdl.song.nbtrks == 17
        assert smdl.song.nbchans == 16
        assert smdl.song.tpqn == 48
        assert smdl.header.flen == len(smdl.to_bytes())
        assert [t.preamble.trkid for t in smdl.trks] == list(range(17))

    def test_every_track_ends_at_final_tick(self) -> None:
        smdl, _, _ = from_midi(_single_note(), DEFAULT_DATE, "song", LINK)
        assert {trk.total_ticks() for trk in smdl.trks} == {24}

    def test_drum_channel_defaults_to_kit(self) -> None:
        smdl, song_preset_map, _ = from_midi(_single_note(), DEFAULT_DATE, "song", LINK)
        assert song_preset_map == {(0, 0): 0, (128, 0): 1}
        assert _setprogram_params(smdl.trks[10].events) == [b"\x01"]

    def test_encoded_file_decodes(self) -> None:
        smdl, _, _ = from_midi(_single_note(), DEFAULT_DATE, "song", LINK)
        data = smdl.to_bytes()
        assert SMDL.from_bytes(data).to_bytes() == data


def test_loopstart_marker_reaches_every_track() -> None:
    mid = _smf0(
        [
            mido.MetaMessage("marker", text="loopstart", time=48),
            mido.Message("note_on", channel=0, note=62, velocity=90, time=0),
            mido.Message("note_off", channel=0, note=62, velocity=0, time=12),
        ]
    )
    smdl, _, _ = from_midi(mid, DEFAULT_DATE, "song", LINK)
    for trk in smdl.trks:
        names = [e.name if isinstance(e, Other) else type(e).__name__ for e in trk.events]
        loop_at = names.index("LoopPoint")
        assert trk.events[loop_at - 1] == Other.named("Pause8Bits", bytes([48]))
        assert trk.total_ticks() == 60


def test_loopend_marker_stops_translation() -> None:
    mid = _smf0(
        [
            mido.Message("note_on", channel=0, note=60, velocity=90, time=0),
            mido.MetaMessage("marker", text="loopend", time=30),
            mido.Message("note_on", channel=0, note=64, velocity=90, time=10),
        ]
    )
    smdl, _, _ = from_midi(mid, DEFAULT_DATE, "song", LINK)
    notes = [e for e in smdl.trks[1].events if isinstance(e, PlayNote)]
    assert notes == [PlayNote(velocity=90, octavemod=2, note=0, keydownduration=30)]
    assert smdl.trks[1].total_ticks() == 30


def test_loopendnoreset_marker_stops_without_releasing() -> None:
    mid = _smf0(
        [
            mido.Message("note_on", channel=0, note=60, velocity=90, time=0),
            mido.MetaMessage("marker", text="loopendnoreset", time=30),
            mido.Message("note_on", channel=0, note=64, velocity=90, time=10),
        ]
    )
    smdl, _, _ = from_midi(mid, DEFAULT_DATE, "song", LINK)
    events = smdl.trks[1].events
    notes = [e for e in events if isinstance(e, PlayNote)]
    assert notes == [PlayNote(velocity=90, octavemod=2, note=0, keydownduration=30)]
    assert smdl.trks[1].total_ticks() == 30
    assert "LoopPoint" not in [e.name for e in events if isinstance(e, Other)]


def test_signal_marker_goes_to_meta_track() -> None:
    mid = _smf0([mido.MetaMessage("marker", text="Signal(7)", time=12)])
    smdl, _, _ = from_midi(mid, DEFAULT_DATE, "song", LINK)
    meta = smdl.trks[0].events
    signal_at = meta.index(Other.named("Signal", b"\x07"))
    assert meta[signal_at - 1] == Other.named("Pause8Bits", bytes([12]))
    assert all(Other.named("Signal", b"\x07") not in trk.events for trk in smdl.trks[1:])


def test_markers_too_far_apart() -> None:
    mid = mido.MidiFile(type=1)
    mid.tracks.append(
        mido.MidiTrack(
            [
                mido.MetaMessage("set_tempo", tempo=500000, time=0),
                mido.MetaMessage("marker", text="loopstart", time=2**28),
            ]
        )
    )
    mid.tracks.append(mido.MidiTrack([mido.Message("note_on", note=60, velocity=1, time=0)]))
    with pytest.raises(MarkersTooFarApart):
        get_midi_messages_flattened(mid)


class TestProgramChanges:
    def _mid(self) -> mido.MidiFile:
        return _smf0(
            [
                mido.Message("control_change", channel=2, control=0, value=5, time=10),
                mido.Message("program_change", channel=2, program=7, time=0),
                mido.Message("note_on", channel=2, note=72, velocity=90, time=0),
                mido.Message("note_off", channel=2, note=72, velocity=0, time=12),
            ]
        )

    def test_same_tick_changes_coalesce(self) -> None:
        smdl, song_preset_map, programs_used = from_midi(
            self._mid(), DEFAULT_DATE, "song", LINK, use_midi_prgch=True
        )
        events = smdl.trks[3].events
        pause_at = events.index(Other.named("Pause8Bits", b"\x0a"))
        assert _setprogram_params(events[pause_at:]) == [bytes([song_preset_map[(5, 7)]])]
        assert song_preset_map == {(0, 0): 0, (5, 7): 1, (128, 0): 2}
        assert (5, 0) not in song_preset_map

        track_programs = [(p.bank, p.program, p.is_default, p.notes) for p in programs_used]
        assert (5, 7, False, {72: {90}}) in track_programs

    def test_program_changes_ignored_by_default(self) -> None:
        smdl, song_preset_map, _ = from_midi(self._mid(), DEFAULT_DATE, "song", LINK)
        assert song_preset_map == {(0, 0): 0, (128, 0): 1}
        assert _setprogram_params(smdl.trks[3].events) == [b"\x00"]

    def test_drum_channel_keeps_explicit_program(self) -> None:
        mid = _smf0([mido.Message("program_change", channel=9, program=3, time=0)])
        _, song_preset_map, _ = from_midi(mid, DEFAULT_DATE, "song", LINK, use_midi_prgch=True)
        assert (128, 0) not in song_preset_map
        assert (0, 3) in song_preset_map


def test_dsec_marker_injects_events() -> None:
    mid = _smf0(
        [
            mido.MetaMessage(
                "marker", text="dsec trk 3; SetTrackVolume(100); evttrk; SetTempo(120)", time=6
            )
        ]
    )
    smdl, _, _ = from_midi(mid, DEFAULT_DATE, "song", LINK)
    assert smdl.trks[3].events[-2] == Other.named("SetTrackVolume", b"\x64")
    assert smdl.trks[0].events[-2] == Other.named("SetTempo", b"\x78")


def test_tempo_and_controllers() -> None:
    mid = _smf0(
        [
            mido.MetaMessage("set_tempo", tempo=500000, time=0),
            mido.Message("control_change", channel=0, control=7, value=90, time=0),
            mido.Message("control_change", channel=0, control=10, value=20, time=0),
            mido.Message("pitchwheel", channel=0, pitch=-2, time=0),
        ]
    )
    smdl, _, _ = from_midi(mid, DEFAULT_DATE, "song", LINK)
    assert Other.named("SetTempo", b"\x78") in smdl.trks[0].events
    tail = smdl.trks[1].events[-4:]
    assert tail == [
        Other.named("SetTrackVolume", b"\x5a"),
        Other.named("SetTrackPan", b"\x14"),
        Other.named("PitchBend", b"\xff\xfe"),
        Other.named("EndOfTrack"),
    ]


class TestTrkChunkWriter:
    def test_long_pause_is_split(self) -> None:
        writer = TrkChunkWriter(1, 0)
        writer.fix_current_global_tick(0x1000000 + 0x100)
        pauses = [e for e in writer.events if isinstance(e, Other) and e.pause_ticks()]
        assert [p.name for p in pauses] == ["Pause24Bits", "Pause16Bits"]
        assert sum(p.pause_ticks() for p in pauses) == writer.current_global_tick

    def test_overlapping_note_is_released_first(self) -> None:
        writer = TrkChunkWriter(1, 0)
        writer.note_on(60, 100)
        writer.fix_current_global_tick(5)
        writer.note_on(60, 80)
        notes = [e for e in writer.events if isinstance(e, PlayNote)]
        assert notes[0].keydownduration == 5
        assert list(writer.notes_held) == [60]

    def test_note_longer_than_24_bits(self) -> None:
        writer = TrkChunkWriter(1, 0)
        writer.note_on(60, 100)
        writer.fix_current_global_tick(0x1000000)
        with pytest.raises(NotesTooLong):
            writer.note_off(60)

    def test_close_track_releases_held_notes(self) -> None:
        writer = TrkChunkWriter(1, 0)
        writer.note_on(48, 100)
        writer.fix_current_global_tick(7)
        trk = writer.close_track()
        assert [e for e in trk.events if isinstance(e, PlayNote)][0].keydownduration == 7
        assert trk.events[-1].is_eot_event()


class TestFlattening:
    def test_smf1_tracks_become_channels(self) -> None:
        mid = mido.MidiFile(type=1, ticks_per_beat=96)
        meta = mido.MidiTrack([mido.MetaMessage("set_tempo", tempo=600000, time=0)])
        first = mido.MidiTrack(
            [
                mido.Message("note_on", channel=5, note=60, velocity=100, time=0),
                mido.Message("note_off", channel=5, note=60, velocity=0, time=10),
            ]
        )
        second = mido.MidiTrack(
            [
                mido.Message("note_on", channel=7, note=62, velocity=100, time=5),
                mido.Message("note_off", channel=7, note=62, velocity=0, time=10),
            ]
        )
        mid.tracks.extend([meta, first, second])

        flat = get_midi_messages_flattened(mid)
        assert [m.type for m in flat] == ["set_tempo", "note_on", "note_on", "note_off", "note_off"]
        assert [m.time for m in flat] == [0, 0, 5, 5, 5]
        assert [m.channel for m in flat[1:]] == [0, 1, 0, 1]

    def test_too_many_tracks(self) -> None:
        mid = mido.MidiFile(type=1)
        mid.tracks.append(mido.MidiTrack([mido.MetaMessage("set_tempo", tempo=500000)]))
        for _ in range(17):
            mid.tracks.append(mido.MidiTrack([mido.Message("note_on", note=60, velocity=1)]))
        with pytest.raises(TooManyTracks):
            get_midi_messages_flattened(mid)

    def test_type2_rejected(self) -> None:
        with pytest.raises(DSEFormatError):
            get_midi_messages_flattened(mido.MidiFile(type=2))


def test_open_midi_from_bytes() -> None:
    buf = io.BytesIO()
    _single_note().save(file=buf)
    mid = open_midi(buf.getvalue())
    assert get_midi_tpb(mid) == 48
    assert [m.type for m in mid.tracks[0] if not m.is_meta] == ["note_on", "note_off"]


def test_open_midi_rejects_garbage() -> None:
    with pytest.raises(DSEFormatError):
        open_midi(b"not a midi file")
