from __future__ import annotations

import xml.etree.ElementTree as ET

import mido
import pytest

from dse.errors import DSEError, DSEFormatError
from dse.midi import ProgramUsed, from_midi
from dse.sf2 import GeneratorType, SoundFont2
from dse.sf2swdl import swdl_from_sf2
from dse.smdl import DEFAULT_DATE, PlayNote
from dse.xml_mirror import DERIVED_FIELDS, smdl_from_xml, smdl_to_xml, swdl_from_xml, swdl_to_xml, xml_bool

G = GeneratorType
LINK = (0x00, 0xFF)


def _song():
    mid = mido.MidiFile(type=0, ticks_per_beat=96)
    track = mido.MidiTrack(
        [
            mido.MetaMessage("set_tempo", tempo=400000, time=0),
            mido.Message("note_on", channel=0, note=60, velocity=100, time=0),
            mido.MetaMessage("marker", text="loopstart", time=48),
            mido.Message("note_off", channel=0, note=60, velocity=0, time=48),
            mido.Message("note_on", channel=1, note=40, velocity=70, time=0),
            mido.Message("pitchwheel", channel=1, pitch=1000, time=300),
            mido.Message("note_off", channel=1, note=40, velocity=0, time=0),
        ]
    )
    mid.tracks.append(track)
    smdl, _, _ = from_midi(mid, DEFAULT_DATE, "bgm0042", LINK)
    return smdl


def _bank(make_sf2, ramp_pcm):
    data = make_sf2(
        presets=[{"name": "Lead", "preset": 0, "bank": 0, "zones": [[(G.Pan, 100)], [(G.Instrument, 0)]]}],
        instruments=[
            {
                "name": "LeadInst",
                "zones": [
                    [(G.ReleaseVolEnv, 1200)],
                    [(G.KeyRange, 0 | (70 << 8)), (G.SampleModes, 1), (G.SampleID, 0)],
                ],
            }
        ],
        samples=[
            {"name": "lead", "start": 0, "end": 40, "loop_start": 10, "loop_end": 40, "rate": 44100, "origpitch": 57}
        ],
        pcm=ramp_pcm(40),
    )
    return swdl_from_sf2(
        SoundFont2.from_bytes(data),
        {(0, 0): 0},
        [ProgramUsed(0, 0, True, {60: {100}})],
        DEFAULT_DATE,
        "bank",
        LINK,
    )


class TestSMDLMirror:
    def test_round_trip(self) -> None:
        smdl = _song()
        data = smdl.to_bytes()
        decoded = smdl_from_xml(smdl_to_xml(smdl))
        decoded.regenerate_read_markers()
        assert decoded.to_bytes() == data

    def test_events_are_named(self) -> None:
        root = ET.fromstring(smdl_to_xml(_song()))
        names = {e.get("name") for e in root.iter("Other")}
        assert {"SetTempo", "LoopPoint", "PitchBend", "EndOfTrack"} <= names
        assert root.find("trks/trk/events") is not None
        assert any(e.tag == "PlayNote" for e in root.iter())

    def test_derived_fields_are_omitted(self) -> None:
        root = ET.fromstring(smdl_to_xml(_song()))
        for elem in root.iter():
            assert not DERIVED_FIELDS & set(elem.attrib)

    def test_play_note_width_survives(self) -> None:
        smdl = _song()
        smdl.trks[1].events = [
            PlayNote(velocity=1, keydownduration=2, nbparambytes=3) if isinstance(e, PlayNote) else e
            for e in smdl.trks[1].events
        ]
        decoded = smdl_from_xml(smdl_to_xml(smdl))
        notes = [e for e in decoded.trks[1].events if isinstance(e, PlayNote)]
        assert notes[0].nbparambytes == 3

    def test_wrong_root(self) -> None:
        with pytest.raises(DSEFormatError):
            smdl_from_xml("<SWDL/>")

    def test_unknown_opcode_name(self) -> None:
        text = smdl_to_xml(_song()).replace('name="SetTempo"', 'name="Bogus"', 1)
        with pytest.raises(DSEError):
            smdl_from_xml(text)


class TestSWDLMirror:
    def test_round_trip(self, make_sf2, ramp_pcm) -> None:
        swdl = _bank(make_sf2, ramp_pcm)
        data = swdl.to_bytes()
        decoded = swdl_from_xml(swdl_to_xml(swdl))
        decoded.regenerate_automatic_parameters()
        decoded.regenerate_read_markers()
        assert decoded.to_bytes() == data

    def test_pcmd_is_base64(self, make_sf2, ramp_pcm) -> None:
        swdl = _bank(make_sf2, ramp_pcm)
        root = ET.fromstring(swdl_to_xml(swdl))
        assert root.find("pcmd/data").text.strip()
        assert len(root.findall("wavi/data/SampleInfo")) == 1
        assert len(root.findall("kgrp/data/Keygroup")) == 12
        assert root.find("header").get("flen") is None

    def test_chunks_absent_stay_absent(self, make_sf2, ramp_pcm) -> None:
        swdl = _bank(make_sf2, ramp_pcm)
        swdl.kgrp = None
        swdl.pcmd = None
        decoded = swdl_from_xml(swdl_to_xml(swdl))
        assert decoded.kgrp is None
        assert decoded.pcmd is None
        assert decoded.prgi is not None

    def test_invalid_xml(self) -> None:
        with pytest.raises(DSEFormatError):
            swdl_from_xml("<SWDL>")


@pytest.mark.parametrize(
    ("value", "expected"),
    [(True, True), ("true", True), ("1", True), (" False ", False), ("0", False)],
)
def test_xml_bool(value, expected: bool) -> None:
    assert xml_bool(value) is expected


def test_xml_bool_rejects_other_text() -> None:
    with pytest.raises(DSEFormatError):
        xml_bool("yes")
