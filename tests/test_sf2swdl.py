from __future__ import annotations

import pytest

from dse.dtype import PointerTable, Table
from dse.errors import DSESemanticError, SampleRateUnsupported, VoiceChannelRangeError
from dse.midi import ProgramUsed
from dse.sf2 import GeneratorType, SoundFont2
from dse.sf2swdl import (
    BUILT_IN_SAMPLE_RATE_ADJUSTMENT_TABLE,
    DSPOptions,
    build_keygroups,
    find_preset,
    prune_swdl,
    resolve_curve,
    sample_rate_adjustment,
    sample_rate_adjustment_ideal,
    sample_rate_adjustment_table,
    swdl_from_sf2,
    timecents_to_index,
    timecents_to_milliseconds,
)
from dse.smdl import DEFAULT_DATE
from dse.swdl import (
    EXTERNAL_PCMD,
    SAMPLE_FORMAT_ADPCM,
    SWDL,
    LFOEntry,
    PRGIChunk,
    ProgramInfo,
    ProgramInfoHeader,
    SampleInfo,
    SplitEntry,
    lookup_env_time_value_i16,
)

G = GeneratorType
LINK = (0x00, 0xFF)


def _sample(name: str, start: int, end: int, origpitch: int = 60) -> dict:
    return {
        "name": name, "start": start, "end": end, "loop_start": start, "loop_end": start,
        "rate": 22050, "origpitch": origpitch,
    }


def _one_note_sf2(make_sf2, ramp_pcm) -> SoundFont2:
    data = make_sf2(
        presets=[{"name": "Lead", "preset": 0, "bank": 0, "zones": [[(G.Instrument, 0)]]}],
        instruments=[
            {
                "name": "LeadInst",
                "zones": [
                    [
                        (G.OverridingRootKey, 60),
                        (G.AttackVolEnv, -12000),
                        (G.SustainVolEnv, 0),
                        (G.SampleID, 0),
                    ]
                ],
            }
        ],
        samples=[_sample("lead", 0, 16)],
        pcm=ramp_pcm(16),
    )
    return SoundFont2.from_bytes(data)


def _used(bank: int, program: int, *keys: int, is_default: bool = True) -> ProgramUsed:
    return ProgramUsed(bank, program, is_default, {key: {100} for key in keys})


class TestSwdlFromSf2:
    def test_single_sample_program(self, make_sf2, ramp_pcm) -> None:
        sf2 = _one_note_sf2(make_sf2, ramp_pcm)
        swdl = swdl_from_sf2(sf2, {(0, 0): 0}, [_used(0, 0, 60)], DEFAULT_DATE, "song", LINK)

        (program,) = swdl.prgi.data.objects
        (split,) = program.splits_table.objects
        assert program.header.id == 0
        assert (split.rootkey, split.SmplID) == (60, 0)
        assert split.volume_envelope.envmult == 1
        assert split.volume_envelope.attack == lookup_env_time_value_i16(1)
        assert split.volume_envelope.sustain == 127
        assert split.tuning.to_cents() == -684

        (sample,) = swdl.wavi.data.objects
        assert sample.smplfmt == SAMPLE_FORMAT_ADPCM
        assert (sample.loopbeg, sample.looplen) == (1, 2)
        assert sample.smplrate == 22050
        assert len(swdl.pcmd.data) == 12
        assert swdl.header.pcmdlen == 12
        assert len(swdl.kgrp.data) == 12

    def test_encoded_bank_decodes(self, make_sf2, ramp_pcm) -> None:
        sf2 = _one_note_sf2(make_sf2, ramp_pcm)
        data = swdl_from_sf2(sf2, {(0, 0): 0}, [_used(0, 0, 60)], DEFAULT_DATE, "song", LINK).to_bytes()
        decoded = SWDL.from_bytes(data)
        assert decoded.to_bytes() == data
        assert decoded.get_link_bytes() == LINK
        assert decoded.header.fname.text == "song"

    def test_pitch_adjust_and_curve(self, make_sf2, ramp_pcm) -> None:
        sf2 = _one_note_sf2(make_sf2, ramp_pcm)
        swdl = swdl_from_sf2(
            sf2, {(0, 0): 0}, [_used(0, 0, 60)], DEFAULT_DATE, "song", LINK,
            curve="table", pitch_adjust=20,
        )
        expected = BUILT_IN_SAMPLE_RATE_ADJUSTMENT_TABLE[22050] + 20
        assert swdl.wavi.data.objects[0].tuning.to_cents() == expected

    def test_unused_preset_and_sample_are_dropped(self, make_sf2, ramp_pcm) -> None:
        data = make_sf2(
            presets=[
                {"name": "A", "preset": 0, "bank": 0, "zones": [[(G.Instrument, 0)]]},
                {"name": "B", "preset": 1, "bank": 0, "zones": [[(G.Instrument, 1)]]},
            ],
            instruments=[
                {"name": "IA", "zones": [[(G.SampleID, 0)]]},
                {"name": "IB", "zones": [[(G.SampleID, 1)]]},
            ],
            samples=[_sample("a", 0, 16), _sample("b", 16, 32, origpitch=48)],
            pcm=ramp_pcm(32),
        )
        swdl = swdl_from_sf2(
            SoundFont2.from_bytes(data), {(0, 1): 0}, [_used(0, 1, 50)], DEFAULT_DATE, "song", LINK
        )
        assert [p.header.id for p in swdl.prgi.data] == [0]
        assert [s.rootkey for s in swdl.wavi.data] == [48]

    def test_key_ranges_limit_the_samples(self, make_sf2, ramp_pcm) -> None:
        data = make_sf2(
            presets=[{"name": "Split", "preset": 0, "bank": 0, "zones": [[(G.Instrument, 0)]]}],
            instruments=[
                {
                    "name": "SplitInst",
                    "zones": [
                        [(G.KeyRange, 0 | (59 << 8)), (G.SampleID, 0)],
                        [(G.KeyRange, 60 | (127 << 8)), (G.SampleID, 1)],
                    ],
                }
            ],
            samples=[_sample("low", 0, 16, origpitch=48), _sample("high", 16, 32, origpitch=72)],
            pcm=ramp_pcm(32),
        )
        swdl = swdl_from_sf2(
            SoundFont2.from_bytes(data), {(0, 0): 0}, [_used(0, 0, 72)], DEFAULT_DATE, "song", LINK
        )
        assert [s.rootkey for s in swdl.wavi.data] == [72]
        (split,) = swdl.prgi.data.objects[0].splits_table.objects
        assert (split.lowkey, split.hikey, split.SmplID) == (60, 127, 0)

    def test_missing_explicit_preset(self, make_sf2, ramp_pcm) -> None:
        sf2 = _one_note_sf2(make_sf2, ramp_pcm)
        with pytest.raises(DSESemanticError):
            swdl_from_sf2(
                sf2, {(0, 5): 0}, [_used(0, 5, 60, is_default=False)], DEFAULT_DATE, "song", LINK
            )

    def test_missing_default_preset_only_warns(self, make_sf2, ramp_pcm) -> None:
        sf2 = _one_note_sf2(make_sf2, ramp_pcm)
        swdl = swdl_from_sf2(
            sf2, {(0, 0): 0, (128, 0): 1}, [_used(0, 0, 60), _used(128, 0, 36)],
            DEFAULT_DATE, "song", LINK,
        )
        assert [p.header.id for p in swdl.prgi.data] == [0]


def test_find_preset_drum_fallback(make_sf2, ramp_pcm) -> None:
    data = make_sf2(
        presets=[
            {"name": "Piano", "preset": 0, "bank": 0, "zones": [[(G.Instrument, 0)]]},
            {"name": "Kit", "preset": 0, "bank": 127, "zones": [[(G.Instrument, 0)]]},
        ],
        instruments=[{"name": "I", "zones": [[(G.SampleID, 0)]]}],
        samples=[_sample("s", 0, 16)],
        pcm=ramp_pcm(16),
    )
    sf2 = SoundFont2.from_bytes(data)
    assert find_preset(sf2, 0, 0) == 0
    assert find_preset(sf2, 128, 0) == 1
    assert find_preset(sf2, 0, 5) is None


class TestKeygroups:
    def test_default_layout(self) -> None:
        keygroups = build_keygroups()
        assert [k.id for k in keygroups] == list(range(12))
        assert [k.poly for k in keygroups] == [-1, 2, 1, 1, 1, 1, 2, 1, 2, -1, -1, -1]
        assert [k.priority for k in keygroups].count(1) == 1
        assert keygroups[5].priority == 1
        assert {(k.vclow, k.vchigh) for k in keygroups} == {(0, 15)}

    def test_voice_channel_range(self) -> None:
        assert {(k.vclow, k.vchigh) for k in build_keygroups((2, 9))} == {(2, 9)}

    @pytest.mark.parametrize("vcrange", [(16, -1), (0, 16), (5, 3), (-1, 4)])
    def test_bad_ranges(self, vcrange) -> None:
        with pytest.raises(VoiceChannelRangeError):
            build_keygroups(vcrange)


class TestConversions:
    def test_timecents(self) -> None:
        assert timecents_to_milliseconds(0) == 1000
        assert timecents_to_index(-12000) == (1, 1)
        envmult, _ = timecents_to_index(8000)
        assert envmult == 0

    def test_ideal_curve(self) -> None:
        assert sample_rate_adjustment_ideal(32728.5).to_cents() == 0
        assert sample_rate_adjustment_ideal(22050).to_cents() == -684

    def test_table_curve(self) -> None:
        assert sample_rate_adjustment_table(22050).to_cents() == BUILT_IN_SAMPLE_RATE_ADJUSTMENT_TABLE[22050]
        with pytest.raises(SampleRateUnsupported):
            sample_rate_adjustment_table(12345)

    def test_pitch_adjust_is_added(self) -> None:
        assert sample_rate_adjustment(32728.5, "ideal", -30).to_cents() == -30

    @pytest.mark.parametrize(
        ("curve", "expected"),
        [(1, "ideal"), ("2", "table"), ("Fitted", "fitted"), (" ideal ", "ideal")],
    )
    def test_resolve_curve(self, curve, expected: str) -> None:
        assert resolve_curve(curve) == expected

    @pytest.mark.parametrize("curve", [0, "4", "cubic"])
    def test_resolve_bad_curve(self, curve) -> None:
        with pytest.raises(DSESemanticError):
            resolve_curve(curve)


@pytest.mark.parametrize(
    ("options", "src", "expected"),
    [
        (DSPOptions(), 44100, 22050.0),
        (DSPOptions(), 22050, 22050.0),
        (DSPOptions(), 8000, 8000.0),
        (DSPOptions(sample_rate=0.5, sample_rate_relative=True), 44100, 22050.0),
        (DSPOptions(sample_rate=2.0, sample_rate_relative=True), 44100, 88200.0),
    ],
)
def test_target_rate(options: DSPOptions, src: int, expected: float) -> None:
    assert options.target_rate(src) == expected


# ── Pruning a main bank ───────────────────────────────────────────────


def _program(program_id: int, sample_id: int) -> ProgramInfo:
    return ProgramInfo(
        header=ProgramInfoHeader(id=program_id),
        lfo_table=Table([LFOEntry() for _ in range(4)]),
        splits_table=Table([SplitEntry(id=0, SmplID=sample_id)]),
    )


def _main_bank(*programs: ProgramInfo) -> SWDL:
    bank = SWDL()
    bank.set_link_bytes((0x03, 0x04))
    bank.wavi.data = PointerTable([SampleInfo(id=i, rootkey=40 + i) for i in range(4)])
    bank.prgi = PRGIChunk(data=PointerTable(list(programs)))
    return bank


class TestPruneSwdl:
    def test_selects_and_renumbers(self) -> None:
        bank = _main_bank(_program(5, 1), _program(7, 3), _program(130, 2))
        song = prune_swdl(bank, {(0, 5): 0, (1, 2): 1}, DEFAULT_DATE, "song")
        assert [p.header.id for p in song.prgi.data] == [0, 1]
        assert [s.id for s in song.wavi.data] == [1, 2]
        assert song.header.pcmdlen == EXTERNAL_PCMD
        assert song.pcmd is None
        assert song.get_link_bytes() == (0x03, 0x04)
        assert len(song.kgrp.data) == 12
        # the main bank is left untouched
        assert [p.header.id for p in bank.prgi.data] == [5, 7, 130]

    def test_link_bytes_override(self) -> None:
        song = prune_swdl(_main_bank(_program(0, 0)), {(0, 0): 0}, DEFAULT_DATE, "song", (0x01, 0x02))
        assert SWDL.from_bytes(song.to_bytes()).get_link_bytes() == (0x01, 0x02)

    def test_requires_prgi(self) -> None:
        bank = _main_bank()
        bank.prgi = None
        with pytest.raises(DSESemanticError):
            prune_swdl(bank, {(0, 0): 0}, DEFAULT_DATE, "song")

    def test_missing_sample(self) -> None:
        with pytest.raises(DSESemanticError):
            prune_swdl(_main_bank(_program(7, 9)), {(0, 7): 0}, DEFAULT_DATE, "song")
