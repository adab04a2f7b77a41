"""SoundFont 2 to SWDL translation.

Presets are flattened into DSE programs by layering zones:

1. global instrument zone (override)
2. instrument zone (override)
3. global preset zone (additive to the instrument layers)
4. preset zone (additive to the instrument layers)

A zone is "global" when it is the first zone of its list and lacks the
terminal generator (``SampleID`` for instruments, ``Instrument`` for presets).

Samples are resampled, ADPCM encoded and tuned with a sample-rate adjustment
curve so that DSE plays them at the right pitch.
"""

from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from .dsp import pcm16_from_bytes, process_mono
from .errors import DSEFormatError, DSESemanticError, SampleRateUnsupported, VoiceChannelRangeError
from .dtype import PointerTable, Table
from .midi import ProgramUsed
from .sf2 import (
    GeneratorType,
    Instrument,
    Preset,
    SampleHeader,
    SoundFont2,
    Zone,
    find_gen_in_zones,
)
from .swdl import (
    EXTERNAL_PCMD,
    SAMPLE_FORMAT_ADPCM,
    SWDL,
    ADSRVolumeEnvelope,
    KGRPChunk,
    Keygroup,
    LFOEntry,
    PCMDChunk,
    PRGIChunk,
    ProgramInfo,
    ProgramInfoHeader,
    SampleInfo,
    SplitEntry,
    Tuning,
    lookup_env_time_value_i16,
    lookup_env_time_value_i32,
)

logger = logging.getLogger(__name__)

# DS hardware mixes at 32728.5 Hz.
DSE_OUTPUT_RATE = 32728.5

CURVE_NAMES = {1: "ideal", 2: "table", 3: "fitted"}

SampleFilter = Callable[[int, SampleHeader], bool]
InstrumentFilter = Callable[[int, Preset, Optional[Zone], int, Zone, int, Instrument], bool]
PresetMapper = Callable[[int, Preset, ProgramInfo], Optional[int]]


@dataclass
class DSPOptions:
    resample_threshold: int = 22050
    sample_rate: float = 22050.0
    # When set, `sample_rate` is a factor applied to the source rate.
    sample_rate_relative: bool = False

    def target_rate(self, src_rate: int) -> float:
        if src_rate <= self.resample_threshold:
            return float(src_rate)
        if not self.sample_rate_relative:
            return float(round(self.sample_rate))
        if self.sample_rate >= 1.0:
            return float(round(self.sample_rate * src_rate))
        if self.sample_rate <= 0.0:
            raise DSESemanticError(f"relative sample rate {self.sample_rate} must be positive")
        rate = float(src_rate)
        while rate > self.resample_threshold:
            rate *= self.sample_rate
        return float(round(rate))


# ── Conversions ───────────────────────────────────────────────────────


def timecents_to_milliseconds(timecents: int) -> int:
    return round(1000.0 * 2.0 ** (timecents / 1200.0))


def gain(decibels: float) -> float:
    return 10.0 ** (decibels / 20.0)


def timecents_to_index(timecents: int) -> Tuple[int, int]:
    """Return ``(envmult, table_index)`` for an envelope duration."""

    msec = timecents_to_milliseconds(timecents)
    if msec <= 0x7FFF:
        return 1, lookup_env_time_value_i16(msec)
    return 0, lookup_env_time_value_i32(msec)


def _map_range(src: Tuple[float, float], dst: Tuple[float, float], value: float) -> float:
    return dst[0] + (value - src[0]) * (dst[1] - dst[0]) / (src[1] - src[0])


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


# ── Sample-rate adjustment ────────────────────────────────────────────


def sample_rate_adjustment_in_cents(sample_rate: float) -> float:
    return math.log((sample_rate - 1115.9471180474397) / 31832.602532753794) / 0.0005990154279493774


def sample_rate_adjustment_ideal(sample_rate: float) -> Tuning:
    return Tuning.from_cents(round(1200.0 * math.log2(sample_rate / DSE_OUTPUT_RATE)))


def sample_rate_adjustment_fitted(sample_rate: float) -> Tuning:
    return Tuning.from_cents(int(sample_rate_adjustment_in_cents(sample_rate)))


# Corrections for the sample rates found in stock banks, taken from the
# fitted curve at each integer rate.
_TABLE_RATES = (
    8000, 8363, 10000, 11025, 11050, 12000, 16000, 16726, 16884, 20000, 22050,
    24000, 32000, 32728, 32729, 44100, 48000,
)
BUILT_IN_SAMPLE_RATE_ADJUSTMENT_TABLE: Dict[int, int] = {
    rate: int(sample_rate_adjustment_in_cents(rate)) for rate in _TABLE_RATES
}


def sample_rate_adjustment_table(sample_rate: float) -> Tuning:
    cents = BUILT_IN_SAMPLE_RATE_ADJUSTMENT_TABLE.get(round(sample_rate))
    if cents is None:
        raise SampleRateUnsupported(sample_rate)
    return Tuning.from_cents(cents)


def resolve_curve(curve: Union[int, str]) -> str:
    if isinstance(curve, int) or (isinstance(curve, str) and curve.isdigit()):
        try:
            return CURVE_NAMES[int(curve)]
        except KeyError:
            raise DSESemanticError(f"invalid sample rate adjustment curve number {curve}") from None
    name = curve.strip().lower()
    if name not in CURVE_NAMES.values():
        raise DSESemanticError(f"unknown sample rate adjustment curve {curve!r}")
    return name


def sample_rate_adjustment(sample_rate: float, curve: Union[int, str], pitch_adjust: int = 0) -> Tuning:
    name = resolve_curve(curve)
    if name == "ideal":
        tuning = sample_rate_adjustment_ideal(sample_rate)
    elif name == "table":
        tuning = sample_rate_adjustment_table(sample_rate)
    else:
        tuning = sample_rate_adjustment_fitted(sample_rate)
    tuning.add_cents(pitch_adjust)
    return tuning


# ── Presets ───────────────────────────────────────────────────────────


def find_preset(sf2: SoundFont2, bank: int, program: int) -> Optional[int]:
    """Index of the preset at ``bank:program``.

    The GM drum kit at 128:000 falls back to 127:000 and then 126:000, where
    some non-conforming soundfonts keep it.
    """

    for i, preset in enumerate(sf2.presets):
        if preset.bank == bank and preset.preset == program:
            return i
    if (bank, program) == (128, 0):
        for fallback in (127, 126):
            for i, preset in enumerate(sf2.presets):
                if preset.bank == fallback and preset.preset == 0:
                    return i
    return None


_ENVELOPE_FIELDS = {
    GeneratorType.AttackVolEnv: "attack",
    GeneratorType.HoldVolEnv: "hold",
    GeneratorType.DecayVolEnv: "decay",
    GeneratorType.ReleaseVolEnv: "release",
}


def _apply_zone(
    split: SplitEntry,
    envelope_tc: Dict[str, int],
    zone: Zone,
    additive: Optional[List[Zone]],
    sample_info: SampleInfo,
    map_samples: Callable[[int], Optional[int]],
) -> None:
    """Apply one zone's generators to `split`.

    `additive` lists the instrument-level zones a preset-level zone adds to;
    it is None for instrument-level (overriding) zones.
    """

    def base(ty: GeneratorType) -> int:
        if additive is None:
            return 0
        gen = find_gen_in_zones(additive, ty)
        return gen.as_i16() if gen is not None else 0

    def base_range(ty: GeneratorType) -> Optional[Tuple[int, int]]:
        if additive is None:
            return None
        gen = find_gen_in_zones(additive, ty)
        return gen.as_range() if gen is not None else None

    for gen in zone.gen_list:
        ty = gen.ty
        if ty == GeneratorType.Pan:
            pan = _map_range((-500.0, 500.0), (0.0, 127.0), gen.as_i16() + base(ty))
            split.smplpan = _clamp(round(pan), 0, 127)
        elif ty in _ENVELOPE_FIELDS:
            envelope_tc[_ENVELOPE_FIELDS[ty]] = base(ty) + gen.as_i16()
        elif ty == GeneratorType.SustainVolEnv:
            decibels = -(gen.as_i16() + base(ty)) / 10.0
            split.volume_envelope.sustain = _clamp(round(gain(decibels) * 127.0), 0, 127)
        elif ty == GeneratorType.InitialAttenuation:
            # 1 dB of attenuation is applied as 0.4 dB
            decibels = -(gen.as_i16() + base(ty)) / 10.0 * 0.4
            split.smplvol = _clamp(round(gain(decibels) * 127.0), 0, 127)
        elif ty in (GeneratorType.KeyRange, GeneratorType.VelRange):
            low, high = gen.as_range()
            limit = base_range(ty)
            if limit is not None:
                low, high = max(limit[0], low), min(limit[1], high)
            if ty == GeneratorType.KeyRange:
                split.lowkey, split.hikey = low, high
            else:
                split.lovel, split.hivel = low, high
        elif ty in (GeneratorType.CoarseTune, GeneratorType.FineTune):
            coarse = zone.find(GeneratorType.CoarseTune)
            fine = zone.find(GeneratorType.FineTune)
            tuning = copy.copy(sample_info.tuning)
            tuning.add_semitones((coarse.as_i16() if coarse else 0) + base(GeneratorType.CoarseTune))
            tuning.add_cents((fine.as_i16() if fine else 0) + base(GeneratorType.FineTune))
            split.tuning = tuning
        elif ty == GeneratorType.SampleID:
            mapped = map_samples(gen.as_u16())
            if mapped is not None:
                split.SmplID = mapped
        elif ty == GeneratorType.SampleModes:
            sample_info.smplloop = (gen.as_u16() & 0x3) % 2 == 1
        elif ty == GeneratorType.OverridingRootKey:
            if gen.as_i16() != -1 and additive is None:
                split.rootkey = gen.as_i16()


def _finish_envelope(split: SplitEntry, envelope_tc: Dict[str, int]) -> None:
    if not envelope_tc:
        return
    envmult, _ = timecents_to_index(max(envelope_tc.values()))
    split.volume_envelope.envmult = envmult
    for name, timecents in envelope_tc.items():
        msec = timecents_to_milliseconds(timecents)
        index = lookup_env_time_value_i16(msec) if envmult else lookup_env_time_value_i32(msec)
        setattr(split.volume_envelope, name, index)


def _splits_from_zones(
    global_preset_zone: Optional[Zone],
    preset_zone: Zone,
    instrument_zones: List[Zone],
    sample_infos: Dict[int, SampleInfo],
    map_samples: Callable[[int], Optional[int]],
) -> List[SplitEntry]:
    splits: List[SplitEntry] = []
    global_instrument_zone: Optional[Zone] = None
    for i, instrument_zone in enumerate(instrument_zones):
        sample_i = instrument_zone.sample()
        if sample_i is None:
            if i == 0:
                global_instrument_zone = instrument_zone
                logger.info("global instrument zone detected")
            else:
                logger.warning("instrument zone %d contains no sample; skipping", i)
            continue
        mapped = map_samples(sample_i)
        if mapped is None:
            logger.debug("sample %d is not mapped; skipping its split", sample_i)
            continue
        sample_info = sample_infos.get(mapped)
        if sample_info is None:
            raise DSESemanticError(f"sample {mapped} referenced by a preset is missing")

        split = SplitEntry(
            SmplID=mapped,
            tuning=copy.copy(sample_info.tuning),
            rootkey=sample_info.rootkey,
            volume_envelope=copy.copy(sample_info.volume_envelope),
            smplvol=127,
            smplpan=64,
            kgrpid=0,
        )
        envelope_tc: Dict[str, int] = {}
        additive = [instrument_zone]
        if global_instrument_zone is not None:
            additive.append(global_instrument_zone)
            _apply_zone(split, envelope_tc, global_instrument_zone, None, sample_info, map_samples)
        _apply_zone(split, envelope_tc, instrument_zone, None, sample_info, map_samples)
        if global_preset_zone is not None:
            _apply_zone(split, envelope_tc, global_preset_zone, additive, sample_info, map_samples)
        _apply_zone(split, envelope_tc, preset_zone, additive, sample_info, map_samples)
        _finish_envelope(split, envelope_tc)
        splits.append(split)
    return splits


def copy_presets(
    sf2: SoundFont2,
    sample_infos: Dict[int, SampleInfo],
    map_samples: Callable[[int], Optional[int]],
    filter_instruments: InstrumentFilter,
    map_presets: PresetMapper,
) -> List[ProgramInfo]:
    """Build one ProgramInfo per preset accepted by `map_presets`."""

    programs: List[ProgramInfo] = []
    for preset_i, preset in enumerate(sf2.presets):
        global_preset_zone: Optional[Zone] = None
        splits: List[SplitEntry] = []
        for preset_zone_i, preset_zone in enumerate(preset.zones):
            instrument_i = preset_zone.instrument()
            if instrument_i is None:
                if preset_zone_i == 0:
                    global_preset_zone = preset_zone
                    logger.info("global preset zone detected in %r", preset.name)
                else:
                    logger.warning("preset %r has a zone without an instrument", preset.name)
                continue
            if instrument_i >= len(sf2.instruments):
                raise DSEFormatError(f"preset {preset.name!r} references missing instrument {instrument_i}")
            instrument = sf2.instruments[instrument_i]
            if not filter_instruments(
                preset_i, preset, global_preset_zone, preset_zone_i, preset_zone, instrument_i, instrument
            ):
                continue
            splits.extend(
                _splits_from_zones(global_preset_zone, preset_zone, instrument.zones, sample_infos, map_samples)
            )
        if not splits:
            # Some exporters append empty presets; they carry nothing to play.
            continue
        for i, split in enumerate(splits):
            split.id = i

        program = ProgramInfo(
            header=ProgramInfoHeader(prgvol=127, prgpan=64, PadByte=0xAA),
            lfo_table=Table([LFOEntry() for _ in range(4)]),
            splits_table=Table(splits),
        )
        program_id = map_presets(preset_i, preset, program)
        if program_id is None:
            continue
        program.header.id = program_id
        programs.append(program)
    return programs


# ── Samples ───────────────────────────────────────────────────────────


def pcm16_loop_bounds(header: SampleHeader) -> Tuple[int, int]:
    """``(loopbeg, looplen)`` in 32-bit units for the raw 16-bit sample."""

    if header.has_loop():
        return (header.loop_start - header.start) // 2, (header.loop_end - header.loop_start) // 2
    return 0, (header.end - header.start) // 2


def copy_raw_sample_data(
    sf2: SoundFont2,
    bank: SWDL,
    dsp_options: DSPOptions,
    curve: Union[int, str],
    pitch_adjust: int,
    filter_samples: SampleFilter,
) -> Tuple[Dict[int, int], Dict[int, SampleInfo]]:
    """Encode the accepted samples into `bank`'s WAVI and PCMD chunks.

    Returns the SF2 sample index -> DSE sample id map and the new SampleInfo
    entries keyed by DSE id.
    """

    if bank.pcmd is None:
        bank.pcmd = PCMDChunk()
    pcmd = bytearray(bank.pcmd.data)
    first_id = bank.wavi.data.slots()

    mappings: Dict[int, int] = {}
    sample_infos: Dict[int, SampleInfo] = {}
    accepted = [(i, h) for i, h in enumerate(sf2.sample_headers) if filter_samples(i, h)]
    for n, (old_i, header) in enumerate(accepted):
        loopbeg, looplen = pcm16_loop_bounds(header)
        info = SampleInfo(
            id=first_id + n,
            smplrate=header.sample_rate,
            rootkey=60 if header.origpitch >= 128 else header.origpitch,
            volume=127,
            pan=64,
            smplfmt=SAMPLE_FORMAT_ADPCM,
            smplloop=False,
            loopbeg=loopbeg,
            looplen=looplen,
            volume_envelope=ADSRVolumeEnvelope.default2(),
        )
        mappings[old_i] = info.id

        if sf2.smpl:
            pcm = pcm16_from_bytes(sf2.sample_pcm(header))
            if header.has_loop():
                pre_loop = pcm[: header.loop_start - header.start]
                loop = pcm[header.loop_start - header.start : header.loop_end - header.start]
            else:
                pre_loop = pcm[:0]
                loop = pcm
            target = dsp_options.target_rate(header.sample_rate)
            encoded, new_rate, loop_start = process_mono(
                pre_loop, loop, header.sample_rate, target, looped=header.has_loop()
            )
            info.smplrate = int(round(new_rate))
            info.loopbeg = loop_start // 4
            info.looplen = len(encoded) // 4 - info.loopbeg
            tuning = sample_rate_adjustment(new_rate, curve, pitch_adjust)
        else:
            logger.warning("soundfont does not contain any sample data")
            encoded = b""
            tuning = sample_rate_adjustment(header.sample_rate, curve, pitch_adjust)
        tuning.add_cents(header.pitchadj)
        info.tuning = tuning

        info.smplpos = len(pcmd)
        pcmd.extend(encoded)
        pcmd.extend(b"\x00" * (-len(pcmd) % 4))

        sample_infos[info.id] = info
        bank.wavi.data.objects.append(info)

    bank.pcmd.data = bytes(pcmd)
    return mappings, sample_infos


# ── Keygroups ─────────────────────────────────────────────────────────

_KEYGROUP_POLYPHONY = (-1, 2, 1, 1, 1, 1, 2, 1, 2, -1, -1, -1)


def check_vcrange(vcrange: Tuple[int, int]) -> Tuple[int, int]:
    """Validate a voice-channel range; a high end of -1 means 15."""

    low, high = vcrange
    if not 0 <= low <= 15:
        raise VoiceChannelRangeError(f"voice channel range start {low} outside 0..15")
    if high != -1 and not 0 <= high <= 15:
        raise VoiceChannelRangeError(f"voice channel range end {high} outside 0..15")
    if high != -1 and low > high:
        raise VoiceChannelRangeError(f"voice channel range {low}..{high} is flipped")
    return low, 15 if high == -1 else high


def build_keygroups(vcrange: Tuple[int, int] = (0, -1)) -> List[Keygroup]:
    vclow, vchigh = check_vcrange(vcrange)
    return [
        Keygroup(id=i, poly=poly, priority=1 if i == 5 else 8, vclow=vclow, vchigh=vchigh)
        for i, poly in enumerate(_KEYGROUP_POLYPHONY)
    ]


# ── Song banks ────────────────────────────────────────────────────────


def _notes_hit(notes: Dict[int, Set[int]], key_range: Optional[Tuple[int, int]], vel_range: Optional[Tuple[int, int]]) -> bool:
    def key_ok(key: int) -> bool:
        return key_range is None or key_range[0] <= key <= key_range[1]

    def vel_ok(vels: Iterable[int]) -> bool:
        return vel_range is None or any(vel_range[0] <= v <= vel_range[1] for v in vels)

    return any(key_ok(key) and vel_ok(vels) for key, vels in notes.items())


def _plan_usage(
    sf2: SoundFont2, programs_used: List[ProgramUsed]
) -> Tuple[Set[Tuple[int, int]], Set[int]]:
    """Find the preset zones and samples needed to play the notes in `programs_used`."""

    dummy_infos = {i: SampleInfo(id=i) for i in range(len(sf2.sample_headers))}

    def identity(i: int) -> Optional[int]:
        return i if i in dummy_infos else None

    instrument_mappings_used: Set[Tuple[int, int]] = set()
    samples_used: Set[int] = set()
    for used in programs_used:
        if not used.notes:
            continue
        preset_index = find_preset(sf2, used.bank, used.program)
        if preset_index is None:
            if used.is_default:
                logger.warning(
                    "soundfont has no %03d:%03d preset; tracks without program changes will be silent",
                    used.bank, used.program,
                )
                continue
            raise DSESemanticError(f"preset {used.bank:03d}:{used.program:03d} not found in the soundfont")

        def keep(preset_i, preset, global_preset_zone, preset_zone_i, preset_zone, instrument_i, instrument):
            if preset_i != preset_index:
                return False
            zones = [preset_zone] + ([global_preset_zone] if global_preset_zone is not None else [])
            key_gen = find_gen_in_zones(zones, GeneratorType.KeyRange)
            vel_gen = find_gen_in_zones(zones, GeneratorType.VelRange)
            if not _notes_hit(
                used.notes,
                key_gen.as_range() if key_gen is not None else None,
                vel_gen.as_range() if vel_gen is not None else None,
            ):
                return False
            instrument_mappings_used.add((preset_i, preset_zone_i))
            return True

        programs = copy_presets(
            sf2, copy.deepcopy(dummy_infos), identity, keep,
            lambda preset_i, preset, program: 0 if preset_i == preset_index else None,
        )
        for program in programs:
            for split in program.splits_table:
                if _notes_hit(used.notes, (split.lowkey, split.hikey), (split.lovel, split.hivel)):
                    samples_used.add(split.SmplID)
    return instrument_mappings_used, samples_used


def swdl_from_sf2(
    sf2: SoundFont2,
    song_preset_map: Dict[Tuple[int, int], int],
    programs_used: List[ProgramUsed],
    last_modified: Tuple[int, ...],
    name: str,
    link_bytes: Tuple[int, int],
    *,
    vcrange: Tuple[int, int] = (0, -1),
    dsp_options: Optional[DSPOptions] = None,
    curve: Union[int, str] = "ideal",
    pitch_adjust: int = 0,
) -> SWDL:
    """Build a song SWDL (with embedded PCMD) holding only what the song plays."""

    dsp_options = dsp_options or DSPOptions()
    keygroups = build_keygroups(vcrange)
    instrument_mappings_used, samples_used = _plan_usage(sf2, programs_used)

    preset_ids: Dict[int, int] = {}
    for (bank, program), program_id in sorted(song_preset_map.items(), key=lambda kv: kv[1]):
        preset_i = find_preset(sf2, bank, program)
        if preset_i is None:
            continue
        if preset_i in preset_ids:
            logger.warning(
                "%03d:%03d resolves to a preset already mapped to program %d",
                bank, program, preset_ids[preset_i],
            )
            continue
        preset_ids[preset_i] = program_id

    swdl = SWDL()
    swdl.set_metadata(last_modified, name)
    swdl.set_link_bytes(link_bytes)
    mappings, sample_infos = copy_raw_sample_data(
        sf2, swdl, dsp_options, curve, pitch_adjust, lambda i, header: i in samples_used
    )
    programs = copy_presets(
        sf2,
        sample_infos,
        mappings.get,
        lambda preset_i, preset, gpz, preset_zone_i, *rest: (preset_i, preset_zone_i) in instrument_mappings_used,
        lambda preset_i, preset, program: preset_ids.get(preset_i),
    )
    swdl.prgi = PRGIChunk(data=PointerTable(programs))
    swdl.kgrp = KGRPChunk(data=Table(keygroups))
    swdl.regenerate_automatic_parameters()
    swdl.regenerate_read_markers(auto_pointer_extension=True)
    return swdl


def prune_swdl(
    bank: SWDL,
    song_preset_map: Dict[Tuple[int, int], int],
    last_modified: Tuple[int, ...],
    name: str,
    link_bytes: Optional[Tuple[int, int]] = None,
) -> SWDL:
    """Cut a song SWDL out of a main bank.

    Programs are looked up by ``bank * 128 + program`` and renumbered to the
    song's DSE program ids; sample data stays in the main bank.
    """

    if bank.prgi is None:
        raise DSESemanticError("swd bank lacks a prgi chunk; cannot select presets")
    song = SWDL()
    song.set_metadata(last_modified, name)
    song.set_link_bytes(link_bytes if link_bytes is not None else bank.get_link_bytes())

    programs: List[ProgramInfo] = []
    used_samples: Set[int] = set()
    for (bank_no, program_no), program_id in sorted(song_preset_map.items(), key=lambda kv: kv[1]):
        program = bank.prgi.data.by_index(bank_no * 128 + program_no)
        if program is None:
            logger.warning("main bank has no program for %03d:%03d", bank_no, program_no)
            continue
        program = copy.deepcopy(program)
        program.header.id = program_id
        programs.append(program)
        used_samples.update(split.SmplID for split in program.splits_table)

    samples = [copy.deepcopy(s) for s in bank.wavi.data if s.id in used_samples]
    missing = used_samples - {s.id for s in samples}
    if missing:
        raise DSESemanticError(f"samples {sorted(missing)} referenced by presets are missing from the bank")

    song.wavi.data = PointerTable(samples)
    song.prgi = PRGIChunk(data=PointerTable(programs))
    song.kgrp = copy.deepcopy(bank.kgrp) if bank.kgrp is not None else KGRPChunk(data=Table(build_keygroups()))
    song.header.pcmdlen = EXTERNAL_PCMD
    song.regenerate_automatic_parameters()
    song.regenerate_read_markers(auto_pointer_extension=True)
    return song


__all__ = [
    "BUILT_IN_SAMPLE_RATE_ADJUSTMENT_TABLE",
    "DSPOptions",
    "build_keygroups",
    "check_vcrange",
    "copy_presets",
    "copy_raw_sample_data",
    "find_preset",
    "gain",
    "pcm16_loop_bounds",
    "prune_swdl",
    "resolve_curve",
    "sample_rate_adjustment",
    "sample_rate_adjustment_fitted",
    "sample_rate_adjustment_ideal",
    "sample_rate_adjustment_table",
    "swdl_from_sf2",
    "timecents_to_index",
    "timecents_to_milliseconds",
]
