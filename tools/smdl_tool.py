#!/usr/bin/env python3
"""Tools for working with SMDL sequences.

Examples
--------
Decode every sequence in a folder:
    python tools/smdl_tool.py to-xml "unpack/BGM/*.smd" -o xml

Encode them back:
    python tools/smdl_tool.py from-xml "xml/*.smd.xml" -o unpack/BGM

Translate a MIDI against a soundfont and emit a matching song bank:
    python tools/smdl_tool.py from-midi song.mid -b bank.sf2 --generate-optimized-swdl
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys
from typing import Optional, Sequence, Tuple

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dse.errors import DSEError, DSEFormatError
from dse.fileutils import (
    get_file_last_modified_date_with_default,
    get_final_output_folder,
    get_input_output_pairs,
)
from dse.midi import from_midi, open_midi
from dse.sf2 import SoundFont2
from dse.sf2swdl import DSPOptions, check_vcrange, prune_swdl, resolve_curve, swdl_from_sf2
from dse.smdl import SMDL
from dse.swdl import SWDL
from dse.xml_mirror import smdl_from_xml, smdl_to_xml


def _u8(text: str) -> int:
    value = int(text, 0)
    if not 0 <= value <= 0xFF:
        raise argparse.ArgumentTypeError(f"{text} does not fit in a byte")
    return value


def _vcrange(text: str) -> Tuple[int, int]:
    low, sep, high = text.partition(",")
    if not sep:
        raise argparse.ArgumentTypeError("voice channel range must be written LOW,HIGH")
    return int(low), int(high)


def _dse_name(path: Path) -> str:
    return path.name.split(".", 1)[0][:15]


def _add_io_arguments(parser: argparse.ArgumentParser, what: str) -> None:
    parser.add_argument("input_glob", help=f"Glob matching the {what} to convert")
    parser.add_argument(
        "-o",
        "--output-folder",
        type=Path,
        default=None,
        help="Existing folder for the converted files (default: current directory)",
    )


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tools for working with SMDL and SMDL.XML files")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log translator details")
    sub = parser.add_subparsers(dest="command", required=True)

    _add_io_arguments(sub.add_parser("to-xml", help="Decode .smd files to XML"), ".smd files")
    _add_io_arguments(sub.add_parser("from-xml", help="Encode .smd.xml files to SMDL"), ".xml files")

    midi = sub.add_parser("from-midi", help="Translate MIDI files to SMDL")
    _add_io_arguments(midi, ".mid files")
    midi.add_argument(
        "-b",
        "--bank",
        type=Path,
        default=None,
        help="Main bank (.swd) or soundfont (.sf2) the song will play with",
    )
    midi.add_argument("-1", "--link-byte-1", type=_u8, default=None, help="First SWDL link byte")
    midi.add_argument("-2", "--link-byte-2", type=_u8, default=None, help="Second SWDL link byte")
    midi.add_argument(
        "-M",
        "--midi-prgch",
        action="store_true",
        help="Carry MIDI bank select (CC0) and program changes through",
    )
    midi.add_argument(
        "--generate-optimized-swdl",
        action="store_true",
        help="Also write a song SWD holding only the presets the MIDI uses (requires -b)",
    )
    midi.add_argument(
        "--sample-rate-adjustment-curve",
        default="ideal",
        help="Tuning curve for resampled audio: ideal, table or fitted (or 1/2/3)",
    )
    midi.add_argument("--pitch-adjust", type=int, default=0, help="Extra tuning in cents")
    midi.add_argument(
        "--vcrange",
        type=_vcrange,
        default=(0, -1),
        help="Voice channel range LOW,HIGH for the keygroups (-1 for 15)",
    )
    midi.add_argument("--resample-threshold", type=int, default=22050)
    midi.add_argument("--sample-rate", type=float, default=22050.0)
    midi.add_argument(
        "--sample-rate-relative",
        action="store_true",
        help="Treat --sample-rate as a factor applied to each sample's rate",
    )
    return parser


def _to_xml(input_path: Path, output_path: Path) -> None:
    smdl = SMDL.from_bytes(input_path.read_bytes())
    output_path.write_text(smdl_to_xml(smdl), encoding="utf-8")


def _from_xml(input_path: Path, output_path: Path) -> None:
    smdl = smdl_from_xml(input_path.read_text(encoding="utf-8"))
    smdl.regenerate_read_markers()
    output_path.write_bytes(smdl.to_bytes())


def _link_bytes(args: argparse.Namespace, bank: Optional[SWDL]) -> Tuple[int, int]:
    link = bank.get_link_bytes() if bank is not None else (0x00, 0xFF)
    first = args.link_byte_1 if args.link_byte_1 is not None else link[0]
    second = args.link_byte_2 if args.link_byte_2 is not None else link[1]
    return first, second


def _from_midi(args: argparse.Namespace, input_path: Path, output_path: Path) -> None:
    swd_bank: Optional[SWDL] = None
    sf2_bank: Optional[SoundFont2] = None
    if args.bank is not None:
        ext = args.bank.suffix.lower()
        if ext == ".swd":
            swd_bank = SWDL.from_bytes(args.bank.read_bytes())
        elif ext == ".sf2":
            sf2_bank = SoundFont2.from_bytes(args.bank.read_bytes())
        else:
            raise DSEFormatError(f"bank {args.bank} must be an .swd or .sf2 file")

    last_modified = get_file_last_modified_date_with_default(input_path)
    name = _dse_name(input_path)
    link_bytes = _link_bytes(args, swd_bank)
    smdl, song_preset_map, programs_used = from_midi(
        open_midi(input_path.read_bytes()), last_modified, name, link_bytes, args.midi_prgch
    )
    output_path.write_bytes(smdl.to_bytes())

    if not args.generate_optimized_swdl:
        return
    swd_path = output_path.with_suffix(".swd")
    if swd_bank is not None:
        song = prune_swdl(swd_bank, song_preset_map, last_modified, name, link_bytes)
    elif sf2_bank is not None:
        song = swdl_from_sf2(
            sf2_bank,
            song_preset_map,
            programs_used,
            last_modified,
            name,
            link_bytes,
            vcrange=args.vcrange,
            dsp_options=DSPOptions(
                resample_threshold=args.resample_threshold,
                sample_rate=args.sample_rate,
                sample_rate_relative=args.sample_rate_relative,
            ),
            curve=args.sample_rate_adjustment_curve,
            pitch_adjust=args.pitch_adjust,
        )
    else:
        raise DSEFormatError("--generate-optimized-swdl requires a bank (-b)")
    swd_path.write_bytes(song.to_bytes())


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        output_folder = get_final_output_folder(args.output_folder)
        if args.command == "to-xml":
            pairs = get_input_output_pairs(args.input_glob, "smd", output_folder, "smd.xml")
        elif args.command == "from-xml":
            pairs = get_input_output_pairs(args.input_glob, "xml", output_folder, "")
        else:
            resolve_curve(args.sample_rate_adjustment_curve)
            check_vcrange(args.vcrange)
            pairs = get_input_output_pairs(args.input_glob, "mid", output_folder, "smd")

        for input_path, output_path in pairs:
            print(f"Converting {input_path}... ", end="", flush=True)
            if args.command == "to-xml":
                _to_xml(input_path, output_path)
            elif args.command == "from-xml":
                _from_xml(input_path, output_path)
            else:
                _from_midi(args, input_path, output_path)
            print("done!")
    except (DSEError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print("\nAll files successfully processed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
