#!/usr/bin/env python3
"""Tools for working with SWDL sound banks.

Examples
--------
    python tools/swdl_tool.py to-xml "unpack/SOUND/*.swd" -o xml
    python tools/swdl_tool.py from-xml "xml/*.swd.xml" -o unpack/SOUND
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys
from typing import Sequence

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dse.errors import DSEError
from dse.fileutils import get_final_output_folder, get_input_output_pairs
from dse.swdl import SWDL
from dse.xml_mirror import swdl_from_xml, swdl_to_xml


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tools for working with SWDL and SWDL.XML files")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log codec details")
    sub = parser.add_subparsers(dest="command", required=True)
    for command, help_text in (
        ("to-xml", "Decode .swd files to XML"),
        ("from-xml", "Encode .swd.xml files to SWDL"),
    ):
        cmd = sub.add_parser(command, help=help_text)
        cmd.add_argument("input_glob", help="Glob matching the files to convert")
        cmd.add_argument(
            "-o",
            "--output-folder",
            type=Path,
            default=None,
            help="Existing folder for the converted files (default: current directory)",
        )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    try:
        output_folder = get_final_output_folder(args.output_folder)
        if args.command == "to-xml":
            pairs = get_input_output_pairs(args.input_glob, "swd", output_folder, "swd.xml")
        else:
            pairs = get_input_output_pairs(args.input_glob, "xml", output_folder, "")

        for input_path, output_path in pairs:
            print(f"Converting {input_path}... ", end="", flush=True)
            if args.command == "to-xml":
                swdl = SWDL.from_bytes(input_path.read_bytes())
                output_path.write_text(swdl_to_xml(swdl), encoding="utf-8")
            else:
                swdl = swdl_from_xml(input_path.read_text(encoding="utf-8"))
                swdl.regenerate_automatic_parameters()
                swdl.regenerate_read_markers()
                output_path.write_bytes(swdl.to_bytes())
            print("done!")
    except (DSEError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print("\nAll files successfully processed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
