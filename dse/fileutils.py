"""Filesystem helpers shared by the command-line tools."""

from __future__ import annotations

import datetime as _dt
import glob
import os
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import DSEIOError
from .smdl import DEFAULT_DATE


def get_file_last_modified_date_with_default(path: Path) -> Tuple[int, ...]:
    """``(year, month, day, hour, minute, second, centisecond)`` of the file's mtime."""

    try:
        mtime = os.stat(path).st_mtime
    except OSError as exc:
        raise DSEIOError(f"cannot read metadata of {path}: {exc}") from exc
    try:
        dt = _dt.datetime.fromtimestamp(mtime)
    except (OverflowError, OSError, ValueError):
        return DEFAULT_DATE
    return (dt.year, dt.month, dt.day, dt.hour, dt.minute, dt.second, dt.microsecond // 10_000)


def get_final_output_folder(output_folder: Optional[Path]) -> Path:
    if output_folder is None:
        return Path.cwd()
    if not output_folder.exists():
        raise DSEIOError(f"output folder {output_folder} does not exist")
    if not output_folder.is_dir():
        raise DSEIOError(f"output path {output_folder} must be a folder")
    return output_folder


def valid_file_of_type(path: Path, ext: str) -> bool:
    return path.is_file() and path.suffix[1:].lower() == ext.lower()


def get_input_output_pairs(
    input_glob: str, source_ext: str, output_folder: Path, change_ext: str
) -> List[Tuple[Path, Path]]:
    """Expand `input_glob` into ``(input, output)`` pairs.

    Files without the `source_ext` extension are reported and skipped.  The
    output keeps the input's file name with its last extension replaced by
    `change_ext` (an empty string drops it).
    """

    pairs: List[Tuple[Path, Path]] = []
    for entry in sorted(glob.glob(input_glob)):
        path = Path(entry)
        if not valid_file_of_type(path, source_ext):
            print(f"Skipping {path}!")
            continue
        suffix = f".{change_ext}" if change_ext else ""
        pairs.append((path, output_folder / (path.stem + suffix)))
    return pairs


__all__ = [
    "get_file_last_modified_date_with_default",
    "get_final_output_folder",
    "get_input_output_pairs",
    "valid_file_of_type",
]
