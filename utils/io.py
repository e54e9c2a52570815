"""Utility helpers for input/output operations."""
from __future__ import annotations

import json
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Sequence, TextIO, Tuple

import pandas as pd

STDOUT_NAME = "-"
POINT_COLUMNS = ("lon", "lat")
POINT_FLOAT_FORMAT = "%.6f"


def load_json(path: os.PathLike[str] | str) -> Dict[str, Any]:
    """Load a JSON file from *path* and return the decoded dictionary."""
    return json.loads(Path(path).read_text(encoding="utf-8"))


@contextmanager
def open_output(path: str) -> Iterator[TextIO]:
    """Open *path* for writing CSV text, or yield stdout when it is ``-``."""
    if path == STDOUT_NAME:
        yield sys.stdout
        sys.stdout.flush()
        return
    path_obj = Path(path)
    with path_obj.open("w", encoding="utf-8", newline="") as handle:
        yield handle


def write_points_csv(handle: TextIO, points: Sequence[Tuple[float, float]], *, header: bool = False) -> int:
    """Append *points* to *handle* as ``lon,lat`` rows and return how many were written."""
    if not points and not header:
        return 0
    frame = pd.DataFrame(list(points), columns=list(POINT_COLUMNS), dtype="float64")
    frame.to_csv(handle, index=False, header=header, float_format=POINT_FLOAT_FORMAT, lineterminator="\n")
    return len(frame)
