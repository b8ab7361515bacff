""".cube 3D LUT reading and writing.

Format (line-oriented, whitespace-delimited):

    TITLE "..."                 optional
    LUT_3D_SIZE N               required, exactly once
    DOMAIN_MIN r g b            optional, default 0 0 0
    DOMAIN_MAX r g b            optional, default 1 1 1
    r g b                       N^3 data lines, R varies fastest

Blank lines and lines starting with '#' may appear anywhere. Every numeric
token must parse as a finite number; nothing is silently defaulted.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Iterable

import numpy as np

from opsin.config import CUBE_DECIMALS, MAX_CUBE_FILE_LINES, MAX_CUBE_SIZE
from opsin.core.types import Grid
from opsin.errors import (
    CubeParseError,
    MalformedNumberError,
    MissingSizeError,
    SizeMismatchError,
)

logger = logging.getLogger(__name__)


def _parse_float(token: str, line_number: int) -> float:
    try:
        value = float(token)
    except ValueError:
        raise MalformedNumberError(line_number, token) from None
    if not math.isfinite(value):
        raise MalformedNumberError(line_number, token, reason="a non-finite value")
    return value


def _parse_triplet(tokens: list[str], line_number: int, what: str) -> tuple[float, float, float]:
    if len(tokens) != 3:
        raise CubeParseError(
            f"Line {line_number}: {what} expects 3 values, got {len(tokens)}"
        )
    r, g, b = (_parse_float(t, line_number) for t in tokens)
    return r, g, b


def _parse_size(tokens: list[str], line_number: int) -> int:
    if len(tokens) != 1:
        raise CubeParseError(
            f"Line {line_number}: LUT_3D_SIZE expects 1 value, got {len(tokens)}"
        )
    try:
        size = int(tokens[0])
    except ValueError:
        raise MalformedNumberError(line_number, tokens[0], reason="not a valid integer") from None
    if size != 0 and not 1 <= size <= MAX_CUBE_SIZE:
        raise CubeParseError(
            f"Line {line_number}: LUT_3D_SIZE {size} out of range [1, {MAX_CUBE_SIZE}]"
        )
    return size


def parse_cube_lines(lines: Iterable[str]) -> Grid:
    """Parse .cube content given as an iterable of lines.

    Raises:
        MissingSizeError: LUT_3D_SIZE absent or zero.
        SizeMismatchError: Data line count differs from size^3.
        MalformedNumberError: A numeric token failed to parse.
        CubeParseError: Any other structural problem.
    """
    size = None
    title = ""
    domain_min = (0.0, 0.0, 0.0)
    domain_max = (1.0, 1.0, 1.0)
    rows: list[tuple[float, float, float]] = []

    for line_number, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        if line.startswith("TITLE"):
            title = line[len("TITLE"):].strip().strip('"')
        elif line.startswith("LUT_3D_SIZE"):
            if size is not None:
                raise CubeParseError(f"Line {line_number}: duplicate LUT_3D_SIZE")
            size = _parse_size(line.split()[1:], line_number)
        elif line.startswith("DOMAIN_MIN"):
            domain_min = _parse_triplet(line.split()[1:], line_number, "DOMAIN_MIN")
        elif line.startswith("DOMAIN_MAX"):
            domain_max = _parse_triplet(line.split()[1:], line_number, "DOMAIN_MAX")
        else:
            rows.append(_parse_triplet(line.split(), line_number, "Data line"))

    if not size:
        raise MissingSizeError("No LUT_3D_SIZE found (or size is zero)")

    expected = size ** 3
    if len(rows) != expected:
        raise SizeMismatchError(expected, len(rows))

    for ch, (lo, hi) in enumerate(zip(domain_min, domain_max)):
        if hi <= lo:
            raise CubeParseError(
                f"DOMAIN_MAX must exceed DOMAIN_MIN on every channel "
                f"(channel {ch}: {lo} >= {hi})"
            )

    samples = np.array(rows, dtype=np.float64).reshape(expected, 3)
    return Grid(
        size=size,
        samples=samples,
        domain_min=domain_min,
        domain_max=domain_max,
        title=title,
    )


def parse_cube(text: str) -> Grid:
    """Parse .cube text into a Grid."""
    return parse_cube_lines(text.splitlines())


def read_cube(filepath: str | Path) -> Grid:
    """Read a .cube file into a Grid.

    Raises:
        FileNotFoundError: If the file does not exist.
        CubeParseError: If the file is malformed, not UTF-8, or exceeds the
            line limit.
    """
    path = Path(filepath)
    with open(path, "r", encoding="utf-8") as f:
        lines = []
        try:
            for line in f:
                lines.append(line)
                if len(lines) > MAX_CUBE_FILE_LINES:
                    raise CubeParseError(
                        f"{path}: exceeds {MAX_CUBE_FILE_LINES:,} lines"
                    )
        except UnicodeDecodeError as e:
            raise CubeParseError(
                f"{path}: not valid UTF-8 (byte offset {e.start})"
            ) from e

    grid = parse_cube_lines(lines)
    logger.debug("Read %s: size %d, title %r", path, grid.size, grid.title)
    return grid


def format_cube(grid: Grid, decimals: int = CUBE_DECIMALS) -> str:
    """Serialize a Grid to .cube text."""
    if grid.size > MAX_CUBE_SIZE:
        raise CubeParseError(f"LUT size {grid.size} exceeds maximum {MAX_CUBE_SIZE}")

    fmt = f"{{:.{decimals}f}}"
    out = []
    if grid.title:
        out.append(f'TITLE "{grid.title}"')
    out.append(f"LUT_3D_SIZE {grid.size}")
    if grid.domain_min != (0.0, 0.0, 0.0):
        out.append("DOMAIN_MIN " + " ".join(fmt.format(v) for v in grid.domain_min))
    if grid.domain_max != (1.0, 1.0, 1.0):
        out.append("DOMAIN_MAX " + " ".join(fmt.format(v) for v in grid.domain_max))
    out.append("")
    for r, g, b in grid.samples:
        out.append(f"{fmt.format(r)} {fmt.format(g)} {fmt.format(b)}")
    return "\n".join(out) + "\n"


def write_cube(filepath: str | Path, grid: Grid, decimals: int = CUBE_DECIMALS) -> Path:
    """Write a Grid as a .cube file. Samples are written in flat order (R fastest)."""
    path = Path(filepath)
    path.write_text(format_cube(grid, decimals), encoding="utf-8")
    logger.debug("Wrote %s (%d^3)", path, grid.size)
    return path
