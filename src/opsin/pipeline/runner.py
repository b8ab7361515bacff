"""Pipeline runner: LUT file to a ready-to-use precomputed table.

This is the single entry point for the CLI and for embedding callers that
decode images themselves and hand over raw RGB buffers.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from opsin.config import DEFAULT_CHUNK_SIZE, DEFAULT_MODE
from opsin.core.lookup import PrecomputedTable
from opsin.core.types import CancelCheck, Grid, InterpolationMode, ProgressCallback
from opsin.errors import GenerationCancelledError
from opsin.io.cube import read_cube
from opsin.io.table import default_cache_path, load_or_generate

logger = logging.getLogger(__name__)


@dataclass
class PreparedTable:
    """A parsed LUT together with its validated precomputed table."""
    grid: Grid
    mode: InterpolationMode
    table: PrecomputedTable
    cache_path: Path
    diagnostics: dict = field(default_factory=dict)


def _check_cancel(cancel_check: Optional[CancelCheck]) -> None:
    """Raise if cancellation requested."""
    if cancel_check is not None and cancel_check():
        raise GenerationCancelledError("Pipeline cancelled by user")


def _emit_progress(
    callback: Optional[ProgressCallback],
    stage: str,
    fraction: float,
    message: str = "",
) -> None:
    """Emit progress update if callback is provided."""
    if callback is not None:
        callback(stage, fraction, message)


def prepare_table(
    lut_path: str | Path,
    mode: InterpolationMode | str = DEFAULT_MODE,
    cache_dir: Optional[str | Path] = None,
    cache_path: Optional[str | Path] = None,
    workers: Optional[int] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_check: Optional[CancelCheck] = None,
) -> PreparedTable:
    """Parse a .cube file and load or build its precomputed table.

    Stages:
        1. parse: read the .cube file
        2. generate: load the cache or build the table
        3. validate: wrap in a length-checked PrecomputedTable

    Args:
        lut_path: .cube file.
        mode: Interpolation mode.
        cache_dir: Directory for the cache file (default: next to the LUT).
        cache_path: Explicit cache file; overrides cache_dir.
        workers: Generation threads (None = min(cpu_count, 8)).
        chunk_size: Packed indices per generation chunk.
        progress_callback: (stage_name, fraction, message) callback.
        cancel_check: Returns True if the run should be cancelled.

    Returns:
        PreparedTable with grid, table, cache path and stage timings.
    """
    t_start = time.perf_counter()
    mode = InterpolationMode(mode)
    diagnostics: dict = {}

    _emit_progress(progress_callback, "parse", 0.0, str(lut_path))
    t0 = time.perf_counter()
    grid = read_cube(lut_path)
    diagnostics["parse_time"] = time.perf_counter() - t0
    logger.info(
        "Parse: %.2fs, %d^3 grid from %s",
        diagnostics["parse_time"], grid.size, lut_path,
    )
    _emit_progress(progress_callback, "parse", 1.0)
    _check_cancel(cancel_check)

    if cache_path is None:
        cache_path = default_cache_path(lut_path, mode, cache_dir)
    cache_path = Path(cache_path)

    t0 = time.perf_counter()
    raw = load_or_generate(
        grid, mode, cache_path,
        workers=workers,
        chunk_size=chunk_size,
        progress_callback=progress_callback,
        cancel_check=cancel_check,
    )
    diagnostics["table_time"] = time.perf_counter() - t0
    logger.info("Table: %.2fs -> %s", diagnostics["table_time"], cache_path)

    _emit_progress(progress_callback, "validate", 0.0)
    table = PrecomputedTable(raw)
    _emit_progress(progress_callback, "validate", 1.0)

    diagnostics["total_time"] = time.perf_counter() - t_start
    logger.info("Prepare complete: %.2fs total", diagnostics["total_time"])

    return PreparedTable(
        grid=grid,
        mode=mode,
        table=table,
        cache_path=cache_path,
        diagnostics=diagnostics,
    )


def transform_buffer(
    prepared: PreparedTable,
    buffer: bytes,
    workers: Optional[int] = None,
) -> bytes:
    """Apply a prepared table to raw interleaved RGB bytes."""
    t0 = time.perf_counter()
    out = prepared.table.apply_buffer(buffer, workers=workers)
    logger.info(
        "Transform: %.2fs, %d pixels", time.perf_counter() - t0, len(buffer) // 3,
    )
    return out
