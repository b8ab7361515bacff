"""Full-domain table generation.

Every 24-bit input is pushed through the sampling engine once and the
result stored at its packed offset. The 2^24 index space is split into
disjoint chunks; each chunk writes its own slice of a preallocated buffer,
so chunks can run on a thread pool with no synchronization beyond the
final join. NumPy releases the GIL inside the per-chunk array math.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import numpy as np

from opsin.config import DEFAULT_CHUNK_SIZE, MAX_DEFAULT_WORKERS, TABLE_ENTRIES
from opsin.core.sampling import sample_colors
from opsin.core.types import (
    CancelCheck,
    Grid,
    InterpolationMode,
    ProgressCallback,
    unpack_rgb,
)
from opsin.errors import GenerationCancelledError

logger = logging.getLogger(__name__)


def default_workers() -> int:
    return min(os.cpu_count() or 1, MAX_DEFAULT_WORKERS)


def chunk_ranges(total: int, chunk_size: int) -> list[tuple[int, int]]:
    """Split [0, total) into consecutive (start, stop) ranges."""
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    return [(start, min(start + chunk_size, total)) for start in range(0, total, chunk_size)]


def fill_range(
    out: np.ndarray,
    grid: Grid,
    mode: InterpolationMode,
    start: int,
    stop: int,
) -> None:
    """Compute entries [start, stop) of a table into ``out``.

    Args:
        out: (TABLE_ENTRIES, 3) uint8 buffer.
    """
    rgb = unpack_rgb(np.arange(start, stop, dtype=np.int64))
    out[start:stop] = sample_colors(grid, mode, rgb)


def generate_table(
    grid: Grid,
    mode: InterpolationMode | str,
    workers: Optional[int] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_check: Optional[CancelCheck] = None,
) -> bytes:
    """Build the 12,582,912-byte table for a grid and mode.

    Output is identical for any worker count and chunk size.

    Args:
        grid: Source grid.
        mode: Interpolation mode.
        workers: Thread count (None = default_workers(), 1 = run inline).
        chunk_size: Packed indices per chunk.
        progress_callback: (stage_name, fraction, message) callback.
        cancel_check: Polled between chunks; returning True aborts.

    Returns:
        Table bytes.

    Raises:
        GenerationCancelledError: If cancel_check requested a stop.
    """
    mode = InterpolationMode(mode)
    workers = workers or default_workers()
    ranges = chunk_ranges(TABLE_ENTRIES, chunk_size)
    out = np.empty((TABLE_ENTRIES, 3), dtype=np.uint8)

    t_start = time.perf_counter()
    logger.info(
        "Generating %s table from %d^3 grid: %d chunks on %d worker(s)",
        mode.value, grid.size, len(ranges), workers,
    )

    lock = threading.Lock()
    done = 0

    def run(bounds: tuple[int, int]) -> None:
        nonlocal done
        if cancel_check is not None and cancel_check():
            raise GenerationCancelledError("Table generation cancelled")
        fill_range(out, grid, mode, *bounds)
        with lock:
            done += 1
            completed = done
        logger.debug("Chunk [%d, %d) done", *bounds)
        if progress_callback is not None:
            progress_callback(
                "generate", completed / len(ranges),
                f"{completed}/{len(ranges)} chunks",
            )

    if workers == 1:
        for bounds in ranges:
            run(bounds)
    else:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(run, bounds) for bounds in ranges]
            try:
                for future in futures:
                    future.result()
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

    logger.info("Generate: %.2fs", time.perf_counter() - t_start)
    return out.tobytes()
