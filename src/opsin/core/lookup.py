"""O(1) lookup through a precomputed 24-bit table.

The table holds 3 bytes per input color at offset ((r << 16) | (g << 8) | b) * 3.
Length is validated once when a PrecomputedTable is built; per-pixel reads
do no further checks.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import numpy as np

from opsin.config import DEFAULT_APPLY_CHUNK_PIXELS, TABLE_BYTES, TABLE_ENTRIES
from opsin.core.precompute import chunk_ranges, default_workers
from opsin.core.types import pack_rgb
from opsin.errors import CorruptTableError

logger = logging.getLogger(__name__)


def validate_table(table: bytes) -> None:
    """Raise CorruptTableError unless ``table`` has exactly TABLE_BYTES bytes."""
    if len(table) != TABLE_BYTES:
        raise CorruptTableError(
            f"Precomputed table is {len(table):,} bytes; expected {TABLE_BYTES:,}"
        )


def apply(table: bytes, r: int, g: int, b: int) -> tuple[int, int, int]:
    """Look up one color. ``table`` must already be validated."""
    idx = ((r << 16) | (g << 8) | b) * 3
    return table[idx], table[idx + 1], table[idx + 2]


class PrecomputedTable:
    """A validated precomputed table with scalar and vectorized lookups."""

    def __init__(self, table: bytes):
        validate_table(table)
        self._table = bytes(table)
        self._rgb = np.frombuffer(self._table, dtype=np.uint8).reshape(TABLE_ENTRIES, 3)

    def __len__(self) -> int:
        return len(self._table)

    def __bytes__(self) -> bytes:
        return self._table

    def apply(self, r: int, g: int, b: int) -> tuple[int, int, int]:
        return apply(self._table, r, g, b)

    def apply_array(self, rgb: np.ndarray) -> np.ndarray:
        """Transform a (..., 3) uint8 array. Returns a new array of the same shape."""
        rgb = np.asarray(rgb)
        if rgb.dtype != np.uint8 or rgb.shape[-1:] != (3,):
            raise ValueError(f"Expected (..., 3) uint8 array, got {rgb.dtype} {rgb.shape}")
        wide = rgb.astype(np.int64)
        keys = pack_rgb(wide[..., 0], wide[..., 1], wide[..., 2])
        return self._rgb[keys]

    def apply_buffer(self, buffer: bytes, workers: Optional[int] = None) -> bytes:
        """Transform raw interleaved RGB bytes.

        Large buffers are split into disjoint pixel ranges and processed on a
        thread pool.

        Raises:
            ValueError: If the buffer length is not a multiple of 3.
        """
        if len(buffer) % 3:
            raise ValueError(f"RGB buffer length {len(buffer)} is not a multiple of 3")
        pixels = np.frombuffer(buffer, dtype=np.uint8).reshape(-1, 3)
        out = np.empty_like(pixels)
        ranges = chunk_ranges(len(pixels), DEFAULT_APPLY_CHUNK_PIXELS)
        workers = workers or default_workers()

        def run(bounds: tuple[int, int]) -> None:
            start, stop = bounds
            out[start:stop] = self.apply_array(pixels[start:stop])

        if workers == 1 or len(ranges) <= 1:
            for bounds in ranges:
                run(bounds)
        else:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                list(pool.map(run, ranges))
        logger.debug("Applied table to %d pixels", len(pixels))
        return out.tobytes()
