"""Core data types, enums, and indexing helpers for Opsin.

CRITICAL CONVENTION:
    Grid samples are stored flat with shape (N^3, 3).
    Flat index: flat = b * N * N + g * N + r  (R varies fastest, matching the .cube format).
    The precomputed table uses a different packing:
    offset = ((r << 16) | (g << 8) | b) * 3  (B varies fastest).
    Both conventions MUST be used consistently in ALL modules.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import numpy as np


# ---------------------------------------------------------------------------
# Indexing helpers -- single source of truth for the flat <-> 3D mapping
# ---------------------------------------------------------------------------

def flat_index(r, g, b, N: int):
    """Flat sample index of grid node (r, g, b). R varies fastest.

    Works on ints and integer arrays.
    """
    return b * N * N + g * N + r


def pack_rgb(r, g, b):
    """Packed 24-bit key of an 8-bit color.

    Works on ints and integer arrays. Arrays must be wider than uint8.
    """
    return (r << 16) | (g << 8) | b


def unpack_rgb(packed: np.ndarray) -> np.ndarray:
    """Decode packed 24-bit keys to an (M, 3) uint8 array of (r, g, b)."""
    packed = np.asarray(packed, dtype=np.int64)
    rgb = np.empty((packed.shape[0], 3), dtype=np.uint8)
    rgb[:, 0] = packed >> 16
    rgb[:, 1] = (packed >> 8) & 0xFF
    rgb[:, 2] = packed & 0xFF
    return rgb


def table_offset(r: int, g: int, b: int) -> int:
    """Byte offset of (r, g, b) in a precomputed table."""
    return pack_rgb(r, g, b) * 3


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class InterpolationMode(str, Enum):
    """Sampling method for grid lookup."""
    NEAREST = "nearest"
    TRILINEAR = "trilinear"

    @property
    def code(self) -> int:
        """Stable integer code stored in cache headers."""
        return _MODE_CODES[self]

    @classmethod
    def from_code(cls, code: int) -> "InterpolationMode":
        for mode, value in _MODE_CODES.items():
            if value == code:
                return mode
        raise ValueError(f"Unknown interpolation mode code: {code}")


_MODE_CODES = {
    InterpolationMode.NEAREST: 0,
    InterpolationMode.TRILINEAR: 1,
}


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class Grid:
    """A parsed 3D LUT: N^3 RGB samples plus the input domain.

    ``samples`` is a read-only float64 array of shape (N^3, 3) in flat
    order (R fastest). Grids are immutable once constructed.
    """
    size: int
    samples: np.ndarray
    domain_min: tuple[float, float, float] = (0.0, 0.0, 0.0)
    domain_max: tuple[float, float, float] = (1.0, 1.0, 1.0)
    title: str = ""

    def __post_init__(self):
        if self.size < 1:
            raise ValueError(f"Grid size must be >= 1, got {self.size}")
        samples = np.array(self.samples, dtype=np.float64)
        expected = (self.size ** 3, 3)
        if samples.shape != expected:
            raise ValueError(f"Grid samples shape {samples.shape} != expected {expected}")
        for ch, (lo, hi) in enumerate(zip(self.domain_min, self.domain_max)):
            if not hi > lo:
                raise ValueError(
                    f"domain_max must exceed domain_min on every channel "
                    f"(channel {ch}: {lo} >= {hi})"
                )
        samples.setflags(write=False)
        object.__setattr__(self, "samples", samples)
        object.__setattr__(self, "domain_min", tuple(float(v) for v in self.domain_min))
        object.__setattr__(self, "domain_max", tuple(float(v) for v in self.domain_max))

    def __len__(self) -> int:
        return self.samples.shape[0]

    def as_array(self) -> np.ndarray:
        """(N, N, N, 3) view indexed as [r, g, b, ch]."""
        N = self.size
        # Flat order is [b, g, r]; transpose to [r, g, b].
        return np.transpose(self.samples.reshape(N, N, N, 3), (2, 1, 0, 3))

    def digest(self) -> str:
        """SHA-256 identity of the grid contents.

        Covers size, domain and sample values. The title is excluded.
        """
        h = hashlib.sha256()
        h.update(np.asarray(self.size, dtype="<i8").tobytes())
        h.update(np.asarray(self.domain_min, dtype="<f8").tobytes())
        h.update(np.asarray(self.domain_max, dtype="<f8").tobytes())
        h.update(np.ascontiguousarray(self.samples, dtype="<f8").tobytes())
        return h.hexdigest()


# ---------------------------------------------------------------------------
# Progress callback type
# ---------------------------------------------------------------------------

ProgressCallback = Callable[[str, float, str], None]
"""Callback signature: (stage_name, fraction_complete, message)."""

CancelCheck = Callable[[], bool]
"""Returns True if the operation should be cancelled."""
