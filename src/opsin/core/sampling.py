"""Nearest-neighbour and trilinear sampling of a 3D LUT grid.

Both a scalar entry point (single color) and a vectorized one (batch of M
colors) are provided. The scalar form delegates to the vectorized form so
the two are bit-identical, which the precomputed table relies on.

Numeric contract for 8-bit in / 8-bit out:
    v = c / 255
    n = clip((v - domain_min) / (domain_max - domain_min), 0, 1)
    x = n * (N - 1)
    out = trunc(clip(value, 0, 1) * 255)

The final conversion truncates rather than rounds. Cached tables depend on
this, so it must not change.
"""

from __future__ import annotations

import numpy as np

from opsin.core.types import Grid, InterpolationMode, flat_index
from opsin.errors import InternalInvariantError


def _as_rgb8(rgb) -> np.ndarray:
    """Coerce an (M, 3) array-like to uint8, rejecting out-of-range values."""
    arr = np.asarray(rgb)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise ValueError(f"Expected (M, 3) colors, got shape {arr.shape}")
    if arr.dtype == np.uint8:
        return arr
    if not np.issubdtype(arr.dtype, np.integer):
        raise ValueError(f"Expected integer colors, got dtype {arr.dtype}")
    if arr.size and (arr.min() < 0 or arr.max() > 255):
        raise ValueError("Color components must be in [0, 255]")
    return arr.astype(np.uint8)


def grid_coordinates(grid: Grid, rgb: np.ndarray) -> np.ndarray:
    """Map 8-bit colors to continuous grid coordinates.

    Args:
        grid: Source grid.
        rgb: (M, 3) uint8 colors.

    Returns:
        (M, 3) float64 coordinates in [0, N-1]. Inputs outside the declared
        domain clamp to the grid boundary.
    """
    v = rgb.astype(np.float64) / 255.0
    dmin = np.asarray(grid.domain_min, dtype=np.float64)
    dmax = np.asarray(grid.domain_max, dtype=np.float64)
    n = np.clip((v - dmin) / (dmax - dmin), 0.0, 1.0)
    return n * (grid.size - 1)


def _gather(grid: Grid, r: np.ndarray, g: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Fetch samples at integer grid indices, checking the clamp invariant."""
    flat = flat_index(r, g, b, grid.size)
    if flat.size and (flat.min() < 0 or flat.max() >= len(grid)):
        raise InternalInvariantError(
            f"Grid index out of bounds: [{flat.min()}, {flat.max()}] "
            f"for {len(grid)} samples"
        )
    return grid.samples[flat]


def _lerp(a: np.ndarray, b: np.ndarray, t: np.ndarray) -> np.ndarray:
    return a * (1.0 - t) + b * t


def nearest_values(grid: Grid, coords: np.ndarray) -> np.ndarray:
    """Nearest grid node per coordinate, rounding halves up.

    Returns:
        (M, 3) float64 sample values.
    """
    idx = np.clip(np.floor(coords + 0.5), 0, grid.size - 1).astype(np.int64)
    return _gather(grid, idx[:, 0], idx[:, 1], idx[:, 2])


def trilinear_values(grid: Grid, coords: np.ndarray) -> np.ndarray:
    """Trilinear blend of the 8 surrounding grid nodes.

    Blends along R first (4 lerps), then G (2), then B (1). When every
    coordinate is an integer all weights are 0 and the node value comes
    back exactly.

    Returns:
        (M, 3) float64 sample values.
    """
    N = grid.size
    lo_f = np.floor(coords)
    lo = lo_f.astype(np.int64)
    hi = np.minimum(lo + 1, N - 1)
    t = coords - lo_f

    r0, g0, b0 = lo[:, 0], lo[:, 1], lo[:, 2]
    r1, g1, b1 = hi[:, 0], hi[:, 1], hi[:, 2]
    tr = t[:, 0:1]
    tg = t[:, 1:2]
    tb = t[:, 2:3]

    # Along R
    c00 = _lerp(_gather(grid, r0, g0, b0), _gather(grid, r1, g0, b0), tr)
    c10 = _lerp(_gather(grid, r0, g1, b0), _gather(grid, r1, g1, b0), tr)
    c01 = _lerp(_gather(grid, r0, g0, b1), _gather(grid, r1, g0, b1), tr)
    c11 = _lerp(_gather(grid, r0, g1, b1), _gather(grid, r1, g1, b1), tr)
    # Along G
    c0 = _lerp(c00, c10, tg)
    c1 = _lerp(c01, c11, tg)
    # Along B
    return _lerp(c0, c1, tb)


def to_uint8(values: np.ndarray) -> np.ndarray:
    """Convert normalized values to 8-bit by clamping and truncating."""
    return (np.clip(values, 0.0, 1.0) * 255.0).astype(np.uint8)


def sample_colors(
    grid: Grid,
    mode: InterpolationMode | str,
    rgb,
) -> np.ndarray:
    """Transform a batch of 8-bit colors through the grid.

    Args:
        grid: Source grid.
        mode: "nearest" or "trilinear".
        rgb: (M, 3) integer colors in [0, 255].

    Returns:
        (M, 3) uint8 transformed colors.
    """
    mode = InterpolationMode(mode)
    coords = grid_coordinates(grid, _as_rgb8(rgb))

    if mode is InterpolationMode.NEAREST:
        values = nearest_values(grid, coords)
    else:
        values = trilinear_values(grid, coords)
    return to_uint8(values)


def sample(
    grid: Grid,
    mode: InterpolationMode | str,
    r: int,
    g: int,
    b: int,
) -> tuple[int, int, int]:
    """Transform a single 8-bit color through the grid."""
    for name, c in (("r", r), ("g", g), ("b", b)):
        if not isinstance(c, (int, np.integer)) or isinstance(c, bool):
            raise ValueError(f"{name}={c!r} is not an integer")
        if not 0 <= c <= 255:
            raise ValueError(f"{name}={c} is outside [0, 255]")
    out = sample_colors(grid, mode, np.array([[r, g, b]], dtype=np.uint8))
    return int(out[0, 0]), int(out[0, 1]), int(out[0, 2])
