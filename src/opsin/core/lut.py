"""Grid construction helpers and summary statistics.

Array convention for the helpers here: shape (N, N, N, 3), indexed as
lut[r, g, b, ch]. Grid.samples uses the flat form (R fastest).
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from opsin.core.types import Grid


def identity_lut(N: int) -> np.ndarray:
    """Generate an identity 3D LUT array.

    Each node maps to its own normalized coordinate:
    lut[r, g, b] = (r/(N-1), g/(N-1), b/(N-1)).

    Args:
        N: Grid size per axis (>= 2).

    Returns:
        (N, N, N, 3) float64 array.
    """
    if N < 2:
        raise ValueError(f"Identity LUT needs N >= 2, got {N}")
    coords = np.linspace(0.0, 1.0, N)
    r, g, b = np.meshgrid(coords, coords, coords, indexing="ij")
    return np.stack([r, g, b], axis=-1)


def grid_from_array(
    lut: np.ndarray,
    domain_min: Sequence[float] = (0.0, 0.0, 0.0),
    domain_max: Sequence[float] = (1.0, 1.0, 1.0),
    title: str = "",
) -> Grid:
    """Build a Grid from an (N, N, N, 3) array indexed [r, g, b, ch]."""
    N = lut.shape[0]
    if lut.shape != (N, N, N, 3):
        raise ValueError(f"Expected (N, N, N, 3) array, got {lut.shape}")
    # Flat convention is b*N*N + g*N + r: transpose to [b, g, r] then ravel.
    flat = np.transpose(lut, (2, 1, 0, 3)).reshape(-1, 3)
    return Grid(
        size=N,
        samples=flat,
        domain_min=tuple(domain_min),
        domain_max=tuple(domain_max),
        title=title,
    )


def identity_grid(N: int, title: str = "Identity") -> Grid:
    """Identity Grid of size N over the default [0, 1] domain."""
    return grid_from_array(identity_lut(N), title=title)


def grid_stats(grid: Grid) -> dict:
    """Compute basic statistics of a grid.

    Returns:
        Dict with per-channel min/max/mean, the percentage of values outside
        [0, 1] and the number of neutral-axis monotonicity violations.
    """
    samples = grid.samples
    lut = grid.as_array()
    neutral = np.array([lut[i, i, i] for i in range(grid.size)])
    violations = int(np.sum(np.any(np.diff(neutral, axis=0) < 0, axis=1)))
    oog = int(np.sum((samples < 0.0) | (samples > 1.0)))
    return {
        "size": grid.size,
        "entries": len(grid),
        "min_per_channel": samples.min(axis=0).tolist(),
        "max_per_channel": samples.max(axis=0).tolist(),
        "mean_per_channel": samples.mean(axis=0).tolist(),
        "oog_percentage": float(oog / samples.size * 100.0),
        "neutral_mono_violations": violations,
    }
