"""Shared fixtures for Opsin tests."""

from __future__ import annotations

import numpy as np
import pytest

from opsin.core.lut import grid_from_array, identity_grid
from opsin.core.precompute import generate_table


def make_cube_text(size, rows, header=""):
    """Assemble .cube text from a size and an iterable of (r, g, b) rows."""
    lines = [header] if header else []
    lines.append(f"LUT_3D_SIZE {size}")
    lines.extend(f"{r:.6f} {g:.6f} {b:.6f}" for r, g, b in rows)
    return "\n".join(lines) + "\n"


# Reference 2^3 cube. Data lines are in file order (R fastest); each node
# carries a distinct value so a transposed reader is caught immediately.
REFERENCE_CUBE = """\
# Reference LUT for ordering checks
TITLE "Reference"
LUT_3D_SIZE 2

0.10 0.00 0.00
0.20 0.00 0.00
0.30 0.00 0.00
0.40 0.00 0.00
0.50 0.00 0.00
0.60 0.00 0.00
0.70 0.00 0.00
0.80 0.00 0.00
"""


@pytest.fixture
def small_N():
    """Small LUT grid size for fast tests."""
    return 5


@pytest.fixture
def identity_grid_2():
    """2x2x2 identity grid."""
    return identity_grid(2)


@pytest.fixture
def identity_grid_5():
    """5x5x5 identity grid."""
    return identity_grid(5)


@pytest.fixture
def random_grid():
    """5x5x5 grid with random samples in [0, 1]."""
    rng = np.random.default_rng(42)
    return grid_from_array(rng.random((5, 5, 5, 3)), title="Random")


@pytest.fixture
def random_colors():
    """Random (M, 3) uint8 colors."""
    rng = np.random.default_rng(7)
    return rng.integers(0, 256, size=(500, 3), dtype=np.uint8)


@pytest.fixture
def reference_cube_path(tmp_path):
    p = tmp_path / "reference.cube"
    p.write_text(REFERENCE_CUBE)
    return p


@pytest.fixture
def tmp_cube_path(tmp_path):
    """Temporary .cube output path."""
    return tmp_path / "test_output.cube"


@pytest.fixture(scope="session")
def random_grid_tables():
    """Trilinear and nearest tables for the random grid, generated once."""
    rng = np.random.default_rng(42)
    grid = grid_from_array(rng.random((5, 5, 5, 3)), title="Random")
    return grid, {
        "trilinear": generate_table(grid, "trilinear"),
        "nearest": generate_table(grid, "nearest"),
    }
