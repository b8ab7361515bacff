"""Tests for .cube parsing, writing and ordering correctness."""

from __future__ import annotations

import numpy as np
import pytest

from opsin.config import MAX_CUBE_SIZE
from opsin.core.lut import grid_from_array, identity_grid, identity_lut
from opsin.core.types import flat_index
from opsin.errors import (
    CubeParseError,
    MalformedNumberError,
    MissingSizeError,
    SizeMismatchError,
)
from opsin.io.cube import parse_cube, read_cube, write_cube

from conftest import make_cube_text


class TestCubeParse:
    """Tests for well-formed input."""

    @pytest.mark.parametrize("N", [2, 3, 5])
    def test_sample_count(self, N):
        """Declared size N with N^3 data lines parses to N^3 samples."""
        rows = identity_grid(N).samples
        grid = parse_cube(make_cube_text(N, rows))
        assert grid.size == N
        assert len(grid) == N ** 3
        np.testing.assert_allclose(grid.samples, rows, atol=1e-6)

    def test_defaults(self, identity_grid_2):
        grid = parse_cube(make_cube_text(2, identity_grid_2.samples))
        assert grid.domain_min == (0.0, 0.0, 0.0)
        assert grid.domain_max == (1.0, 1.0, 1.0)
        assert grid.title == ""

    def test_directives_and_comments(self, identity_grid_2):
        """TITLE, DOMAIN_*, comments and blank lines may appear anywhere."""
        rows = [f"{r} {g} {b}" for r, g, b in identity_grid_2.samples]
        text = "\n".join([
            "# leading comment",
            'TITLE "Film Stock"',
            "",
            "DOMAIN_MIN 0.1 0.2 0.3",
            *rows[:4],
            "# mid-data comment",
            "   ",
            "LUT_3D_SIZE 2",
            *rows[4:],
            "DOMAIN_MAX 0.9 0.8 0.7",
        ])
        grid = parse_cube(text)
        assert grid.title == "Film Stock"
        assert grid.domain_min == (0.1, 0.2, 0.3)
        assert grid.domain_max == (0.9, 0.8, 0.7)
        np.testing.assert_allclose(grid.samples, identity_grid_2.samples)

    def test_whitespace_is_trimmed(self):
        text = "  LUT_3D_SIZE 1  \n\t0.5\t0.25   0.125 \n"
        grid = parse_cube(text)
        np.testing.assert_array_equal(grid.samples, [[0.5, 0.25, 0.125]])

    def test_values_outside_unit_range_allowed(self):
        grid = parse_cube("LUT_3D_SIZE 1\n-0.5 1.5 2e0\n")
        np.testing.assert_array_equal(grid.samples, [[-0.5, 1.5, 2.0]])

    def test_grid_is_read_only(self, identity_grid_2):
        grid = parse_cube(make_cube_text(2, identity_grid_2.samples))
        with pytest.raises(ValueError):
            grid.samples[0, 0] = 1.0


class TestCubeOrdering:
    """Tests for correct R-fastest data ordering."""

    def test_reference_file(self, reference_cube_path):
        """Line k of the file lands at flat index k = r + g*N + b*N^2."""
        grid = read_cube(reference_cube_path)
        lut = grid.as_array()
        assert grid.title == "Reference"
        for b in range(2):
            for g in range(2):
                for r in range(2):
                    k = flat_index(r, g, b, 2)
                    assert lut[r, g, b, 0] == pytest.approx(0.1 * (k + 1))
        # R is the fastest-varying axis
        assert lut[1, 0, 0, 0] == pytest.approx(0.2)
        assert lut[0, 1, 0, 0] == pytest.approx(0.3)
        assert lut[0, 0, 1, 0] == pytest.approx(0.5)

    def test_ordering_roundtrip(self, tmp_cube_path):
        """Each node encodes its own position; survives write/read."""
        N = 3
        lut = identity_lut(N)
        write_cube(tmp_cube_path, grid_from_array(lut))
        grid = read_cube(tmp_cube_path)
        np.testing.assert_allclose(grid.as_array(), lut, atol=1e-6)
        # First lines vary in R only
        data = [l for l in tmp_cube_path.read_text().splitlines()
                if l and l[0].isdigit()]
        assert data[0] == "0.000000 0.000000 0.000000"
        assert data[1] == "0.500000 0.000000 0.000000"
        assert data[3] == "0.000000 0.500000 0.000000"


class TestCubeRoundTrip:
    """Tests for write -> read round-trip integrity."""

    def test_random_roundtrip(self, tmp_cube_path, random_grid):
        write_cube(tmp_cube_path, random_grid)
        grid = read_cube(tmp_cube_path)
        assert grid.size == random_grid.size
        assert grid.title == "Random"
        # .cube has 6 decimal places
        np.testing.assert_allclose(grid.samples, random_grid.samples, atol=1e-6)

    def test_domain_roundtrip(self, tmp_cube_path):
        src = grid_from_array(identity_lut(2), domain_min=(0.1, 0.1, 0.1),
                              domain_max=(0.9, 0.8, 0.7))
        write_cube(tmp_cube_path, src)
        grid = read_cube(tmp_cube_path)
        np.testing.assert_allclose(grid.domain_min, src.domain_min)
        np.testing.assert_allclose(grid.domain_max, src.domain_max)

    def test_write_size_limit(self, tmp_cube_path):
        N = MAX_CUBE_SIZE + 1
        grid = grid_from_array(np.zeros((N, N, N, 3)))
        with pytest.raises(CubeParseError):
            write_cube(tmp_cube_path, grid)


class TestCubeMalformed:
    """Tests for malformed .cube rejection."""

    def test_missing_size(self):
        with pytest.raises(MissingSizeError, match="No LUT_3D_SIZE"):
            parse_cube('TITLE "test"\n0.0 0.0 0.0\n')

    def test_zero_size(self):
        with pytest.raises(MissingSizeError):
            parse_cube("LUT_3D_SIZE 0\n")

    def test_size_mismatch(self):
        """LUT_3D_SIZE 3 with 26 data lines fails."""
        text = make_cube_text(3, [(0.5, 0.5, 0.5)] * 26)
        with pytest.raises(SizeMismatchError, match="Expected 27") as exc:
            parse_cube(text)
        assert exc.value.expected == 27
        assert exc.value.found == 26

    def test_too_many_lines(self):
        with pytest.raises(SizeMismatchError):
            parse_cube(make_cube_text(2, [(0.5, 0.5, 0.5)] * 9))

    def test_malformed_number(self):
        """A non-numeric token fails rather than being replaced by a default."""
        rows = ["0.5 0.5 0.5"] * 8
        rows[3] = "0.5 abc 0.5"
        text = "LUT_3D_SIZE 2\n" + "\n".join(rows)
        with pytest.raises(MalformedNumberError) as exc:
            parse_cube(text)
        assert exc.value.line_number == 5
        assert exc.value.token == "abc"
        assert "abc" in str(exc.value)

    def test_malformed_domain(self):
        with pytest.raises(MalformedNumberError):
            parse_cube("LUT_3D_SIZE 1\nDOMAIN_MIN 0 x 0\n0 0 0\n")

    def test_malformed_size(self):
        with pytest.raises(MalformedNumberError):
            parse_cube("LUT_3D_SIZE three\n")

    @pytest.mark.parametrize("token", ["nan", "inf", "-inf"])
    def test_non_finite_rejection(self, token):
        rows = ["0.5 0.5 0.5"] * 8
        rows[5] = f"0.5 {token} 0.5"
        with pytest.raises(MalformedNumberError, match="(?i)non-finite"):
            parse_cube("LUT_3D_SIZE 2\n" + "\n".join(rows))

    def test_wrong_token_count(self):
        with pytest.raises(CubeParseError, match="expects 3 values"):
            parse_cube("LUT_3D_SIZE 1\n0.5 0.5\n")

    def test_size_too_large(self):
        with pytest.raises(CubeParseError, match="out of range"):
            parse_cube(f"LUT_3D_SIZE {MAX_CUBE_SIZE + 10}\n")

    def test_negative_size(self):
        with pytest.raises(CubeParseError, match="out of range"):
            parse_cube("LUT_3D_SIZE -2\n")

    def test_duplicate_size(self):
        with pytest.raises(CubeParseError, match="duplicate"):
            parse_cube("LUT_3D_SIZE 1\nLUT_3D_SIZE 1\n0 0 0\n")

    def test_degenerate_domain(self):
        with pytest.raises(CubeParseError, match="DOMAIN_MAX"):
            parse_cube("LUT_3D_SIZE 1\nDOMAIN_MIN 0.5 0 0\nDOMAIN_MAX 0.5 1 1\n0 0 0\n")

    def test_file_not_found(self):
        with pytest.raises(FileNotFoundError):
            read_cube("/nonexistent/path/test.cube")

    def test_non_utf8_file(self, tmp_path):
        p = tmp_path / "latin1.cube"
        p.write_bytes('TITLE "Caf\xe9"\nLUT_3D_SIZE 1\n0 0 0\n'.encode("latin-1"))
        with pytest.raises(CubeParseError, match="not valid UTF-8"):
            read_cube(p)

    def test_unsupported_directive_is_not_skipped(self):
        rows = ["0.5 0.5 0.5"] * 8
        text = "LUT_3D_SIZE 2\nLUT_3D_INPUT_RANGE 0.0 1.0\n" + "\n".join(rows)
        with pytest.raises(MalformedNumberError, match="LUT_3D_INPUT_RANGE"):
            parse_cube(text)
