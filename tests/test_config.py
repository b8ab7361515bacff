"""Tests for settings loading and LUT discovery."""

from __future__ import annotations

from pathlib import Path

import pytest

from opsin.config import DEFAULT_LUT_DIR, DEFAULT_MODE, list_luts, load_settings
from opsin.errors import ConfigError


class TestLoadSettings:

    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.yaml")
        assert settings.lut_dir == DEFAULT_LUT_DIR
        assert settings.mode == DEFAULT_MODE
        assert settings.selected_lut is None
        assert settings.selected_lut_path is None
        assert settings.cache_dir is None
        assert settings.workers is None

    def test_full_file(self, tmp_path):
        p = tmp_path / "opsin.yaml"
        p.write_text(
            "lut:\n"
            "  dir: assets/luts\n"
            "  selected: SONY.CUBE\n"
            "  mode: Nearest\n"
            "cache:\n"
            "  dir: /tmp/opsin-cache\n"
            "workers: 4\n"
        )
        settings = load_settings(p)
        assert settings.lut_dir == Path("assets/luts")
        assert settings.selected_lut_path == Path("assets/luts/SONY.CUBE")
        assert settings.mode == "nearest"
        assert settings.cache_dir == Path("/tmp/opsin-cache")
        assert settings.workers == 4

    def test_empty_file(self, tmp_path):
        p = tmp_path / "opsin.yaml"
        p.write_text("")
        assert load_settings(p).mode == DEFAULT_MODE

    @pytest.mark.parametrize("text,match", [
        ("colour: red\n", "Unknown settings keys"),
        ("lut:\n  size: 33\n", "Unknown lut keys"),
        ("cache:\n  path: x\n", "Unknown cache keys"),
        ("lut:\n  mode: tetrahedral\n", "lut.mode"),
        ("lut:\n  dir: 3\n", "lut.dir"),
        ("lut: [1, 2]\n", "expected a mapping"),
        ("workers: 0\n", "workers"),
        ("workers: true\n", "workers"),
        ("- a\n- b\n", "top level"),
        ("lut: {dir: [\n", "YAML parsing error"),
    ])
    def test_invalid(self, tmp_path, text, match):
        p = tmp_path / "opsin.yaml"
        p.write_text(text)
        with pytest.raises(ConfigError, match=match):
            load_settings(p)


class TestListLuts:

    def test_sorted_case_insensitive(self, tmp_path):
        for name in ["b.cube", "A.CUBE", "c.Cube", "notes.txt", "precomputed_a.bin"]:
            (tmp_path / name).write_text("")
        (tmp_path / "dir.cube").mkdir()
        assert list_luts(tmp_path) == ["A.CUBE", "b.cube", "c.Cube"]

    def test_missing_dir(self, tmp_path):
        assert list_luts(tmp_path / "nope") == []
