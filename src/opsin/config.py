"""Default configuration, constants, and limits for Opsin.

Settings that vary per installation (where LUTs live, which one is
selected, where precomputed tables are cached) are read from a YAML file:

    lut:
      dir: assets/luts
      selected: FILM_STOCK.cube
      mode: trilinear
    cache:
      dir: assets/luts
    workers: 4
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from opsin.errors import ConfigError

# --- Security limits ---
MAX_CUBE_SIZE = 129  # Maximum LUT grid size (129^3 ~ 2.1M nodes)
MAX_CUBE_FILE_LINES = MAX_CUBE_SIZE ** 3 + 200  # Safety limit for .cube parsing

# --- Allowed file extensions ---
LUT_EXTENSIONS = frozenset({".cube"})

# --- Precomputed table layout ---
TABLE_ENTRIES = 256 ** 3  # One entry per 24-bit RGB input
TABLE_BYTES = TABLE_ENTRIES * 3  # 12,582,912

# --- Cache file header ---
CACHE_MAGIC = b"OPSNTBL\x00"
CACHE_FORMAT_VERSION = 1
CACHE_HEADER_SIZE = 48  # magic(8) + version(4) + mode(4) + sha256(32)
CACHE_FILENAME_TEMPLATE = "precomputed_{name}_{mode}.bin"
CACHE_FILE_MODE = 0o644  # Permissions of written cache files

# --- Default engine parameters ---
DEFAULT_MODE = "trilinear"
DEFAULT_CHUNK_SIZE = 1 << 16  # Packed indices per generation chunk (256 chunks total)
MAX_DEFAULT_WORKERS = 8  # Bounds peak memory of concurrent chunks
DEFAULT_APPLY_CHUNK_PIXELS = 1 << 20  # Pixels per worker slice in buffer apply
DEFAULT_LUT_DIR = Path("assets/luts")
DEFAULT_SETTINGS_FILE = Path("opsin.yaml")

# --- Cube output ---
CUBE_DECIMALS = 6


@dataclass
class Settings:
    """Installation settings loaded from the YAML settings file."""
    lut_dir: Path = DEFAULT_LUT_DIR
    selected_lut: Optional[str] = None
    cache_dir: Optional[Path] = None  # None = next to the LUT
    mode: str = DEFAULT_MODE
    workers: Optional[int] = None  # None = min(cpu_count, 8)

    @property
    def selected_lut_path(self) -> Optional[Path]:
        if self.selected_lut is None:
            return None
        return self.lut_dir / self.selected_lut


def _require(value: Any, expected: type, key: str) -> Any:
    if not isinstance(value, expected) or (isinstance(value, bool) and expected is int):
        raise ConfigError(
            f"{key}: expected {expected.__name__}, got {type(value).__name__}"
        )
    return value


def _section(raw: dict, key: str) -> dict:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"{key}: expected a mapping, got {type(value).__name__}")
    return value


def settings_from_dict(raw: dict) -> Settings:
    """Build and validate Settings from a parsed YAML mapping.

    Raises:
        ConfigError: On unknown keys, wrong types, or invalid values.
    """
    unknown = set(raw) - {"lut", "cache", "workers"}
    if unknown:
        raise ConfigError(f"Unknown settings keys: {', '.join(sorted(unknown))}")

    settings = Settings()
    lut = _section(raw, "lut")
    unknown = set(lut) - {"dir", "selected", "mode"}
    if unknown:
        raise ConfigError(f"Unknown lut keys: {', '.join(sorted(unknown))}")
    if "dir" in lut:
        settings.lut_dir = Path(_require(lut["dir"], str, "lut.dir"))
    if lut.get("selected") is not None:
        settings.selected_lut = _require(lut["selected"], str, "lut.selected")
    if "mode" in lut:
        mode = _require(lut["mode"], str, "lut.mode").lower()
        if mode not in ("nearest", "trilinear"):
            raise ConfigError(f"lut.mode: must be 'nearest' or 'trilinear', got {mode!r}")
        settings.mode = mode

    cache = _section(raw, "cache")
    unknown = set(cache) - {"dir"}
    if unknown:
        raise ConfigError(f"Unknown cache keys: {', '.join(sorted(unknown))}")
    if cache.get("dir") is not None:
        settings.cache_dir = Path(_require(cache["dir"], str, "cache.dir"))

    if raw.get("workers") is not None:
        workers = _require(raw["workers"], int, "workers")
        if workers < 1:
            raise ConfigError(f"workers: must be >= 1, got {workers}")
        settings.workers = workers

    return settings


def load_settings(path: str | Path = DEFAULT_SETTINGS_FILE) -> Settings:
    """Load settings from a YAML file.

    A missing file yields the defaults.

    Raises:
        ConfigError: If the file is not valid YAML or fails validation.
    """
    path = Path(path)
    if not path.exists():
        return Settings()

    with open(path, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"YAML parsing error in {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return settings_from_dict(raw)


def list_luts(lut_dir: str | Path) -> list[str]:
    """Return the sorted filenames of .cube files in a directory.

    The extension check is case-insensitive. A missing directory yields
    an empty list.
    """
    lut_dir = Path(lut_dir)
    if not lut_dir.is_dir():
        return []
    return sorted(
        p.name for p in lut_dir.iterdir()
        if p.is_file() and p.suffix.lower() in LUT_EXTENSIONS
    )
