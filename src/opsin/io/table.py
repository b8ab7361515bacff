"""Precomputed table persistence.

Cache file layout (little-endian):

    offset  size  field
    0       8     magic b"OPSNTBL\\0"
    8       4     format version (uint32)
    12      4     interpolation mode code (uint32)
    16      32    SHA-256 digest of the source grid
    48      ...   12,582,912 table bytes

A headerless file of exactly 12,582,912 bytes is also accepted, without any
provenance check. Writes go to a temporary file in the target directory and
are renamed into place, so readers never see a partial table.
"""

from __future__ import annotations

import logging
import os
import struct
import tempfile
import threading
import time
import weakref
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from opsin.config import (
    CACHE_FILE_MODE,
    CACHE_FILENAME_TEMPLATE,
    CACHE_FORMAT_VERSION,
    CACHE_HEADER_SIZE,
    CACHE_MAGIC,
    DEFAULT_CHUNK_SIZE,
    TABLE_BYTES,
)
from opsin.core.precompute import generate_table
from opsin.core.types import CancelCheck, Grid, InterpolationMode, ProgressCallback
from opsin.errors import CorruptTableError

logger = logging.getLogger(__name__)

_HEADER = struct.Struct("<8sII32s")
assert _HEADER.size == CACHE_HEADER_SIZE


@dataclass(frozen=True)
class CacheKey:
    """Identity of a precomputed table: grid digest plus mode."""
    digest: str
    mode: InterpolationMode

    def header(self) -> bytes:
        return _HEADER.pack(
            CACHE_MAGIC,
            CACHE_FORMAT_VERSION,
            self.mode.code,
            bytes.fromhex(self.digest),
        )


def cache_key(grid: Grid, mode: InterpolationMode | str) -> CacheKey:
    return CacheKey(digest=grid.digest(), mode=InterpolationMode(mode))


def default_cache_path(
    lut_path: str | Path,
    mode: InterpolationMode | str,
    cache_dir: Optional[str | Path] = None,
) -> Path:
    """Cache location derived from the LUT filename and mode.

    Defaults to the LUT's own directory.
    """
    lut_path = Path(lut_path)
    directory = Path(cache_dir) if cache_dir is not None else lut_path.parent
    name = CACHE_FILENAME_TEMPLATE.format(
        name=lut_path.name, mode=InterpolationMode(mode).value,
    )
    return directory / name


def parse_cache_blob(blob: bytes) -> tuple[Optional[CacheKey], bytes]:
    """Split a cache file into (key, table).

    Returns:
        (None, blob) for a headerless table.

    Raises:
        CorruptTableError: On a bad length, bad version or bad mode code.
    """
    if len(blob) == TABLE_BYTES:
        return None, blob

    if len(blob) != CACHE_HEADER_SIZE + TABLE_BYTES or not blob.startswith(CACHE_MAGIC):
        raise CorruptTableError(
            f"Cache blob is {len(blob):,} bytes; expected {TABLE_BYTES:,} "
            f"(headerless) or {CACHE_HEADER_SIZE + TABLE_BYTES:,} (with header)"
        )

    _, version, mode_code, digest = _HEADER.unpack_from(blob)
    if version != CACHE_FORMAT_VERSION:
        raise CorruptTableError(f"Unsupported cache format version {version}")
    try:
        mode = InterpolationMode.from_code(mode_code)
    except ValueError as e:
        raise CorruptTableError(str(e)) from e
    return CacheKey(digest=digest.hex(), mode=mode), blob[CACHE_HEADER_SIZE:]


def read_table(cache_path: str | Path) -> tuple[Optional[CacheKey], bytes]:
    """Read a cache file. OSError propagates."""
    return parse_cache_blob(Path(cache_path).read_bytes())


def write_table(cache_path: str | Path, table: bytes, key: Optional[CacheKey] = None) -> Path:
    """Atomically write a table (with header when ``key`` is given).

    Parent directories are created as needed. On failure no file is left at
    ``cache_path`` and the temporary file is removed.
    """
    if len(table) != TABLE_BYTES:
        raise CorruptTableError(
            f"Refusing to write table of {len(table):,} bytes; expected {TABLE_BYTES:,}"
        )
    path = Path(cache_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            if key is not None:
                f.write(key.header())
            f.write(table)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, CACHE_FILE_MODE)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
    return path


# In-process single flight: one generation per cache path at a time.
# Entries disappear once no caller holds the lock.
_path_locks: weakref.WeakValueDictionary[Path, threading.Lock] = weakref.WeakValueDictionary()
_path_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = path.resolve()
    with _path_locks_guard:
        lock = _path_locks.get(key)
        if lock is None:
            lock = _path_locks[key] = threading.Lock()
        return lock


def load_or_generate(
    grid: Grid,
    mode: InterpolationMode | str,
    cache_path: str | Path,
    workers: Optional[int] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_check: Optional[CancelCheck] = None,
) -> bytes:
    """Return the precomputed table for (grid, mode), using the cache file.

    If the file exists and its header matches the grid and mode, its table
    is returned. A headerless legacy table is returned verbatim. A header
    for a different grid or mode triggers regeneration. Otherwise the table
    is generated and written atomically before being returned.

    Raises:
        CorruptTableError: Existing file has an invalid length or header.
        GenerationCancelledError: Generation was cancelled.
        OSError: Reading, directory creation or writing failed.
    """
    path = Path(cache_path)
    key = cache_key(grid, mode)

    with _lock_for(path):
        if path.exists():
            t_start = time.perf_counter()
            stored_key, table = read_table(path)
            if stored_key is None:
                logger.info("Loaded headerless table %s (provenance unchecked)", path)
                return table
            if stored_key == key:
                logger.info("Cache hit %s: %.2fs", path, time.perf_counter() - t_start)
                return table
            logger.warning(
                "Cache %s was built for grid %s (%s); expected %s (%s). Regenerating.",
                path, stored_key.digest[:12], stored_key.mode.value,
                key.digest[:12], key.mode.value,
            )
        else:
            logger.info("Cache miss %s", path)

        table = generate_table(
            grid, key.mode,
            workers=workers,
            chunk_size=chunk_size,
            progress_callback=progress_callback,
            cancel_check=cancel_check,
        )
        write_table(path, table, key)
        logger.info("Wrote table cache %s", path)
        return table
