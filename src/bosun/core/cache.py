"""Image cache directory with SHA256 and creation-time sidecars

Each cached image ``<name>`` lives next to two memo files:

    <name>.sha256   hex digest of the image bytes
    <name>.ctime    seconds since epoch when bosun first saw the image

Memo files are computed on first read and deleted whenever the image is
replaced.
"""

import hashlib
import logging
import math
import os
import re
import shutil
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, Union

from bosun.core.reference import EXTENSION

logger = logging.getLogger(__name__)

CACHE_DIR_MODE = 0o751
SCRATCH_PREFIX = ".pull-"

_SHA256_RE = re.compile(r"^[0-9a-f]{64}$")

PathLike = Union[str, Path]


def compute_sha256(file_path: PathLike, chunk_size: int = 1024 * 1024) -> str:
    """Compute SHA256 hash of a file

    Args:
        file_path: Path to file
        chunk_size: Chunk size for reading (default: 1MB)

    Returns:
        SHA256 hash as hex string
    """
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            sha256_hash.update(chunk)
    return sha256_hash.hexdigest()


def _is_sha256(value: str) -> bool:
    return bool(_SHA256_RE.match(value))


def _is_timestamp(value: str) -> bool:
    try:
        return math.isfinite(float(value))
    except ValueError:
        return False


def _write_atomic(path: Path, text: str) -> None:
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


class Sidecar:
    """Key/value memo stored in a file next to each artifact

    ``get`` returns the stored value or computes, persists and returns it.
    ``invalidate`` drops the stored value.
    Stored values rejected by ``valid`` count as missing.
    """

    def __init__(self, suffix: str, compute: Callable[[Path], str],
                 valid: Optional[Callable[[str], bool]] = None):
        self.suffix = suffix
        self.compute = compute
        self.valid = valid

    def path_for(self, artifact: Path) -> Path:
        return artifact.with_name(artifact.name + self.suffix)

    def read(self, artifact: Path) -> Optional[str]:
        memo = self.path_for(artifact)
        try:
            value = memo.read_text().strip()
        except FileNotFoundError:
            return None
        if value and self.valid is not None and not self.valid(value):
            logger.warning(f"Discarding unreadable {self.suffix} for {artifact.name}")
            self.invalidate(artifact)
            return None
        return value or None

    def get(self, artifact: Path) -> str:
        value = self.read(artifact)
        if value is not None:
            return value

        # Compute first, then persist: never trust a memo for other bytes
        value = self.compute(artifact)
        _write_atomic(self.path_for(artifact), value + "\n")
        logger.debug(f"Stored {self.suffix} for {artifact.name}")
        return value

    def invalidate(self, artifact: Path) -> None:
        try:
            self.path_for(artifact).unlink()
        except FileNotFoundError:
            pass


class CacheStore:
    """Directory of cached images keyed by canonical name"""

    def __init__(self, cache_dir: PathLike, clock: Callable[[], float] = time.time):
        """Initialize cache store

        Args:
            cache_dir: Directory holding cached images
            clock: Source of the current time in seconds
        """
        self.cache_dir = Path(cache_dir)
        self.clock = clock
        self.hashes = Sidecar(".sha256", compute_sha256, valid=_is_sha256)
        self.ctimes = Sidecar(".ctime", lambda _artifact: str(int(self.clock())), valid=_is_timestamp)
        self.ensure_directory()

    def ensure_directory(self) -> None:
        """Create the cache directory if missing; safe to call repeatedly"""
        if self.cache_dir.is_dir():
            return
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self.cache_dir, CACHE_DIR_MODE)
        logger.debug(f"Created cache directory {self.cache_dir}")

    def path_for(self, name: str) -> Path:
        return self.cache_dir / name

    def locate(self, name: str) -> Optional[Path]:
        """Return the cached image path for ``name`` if it exists"""
        path = self.path_for(name)
        return path if path.is_file() else None

    def content_hash(self, path: PathLike) -> str:
        return self.hashes.get(Path(path))

    def created_at(self, path: PathLike) -> int:
        return int(float(self.ctimes.get(Path(path))))

    def invalidate(self, path: PathLike) -> None:
        """Drop both memo files for an image"""
        path = Path(path)
        self.hashes.invalidate(path)
        self.ctimes.invalidate(path)

    def publish(self, scratch_path: PathLike, name: str) -> Path:
        """Move a fully written image into the cache under ``name``

        Args:
            scratch_path: Finished image in a scratch directory
            name: Canonical name

        Returns:
            Path of the published image
        """
        self.ensure_directory()
        destination = self.path_for(name)
        # Drop memos on both sides of the rename
        self.invalidate(destination)
        os.replace(scratch_path, destination)
        self.invalidate(destination)
        logger.info(f"Cached {name}")
        return destination

    @contextmanager
    def scratch_dir(self) -> Iterator[Path]:
        """Unique scratch directory inside the cache, removed on exit

        Living on the same filesystem as the cache keeps ``publish`` a rename.
        """
        self.ensure_directory()
        path = Path(tempfile.mkdtemp(prefix=SCRATCH_PREFIX, dir=str(self.cache_dir)))
        try:
            yield path
        finally:
            shutil.rmtree(path, ignore_errors=True)

    def artifacts(self) -> Iterator[Path]:
        """Cached images, in directory order"""
        if not self.cache_dir.is_dir():
            return
        for entry in os.scandir(self.cache_dir):
            if entry.name.endswith(EXTENSION) and not entry.name.startswith(".") and entry.is_file():
                yield Path(entry.path)
