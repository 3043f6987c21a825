"""Inventory of cached images"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional

from bosun.core.cache import CacheStore
from bosun.core.reference import parse_canonical_name

logger = logging.getLogger(__name__)

SHORT_HASH_LENGTH = 12

_SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]
_AGE_UNITS = [("year", 365 * 86400), ("month", 30 * 86400), ("week", 7 * 86400),
              ("day", 86400), ("hour", 3600), ("minute", 60)]


def format_size(size: int) -> str:
    value = float(size)
    for unit in _SIZE_UNITS[:-1]:
        if value < 1000:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1000
    return f"{value:.1f} {_SIZE_UNITS[-1]}"


def format_age(seconds: float) -> str:
    seconds = max(0, int(seconds))
    for unit, length in _AGE_UNITS:
        count = seconds // length
        if count:
            return f"{count} {unit}{'s' if count > 1 else ''} ago"
    return "just now"


@dataclass(frozen=True)
class ImageRecord:
    """One cached image as shown by `bosun images`"""

    repository: str
    tag: str
    short_hash: str
    created: int
    size_bytes: int
    now: float

    @property
    def age(self) -> str:
        return format_age(self.now - self.created)

    @property
    def size(self) -> str:
        return format_size(self.size_bytes)


class ImageLister:
    """Reads the cache directory afresh on every call"""

    def __init__(self, cache: CacheStore, clock: Callable[[], float] = time.time):
        self.cache = cache
        self.clock = clock

    def list(self, pattern: Optional[str] = None) -> Iterator[ImageRecord]:
        """Cached images, newest first

        Args:
            pattern: Only include images whose ``repository:tag`` contains it

        Yields:
            ImageRecord per cached image
        """
        now = self.clock()
        records: List[ImageRecord] = []
        for path in self.cache.artifacts():
            repository, tag = parse_canonical_name(path.name)
            if pattern and pattern not in f"{repository}:{tag}":
                continue
            records.append(ImageRecord(
                repository=repository,
                tag=tag,
                short_hash=self.cache.content_hash(path)[:SHORT_HASH_LENGTH],
                created=self.cache.created_at(path),
                size_bytes=path.stat().st_size,
                now=now,
            ))

        # sorted() is stable, so equal timestamps keep scan order
        yield from sorted(records, key=lambda record: record.created, reverse=True)
