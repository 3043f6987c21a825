"""Pull workflow: freshness check, fetch, publish"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from bosun.core.cache import CacheStore
from bosun.core.config import DEFAULT_PULL_TTL_MINUTES, Config
from bosun.core.errors import PullFailedError
from bosun.core.reference import RegistryReference
from bosun.runtime.base import BaseRuntime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StalenessPolicy:
    """How old a cached image may get before it is pulled again"""

    ttl_minutes: Optional[float] = None
    forced: bool = False
    default_ttl_minutes: float = DEFAULT_PULL_TTL_MINUTES

    @property
    def ttl_seconds(self) -> float:
        ttl = self.ttl_minutes if self.ttl_minutes and self.ttl_minutes > 0 else self.default_ttl_minutes
        return ttl * 60

    @classmethod
    def from_config(cls, config: Config, forced: bool = False,
                    default_ttl_minutes: float = DEFAULT_PULL_TTL_MINUTES) -> "StalenessPolicy":
        """Policy from configured TTL; disabling the cache forces every pull"""
        return cls(
            ttl_minutes=config.cache_ttl,
            forced=forced or config.disable_cache,
            default_ttl_minutes=default_ttl_minutes,
        )


class PullOrchestrator:
    """Gets an image into the cache at most once per invocation"""

    def __init__(self, runtime: BaseRuntime, cache: CacheStore, clock: Callable[[], float] = time.time):
        """Initialize orchestrator

        Args:
            runtime: Engine used to fetch images
            cache: Cache store images are published into
            clock: Source of the current time in seconds
        """
        self.runtime = runtime
        self.cache = cache
        self.clock = clock

    def is_fresh(self, path: Path, policy: StalenessPolicy) -> bool:
        if policy.forced:
            return False
        age = self.clock() - self.cache.created_at(path)
        logger.debug(f"{path.name} is {int(age)}s old (ttl {int(policy.ttl_seconds)}s)")
        return age <= policy.ttl_seconds

    def pull(self, reference: RegistryReference, policy: StalenessPolicy) -> Path:
        """Return the cached image for ``reference``, fetching if needed

        Args:
            reference: Normalized image reference
            policy: Staleness policy

        Returns:
            Path of the cached image

        Raises:
            PullFailedError: The engine could not fetch the image; any
                previously cached image is left in place
        """
        name = reference.canonical_name
        cached = self.cache.locate(name)

        if cached is not None and self.is_fresh(cached, policy):
            logger.info(f"Using cached image: {reference.uri}")
            return cached

        with self.cache.scratch_dir() as scratch:
            result = self.runtime.pull(reference, scratch, name)
            if result.returncode != 0:
                raise PullFailedError(reference.uri, result.returncode, (result.stderr or "").strip() or None)

            fetched = scratch / name
            if not fetched.is_file():
                raise PullFailedError(reference.uri, result.returncode, "engine produced no image file")

            published = self.cache.publish(fetched, name)

        self.cache.created_at(published)
        digest = self.cache.content_hash(published)
        logger.info(f"Pulled {reference.uri} (sha256: {digest[:12]})")
        return published
