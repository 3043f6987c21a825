"""Container engine detection"""

import logging
import shutil
from enum import Enum
from typing import Callable, Optional

from bosun.core.config import Config
from bosun.core.errors import EngineNotFoundError, NoEngineDetectedError
from bosun.runtime import BaseRuntime, DockerRuntime, SingularityRuntime

logger = logging.getLogger(__name__)


class EngineKind(Enum):
    """Supported engines; the value is the executable name"""

    SINGULARITY = "singularity"
    DOCKER = "docker"


# Probe order when nothing is requested: singularity wins on shared systems
DETECTION_ORDER = (EngineKind.SINGULARITY, EngineKind.DOCKER)

RUNTIMES = {
    EngineKind.SINGULARITY: SingularityRuntime,
    EngineKind.DOCKER: DockerRuntime,
}


def select_engine(override: Optional[str] = None,
                  which: Callable[[str], Optional[str]] = shutil.which) -> EngineKind:
    """Pick the engine for this invocation

    Args:
        override: Requested engine name, or None to autodetect
        which: Executable lookup (default: shutil.which)

    Returns:
        Selected EngineKind

    Raises:
        EngineNotFoundError: Requested engine unknown or not installed
        NoEngineDetectedError: Nothing requested and nothing installed
    """
    if override:
        try:
            kind = EngineKind(override.strip().lower())
        except ValueError:
            raise EngineNotFoundError(
                f"Unknown engine '{override}' (choose from: {', '.join(k.value for k in EngineKind)})"
            )
        if not which(kind.value):
            raise EngineNotFoundError(f"Requested engine '{kind.value}' was not found on PATH")
        logger.debug(f"Using requested engine: {kind.value}")
        return kind

    for kind in DETECTION_ORDER:
        if which(kind.value):
            logger.debug(f"Detected engine: {kind.value}")
            return kind

    raise NoEngineDetectedError("No container engine found: install singularity or docker")


def create_runtime(kind: EngineKind, config: Config) -> BaseRuntime:
    """Build the runtime object for ``kind``"""
    return RUNTIMES[kind](pull_timeout=config.pull_timeout)
