"""Abstract base class for container runtimes"""

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from bosun.core.reference import RegistryReference

logger = logging.getLogger(__name__)

# Exit status reported when a pull is abandoned after the configured timeout
TIMEOUT_STATUS = 124


@dataclass(frozen=True)
class ResolvedImage:
    """Image ready to run: a local file and, when known, the reference it came from"""

    path: Path
    reference: Optional[RegistryReference] = None


@dataclass
class RunRequest:
    """Engine independent description of a container run"""

    image: ResolvedImage
    command: Optional[str] = None
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    workdir: Optional[str] = None
    interactive: bool = False
    tty: bool = False
    gpu: bool = False
    cwd: str = field(default_factory=os.getcwd)


class BaseRuntime(ABC):
    """Abstract base for container runtime implementations"""

    binary: str = ""

    def __init__(self, cmd: Optional[str] = None, pull_timeout: Optional[float] = None):
        """Initialize runtime

        Args:
            cmd: Engine executable (default: the class binary name)
            pull_timeout: Seconds before a pull is abandoned, None for no limit
        """
        self.cmd = cmd or self.binary
        self.pull_timeout = pull_timeout

    def _run_captured(self, cmd: Sequence[str], timeout: Optional[float] = None,
                      **kwargs) -> subprocess.CompletedProcess:
        """Run an engine command, capturing output

        A timeout is reported as a failed process rather than an exception.
        """
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            return subprocess.run(
                list(cmd),
                capture_output=True,
                text=True,
                check=False,
                timeout=timeout,
                **kwargs,
            )
        except subprocess.TimeoutExpired:
            logger.error(f"Timed out after {timeout}s: {' '.join(cmd)}")
            return subprocess.CompletedProcess(list(cmd), TIMEOUT_STATUS, "", f"timed out after {timeout}s")

    @abstractmethod
    def pull(self, reference: RegistryReference, dest_dir: Path, name: str) -> subprocess.CompletedProcess:
        """Fetch an image into ``dest_dir / name``

        Args:
            reference: Normalized image reference
            dest_dir: Scratch directory to write into
            name: Canonical filename of the finished image

        Returns:
            Completed process of the failing or final engine command
        """

    @abstractmethod
    def run(self, request: RunRequest) -> int:
        """Run a container and return its exit status"""

    @abstractmethod
    def list_native(self) -> List[str]:
        """Images known to the engine's own store"""
