"""Docker container runtime implementation"""

import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional

from bosun.core.errors import InputError, PullFailedError
from bosun.core.reference import RegistryReference

from .base import BaseRuntime, ResolvedImage, RunRequest

logger = logging.getLogger(__name__)

# Applied to every container started through bosun
SAFETY_FLAGS = [
    "--network", "none",
    "--cpu-shares", "512",
    "--memory", "2g",
]

# I/O cap on the block device backing the working directory
IO_RATE_BPS = "100mb"
IO_RATE_IOPS = "1000"
# Used only when that device cannot be resolved
IO_WEIGHT_FLAGS = ["--blkio-weight", "500"]

SYS_BLOCK = "/sys/dev/block"

_LOADED_PREFIXES = ("Loaded image:", "Loaded image ID:")


def block_device_for(path: str, sys_root: str = SYS_BLOCK) -> Optional[str]:
    """Whole-disk device node (e.g. /dev/sda) holding ``path``, or None

    Partitions are mapped to their parent disk since cgroup I/O limits only
    apply to whole devices.
    """
    try:
        st_dev = os.stat(path).st_dev
    except OSError:
        return None

    entry = os.path.join(sys_root, f"{os.major(st_dev)}:{os.minor(st_dev)}")
    if not os.path.exists(entry):
        return None

    device_dir = os.path.realpath(entry)
    if os.path.exists(os.path.join(device_dir, "partition")):
        device_dir = os.path.dirname(device_dir)
    return f"/dev/{os.path.basename(device_dir)}"


def io_limit_flags(path: str) -> List[str]:
    """docker run flags capping I/O on the device behind ``path``"""
    device = block_device_for(path)
    if device is None:
        logger.debug(f"No block device found for {path}, falling back to blkio weight")
        return list(IO_WEIGHT_FLAGS)
    return [
        "--device-read-bps", f"{device}:{IO_RATE_BPS}",
        "--device-write-bps", f"{device}:{IO_RATE_BPS}",
        "--device-read-iops", f"{device}:{IO_RATE_IOPS}",
        "--device-write-iops", f"{device}:{IO_RATE_IOPS}",
    ]


class DockerRuntime(BaseRuntime):
    """Docker container runtime"""

    binary = "docker"

    def pull(self, reference: RegistryReference, dest_dir: Path, name: str) -> subprocess.CompletedProcess:
        """Pull into the daemon, then save the image as a single file

        Args:
            reference: Normalized image reference
            dest_dir: Scratch directory
            name: Canonical filename

        Returns:
            Completed process of the failing step, or of ``docker save``
        """
        if reference.protocol != "docker":
            raise InputError(f"{reference.protocol}:// images require the singularity engine")

        logger.info(f"Pulling image: {reference.name}")
        result = self._run_captured([self.cmd, "pull", reference.name], timeout=self.pull_timeout)
        if result.returncode != 0:
            logger.error(f"Failed to pull {reference.name}: {result.stderr.strip()}")
            return result

        output = Path(dest_dir) / name
        result = self._run_captured([self.cmd, "save", "-o", str(output), reference.name],
                                    timeout=self.pull_timeout)
        if result.returncode != 0:
            logger.error(f"Failed to save {reference.name}: {result.stderr.strip()}")
        return result

    def _load(self, path: Path) -> str:
        """Load an image file into the daemon and return the loaded name"""
        logger.info(f"Loading image from {path}")
        result = self._run_captured([self.cmd, "load", "-i", str(path)])
        if result.returncode != 0:
            raise PullFailedError(str(path), result.returncode, result.stderr.strip())

        for line in result.stdout.splitlines():
            for prefix in _LOADED_PREFIXES:
                if line.startswith(prefix):
                    return line[len(prefix):].strip()
        raise PullFailedError(str(path), result.returncode, "docker load reported no image")

    def _image_name(self, image: ResolvedImage) -> str:
        if image.reference is not None:
            return image.reference.name
        return self._load(image.path)

    def build_command(self, request: RunRequest, image_name: str) -> List[str]:
        """Translate a run request into ``docker run`` arguments"""
        cmd = [self.cmd, "run", "--rm"]
        if request.interactive:
            cmd.append("-i")
        if request.tty:
            cmd.append("-t")
        for key, value in request.env.items():
            cmd.extend(["-e", f"{key}={value}"])
        cmd.extend(SAFETY_FLAGS)
        cmd.extend(io_limit_flags(request.cwd))
        cmd.extend(["-v", f"{request.cwd}:{request.cwd}", "-w", request.workdir or request.cwd])
        if request.gpu:
            cmd.extend(["--gpus", "all"])
        cmd.append(image_name)
        if request.command:
            cmd.append(request.command)
        cmd.extend(request.args)
        return cmd

    def run(self, request: RunRequest) -> int:
        cmd = self.build_command(request, self._image_name(request.image))
        logger.debug(f"Running: {' '.join(cmd)}")
        return subprocess.run(cmd, check=False).returncode

    def list_native(self) -> List[str]:
        result = self._run_captured([self.cmd, "images", "--format", "{{.Repository}}:{{.Tag}}"])
        if result.returncode != 0:
            logger.error(f"Failed to list images: {result.stderr.strip()}")
            return []
        return [line for line in result.stdout.splitlines() if line.strip()]
