"""Singularity container runtime implementation"""

import gzip
import logging
import os
import re
import shlex
import shutil
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from bosun.core.reference import RegistryReference

from .base import BaseRuntime, RunRequest

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_gzip(path: Path) -> bool:
    with open(path, "rb") as f:
        return f.read(2) == GZIP_MAGIC


class SingularityRuntime(BaseRuntime):
    """Singularity container runtime, one image file per tag"""

    binary = "singularity"

    def pull(self, reference: RegistryReference, dest_dir: Path, name: str) -> subprocess.CompletedProcess:
        """Pull a docker:// or shub:// image into ``dest_dir / name``

        Args:
            reference: Normalized image reference
            dest_dir: Scratch directory
            name: Canonical filename

        Returns:
            Completed process of ``singularity pull``
        """
        dest_dir = Path(dest_dir)
        logger.info(f"Pulling image: {reference.uri}")
        result = self._run_captured(
            [self.cmd, "pull", "--name", name, reference.uri],
            timeout=self.pull_timeout,
            cwd=str(dest_dir),
        )
        if result.returncode != 0:
            logger.error(f"Failed to pull {reference.uri}: {result.stderr.strip()}")
            return result

        self.normalize_artifact(dest_dir, name)
        return result

    @staticmethod
    def normalize_artifact(dest_dir: Path, name: str) -> Optional[Path]:
        """Leave exactly one uncompressed image at ``dest_dir / name``

        shub:// pulls may produce ``<name>.gz``, or a file that only claims
        to be compressed. Compressed files are decompressed, anything else is
        renamed as-is.

        Returns:
            Path of the image, or None if the pull produced nothing
        """
        target = dest_dir / name
        candidates = [dest_dir / f"{name}.gz", target]
        candidates += sorted(p for p in dest_dir.iterdir() if p.is_file() and p not in candidates)

        for candidate in candidates:
            if not candidate.is_file():
                continue
            if is_gzip(candidate):
                logger.debug(f"Decompressing {candidate.name}")
                partial = dest_dir / f".{name}.partial"
                with gzip.open(candidate, "rb") as src, open(partial, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                candidate.unlink()
                os.replace(partial, target)
            elif candidate != target:
                os.replace(candidate, target)
            return target

        return None

    @contextmanager
    def env_file(self, env: Dict[str, str]) -> Iterator[str]:
        """Shell file exporting ``env``; removed however the block exits"""
        fd, path = tempfile.mkstemp(prefix="bosun-env-", suffix=".sh")
        try:
            with os.fdopen(fd, "w") as f:
                for key, value in env.items():
                    if not _ENV_NAME_RE.match(key):
                        logger.warning(f"Skipping invalid environment variable name: {key}")
                        continue
                    f.write(f"export {key}={shlex.quote(value)}\n")
            yield path
        finally:
            if os.path.exists(path):
                os.remove(path)

    def build_command(self, request: RunRequest) -> List[str]:
        """Translate a run request into ``singularity exec|run`` arguments

        Interactive and tty flags have no singularity equivalent.
        """
        cmd = [self.cmd, "exec" if request.command else "run"]
        if request.gpu:
            cmd.append("--nv")
        if request.workdir:
            cmd.extend(["--pwd", request.workdir])
        cmd.append(str(request.image.path))
        if request.command:
            cmd.append(request.command)
        cmd.extend(request.args)
        return cmd

    def run(self, request: RunRequest) -> int:
        cmd = self.build_command(request)
        if not request.env:
            logger.debug(f"Running: {' '.join(cmd)}")
            return subprocess.run(cmd, check=False).returncode

        with self.env_file(request.env) as env_path:
            script = f". {shlex.quote(env_path)} && exec {' '.join(shlex.quote(part) for part in cmd)}"
            logger.debug(f"Running: {script}")
            return subprocess.run(["/bin/sh", "-c", script], check=False).returncode

    def list_native(self) -> List[str]:
        result = self._run_captured([self.cmd, "cache", "list"])
        if result.returncode != 0:
            logger.error(f"Failed to list singularity cache: {result.stderr.strip()}")
            return []
        return [line for line in result.stdout.splitlines() if line.strip()]
