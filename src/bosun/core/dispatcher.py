"""Run requests: resolve the image, then hand off to the engine"""

import logging
import os
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence

from bosun.core.orchestrator import PullOrchestrator, StalenessPolicy
from bosun.core.reference import normalize
from bosun.runtime.base import BaseRuntime, ResolvedImage, RunRequest

logger = logging.getLogger(__name__)

GPU_DEVICES = ("/dev/nvidia0", "/dev/nvidiactl")


def gpu_available() -> bool:
    """True when an NVIDIA device node exists on this host"""
    return any(os.path.exists(device) for device in GPU_DEVICES)


class ExecutionDispatcher:
    """Translates a uniform run request into an engine invocation"""

    def __init__(self, runtime: BaseRuntime, orchestrator: PullOrchestrator, policy: StalenessPolicy,
                 gpu_probe: Callable[[], bool] = gpu_available):
        self.runtime = runtime
        self.orchestrator = orchestrator
        self.policy = policy
        self.gpu_probe = gpu_probe

    def resolve(self, image: str) -> ResolvedImage:
        """Use a local image file as-is, otherwise pull through the cache"""
        if os.path.isfile(image):
            logger.debug(f"Using local image file: {image}")
            return ResolvedImage(path=Path(image))

        reference = normalize(image)
        path = self.orchestrator.pull(reference, self.policy)
        return ResolvedImage(path=path, reference=reference)

    def run(self, image: str, command: Optional[str] = None, args: Sequence[str] = (),
            env: Optional[Dict[str, str]] = None, workdir: Optional[str] = None,
            interactive: bool = False, tty: bool = False) -> int:
        """Run ``command`` (or the image's default entry point) in ``image``

        Returns:
            Exit status of the container process
        """
        request = RunRequest(
            image=self.resolve(image),
            command=command,
            args=list(args),
            env=dict(env or {}),
            workdir=workdir,
            interactive=interactive,
            tty=tty,
            gpu=self.gpu_probe(),
        )
        if request.gpu:
            logger.debug("GPU detected, enabling passthrough")
        return self.runtime.run(request)
