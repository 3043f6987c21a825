"""Container engine implementations"""

from .base import BaseRuntime, ResolvedImage, RunRequest
from .docker import DockerRuntime
from .singularity import SingularityRuntime

__all__ = ["BaseRuntime", "ResolvedImage", "RunRequest", "DockerRuntime", "SingularityRuntime"]
