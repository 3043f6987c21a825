"""Core image caching and dispatch"""

from .config import Config
from .errors import BosunError

__all__ = ["Config", "BosunError"]
