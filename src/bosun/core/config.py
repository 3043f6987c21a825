"""Configuration management

All settings are read once, when :class:`Config` is constructed, from an
optional YAML file and the process environment. Components receive the
``Config`` instance and never look at ``os.environ`` themselves.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from bosun.core.env import EnvManager
from bosun.core.errors import ConfigError

logger = logging.getLogger(__name__)

# Recognized environment variables and the YAML keys they override
ENV_ENGINE = "BOSUN_ENGINE"
ENV_DEBUG = "BOSUN_DEBUG"
ENV_CACHE_TTL = "BOSUN_CACHE_TTL"
ENV_CACHE_DIR = "BOSUN_CACHE_DIR"
ENV_DISABLE_CACHE = "BOSUN_DISABLE_CACHE"
ENV_PULL_TIMEOUT = "BOSUN_PULL_TIMEOUT"
ENV_CONFIG = "BOSUN_CONFIG"

ENV_KEYS = {
    ENV_ENGINE: "engine",
    ENV_DEBUG: "debug",
    ENV_CACHE_TTL: "cache_ttl",
    ENV_CACHE_DIR: "cache_dir",
    ENV_DISABLE_CACHE: "disable_cache",
    ENV_PULL_TIMEOUT: "pull_timeout",
}

ENV_DESCRIPTIONS = {
    ENV_ENGINE: "Engine to use: docker or singularity (default: autodetect)",
    ENV_DEBUG: "Enable debug logging",
    ENV_CACHE_TTL: "Minutes before a cached image is pulled again",
    ENV_CACHE_DIR: "Directory holding cached images",
    ENV_DISABLE_CACHE: "Always pull, ignoring cached images",
    ENV_PULL_TIMEOUT: "Seconds before a pull is abandoned (default: no limit)",
    ENV_CONFIG: "Path to the YAML configuration file",
}

# TTL used by `pull`, and the longer one used when `run` pulls implicitly
DEFAULT_PULL_TTL_MINUTES = 60
DEFAULT_RUN_TTL_MINUTES = 7 * 24 * 60

DEFAULT_CONFIG_FILE = os.path.join(".bosun", "config.yaml")
SHARED_STORAGE_VAR = "SCRATCH"
CACHE_SUBDIR = os.path.join(".bosun", "images")

_TRUE_VALUES = {"1", "true", "yes", "on"}


class Config:
    """Configuration for one bosun invocation"""

    def __init__(self, environ: Optional[Mapping[str, str]] = None, config_file: Optional[str] = None):
        """Build configuration from environment and optional YAML file

        Args:
            environ: Environment to read (default: os.environ)
            config_file: YAML file (default: $BOSUN_CONFIG or ~/.bosun/config.yaml)
        """
        self.env_manager = EnvManager(environ)
        self.data: Dict[str, Any] = {}

        explicit = config_file or self.env_manager.env.get(ENV_CONFIG)
        if explicit:
            self.config_file = os.path.expanduser(explicit)
        else:
            self.config_file = os.path.join(self.home, DEFAULT_CONFIG_FILE)
        self.load(required=bool(explicit))

    @property
    def home(self) -> str:
        return self.env_manager.env.get("HOME") or os.path.expanduser("~")

    def load(self, required: bool = False) -> None:
        """Load the YAML file, then overlay environment variables"""
        data: Dict[str, Any] = {}
        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, "r") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Failed to parse configuration file {self.config_file}: {e}")
            if not isinstance(data, dict):
                raise ConfigError(f"Configuration file {self.config_file} must contain a mapping")
            try:
                data = self.env_manager.expand_dict(data, self.env_manager.env)
            except ValueError as e:
                raise ConfigError(str(e))
            logger.debug(f"Loaded configuration from {self.config_file}")
        elif required:
            raise ConfigError(f"Configuration file not found: {self.config_file}")

        for var, key in ENV_KEYS.items():
            value = self.env_manager.env.get(var)
            if value not in (None, ""):
                data[key] = value

        self.data = data

    @staticmethod
    def _as_bool(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if value is None:
            return False
        return str(value).strip().lower() in _TRUE_VALUES

    def _as_number(self, key: str) -> Optional[float]:
        value = self.data.get(key)
        if value in (None, ""):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{key} must be a number, got {value!r}")

    @property
    def engine(self) -> Optional[str]:
        """Engine override or None to autodetect"""
        value = self.data.get("engine")
        return str(value).strip().lower() if value else None

    @property
    def debug(self) -> bool:
        return self._as_bool(self.data.get("debug"))

    @property
    def cache_ttl(self) -> Optional[float]:
        """Cache TTL in minutes, None when not configured"""
        ttl = self._as_number("cache_ttl")
        if ttl is not None and ttl < 0:
            raise ConfigError(f"cache_ttl must not be negative, got {ttl:g}")
        return ttl

    @property
    def disable_cache(self) -> bool:
        return self._as_bool(self.data.get("disable_cache"))

    @property
    def pull_timeout(self) -> Optional[float]:
        """Pull timeout in seconds, None for no limit"""
        timeout = self._as_number("pull_timeout")
        return timeout if timeout and timeout > 0 else None

    @property
    def cache_dir(self) -> Path:
        """Cache directory

        Preference: configured directory, then $SCRATCH/.bosun/images when
        $SCRATCH is an existing directory, then ~/.bosun/images.
        """
        configured = self.data.get("cache_dir")
        if configured:
            return Path(os.path.expanduser(str(configured)))

        shared = self.env_manager.env.get(SHARED_STORAGE_VAR)
        if shared and os.path.isdir(shared):
            return Path(shared) / CACHE_SUBDIR

        return Path(self.home) / CACHE_SUBDIR

    def describe(self) -> Dict[str, str]:
        """Recognized variables and their current values for display"""
        described = {}
        for var in ENV_DESCRIPTIONS:
            described[var] = self.env_manager.env.get(var, "")
        return described

    def effective(self) -> Dict[str, str]:
        """Resolved value behind each recognized variable, file and defaults included"""
        def show(value: Any) -> str:
            if value is None:
                return ""
            if isinstance(value, bool):
                return "true" if value else "false"
            if isinstance(value, float):
                return f"{value:g}"
            return str(value)

        return {
            ENV_ENGINE: show(self.engine) or "autodetect",
            ENV_DEBUG: show(self.debug),
            ENV_CACHE_TTL: (show(self.cache_ttl)
                            or f"default ({DEFAULT_PULL_TTL_MINUTES} pull, {DEFAULT_RUN_TTL_MINUTES} run)"),
            ENV_CACHE_DIR: show(self.cache_dir),
            ENV_DISABLE_CACHE: show(self.disable_cache),
            ENV_PULL_TIMEOUT: show(self.pull_timeout) or "none",
            ENV_CONFIG: self.config_file,
        }
