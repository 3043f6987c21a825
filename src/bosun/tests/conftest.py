"""Pytest configuration and shared fixtures"""

import subprocess
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from bosun.core.cache import CacheStore
from bosun.runtime.base import BaseRuntime

NOW = 1_700_000_000


class FakeClock:
    """Settable time source"""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache_dir(temp_dir):
    return Path(temp_dir) / "cache"


@pytest.fixture
def cache_store(cache_dir, clock):
    return CacheStore(cache_dir, clock=clock)


@pytest.fixture
def fake_runtime():
    """Runtime whose pull writes a small image into the scratch directory"""
    runtime = MagicMock(spec=BaseRuntime)
    runtime.contents = b"image-bytes-v1"

    def pull(reference, dest_dir, name):
        (Path(dest_dir) / name).write_bytes(runtime.contents)
        return subprocess.CompletedProcess(["pull"], 0, "", "")

    runtime.pull.side_effect = pull
    runtime.run.return_value = 0
    runtime.list_native.return_value = []
    return runtime


@pytest.fixture
def failing_runtime():
    """Runtime whose pull always exits with status 2"""
    runtime = MagicMock(spec=BaseRuntime)
    runtime.pull.return_value = subprocess.CompletedProcess(["pull"], 2, "", "manifest unknown")
    return runtime
