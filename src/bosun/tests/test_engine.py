"""Tests for engine selection"""

import pytest

from bosun.core.config import Config
from bosun.core.engine import EngineKind, create_runtime, select_engine
from bosun.core.errors import EngineError, EngineNotFoundError, NoEngineDetectedError
from bosun.runtime import DockerRuntime, SingularityRuntime


def which_for(*available):
    return lambda name: f"/usr/bin/{name}" if name in available else None


class TestSelectEngine:
    """Test select_engine()"""

    def test_singularity_wins_when_both_present(self):
        assert select_engine(which=which_for("docker", "singularity")) is EngineKind.SINGULARITY

    def test_docker_only(self):
        assert select_engine(which=which_for("docker")) is EngineKind.DOCKER

    def test_nothing_installed(self):
        with pytest.raises(NoEngineDetectedError) as excinfo:
            select_engine(which=which_for())
        assert isinstance(excinfo.value, EngineError)

    def test_override(self):
        assert select_engine("docker", which=which_for("docker", "singularity")) is EngineKind.DOCKER

    def test_override_is_case_insensitive(self):
        assert select_engine("Singularity", which=which_for("singularity")) is EngineKind.SINGULARITY

    def test_override_not_installed(self):
        with pytest.raises(EngineNotFoundError):
            select_engine("docker", which=which_for("singularity"))

    def test_unknown_override(self):
        with pytest.raises(EngineNotFoundError):
            select_engine("podman", which=which_for("podman", "docker"))


class TestCreateRuntime:
    """Test create_runtime()"""

    def test_runtime_classes(self, temp_dir):
        config = Config(environ={"HOME": temp_dir, "BOSUN_PULL_TIMEOUT": "30"})
        docker = create_runtime(EngineKind.DOCKER, config)
        singularity = create_runtime(EngineKind.SINGULARITY, config)
        assert isinstance(docker, DockerRuntime)
        assert isinstance(singularity, SingularityRuntime)
        assert docker.cmd == "docker"
        assert singularity.pull_timeout == 30
