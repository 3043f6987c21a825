"""Tests for the pull workflow"""

import pytest

from bosun.core.config import DEFAULT_PULL_TTL_MINUTES, Config
from bosun.core.errors import PullFailedError
from bosun.core.orchestrator import PullOrchestrator, StalenessPolicy
from bosun.core.reference import normalize

KALLISTO = "docker://quay.io/cyverse/kallisto:latest"


@pytest.fixture
def orchestrator(fake_runtime, cache_store, clock):
    return PullOrchestrator(fake_runtime, cache_store, clock=clock)


def files_in(cache_store):
    return sorted(p.name for p in cache_store.cache_dir.iterdir())


class TestStalenessPolicy:
    """Test TTL fallback and forcing"""

    def test_unset_ttl_uses_default(self):
        assert StalenessPolicy().ttl_seconds == DEFAULT_PULL_TTL_MINUTES * 60

    def test_zero_ttl_uses_default(self):
        assert StalenessPolicy(ttl_minutes=0, default_ttl_minutes=5).ttl_seconds == 300

    def test_negative_ttl_uses_default(self):
        assert StalenessPolicy(ttl_minutes=-5, default_ttl_minutes=5).ttl_seconds == 300

    def test_explicit_ttl(self):
        assert StalenessPolicy(ttl_minutes=2).ttl_seconds == 120

    def test_from_config_disable_cache_forces(self):
        config = Config(environ={"BOSUN_DISABLE_CACHE": "1", "BOSUN_CACHE_TTL": "15", "HOME": "/tmp"})
        policy = StalenessPolicy.from_config(config)
        assert policy.forced is True
        assert policy.ttl_seconds == 900


class TestPullEndToEnd:
    """Test fetching and reusing cached images"""

    def test_empty_cache_fetches_once(self, orchestrator, fake_runtime, cache_store):
        ref = normalize(KALLISTO)
        path = orchestrator.pull(ref, StalenessPolicy())

        assert fake_runtime.pull.call_count == 1
        assert path == cache_store.path_for("quay.io#cyverse#kallisto#latest.img")
        assert files_in(cache_store) == [
            "quay.io#cyverse#kallisto#latest.img",
            "quay.io#cyverse#kallisto#latest.img.ctime",
            "quay.io#cyverse#kallisto#latest.img.sha256",
        ]

    def test_second_pull_within_ttl_uses_cache(self, orchestrator, fake_runtime, clock):
        ref = normalize(KALLISTO)
        first = orchestrator.pull(ref, StalenessPolicy())
        clock.advance(60)
        second = orchestrator.pull(ref, StalenessPolicy())

        assert first == second
        assert fake_runtime.pull.call_count == 1

    def test_just_inside_ttl_is_fresh(self, orchestrator, fake_runtime, clock):
        ref = normalize(KALLISTO)
        policy = StalenessPolicy(ttl_minutes=10)
        orchestrator.pull(ref, policy)
        clock.advance(policy.ttl_seconds - 1)
        orchestrator.pull(ref, policy)
        assert fake_runtime.pull.call_count == 1

    def test_just_past_ttl_refetches(self, orchestrator, fake_runtime, cache_store, clock):
        ref = normalize(KALLISTO)
        policy = StalenessPolicy(ttl_minutes=10)
        path = orchestrator.pull(ref, policy)
        old_hash = cache_store.content_hash(path)

        clock.advance(policy.ttl_seconds + 1)
        fake_runtime.contents = b"image-bytes-v2"
        orchestrator.pull(ref, policy)

        assert fake_runtime.pull.call_count == 2
        assert cache_store.content_hash(path) != old_hash
        assert cache_store.created_at(path) == clock.now

    def test_forced_pull_always_refetches(self, orchestrator, fake_runtime):
        ref = normalize(KALLISTO)
        orchestrator.pull(ref, StalenessPolicy())
        orchestrator.pull(ref, StalenessPolicy(forced=True))
        orchestrator.pull(ref, StalenessPolicy(forced=True))
        assert fake_runtime.pull.call_count == 3

    def test_fresh_cache_skips_hashing(self, orchestrator, cache_store, fake_runtime):
        ref = normalize(KALLISTO)
        path = orchestrator.pull(ref, StalenessPolicy())
        (cache_store.cache_dir / f"{path.name}.sha256").unlink()

        orchestrator.pull(ref, StalenessPolicy())
        assert not (cache_store.cache_dir / f"{path.name}.sha256").exists()

    def test_scratch_directories_are_removed(self, orchestrator, cache_store):
        orchestrator.pull(normalize(KALLISTO), StalenessPolicy())
        assert not [p for p in cache_store.cache_dir.iterdir() if p.is_dir()]

    def test_runtime_receives_canonical_name(self, orchestrator, fake_runtime):
        ref = normalize("shub://vsoch/hello-world")
        orchestrator.pull(ref, StalenessPolicy())
        called_ref, _scratch, name = fake_runtime.pull.call_args[0]
        assert called_ref == ref
        assert name == "vsoch#hello-world#latest.img"


class TestPullFailures:
    """Test failed fetches"""

    def test_failure_raises_with_exit_status(self, failing_runtime, cache_store, clock):
        orchestrator = PullOrchestrator(failing_runtime, cache_store, clock=clock)
        with pytest.raises(PullFailedError) as excinfo:
            orchestrator.pull(normalize(KALLISTO), StalenessPolicy())
        assert excinfo.value.exit_status == 2
        assert "manifest unknown" in str(excinfo.value)
        assert files_in(cache_store) == []

    def test_failure_keeps_previous_image(self, orchestrator, fake_runtime, failing_runtime, cache_store):
        ref = normalize(KALLISTO)
        path = orchestrator.pull(ref, StalenessPolicy())
        before = path.read_bytes()

        orchestrator.runtime = failing_runtime
        with pytest.raises(PullFailedError):
            orchestrator.pull(ref, StalenessPolicy(forced=True))

        assert path.read_bytes() == before
        assert cache_store.locate(ref.canonical_name) == path

    def test_missing_output_is_a_failure(self, cache_store, clock, failing_runtime):
        failing_runtime.pull.return_value.returncode = 0
        orchestrator = PullOrchestrator(failing_runtime, cache_store, clock=clock)
        with pytest.raises(PullFailedError):
            orchestrator.pull(normalize(KALLISTO), StalenessPolicy())
