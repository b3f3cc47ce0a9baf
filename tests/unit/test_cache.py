"""Tests for the cache-aside artifact view."""

from __future__ import annotations

import pytest

from gemara_authoring.models.artifacts import GuidanceDocument, Layer, Policy
from gemara_authoring.service.cache import ArtifactCache
from gemara_authoring.storage.filesystem import FileArtifactStore
from gemara_authoring.storage.repository import ArtifactNotFoundError, StorageError
from tests.conftest import GUIDANCE_YAML, POLICY_YAML, UNREADABLE_GUIDANCE_YAML


def _policy(policy_id: str) -> Policy:
    return Policy.model_validate({"metadata": {"id": policy_id, "title": policy_id.upper()}})


class TestWithoutStore:
    def test_miss_raises(self) -> None:
        cache = ArtifactCache()
        with pytest.raises(ArtifactNotFoundError):
            cache.get(Layer.POLICY, "p1")
        assert not cache.contains(Layer.POLICY, "p1")

    def test_put_get_evict(self) -> None:
        cache = ArtifactCache()
        policy = _policy("p1")
        cache.put(Layer.POLICY, "p1", policy)
        assert cache.get(Layer.POLICY, "p1") is policy
        assert not cache.contains(Layer.GUIDANCE, "p1")
        cache.evict(Layer.POLICY, "p1")
        assert not cache.contains(Layer.POLICY, "p1")

    def test_artifacts_sorted(self) -> None:
        cache = ArtifactCache()
        for pid in ("zeta", "alpha"):
            cache.put(Layer.POLICY, pid, _policy(pid))
        assert [aid for aid, _ in cache.artifacts(Layer.POLICY)] == ["alpha", "zeta"]


class TestWithStore:
    def test_fill_on_miss(self, store: FileArtifactStore) -> None:
        store.store_raw(Layer.GUIDANCE, GUIDANCE_YAML)
        cache = ArtifactCache(store)
        first = cache.get(Layer.GUIDANCE, "nist-csf")
        assert isinstance(first, GuidanceDocument)
        assert cache.get(Layer.GUIDANCE, "nist-csf") is first

    def test_stale_until_evicted(self, store: FileArtifactStore) -> None:
        store.store_raw(Layer.POLICY, POLICY_YAML)
        cache = ArtifactCache(store)
        assert cache.get(Layer.POLICY, "acme-policy").metadata.title == "ACME Cloud Policy"

        store.store_raw(Layer.POLICY, POLICY_YAML.replace("ACME Cloud Policy", "Renamed"))
        assert cache.get(Layer.POLICY, "acme-policy").metadata.title == "ACME Cloud Policy"

        cache.evict(Layer.POLICY, "acme-policy")
        assert cache.get(Layer.POLICY, "acme-policy").metadata.title == "Renamed"

    def test_clear_refills_from_store(self, store: FileArtifactStore) -> None:
        store.store_raw(Layer.POLICY, POLICY_YAML)
        cache = ArtifactCache(store)
        first = cache.get(Layer.POLICY, "acme-policy")
        cache.clear()
        assert cache.get(Layer.POLICY, "acme-policy") is not first

    def test_artifacts_merges_store_and_cache(self, store: FileArtifactStore) -> None:
        store.store_raw(Layer.POLICY, POLICY_YAML)
        cache = ArtifactCache(store)
        cache.put(Layer.POLICY, "adhoc", _policy("adhoc"))
        assert [aid for aid, _ in cache.artifacts(Layer.POLICY)] == ["acme-policy", "adhoc"]

    def test_artifacts_skips_unreadable(self, store: FileArtifactStore) -> None:
        store.store_raw(Layer.POLICY, POLICY_YAML)
        store.store_raw(Layer.POLICY, "metadata:\n  id: broken\ncontrol-references: not-a-list\n")
        cache = ArtifactCache(store)
        assert [aid for aid, _ in cache.artifacts(Layer.POLICY)] == ["acme-policy"]

    def test_contains_treats_unreadable_as_absent(self, store: FileArtifactStore) -> None:
        store.store_raw(Layer.GUIDANCE, UNREADABLE_GUIDANCE_YAML)
        cache = ArtifactCache(store)
        assert cache.contains(Layer.GUIDANCE, "nist-csf") is False
        with pytest.raises(StorageError):
            cache.get(Layer.GUIDANCE, "nist-csf")
