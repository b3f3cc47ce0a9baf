"""Tests for environment-driven settings and service wiring."""

from __future__ import annotations

from pathlib import Path

import pytest

from gemara_authoring.schema.source import DEFAULT_SCHEMA_BASE_URL
from gemara_authoring.service.artifact_service import ArtifactService
from gemara_authoring.settings import Settings


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("ARTIFACTS_DIR", "SCHEMA_BASE_URL", "MCP_TRANSPORT", "STORAGE_ENABLED"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)
        assert settings.artifacts_dir == Path("artifacts")
        assert settings.schema_base_url == DEFAULT_SCHEMA_BASE_URL
        assert settings.mcp_transport == "stdio"
        assert settings.storage_enabled is True

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("ARTIFACTS_DIR", str(tmp_path))
        monkeypatch.setenv("STORAGE_ENABLED", "false")
        monkeypatch.setenv("MCP_SERVER_PORT", "9100")
        settings = Settings(_env_file=None)
        assert settings.artifacts_dir == tmp_path
        assert settings.storage_enabled is False
        assert settings.mcp_server_port == 9100


class TestFromSettings:
    def test_store_created_in_artifacts_dir(self, tmp_path: Path) -> None:
        settings = Settings(_env_file=None, artifacts_dir=tmp_path / "store")
        service = ArtifactService.from_settings(settings)
        try:
            assert service.store is not None
            assert service.store.base_directory == tmp_path / "store"
            assert (tmp_path / "store" / "index.json").exists()
        finally:
            service.close()

    def test_storage_disabled(self, tmp_path: Path) -> None:
        settings = Settings(_env_file=None, storage_enabled=False, artifacts_dir=tmp_path)
        service = ArtifactService.from_settings(settings)
        assert service.store is None
        service.close()
