"""Shared settings loaded from environment / .env file."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration for the Gemara authoring MCP server.

    Values are read from environment variables and from a ``.env`` file
    in the working directory.  See ``.env.example`` for all options.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Shared
    log_level: str = "INFO"

    # Artifact storage
    artifacts_dir: Path = Path("artifacts")
    storage_enabled: bool = True
    load_artifacts_on_startup: bool = True

    # Schema validation
    schema_base_url: str = "https://raw.githubusercontent.com/ossf/gemara/main/schemas"
    schema_fetch_timeout: float = 10.0  # seconds
    cue_binary: str = "cue"

    # MCP transport
    mcp_transport: str = "stdio"  # stdio | http | sse
    mcp_server_host: str = "localhost"
    mcp_server_port: int = 9000
