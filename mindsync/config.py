"""Configuration loading for mindsync."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    static_dir: str | None = None


@dataclass
class StoreConfig:
    """Configuration for the snapshot key-value store."""

    db_path: str = "~/.mindsync/store.db"
    snapshot_key: str = "mindmap_data"


@dataclass
class SyncConfig:
    """Configuration for pushing snapshots to a remote server."""

    remote_url: str = ""
    max_retries: int = 3
    timeout_seconds: float = 30.0


@dataclass
class Config:
    server: ServerConfig = field(default_factory=ServerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with MINDSYNC_ prefix."""
    return os.environ.get(f"MINDSYNC_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Server overrides
    if host := _get_env("HOST"):
        config.server.host = host
    if port := _get_env("PORT"):
        config.server.port = int(port)
    if origins := _get_env("CORS_ORIGINS"):
        config.server.cors_origins = [o.strip() for o in origins.split(",") if o.strip()]
    if static_dir := _get_env("STATIC_DIR"):
        config.server.static_dir = static_dir

    # Store overrides
    if db_path := _get_env("DB_PATH"):
        config.store.db_path = db_path
    if snapshot_key := _get_env("SNAPSHOT_KEY"):
        config.store.snapshot_key = snapshot_key

    # Sync overrides
    if remote_url := _get_env("REMOTE_URL"):
        config.sync.remote_url = remote_url
    if retries := _get_env("MAX_RETRIES"):
        config.sync.max_retries = int(retries)
    if timeout := _get_env("TIMEOUT"):
        config.sync.timeout_seconds = float(timeout)

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            # Parse server config
            if "server" in data:
                server_data = data["server"]
                config.server = ServerConfig(
                    host=server_data.get("host", config.server.host),
                    port=server_data.get("port", config.server.port),
                    cors_origins=server_data.get(
                        "cors_origins", config.server.cors_origins
                    ),
                    static_dir=server_data.get("static_dir", config.server.static_dir),
                )

            # Parse store config
            if "store" in data:
                store_data = data["store"]
                config.store = StoreConfig(
                    db_path=store_data.get("db_path", config.store.db_path),
                    snapshot_key=store_data.get(
                        "snapshot_key", config.store.snapshot_key
                    ),
                )

            # Parse sync config
            if "sync" in data:
                sync_data = data["sync"]
                config.sync = SyncConfig(
                    remote_url=sync_data.get("remote_url", config.sync.remote_url),
                    max_retries=sync_data.get("max_retries", config.sync.max_retries),
                    timeout_seconds=sync_data.get(
                        "timeout_seconds", config.sync.timeout_seconds
                    ),
                )

    return _apply_env_overrides(config)
