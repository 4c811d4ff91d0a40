"""
Configuration Dataclasses

Type-safe configuration structures for sheet sync.
Loaded from a YAML file with environment variable overrides.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError
from .logging_setup import get_service_logger

logger = get_service_logger("config")

DEFAULT_EXPORT_URL = (
    "https://docs.google.com/spreadsheets/d/{document_id}/gviz/tq"
    "?tqx=out:csv&headers=1&gid={sub_document_id}"
)

# Google's default sheet id when a spread has a single sheet
DEFAULT_SUB_DOCUMENT_ID = "0"


@dataclass
class SyncSettings:
    """Refresh and transport settings shared by every sheet manager"""
    refresh_interval_s: int = 30
    request_timeout_s: float = 30.0
    export_url_template: str = DEFAULT_EXPORT_URL
    store_dir: str = "/var/lib/sheetsync/store"
    broadcast_peers: list[str] = field(default_factory=list)
    health_host: str = "127.0.0.1"
    health_port: int = 8090


@dataclass
class SheetConfig:
    """One synchronized document"""
    document_id: str
    sub_document_id: str = DEFAULT_SUB_DOCUMENT_ID


@dataclass
class ServiceConfig:
    """Complete service configuration"""
    settings: SyncSettings = field(default_factory=SyncSettings)
    sheets: list[SheetConfig] = field(default_factory=list)


def _apply_env_overrides(settings: SyncSettings) -> None:
    """Override settings from SHEETSYNC_* environment variables"""
    try:
        if "SHEETSYNC_REFRESH_INTERVAL" in os.environ:
            settings.refresh_interval_s = int(os.environ["SHEETSYNC_REFRESH_INTERVAL"])
        if "SHEETSYNC_HEALTH_PORT" in os.environ:
            settings.health_port = int(os.environ["SHEETSYNC_HEALTH_PORT"])
    except ValueError as e:
        raise ConfigError(f"Invalid numeric environment override: {e}")

    if "SHEETSYNC_STORE_DIR" in os.environ:
        settings.store_dir = os.environ["SHEETSYNC_STORE_DIR"]
    if "SHEETSYNC_PEERS" in os.environ:
        settings.broadcast_peers = [
            p.strip() for p in os.environ["SHEETSYNC_PEERS"].split(",") if p.strip()
        ]


def load_settings(data: dict[str, Any]) -> SyncSettings:
    """Load SyncSettings from dictionary (e.g., the `sync` section of the YAML file)"""
    defaults = SyncSettings()
    try:
        settings = SyncSettings(
            refresh_interval_s=int(data.get("refresh_interval_s", defaults.refresh_interval_s)),
            request_timeout_s=float(data.get("request_timeout_s", defaults.request_timeout_s)),
            export_url_template=data.get("export_url_template", defaults.export_url_template),
            store_dir=str(data.get("store_dir", defaults.store_dir)),
            broadcast_peers=list(data.get("broadcast_peers") or []),
            health_host=data.get("health_host", defaults.health_host),
            health_port=int(data.get("health_port", defaults.health_port)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid sync settings: {e}")

    if settings.refresh_interval_s <= 0:
        raise ConfigError("refresh_interval_s must be positive")

    return settings


def load_sheet_config(data: dict[str, Any]) -> SheetConfig:
    """Load SheetConfig from dictionary"""
    document_id = data.get("document_id")
    if not document_id or not isinstance(document_id, str):
        raise ConfigError(f"Sheet entry missing document_id: {data}")

    sub_document_id = data.get("sub_document_id")
    return SheetConfig(
        document_id=document_id,
        sub_document_id=str(sub_document_id) if sub_document_id is not None else DEFAULT_SUB_DOCUMENT_ID,
    )


def load_config(path: str | Path | None) -> ServiceConfig:
    """
    Load service configuration from a YAML file.

    A missing file yields defaults (with a warning). Environment
    overrides are applied last.

    Raises:
        ConfigError: If the file is not valid YAML or holds invalid values
    """
    data: dict[str, Any] = {}

    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning(f"Config file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigError(f"Error parsing {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Config root must be a mapping, got {type(data).__name__}")

    settings = load_settings(data.get("sync") or {})
    _apply_env_overrides(settings)

    sheets = [load_sheet_config(s) for s in data.get("sheets") or []]

    return ServiceConfig(settings=settings, sheets=sheets)
