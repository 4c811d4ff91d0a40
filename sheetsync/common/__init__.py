"""
Common Utilities

Shared modules used across all components:
- config.py - Configuration dataclasses and YAML loading
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
- scheduler.py - Interval scheduler
- signals.py - Change notification signals
"""

from .config import (
    SyncSettings,
    SheetConfig,
    ServiceConfig,
    load_config,
    load_settings,
)
from .exceptions import (
    SheetSyncError,
    ConfigError,
    TransportError,
    StoreError,
    BroadcastError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
)
from .scheduler import ScheduledLoop
from .signals import Signal, Connection

__all__ = [
    # Config
    "SyncSettings",
    "SheetConfig",
    "ServiceConfig",
    "load_config",
    "load_settings",
    # Exceptions
    "SheetSyncError",
    "ConfigError",
    "TransportError",
    "StoreError",
    "BroadcastError",
    # Logging
    "setup_logging",
    "get_service_logger",
    # Scheduling
    "ScheduledLoop",
    # Signals
    "Signal",
    "Connection",
]
