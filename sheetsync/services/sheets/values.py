"""
Sheet Value Store

Holds the live values of one sheet plus freshness metadata, applies
timestamped candidate documents and raises change notifications.

All mutation goes through apply(). A candidate whose timestamp is not
newer than last_updated is rejected without touching the values, so
applies are ordered by timestamp regardless of which path delivered
them (store read, remote fetch or broadcast).
"""

import threading
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable

from ...common.logging_setup import get_service_logger, log_values_applied
from ...common.signals import Signal
from .parser import ValueRow, parse_rows
from .types import TypeRegistry, TypedValue, default_registry, values_equal

logger = get_service_logger("sheets.values")


class UpdateSource(str, Enum):
    """Where the currently held values came from (diagnostics only)"""
    REMOTE_API = "remote_api"
    SHARED_STORE = "shared_store"
    SHARED_STORE_OVERRIDE = "shared_store_override"
    BROADCAST = "broadcast"


class ValueStore:
    """
    Live state of one synchronized sheet.

    Attributes:
        last_updated: Unix timestamp of the data currently held (0 = never)
        last_source: UpdateSource of the last successful apply
    """

    def __init__(self, key: str = "", registry: TypeRegistry | None = None):
        self.key = key
        self.registry = registry or default_registry

        self._values: dict[str, TypedValue] = {}
        self._last_updated: int = 0
        self._last_source: UpdateSource | None = None

        self._lock = threading.RLock()
        self._value_signals: dict[str, Signal] = {}
        self._changed = Signal("changed")
        self._alive = True

    @property
    def last_updated(self) -> int:
        return self._last_updated

    @property
    def last_source(self) -> UpdateSource | None:
        return self._last_source

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def values(self) -> MappingProxyType:
        """Read-only snapshot of the current values"""
        with self._lock:
            return MappingProxyType(dict(self._values))

    def get(self, name: str, default: Any = None) -> Any:
        """Stored value for name, or default if absent"""
        with self._lock:
            return self._values.get(name, default)

    def on_change(self, name: str) -> Signal:
        """
        Per-value signal, fired with (new_value, old_value).

        old_value is None when the name did not exist before.
        """
        with self._lock:
            signal = self._value_signals.get(name)
            if signal is None:
                signal = Signal(name)
                if not self._alive:
                    signal.destroy()
                else:
                    self._value_signals[name] = signal
            return signal

    def on_any_change(self) -> Signal:
        """Aggregate signal, fired with a snapshot of all values"""
        return self._changed

    def _is_stale(self, timestamp: int, override: bool) -> bool:
        if override:
            return timestamp < self._last_updated
        return timestamp <= self._last_updated

    def apply(
        self,
        rows: Iterable[ValueRow],
        timestamp: int,
        source: UpdateSource,
        override: bool = False,
    ) -> bool:
        """
        Merge a candidate document into the live values.

        Args:
            rows: Parsed rows of the candidate document
            timestamp: Unix timestamp the candidate was produced at
            source: Where the candidate came from
            override: Also accept a candidate as old as the current values
                (the shared store won a write-back race in the same second)

        Returns:
            True if at least one value changed
        """
        notifications: list[tuple[Signal, TypedValue, TypedValue | None]] = []
        changed: list[str] = []

        with self._lock:
            if not self._alive:
                return False

            if self._is_stale(timestamp, override):
                logger.debug(
                    f"Discarding stale candidate from {source.value} "
                    f"({timestamp} <= {self._last_updated})",
                    extra={"sheet_key": self.key, "source": source.value, "timestamp": timestamp},
                )
                return False

            self._last_updated = timestamp
            self._last_source = source

            for row in rows:
                try:
                    new_value = self.registry.parse(row.type_tag, row.raw_value)
                except Exception as e:
                    logger.warning(
                        f"Skipping value '{row.name}' ({row.type_tag}): {e}",
                        extra={"sheet_key": self.key, "value_name": row.name},
                    )
                    continue

                old_value = self._values.get(row.name)
                if row.name in self._values and values_equal(old_value, new_value):
                    continue

                self._values[row.name] = new_value
                changed.append(row.name)

                signal = self._value_signals.get(row.name)
                if signal is not None:
                    notifications.append((signal, new_value, old_value))

            snapshot = MappingProxyType(dict(self._values)) if changed else None

            # Fire while still holding the lock so observers see
            # notifications in apply order
            for signal, new_value, old_value in notifications:
                signal.fire(new_value, old_value)

            if snapshot is not None:
                self._changed.fire(snapshot)

        log_values_applied(logger, self.key, source.value, timestamp, changed)
        return bool(changed)

    def apply_document(
        self,
        document: str,
        timestamp: int,
        source: UpdateSource,
        override: bool = False,
    ) -> bool:
        """Parse and apply a raw sheet document"""
        if self._is_stale(timestamp, override):
            # Skip the parse; apply() repeats the check under the lock
            return False
        return self.apply(parse_rows(document), timestamp, source, override=override)

    def destroy(self) -> None:
        """Stop accepting applies and release every observer"""
        with self._lock:
            self._alive = False
            for signal in self._value_signals.values():
                signal.destroy()
            self._value_signals.clear()
            self._changed.destroy()
