"""
Shared Store

Durable key-value store shared by every process syncing the same sheet.
Each key holds one StoreRecord (timestamp + raw CSV). transact() is an
atomic read-modify-write with respect to other transact() calls on the
same key.

Two implementations:
- MemorySharedStore: in-process, for tests and single-process hosts
- FileSharedStore: JSON files in a shared directory with file locking
"""

import asyncio
import json
import os
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, Protocol

from ..common.exceptions import StoreError
from ..common.logging_setup import get_service_logger

logger = get_service_logger("storage")


@dataclass
class StoreRecord:
    """Persisted shape of one sheet in the shared store"""
    timestamp: int = 0
    csv: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "StoreRecord":
        return cls(
            timestamp=int(data.get("timestamp") or 0),
            csv=str(data.get("csv") or ""),
        )

    def to_dict(self) -> dict:
        return asdict(self)


UpdateFn = Callable[[StoreRecord], StoreRecord]


class SharedStore(Protocol):
    """Interface the sync coordinator relies on"""

    async def read(self, key: str) -> StoreRecord | None:
        """Current record for key, None if absent. Raises StoreError."""
        ...

    async def transact(self, key: str, update_fn: UpdateFn) -> StoreRecord:
        """
        Atomically replace the record for key with update_fn(existing).

        update_fn receives the existing record, or StoreRecord() if none.
        Returns the persisted record. Raises StoreError.
        """
        ...


class MemorySharedStore:
    """In-process shared store (one asyncio.Lock per key)"""

    def __init__(self) -> None:
        self._records: dict[str, StoreRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _get_lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def read(self, key: str) -> StoreRecord | None:
        record = self._records.get(key)
        return StoreRecord(record.timestamp, record.csv) if record else None

    async def transact(self, key: str, update_fn: UpdateFn) -> StoreRecord:
        async with self._get_lock(key):
            existing = self._records.get(key)
            current = StoreRecord(existing.timestamp, existing.csv) if existing else StoreRecord()
            try:
                updated = update_fn(current)
            except Exception as e:
                raise StoreError(f"Update function failed: {e}", key=key)
            self._records[key] = StoreRecord(updated.timestamp, updated.csv)
            return StoreRecord(updated.timestamp, updated.csv)

    def put(self, key: str, record: StoreRecord) -> None:
        """Seed a record directly (test helper)"""
        self._records[key] = StoreRecord(record.timestamp, record.csv)


class FileSharedStore:
    """
    File-based shared store.

    Each key is stored as <directory>/<key>.json. Transactions hold an
    exclusive fcntl lock on <key>.lock for the read-modify-write, so
    processes on the same host (or sharing the directory over a
    lock-capable filesystem) serialize on it. Writes go to a temp file
    and are renamed into place so readers never see a partial record.

    On Windows only in-process locking is available.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self._thread_lock = threading.Lock()

    def _ensure_dir(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def _get_path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _get_lock_path(self, key: str) -> Path:
        return self.directory / f"{key}.lock"

    def _read_sync(self, key: str) -> StoreRecord | None:
        path = self._get_path(key)
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StoreError(f"Corrupt record {path.name}: {e}", key=key)
        except OSError as e:
            raise StoreError(f"Cannot read {path.name}: {e}", key=key)

        if not isinstance(data, dict):
            raise StoreError(f"Corrupt record {path.name}: not an object", key=key)

        return StoreRecord.from_dict(data)

    def _write_sync(self, key: str, record: StoreRecord) -> None:
        path = self._get_path(key)
        temp_path = path.with_suffix(f".{os.getpid()}.tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(record.to_dict(), f)
            f.flush()
            os.fsync(f.fileno())
        temp_path.replace(path)

    def _transact_sync(self, key: str, update_fn: UpdateFn) -> StoreRecord:
        try:
            self._ensure_dir()
        except OSError as e:
            raise StoreError(f"Cannot create store directory {self.directory}: {e}", key=key)

        with self._thread_lock:
            if os.name == "nt":
                return self._read_modify_write(key, update_fn)

            import fcntl
            try:
                lock_file = open(self._get_lock_path(key), "a+")
            except OSError as e:
                raise StoreError(f"Cannot open lock file: {e}", key=key)

            with lock_file:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                try:
                    return self._read_modify_write(key, update_fn)
                finally:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _read_modify_write(self, key: str, update_fn: UpdateFn) -> StoreRecord:
        current = self._read_sync(key) or StoreRecord()
        try:
            updated = update_fn(current)
        except Exception as e:
            raise StoreError(f"Update function failed: {e}", key=key)

        try:
            self._write_sync(key, updated)
        except OSError as e:
            raise StoreError(f"Cannot write record: {e}", key=key)

        logger.debug(
            f"Store record {key[:8]} committed @ {updated.timestamp}",
            extra={"sheet_key": key, "timestamp": updated.timestamp},
        )
        return updated

    async def read(self, key: str) -> StoreRecord | None:
        return await asyncio.to_thread(self._read_sync, key)

    async def transact(self, key: str, update_fn: UpdateFn) -> StoreRecord:
        return await asyncio.to_thread(self._transact_sync, key, update_fn)

    def delete(self, key: str) -> bool:
        """
        Delete a stored record.

        Returns:
            True if deleted, False if not found
        """
        path = self._get_path(key)
        if path.exists():
            path.unlink()
            return True
        return False

    def list_keys(self) -> list[str]:
        """List all stored keys"""
        if not self.directory.exists():
            return []
        return [p.stem for p in self.directory.glob("*.json")]
