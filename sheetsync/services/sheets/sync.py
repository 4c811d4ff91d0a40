"""
Sheet Sync Coordinator

Runs one refresh cycle for a sheet, trying the cheapest source first:

1. Local: values younger than the refresh interval are kept as-is.
2. Shared store: a record younger than the refresh interval and newer
   than the local values is applied.
3. Remote: the sheet is fetched, applied, written back to the shared
   store and broadcast to peers.

Writing back is a read-modify-write transaction. If another process
committed a record at least as new as ours first, that record wins: it
is kept in the store and applied locally instead.

Store and broadcast failures never fail a cycle that fetched the sheet;
transport and store failures never raise out of refresh().
"""

import hashlib
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from ...common.logging_setup import get_service_logger, log_refresh
from ...messaging.broadcast import Broadcast
from ...storage.shared_store import SharedStore, StoreRecord
from .fetch import FetchResult, RemoteFetcher
from .values import UpdateSource, ValueStore

logger = get_service_logger("sheets.sync")


def sheet_key(document_id: str, sub_document_id: str) -> str:
    """Stable store key / broadcast topic for a sheet"""
    return hashlib.sha1(f"{document_id}||{sub_document_id}".encode("utf-8")).hexdigest()


class RefreshStatus(str, Enum):
    LOCAL_FRESH = "local_fresh"
    UP_TO_DATE = "up_to_date"
    STORE_APPLIED = "store_applied"
    REMOTE_APPLIED = "remote_applied"
    STORE_OVERRIDE = "store_override"
    FAILED = "failed"
    DESTROYED = "destroyed"


@dataclass
class RefreshResult:
    status: RefreshStatus
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status not in (RefreshStatus.FAILED, RefreshStatus.DESTROYED)


class SheetSync:
    """
    Refresh cycle for one sheet.

    Several cycles may run at once (scheduled tick and manual refresh);
    they only meet inside ValueStore.apply() and the store transaction,
    both of which are exclusive.
    """

    def __init__(
        self,
        document_id: str,
        sub_document_id: str,
        values: ValueStore,
        fetcher: RemoteFetcher,
        store: SharedStore,
        broadcast: Broadcast,
        refresh_interval_s: float = 30,
        clock: Callable[[], float] = time.time,
        is_alive: Callable[[], bool] = lambda: True,
    ):
        self.document_id = document_id
        self.sub_document_id = sub_document_id
        self.key = sheet_key(document_id, sub_document_id)
        self.values = values
        self.fetcher = fetcher
        self.store = store
        self.broadcast = broadcast
        self.refresh_interval_s = refresh_interval_s
        self._clock = clock
        self._is_alive = is_alive

        # Counters for health reporting
        self.remote_fetch_count = 0
        self.failure_count = 0
        self.last_result: RefreshResult | None = None

    def _now(self) -> int:
        return int(self._clock())

    async def refresh(self) -> RefreshResult:
        """
        Run one refresh cycle.

        Returns:
            RefreshResult describing which tier ended the cycle
        """
        start = time.monotonic()

        if not self._is_alive():
            return RefreshResult(RefreshStatus.DESTROYED, "manager destroyed")

        now = self._now()
        if now - self.values.last_updated < self.refresh_interval_s:
            result = RefreshResult(RefreshStatus.LOCAL_FRESH, "local values within refresh interval")
        else:
            result = await self._refresh_from_store(now)
            if result is None:
                result = await self._refresh_from_remote(now)

        if result.status == RefreshStatus.FAILED:
            self.failure_count += 1
        self.last_result = result

        log_refresh(
            logger,
            self.key,
            result.status.value,
            result.detail,
            (time.monotonic() - start) * 1000,
        )
        return result

    async def _refresh_from_store(self, now: int) -> RefreshResult | None:
        """
        Try the shared store.

        Returns:
            RefreshResult if the cycle ends here, None to go remote
        """
        try:
            record = await self.store.read(self.key)
        except Exception as e:
            logger.warning(
                f"Shared store read failed, falling back to remote: {e}",
                extra={"sheet_key": self.key},
            )
            return None

        if record is None:
            logger.debug("Shared store has no record", extra={"sheet_key": self.key})
            return None

        if now - record.timestamp >= self.refresh_interval_s:
            logger.debug(
                f"Shared store record expired ({now - record.timestamp}s old)",
                extra={"sheet_key": self.key, "timestamp": record.timestamp},
            )
            return None

        if record.timestamp <= self.values.last_updated:
            return RefreshResult(RefreshStatus.UP_TO_DATE, "local values at least as new as store")

        if not self._is_alive():
            return RefreshResult(RefreshStatus.DESTROYED, "manager destroyed during store read")

        self.values.apply_document(record.csv, record.timestamp, UpdateSource.SHARED_STORE)
        return RefreshResult(RefreshStatus.STORE_APPLIED, f"store record @ {record.timestamp}")

    async def _fetch(self) -> FetchResult:
        try:
            return await self.fetcher.fetch(self.document_id, self.sub_document_id)
        except Exception as e:
            logger.error(f"Remote fetch raised: {e}", exc_info=True, extra={"sheet_key": self.key})
            return FetchResult(body="", success=False, status=str(e))

    async def _refresh_from_remote(self, now: int) -> RefreshResult:
        """Fetch, apply, write back and broadcast"""
        self.remote_fetch_count += 1
        fetched = await self._fetch()

        if not fetched.success:
            return RefreshResult(RefreshStatus.FAILED, f"remote fetch failed: {fetched.status}")

        if not self._is_alive():
            return RefreshResult(RefreshStatus.DESTROYED, "manager destroyed during fetch")

        self.values.apply_document(fetched.body, now, UpdateSource.REMOTE_API)

        newer: list[StoreRecord] = []

        def merge(existing: StoreRecord) -> StoreRecord:
            if existing.timestamp >= now:
                # Another process finished first; keep its record
                newer.append(existing)
                return existing
            return StoreRecord(timestamp=now, csv=fetched.body)

        try:
            await self.store.transact(self.key, merge)
        except Exception as e:
            logger.warning(
                f"Shared store write-back failed: {e}",
                extra={"sheet_key": self.key, "timestamp": now},
            )

        result = RefreshResult(RefreshStatus.REMOTE_APPLIED, f"fetched @ {now}")

        if newer and self._is_alive():
            record = newer[0]
            # The winner may share our timestamp, so accept an equal one
            self.values.apply_document(
                record.csv,
                record.timestamp,
                UpdateSource.SHARED_STORE_OVERRIDE,
                override=True,
            )
            adopted = (
                self.values.last_source == UpdateSource.SHARED_STORE_OVERRIDE
                and self.values.last_updated == record.timestamp
            )
            if adopted:
                result = RefreshResult(
                    RefreshStatus.STORE_OVERRIDE,
                    f"store already held record @ {record.timestamp}",
                )
                logger.info(
                    f"Lost write-back race, adopted store record @ {record.timestamp}",
                    extra={"sheet_key": self.key, "timestamp": record.timestamp},
                )

        try:
            await self.broadcast.publish(self.key, fetched.body)
        except Exception as e:
            logger.warning(f"Broadcast failed: {e}", extra={"sheet_key": self.key})

        return result
