"""
Sheet Manager

Public entry point: one SheetManager per (document, sheet) pair.

Usage:
    manager = await open_sheet("SPREAD_ID")
    if manager.get("FFlagPunishmentsDisabled", False):
        ...
    manager.subscribe("SpeedThreshold").connect(on_threshold_changed)
    ...
    await manager.destroy()

Only one process per refresh interval needs to call the remote API; the
others pick the values up from the shared store or the broadcast.
"""

import time
from types import MappingProxyType
from typing import Any, Callable

from ...common.config import DEFAULT_SUB_DOCUMENT_ID, SyncSettings
from ...common.logging_setup import get_service_logger
from ...common.scheduler import ScheduledLoop
from ...common.signals import Signal
from ...messaging.broadcast import Broadcast, MemoryBroadcast
from ...storage.shared_store import FileSharedStore, SharedStore
from .fetch import RemoteFetcher, SheetFetcher
from .listener import SheetListener
from .sync import RefreshResult, SheetSync, sheet_key
from .types import TypeRegistry
from .values import UpdateSource, ValueStore

logger = get_service_logger("sheets.manager")


class SheetManager:
    """
    Live values of one sheet, kept in sync with every other process.

    Collaborators default to an HTTP fetcher, a FileSharedStore under
    settings.store_dir and an in-process MemoryBroadcast.
    """

    def __init__(
        self,
        document_id: str,
        sub_document_id: str | None = None,
        *,
        fetcher: RemoteFetcher | None = None,
        store: SharedStore | None = None,
        broadcast: Broadcast | None = None,
        settings: SyncSettings | None = None,
        registry: TypeRegistry | None = None,
        clock: Callable[[], float] = time.time,
    ):
        if not isinstance(document_id, str) or not document_id:
            raise ValueError("Invalid document_id")

        self.document_id = document_id
        self.sub_document_id = sub_document_id or DEFAULT_SUB_DOCUMENT_ID
        self.settings = settings or SyncSettings()
        self.key = sheet_key(self.document_id, self.sub_document_id)

        self.fetcher = fetcher or SheetFetcher(
            url_template=self.settings.export_url_template,
            timeout=self.settings.request_timeout_s,
        )
        self.store = store or FileSharedStore(self.settings.store_dir)
        self.broadcast = broadcast or MemoryBroadcast()

        self._alive = True
        self._started = False

        self._values = ValueStore(self.key, registry)
        self._sync = SheetSync(
            self.document_id,
            self.sub_document_id,
            self._values,
            self.fetcher,
            self.store,
            self.broadcast,
            refresh_interval_s=self.settings.refresh_interval_s,
            clock=clock,
            is_alive=lambda: self._alive,
        )
        self._listener = SheetListener(
            self.key,
            self._values,
            self.broadcast,
            is_alive=lambda: self._alive,
        )
        self._scheduler = ScheduledLoop(
            self.settings.refresh_interval_s,
            self._scheduled_refresh,
            name=f"sheet:{self.key[:8]}",
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> RefreshResult:
        """Subscribe to peers, run the initial refresh, start the schedule"""
        if self._started:
            return await self.refresh_now()
        self._started = True

        if not await self._listener.start():
            logger.info(
                f"Sheet {self.document_id}/{self.sub_document_id} running polling-only",
                extra={"sheet_key": self.key},
            )

        result = await self.refresh_now()

        if self._alive:
            await self._scheduler.start()

        logger.info(
            f"Sheet manager started for {self.document_id}/{self.sub_document_id} "
            f"({result.status.value})",
            extra={"sheet_key": self.key, "status": result.status.value},
        )
        return result

    async def _scheduled_refresh(self) -> None:
        if not self._alive:
            self._scheduler.stop()
            return
        await self._sync.refresh()

    async def destroy(self) -> None:
        """Stop refreshing, unsubscribe and release all observers"""
        if not self._alive:
            return
        self._alive = False

        self._scheduler.stop()
        await self._listener.stop()
        self._values.destroy()

        # A tick already past its sleep runs to completion; its alive
        # checks keep it from touching the released values
        await self._scheduler.wait_stopped()

        logger.info(
            f"Sheet manager destroyed for {self.document_id}/{self.sub_document_id}",
            extra={"sheet_key": self.key},
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def refresh_now(self) -> RefreshResult:
        """Run a refresh cycle immediately (normally done automatically)"""
        return await self._sync.refresh()

    def get(self, name: str, default: Any = None) -> Any:
        """Value for name, or default if the sheet has no such value"""
        return self._values.get(name, default)

    def subscribe(self, name: str) -> Signal:
        """Signal fired with (new_value, old_value) when name changes"""
        return self._values.on_change(name)

    def subscribe_any(self) -> Signal:
        """Signal fired with the full values mapping when anything changes"""
        return self._values.on_any_change()

    @property
    def values(self) -> MappingProxyType:
        return self._values.values

    @property
    def last_updated_at(self) -> int:
        return self._values.last_updated

    @property
    def last_source(self) -> UpdateSource | None:
        return self._values.last_source

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def listening(self) -> bool:
        return self._listener.active

    def get_stats(self) -> dict:
        """Sync statistics for health reporting"""
        last_result = self._sync.last_result
        return {
            "document_id": self.document_id,
            "sub_document_id": self.sub_document_id,
            "key": self.key,
            "alive": self._alive,
            "value_count": len(self._values.values),
            "last_updated_at": self.last_updated_at,
            "last_source": self.last_source.value if self.last_source else None,
            "last_status": last_result.status.value if last_result else None,
            "remote_fetch_count": self._sync.remote_fetch_count,
            "failure_count": self._sync.failure_count,
            "listening": self._listener.active,
            "broadcasts_received": self._listener.received_count,
            "broadcasts_applied": self._listener.applied_count,
            "scheduler": self._scheduler.get_stats(),
        }


async def open_sheet(
    document_id: str,
    sub_document_id: str | None = None,
    **kwargs: Any,
) -> SheetManager:
    """Create a SheetManager and start it"""
    manager = SheetManager(document_id, sub_document_id, **kwargs)
    await manager.start()
    return manager
