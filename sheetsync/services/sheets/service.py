"""
Sheet Service - hosts sheet managers in a long-running process

Responsible for:
- Loading the sheet list and sync settings from YAML
- Running one SheetManager per configured sheet
- Exposing health, manual sync and current values over HTTP
- Receiving peer broadcasts (POST /broadcast)
"""

import asyncio
import os
import signal
from datetime import datetime, timezone
from pathlib import Path

from aiohttp import web

from ...common.config import ServiceConfig, load_config
from ...common.logging_setup import get_service_logger
from ...messaging.broadcast import Broadcast, HttpBroadcast
from ...storage.shared_store import FileSharedStore, SharedStore
from .fetch import RemoteFetcher, SheetFetcher
from .manager import SheetManager
from .types import to_jsonable

logger = get_service_logger("sheets.service")


class SheetService:
    """
    Sheet Service

    All managers share one fetcher, one shared store and one broadcast
    channel.
    """

    def __init__(
        self,
        config_path: str | None = None,
        config: ServiceConfig | None = None,
        *,
        fetcher: RemoteFetcher | None = None,
        store: SharedStore | None = None,
        broadcast: Broadcast | None = None,
    ):
        self.config_path = config_path or self._find_config_path()
        self.config = config or load_config(self.config_path)
        settings = self.config.settings

        self.fetcher = fetcher or SheetFetcher(
            url_template=settings.export_url_template,
            timeout=settings.request_timeout_s,
        )
        self.store = store or FileSharedStore(settings.store_dir)
        self.broadcast = broadcast or HttpBroadcast(
            settings.broadcast_peers,
            timeout=settings.request_timeout_s,
        )

        self.managers: dict[str, SheetManager] = {}
        self._start_time = datetime.now(timezone.utc)

        # Health server
        self._health_runner: web.AppRunner | None = None

        # State
        self._running = False
        self._shutdown_event = asyncio.Event()

    def _find_config_path(self) -> str:
        """Find configuration file"""
        possible_paths = [
            os.environ.get("SHEETSYNC_CONFIG", ""),
            "/etc/sheetsync/config.yaml",
            Path.cwd() / "config.yaml",
        ]

        for path in possible_paths:
            if path and Path(path).exists():
                return str(path)

        return "/etc/sheetsync/config.yaml"

    def create_app(self) -> web.Application:
        """Build the aiohttp application with all routes"""
        app = web.Application()
        app.router.add_get("/health", self._health_handler)
        app.router.add_post("/sync", self._sync_handler)
        app.router.add_get("/values/{key}", self._values_handler)
        if isinstance(self.broadcast, HttpBroadcast):
            app.router.add_post("/broadcast", self.broadcast.handle_request)
        return app

    async def start_managers(self) -> None:
        """Create and start one manager per configured sheet"""
        for sheet in self.config.sheets:
            manager = SheetManager(
                sheet.document_id,
                sheet.sub_document_id,
                fetcher=self.fetcher,
                store=self.store,
                broadcast=self.broadcast,
                settings=self.config.settings,
            )
            if manager.key in self.managers:
                logger.warning(f"Duplicate sheet entry ignored: {sheet.document_id}/{sheet.sub_document_id}")
                continue

            self.managers[manager.key] = manager
            await manager.start()

    async def stop_managers(self) -> None:
        for manager in self.managers.values():
            await manager.destroy()

    async def start(self) -> None:
        """Start the service and block until a shutdown signal"""
        logger.info("Starting Sheet Service")

        self._running = True

        # Start the HTTP server first so peers can reach us during the
        # initial refresh
        await self._start_health_server()
        await self.start_managers()

        logger.info(
            f"Sheet Service started ({len(self.managers)} sheet(s))",
            extra={"sheet_count": len(self.managers)},
        )

        self._setup_signal_handlers()

        await self._shutdown_event.wait()

    async def stop(self) -> None:
        """Stop the service"""
        logger.info("Stopping Sheet Service")

        self._running = False

        await self.stop_managers()
        await self._stop_health_server()

        for client in (self.fetcher, self.broadcast):
            close = getattr(client, "close", None)
            if close is not None:
                await close()

        logger.info("Sheet Service stopped")

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown signal handlers"""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f: self._handle_shutdown())

    def _handle_shutdown(self) -> None:
        """Handle shutdown signal"""
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    async def _start_health_server(self) -> None:
        """Start the health check HTTP server"""
        settings = self.config.settings

        self._health_runner = web.AppRunner(self.create_app())
        await self._health_runner.setup()

        site = web.TCPSite(self._health_runner, settings.health_host, settings.health_port)
        await site.start()

        logger.info(f"Health server started on {settings.health_host}:{settings.health_port}")

    async def _stop_health_server(self) -> None:
        """Stop the health check HTTP server"""
        if self._health_runner:
            await self._health_runner.cleanup()
            self._health_runner = None

    async def _health_handler(self, request: web.Request) -> web.Response:
        """Handle health check requests"""
        uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()
        sheets = [manager.get_stats() for manager in self.managers.values()]

        return web.json_response({
            "status": "healthy" if all(s["last_updated_at"] for s in sheets) else "degraded",
            "service": "sheets",
            "uptime": int(uptime),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "sheets": sheets,
        })

    async def _sync_handler(self, request: web.Request) -> web.Response:
        """Handle force sync requests"""
        results = {}
        for key, manager in self.managers.items():
            result = await manager.refresh_now()
            results[key] = {"status": result.status.value, "detail": result.detail}

        return web.json_response({
            "success": all(r["status"] != "failed" for r in results.values()),
            "results": results,
        })

    async def _values_handler(self, request: web.Request) -> web.Response:
        """Return the current values of one sheet"""
        manager = self.managers.get(request.match_info["key"])
        if manager is None:
            return web.json_response({"error": "unknown sheet"}, status=404)

        return web.json_response({
            "key": manager.key,
            "last_updated_at": manager.last_updated_at,
            "last_source": manager.last_source.value if manager.last_source else None,
            "values": {name: to_jsonable(value) for name, value in manager.values.items()},
        })


async def main() -> None:
    """Main entry point"""
    service = SheetService()

    try:
        await service.start()
    finally:
        await service.stop()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
