"""
Change Signals

Minimal observer registration used for value change notifications.
Handlers are plain callables or coroutine functions; a coroutine
handler is scheduled on the running event loop. A failing handler is
logged and does not stop delivery to the others.
"""

import asyncio
import inspect
import threading
from typing import Any, Callable

from .logging_setup import get_service_logger

logger = get_service_logger("signals")

Handler = Callable[..., Any]


class Connection:
    """Handle returned by Signal.connect(), used to disconnect one handler"""

    def __init__(self, signal: "Signal", handler: Handler):
        self._signal = signal
        self._handler = handler
        self.connected = True

    def disconnect(self) -> None:
        if self.connected:
            self._signal._remove(self._handler)
            self.connected = False


class Signal:
    """
    Fire-and-forget notification channel with any number of handlers.

    Usage:
        signal = Signal("Health")
        conn = signal.connect(lambda new, old: print(new, old))
        signal.fire(100, None)
        conn.disconnect()
    """

    def __init__(self, name: str = ""):
        self.name = name
        self._handlers: list[Handler] = []
        self._lock = threading.Lock()
        self._destroyed = False
        # Coroutine handlers still running; held so they are not collected
        self._pending: set[asyncio.Future] = set()

    def connect(self, handler: Handler) -> Connection:
        """Register a handler. Raises RuntimeError once the signal is destroyed."""
        with self._lock:
            if self._destroyed:
                raise RuntimeError(f"Signal '{self.name}' has been destroyed")
            self._handlers.append(handler)
        return Connection(self, handler)

    def _remove(self, handler: Handler) -> None:
        with self._lock:
            try:
                self._handlers.remove(handler)
            except ValueError:
                pass

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def fire(self, *args: Any) -> None:
        """Call every handler with args; handler errors are logged."""
        with self._lock:
            handlers = list(self._handlers)

        for handler in handlers:
            try:
                result = handler(*args)
            except Exception as e:
                logger.error(f"Handler for signal '{self.name}' failed: {e}", exc_info=True)
                continue

            if inspect.isawaitable(result):
                self._schedule(result)

    def _schedule(self, awaitable) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.error(f"Async handler for signal '{self.name}' fired outside an event loop, dropped")
            return

        future = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(future)
        future.add_done_callback(self._handler_done)

    def _handler_done(self, future: asyncio.Future) -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(
                f"Async handler for signal '{self.name}' failed: {error}",
                exc_info=(type(error), error, error.__traceback__),
            )

    def destroy(self) -> None:
        """Release all handlers; later connects are rejected."""
        with self._lock:
            self._handlers.clear()
            self._destroyed = True
