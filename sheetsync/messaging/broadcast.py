"""
Broadcast Channel

Best-effort topic publish/subscribe used to push a freshly fetched sheet
to peer processes without a store read.

Handlers are async callables taking (body, sent) where sent is the
publisher's Unix time in seconds (float).

Two implementations:
- MemoryBroadcast: in-process hub
- HttpBroadcast: POSTs each message to configured peer URLs; peers
  receive it through the aiohttp route returned by handle_request
"""

import asyncio
import time
from typing import Awaitable, Callable, Protocol

import httpx
from aiohttp import web

from ..common.exceptions import BroadcastError
from ..common.logging_setup import get_service_logger

logger = get_service_logger("messaging")

MessageHandler = Callable[[str, float], Awaitable[None]]


class Subscription(Protocol):
    async def unsubscribe(self) -> None:
        ...


class Broadcast(Protocol):
    """Interface the sync coordinator and listener rely on"""

    async def publish(self, topic: str, body: str) -> None:
        """Send body to every subscriber of topic. Raises BroadcastError."""
        ...

    async def subscribe(self, topic: str, handler: MessageHandler) -> Subscription:
        """Register handler for topic. Raises BroadcastError."""
        ...


class TopicSubscription:
    """Handle for one local handler registration"""

    def __init__(self, hub: "_TopicHub", topic: str, handler: MessageHandler):
        self._hub = hub
        self.topic = topic
        self.handler = handler
        self.active = True

    async def unsubscribe(self) -> None:
        if self.active:
            self._hub._remove(self.topic, self.handler)
            self.active = False


class _TopicHub:
    """Local topic -> handlers registry shared by both implementations"""

    def __init__(self) -> None:
        self._handlers: dict[str, list[MessageHandler]] = {}

    async def subscribe(self, topic: str, handler: MessageHandler) -> TopicSubscription:
        if topic not in self._handlers:
            self._handlers[topic] = []
        self._handlers[topic].append(handler)
        return TopicSubscription(self, topic, handler)

    def _remove(self, topic: str, handler: MessageHandler) -> None:
        handlers = self._handlers.get(topic)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            pass
        if not handlers:
            del self._handlers[topic]

    def subscriber_count(self, topic: str) -> int:
        return len(self._handlers.get(topic, []))

    async def deliver(self, topic: str, body: str, sent: float) -> int:
        """
        Call every local handler for topic.

        Returns:
            Number of handlers that completed without error
        """
        delivered = 0
        for handler in list(self._handlers.get(topic, [])):
            try:
                await handler(body, sent)
                delivered += 1
            except Exception as e:
                logger.error(
                    f"Broadcast handler for {topic[:8]} failed: {e}",
                    exc_info=True,
                    extra={"topic": topic},
                )
        return delivered


class MemoryBroadcast(_TopicHub):
    """In-process broadcast hub"""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        super().__init__()
        self._clock = clock

    async def publish(self, topic: str, body: str) -> None:
        await self.deliver(topic, body, self._clock())


class HttpBroadcast(_TopicHub):
    """
    Broadcast over plain HTTP between a fixed set of peers.

    publish() POSTs {"topic", "body", "sent"} to <peer>/broadcast for
    every configured peer. Inbound messages are delivered to local
    subscribers by handle_request, mounted as POST /broadcast on the
    host's aiohttp application.
    """

    def __init__(
        self,
        peers: list[str],
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__()
        self.peers = [p.rstrip("/") for p in peers]
        self.timeout = timeout
        self._clock = clock
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create reusable HTTP client"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close HTTP client"""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _post(self, client: httpx.AsyncClient, peer: str, payload: dict) -> None:
        response = await client.post(f"{peer}/broadcast", json=payload)
        response.raise_for_status()

    async def publish(self, topic: str, body: str) -> None:
        if not self.peers:
            return

        payload = {"topic": topic, "body": body, "sent": self._clock()}
        client = await self._get_client()

        results = await asyncio.gather(
            *(self._post(client, peer, payload) for peer in self.peers),
            return_exceptions=True,
        )

        failures = [
            (peer, result)
            for peer, result in zip(self.peers, results)
            if isinstance(result, Exception)
        ]
        for peer, error in failures:
            logger.warning(
                f"Broadcast to {peer} failed: {error}",
                extra={"topic": topic, "peer": peer},
            )

        if len(failures) == len(self.peers):
            raise BroadcastError(f"All {len(self.peers)} peers unreachable", topic=topic)

    async def handle_request(self, request: web.Request) -> web.Response:
        """aiohttp handler for inbound broadcast messages"""
        try:
            payload = await request.json()
        except ValueError:
            return web.json_response({"error": "invalid JSON"}, status=400)

        topic = payload.get("topic") if isinstance(payload, dict) else None
        body = payload.get("body") if isinstance(payload, dict) else None
        sent = payload.get("sent") if isinstance(payload, dict) else None

        if (
            not isinstance(topic, str)
            or not isinstance(body, str)
            or not isinstance(sent, (int, float))
            or isinstance(sent, bool)
        ):
            return web.json_response({"error": "expected topic, body and sent"}, status=400)

        delivered = await self.deliver(topic, body, float(sent))
        return web.json_response({"delivered": delivered})
