"""
Pytest configuration and fixtures for sheet sync tests.
"""

import asyncio

import pytest

from sheetsync.common.exceptions import BroadcastError, StoreError
from sheetsync.messaging.broadcast import MemoryBroadcast
from sheetsync.services.sheets.fetch import FetchResult
from sheetsync.storage.shared_store import MemorySharedStore

HEADER = '"Name","Type","Value"'

START_TIME = 1_700_000_000


def make_csv(*rows: tuple[str, str, str]) -> str:
    """Build an exported sheet document from (name, type, value) rows"""
    lines = [HEADER]
    lines.extend(f'"{name}","{type_tag}","{value}"' for name, type_tag, value in rows)
    return "\n".join(lines)


class FakeClock:
    """Settable Unix clock"""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFetcher:
    """Remote fetcher returning a canned document"""

    def __init__(self, body: str = "", success: bool = True, status: int | str = 200):
        self.body = body
        self.success = success
        self.status = status
        self.calls: list[tuple[str, str]] = []

    async def fetch(self, document_id: str, sub_document_id: str) -> FetchResult:
        self.calls.append((document_id, sub_document_id))
        if not self.success:
            return FetchResult(body="", success=False, status=self.status)
        return FetchResult(body=self.body, success=True, status=self.status)


class SlowFetcher(FakeFetcher):
    """Remote fetcher that takes `delay` seconds to answer"""

    def __init__(self, body: str = "", delay: float = 0.02):
        super().__init__(body)
        self.delay = delay

    async def fetch(self, document_id: str, sub_document_id: str) -> FetchResult:
        await asyncio.sleep(self.delay)
        return await super().fetch(document_id, sub_document_id)


class GatedFetcher(FakeFetcher):
    """Answers the first fetch at once, holds later ones until released"""

    def __init__(self, body: str = ""):
        super().__init__(body)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch(self, document_id: str, sub_document_id: str) -> FetchResult:
        if self.calls:
            self.entered.set()
            await self.release.wait()
        return await super().fetch(document_id, sub_document_id)


class RaisingFetcher:
    async def fetch(self, document_id: str, sub_document_id: str) -> FetchResult:
        raise RuntimeError("connection reset")


class FailingStore:
    """Shared store that is always unreachable"""

    def __init__(self):
        self.transact_calls = 0

    async def read(self, key):
        raise StoreError("unreachable", key=key)

    async def transact(self, key, update_fn):
        self.transact_calls += 1
        raise StoreError("unreachable", key=key)


class FailingBroadcast:
    """Broadcast channel that rejects every call"""

    async def publish(self, topic, body):
        raise BroadcastError("publish refused", topic=topic)

    async def subscribe(self, topic, handler):
        raise BroadcastError("subscribe refused", topic=topic)


class Recorder:
    """Collects broadcast messages or signal payloads"""

    def __init__(self):
        self.calls: list[tuple] = []

    def __call__(self, *args):
        self.calls.append(args)

    async def handler(self, *args):
        self.calls.append(args)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def shared_store():
    return MemorySharedStore()


@pytest.fixture
def broadcast(clock):
    return MemoryBroadcast(clock=clock)


@pytest.fixture
def health_csv():
    return make_csv(
        ("Health", "number", "100"),
        ("Enabled", "boolean", "true"),
    )
