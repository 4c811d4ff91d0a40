"""
Sheet Broadcast Listener

Applies sheet documents pushed by peers over the broadcast channel.
Messages not newer than the local values (duplicates, out-of-order
deliveries, our own publishes) are dropped.
"""

import math
from typing import Callable

from ...common.logging_setup import get_service_logger
from ...messaging.broadcast import Broadcast, Subscription
from .values import UpdateSource, ValueStore

logger = get_service_logger("sheets.listener")


class SheetListener:
    def __init__(
        self,
        key: str,
        values: ValueStore,
        broadcast: Broadcast,
        is_alive: Callable[[], bool] = lambda: True,
    ):
        self.key = key
        self.values = values
        self.broadcast = broadcast
        self._is_alive = is_alive
        self._subscription: Subscription | None = None

        self.received_count = 0
        self.applied_count = 0

    @property
    def active(self) -> bool:
        return self._subscription is not None

    async def start(self) -> bool:
        """
        Subscribe to the sheet's topic.

        Returns:
            False if subscribing failed (the sheet keeps polling only)
        """
        if self._subscription is not None:
            return True

        try:
            self._subscription = await self.broadcast.subscribe(self.key, self.on_message)
        except Exception as e:
            logger.warning(
                f"Broadcast subscribe failed, continuing polling-only: {e}",
                extra={"sheet_key": self.key},
            )
            return False

        return True

    async def on_message(self, body: str, sent: float) -> None:
        self.received_count += 1

        if not self._is_alive():
            return

        timestamp = math.floor(sent)
        if timestamp <= self.values.last_updated:
            return

        self.values.apply_document(body, timestamp, UpdateSource.BROADCAST)
        self.applied_count += 1

    async def stop(self) -> None:
        if self._subscription is None:
            return

        subscription, self._subscription = self._subscription, None
        try:
            await subscription.unsubscribe()
        except Exception as e:
            logger.warning(f"Broadcast unsubscribe failed: {e}", extra={"sheet_key": self.key})
