"""New-token feed: fan-out of freshly discovered tokens to subscribers.

Subscribers are looked up at publish time, so a key removed by
`unsubscribe()` never sees a token published afterwards. Each delivery
runs as its own task: a slow or failing subscriber never delays the
others or the aggregator.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable

from loguru import logger

from snipebot.models.token import TokenRecord

TokenCallback = Callable[[TokenRecord], Awaitable[None]]


class TokenFeed:
    def __init__(self) -> None:
        self._subscribers: dict[Hashable, TokenCallback] = {}
        self._inflight: set[asyncio.Task] = set()

    def subscribe(self, key: Hashable, callback: TokenCallback) -> None:
        """Register (or replace) the single subscription held under `key`."""
        self._subscribers[key] = callback

    def unsubscribe(self, key: Hashable) -> bool:
        return self._subscribers.pop(key, None) is not None

    def is_subscribed(self, key: Hashable) -> bool:
        return key in self._subscribers

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, token: TokenRecord) -> list[asyncio.Task]:
        """Schedule delivery of `token` to every current subscriber."""
        tasks = []
        for key, callback in list(self._subscribers.items()):
            task = asyncio.create_task(self._deliver(key, callback, token), name=f"feed:{key}")
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            tasks.append(task)
        return tasks

    async def _deliver(self, key: Hashable, callback: TokenCallback, token: TokenRecord) -> None:
        try:
            await callback(token)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[FEED] Subscriber {key} failed on {token.address[:12]}: {e}")

    async def drain(self) -> None:
        """Wait for every in-flight delivery (used on shutdown and in tests)."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._inflight):
            task.cancel()
        await self.drain()
        self._subscribers.clear()
