"""
app/core/request_dedup.py — In-flight request deduplication
Concurrent callers asking for the same key share one upstream call.
The entry lives only while the call is in flight: success, failure and
cancellation all remove it, so nothing is cached afterwards.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


class InflightDeduplicator:
    """
    Map of key → running asyncio.Task.
    Runs on a single event loop; the lookup and registration below contain
    no await, so two callers can never both miss for the same key.
    """

    def __init__(self, name: str = "dedup") -> None:
        self.name = name
        self._pending: dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def in_flight(self, key: str) -> bool:
        return key in self._pending

    async def get_or_create(
        self,
        key: str,
        factory: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Await the in-flight task for `key`, starting one from `factory` if none.
        The shared task is shielded: a cancelled waiter does not cancel it for
        the other waiters.
        """
        task = self._pending.get(key)
        if task is not None:
            logger.debug(f"[{self.name}] Joining in-flight request for {key!r}.")
        else:
            task = asyncio.ensure_future(factory())
            self._pending[key] = task
            task.add_done_callback(lambda t, k=key: self._settle(k, t))
            logger.debug(f"[{self.name}] Started request for {key!r}.")
        return await asyncio.shield(task)

    def _settle(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
        # Mark the outcome as retrieved even when every waiter has gone away
        if not task.cancelled():
            task.exception()
