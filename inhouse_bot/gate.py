"""Process-wide mutual exclusion for roster store round-trips."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

log = logging.getLogger(__name__)


class StoreGate:
    """FIFO async mutex guarding read-modify-write sequences against the store.

    Waiters are served in arrival order. The lock is released on every exit
    path of :meth:`held`, including cancellation and raised errors.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._holder: str | None = None

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @property
    def holder(self) -> str | None:
        return self._holder

    async def acquire(self, operation: str = "anonymous") -> None:
        await self._lock.acquire()
        self._holder = operation
        log.debug("Store gate acquired by %s", operation)

    def release(self) -> None:
        log.debug("Store gate released by %s", self._holder)
        self._holder = None
        self._lock.release()

    @asynccontextmanager
    async def held(self, operation: str = "anonymous") -> AsyncIterator[None]:
        await self.acquire(operation)
        try:
            yield
        finally:
            self.release()


__all__ = ["StoreGate"]
