"""Coalesces bursts of signup-display refreshes per channel."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from enum import Enum

from .errors import RenderError

log = logging.getLogger(__name__)

FOLLOWUP_DELAY_SECONDS = 0.05


class UpdateState(Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    IN_FLIGHT_QUEUED = "in_flight_queued"


class UpdateDispatcher:
    """Runs at most one refresh per key, collapsing extra requests into one follow-up.

    The refresh callback re-reads the current roster each time it runs, so the
    follow-up always renders the latest state rather than a stale payload.
    """

    def __init__(
        self,
        refresh: Callable[[Hashable], Awaitable[None]],
        *,
        followup_delay: float = FOLLOWUP_DELAY_SECONDS,
    ) -> None:
        self._refresh = refresh
        self._followup_delay = followup_delay
        self._states: dict[Hashable, UpdateState] = {}
        self._tasks: dict[Hashable, asyncio.Task] = {}

    def state(self, key: Hashable) -> UpdateState:
        return self._states.get(key, UpdateState.IDLE)

    def request_update(self, key: Hashable) -> asyncio.Task:
        """Start a refresh for ``key`` or queue a single follow-up behind the running one."""
        current = self.state(key)
        if current is not UpdateState.IDLE:
            self._states[key] = UpdateState.IN_FLIGHT_QUEUED
            return self._tasks[key]

        self._states[key] = UpdateState.IN_FLIGHT
        task = asyncio.create_task(self._run(key))
        self._tasks[key] = task
        return task

    async def wait_idle(self, key: Hashable) -> None:
        task = self._tasks.get(key)
        if task is not None:
            await asyncio.shield(task)

    async def _run(self, key: Hashable) -> None:
        try:
            while True:
                await self._refresh_once(key)
                if self._states.get(key) is UpdateState.IN_FLIGHT_QUEUED:
                    self._states[key] = UpdateState.IN_FLIGHT
                    await asyncio.sleep(self._followup_delay)
                    continue
                return
        finally:
            self._states.pop(key, None)
            self._tasks.pop(key, None)

    async def _refresh_once(self, key: Hashable) -> None:
        try:
            await self._refresh(key)
        except RenderError as exc:
            log.warning("Signup display for %s not updated: %s", key, exc)
        except Exception:  # pylint: disable=broad-except
            log.exception("Unexpected error refreshing signup display for %s", key)


__all__ = ["FOLLOWUP_DELAY_SECONDS", "UpdateDispatcher", "UpdateState"]
