"""Signup state machine for in-house rosters.

Every transition runs inside the store gate so that loading a channel from the
persisted store, mutating it and scheduling the write-back never interleave
with another operation. The in-memory mutation itself is synchronous once the
state is loaded; writes triggered by join/cancel/lane changes happen in a
background task that can be awaited through :class:`SyncResult`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Literal

from .errors import StoreError
from .gate import StoreGate
from .models import Lane, LaneGrid, Mode, RosterPolicy, RosterRepository, RosterState
from .storage import RosterStore

log = logging.getLogger(__name__)

JoinStatus = Literal["joined", "waitlisted", "lane_full", "already_joined", "full"]
CancelStatus = Literal["cancelled", "not_found"]
LaneStatus = Literal[
    "lane_changed",
    "lane_cleared",
    "no_change",
    "lane_full",
    "not_participant",
    "lanes_disabled",
]
ModeStatus = Literal["switched", "already_in_mode"]

StoreErrorHandler = Callable[[StoreError], Awaitable[None]]


class SyncResult:
    """Handle on a background write of a channel roster to the store."""

    def __init__(self, task: asyncio.Task[bool] | None = None) -> None:
        self._task = task

    @property
    def scheduled(self) -> bool:
        return self._task is not None

    async def wait(self) -> bool:
        """Return True once the write succeeded (or nothing needed writing)."""
        if self._task is None:
            return True
        return await asyncio.shield(self._task)


@dataclass(slots=True)
class JoinOutcome:
    status: JoinStatus
    lane: Lane | None = None
    sync: SyncResult = field(default_factory=SyncResult)


@dataclass(slots=True)
class CancelOutcome:
    status: CancelStatus
    promoted: str | None = None
    sync: SyncResult = field(default_factory=SyncResult)


@dataclass(slots=True)
class LaneOutcome:
    status: LaneStatus
    lane: Lane | None = None
    sync: SyncResult = field(default_factory=SyncResult)


def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


class RosterEngine:
    def __init__(
        self,
        repository: RosterRepository,
        store: RosterStore,
        gate: StoreGate,
        *,
        today: Callable[[], date] | None = None,
        on_store_error: StoreErrorHandler | None = None,
    ) -> None:
        self.repository = repository
        self.policy: RosterPolicy = repository.policy
        self._store = store
        self._gate = gate
        self._today = today or date.today
        self._on_store_error = on_store_error
        self._last_manual_recruit: str | None = None
        self._background: set[asyncio.Task] = set()

    # ----- helpers -----
    def today_string(self) -> str:
        return self._today().isoformat()

    def snapshot(self, channel_id: int) -> RosterState:
        return self.repository.get(channel_id)

    def set_active_message(self, channel_id: int, message_id: int | None) -> int | None:
        """Record the current signup message and return the one it replaces."""
        state = self.repository.get(channel_id)
        previous = state.active_message_id
        state.active_message_id = message_id
        return previous

    def _track(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for every pending write-back and failure report."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _report(self, exc: StoreError) -> None:
        log.error("Roster store %s failed on %s: %s", exc.operation, exc.range_name, exc)
        if self._on_store_error is not None:
            self._track(self._safe_report(exc))

    async def _safe_report(self, exc: StoreError) -> None:
        try:
            await self._on_store_error(exc)  # type: ignore[misc]
        except Exception:  # pylint: disable=broad-except
            log.exception("Store failure reporter raised")

    # ----- store round-trips (gate must be held) -----
    async def _load_locked(self, state: RosterState) -> bool:
        layout = self._store.layout
        try:
            if state.loaded:
                mode = state.mode
                participants = await self._store.read_list(
                    layout.participant_range(mode)
                )
            else:
                ten = await self._store.read_list(layout.ten_list)
                twenty = await self._store.read_list(layout.twenty_list)
                mode = Mode.TWENTY if twenty and not ten else Mode.TEN
                participants = ten if mode is Mode.TEN else twenty
            lanes = None
            if self.policy.lanes_enabled:
                rows = await self._store.read_grid(layout.lane_range(mode))
                lanes = LaneGrid.from_rows(rows, mode)
        except StoreError as exc:
            self._report(exc)
            if not state.loaded:
                state.loaded = True
            return False

        participants = _dedupe(participants)[: mode.capacity]
        state.mode = mode
        state.participants = participants
        state.waitlist = [actor for actor in state.waitlist if actor not in participants]
        if lanes is not None:
            lanes.retain(participants)
        state.lanes = lanes
        state.loaded = True
        log.debug(
            "Loaded channel %s: mode=%s participants=%d",
            state.channel_id,
            mode.value,
            len(participants),
        )
        return True

    async def _ensure_loaded(self, state: RosterState) -> None:
        if not state.loaded:
            await self._load_locked(state)

    async def _write_locked(self, state: RosterState) -> None:
        layout = self._store.layout
        await self._store.write_list(
            layout.participant_range(state.mode), state.participants
        )
        if self.policy.lanes_enabled and state.lanes is not None:
            await self._store.write_grid(
                layout.lane_range(state.mode), state.lanes.to_rows()
            )

    def _schedule_sync(self, state: RosterState) -> SyncResult:
        state.dirty = True
        return SyncResult(self._track(self._sync(state.channel_id)))

    async def _sync(self, channel_id: int) -> bool:
        async with self._gate.held("sync"):
            state = self.repository.get(channel_id)
            try:
                await self._write_locked(state)
            except StoreError as exc:
                self._report(exc)
                return False
            state.dirty = False
            return True

    async def _clear_daily_ranges(self, state: RosterState) -> None:
        failures = await self._store.clear_ranges(self._store.layout.daily_ranges())
        for exc in failures:
            self._report(exc)
        state.dirty = bool(failures)

    def _lanes(self, state: RosterState) -> LaneGrid:
        if state.lanes is None or state.lanes.slots_per_lane != state.mode.lane_slots:
            state.lanes = LaneGrid.empty(state.mode)
        return state.lanes

    # ----- public loading -----
    async def ensure_loaded(self, channel_id: int) -> RosterState:
        async with self._gate.held("ensure_loaded"):
            state = self.repository.get(channel_id)
            await self._ensure_loaded(state)
            return state

    async def reload(self, channel_id: int) -> bool:
        """Re-read the channel from the store unless unsynced changes exist."""
        async with self._gate.held("reload"):
            state = self.repository.get(channel_id)
            if state.dirty:
                log.info(
                    "Skipping reload of channel %s: unsynced roster changes", channel_id
                )
                return False
            return await self._load_locked(state)

    # ----- transitions -----
    async def join(
        self, channel_id: int, actor: str, lane: Lane | None = None
    ) -> JoinOutcome:
        async with self._gate.held("join"):
            state = self.repository.get(channel_id)
            await self._ensure_loaded(state)
            outcome = self._apply_join(state, actor, lane)
            if outcome.status in ("joined", "waitlisted"):
                outcome.sync = self._schedule_sync(state)
            return outcome

    def _apply_join(self, state: RosterState, actor: str, lane: Lane | None) -> JoinOutcome:
        if state.contains(actor):
            return JoinOutcome("already_joined")
        if not state.is_full:
            if lane is not None and self.policy.lanes_enabled:
                if not self._lanes(state).place(actor, lane):
                    return JoinOutcome("lane_full", lane)
                state.participants.append(actor)
                return JoinOutcome("joined", lane)
            state.participants.append(actor)
            return JoinOutcome("joined")
        if state.mode is Mode.TEN or self.policy.twenty_waitlist:
            state.waitlist.append(actor)
            return JoinOutcome("waitlisted")
        return JoinOutcome("full")

    async def cancel(self, channel_id: int, actor: str) -> CancelOutcome:
        async with self._gate.held("cancel"):
            state = self.repository.get(channel_id)
            await self._ensure_loaded(state)
            outcome = self._apply_cancel(state, actor)
            if outcome.status == "cancelled":
                outcome.sync = self._schedule_sync(state)
            return outcome

    def _apply_cancel(self, state: RosterState, actor: str) -> CancelOutcome:
        was_participant = actor in state.participants
        was_waiting = actor in state.waitlist
        if not was_participant and not was_waiting:
            return CancelOutcome("not_found")

        if was_participant:
            state.participants.remove(actor)
        if was_waiting:
            state.waitlist.remove(actor)
        if state.lanes is not None:
            state.lanes.remove(actor)

        promoted = None
        if was_participant and state.waitlist and not state.is_full:
            promoted = state.waitlist.pop(0)
            state.participants.append(promoted)
        return CancelOutcome("cancelled", promoted)

    async def change_lane(
        self, channel_id: int, actor: str, lane: Lane | None
    ) -> LaneOutcome:
        if not self.policy.lanes_enabled:
            return LaneOutcome("lanes_disabled")
        async with self._gate.held("change_lane"):
            state = self.repository.get(channel_id)
            await self._ensure_loaded(state)
            outcome = self._apply_change_lane(state, actor, lane)
            if outcome.status in ("lane_changed", "lane_cleared"):
                outcome.sync = self._schedule_sync(state)
            return outcome

    def _apply_change_lane(
        self, state: RosterState, actor: str, lane: Lane | None
    ) -> LaneOutcome:
        if actor not in state.participants:
            return LaneOutcome("not_participant")
        grid = self._lanes(state)
        current = grid.lane_of(actor)
        if lane is None:
            if current is None:
                return LaneOutcome("no_change")
            grid.remove(actor)
            return LaneOutcome("lane_cleared", current)
        if current is lane:
            return LaneOutcome("no_change", lane)
        if grid.free_slot(lane) is None:
            return LaneOutcome("lane_full", lane)
        grid.remove(actor)
        grid.place(actor, lane)
        return LaneOutcome("lane_changed", lane)

    async def switch_mode(self, channel_id: int, target: Mode) -> ModeStatus:
        async with self._gate.held("switch_mode"):
            state = self.repository.get(channel_id)
            await self._ensure_loaded(state)
            if state.mode is target:
                return "already_in_mode"

            previous = state.mode
            roster = state.participants + state.waitlist
            participants = roster[: target.capacity]
            overflow = roster[target.capacity :]
            if target is Mode.TWENTY and not self.policy.twenty_waitlist:
                overflow = []

            state.mode = target
            state.participants = participants
            state.waitlist = overflow
            state.lanes = LaneGrid.empty(target) if self.policy.lanes_enabled else None
            state.header = None
            state.dirty = True
            log.info(
                "Channel %s switched from %s to %s mode",
                channel_id,
                previous.value,
                target.value,
            )

            layout = self._store.layout
            try:
                await self._store.clear_range(layout.participant_range(previous))
                await self._store.write_list(layout.participant_range(target), participants)
                if state.lanes is not None:
                    await self._store.clear_range(layout.lane_range(previous))
                    await self._store.write_grid(
                        layout.lane_range(target), state.lanes.to_rows()
                    )
            except StoreError as exc:
                self._report(exc)
            else:
                state.dirty = False
            return "switched"

    async def reset(self, channel_id: int, *, operation: str = "reset") -> RosterState:
        async with self._gate.held(operation):
            state = self.repository.get(channel_id)
            state.clear_roster(lanes_enabled=self.policy.lanes_enabled)
            state.loaded = True
            await self._clear_daily_ranges(state)
            log.info("Roster for channel %s cleared (%s)", channel_id, operation)
            return state

    async def daily_reset(self, channel_id: int) -> RosterState:
        state = await self.reset(channel_id, operation="daily_reset")
        state.quiet_refresh = True
        return state

    async def start_recruitment(
        self, channel_id: int, header: str | None = None
    ) -> RosterState:
        """Begin a manual signup cycle and remember today's date."""
        today = self.today_string()
        layout = self._store.layout
        async with self._gate.held("start_recruitment"):
            state = self.repository.get(channel_id)
            if state.dirty:
                log.info(
                    "Keeping in-memory roster for channel %s: unsynced changes",
                    channel_id,
                )
            else:
                await self._load_locked(state)
            state.header = header
            state.quiet_refresh = False
            if self.policy.lanes_enabled:
                state.lanes = LaneGrid.empty(state.mode)
                try:
                    await self._store.write_grid(
                        layout.lane_range(state.mode), state.lanes.to_rows()
                    )
                except StoreError as exc:
                    self._report(exc)
            try:
                await self._store.write_marker(layout.last_manual_recruit, today)
            except StoreError as exc:
                self._report(exc)
            self._last_manual_recruit = today
            return state

    async def daily_auto_recruit(self, channel_id: int) -> bool:
        """Start the scheduled cycle unless a manual one already ran today.

        Returns True when a fresh signup display should be published.
        """
        today = self.today_string()
        async with self._gate.held("daily_auto_recruit"):
            try:
                marker = await self._store.read_marker(
                    self._store.layout.last_manual_recruit
                )
            except StoreError as exc:
                self._report(exc)
                marker = None
            if marker:
                self._last_manual_recruit = marker
            if self._last_manual_recruit == today:
                log.info("Manual recruitment already ran today; skipping auto-recruit")
                return False

            state = self.repository.get(channel_id)
            state.mode = Mode.TEN
            state.clear_roster(lanes_enabled=self.policy.lanes_enabled)
            state.header = None
            state.quiet_refresh = False
            state.loaded = True
            await self._clear_daily_ranges(state)
            return True


__all__ = [
    "CancelOutcome",
    "CancelStatus",
    "JoinOutcome",
    "JoinStatus",
    "LaneOutcome",
    "LaneStatus",
    "ModeStatus",
    "RosterEngine",
    "SyncResult",
]
