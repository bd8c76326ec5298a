from __future__ import annotations

import asyncio
from datetime import date

import pytest

from inhouse_bot import Lane, Mode, RosterPolicy, RosterStore
from inhouse_bot.errors import StoreError

CHANNEL = 100


def players(count: int, prefix: str = "p") -> list[str]:
    return [f"{prefix}{idx}" for idx in range(count)]


@pytest.mark.asyncio
async def test_join_fills_roster_then_waitlists(make_engine, backend, layout):
    engine = make_engine()

    for actor in players(10):
        outcome = await engine.join(CHANNEL, actor)
        assert outcome.status == "joined"
    overflow = await engine.join(CHANNEL, "late")
    await engine.drain()

    state = engine.snapshot(CHANNEL)
    assert overflow.status == "waitlisted"
    assert state.participants == players(10)
    assert state.waitlist == ["late"]
    assert backend.column(layout.ten_list.a1) == players(10)
    assert state.dirty is False


@pytest.mark.asyncio
async def test_join_twice_is_rejected(make_engine):
    engine = make_engine()
    await engine.join(CHANNEL, "alice")

    outcome = await engine.join(CHANNEL, "alice")

    assert outcome.status == "already_joined"
    assert outcome.sync.scheduled is False
    assert engine.snapshot(CHANNEL).participants == ["alice"]


@pytest.mark.asyncio
async def test_cancel_promotes_waitlist_head(make_engine, backend, layout):
    engine = make_engine()
    for actor in players(10):
        await engine.join(CHANNEL, actor)
    await engine.join(CHANNEL, "w1")
    await engine.join(CHANNEL, "w2")

    outcome = await engine.cancel(CHANNEL, "p3")
    assert await outcome.sync.wait() is True

    state = engine.snapshot(CHANNEL)
    assert outcome.status == "cancelled"
    assert outcome.promoted == "w1"
    assert state.participants[-1] == "w1"
    assert "p3" not in state.participants
    assert state.waitlist == ["w2"]
    assert "w1" in backend.column(layout.ten_list.a1)


@pytest.mark.asyncio
async def test_cancel_from_waitlist_does_not_promote(make_engine):
    engine = make_engine()
    for actor in players(10):
        await engine.join(CHANNEL, actor)
    await engine.join(CHANNEL, "w1")
    await engine.join(CHANNEL, "w2")

    outcome = await engine.cancel(CHANNEL, "w1")

    assert outcome.status == "cancelled"
    assert outcome.promoted is None
    assert engine.snapshot(CHANNEL).waitlist == ["w2"]
    assert (await engine.cancel(CHANNEL, "ghost")).status == "not_found"


@pytest.mark.asyncio
async def test_join_with_lane_respects_lane_capacity(make_engine, backend, layout):
    engine = make_engine()

    assert (await engine.join(CHANNEL, "a", Lane.TOP)).status == "joined"
    assert (await engine.join(CHANNEL, "b", Lane.TOP)).status == "joined"
    third = await engine.join(CHANNEL, "c", Lane.TOP)
    await engine.drain()

    state = engine.snapshot(CHANNEL)
    assert third.status == "lane_full"
    assert "c" not in state.participants
    assert state.lanes.slots[Lane.TOP] == ["a", "b"]
    assert backend.values[layout.ten_lanes.a1][0][0] == "a"
    assert backend.values[layout.ten_lanes.a1][1][0] == "b"


@pytest.mark.asyncio
async def test_change_lane_moves_and_clears(make_engine):
    engine = make_engine()
    await engine.join(CHANNEL, "a", Lane.MID)

    moved = await engine.change_lane(CHANNEL, "a", Lane.SUPPORT)
    same = await engine.change_lane(CHANNEL, "a", Lane.SUPPORT)
    cleared = await engine.change_lane(CHANNEL, "a", None)
    again = await engine.change_lane(CHANNEL, "a", None)

    grid = engine.snapshot(CHANNEL).lanes
    assert moved.status == "lane_changed"
    assert same.status == "no_change"
    assert cleared.status == "lane_cleared"
    assert cleared.lane is Lane.SUPPORT
    assert again.status == "no_change"
    assert grid.lane_of("a") is None
    assert engine.snapshot(CHANNEL).participants == ["a"]


@pytest.mark.asyncio
async def test_change_lane_rejects_waitlisted_and_full_lanes(make_engine):
    engine = make_engine()
    await engine.join(CHANNEL, "a", Lane.ADC)
    await engine.join(CHANNEL, "b", Lane.ADC)
    await engine.join(CHANNEL, "c", Lane.TOP)
    for actor in players(7):
        await engine.join(CHANNEL, actor)
    await engine.join(CHANNEL, "waiting")

    assert (await engine.change_lane(CHANNEL, "c", Lane.ADC)).status == "lane_full"
    assert (await engine.change_lane(CHANNEL, "waiting", Lane.MID)).status == "not_participant"


@pytest.mark.asyncio
async def test_change_lane_when_lanes_disabled(make_engine):
    engine = make_engine(policy=RosterPolicy(lanes_enabled=False, twenty_waitlist=False))
    await engine.join(CHANNEL, "a", Lane.TOP)

    outcome = await engine.change_lane(CHANNEL, "a", Lane.MID)

    assert outcome.status == "lanes_disabled"
    assert engine.snapshot(CHANNEL).lanes is None
    assert engine.snapshot(CHANNEL).participants == ["a"]


@pytest.mark.asyncio
async def test_twenty_mode_without_waitlist_reports_full(make_engine, backend, layout):
    backend.values[layout.twenty_list.a1] = [[actor] for actor in players(20)]
    engine = make_engine(policy=RosterPolicy(lanes_enabled=False, twenty_waitlist=False))

    outcome = await engine.join(CHANNEL, "late")

    state = engine.snapshot(CHANNEL)
    assert state.mode is Mode.TWENTY
    assert outcome.status == "full"
    assert state.waitlist == []
    assert len(state.participants) == 20


@pytest.mark.asyncio
async def test_load_dedupes_and_drops_lanes_of_non_participants(make_engine, backend, layout):
    backend.values[layout.ten_list.a1] = [["a"], ["b"], ["a"], [""], ["c"]]
    backend.values[layout.ten_lanes.a1] = [
        ["a", "", "ghost", "", ""],
        ["", "b", "", "", ""],
    ]
    engine = make_engine()

    state = await engine.ensure_loaded(CHANNEL)

    assert state.mode is Mode.TEN
    assert state.participants == ["a", "b", "c"]
    assert state.lanes.lane_of("a") is Lane.TOP
    assert state.lanes.lane_of("b") is Lane.JUNGLE
    assert "ghost" not in state.lanes.occupants()


@pytest.mark.asyncio
async def test_roster_survives_restart(make_engine, store):
    first = make_engine()
    await first.join(CHANNEL, "a", Lane.JUNGLE)
    await first.join(CHANNEL, "b")
    await first.drain()

    second = make_engine(store=store)
    state = await second.ensure_loaded(CHANNEL)

    assert state.participants == ["a", "b"]
    assert state.lanes.lane_of("a") is Lane.JUNGLE


@pytest.mark.asyncio
async def test_load_failure_is_reported_and_roster_starts_empty(make_engine, backend, layout):
    backend.fail_reads.add(layout.ten_list.a1)
    reported: list[StoreError] = []

    async def on_error(exc: StoreError) -> None:
        reported.append(exc)

    engine = make_engine(on_store_error=on_error)
    outcome = await engine.join(CHANNEL, "a")
    await engine.drain()

    assert outcome.status == "joined"
    assert reported and reported[0].operation == "read_list"
    assert reported[0].range_name == "ten_list"


@pytest.mark.asyncio
async def test_reload_keeps_unsynced_changes(make_engine, backend, layout):
    backend.fail_writes.add(layout.ten_list.a1)
    engine = make_engine()

    outcome = await engine.join(CHANNEL, "a")
    assert await outcome.sync.wait() is False
    assert engine.snapshot(CHANNEL).dirty is True

    assert await engine.reload(CHANNEL) is False
    assert engine.snapshot(CHANNEL).participants == ["a"]

    backend.fail_writes.clear()
    retry = await engine.join(CHANNEL, "b")
    assert await retry.sync.wait() is True
    assert backend.column(layout.ten_list.a1) == ["a", "b"]
    assert await engine.reload(CHANNEL) is True


@pytest.mark.asyncio
async def test_switch_to_twenty_merges_waitlist(make_engine, backend, layout):
    engine = make_engine()
    for actor in players(12):
        await engine.join(CHANNEL, actor)
    await engine.drain()
    engine.snapshot(CHANNEL).header = "custom"

    status = await engine.switch_mode(CHANNEL, Mode.TWENTY)

    state = engine.snapshot(CHANNEL)
    assert status == "switched"
    assert state.mode is Mode.TWENTY
    assert state.participants == players(12)
    assert state.waitlist == []
    assert state.header is None
    assert state.lanes.slots_per_lane == 4
    assert backend.column(layout.ten_list.a1) == []
    assert backend.column(layout.twenty_list.a1) == players(12)
    assert (await engine.switch_mode(CHANNEL, Mode.TWENTY)) == "already_in_mode"


@pytest.mark.asyncio
async def test_switch_to_ten_moves_overflow_to_waitlist(make_engine, backend, layout):
    backend.values[layout.twenty_list.a1] = [[actor] for actor in players(13)]
    engine = make_engine()

    await engine.switch_mode(CHANNEL, Mode.TEN)

    state = engine.snapshot(CHANNEL)
    assert state.participants == players(10)
    assert state.waitlist == ["p10", "p11", "p12"]
    assert backend.column(layout.twenty_list.a1) == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "policy",
    [RosterPolicy(), RosterPolicy(lanes_enabled=False, twenty_waitlist=False)],
)
async def test_switch_round_trip_restores_roster_order(make_engine, policy):
    engine = make_engine(policy=policy)
    for actor in players(12):
        await engine.join(CHANNEL, actor)

    await engine.switch_mode(CHANNEL, Mode.TWENTY)
    await engine.switch_mode(CHANNEL, Mode.TEN)

    state = engine.snapshot(CHANNEL)
    assert state.mode is Mode.TEN
    assert state.participants == players(10)
    assert state.waitlist == ["p10", "p11"]


@pytest.mark.asyncio
async def test_switch_mode_store_failure_still_switches(make_engine, backend, layout):
    backend.fail_writes.add(layout.twenty_list.a1)
    reported: list[StoreError] = []

    async def on_error(exc: StoreError) -> None:
        reported.append(exc)

    engine = make_engine(on_store_error=on_error)
    await engine.join(CHANNEL, "a")
    await engine.drain()

    status = await engine.switch_mode(CHANNEL, Mode.TWENTY)
    await engine.drain()

    assert status == "switched"
    assert engine.snapshot(CHANNEL).mode is Mode.TWENTY
    assert engine.snapshot(CHANNEL).dirty is True
    assert reported[0].range_name == "twenty_list"


@pytest.mark.asyncio
async def test_reset_clears_every_daily_range(make_engine, backend, layout):
    engine = make_engine()
    for actor in players(11):
        await engine.join(CHANNEL, actor, None)
    await engine.drain()

    state = await engine.reset(CHANNEL)

    assert state.participants == []
    assert state.waitlist == []
    for rng in layout.daily_ranges():
        assert all(cell == "" for row in backend.values[rng.a1] for cell in row)


@pytest.mark.asyncio
async def test_daily_reset_suppresses_everyone_mention(make_engine):
    engine = make_engine()
    await engine.join(CHANNEL, "a")

    state = await engine.daily_reset(CHANNEL)

    assert state.quiet_refresh is True
    assert state.participants == []


@pytest.mark.asyncio
async def test_manual_recruitment_blocks_auto_recruit_same_day(make_engine, backend, layout, clock):
    engine = make_engine()
    await engine.join(CHANNEL, "a")
    await engine.drain()

    state = await engine.start_recruitment(CHANNEL, "header")

    assert state.header == "header"
    assert state.quiet_refresh is False
    assert state.participants == ["a"]
    assert backend.values[layout.last_manual_recruit.a1] == [["2024-05-01"]]
    assert await engine.daily_auto_recruit(CHANNEL) is False
    assert engine.snapshot(CHANNEL).participants == ["a"]

    clock.today = date(2024, 5, 2)
    assert await engine.daily_auto_recruit(CHANNEL) is True
    state = engine.snapshot(CHANNEL)
    assert state.mode is Mode.TEN
    assert state.participants == []
    assert state.header is None


@pytest.mark.asyncio
async def test_auto_recruit_uses_cached_marker_when_store_unreadable(make_engine, backend, layout):
    engine = make_engine()
    await engine.start_recruitment(CHANNEL)
    backend.fail_reads.add(layout.last_manual_recruit.a1)

    assert await engine.daily_auto_recruit(CHANNEL) is False


@pytest.mark.asyncio
async def test_auto_recruit_forces_ten_mode(make_engine, backend, layout):
    backend.values[layout.twenty_list.a1] = [[actor] for actor in players(15)]
    engine = make_engine()
    await engine.ensure_loaded(CHANNEL)
    assert engine.snapshot(CHANNEL).mode is Mode.TWENTY

    assert await engine.daily_auto_recruit(CHANNEL) is True

    state = engine.snapshot(CHANNEL)
    assert state.mode is Mode.TEN
    assert state.lanes.slots_per_lane == 2
    assert backend.column(layout.twenty_list.a1) == []


@pytest.mark.asyncio
async def test_concurrent_joins_never_exceed_capacity(make_engine, backend, layout):
    engine = make_engine()
    actors = players(14)

    outcomes = await asyncio.gather(*(engine.join(CHANNEL, actor) for actor in actors))
    await engine.drain()

    state = engine.snapshot(CHANNEL)
    statuses = [outcome.status for outcome in outcomes]
    assert statuses.count("joined") == 10
    assert statuses.count("waitlisted") == 4
    assert len(set(state.participants)) == 10
    assert not set(state.participants) & set(state.waitlist)
    assert backend.column(layout.ten_list.a1) == state.participants


@pytest.mark.asyncio
async def test_concurrent_double_join_for_last_slot(make_engine):
    engine = make_engine()
    for actor in players(9):
        await engine.join(CHANNEL, actor)

    first, second = await asyncio.gather(
        engine.join(CHANNEL, "x"), engine.join(CHANNEL, "x")
    )

    state = engine.snapshot(CHANNEL)
    assert {first.status, second.status} == {"joined", "already_joined"}
    assert state.participants.count("x") == 1
    assert "x" not in state.waitlist
    assert len(state.participants) == 10


@pytest.mark.asyncio
async def test_store_failures_never_raise_from_transitions(backend, layout, make_engine):
    for rng in layout.daily_ranges():
        backend.fail_writes.add(rng.a1)
        backend.fail_reads.add(rng.a1)
    engine = make_engine(store=RosterStore(backend, layout))

    await engine.join(CHANNEL, "a")
    await engine.cancel(CHANNEL, "a")
    await engine.reset(CHANNEL)
    await engine.drain()

    assert engine.snapshot(CHANNEL).participants == []
