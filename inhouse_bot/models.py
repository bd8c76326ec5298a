from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

EMPTY_SLOT = ""


class Mode(Enum):
    TEN = "10"
    TWENTY = "20"

    @property
    def capacity(self) -> int:
        return 10 if self is Mode.TEN else 20

    @property
    def lane_slots(self) -> int:
        """Slots available in each lane for this mode."""
        return 2 if self is Mode.TEN else 4

    @classmethod
    def from_size(cls, size: int) -> Mode:
        for mode in cls:
            if mode.capacity == size:
                return mode
        raise ValueError(f"Unsupported roster size: {size}")


class Lane(Enum):
    TOP = "top"
    JUNGLE = "jungle"
    MID = "mid"
    ADC = "adc"
    SUPPORT = "support"

    @property
    def label(self) -> str:
        return "ADC" if self is Lane.ADC else self.value.capitalize()


# Column order of the persisted lane grid.
LANE_ORDER: tuple[Lane, ...] = tuple(Lane)


@dataclass(slots=True)
class LaneGrid:
    """Five lanes, each a fixed-size array of slots holding an identifier or ``""``."""

    slots_per_lane: int
    slots: dict[Lane, list[str]]

    @classmethod
    def empty(cls, mode: Mode) -> LaneGrid:
        size = mode.lane_slots
        return cls(
            slots_per_lane=size,
            slots={lane: [EMPTY_SLOT] * size for lane in LANE_ORDER},
        )

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[str]], mode: Mode) -> LaneGrid:
        grid = cls.empty(mode)
        seen: set[str] = set()
        for row_idx in range(grid.slots_per_lane):
            row = rows[row_idx] if row_idx < len(rows) else []
            for col_idx, lane in enumerate(LANE_ORDER):
                value = row[col_idx].strip() if col_idx < len(row) else EMPTY_SLOT
                if not value or value in seen:
                    continue
                seen.add(value)
                grid.slots[lane][row_idx] = value
        return grid

    def to_rows(self) -> list[list[str]]:
        return [
            [self.slots[lane][row_idx] for lane in LANE_ORDER]
            for row_idx in range(self.slots_per_lane)
        ]

    def lane_of(self, actor: str) -> Lane | None:
        for lane in LANE_ORDER:
            if actor in self.slots[lane]:
                return lane
        return None

    def free_slot(self, lane: Lane) -> int | None:
        try:
            return self.slots[lane].index(EMPTY_SLOT)
        except ValueError:
            return None

    def place(self, actor: str, lane: Lane) -> bool:
        """Put ``actor`` in the first free slot of ``lane``; False when the lane is full."""
        idx = self.free_slot(lane)
        if idx is None:
            return False
        self.slots[lane][idx] = actor
        return True

    def remove(self, actor: str) -> bool:
        removed = False
        for lane in LANE_ORDER:
            lane_slots = self.slots[lane]
            for idx, value in enumerate(lane_slots):
                if value == actor:
                    lane_slots[idx] = EMPTY_SLOT
                    removed = True
        return removed

    def occupants(self) -> set[str]:
        return {value for lane in LANE_ORDER for value in self.slots[lane] if value}

    def retain(self, allowed: Iterable[str]) -> None:
        """Blank every slot whose identifier is not in ``allowed``."""
        keep = set(allowed)
        for lane in LANE_ORDER:
            self.slots[lane] = [
                value if value in keep else EMPTY_SLOT for value in self.slots[lane]
            ]


@dataclass(frozen=True, slots=True)
class RosterPolicy:
    lanes_enabled: bool = True
    twenty_waitlist: bool = True


@dataclass(slots=True)
class RosterState:
    channel_id: int
    mode: Mode = Mode.TEN
    participants: list[str] = field(default_factory=list)
    waitlist: list[str] = field(default_factory=list)
    lanes: LaneGrid | None = None
    header: str | None = None
    active_message_id: int | None = None
    # Set by the daily reset: the next display refresh omits the @everyone prefix.
    quiet_refresh: bool = False
    loaded: bool = False
    # Set by every mutation, cleared once the persisted mirror has been written.
    dirty: bool = False

    @property
    def capacity(self) -> int:
        return self.mode.capacity

    @property
    def is_full(self) -> bool:
        return len(self.participants) >= self.capacity

    def contains(self, actor: str) -> bool:
        return actor in self.participants or actor in self.waitlist

    def clear_roster(self, *, lanes_enabled: bool) -> None:
        self.participants = []
        self.waitlist = []
        self.lanes = LaneGrid.empty(self.mode) if lanes_enabled else None


class RosterRepository:
    """Holds one :class:`RosterState` per channel, created on first use."""

    def __init__(self, policy: RosterPolicy | None = None) -> None:
        self.policy = policy or RosterPolicy()
        self._states: dict[int, RosterState] = {}

    def get(self, channel_id: int) -> RosterState:
        state = self._states.get(channel_id)
        if state is None:
            state = RosterState(channel_id=channel_id)
            if self.policy.lanes_enabled:
                state.lanes = LaneGrid.empty(state.mode)
            self._states[channel_id] = state
        return state


__all__ = [
    "EMPTY_SLOT",
    "LANE_ORDER",
    "Lane",
    "LaneGrid",
    "Mode",
    "RosterPolicy",
    "RosterRepository",
    "RosterState",
]
