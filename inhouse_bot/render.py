from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .models import LANE_ORDER, Mode, RosterState

NameResolver = Callable[[str], str]

EMPTY_MARKER = "-"
SLOT_SEPARATOR = " / "
NONE_MARKER = "None"
EVERYONE_PREFIX = "@everyone"

_DEFAULT_HEADERS = {
    Mode.TEN: (
        "⚔️ Joining today's in-house? Press the button below!\n"
        "We start as soon as 10 players are in.\n"
        "If the waitlist gets long we switch to a 20-player in-house."
    ),
    Mode.TWENTY: "⚔️ Recruiting for a 20-player in-house! Press the button below to join.",
}


def default_header(mode: Mode) -> str:
    return _DEFAULT_HEADERS[mode]


def time_range_label(hour: int) -> str:
    """Return a one-hour slot label such as ``21:00~22:00`` (wraps at midnight)."""
    return f"{hour}:00~{(hour + 1) % 24}:00"


def recruit_header(hour: int) -> str:
    return (
        f"⚔️ Recruiting for the {time_range_label(hour)} in-house! ⚔️\n"
        "We start as soon as 10 players are in.\n"
        "If the waitlist gets long we switch to a 20-player in-house."
    )


@dataclass(frozen=True, slots=True)
class DisplayPayload:
    body: str
    mention_everyone: bool = False

    @property
    def content(self) -> str:
        if self.mention_everyone:
            return f"{EVERYONE_PREFIX}\n{self.body}"
        return self.body


def _names(identifiers: Sequence[str], resolver: NameResolver) -> str:
    return " ".join(resolver(identifier) for identifier in identifiers)


def _roster_lines(state: RosterState, resolver: NameResolver) -> list[str]:
    participants = state.participants
    lines = [
        f"Participants ({len(participants)}/{state.capacity}):",
        _names(participants, resolver) if participants else NONE_MARKER,
    ]
    if state.waitlist:
        lines += [
            "",
            f"Waitlist ({len(state.waitlist)}):",
            _names(state.waitlist, resolver),
        ]
    return lines


def _lane_lines(state: RosterState, resolver: NameResolver) -> list[str]:
    if state.lanes is None:
        return []
    lines = ["**Lanes**"]
    for lane in LANE_ORDER:
        cells = [
            resolver(value) if value else EMPTY_MARKER
            for value in state.lanes.slots[lane]
        ]
        lines.append(f"{lane.label}: {SLOT_SEPARATOR.join(cells)}")
    lines.append("")
    return lines


def render(state: RosterState, resolver: NameResolver) -> DisplayPayload:
    """Build the signup display for ``state`` without touching it."""
    header = state.header or default_header(state.mode)
    lines = [header, ""]
    lines += _lane_lines(state, resolver)
    lines += _roster_lines(state, resolver)
    return DisplayPayload("\n".join(lines), mention_everyone=not state.quiet_refresh)


def render_members(state: RosterState, resolver: NameResolver) -> str:
    lines = [f"Current mode: {state.mode.value}", ""]
    lines += _roster_lines(state, resolver)
    return "\n".join(lines)


__all__ = [
    "DisplayPayload",
    "EMPTY_MARKER",
    "NameResolver",
    "default_header",
    "recruit_header",
    "render",
    "render_members",
    "time_range_label",
]
