from __future__ import annotations

from .models import Mode


class InvalidValueError(ValueError):
    """Raised when a command argument is outside the accepted range."""


def parse_recruit_hour(raw: str | int | None) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return None
    try:
        hour = int(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidValueError(f"Invalid hour: {raw}") from exc
    if not 0 <= hour <= 23:
        raise InvalidValueError("Hour must be between 0 and 23")
    return hour


def parse_mode(raw: str | int) -> Mode:
    try:
        return Mode.from_size(int(raw))
    except (TypeError, ValueError) as exc:
        raise InvalidValueError(f"Roster size must be 10 or 20, got {raw}") from exc


__all__ = ["InvalidValueError", "parse_mode", "parse_recruit_hour"]
