from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

import gspread

from .errors import StoreError
from .models import Mode

log = logging.getLogger(__name__)

Rows = list[list[str]]

DEFAULT_SHEET_NAME = "대진표"


@dataclass(frozen=True, slots=True)
class RosterRange:
    name: str
    a1: str
    rows: int
    cols: int


def _qualify(sheet_name: str, cells: str) -> str:
    if sheet_name.replace("_", "").isalnum():
        return f"{sheet_name}!{cells}"
    escaped = sheet_name.replace("'", "''")
    return f"'{escaped}'!{cells}"


@dataclass(frozen=True, slots=True)
class RosterLayout:
    """Fixed named ranges of the roster spreadsheet."""

    ten_list: RosterRange
    twenty_list: RosterRange
    ten_lanes: RosterRange
    twenty_lanes: RosterRange
    last_manual_recruit: RosterRange

    @classmethod
    def for_sheet(cls, sheet_name: str = DEFAULT_SHEET_NAME) -> RosterLayout:
        return cls(
            ten_list=RosterRange("ten_list", _qualify(sheet_name, "L5:L14"), 10, 1),
            twenty_list=RosterRange(
                "twenty_list", _qualify(sheet_name, "L18:L37"), 20, 1
            ),
            ten_lanes=RosterRange("ten_lanes", _qualify(sheet_name, "E4:I5"), 2, 5),
            twenty_lanes=RosterRange(
                "twenty_lanes", _qualify(sheet_name, "E18:I21"), 4, 5
            ),
            last_manual_recruit=RosterRange(
                "last_manual_recruit", _qualify(sheet_name, "Z1"), 1, 1
            ),
        )

    def participant_range(self, mode: Mode) -> RosterRange:
        return self.ten_list if mode is Mode.TEN else self.twenty_list

    def lane_range(self, mode: Mode) -> RosterRange:
        return self.ten_lanes if mode is Mode.TEN else self.twenty_lanes

    def daily_ranges(self) -> tuple[RosterRange, ...]:
        return (self.ten_lanes, self.twenty_lanes, self.ten_list, self.twenty_list)


class RangeBackend(Protocol):
    def read(self, a1: str) -> Sequence[Sequence[object]]: ...

    def write(self, a1: str, rows: Rows) -> None: ...


class SheetsBackend:
    """Google Sheets access through a gspread spreadsheet handle."""

    def __init__(self, spreadsheet) -> None:
        self._spreadsheet = spreadsheet

    @classmethod
    def connect(
        cls,
        sheet_id: str,
        *,
        credentials_info: dict[str, object] | None = None,
        key_file: str | None = None,
    ) -> SheetsBackend:
        if credentials_info is not None:
            client = gspread.service_account_from_dict(credentials_info)
        else:
            client = gspread.service_account(filename=key_file or "credentials.json")
        return cls(client.open_by_key(sheet_id))

    def read(self, a1: str) -> Sequence[Sequence[object]]:
        resp = self._spreadsheet.values_get(a1)
        return resp.get("values", [])

    def write(self, a1: str, rows: Rows) -> None:
        self._spreadsheet.values_update(
            a1,
            params={"valueInputOption": "RAW"},
            body={"values": rows},
        )


class DynamoBackend:
    """Stores each named range as one DynamoDB item."""

    PK_TEMPLATE = "RANGE#%s"
    SK_VALUE = "VALUES"

    def __init__(self, table) -> None:
        self._table = table

    def ensure_table(self) -> None:
        if self._table is None:
            raise RuntimeError("Roster table is not configured")

    @classmethod
    def key(cls, a1: str) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % a1, "sk": cls.SK_VALUE}

    def read(self, a1: str) -> Sequence[Sequence[object]]:
        self.ensure_table()
        resp = self._table.get_item(Key=self.key(a1))
        item = resp.get("Item")
        if not item:
            return []
        return item.get("rows", [])

    def write(self, a1: str, rows: Rows) -> None:
        self.ensure_table()
        item = self.key(a1)
        item["rows"] = rows
        self._table.put_item(Item=item)


def _cell(row: Sequence[object], col: int) -> str:
    if col >= len(row):
        return ""
    value = row[col]
    return "" if value is None else str(value).strip()


def _blank(rows: int, cols: int) -> Rows:
    return [["" for _ in range(cols)] for _ in range(rows)]


class RosterStore:
    """Typed, fixed-shape reads and writes over the named roster ranges."""

    def __init__(self, backend: RangeBackend, layout: RosterLayout | None = None) -> None:
        self._backend = backend
        self.layout = layout or RosterLayout.for_sheet()

    async def _read(self, operation: str, rng: RosterRange) -> Sequence[Sequence[object]]:
        try:
            return await asyncio.to_thread(self._backend.read, rng.a1)
        except Exception as exc:
            raise StoreError(operation, rng.name, str(exc)) from exc

    async def _write(self, operation: str, rng: RosterRange, rows: Rows) -> None:
        try:
            await asyncio.to_thread(self._backend.write, rng.a1, rows)
        except Exception as exc:
            raise StoreError(operation, rng.name, str(exc)) from exc

    async def read_list(self, rng: RosterRange, n: int | None = None) -> list[str]:
        limit = rng.rows if n is None else n
        raw = await self._read("read_list", rng)
        values = [_cell(row, 0) for row in list(raw)[:limit]]
        return [value for value in values if value]

    async def write_list(
        self, rng: RosterRange, values: Sequence[str], n: int | None = None
    ) -> None:
        size = rng.rows if n is None else n
        padded = list(values[:size]) + [""] * max(0, size - len(values))
        await self._write("write_list", rng, [[value] for value in padded])

    async def read_grid(
        self, rng: RosterRange, rows: int | None = None, cols: int | None = None
    ) -> Rows:
        n_rows = rng.rows if rows is None else rows
        n_cols = rng.cols if cols is None else cols
        raw = list(await self._read("read_grid", rng))
        grid = _blank(n_rows, n_cols)
        for r in range(min(n_rows, len(raw))):
            for c in range(n_cols):
                grid[r][c] = _cell(raw[r], c)
        return grid

    async def write_grid(
        self,
        rng: RosterRange,
        grid: Sequence[Sequence[str]],
        rows: int | None = None,
        cols: int | None = None,
    ) -> None:
        n_rows = rng.rows if rows is None else rows
        n_cols = rng.cols if cols is None else cols
        shaped = _blank(n_rows, n_cols)
        for r in range(min(n_rows, len(grid))):
            for c in range(min(n_cols, len(grid[r]))):
                shaped[r][c] = grid[r][c] or ""
        await self._write("write_grid", rng, shaped)

    async def clear_range(
        self, rng: RosterRange, rows: int | None = None, cols: int | None = None
    ) -> None:
        n_rows = rng.rows if rows is None else rows
        n_cols = rng.cols if cols is None else cols
        await self._write("clear_range", rng, _blank(n_rows, n_cols))

    async def clear_ranges(self, ranges: Iterable[RosterRange]) -> list[StoreError]:
        """Clear each range in turn, continuing past failures."""
        failures: list[StoreError] = []
        for rng in ranges:
            try:
                await self.clear_range(rng)
            except StoreError as exc:
                log.error("Failed to clear %s: %s", rng.name, exc)
                failures.append(exc)
        return failures

    async def read_marker(self, rng: RosterRange) -> str | None:
        raw = list(await self._read("read_marker", rng))
        value = _cell(raw[0], 0) if raw else ""
        return value or None

    async def write_marker(self, rng: RosterRange, value: str) -> None:
        await self._write("write_marker", rng, [[value]])


__all__ = [
    "DEFAULT_SHEET_NAME",
    "DynamoBackend",
    "RangeBackend",
    "RosterLayout",
    "RosterRange",
    "RosterStore",
    "SheetsBackend",
]
