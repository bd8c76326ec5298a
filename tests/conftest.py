from __future__ import annotations

from datetime import date

import pytest

from bots.config import InhouseConfig
from inhouse_bot import RosterEngine, RosterPolicy, RosterRepository, RosterStore, StoreGate
from inhouse_bot.storage import RosterLayout


class FakeRangeBackend:
    """In-memory stand-in for a spreadsheet, keyed by A1 range."""

    def __init__(self, values: dict[str, list[list[str]]] | None = None) -> None:
        self.values: dict[str, list[list[str]]] = {
            key: [list(row) for row in rows] for key, rows in (values or {}).items()
        }
        self.reads: list[str] = []
        self.writes: list[tuple[str, list[list[str]]]] = []
        self.fail_reads: set[str] = set()
        self.fail_writes: set[str] = set()

    def read(self, a1: str):
        self.reads.append(a1)
        if a1 in self.fail_reads:
            raise RuntimeError("read refused")
        return [list(row) for row in self.values.get(a1, [])]

    def write(self, a1: str, rows):
        if a1 in self.fail_writes:
            raise RuntimeError("write refused")
        copied = [list(row) for row in rows]
        self.writes.append((a1, copied))
        self.values[a1] = copied

    def column(self, a1: str) -> list[str]:
        return [row[0] for row in self.values.get(a1, []) if row and row[0]]


class DayClock:
    def __init__(self, today: date) -> None:
        self.today = today

    def __call__(self) -> date:
        return self.today


@pytest.fixture
def layout() -> RosterLayout:
    return RosterLayout.for_sheet()


@pytest.fixture
def backend() -> FakeRangeBackend:
    return FakeRangeBackend()


@pytest.fixture
def store(backend, layout) -> RosterStore:
    return RosterStore(backend, layout)


@pytest.fixture
def clock() -> DayClock:
    return DayClock(date(2024, 5, 1))


@pytest.fixture
def make_engine(store, clock):
    def factory(*, policy: RosterPolicy | None = None, on_store_error=None, **kwargs):
        return RosterEngine(
            RosterRepository(policy or RosterPolicy()),
            kwargs.get("store", store),
            kwargs.get("gate") or StoreGate(),
            today=clock,
            on_store_error=on_store_error,
        )

    return factory


@pytest.fixture
def config_factory():
    return make_config


def make_config(**overrides) -> InhouseConfig:
    values = {
        "discord_token": "token",
        "channel_id": 100,
        "guild_id": None,
        "store_backend": "sheets",
        "sheet_id": "sheet",
        "sheet_name": "대진표",
        "google_credentials_info": None,
        "google_credentials_file": "credentials.json",
        "table_name": None,
        "aws_region": "us-east-1",
        "riot_api_key": "riot-key",
        "riot_base_url": None,
        "riot_callback_url": None,
        "riot_region": None,
        "timezone": "Asia/Seoul",
        "reset_hour": 8,
        "recruit_hour": 17,
        "lanes_enabled": True,
        "twenty_waitlist": True,
        "admin_log_channel_id": None,
        "health_server": False,
        "port": 3000,
    }
    values.update(overrides)
    return InhouseConfig(**values)
