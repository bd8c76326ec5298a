"""Configuration helpers for the in-house runtime."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

DEFAULT_TIMEZONE = "Asia/Seoul"
DEFAULT_RESET_HOUR = 8
DEFAULT_RECRUIT_HOUR = 17
DEFAULT_PORT = 3000


def env_bool(name: str, *, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


def env_int(name: str, *, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_hour(name: str, *, default: int) -> int:
    value = env_int(name, default=default)
    if value is None or not 0 <= value <= 23:
        return default
    return value


@dataclass(frozen=True, slots=True)
class InhouseConfig:
    discord_token: str
    channel_id: int
    guild_id: int | None
    store_backend: str
    sheet_id: str | None
    sheet_name: str
    google_credentials_info: dict[str, object] | None
    google_credentials_file: str
    table_name: str | None
    aws_region: str
    riot_api_key: str | None
    riot_base_url: str | None
    riot_callback_url: str | None
    riot_region: str | None
    timezone: str
    reset_hour: int
    recruit_hour: int
    lanes_enabled: bool
    twenty_waitlist: bool
    admin_log_channel_id: int | None
    health_server: bool
    port: int

    @classmethod
    def load(cls) -> InhouseConfig:
        missing: list[str] = []

        def need(name: str) -> str:
            value = os.getenv(name)
            if not value:
                missing.append(name)
                return ""
            return value

        discord_token = need("DISCORD_TOKEN")
        channel_raw = need("INHOUSE_CHANNEL_ID")

        store_backend = (os.getenv("ROSTER_STORE_BACKEND") or "sheets").strip().lower()
        if store_backend == "dynamodb":
            table_name = need("ROSTER_TABLE_NAME")
            sheet_id = os.getenv("SHEET_ID") or None
        else:
            store_backend = "sheets"
            sheet_id = need("SHEET_ID")
            table_name = os.getenv("ROSTER_TABLE_NAME") or None

        if missing:
            raise RuntimeError("Missing env vars: " + ", ".join(sorted(set(missing))))

        try:
            channel_id = int(channel_raw)
        except ValueError as exc:
            raise RuntimeError(
                f"INHOUSE_CHANNEL_ID must be an integer, got {channel_raw!r}"
            ) from exc

        credentials_raw = os.getenv("GOOGLE_APPLICATION_CREDENTIALS_JSON")
        google_credentials_info = json.loads(credentials_raw) if credentials_raw else None

        lanes_enabled = env_bool("INHOUSE_LANES", default=True)

        return cls(
            discord_token=discord_token,
            channel_id=channel_id,
            guild_id=env_int("INHOUSE_GUILD_ID"),
            store_backend=store_backend,
            sheet_id=sheet_id,
            sheet_name=os.getenv("ROSTER_SHEET_NAME") or "대진표",
            google_credentials_info=google_credentials_info,
            google_credentials_file=(
                os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or "credentials.json"
            ),
            table_name=table_name,
            aws_region=os.getenv("AWS_REGION", "us-east-1"),
            riot_api_key=os.getenv("RIOT_API_KEY") or None,
            riot_base_url=os.getenv("RIOT_TOURNAMENT_BASE_URL") or None,
            riot_callback_url=os.getenv("RIOT_CALLBACK_URL") or None,
            riot_region=os.getenv("RIOT_REGION") or None,
            timezone=os.getenv("INHOUSE_TIMEZONE") or DEFAULT_TIMEZONE,
            reset_hour=env_hour("DAILY_RESET_HOUR", default=DEFAULT_RESET_HOUR),
            recruit_hour=env_hour("DAILY_RECRUIT_HOUR", default=DEFAULT_RECRUIT_HOUR),
            lanes_enabled=lanes_enabled,
            twenty_waitlist=env_bool("TWENTY_MODE_WAITLIST", default=lanes_enabled),
            admin_log_channel_id=env_int("ADMIN_LOG_CHANNEL_ID"),
            health_server=env_bool("HEALTH_SERVER", default=True),
            port=env_int("PORT", default=DEFAULT_PORT) or DEFAULT_PORT,
        )
