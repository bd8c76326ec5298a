"""Riot tournament(-stub) API client for best-of-three lobby codes."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Final

import requests

from .errors import AccessForbiddenError, MissingCredentialError, RemoteApiError

log: Final = logging.getLogger(__name__)

DEFAULT_BASE_URL: Final[str] = "https://asia.api.riotgames.com/lol/tournament-stub/v5"
DEFAULT_CALLBACK_URL: Final[str] = "https://example.com/callback"
DEFAULT_REGION: Final[str] = "KR"
TOURNAMENT_NAME: Final[str] = "Inhouse BO3"
DEFAULT_METADATA: Final[str] = "inhouse-bo3"
CODES_PER_SERIES: Final[int] = 3
REQUEST_TIMEOUT_SECONDS: Final[int] = 10


class TournamentCodeClient:
    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        region: str = DEFAULT_REGION,
        callback_url: str = DEFAULT_CALLBACK_URL,
        session: requests.Session | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._region = region
        self._callback_url = callback_url
        self._session = session or requests.Session()

    def _post(self, path: str, body: dict[str, object], params=None):
        try:
            resp = self._session.post(
                f"{self._base_url}{path}",
                json=body,
                params=params,
                headers={"X-Riot-Token": self._api_key or ""},
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            log.error("Riot API request to %s failed: %s", path, exc)
            raise RemoteApiError(f"Riot API request failed: {exc}") from exc

        if resp.status_code == 403:
            log.error("Riot API 403 for %s: %s", path, resp.text)
            raise AccessForbiddenError("Riot API access forbidden", status=403)
        if resp.status_code >= 400:
            log.error("Riot API error %s for %s: %s", resp.status_code, path, resp.text)
            raise RemoteApiError(
                f"Riot API returned {resp.status_code}", status=resp.status_code
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteApiError(
                "Riot API returned invalid JSON", status=resp.status_code
            ) from exc

    def create_provider(self) -> int:
        return self._post("/providers", {"region": self._region, "url": self._callback_url})

    def create_tournament(self, provider_id: int) -> int:
        return self._post(
            "/tournaments", {"name": TOURNAMENT_NAME, "providerId": provider_id}
        )

    def create_codes(self, tournament_id: int, metadata: str | None = None) -> list[str]:
        body = {
            "mapType": "SUMMONERS_RIFT",
            "pickType": "TOURNAMENT_DRAFT",
            "spectatorType": "ALL",
            "teamSize": 5,
            "metadata": metadata or DEFAULT_METADATA,
        }
        params = {"count": CODES_PER_SERIES, "tournamentId": tournament_id}
        return self._post("/codes", body, params=params)

    def generate_bo3_codes(self, metadata: str | None = None) -> list[str]:
        if not self._api_key:
            raise MissingCredentialError("RIOT_API_KEY is not configured")
        provider_id = self.create_provider()
        tournament_id = self.create_tournament(provider_id)
        codes = self.create_codes(tournament_id, metadata)
        if not isinstance(codes, list) or len(codes) < CODES_PER_SERIES:
            raise RemoteApiError("Riot API did not return three tournament codes")
        return [str(code) for code in codes[:CODES_PER_SERIES]]


def build_metadata(guild_id: int | None, channel_id: int | None, user_id: int) -> str:
    return f"guild:{guild_id},channel:{channel_id},user:{user_id}"


def format_codes_message(codes: Sequence[str]) -> str:
    game_lines = [f"**Game {idx}** : `{code}`" for idx, code in enumerate(codes, start=1)]
    return (
        "**In-house BO3 tournament codes are ready!**\n"
        ">>> "
        + "\n".join(game_lines)
        + "\n\n**Settings**\n"
        "- Server: **KR**\n"
        "- Map: **Summoner's Rift**\n"
        "- Mode: **Tournament Draft**\n"
        "- Teams: **5 vs 5**\n\n"
        "Enter each code under `League client > Play > Tournament code`."
    )


def describe_error(exc: Exception) -> str:
    """Map a tournament-code failure to an actionable message."""
    if isinstance(exc, MissingCredentialError):
        return (
            "The RIOT_API_KEY environment variable is not set.\n"
            "Add a Riot API key to the bot's environment and try again."
        )
    if isinstance(exc, AccessForbiddenError):
        return (
            "The tournament API refused access (403 Forbidden).\n"
            "- The Tournament API application may not be approved yet, or\n"
            "- a development key is being used instead of the approved production key.\n\n"
            "Put the approved key in RIOT_API_KEY and try again."
        )
    return "Something went wrong while generating tournament codes."


__all__ = [
    "TournamentCodeClient",
    "build_metadata",
    "describe_error",
    "format_codes_message",
]
