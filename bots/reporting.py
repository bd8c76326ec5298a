"""Forward roster-store failures to an admin log channel."""

from __future__ import annotations

import logging

import discord

from inhouse_bot.errors import StoreError

log = logging.getLogger(__name__)


class AdminLogReporter:
    def __init__(self, bot: discord.Client, channel_id: int | None) -> None:
        self._bot = bot
        self._channel_id = channel_id

    @property
    def enabled(self) -> bool:
        return self._channel_id is not None

    @property
    def channel_id(self) -> int | None:
        return self._channel_id

    async def _resolve_channel(self) -> discord.abc.Messageable | None:
        channel = self._bot.get_channel(self._channel_id)
        if channel is None:
            try:
                channel = await self._bot.fetch_channel(self._channel_id)
            except discord.DiscordException as exc:  # pragma: no cover - network failure
                log.warning("Unable to fetch admin log channel %s: %s", self._channel_id, exc)
                return None
        if not isinstance(channel, discord.abc.Messageable):
            log.warning("Admin log channel %s is not messageable", self._channel_id)
            return None
        return channel

    async def report(self, message: str) -> None:
        if not self.enabled:
            log.info("[admin-log] %s", message)
            return

        channel = await self._resolve_channel()
        if channel is None:
            log.info("[admin-log] %s", message)
            return

        try:
            await channel.send(content=message)
        except discord.DiscordException as exc:
            log.warning(
                "Failed to send admin log to channel %s: %s", self._channel_id, exc
            )

    async def report_store_error(self, exc: StoreError) -> None:
        await self.report(
            f"⚠️ Roster sheet `{exc.operation}` failed for `{exc.range_name}`: {exc}\n"
            "The in-memory roster is still current; the next change will retry the write."
        )


__all__ = ["AdminLogReporter"]
