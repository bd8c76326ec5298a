"""Discord runtime for in-house match signups.

Slash commands and signup buttons drive :class:`inhouse_bot.RosterEngine`;
every roster change asks the :class:`inhouse_bot.UpdateDispatcher` to refresh
the channel's signup message. Two scheduled jobs reset the roster each morning
and publish a fresh signup message each afternoon unless someone already ran
``/recruit`` that day.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import os
from collections.abc import Iterable
from typing import Final, Optional
from zoneinfo import ZoneInfo

import boto3
import discord
from discord import app_commands
from discord.ext import tasks

from bots.config import InhouseConfig
from bots.health import start_health_server
from bots.reporting import AdminLogReporter
from inhouse_bot import (
    InvalidValueError,
    Lane,
    RemoteApiError,
    RenderError,
    RosterEngine,
    RosterPolicy,
    RosterRepository,
    RosterState,
    RosterStore,
    StoreGate,
    UpdateDispatcher,
    parse_mode,
    parse_recruit_hour,
    render,
    render_members,
)
from inhouse_bot.models import LANE_ORDER
from inhouse_bot.render import NameResolver, recruit_header
from inhouse_bot.riot_api import (
    TournamentCodeClient,
    build_metadata,
    describe_error,
    format_codes_message,
)
from inhouse_bot.storage import DynamoBackend, RosterLayout, SheetsBackend

log: Final = logging.getLogger("inhouse-bot")

LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

JOIN_CUSTOM_ID: Final[str] = "inhouse:join"
CANCEL_CUSTOM_ID: Final[str] = "inhouse:cancel"
LANE_CUSTOM_ID_PREFIX: Final[str] = "inhouse:lane:"
NO_LANE_KEY: Final[str] = "none"

JOIN_MESSAGES: Final[dict[str, str]] = {
    "joined": "You're in!",
    "waitlisted": "The roster is full, so you've been added to the waitlist.",
    "lane_full": "That lane is already full. Please pick another lane.",
    "already_joined": "You've already signed up.",
    "full": "The 20-player roster is full.",
}
CANCEL_MESSAGES: Final[dict[str, str]] = {
    "cancelled": "Your signup has been cancelled!",
    "not_found": "You don't have a signup to cancel.",
}
LANE_MESSAGES: Final[dict[str, str]] = {
    "lane_changed": "Lane updated!",
    "lane_cleared": "Your lane pick was cleared.",
    "no_change": "You're already in that lane.",
    "lane_full": "That lane is already full. Please pick another lane.",
    "not_participant": "Only confirmed participants can pick a lane.",
    "lanes_disabled": "Lane picks are not enabled.",
}
GENERIC_FAILURE: Final[str] = "Something went wrong while processing your request."
CALLOUT_MESSAGE: Final[str] = (
    "@everyone We're short on players for the in-house. Bring anyone you know~"
)


def actor_key(user: discord.abc.User) -> str:
    """Stable roster identity for a Discord user."""
    return str(user.id)


def _matches_legacy_name(member: discord.Member, name: str) -> bool:
    return name in (
        getattr(member, "nick", None),
        getattr(member, "global_name", None),
        getattr(member, "name", None),
    )


async def lookup_member(
    guild: discord.Guild | None, identifier: str
) -> discord.Member | None:
    """Find the member behind a roster identifier.

    Identifiers are user ids; older sheet rows may hold a display name instead,
    which is matched against nickname, global name and username.
    """
    if guild is None:
        return None
    if identifier.isdigit():
        member = guild.get_member(int(identifier))
        if member is not None:
            return member
        try:
            return await guild.fetch_member(int(identifier))
        except discord.HTTPException:
            return None
    return discord.utils.find(
        lambda m: _matches_legacy_name(m, identifier), guild.members
    )


def roster_identifiers(state: RosterState) -> list[str]:
    identifiers = list(state.participants) + list(state.waitlist)
    if state.lanes is not None:
        identifiers += sorted(state.lanes.occupants())
    return identifiers


async def build_name_resolver(
    guild: discord.Guild | None, identifiers: Iterable[str]
) -> NameResolver:
    labels: dict[str, str] = {}
    for identifier in dict.fromkeys(identifiers):
        member = await lookup_member(guild, identifier)
        labels[identifier] = member.display_name if member is not None else identifier

    def resolve(identifier: str) -> str:
        return labels.get(identifier, identifier)

    return resolve


async def build_mentions(
    guild: discord.Guild | None, identifiers: Iterable[str]
) -> list[str]:
    mentions: list[str] = []
    for identifier in identifiers:
        if identifier.isdigit():
            mentions.append(f"<@{identifier}>")
            continue
        member = await lookup_member(guild, identifier)
        mentions.append(member.mention if member is not None else identifier)
    return mentions


def build_store(config: InhouseConfig) -> RosterStore:
    layout = RosterLayout.for_sheet(config.sheet_name)
    if config.store_backend == "dynamodb":
        dynamodb = boto3.resource("dynamodb", region_name=config.aws_region)
        backend = DynamoBackend(dynamodb.Table(config.table_name))
    else:
        backend = SheetsBackend.connect(
            config.sheet_id or "",
            credentials_info=config.google_credentials_info,
            key_file=config.google_credentials_file,
        )
    return RosterStore(backend, layout)


class SignupButton(discord.ui.Button):
    def __init__(
        self,
        runtime: InhouseRuntime,
        *,
        action: str,
        label: str,
        style: discord.ButtonStyle,
        custom_id: str,
        lane: Lane | None = None,
        row: int = 0,
    ) -> None:
        super().__init__(label=label, style=style, custom_id=custom_id, row=row)
        self.runtime = runtime
        self.action = action
        self.lane = lane

    async def callback(self, interaction: discord.Interaction) -> None:
        await self.runtime.handle_button(interaction, self.action, self.lane)


class SignupView(discord.ui.View):
    """Persistent join/cancel (and lane) buttons attached to a signup message."""

    def __init__(self, runtime: InhouseRuntime) -> None:
        super().__init__(timeout=None)
        self.add_item(
            SignupButton(
                runtime,
                action="join",
                label="Join",
                style=discord.ButtonStyle.success,
                custom_id=JOIN_CUSTOM_ID,
            )
        )
        if runtime.engine.policy.lanes_enabled:
            self.add_item(
                SignupButton(
                    runtime,
                    action="lane",
                    label="No lane",
                    style=discord.ButtonStyle.secondary,
                    custom_id=f"{LANE_CUSTOM_ID_PREFIX}{NO_LANE_KEY}",
                )
            )
        self.add_item(
            SignupButton(
                runtime,
                action="cancel",
                label="Cancel",
                style=discord.ButtonStyle.danger,
                custom_id=CANCEL_CUSTOM_ID,
            )
        )
        if runtime.engine.policy.lanes_enabled:
            for lane in LANE_ORDER:
                self.add_item(
                    SignupButton(
                        runtime,
                        action="lane",
                        label=lane.label,
                        style=discord.ButtonStyle.primary,
                        custom_id=f"{LANE_CUSTOM_ID_PREFIX}{lane.value}",
                        lane=lane,
                        row=1,
                    )
                )


class InhouseRuntime:
    def __init__(
        self,
        config: InhouseConfig,
        *,
        store: RosterStore,
        client: discord.Client | None = None,
        code_client: TournamentCodeClient | None = None,
    ) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True

        self.config = config
        self.bot = client or discord.Client(intents=intents)
        self.tree = app_commands.CommandTree(self.bot)
        self.timezone = ZoneInfo(config.timezone)
        self.reporter = AdminLogReporter(self.bot, config.admin_log_channel_id)
        self.repository = RosterRepository(
            RosterPolicy(
                lanes_enabled=config.lanes_enabled,
                twenty_waitlist=config.twenty_waitlist,
            )
        )
        self.store = store
        self.gate = StoreGate()
        self.engine = RosterEngine(
            self.repository,
            store,
            self.gate,
            today=self.today,
            on_store_error=self.reporter.report_store_error,
        )
        self.dispatcher = UpdateDispatcher(self.refresh_signup_message)
        kwargs = {}
        if config.riot_base_url:
            kwargs["base_url"] = config.riot_base_url
        if config.riot_callback_url:
            kwargs["callback_url"] = config.riot_callback_url
        if config.riot_region:
            kwargs["region"] = config.riot_region
        self.codes = code_client or TournamentCodeClient(config.riot_api_key, **kwargs)
        self.guild_object = (
            discord.Object(id=config.guild_id) if config.guild_id is not None else None
        )
        self.daily_reset_loop: tasks.Loop | None = None
        self.daily_recruit_loop: tasks.Loop | None = None
        self._view_registered = False
        self._health_runner = None

        self._register_commands()
        self.bot.event(self.on_ready)

    @classmethod
    def create(cls) -> InhouseRuntime:
        config = InhouseConfig.load()
        return cls(config, store=build_store(config))

    def today(self) -> datetime.date:
        return datetime.datetime.now(self.timezone).date()

    # ----- channel helpers -----
    def check_channel(self, interaction: discord.Interaction) -> bool:
        if interaction.channel_id == self.config.channel_id:
            return True
        raise app_commands.CheckFailure(
            f"This command can only be used in <#{self.config.channel_id}>."
        )

    async def _resolve_channel(self, channel_id: int) -> discord.abc.Messageable | None:
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.bot.fetch_channel(channel_id)
            except discord.HTTPException as exc:
                log.warning("Cannot fetch channel %s: %s", channel_id, exc)
                return None
        if not isinstance(channel, discord.abc.Messageable):
            log.warning("Channel %s is not a text channel", channel_id)
            return None
        return channel

    async def _resolver_for(self, guild: discord.Guild | None, state: RosterState) -> NameResolver:
        return await build_name_resolver(guild, roster_identifiers(state))

    # ----- signup message -----
    async def publish_signup(self, channel: discord.abc.Messageable, channel_id: int) -> discord.Message:
        """Send a fresh signup message and retire the previous one."""
        state = self.engine.snapshot(channel_id)
        guild = getattr(channel, "guild", None)
        payload = render(state, await self._resolver_for(guild, state))
        message = await channel.send(
            content=payload.content,
            view=SignupView(self),
            allowed_mentions=discord.AllowedMentions(everyone=payload.mention_everyone),
        )
        previous = self.engine.set_active_message(channel_id, message.id)
        if previous is not None and previous != message.id:
            try:
                old = await channel.fetch_message(previous)
                await old.delete()
            except discord.HTTPException as exc:
                log.info("Previous signup message %s not deleted: %s", previous, exc)
        return message

    async def refresh_signup_message(self, channel_id: int) -> None:
        state = self.engine.snapshot(channel_id)
        message_id = state.active_message_id
        if message_id is None:
            return
        channel = await self._resolve_channel(channel_id)
        if channel is None:
            raise RenderError(f"channel {channel_id} unavailable")
        try:
            message = await channel.fetch_message(message_id)
        except discord.NotFound as exc:
            if state.active_message_id == message_id:
                state.active_message_id = None
            raise RenderError(f"signup message {message_id} was deleted") from exc
        except discord.HTTPException as exc:
            raise RenderError(f"cannot fetch signup message {message_id}: {exc}") from exc

        guild = getattr(channel, "guild", None)
        payload = render(state, await self._resolver_for(guild, state))
        mentions = (
            discord.AllowedMentions(everyone=True)
            if payload.mention_everyone
            else discord.AllowedMentions.none()
        )
        try:
            await message.edit(content=payload.content, allowed_mentions=mentions)
        except discord.HTTPException as exc:
            raise RenderError(f"cannot edit signup message {message_id}: {exc}") from exc
        if not payload.mention_everyone:
            state.quiet_refresh = False

    # ----- buttons -----
    async def handle_button(
        self, interaction: discord.Interaction, action: str, lane: Lane | None
    ) -> None:
        try:
            await interaction.response.defer()
        except discord.HTTPException as exc:
            log.warning("Could not acknowledge button press: %s", exc)
            return

        channel_id = interaction.channel_id
        actor = actor_key(interaction.user)
        changed = False
        try:
            if action == "join":
                outcome = await self.engine.join(channel_id, actor)
                reply = JOIN_MESSAGES[outcome.status]
            elif action == "cancel":
                outcome = await self.engine.cancel(channel_id, actor)
                reply = CANCEL_MESSAGES[outcome.status]
            else:
                state = await self.engine.ensure_loaded(channel_id)
                if state.contains(actor):
                    outcome = await self.engine.change_lane(channel_id, actor, lane)
                    reply = LANE_MESSAGES[outcome.status]
                else:
                    outcome = await self.engine.join(channel_id, actor, lane)
                    reply = JOIN_MESSAGES[outcome.status]
            changed = outcome.sync.scheduled
        except Exception:  # pylint: disable=broad-except
            log.exception("Signup button %s failed for %s", action, actor)
            reply = GENERIC_FAILURE

        if changed:
            state = self.engine.snapshot(channel_id)
            if state.active_message_id is None and interaction.message is not None:
                state.active_message_id = interaction.message.id
            self.dispatcher.request_update(channel_id)

        try:
            await interaction.followup.send(reply, ephemeral=True)
        except discord.HTTPException as exc:
            log.warning("Button follow-up failed: %s", exc)

    # ----- commands -----
    def _command(self, **kwargs):
        if self.guild_object is not None:
            kwargs.setdefault("guild", self.guild_object)
        return self.tree.command(**kwargs)

    def _register_commands(self) -> None:
        runtime = self
        in_channel = app_commands.check(self.check_channel)

        @self._command(name="recruit", description="Post a new in-house signup message")
        @app_commands.describe(time="Start hour of the in-house (0-23)")
        @in_channel
        async def recruit(
            interaction: discord.Interaction,
            time: Optional[app_commands.Range[int, 0, 23]] = None,
        ) -> None:
            try:
                hour = parse_recruit_hour(time)
            except InvalidValueError as exc:
                await interaction.response.send_message(str(exc), ephemeral=True)
                return
            await interaction.response.defer(ephemeral=True, thinking=True)
            header = recruit_header(hour) if hour is not None else None
            await runtime.engine.start_recruitment(interaction.channel_id, header)
            await runtime.publish_signup(interaction.channel, interaction.channel_id)
            await interaction.followup.send("Signup message posted.", ephemeral=True)

        @self._command(name="members", description="Show the current in-house roster")
        @in_channel
        async def members(interaction: discord.Interaction) -> None:
            await interaction.response.defer(ephemeral=True, thinking=True)
            await runtime.engine.reload(interaction.channel_id)
            state = runtime.engine.snapshot(interaction.channel_id)
            resolver = await runtime._resolver_for(interaction.guild, state)
            await interaction.followup.send(render_members(state, resolver), ephemeral=True)

        @self._command(name="mode", description="Switch between 10- and 20-player in-houses")
        @app_commands.describe(size="Roster size")
        @app_commands.choices(
            size=[
                app_commands.Choice(name="10 players", value=10),
                app_commands.Choice(name="20 players", value=20),
            ]
        )
        @in_channel
        async def mode(
            interaction: discord.Interaction, size: app_commands.Choice[int]
        ) -> None:
            target = parse_mode(size.value)
            await interaction.response.defer(ephemeral=True, thinking=True)
            status = await runtime.engine.switch_mode(interaction.channel_id, target)
            if status == "already_in_mode":
                await interaction.followup.send(
                    f"Already in {target.value}-player mode.", ephemeral=True
                )
                return
            runtime.dispatcher.request_update(interaction.channel_id)
            await interaction.followup.send(
                f"Switched to {target.value}-player mode!", ephemeral=True
            )

        @self._command(name="begin", description="Call every participant to the in-house")
        @in_channel
        async def begin(interaction: discord.Interaction) -> None:
            state = runtime.engine.snapshot(interaction.channel_id)
            if not state.loaded:
                state = await runtime.engine.ensure_loaded(interaction.channel_id)
            if not state.participants:
                await interaction.response.send_message(
                    "There are no participants yet.", ephemeral=True
                )
                return
            mentions = await build_mentions(interaction.guild, state.participants)
            await interaction.response.send_message(
                " ".join(mentions) + "\nThe in-house is starting! Everyone gather up~",
                allowed_mentions=discord.AllowedMentions(everyone=False, users=True),
            )

        @self._command(name="initialize", description="Clear the roster, waitlist and sheet")
        @in_channel
        async def initialize(interaction: discord.Interaction) -> None:
            await interaction.response.defer(ephemeral=True, thinking=True)
            await runtime.engine.reset(interaction.channel_id)
            runtime.dispatcher.request_update(interaction.channel_id)
            await interaction.followup.send(
                "Cleared all participants, the waitlist and the sheet roster.",
                ephemeral=True,
            )

        @self._command(name="codes", description="Generate BO3 tournament codes")
        @in_channel
        async def codes(interaction: discord.Interaction) -> None:
            await interaction.response.defer(thinking=True)
            metadata = build_metadata(
                interaction.guild_id, interaction.channel_id, interaction.user.id
            )
            try:
                generated = await asyncio.to_thread(
                    runtime.codes.generate_bo3_codes, metadata
                )
            except RemoteApiError as exc:
                log.error("Tournament code generation failed: %s", exc)
                await interaction.followup.send(describe_error(exc))
                return
            await interaction.followup.send(format_codes_message(generated))

        @self._command(name="callout", description="Ask everyone to help fill the roster")
        @in_channel
        async def callout(interaction: discord.Interaction) -> None:
            await interaction.response.send_message(
                CALLOUT_MESSAGE,
                allowed_mentions=discord.AllowedMentions(everyone=True),
            )

        @self.tree.error
        async def on_app_command_error(
            interaction: discord.Interaction, error: app_commands.AppCommandError
        ) -> None:
            await runtime.handle_command_error(interaction, error)

    async def handle_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        if isinstance(error, app_commands.CheckFailure):
            message = str(error) or "You can't use this command here."
        else:
            log.exception("Unhandled command error: %s", error, exc_info=error)
            message = GENERIC_FAILURE
        try:
            if interaction.response.is_done():
                await interaction.followup.send(message, ephemeral=True)
            else:
                await interaction.response.send_message(message, ephemeral=True)
        except discord.HTTPException as exc:
            log.warning("Could not report command error: %s", exc)

    # ----- scheduled jobs -----
    async def run_daily_reset(self) -> None:
        channel_id = self.config.channel_id
        try:
            await self.engine.daily_reset(channel_id)
        except Exception:  # pylint: disable=broad-except
            log.exception("Daily roster reset failed")
            return
        self.dispatcher.request_update(channel_id)

    async def run_daily_auto_recruit(self) -> None:
        channel_id = self.config.channel_id
        try:
            if not await self.engine.daily_auto_recruit(channel_id):
                return
            channel = await self._resolve_channel(channel_id)
            if channel is None:
                return
            await self.publish_signup(channel, channel_id)
            log.info("Auto-recruit signup posted in channel %s", channel_id)
        except Exception:  # pylint: disable=broad-except
            log.exception("Daily auto-recruit failed")

    def start_tasks(self) -> None:
        if self.daily_reset_loop is None:
            reset_at = datetime.time(hour=self.config.reset_hour, tzinfo=self.timezone)
            self.daily_reset_loop = tasks.loop(time=reset_at)(self.run_daily_reset)
        if self.daily_recruit_loop is None:
            recruit_at = datetime.time(hour=self.config.recruit_hour, tzinfo=self.timezone)
            self.daily_recruit_loop = tasks.loop(time=recruit_at)(
                self.run_daily_auto_recruit
            )
        for loop in (self.daily_reset_loop, self.daily_recruit_loop):
            if not loop.is_running():
                loop.start()

    # ----- lifecycle -----
    async def on_ready(self) -> None:
        if self.guild_object is not None:
            await self.tree.sync(guild=self.guild_object)
        else:
            await self.tree.sync()
        if not self._view_registered:
            self.bot.add_view(SignupView(self))
            self._view_registered = True
        self.start_tasks()
        log.info("Bot ready as %s (%s)", self.bot.user, getattr(self.bot.user, "id", "?"))

    async def run(self) -> None:
        if self.config.health_server:
            self._health_runner = await start_health_server(self.config.port)
        try:
            async with self.bot:
                await self.bot.start(self.config.discord_token)
        finally:
            await self.engine.drain()
            if self._health_runner is not None:
                await self._health_runner.cleanup()


async def main() -> None:
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    runtime = InhouseRuntime.create()
    await runtime.run()


def run() -> None:
    asyncio.run(main())


__all__ = [
    "InhouseRuntime",
    "SignupView",
    "actor_key",
    "build_mentions",
    "build_name_resolver",
    "lookup_member",
    "main",
    "run",
]
