from __future__ import annotations

from typing import TYPE_CHECKING, Literal

import discord

from .errors import BreakTrackerError, GeolocationError, MissingRateError
from .geo import fixed_position
from .models import LocationMethod, compute_earnings
from .recovery import NOT_FOUND_MESSAGE
from .reporter import format_clock, format_duration, format_money

if TYPE_CHECKING:
    from .main import BreakTrackerBot


async def _send(interaction: discord.Interaction, content: str) -> None:
    if interaction.response.is_done():
        await interaction.followup.send(content, ephemeral=True)
    else:
        await interaction.response.send_message(content, ephemeral=True)


def register_commands(bot: BreakTrackerBot) -> None:
    """Register all slash commands on the bot. Called once during setup."""
    guild_scope = discord.Object(id=bot.config.guild_id)

    @bot.tree.command(name="set-rate", description="Set your salary or hourly rate", guild=guild_scope)
    async def set_rate(interaction: discord.Interaction, amount: float, unit: Literal["hourly", "annual"] = "hourly"):
        session = bot.session_for(interaction.user.id)
        created = not session.identity.is_complete
        try:
            rate = session.set_rate(amount, unit)
        except (BreakTrackerError, ValueError) as exc:
            await _send(interaction, str(exc))
            return

        lines = [f"Rate saved: {format_money(rate)}/hr."]
        if created:
            lines.append(bot.reporter.build_identity_content(session.identity, rate))
        await _send(interaction, "\n".join(lines))

    @bot.tree.command(name="start-break", description="Start timing a break", guild=guild_scope)
    async def start_break(interaction: discord.Interaction):
        session = bot.session_for(interaction.user.id)
        if not session.identity.is_complete:
            await _send(interaction, "No identity yet. Use `/set-rate` to create one, or `/recover` with your code.")
            return
        try:
            session.start_break()
        except MissingRateError as exc:
            await _send(interaction, f"{exc} Use `/set-rate` first.")
            return
        except BreakTrackerError as exc:
            await _send(interaction, str(exc))
            return
        await _send(interaction, "Break started. Use `/finish-break` when you're done.")

    @bot.tree.command(name="finish-break", description="Stop the timer for the current break", guild=guild_scope)
    async def finish_break(interaction: discord.Interaction):
        session = bot.session_for(interaction.user.id)
        try:
            elapsed = session.finish_break()
        except BreakTrackerError as exc:
            await _send(interaction, str(exc))
            return

        earned = compute_earnings(session.rate or 0, elapsed)
        await _send(
            interaction,
            f"Break finished at `{format_clock(elapsed)}` ({format_money(earned)}).\n"
            "Use `/log-break` with your coordinates or a city to save it, or `/cancel-log`.",
        )

    @bot.tree.command(name="log-break", description="Save the finished break", guild=guild_scope)
    async def log_break(
        interaction: discord.Interaction,
        city: str | None = None,
        lat: float | None = None,
        lng: float | None = None,
        skip_location: bool = False,
    ):
        session = bot.session_for(interaction.user.id)
        provider = None
        if lat is not None and lng is not None:
            method = LocationMethod.AUTO
            provider = fixed_position(lat, lng)
        elif city:
            method = LocationMethod.MANUAL
        elif skip_location:
            method = LocationMethod.SKIPPED
        else:
            await _send(interaction, "Location is required: pass `lat` and `lng`, a `city`, or `skip_location`.")
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            record = await session.submit_log(method, city=city, position_provider=provider)
        except GeolocationError as exc:
            await _send(interaction, str(exc))
            return
        except BreakTrackerError as exc:
            bot.logger.warning("/log-break failed for %s: %s", interaction.user.id, exc)
            await _send(interaction, f"Failed to submit log: {exc}")
            return

        await _send(interaction, bot.reporter.build_logged_content(record))

    @bot.tree.command(name="cancel-log", description="Discard the pending log prompt", guild=guild_scope)
    async def cancel_log(interaction: discord.Interaction):
        session = bot.session_for(interaction.user.id)
        try:
            session.cancel_log()
        except BreakTrackerError as exc:
            await _send(interaction, str(exc))
            return
        await _send(interaction, f"Not logged. Timer reading kept at `{format_duration(session.timer.elapsed)}`.")

    @bot.tree.command(name="history", description="Show your recent breaks", guild=guild_scope)
    async def history(interaction: discord.Interaction, show_all: bool = False):
        session = bot.session_for(interaction.user.id)
        if not session.identity.is_complete:
            await _send(interaction, bot.reporter.build_identity_content(session.identity, None))
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            views = await session.refresh()
        except BreakTrackerError as exc:
            await _send(interaction, f"Could not load your breaks: {exc}")
            return

        if show_all:
            session.show_all_logs()
        content = bot.reporter.build_history_content(session.identity, session.visible_own_logs, len(views.own_logs))
        await _send(interaction, content)

    @bot.tree.command(name="leaderboard", description="Show the local and global top breaks", guild=guild_scope)
    async def leaderboard(interaction: discord.Interaction):
        session = bot.session_for(interaction.user.id)
        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            views = await session.refresh()
        except BreakTrackerError as exc:
            await _send(interaction, f"Could not load leaderboards: {exc}")
            return
        await _send(interaction, bot.reporter.build_leaderboard_content(views))

    @bot.tree.command(name="recover", description="Restore your identity with a recovery code", guild=guild_scope)
    async def recover(interaction: discord.Interaction, code: str):
        session = bot.session_for(interaction.user.id)
        if not code.strip():
            await _send(interaction, "Enter recovery code.")
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            recovered = await session.recover(code)
        except BreakTrackerError as exc:
            await _send(interaction, f"Data fetch error: {exc}")
            return

        if recovered is None:
            await _send(interaction, NOT_FOUND_MESSAGE)
            return
        await _send(interaction, bot.reporter.build_identity_content(recovered, session.rate))

    @bot.tree.command(name="whoami", description="Show your username, rate and recovery code", guild=guild_scope)
    async def whoami(interaction: discord.Interaction):
        session = bot.session_for(interaction.user.id)
        await _send(interaction, bot.reporter.build_identity_content(session.identity, session.rate))

    @bot.tree.command(name="logout", description="Forget your identity on this account", guild=guild_scope)
    async def logout(interaction: discord.Interaction):
        session = bot.session_for(interaction.user.id)
        try:
            session.logout()
        except BreakTrackerError as exc:
            await _send(interaction, str(exc))
            return
        await _send(interaction, "Logged out. Your recovery code still works with `/recover`.")
