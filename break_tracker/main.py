from __future__ import annotations

import logging

import discord
from discord.ext import commands, tasks
from dotenv import load_dotenv

from .commands import register_commands
from .config import Config, load_config
from .db import Database
from .geo import NominatimGeocoder
from .identity import IdentityStore
from .reporter import Reporter
from .repository import HttpLogRepository, LogRepository, SqliteLogRepository
from .session import BreakSession
from .storage import ScopedStore


def member_scope(user_id: int | str) -> str:
    return f"member:{user_id}"


def build_repository(config: Config, db: Database) -> LogRepository:
    if config.log_store_url:
        return HttpLogRepository(config.log_store_url)
    return SqliteLogRepository(db)


class BreakTrackerBot(commands.Bot):
    def __init__(self, config: Config, db: Database) -> None:
        intents = discord.Intents.none()
        intents.guilds = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.db = db
        self.repository = build_repository(config, db)
        self.geocoder = NominatimGeocoder(config.geocoder_user_agent)
        self.reporter = Reporter(config.timezone)

        self.logger = logging.getLogger("break-tracker-bot")

        # One session per member; each member's local state lives in its own scope.
        self.sessions: dict[str, BreakSession] = {}

    def session_for(self, user_id: int | str) -> BreakSession:
        key = str(user_id)
        session = self.sessions.get(key)
        if session is None:
            identities = IdentityStore(ScopedStore(self.db, member_scope(key)))
            session = BreakSession(
                identities,
                self.repository,
                geocoder=self.geocoder,
                display_limit=self.config.own_logs_limit,
                leaderboard_size=self.config.leaderboard_size,
                anchor_fallback=self.config.local_leaderboard_fallback,
                geolocation_timeout=self.config.geolocation_timeout_seconds,
            )
            self.sessions[key] = session
        return session

    async def setup_hook(self) -> None:
        register_commands(self)
        await self.tree.sync(guild=discord.Object(id=self.config.guild_id))
        self.timer_tick_loop.start()

    async def on_ready(self) -> None:
        self.logger.info("Connected as %s (%s)", self.user, self.user.id if self.user else "unknown")
        self.logger.info(
            "Log store: %s",
            self.config.log_store_url or f"local database {self.config.database_path}",
        )

    @tasks.loop(seconds=1)
    async def timer_tick_loop(self) -> None:
        for session in self.sessions.values():
            if session.timer.running:
                session.tick()

    @timer_tick_loop.before_loop
    async def before_timer_tick_loop(self) -> None:
        await self.wait_until_ready()

    async def close(self) -> None:
        if self.timer_tick_loop.is_running():
            self.timer_tick_loop.cancel()
        self.db.close()
        await super().close()


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main() -> None:
    load_dotenv()
    configure_logging()

    config = load_config()
    db = Database(config.database_path)
    db.initialize()

    bot = BreakTrackerBot(config=config, db=db)
    bot.run(config.discord_token)


if __name__ == "__main__":
    main()
