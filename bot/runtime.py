from __future__ import annotations

import logging
import os
from typing import Any

import discord
from discord import app_commands

from bot.config import BotConfig, load_config
from bot.logging import setup_logging
from bot.main import AlertApplication
from features.commands import register_commands


log = logging.getLogger("vcalert.runtime")


def build_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True
    intents.presences = True
    intents.voice_states = True
    return intents


class VoiceAlertBot(discord.Client):
    def __init__(self, config: BotConfig, *, app: AlertApplication | None = None) -> None:
        super().__init__(intents=build_intents())
        self.config = config
        self.app = app or AlertApplication(config=config)
        self.tree = app_commands.CommandTree(self)
        self._commands_registered = False
        self._commands_synced = False

    async def setup_hook(self) -> None:
        await self.app.setup()
        if not self._commands_registered:
            register_commands(self.tree, self.app)
            self._commands_registered = True

    async def on_ready(self) -> None:
        if not self._commands_synced:
            try:
                synced = await self.tree.sync()
                log.info("Synced %s slash commands", len(synced))
            except Exception:
                log.exception("Global command sync failed")
            self._commands_synced = True
        log.info("Voice alert bot ready as %s in %s guild(s)", self.user, len(self.guilds))

    async def on_voice_state_update(self, member: Any, before: Any, after: Any) -> None:
        await self.app.engine.handle_voice_state(member, before, after)

    async def on_presence_update(self, before: Any, after: Any) -> None:
        await self.app.engine.handle_presence(after, getattr(before, "status", None), getattr(after, "status", None))

    async def on_guild_channel_delete(self, channel: Any) -> None:
        self.app.engine.forget_room(channel.id)

    async def on_raw_thread_delete(self, payload: Any) -> None:
        self.app.engine.forget_thread(payload.thread_id)

    async def close(self) -> None:
        try:
            await self.app.close()
        except Exception:
            log.exception("Failed to shut down alert application cleanly")
        await super().close()


def run() -> int:
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))

    try:
        config = load_config()
    except ValueError as exc:
        log.error("Config error: %s", exc)
        return 1

    setup_logging(config.log_level)
    if not config.discord_token:
        log.error("DISCORD_TOKEN missing")
        return 1

    bot = VoiceAlertBot(config)
    try:
        bot.run(config.discord_token, log_handler=None)
    except KeyboardInterrupt:
        return 0
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
