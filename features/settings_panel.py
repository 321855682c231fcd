from __future__ import annotations

import logging
from typing import Any

import discord
from discord.ui import View

from db.repository import GuildAlertConfig
from features.access import CONFIG_UNAVAILABLE_TEXT, GUILD_ONLY_TEXT, NO_PERMISSION_TEXT, is_guild_admin
from gateway.safety import safe_edit_response, safe_followup, safe_send_initial
from services.settings_cache import ConfigUnavailableError
from services.settings_service import TOGGLE_SETTINGS, reset_settings, toggle_setting
from utils.text import on_off


log = logging.getLogger("vcalert.panel")

PANEL_TIMEOUT_SECONDS = 300
RESET_CONFIRM_TEXT = "Are you sure you want to reset all VC alert settings to default?"
RESET_DONE_TEXT = "♻️ All settings have been restored to default."

# Toggle buttons: label, and whether an enabled toggle renders as primary instead of success.
_TOGGLE_BUTTONS: dict[str, tuple[str, bool]] = {
    "join": ("👋 Join", True),
    "leave": ("🏃 Leave", True),
    "online": ("🟢 Online", True),
    "private_threads": ("🪪 Private Alerts", False),
    "ignore_role": ("🙈 Ignore Alerts", False),
    "auto_delete": ("🧹 Auto-Delete", False),
}


def settings_panel_embed(config: GuildAlertConfig, guild: Any, *, auto_delete_seconds: float) -> discord.Embed:
    def ch_mention(cid: int | None) -> str:
        if not cid:
            return "not set"
        get_channel = getattr(guild, "get_channel", None)
        channel = get_channel(cid) if callable(get_channel) else None
        return channel.mention if channel is not None else f"<#{cid}>"

    role = f"<@&{config.ignored_role_id}>" if config.ignored_role_id else "not set"
    lines = [
        f"**Alert channel:** {ch_mention(config.text_channel_id)}",
        f"**Status:** {'🟢 active' if config.alerts_enabled else '🔴 inactive'}",
        f"**Join alerts:** `{on_off(config.join_alerts)}`",
        f"**Leave alerts:** `{on_off(config.leave_alerts)}`",
        f"**Online alerts:** `{on_off(config.online_alerts)}`",
        f"**Private room threads:** `{on_off(config.private_thread_alerts)}`",
        f"**Ignored role:** {role} (`{on_off(config.ignore_role_enabled)}`)",
        f"**Auto delete ({int(auto_delete_seconds)}s):** `{on_off(config.auto_delete)}`",
    ]
    embed = discord.Embed(description="\n".join(lines), color=discord.Color.blurple())
    embed.set_author(name="🎛️ VC Alert Control Panel")
    embed.set_footer(text=getattr(guild, "name", None) or "Voice alerts")
    return embed


class _GuildAdminView(View):
    def __init__(self, app: Any, guild_id: int):
        super().__init__(timeout=PANEL_TIMEOUT_SECONDS)
        self.app = app
        self.guild_id = int(guild_id)

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        guild = interaction.guild
        if guild is None or guild.id != self.guild_id:
            await safe_send_initial(interaction, GUILD_ONLY_TEXT, ephemeral=True)
            return False
        if not await is_guild_admin(interaction):
            await safe_send_initial(interaction, NO_PERMISSION_TEXT, ephemeral=True)
            return False
        return True

    def _embed(self, config: GuildAlertConfig, guild: Any) -> discord.Embed:
        return settings_panel_embed(config, guild, auto_delete_seconds=self.app.config.alert_auto_delete_seconds)

    async def _show_panel(self, interaction: discord.Interaction, config: GuildAlertConfig) -> None:
        view = SettingsPanelView(self.app, self.guild_id, config)
        await safe_edit_response(interaction, content=None, embed=view._embed(config, interaction.guild), view=view)


class SettingsPanelView(_GuildAdminView):
    def __init__(self, app: Any, guild_id: int, config: GuildAlertConfig):
        super().__init__(app, guild_id)
        self.refresh(config)

    def _toggle_buttons(self) -> dict[str, discord.ui.Button]:
        return {
            "join": self.toggle_join,
            "leave": self.toggle_leave,
            "online": self.toggle_online,
            "private_threads": self.toggle_private_threads,
            "ignore_role": self.toggle_ignore_role,
            "auto_delete": self.toggle_auto_delete,
        }

    def refresh(self, config: GuildAlertConfig) -> None:
        for setting, button in self._toggle_buttons().items():
            label, primary = _TOGGLE_BUTTONS[setting]
            enabled = bool(getattr(config, TOGGLE_SETTINGS[setting]))
            if not enabled:
                button.style = discord.ButtonStyle.secondary
            else:
                button.style = discord.ButtonStyle.primary if primary else discord.ButtonStyle.success
            button.label = f"{label}: {on_off(enabled)}"

    async def _toggle(self, interaction: discord.Interaction, setting: str) -> None:
        try:
            config = await toggle_setting(self.app.cache, self.guild_id, setting)
        except ConfigUnavailableError:
            log.warning("Panel toggle %s skipped, config unavailable for guild %s", setting, self.guild_id)
            await safe_send_initial(interaction, CONFIG_UNAVAILABLE_TEXT, ephemeral=True)
            return
        self.refresh(config)
        await safe_edit_response(interaction, embed=self._embed(config, interaction.guild), view=self)

    @discord.ui.button(label="👋 Join", style=discord.ButtonStyle.primary, row=0)
    async def toggle_join(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._toggle(interaction, "join")

    @discord.ui.button(label="🏃 Leave", style=discord.ButtonStyle.primary, row=0)
    async def toggle_leave(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._toggle(interaction, "leave")

    @discord.ui.button(label="🟢 Online", style=discord.ButtonStyle.primary, row=0)
    async def toggle_online(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._toggle(interaction, "online")

    @discord.ui.button(label="🪪 Private Alerts", style=discord.ButtonStyle.success, row=1)
    async def toggle_private_threads(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._toggle(interaction, "private_threads")

    @discord.ui.button(label="🙈 Ignore Alerts", style=discord.ButtonStyle.success, row=1)
    async def toggle_ignore_role(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._toggle(interaction, "ignore_role")

    @discord.ui.button(label="🧹 Auto-Delete", style=discord.ButtonStyle.success, row=1)
    async def toggle_auto_delete(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._toggle(interaction, "auto_delete")

    @discord.ui.button(label="♻️ Reset Settings", style=discord.ButtonStyle.danger, row=2)
    async def reset_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        await safe_edit_response(
            interaction,
            content=RESET_CONFIRM_TEXT,
            embed=None,
            view=ResetConfirmView(self.app, self.guild_id),
        )


class ResetConfirmView(_GuildAdminView):
    @discord.ui.button(label="✅ Confirm Reset", style=discord.ButtonStyle.danger)
    async def confirm_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        config = await reset_settings(self.app.cache, self.guild_id)
        log.info("Alert settings reset from panel guild_id=%s user_id=%s", self.guild_id, interaction.user.id)
        await self._show_panel(interaction, config)
        await safe_followup(interaction, RESET_DONE_TEXT, ephemeral=True)

    @discord.ui.button(label="❌ Cancel", style=discord.ButtonStyle.secondary)
    async def cancel_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        try:
            config = await self.app.cache.load(self.guild_id)
        except ConfigUnavailableError:
            await safe_send_initial(interaction, CONFIG_UNAVAILABLE_TEXT, ephemeral=True)
            return
        await self._show_panel(interaction, config)


async def settings_command(app: Any, interaction: Any) -> None:
    guild = interaction.guild
    if guild is None:
        await safe_send_initial(interaction, GUILD_ONLY_TEXT, ephemeral=True)
        return
    try:
        config = await app.cache.load(guild.id)
    except ConfigUnavailableError:
        log.warning("Settings panel unavailable for guild %s", guild.id, exc_info=True)
        await safe_send_initial(interaction, CONFIG_UNAVAILABLE_TEXT, ephemeral=True)
        return
    view = SettingsPanelView(app, guild.id, config)
    await safe_send_initial(interaction, None, embed=view._embed(config, guild), view=view, ephemeral=True)
