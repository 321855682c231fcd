from __future__ import annotations

import io
import logging
from typing import Any

import discord
from discord import app_commands

from features.access import (
    CONFIG_UNAVAILABLE_TEXT,
    GUILD_ONLY_TEXT,
    NO_PERMISSION_TEXT,
    guild_admin_check,
)
from features.settings_panel import settings_command
from gateway.safety import safe_defer, safe_followup, safe_send_initial
from services.activity_log_service import (
    ACTIVITY_EXPORT_LIMIT,
    DEFAULT_LOG_RANGE,
    LOG_RANGES,
    RECENT_LOG_LIMIT,
    activity_export_filename,
    describe_entry,
    render_activity_export,
)
from services.settings_cache import ConfigUnavailableError
from services.settings_service import (
    TOGGLE_SETTINGS,
    activate_alerts,
    clear_ignored_role,
    deactivate_alerts,
    reset_settings,
    set_ignored_role,
    settings_status_lines,
    toggle_setting,
)
from utils.text import on_off, short_list


log = logging.getLogger("vcalert.commands")

COMMAND_NAMES = (
    "activate",
    "alerts_reset",
    "alerts_status",
    "alerts_toggle",
    "deactivate",
    "logs",
    "resetignorerole",
    "setignorerole",
    "settings",
)


def registered_command_names() -> list[str]:
    return list(COMMAND_NAMES)


def alert_channel_problem(channel: Any, me: Any) -> str | None:
    """Why ``channel`` cannot receive alerts, or ``None`` when it can."""
    if channel is None or getattr(channel, "type", None) != discord.ChannelType.text:
        return "❌ Alerts can only be sent to a regular text channel."
    if me is None:
        return "❌ Could not resolve my own server membership."
    perms = channel.permissions_for(me)
    if not (perms.view_channel and perms.send_messages):
        return f"❌ I need View Channel and Send Messages in {channel.mention}."
    return None


async def _reply(interaction: Any, content: str) -> None:
    await safe_send_initial(interaction, content, ephemeral=True)


async def _config_unavailable(interaction: Any, guild_id: int) -> None:
    log.warning("Alert settings unavailable guild_id=%s, mutation skipped", guild_id)
    await _reply(interaction, CONFIG_UNAVAILABLE_TEXT)


async def activate_command(app: Any, interaction: Any, channel: Any | None = None) -> None:
    guild = interaction.guild
    if guild is None:
        await _reply(interaction, GUILD_ONLY_TEXT)
        return
    target = channel or interaction.channel
    problem = alert_channel_problem(target, getattr(guild, "me", None))
    if problem:
        await _reply(interaction, problem)
        return

    try:
        _config, changed = await activate_alerts(app.cache, guild.id, target.id)
    except ConfigUnavailableError:
        await _config_unavailable(interaction, guild.id)
        return
    if not changed:
        await _reply(interaction, f"ℹ️ Alerts are already active in {target.mention}.")
        return
    log.info("Alerts activated guild_id=%s channel_id=%s user_id=%s", guild.id, target.id, interaction.user.id)
    await _reply(interaction, f"✅ Voice alerts will be posted in {target.mention}.")


async def deactivate_command(app: Any, interaction: Any) -> None:
    guild = interaction.guild
    if guild is None:
        await _reply(interaction, GUILD_ONLY_TEXT)
        return
    try:
        _config, changed = await deactivate_alerts(app.cache, guild.id)
    except ConfigUnavailableError:
        await _config_unavailable(interaction, guild.id)
        return
    if not changed:
        await _reply(interaction, "ℹ️ Alerts are already inactive.")
        return
    log.info("Alerts deactivated guild_id=%s user_id=%s", guild.id, interaction.user.id)
    await _reply(interaction, "🔕 Voice alerts deactivated.")


async def toggle_command(app: Any, interaction: Any, setting: str) -> None:
    guild = interaction.guild
    if guild is None:
        await _reply(interaction, GUILD_ONLY_TEXT)
        return
    try:
        config = await toggle_setting(app.cache, guild.id, setting)
    except ConfigUnavailableError:
        await _config_unavailable(interaction, guild.id)
        return
    except ValueError:
        await _reply(interaction, f"❌ Unknown setting `{setting}`.")
        return
    value = getattr(config, TOGGLE_SETTINGS[setting])
    await _reply(interaction, f"✅ `{setting}` is now `{on_off(value)}`.")


async def set_ignore_role_command(app: Any, interaction: Any, role: Any) -> None:
    guild = interaction.guild
    if guild is None:
        await _reply(interaction, GUILD_ONLY_TEXT)
        return
    try:
        await set_ignored_role(app.cache, guild.id, role.id)
    except ConfigUnavailableError:
        await _config_unavailable(interaction, guild.id)
        return
    await _reply(interaction, f"✅ Members with {role.mention} will no longer trigger alerts.")


async def reset_ignore_role_command(app: Any, interaction: Any) -> None:
    guild = interaction.guild
    if guild is None:
        await _reply(interaction, GUILD_ONLY_TEXT)
        return
    try:
        await clear_ignored_role(app.cache, guild.id)
    except ConfigUnavailableError:
        await _config_unavailable(interaction, guild.id)
        return
    await _reply(interaction, "✅ Ignored role cleared.")


async def reset_command(app: Any, interaction: Any) -> None:
    guild = interaction.guild
    if guild is None:
        await _reply(interaction, GUILD_ONLY_TEXT)
        return
    await reset_settings(app.cache, guild.id)
    log.info("Alert settings reset guild_id=%s user_id=%s", guild.id, interaction.user.id)
    await _reply(interaction, "♻️ Alert settings reset to defaults. Use /activate to turn alerts back on.")


async def status_command(app: Any, interaction: Any) -> None:
    guild = interaction.guild
    if guild is None:
        await _reply(interaction, GUILD_ONLY_TEXT)
        return
    try:
        config = await app.cache.load(guild.id)
    except ConfigUnavailableError:
        await _reply(interaction, CONFIG_UNAVAILABLE_TEXT)
        return
    await _reply(interaction, f"**Alert settings for {guild.name}**\n" + "\n".join(settings_status_lines(config)))


async def logs_command(app: Any, interaction: Any, range_name: str = DEFAULT_LOG_RANGE, user: Any | None = None) -> None:
    guild = interaction.guild
    if guild is None:
        await _reply(interaction, GUILD_ONLY_TEXT)
        return
    await safe_defer(interaction, ephemeral=True)

    actor_id = getattr(user, "id", None)
    try:
        entries = await app.recorder.recent(
            guild.id,
            range_name=range_name,
            actor_id=actor_id,
            limit=ACTIVITY_EXPORT_LIMIT,
        )
    except Exception:
        log.exception("Activity log lookup failed guild_id=%s", guild.id)
        await safe_followup(interaction, "❌ Could not load activity logs right now.", ephemeral=True)
        return

    who = f" for {user.mention}" if user is not None else ""
    header = f"**Activity ({range_name}){who}**"
    if not entries:
        await safe_followup(interaction, f"{header}\nNo activity recorded.", ephemeral=True)
        return

    # Message shows the newest entries; the attachment carries every match.
    lines = [describe_entry(entry) for entry in entries[:RECENT_LOG_LIMIT]]
    if len(entries) > RECENT_LOG_LIMIT:
        lines.append(f"... +{len(entries) - RECENT_LOG_LIMIT} more in the attached file")
    export = render_activity_export(entries, guild_name=guild.name, range_name=range_name)
    attachment = discord.File(io.BytesIO(export.encode("utf-8")), filename=activity_export_filename(guild.name))
    await safe_followup(interaction, f"{header}\n{short_list(lines)}", ephemeral=True, file=attachment)


def register_commands(tree: app_commands.CommandTree, app: Any) -> None:
    @tree.command(name="activate", description="Post voice alerts in this or the given text channel")
    @guild_admin_check()
    @app_commands.describe(channel="Text channel for alerts (defaults to this one)")
    async def activate_cmd(interaction: discord.Interaction, channel: discord.TextChannel | None = None):
        await activate_command(app, interaction, channel)

    @tree.command(name="deactivate", description="Stop posting voice alerts")
    @guild_admin_check()
    async def deactivate_cmd(interaction: discord.Interaction):
        await deactivate_command(app, interaction)

    @tree.command(name="alerts_toggle", description="Turn a single alert setting on or off")
    @guild_admin_check()
    @app_commands.describe(setting="Setting to flip")
    @app_commands.choices(setting=[app_commands.Choice(name=name, value=name) for name in TOGGLE_SETTINGS])
    async def toggle_cmd(interaction: discord.Interaction, setting: app_commands.Choice[str]):
        await toggle_command(app, interaction, setting.value)

    @tree.command(name="setignorerole", description="Members with this role never trigger alerts")
    @guild_admin_check()
    @app_commands.describe(role="Role to ignore")
    async def set_ignore_role_cmd(interaction: discord.Interaction, role: discord.Role):
        await set_ignore_role_command(app, interaction, role)

    @tree.command(name="resetignorerole", description="Clear the ignored role")
    @guild_admin_check()
    async def reset_ignore_role_cmd(interaction: discord.Interaction):
        await reset_ignore_role_command(app, interaction)

    @tree.command(name="alerts_reset", description="Reset all alert settings to defaults")
    @guild_admin_check()
    async def reset_cmd(interaction: discord.Interaction):
        await reset_command(app, interaction)

    @tree.command(name="settings", description="Open the alert control panel")
    @guild_admin_check()
    async def settings_cmd(interaction: discord.Interaction):
        await settings_command(app, interaction)

    @tree.command(name="alerts_status", description="Show the current alert settings")
    @guild_admin_check()
    async def status_cmd(interaction: discord.Interaction):
        await status_command(app, interaction)

    @tree.command(name="logs", description="Show recent voice and presence activity")
    @guild_admin_check()
    @app_commands.describe(range="Time range", user="Only show this member")
    @app_commands.choices(range=[app_commands.Choice(name=name, value=name) for name in LOG_RANGES])
    async def logs_cmd(
        interaction: discord.Interaction,
        range: app_commands.Choice[str] | None = None,
        user: discord.Member | None = None,
    ):
        await logs_command(app, interaction, range.value if range else DEFAULT_LOG_RANGE, user)

    @tree.error
    async def on_command_error(interaction: discord.Interaction, error: app_commands.AppCommandError):
        if isinstance(error, app_commands.CheckFailure):
            await _reply(interaction, NO_PERMISSION_TEXT)
            return
        command_name = getattr(getattr(interaction, "command", None), "name", None)
        log.error("Slash command /%s failed", command_name, exc_info=error)
        await _reply(interaction, "❌ Something went wrong while running this command.")
