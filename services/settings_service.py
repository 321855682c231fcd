from __future__ import annotations

from dataclasses import replace

from db.repository import GuildAlertConfig
from services.settings_cache import WriteBackConfigCache
from utils.text import on_off


TOGGLE_SETTINGS: dict[str, str] = {
    "join": "join_alerts",
    "leave": "leave_alerts",
    "online": "online_alerts",
    "private_threads": "private_thread_alerts",
    "auto_delete": "auto_delete",
    "ignore_role": "ignore_role_enabled",
}


async def activate_alerts(
    cache: WriteBackConfigCache,
    guild_id: int,
    channel_id: int,
) -> tuple[GuildAlertConfig, bool]:
    """Enables alerts into ``channel_id``; the flag is False when nothing changed."""
    current = await cache.load(guild_id)
    if current.alerts_enabled and current.text_channel_id == int(channel_id):
        return current, False
    return cache.update(replace(current, alerts_enabled=True, text_channel_id=int(channel_id))), True


async def deactivate_alerts(cache: WriteBackConfigCache, guild_id: int) -> tuple[GuildAlertConfig, bool]:
    current = await cache.load(guild_id)
    if not current.alerts_enabled:
        return current, False
    return cache.update(replace(current, alerts_enabled=False)), True


async def toggle_setting(cache: WriteBackConfigCache, guild_id: int, setting: str) -> GuildAlertConfig:
    field_name = TOGGLE_SETTINGS.get(setting)
    if field_name is None:
        raise ValueError(f"Unknown alert setting: {setting}")
    current = await cache.load(guild_id)
    return cache.update(replace(current, **{field_name: not getattr(current, field_name)}))


async def set_ignored_role(cache: WriteBackConfigCache, guild_id: int, role_id: int) -> GuildAlertConfig:
    current = await cache.load(guild_id)
    return cache.update(replace(current, ignored_role_id=int(role_id), ignore_role_enabled=True))


async def clear_ignored_role(cache: WriteBackConfigCache, guild_id: int) -> GuildAlertConfig:
    current = await cache.load(guild_id)
    return cache.update(replace(current, ignored_role_id=None, ignore_role_enabled=False))


async def reset_settings(cache: WriteBackConfigCache, guild_id: int) -> GuildAlertConfig:
    return await cache.reset(guild_id)


def settings_status_lines(config: GuildAlertConfig) -> list[str]:
    channel = f"<#{config.text_channel_id}>" if config.text_channel_id else "not set"
    role = f"<@&{config.ignored_role_id}>" if config.ignored_role_id else "not set"
    return [
        f"Alerts: `{on_off(config.alerts_enabled)}`",
        f"Alert channel: {channel}",
        f"Join alerts: `{on_off(config.join_alerts)}`",
        f"Leave alerts: `{on_off(config.leave_alerts)}`",
        f"Online alerts: `{on_off(config.online_alerts)}`",
        f"Private room threads: `{on_off(config.private_thread_alerts)}`",
        f"Auto delete: `{on_off(config.auto_delete)}`",
        f"Ignored role: {role} (`{on_off(config.ignore_role_enabled)}`)",
    ]
