from __future__ import annotations

from typing import Any

from discord import app_commands


GUILD_ONLY_TEXT = "Only usable inside a server."
NO_PERMISSION_TEXT = "❌ You need Administrator or Manage Server to use this command."
CONFIG_UNAVAILABLE_TEXT = "❌ Could not load alert settings right now. Please try again."


async def is_guild_admin(interaction: Any) -> bool:
    perms = getattr(getattr(interaction, "user", None), "guild_permissions", None)
    if perms is None:
        return False
    return bool(getattr(perms, "administrator", False) or getattr(perms, "manage_guild", False))


def guild_admin_check():
    return app_commands.check(is_guild_admin)
