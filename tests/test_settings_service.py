from __future__ import annotations

import pytest

from db.repository import GuildAlertConfig
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


@pytest.mark.asyncio
async def test_activate_reports_already_active_for_same_channel(cache):
    config, changed = await activate_alerts(cache, 1, 100)
    again, changed_again = await activate_alerts(cache, 1, 100)
    moved, moved_changed = await activate_alerts(cache, 1, 200)

    assert changed is True
    assert config.alerts_enabled is True
    assert changed_again is False
    assert again is config
    assert moved_changed is True
    assert moved.text_channel_id == 200


@pytest.mark.asyncio
async def test_deactivate_keeps_channel_and_reports_noop(cache):
    await activate_alerts(cache, 1, 100)

    config, changed = await deactivate_alerts(cache, 1)
    _config, changed_again = await deactivate_alerts(cache, 1)

    assert changed is True
    assert config.alerts_enabled is False
    assert config.text_channel_id == 100
    assert changed_again is False


@pytest.mark.asyncio
async def test_toggle_flips_each_known_setting(cache):
    defaults = GuildAlertConfig(guild_id=1)
    for setting, field_name in TOGGLE_SETTINGS.items():
        config = await toggle_setting(cache, 1, setting)
        assert getattr(config, field_name) is not getattr(defaults, field_name)

    with pytest.raises(ValueError):
        await toggle_setting(cache, 1, "volume")


@pytest.mark.asyncio
async def test_ignored_role_set_and_clear(cache):
    config = await set_ignored_role(cache, 1, 42)
    assert (config.ignored_role_id, config.ignore_role_enabled) == (42, True)

    config = await clear_ignored_role(cache, 1)
    assert (config.ignored_role_id, config.ignore_role_enabled) == (None, False)


@pytest.mark.asyncio
async def test_reset_returns_defaults(cache, store):
    await activate_alerts(cache, 1, 100)
    await cache.flush()

    config = await reset_settings(cache, 1)

    assert config == GuildAlertConfig(guild_id=1)
    assert store.rows[1] == GuildAlertConfig(guild_id=1)


def test_status_lines_describe_every_setting():
    lines = settings_status_lines(GuildAlertConfig(guild_id=1, alerts_enabled=True, text_channel_id=9))

    assert lines[0] == "Alerts: `on`"
    assert lines[1] == "Alert channel: <#9>"
    assert "Ignored role: not set (`off`)" in lines
