from __future__ import annotations

from dataclasses import replace
from types import SimpleNamespace

import discord
import pytest

from bot.main import AlertApplication
from db.repository import GuildAlertConfig, InMemoryConfigStore
from features.access import CONFIG_UNAVAILABLE_TEXT, NO_PERMISSION_TEXT
from features.settings_panel import (
    RESET_CONFIRM_TEXT,
    RESET_DONE_TEXT,
    ResetConfirmView,
    SettingsPanelView,
    settings_command,
    settings_panel_embed,
)


class _FakeResponse:
    def __init__(self):
        self._done = False
        self.sent: list[tuple[str | None, dict]] = []
        self.edits: list[dict] = []

    def is_done(self) -> bool:
        return self._done

    async def send_message(self, content=None, *, ephemeral: bool = False, **kwargs):
        self.sent.append((content, kwargs))
        self._done = True

    async def edit_message(self, **kwargs):
        self.edits.append(kwargs)
        self._done = True


class _FakeFollowup:
    def __init__(self):
        self.sent: list[str] = []

    async def send(self, content=None, *, ephemeral: bool = False, **kwargs):
        self.sent.append(content)


class _FakeInteraction:
    def __init__(self, *, admin: bool = True, guild_id: int = 1):
        self.response = _FakeResponse()
        self.followup = _FakeFollowup()
        self.guild = SimpleNamespace(id=guild_id, name="Guild", get_channel=lambda _cid: None)
        self.user = SimpleNamespace(
            id=5,
            guild_permissions=SimpleNamespace(administrator=False, manage_guild=admin),
        )


class _UnreachableConfigStore(InMemoryConfigStore):
    async def get(self, guild_id: int):
        raise ConnectionError("unreachable")


async def _panel(app, **overrides) -> SettingsPanelView:
    config = await app.cache.get(1)
    if overrides:
        config = app.cache.update(replace(config, **overrides))
    return SettingsPanelView(app, 1, config)


def test_panel_embed_lists_every_setting():
    config = GuildAlertConfig(guild_id=1, alerts_enabled=True, text_channel_id=9, ignored_role_id=3)

    embed = settings_panel_embed(config, SimpleNamespace(name="Guild"), auto_delete_seconds=30)

    assert embed.author.name == "🎛️ VC Alert Control Panel"
    assert "**Alert channel:** <#9>" in embed.description
    assert "**Status:** 🟢 active" in embed.description
    assert "**Ignored role:** <@&3> (`off`)" in embed.description
    assert "**Auto delete (30s):** `on`" in embed.description


@pytest.mark.asyncio
async def test_settings_command_opens_panel_with_current_values(app):
    await app.cache.get(1)
    app.cache.update(replace(app.cache.cached(1), leave_alerts=False))
    interaction = _FakeInteraction()

    await settings_command(app, interaction)

    content, kwargs = interaction.response.sent[0]
    view = kwargs["view"]
    assert content is None
    assert isinstance(view, SettingsPanelView)
    assert view.toggle_join.label == "👋 Join: on"
    assert view.toggle_join.style == discord.ButtonStyle.primary
    assert view.toggle_leave.label == "🏃 Leave: off"
    assert view.toggle_leave.style == discord.ButtonStyle.secondary
    assert view.toggle_auto_delete.style == discord.ButtonStyle.success
    assert "**Leave alerts:** `off`" in kwargs["embed"].description
    await app.close()


@pytest.mark.asyncio
async def test_toggle_button_flips_setting_and_rerenders_panel(app):
    view = await _panel(app)
    interaction = _FakeInteraction()

    await view.toggle_join.callback(interaction)

    assert app.cache.cached(1).join_alerts is False
    edit = interaction.response.edits[0]
    assert edit["view"] is view
    assert view.toggle_join.label == "👋 Join: off"
    assert view.toggle_join.style == discord.ButtonStyle.secondary
    assert "**Join alerts:** `off`" in edit["embed"].description
    await app.close()


@pytest.mark.asyncio
async def test_private_and_ignore_buttons_toggle_their_fields(app):
    view = await _panel(app)

    await view.toggle_private_threads.callback(_FakeInteraction())
    await view.toggle_ignore_role.callback(_FakeInteraction())

    config = app.cache.cached(1)
    assert config.private_thread_alerts is False
    assert config.ignore_role_enabled is True
    assert view.toggle_ignore_role.style == discord.ButtonStyle.success
    await app.close()


@pytest.mark.asyncio
async def test_panel_rejects_members_without_manage_server(app):
    view = await _panel(app)
    interaction = _FakeInteraction(admin=False)

    allowed = await view.interaction_check(interaction)

    assert allowed is False
    assert interaction.response.sent[0][0] == NO_PERMISSION_TEXT


@pytest.mark.asyncio
async def test_panel_rejects_interactions_from_another_guild(app):
    view = await _panel(app)

    assert await view.interaction_check(_FakeInteraction(guild_id=2)) is False
    assert await view.interaction_check(_FakeInteraction()) is True


@pytest.mark.asyncio
async def test_reset_asks_for_confirmation_then_restores_defaults(app, store):
    view = await _panel(app, alerts_enabled=True, text_channel_id=77, join_alerts=False)
    await app.cache.flush()

    asked = _FakeInteraction()
    await view.reset_button.callback(asked)
    confirm_edit = asked.response.edits[0]
    assert confirm_edit["content"] == RESET_CONFIRM_TEXT
    assert confirm_edit["embed"] is None
    confirm_view = confirm_edit["view"]
    assert isinstance(confirm_view, ResetConfirmView)
    assert app.cache.cached(1).alerts_enabled is True

    confirmed = _FakeInteraction()
    await confirm_view.confirm_button.callback(confirmed)

    assert store.rows[1] == GuildAlertConfig(guild_id=1)
    panel_edit = confirmed.response.edits[0]
    assert isinstance(panel_edit["view"], SettingsPanelView)
    assert panel_edit["view"].toggle_join.label == "👋 Join: on"
    assert confirmed.followup.sent == [RESET_DONE_TEXT]
    await app.close()


@pytest.mark.asyncio
async def test_cancel_reset_returns_to_panel_unchanged(app):
    await _panel(app, alerts_enabled=True, text_channel_id=77)
    confirm_view = ResetConfirmView(app, 1)
    interaction = _FakeInteraction()

    await confirm_view.cancel_button.callback(interaction)

    edit = interaction.response.edits[0]
    assert edit["content"] is None
    assert isinstance(edit["view"], SettingsPanelView)
    assert "**Status:** 🟢 active" in edit["embed"].description
    assert app.cache.cached(1).alerts_enabled is True
    await app.close()


@pytest.mark.asyncio
async def test_toggle_button_reports_unavailable_settings_without_writing(config, activity_store):
    store = _UnreachableConfigStore()
    app = AlertApplication(config=config, config_store=store, activity_store=activity_store)
    view = SettingsPanelView(app, 1, GuildAlertConfig(guild_id=1))
    interaction = _FakeInteraction()

    await view.toggle_online.callback(interaction)
    await app.cache.flush()

    assert interaction.response.sent[0][0] == CONFIG_UNAVAILABLE_TEXT
    assert interaction.response.edits == []
    assert store.rows == {}


@pytest.mark.asyncio
async def test_settings_command_reports_unavailable_settings(config, activity_store):
    app = AlertApplication(config=config, config_store=_UnreachableConfigStore(), activity_store=activity_store)
    interaction = _FakeInteraction()

    await settings_command(app, interaction)

    assert interaction.response.sent == [(CONFIG_UNAVAILABLE_TEXT, {})]
