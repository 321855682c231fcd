from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

import discord

from services.event_classifier import EventKind


COLOR_VC_JOIN = 0x00FFCC
COLOR_VC_LEAVE = 0xFF5E5E
COLOR_ONLINE = 0x55FF55


@dataclass(frozen=True, slots=True)
class AlertPayload:
    kind: EventKind
    title: str
    description: str
    color: int
    footer: str
    icon_url: str | None = None

    def to_embed(self) -> discord.Embed:
        embed = discord.Embed(
            description=self.description,
            color=discord.Color(self.color),
            timestamp=datetime.now(UTC),
        )
        embed.set_author(name=self.title, icon_url=self.icon_url)
        embed.set_footer(text=self.footer)
        return embed


def render_alert(kind: EventKind, *, actor_name: str, room_name: str | None = None, icon_url: str | None = None) -> AlertPayload:
    room = room_name or "-"
    if kind is EventKind.JOIN:
        return AlertPayload(
            kind=kind,
            title=f"{actor_name} just popped in! 🔊",
            description=f"🎧 **{actor_name}** joined **{room}**",
            color=COLOR_VC_JOIN,
            footer="🎉 Welcome to the voice party!",
            icon_url=icon_url,
        )
    if kind is EventKind.LEAVE:
        return AlertPayload(
            kind=kind,
            title=f"{actor_name} dipped out! 🏃",
            description=f"👋 **{actor_name}** left **{room}**",
            color=COLOR_VC_LEAVE,
            footer="💨 See you next time.",
            icon_url=icon_url,
        )
    if kind is EventKind.ONLINE:
        return AlertPayload(
            kind=kind,
            title=f"{actor_name} just came online! 🟢",
            description=f"👀 **{actor_name}** is now online",
            color=COLOR_ONLINE,
            footer="✨ Ready to vibe!",
            icon_url=icon_url,
        )
    raise ValueError(f"No alert rendering for event kind {kind.value}")
