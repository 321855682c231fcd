from __future__ import annotations

import logging
from typing import Any


log = logging.getLogger("vcalert.gateway")

_RESPONSE_ERRORS = {
    "InteractionResponded",
    "HTTPException",
    "NotFound",
    "Forbidden",
}


def error_name(exc: BaseException) -> str:
    return exc.__class__.__name__


def is_response_error(exc: BaseException) -> bool:
    return error_name(exc) in _RESPONSE_ERRORS


def is_not_found(exc: BaseException) -> bool:
    return error_name(exc) == "NotFound"


def _log_safe_wrapper_error(action: str, exc: Exception) -> None:
    if is_response_error(exc):
        return
    log.debug("Safe Discord wrapper '%s' failed: %s", action, exc, exc_info=True)


async def safe_defer(interaction: Any, *, ephemeral: bool = False) -> bool:
    response = getattr(interaction, "response", None)
    if response is None:
        return False
    is_done = getattr(response, "is_done", None)
    if callable(is_done) and is_done():
        return False

    try:
        await response.defer(ephemeral=ephemeral)
        return True
    except Exception as exc:
        _log_safe_wrapper_error("defer", exc)
        return False


async def safe_send_initial(
    interaction: Any,
    content: str | None,
    *,
    ephemeral: bool = False,
    **kwargs: Any,
) -> bool:
    response = getattr(interaction, "response", None)
    if response is None:
        return False

    is_done = getattr(response, "is_done", None)
    done = callable(is_done) and is_done()
    if done:
        return await safe_followup(interaction, content, ephemeral=ephemeral, **kwargs)

    try:
        await response.send_message(content, ephemeral=ephemeral, **kwargs)
        return True
    except Exception as exc:
        _log_safe_wrapper_error("response.send_message", exc)
        if not is_response_error(exc):
            return False
        return await safe_followup(interaction, content, ephemeral=ephemeral, **kwargs)


async def safe_followup(interaction: Any, content: str | None, *, ephemeral: bool = False, **kwargs: Any) -> bool:
    followup = getattr(interaction, "followup", None)
    if followup is None:
        return False

    try:
        await followup.send(content, ephemeral=ephemeral, **kwargs)
        return True
    except Exception as exc:
        _log_safe_wrapper_error("followup.send", exc)
        return False


async def safe_edit_response(interaction: Any, **kwargs: Any) -> bool:
    """Edits the message a component interaction came from."""
    response = getattr(interaction, "response", None)
    if response is None:
        return False
    try:
        await response.edit_message(**kwargs)
        return True
    except Exception as exc:
        _log_safe_wrapper_error("response.edit_message", exc)
        return False


async def safe_delete_message(message: Any) -> bool:
    try:
        await message.delete()
        return True
    except Exception as exc:
        _log_safe_wrapper_error("message.delete", exc)
        return False


async def resolve_text_channel(guild: Any, channel_id: int | None) -> Any | None:
    """Cache-first lookup of a text channel; ``None`` when missing or not text based."""
    if guild is None or not channel_id:
        return None

    channel = None
    get_channel = getattr(guild, "get_channel", None)
    if callable(get_channel):
        channel = get_channel(int(channel_id))
    if channel is None:
        fetch_channel = getattr(guild, "fetch_channel", None)
        if fetch_channel is None:
            return None
        try:
            channel = await fetch_channel(int(channel_id))
        except Exception as exc:
            _log_safe_wrapper_error("guild.fetch_channel", exc)
            return None

    if channel is None or not callable(getattr(channel, "send", None)):
        return None
    if not callable(getattr(channel, "create_thread", None)):
        return None
    return channel
