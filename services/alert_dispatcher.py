from __future__ import annotations

import asyncio
import logging
from typing import Any

from gateway.safety import safe_delete_message
from gateway.task_registry import BackgroundTaskSet
from services.render_service import AlertPayload


log = logging.getLogger("vcalert.dispatch")

DEFAULT_AUTO_DELETE_SECONDS = 30.0


class AlertDispatcher:
    def __init__(self, *, auto_delete_seconds: float = DEFAULT_AUTO_DELETE_SECONDS) -> None:
        self.auto_delete_seconds = float(auto_delete_seconds)
        self._deletions = BackgroundTaskSet("alert_auto_delete")

    @property
    def pending_deletions(self) -> int:
        return len(self._deletions)

    async def dispatch(self, payload: AlertPayload, destination: Any, *, auto_delete: bool) -> Any | None:
        try:
            message = await destination.send(embed=payload.to_embed())
        except Exception as exc:
            log.warning(
                "Failed to send %s alert to %s: %s",
                payload.kind.value,
                getattr(destination, "id", None),
                exc,
            )
            return None

        if auto_delete and message is not None:
            self._deletions.spawn(self._delete_later(message))
        return message

    async def _delete_later(self, message: Any) -> None:
        await asyncio.sleep(self.auto_delete_seconds)
        await safe_delete_message(message)

    async def close(self) -> None:
        await self._deletions.cancel_all()
