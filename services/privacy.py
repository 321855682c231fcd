from __future__ import annotations

import logging
from typing import Any


log = logging.getLogger("vcalert.privacy")


def is_private_room(room: Any, default_role: Any) -> bool:
    """True when the guild's default role cannot view ``room``.

    Anything that prevents resolving the permission counts as public, so a
    broken lookup never escalates an alert into a thread.
    """
    room_id = getattr(room, "id", None)
    if default_role is None:
        log.warning("No default role available for room %s, treating as public", room_id)
        return False

    try:
        permissions = room.permissions_for(default_role)
        can_view = permissions.view_channel
    except Exception as exc:
        log.warning("Could not resolve default-role permissions for room %s (%s), treating as public", room_id, exc)
        return False

    if can_view is None:
        log.warning("Default-role view permission unresolved for room %s, treating as public", room_id)
        return False
    return not bool(can_view)
