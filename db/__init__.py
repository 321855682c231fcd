from db.models import REQUIRED_BOOT_TABLES
from db.repository import (
    ActivityLogEntry,
    DuplicateConfigError,
    GuildAlertConfig,
    InMemoryActivityLog,
    InMemoryConfigStore,
)
from db.session import SessionManager

__all__ = [
    "ActivityLogEntry",
    "DuplicateConfigError",
    "GuildAlertConfig",
    "InMemoryActivityLog",
    "InMemoryConfigStore",
    "SessionManager",
    "REQUIRED_BOOT_TABLES",
]
