from services.alert_dispatcher import AlertDispatcher
from services.alert_engine import AlertEngine
from services.event_classifier import EventKind, classify_occupancy, classify_presence
from services.privacy import is_private_room
from services.settings_cache import WriteBackConfigCache
from services.thread_manager import ThreadLifecycleManager

__all__ = [
    "AlertDispatcher",
    "AlertEngine",
    "EventKind",
    "ThreadLifecycleManager",
    "WriteBackConfigCache",
    "classify_occupancy",
    "classify_presence",
    "is_private_room",
]
