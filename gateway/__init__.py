from gateway.safety import (
    error_name,
    is_not_found,
    is_response_error,
    resolve_text_channel,
    safe_defer,
    safe_delete_message,
    safe_followup,
    safe_send_initial,
)
from gateway.task_registry import BackgroundTaskSet, KeyedSerialQueue, SingletonTaskRegistry

__all__ = [
    "error_name",
    "is_not_found",
    "is_response_error",
    "resolve_text_channel",
    "safe_defer",
    "safe_delete_message",
    "safe_followup",
    "safe_send_initial",
    "BackgroundTaskSet",
    "KeyedSerialQueue",
    "SingletonTaskRegistry",
]
