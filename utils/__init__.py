from utils.text import on_off, short_list, truncate_text

__all__ = [
    "on_off",
    "short_list",
    "truncate_text",
]
