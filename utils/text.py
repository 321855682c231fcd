from __future__ import annotations


def truncate_text(value: str, limit: int) -> str:
    text = value or ""
    if limit <= 0:
        return ""
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]
    return f"{text[: limit - 3]}..."


def short_list(lines: list[str], *, limit: int = 50) -> str:
    if not lines:
        return "-"
    if len(lines) <= limit:
        return "\n".join(lines)
    return "\n".join(lines[:limit]) + f"\n... +{len(lines) - limit} more"


def on_off(value: bool) -> str:
    return "on" if value else "off"
