from typing import Any, List


def clamp_text(text: str, limit: int) -> str:
    """Cut text to at most `limit` characters, ending with an ellipsis when cut."""
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def safe_string(value: Any) -> str:
    return value if isinstance(value, str) else ""


def safe_string_list(value: Any) -> List[str]:
    """Keep the non-empty strings of a list; anything else becomes []."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item]
