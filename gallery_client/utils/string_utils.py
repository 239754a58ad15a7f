from typing import Any, Mapping, Sequence


def normalize_null_strings(obj: Any) -> Any:
    """Recursively convert string 'null' (case-insensitive) to None inside dict/list structures.

    Older collection exports wrote missing optional fields as the literal
    string ``"null"``; documents pass through here before validation.
    """
    if isinstance(obj, str):
        return None if obj.lower() == "null" else obj
    if isinstance(obj, Mapping):
        return {k: normalize_null_strings(v) for k, v in obj.items()}
    if isinstance(obj, Sequence) and not isinstance(obj, (str, bytes)):
        return [normalize_null_strings(v) for v in obj]
    return obj


def last_name_token(display_name: str) -> str:
    """Last space separated token of a display name, used as the artist sort key."""
    parts = display_name.strip().split(' ')
    return parts[-1] or display_name


def contains_casefold(haystack: str | None, needle: str) -> bool:
    if not haystack:
        return False
    return needle.casefold() in haystack.casefold()
