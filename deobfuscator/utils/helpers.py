"""
General utility functions.
Ported from yt-dlp's utils.py.
"""

import re
from typing import Any
from urllib.parse import unquote_plus


def traverse_obj(obj: Any, *paths: Any, default: Any = None) -> Any:
    """
    Traverse nested dicts/lists safely.
    Ported from yt-dlp's traverse_obj utility.

    Usage:
        traverse_obj(data, 'key1', 'key2', 'key3')
        traverse_obj(data, ('key1', 'key2'), ('alt_key1', 'alt_key2'))
    """
    for path in paths:
        if isinstance(path, (list, tuple)):
            result = obj
            for key in path:
                if result is None:
                    break
                if isinstance(result, dict):
                    result = result.get(key)
                elif isinstance(result, (list, tuple)):
                    try:
                        result = result[key]
                    except (IndexError, TypeError):
                        result = None
                else:
                    result = None
            if result is not None:
                return result
        else:
            if isinstance(obj, dict) and path in obj:
                return obj[path]
    return default


def str_or_none(v: Any) -> str | None:
    """Convert value to string or return None."""
    if v is None:
        return None
    result = str(v).strip()
    return result if result else None


def url_decode(s: str) -> str:
    """Decode a form-encoded query value ('+' is a space); invalid UTF-8 becomes U+FFFD."""
    return unquote_plus(s, encoding="utf-8", errors="replace")


def search_group(pattern: str | re.Pattern, string: str, group: int | str = 1) -> str | None:
    """First match of *pattern* in *string*, or None when absent or empty."""
    match = re.search(pattern, string)
    if not match:
        return None
    return match.group(group) or None
