"""
Helper functions shared by the request pipeline and the command-line front end
"""

import re
from typing import Iterable, List, Sequence


def format_duration(seconds: int) -> str:
    """
    Format duration in seconds to human readable string

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string (e.g., "3:45" or "1:23:45")
    """
    if seconds < 0:
        return "0:00"

    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def ids_to_param(ids: Iterable) -> str:
    """
    Encode a list of ids as the comma separated string the service expects

    An empty list encodes to an empty string (an emptied playlist).
    """
    return ",".join(str(i) for i in ids)


def tokenize_query(query: str) -> List[str]:
    """
    Split a search query into lowercase tokens

    Quoted phrases are kept together so that "daft punk" stays one token.
    """
    tokens = []
    for quoted, word in re.findall(r'"([^"]*)"|(\S+)', query):
        token = (quoted or word).strip().lower()
        if token:
            tokens.append(token)
    return tokens


def remove_first_occurrences(items: Sequence[str], to_remove: Iterable[str]) -> List[str]:
    """
    Remove at most one occurrence of each requested value, first match first

    Args:
        items: Original ordered values
        to_remove: Values to remove; a value listed twice removes two occurrences

    Returns:
        New list without the removed occurrences
    """
    result = list(items)
    for value in to_remove:
        try:
            result.remove(value)
        except ValueError:
            continue
    return result
