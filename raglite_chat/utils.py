"""
Utility functions for raglite_chat.
"""
import itertools
import math
import secrets
import time
from datetime import datetime
from typing import Optional

from .constants import CHARS_PER_TOKEN


_id_counter = itertools.count(1)


def truncate_string(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """
    Truncate a string to a maximum length.

    Args:
        text: The string to truncate
        max_length: Maximum length of the output string
        suffix: Suffix to append when truncating

    Returns:
        Truncated string
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix


def count_tokens(text: str) -> int:
    """
    Estimate token count for a text string.
    Uses a simple approximation (4 chars per token, rounded up).

    Args:
        text: The text to count tokens for

    Returns:
        Estimated token count
    """
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def generate_message_id(prefix: str = "msg") -> str:
    """
    Generate a message ID that is never handed out twice in this process.

    Args:
        prefix: Short tag describing the message kind (msg, think, user)

    Returns:
        Unique message ID string
    """
    millis = int(time.time() * 1000)
    return f"{prefix}_{millis}_{next(_id_counter)}_{secrets.token_hex(4)}"


def format_timestamp(timestamp: Optional[float] = None, fmt: str = "%H:%M:%S") -> str:
    """
    Format a timestamp to a human-readable string.

    Args:
        timestamp: Unix timestamp (uses current time if None)
        fmt: strftime format string

    Returns:
        Formatted timestamp string
    """
    if timestamp is None:
        timestamp = time.time()
    return datetime.fromtimestamp(timestamp).strftime(fmt)


def format_milliseconds(ms: float) -> str:
    """
    Format a millisecond duration the way the metrics line shows it.

    Durations under a second keep millisecond resolution ("850ms"),
    longer ones are shown in seconds with one decimal ("1.5s").
    """
    rounded = int(round(ms))
    if rounded < 1000:
        return f"{rounded}ms"
    return f"{ms / 1000:.1f}s"
