"""
Helper utilities for NWHA.
"""

from __future__ import annotations

import re


def slugify(name: str) -> str:
    """
    Generate a URL-safe slug from a project name.

    Lowercases, collapses every run of non-alphanumeric characters into a
    single dash and trims dashes from both ends.

    Example:
        >>> slugify("My Cool Project!")
        'my-cool-project'
    """
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower())
    return slug.strip("-")


def truncate_string(
    text: str,
    max_length: int,
    suffix: str = "...",
) -> str:
    """
    Truncate a string to a maximum length.

    Args:
        text: Input string
        max_length: Maximum length including suffix
        suffix: Suffix to append when truncated

    Returns:
        Truncated string
    """
    if len(text) <= max_length:
        return text

    return text[: max_length - len(suffix)] + suffix


def format_bytes(num_bytes: int) -> str:
    """Format a byte count for humans (e.g. ``10.0 MB``)."""
    size = float(num_bytes)
    for unit in ["B", "KB", "MB", "GB"]:
        if abs(size) < 1024:
            return f"{size:.1f} {unit}" if unit != "B" else f"{int(size)} B"
        size /= 1024
    return f"{size:.1f} TB"


def format_duration(seconds: float) -> str:
    """
    Format a duration in seconds.

    Example:
        >>> format_duration(3725)
        '1h 2m 5s'
    """
    if seconds < 60:
        return f"{seconds:.1f}s"

    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)

    if hours:
        return f"{hours}h {minutes}m {secs}s"
    return f"{minutes}m {secs}s"
