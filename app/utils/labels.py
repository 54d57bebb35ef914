"""Display helpers for stage and status labels."""

import re


def humanize_label(value: str) -> str:
    """Turn a stored identifier into a display label.

    Example:
        >>> humanize_label("phone_screen")
        'Phone Screen'
    """
    words = re.split(r"[_\-\s]+", value.strip())
    return " ".join(word.capitalize() for word in words if word)
