"""
Utility helper functions.
"""
import re

from ..config import ERROR_MESSAGE_MAX_LENGTH

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_WHITESPACE_RUN = re.compile(r"\s+")


def sanitize_error_message(message: str, max_length: int = ERROR_MESSAGE_MAX_LENGTH) -> str:
    """
    Make an exception message safe to store and show to the document owner.

    Control characters are dropped, whitespace runs (including newlines from
    multi-line driver errors) collapse to one space, and the result is cut to
    ``max_length`` characters with a trailing ellipsis.

    Example:
        >>> sanitize_error_message("boom\\n\\n  at line 3")
        'boom at line 3'
    """
    text = _CONTROL_CHARS.sub("", message or "")
    text = _WHITESPACE_RUN.sub(" ", text).strip()
    if not text:
        return "Unknown error"
    if len(text) > max_length:
        text = text[: max_length - 3].rstrip() + "..."
    return text
