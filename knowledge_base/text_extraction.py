import re
from typing import Optional

from .config import SUPPORTED_MIME_TYPES, FORMAT_NAMES
from .errors import ValidationError

_EXTENSION_MIME_TYPES = {
    "txt": "text/plain",
    "text": "text/plain",
    "md": "text/markdown",
    "markdown": "text/markdown",
}

# Everything below 0x20 except tab, newline and carriage return, plus DEL.
# Postgres text columns reject NUL outright.
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def supported_formats() -> str:
    """Human-readable list for error messages, e.g. 'TXT, MD'."""
    return ", ".join(dict.fromkeys(FORMAT_NAMES[m] for m in SUPPORTED_MIME_TYPES))


def mime_from_filename(filename: str) -> Optional[str]:
    if not filename or "." not in filename:
        return None
    ext = filename.rsplit(".", 1)[-1].lower()
    return _EXTENSION_MIME_TYPES.get(ext)


def resolve_mime_type(declared: Optional[str], filename: str) -> str:
    """
    Decide the MIME type of an upload.

    The declared type wins when it is supported (parameters such as
    ``charset`` are ignored). Browsers often send a generic type for
    markdown, so the filename extension is the fallback.

    Raises:
        ValidationError: If neither source names a supported type.
    """
    mime = (declared or "").split(";", 1)[0].strip().lower()
    if mime in SUPPORTED_MIME_TYPES:
        return mime

    inferred = mime_from_filename(filename)
    if inferred:
        return inferred

    raise ValidationError(
        f"Unsupported file type: {declared or 'unknown'}. Supported: {supported_formats()}",
        extra={"supported_types": list(SUPPORTED_MIME_TYPES)},
    )


def display_name(filename: str) -> str:
    """Filename without its extension."""
    base = filename.rsplit(".", 1)[0] if "." in filename.lstrip(".") else filename
    return base or filename


def read_text(data: bytes, mime: str, encoding: str = "utf-8") -> str:
    """
    Decode an uploaded plain-text or markdown file.

    Undecodable bytes are dropped rather than failing the document, and
    control characters other than tab and newlines are removed.
    """
    if mime not in SUPPORTED_MIME_TYPES:
        raise ValidationError(f"Unsupported file type: {mime}")
    text = data.decode(encoding, errors="ignore")
    if text.startswith("\ufeff"):
        text = text[1:]
    return _CONTROL_CHARS.sub("", text)
