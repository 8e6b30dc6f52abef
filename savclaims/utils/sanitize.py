"""Folder and file name sanitization for cloud storage paths."""

import re
import time
import unicodedata
from typing import Any, Optional

MAX_FOLDER_NAME_LENGTH = 100
MAX_FILE_NAME_LENGTH = 200

_FOLDER_UNSAFE = re.compile(r"[^a-zA-Z0-9_-]")
_DOTS_ONLY = re.compile(r"^\.+$")

# Characters rejected by SharePoint/OneDrive
_FORBIDDEN_CHARS = re.compile(r'["*:<>?/\\|#%&~]')
_CONTROL_CHARS = re.compile(r"[\x00-\x1F\x7F-\x9F]")
_EMOJI_AND_SYMBOLS = re.compile(
    "["
    "\U0001F000-\U0001F9FF"
    "\u2600-\u26FF"
    "\u2700-\u27BF"
    "\u2000-\u206F"
    "\u2190-\u21FF"
    "\u2300-\u23FF"
    "\u2B50\u2B55\u3030\u303D\u3297\u3299"
    "]"
)
_LEADING_JUNK = re.compile(r"^[.~]+")
_TRAILING_JUNK = re.compile(r"[.~\s]+$")
_EXTENSION_JUNK = re.compile(r'["*:<>?/\\|#%&~\s]')


def sanitize_folder_name(folder_name: Any) -> Optional[str]:
    """
    Make a SAV folder name safe to use as a single path segment.

    Every character outside ``[a-zA-Z0-9_-]`` becomes ``_`` and the result is
    cut to 100 characters.

    Args:
        folder_name: Candidate folder name

    Returns:
        Sanitized name, or None if the input is not a non-empty string
    """
    if not folder_name or not isinstance(folder_name, str):
        return None

    sanitized = _FOLDER_UNSAFE.sub("_", folder_name)[:MAX_FOLDER_NAME_LENGTH]

    if not sanitized.strip():
        return None
    if _DOTS_ONLY.match(sanitized):
        return None

    return sanitized


def sanitize_file_name(file_name: Any) -> Optional[str]:
    """
    Clean a file name for SharePoint/OneDrive while keeping its extension.

    Removes control characters and emoji, replaces forbidden characters by
    ``_``, collapses whitespace, trims leading/trailing dots and tildes and
    limits the full name to 200 characters.

    Args:
        file_name: Original file name

    Returns:
        Cleaned file name, or None if the input is not a non-empty string
    """
    if not file_name or not isinstance(file_name, str):
        return None

    normalized = unicodedata.normalize("NFC", file_name)

    last_dot = normalized.rfind(".")
    if last_dot > 0:
        base_name, extension = normalized[:last_dot], normalized[last_dot:]
    else:
        base_name, extension = normalized, ""

    base_name = _CONTROL_CHARS.sub("", base_name)
    base_name = _EMOJI_AND_SYMBOLS.sub("", base_name)
    base_name = _FORBIDDEN_CHARS.sub("_", base_name)
    base_name = re.sub(r"\s+", " ", base_name)
    base_name = _TRAILING_JUNK.sub("", _LEADING_JUNK.sub("", base_name.strip()))

    max_base_length = MAX_FILE_NAME_LENGTH - len(extension)
    if len(base_name) > max_base_length:
        base_name = base_name[:max_base_length]

    if not base_name.strip():
        base_name = f"fichier_{int(time.time() * 1000)}"

    extension = _EXTENSION_JUNK.sub("", extension)

    return base_name + extension
