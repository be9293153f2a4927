"""Filename sanitization for upload object keys."""

import re
from typing import Iterable

from docintel.shared.errors import DocumentValidationError

_TRAVERSAL = re.compile(r"\.\.[/\\]")
_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_filename(filename: str, max_length: int = 100) -> str:
    """
    Make a client-supplied filename safe for use in an object key.

    Strips path-traversal sequences, replaces every character outside
    [A-Za-z0-9._-] (including path separators) with an underscore and
    truncates to max_length while keeping the extension. The result may be
    empty; callers decide whether to accept it. Idempotent.
    """
    sanitized = filename
    # Removing one traversal sequence can expose another ("....//")
    while True:
        stripped = _TRAVERSAL.sub("", sanitized)
        if stripped == sanitized:
            break
        sanitized = stripped

    sanitized = _UNSAFE.sub("_", sanitized)

    if len(sanitized) > max_length:
        stem, dot, ext = sanitized.rpartition(".")
        if dot and len(ext) < max_length - 1:
            sanitized = f"{stem[:max_length - len(ext) - 1]}.{ext}"
        else:
            sanitized = sanitized[:max_length]

    return sanitized


def validate_filename(filename: str, allowed_extensions: Iterable[str], max_length: int = 100) -> str:
    """
    Sanitize a filename and enforce the extension allow-list.

    Returns:
        The sanitized filename

    Raises:
        DocumentValidationError: If the name sanitizes to nothing, has no usable
            stem, or its extension is not allowed
    """
    sanitized = sanitize_filename(filename, max_length)
    if not sanitized:
        raise DocumentValidationError("Filename is empty after sanitization", error="INVALID_FILENAME")

    lowered = sanitized.lower()
    extension = next((ext for ext in allowed_extensions if lowered.endswith(ext.lower())), None)
    if extension is None:
        allowed = ", ".join(allowed_extensions)
        raise DocumentValidationError(f"Only {allowed} files are allowed", error="INVALID_FILE_TYPE")

    if not sanitized[: -len(extension)].strip("._-"):
        raise DocumentValidationError("Filename has no name before the extension", error="INVALID_FILENAME")

    return sanitized
