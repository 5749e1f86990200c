"""File registration for multipart bodies."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from reqchain.errors import FileReadError, ValidationError
from reqchain.models import FileAttachment
from reqchain.values import Optional

DEFAULT_FIELD_NAME = "file"
DEFAULT_MIME_TYPE = "application/octet-stream"
BYTES_FILENAME = "filename"


def resolve_field_name(field_name: str, skip_numbering: bool, existing: int) -> str:
    """Return the multipart field name for the next attachment.

    The sentinel "file" (unless numbering is skipped) and the empty name are
    numbered "file1", "file2", ... from the count of earlier attachments.
    A literal "file2" supplied elsewhere can therefore collide with a
    numbered name; that is accepted behaviour.
    """
    field_name = field_name.strip()
    if (field_name == DEFAULT_FIELD_NAME and not skip_numbering) or not field_name:
        return f"{DEFAULT_FIELD_NAME}{existing + 1}"
    return field_name


def load_attachment(
    source: Any,
    filename: str = "",
    field_name: str = DEFAULT_FIELD_NAME,
    skip_numbering: bool = False,
    mime_type: str | None = None,
    existing: int = 0,
) -> FileAttachment | None:
    """Read *source* into a FileAttachment.

    Args:
        source: Path (str or PathLike), raw bytes, an open binary handle,
                or an Optional/None wrapper around one of these.
        filename: Overrides the derived filename when non-empty.
        field_name: Multipart field name; see resolve_field_name.
        skip_numbering: Keep "file" literally instead of numbering it.
        mime_type: Part Content-Type; None means application/octet-stream.
        existing: Number of attachments already registered.

    Returns:
        The attachment, or None when *source* is an empty Optional.

    Raises:
        ValidationError: Empty mime type, or an unsupported source kind.
        FileReadError: The path or handle cannot be opened or read.
    """
    if mime_type is not None:
        mime_type = mime_type.strip()
        if not mime_type:
            raise ValidationError("the mime type of a file attachment cannot be an empty string")
    else:
        mime_type = DEFAULT_MIME_TYPE

    if isinstance(source, Optional):
        source = source.value
    if source is None:
        return None

    filename = filename.strip()
    field_name = resolve_field_name(field_name, skip_numbering, existing)

    if isinstance(source, (str, os.PathLike)):
        path = Path(source)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise FileReadError(f"cannot read file {str(path)!r}: {e}") from e
        name = filename or path.resolve().name
    elif isinstance(source, (bytes, bytearray, memoryview)):
        data = bytes(source)
        name = filename or BYTES_FILENAME
    elif hasattr(source, "read"):
        try:
            content = source.read()
        except (OSError, ValueError) as e:
            # ValueError: read on a closed file
            raise FileReadError(f"cannot read file handle: {e}") from e
        data = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        handle_name = getattr(source, "name", None)
        if isinstance(handle_name, str) and handle_name:
            name = filename or os.path.basename(handle_name)
        else:
            name = filename or BYTES_FILENAME
    else:
        raise ValidationError(
            "send_file only supports a path, raw bytes, or an open file handle; "
            f"got {type(source).__name__}"
        )

    return FileAttachment(filename=name, field_name=field_name, mime_type=mime_type, data=data)
