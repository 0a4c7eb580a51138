"""
Attachment file storage on the local filesystem.

Files live under ATTACHMENT_STORAGE_DIR (default: <instance>/attachments)
at the storage key

    <org_id>/<invoice_id>/<uuid>-<secure filename>

The key is what InvoiceAttachment.file_path stores. Keys are generated
here only; a key from the database is still checked to stay inside the
storage root before it is opened.
"""

from __future__ import annotations

import os
import uuid

from flask import current_app
from werkzeug.utils import secure_filename


class StorageError(Exception):
    """File could not be written, read or removed."""


def storage_root() -> str:
    root = current_app.config.get("ATTACHMENT_STORAGE_DIR") or os.path.join(current_app.instance_path, "attachments")
    return os.path.abspath(root)


def build_key(org_id: int, invoice_id: int, file_name: str) -> str:
    safe_name = secure_filename(file_name or "") or "file"
    return f"{org_id}/{invoice_id}/{uuid.uuid4().hex}-{safe_name}"


def resolve_path(key: str) -> str:
    root = storage_root()
    path = os.path.abspath(os.path.join(root, key))
    if os.path.commonpath([root, path]) != root:
        raise StorageError("Invalid storage key")
    return path


def save(key: str, stream) -> int:
    """Write stream to key, return the number of bytes written."""
    path = resolve_path(key)
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        size = 0
        with open(path, "wb") as fh:
            while True:
                chunk = stream.read(64 * 1024)
                if not chunk:
                    break
                fh.write(chunk)
                size += len(chunk)
    except OSError as e:
        raise StorageError(f"Could not store file: {e.strerror}") from e
    return size


def exists(key: str) -> bool:
    return os.path.isfile(resolve_path(key))


def delete(key: str) -> None:
    path = resolve_path(key)
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        raise StorageError(f"Could not remove file: {e.strerror}") from e
