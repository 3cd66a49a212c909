"""Files attached to clients. Bytes live under the uploads dir; metadata in SQLite."""

import logging
import secrets
import sqlite3
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from . import config, paths
from .activity import record_activity
from .clients import get_client
from .db import get_connection, now_iso, use_connection

logger = logging.getLogger(__name__)


class FileTooLargeError(ValueError):
    """Upload exceeds config.MAX_UPLOAD_BYTES."""


@dataclass
class ClientFile:
    id: int
    client_id: int
    file_name: str
    original_name: str
    file_size: int
    mime_type: str
    file_path: str
    uploaded_by: str | None = None
    description: str | None = None
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _row_to_file(row) -> ClientFile:
    return ClientFile(
        id=row["id"],
        client_id=row["client_id"],
        file_name=row["file_name"],
        original_name=row["original_name"],
        file_size=row["file_size"],
        mime_type=row["mime_type"],
        file_path=row["file_path"],
        uploaded_by=row["uploaded_by"],
        description=row["description"],
        created_at=row["created_at"],
    )


def stored_name(original_name: str) -> str:
    """Random on-disk name keeping the original extension."""
    suffix = Path(original_name).suffix.lower()
    if not suffix[1:].isalnum():
        suffix = ""
    return f"{secrets.token_hex(16)}{suffix}"


def get_file(file_id: int, conn: sqlite3.Connection | None = None) -> ClientFile | None:
    with use_connection(conn) as c:
        row = c.execute("SELECT * FROM client_files WHERE id = ?", (file_id,)).fetchone()
    return _row_to_file(row) if row else None


def list_files(client_id: int) -> list[ClientFile]:
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT * FROM client_files WHERE client_id = ? ORDER BY created_at DESC, id DESC",
            (client_id,),
        ).fetchall()
    return [_row_to_file(r) for r in rows]


def save_file(
    client_id: int,
    original_name: str,
    data: bytes,
    mime_type: str | None = None,
    uploaded_by: str | None = None,
    description: str | None = None,
) -> ClientFile | None:
    """
    Write *data* to the uploads dir and record it.

    Returns None when the client does not exist. Raises FileTooLargeError
    over the size limit and ValueError for an empty upload.
    """
    if not original_name:
        raise ValueError("No file uploaded")
    if len(data) > config.MAX_UPLOAD_BYTES:
        raise FileTooLargeError(
            f"File exceeds the {config.MAX_UPLOAD_BYTES // (1024 * 1024)} MB limit"
        )

    with get_connection() as conn:
        if get_client(client_id, conn) is None:
            return None

        name = stored_name(original_name)
        target = paths.uploads_dir() / name
        target.write_bytes(data)
        try:
            cursor = conn.execute(
                """
                INSERT INTO client_files (client_id, file_name, original_name, file_size,
                                          mime_type, file_path, uploaded_by, description,
                                          created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    client_id,
                    name,
                    original_name,
                    len(data),
                    mime_type or "application/octet-stream",
                    str(target),
                    uploaded_by,
                    description,
                    now_iso(),
                ),
            )
            file_id = cursor.lastrowid
            record_activity(
                conn,
                client_id,
                "file_uploaded",
                f'File "{original_name}" was uploaded',
                entity_type="file",
                entity_id=file_id,
                metadata={"size": len(data)},
            )
        except sqlite3.Error:
            target.unlink(missing_ok=True)
            raise
        stored = get_file(file_id, conn)

    logger.info("Stored %s for client %s as %s (%d bytes)", original_name, client_id, name, len(data))
    return stored


def delete_file(file_id: int) -> bool:
    """Remove the metadata row and the stored bytes."""
    with get_connection() as conn:
        existing = get_file(file_id, conn)
        if existing is None:
            return False
        conn.execute("DELETE FROM client_files WHERE id = ?", (file_id,))
        record_activity(
            conn,
            existing.client_id,
            "file_deleted",
            f'File "{existing.original_name}" was deleted',
            entity_type="file",
            entity_id=file_id,
        )

    path = Path(existing.file_path)
    if path.exists():
        path.unlink()
    else:
        logger.warning("Stored file missing on delete: %s", path)
    return True
