"""SQLite metadata store for galleries and photos."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from photolib.core.models import Gallery, Photo, utcnow

logger = logging.getLogger(__name__)

_PHOTO_COLUMNS = (
    "id, gallery_id, title, description, client_temp_id, has_original, "
    "has_thumbnail, created_at_utc, updated_at_utc, row_version"
)
_GALLERY_COLUMNS = "id, title, owner_id, is_deleted, created_at_utc, updated_at_utc"


class MetadataDB:
    """Manage gallery and photo records in a SQLite database.

    Each operation opens its own connection, so one instance can be shared
    by every request thread.  Writes run in a transaction that commits on
    success and rolls back on error.
    """

    def __init__(self, db_path: Path | str):
        """Initialize the metadata database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_db()
        logger.info(f"Initialized metadata database at {self.db_path}")

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, timeout=10.0)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _initialize_db(self) -> None:
        """Create database schema if it doesn't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS galleries (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    owner_id TEXT,
                    is_deleted INTEGER NOT NULL DEFAULT 0,
                    created_at_utc TEXT NOT NULL,
                    updated_at_utc TEXT NOT NULL
                )
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS photos (
                    id TEXT PRIMARY KEY,
                    gallery_id TEXT NOT NULL REFERENCES galleries(id),
                    title TEXT NOT NULL DEFAULT '',
                    description TEXT,
                    client_temp_id TEXT,
                    has_original INTEGER NOT NULL DEFAULT 0,
                    has_thumbnail INTEGER NOT NULL DEFAULT 0,
                    created_at_utc TEXT NOT NULL,
                    updated_at_utc TEXT NOT NULL,
                    row_version INTEGER NOT NULL DEFAULT 0
                )
                """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_photos_gallery ON photos(gallery_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_galleries_owner ON galleries(owner_id)")

    # -- Galleries ----------------------------------------------------------

    def create_gallery(self, title: str, owner_id: str | None = None) -> Gallery:
        """Insert a new gallery and return it."""
        now = utcnow()
        gallery = Gallery(
            id=str(uuid.uuid4()),
            title=title,
            owner_id=owner_id,
            created_at_utc=now,
            updated_at_utc=now,
        )
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO galleries ({_GALLERY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    gallery.id,
                    gallery.title,
                    gallery.owner_id,
                    0,
                    now.isoformat(),
                    now.isoformat(),
                ),
            )
        logger.info(f"Created gallery {gallery.id}")
        return gallery

    def list_galleries(
        self, owner_id: str | None = None, *, include_deleted: bool = False
    ) -> list[Gallery]:
        """Return the galleries of ``owner_id``, oldest first."""
        query = f"SELECT {_GALLERY_COLUMNS} FROM galleries WHERE owner_id IS ?"
        if not include_deleted:
            query += " AND is_deleted = 0"
        query += " ORDER BY created_at_utc, rowid"
        with self._connect() as conn:
            rows = conn.execute(query, (owner_id,)).fetchall()
        return [_row_to_gallery(row) for row in rows]

    def get_gallery(self, gallery_id: str, *, include_deleted: bool = False) -> Gallery | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_GALLERY_COLUMNS} FROM galleries WHERE id = ?",
                (gallery_id,),
            ).fetchone()
        if row is None:
            return None
        gallery = _row_to_gallery(row)
        if gallery.is_deleted and not include_deleted:
            return None
        return gallery

    def gallery_exists(self, gallery_id: str) -> bool:
        """Check whether a gallery exists and has not been deleted."""
        return self.get_gallery(gallery_id) is not None

    def soft_delete_gallery(self, gallery_id: str) -> bool:
        """Mark a gallery as deleted.

        Returns:
            True if the gallery was marked, False if it was missing or
            already deleted
        """
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE galleries SET is_deleted = 1, updated_at_utc = ? "
                "WHERE id = ? AND is_deleted = 0",
                (utcnow().isoformat(), gallery_id),
            )
            was_deleted = cursor.rowcount > 0
        if was_deleted:
            logger.info(f"Soft-deleted gallery {gallery_id}")
        return was_deleted

    # -- Photos -------------------------------------------------------------

    def create_photo(
        self,
        gallery_id: str,
        title: str,
        description: str | None = None,
        client_temp_id: str | None = None,
    ) -> Photo:
        """Insert a photo record with no files attached yet."""
        now = utcnow()
        photo = Photo(
            id=str(uuid.uuid4()),
            gallery_id=gallery_id,
            title=title,
            description=description,
            client_temp_id=client_temp_id,
            created_at_utc=now,
            updated_at_utc=now,
        )
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO photos ({_PHOTO_COLUMNS}) VALUES (?, ?, ?, ?, ?, 0, 0, ?, ?, 0)",
                (
                    photo.id,
                    photo.gallery_id,
                    photo.title,
                    photo.description,
                    photo.client_temp_id,
                    now.isoformat(),
                    now.isoformat(),
                ),
            )
        logger.info(f"Created photo {photo.id} in gallery {gallery_id}")
        return photo

    def find_photo_by_id(self, photo_id: str) -> Photo | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_PHOTO_COLUMNS} FROM photos WHERE id = ?",
                (photo_id,),
            ).fetchone()
        return _row_to_photo(row) if row is not None else None

    def list_photos_by_gallery(self, gallery_id: str) -> list[Photo]:
        """Return the photos of a gallery, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_PHOTO_COLUMNS} FROM photos WHERE gallery_id = ? ORDER BY created_at_utc, rowid",
                (gallery_id,),
            ).fetchall()
        return [_row_to_photo(row) for row in rows]

    def iter_photos(self) -> Iterator[Photo]:
        """Yield every photo record."""
        with self._connect() as conn:
            rows = conn.execute(f"SELECT {_PHOTO_COLUMNS} FROM photos ORDER BY created_at_utc, rowid").fetchall()
        for row in rows:
            yield _row_to_photo(row)

    def update_photo_details(self, photo_id: str, title: str, description: str | None) -> bool:
        """Replace the display metadata of a photo.

        Returns:
            True if the photo exists and was updated
        """
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE photos SET title = ?, description = ?, updated_at_utc = ?, "
                "row_version = row_version + 1 WHERE id = ?",
                (title, description, utcnow().isoformat(), photo_id),
            )
            return cursor.rowcount > 0

    def update_photo_flags(self, photo_id: str, has_original: bool, has_thumbnail: bool) -> bool:
        """Persist the file flags of a photo in a single update.

        Args:
            photo_id: Photo to update
            has_original: New value of ``has_original``
            has_thumbnail: New value of ``has_thumbnail``

        Returns:
            True if committed, False if the photo no longer exists or the
            database rejected the write
        """
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    "UPDATE photos SET has_original = ?, has_thumbnail = ?, updated_at_utc = ?, "
                    "row_version = row_version + 1 WHERE id = ?",
                    (int(has_original), int(has_thumbnail), utcnow().isoformat(), photo_id),
                )
                updated = cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Error updating flags of photo {photo_id}: {e}")
            return False

        if not updated:
            logger.warning(f"Flag update matched no photo {photo_id}")
        return updated

    def delete_photo(self, photo_id: str) -> bool:
        """Remove a photo record.

        Returns:
            True if a record was removed, False if it did not exist
        """
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM photos WHERE id = ?", (photo_id,))
            was_deleted = cursor.rowcount > 0
        if was_deleted:
            logger.info(f"Deleted photo record {photo_id}")
        return was_deleted


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _row_to_gallery(row: sqlite3.Row) -> Gallery:
    return Gallery(
        id=row["id"],
        title=row["title"],
        owner_id=row["owner_id"],
        is_deleted=bool(row["is_deleted"]),
        created_at_utc=_parse_timestamp(row["created_at_utc"]),
        updated_at_utc=_parse_timestamp(row["updated_at_utc"]),
    )


def _row_to_photo(row: sqlite3.Row) -> Photo:
    return Photo(
        id=row["id"],
        gallery_id=row["gallery_id"],
        title=row["title"],
        description=row["description"],
        client_temp_id=row["client_temp_id"],
        has_original=bool(row["has_original"]),
        has_thumbnail=bool(row["has_thumbnail"]),
        created_at_utc=_parse_timestamp(row["created_at_utc"]),
        updated_at_utc=_parse_timestamp(row["updated_at_utc"]),
        row_version=row["row_version"],
    )
