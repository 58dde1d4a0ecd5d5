"""Metadata records for galleries and photos."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Gallery:
    """A user-created group of photos.

    Galleries are soft-deleted: ``is_deleted`` hides them from listings and
    blocks new photos, but the row is kept.
    """

    id: str
    title: str
    owner_id: str | None = None
    is_deleted: bool = False
    created_at_utc: datetime = field(default_factory=utcnow)
    updated_at_utc: datetime = field(default_factory=utcnow)


@dataclass
class Photo:
    """Metadata for a single photo.

    The image bytes live in the blob store.  ``has_original`` and
    ``has_thumbnail`` record whether the corresponding files were written
    successfully; they are only ever set by the upload pipeline.
    """

    id: str
    gallery_id: str
    title: str = ""
    description: str | None = None
    client_temp_id: str | None = None
    has_original: bool = False
    has_thumbnail: bool = False
    created_at_utc: datetime = field(default_factory=utcnow)
    updated_at_utc: datetime = field(default_factory=utcnow)
    row_version: int = 0
