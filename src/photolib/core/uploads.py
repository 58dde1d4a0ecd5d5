"""Upload orchestration: original file, thumbnail, and metadata flags.

:class:`UploadOrchestrator` turns "here are the bytes for photo X" into one
logical operation spanning the metadata store and the filesystem.  The steps
run strictly in order, each a precondition for the next:

1. **Validate** the payload is present and non-empty (``InvalidInputError``).
2. **Locate** the photo record (``NotFoundError``).
3. **Persist** the original through the blob store (``StorageIOError`` aborts
   with metadata untouched).
4. **Mark** ``has_original`` in memory.
5. **Generate** the thumbnail from the stored original.
6. **Mark** ``has_thumbnail`` only if step 5 succeeded.
7. **Commit** both flags in a single update (``ConflictError`` on failure;
   the files stay on disk and are logged as orphans for reconciliation).

Steps 2-7 run under a per-photo lock so concurrent uploads to the same id
cannot pair an original from one request with a thumbnail from another.

Thumbnail failures are non-fatal by default: the original is durable, the
flags ``(True, False)`` are committed, and the error is reported on the
:class:`UploadResult`.  With ``thumbnail_failure_fatal=True`` the same flags
are committed and the thumbnail error is then raised.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import BinaryIO

from photolib.core.blob_store import BlobStore
from photolib.core.errors import (
    ConflictError,
    ImageProcessingError,
    InvalidInputError,
    NotFoundError,
    PhotoLibError,
    StorageIOError,
)
from photolib.core.locks import KeyedLock
from photolib.core.metadata_db import MetadataDB
from photolib.core.models import Photo
from photolib.core.thumbnails import DEFAULT_MAX_DIMENSION, ThumbnailGenerator

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    """Outcome of an upload or thumbnail regeneration.

    Attributes:
        photo_id: Photo the files belong to.
        has_original: Committed value of the ``has_original`` flag.
        has_thumbnail: Committed value of the ``has_thumbnail`` flag.
        bytes_written: Size of the stored original (0 when untouched).
        thumbnail_size: ``(width, height)`` of the new thumbnail, if any.
        thumbnail_error: The error that prevented thumbnail generation.
    """

    photo_id: str
    has_original: bool
    has_thumbnail: bool
    bytes_written: int = 0
    thumbnail_size: tuple[int, int] | None = None
    thumbnail_error: PhotoLibError | None = None

    @property
    def thumbnail_failed(self) -> bool:
        return self.thumbnail_error is not None


class UploadOrchestrator:
    """Coordinate metadata, original storage, and thumbnail generation.

    Args:
        metadata: Photo metadata store.
        blob_store: Storage for originals and thumbnails.
        thumbnails: Thumbnail generator.
        max_dimension: Thumbnail bound in pixels.
        thumbnail_failure_fatal: Raise thumbnail errors instead of
            reporting them on the result.
        locks: Per-photo lock table; a private one is created if omitted.
    """

    def __init__(
        self,
        metadata: MetadataDB,
        blob_store: BlobStore,
        thumbnails: ThumbnailGenerator,
        *,
        max_dimension: int = DEFAULT_MAX_DIMENSION,
        thumbnail_failure_fatal: bool = False,
        locks: KeyedLock | None = None,
    ) -> None:
        self.metadata = metadata
        self.blob_store = blob_store
        self.thumbnails = thumbnails
        self.max_dimension = max_dimension
        self.thumbnail_failure_fatal = thumbnail_failure_fatal
        self.locks = locks or KeyedLock()

    # -- Public interface ---------------------------------------------------

    def upload(self, photo_id: str, payload: BinaryIO | bytes | None) -> UploadResult:
        """Store ``payload`` as the original of ``photo_id`` and derive its thumbnail.

        Args:
            photo_id: Identifier of an existing photo record.
            payload: Raw bytes or a readable binary stream.

        Returns:
            The committed flags and thumbnail outcome.

        Raises:
            InvalidInputError: Payload missing or empty (nothing looked up or written).
            NotFoundError: No record for ``photo_id`` (nothing written).
            StorageIOError: The original could not be written (flags untouched).
            ImageProcessingError: Thumbnail failed and the failure policy is fatal.
            ConflictError: Files were written but the flags could not be committed.
        """
        stream = _open_payload(payload)

        with self.locks.hold(photo_id):
            # Looked up under the lock so a concurrent delete cannot slip in.
            self._locate(photo_id)
            bytes_written = self.blob_store.store(photo_id, stream)
            has_original = True

            has_thumbnail, thumbnail_size, thumbnail_error = self._derive_thumbnail(photo_id)

            self._commit(photo_id, has_original, has_thumbnail)

        result = UploadResult(
            photo_id=photo_id,
            has_original=has_original,
            has_thumbnail=has_thumbnail,
            bytes_written=bytes_written,
            thumbnail_size=thumbnail_size,
            thumbnail_error=thumbnail_error,
        )
        logger.info(
            f"Upload for {photo_id} complete "
            f"(original={has_original}, thumbnail={has_thumbnail}, {bytes_written} bytes)"
        )

        if thumbnail_error is not None and self.thumbnail_failure_fatal:
            raise thumbnail_error
        return result

    def regenerate_thumbnail(self, photo_id: str) -> UploadResult:
        """Re-derive the thumbnail of ``photo_id`` from its stored original.

        Raises:
            NotFoundError: No record, or the record has no original on disk.
            StorageIOError: The thumbnail could not be written.
            ImageProcessingError: The original is not a valid image.
            ConflictError: The flag could not be committed.
        """
        with self.locks.hold(photo_id):
            self._locate(photo_id)
            if not self.blob_store.exists(photo_id):
                raise NotFoundError("Photo has no original file.", photo_id=photo_id)

            has_thumbnail, thumbnail_size, thumbnail_error = self._derive_thumbnail(photo_id)
            self._commit(photo_id, True, has_thumbnail)

        if thumbnail_error is not None:
            raise thumbnail_error

        return UploadResult(
            photo_id=photo_id,
            has_original=True,
            has_thumbnail=has_thumbnail,
            thumbnail_size=thumbnail_size,
        )

    def delete_photo(self, photo_id: str, *, delete_files: bool = True) -> None:
        """Delete the record of ``photo_id`` and, optionally, its files.

        The record goes first.  If the files then cannot be removed they are
        left as orphans and the error is raised.

        Raises:
            NotFoundError: No record for ``photo_id``.
            StorageIOError: The record was deleted but a file could not be.
        """
        with self.locks.hold(photo_id):
            if not self.metadata.delete_photo(photo_id):
                raise NotFoundError("Photo not found.", photo_id=photo_id)
            if delete_files:
                self.blob_store.delete_all(photo_id)

    # -- Steps --------------------------------------------------------------

    def _locate(self, photo_id: str) -> Photo:
        photo = self.metadata.find_photo_by_id(photo_id)
        if photo is None:
            raise NotFoundError("Photo not found.", photo_id=photo_id)
        return photo

    def _derive_thumbnail(
        self, photo_id: str
    ) -> tuple[bool, tuple[int, int] | None, PhotoLibError | None]:
        source = self.blob_store.paths.original_path(photo_id)
        dest = self.blob_store.paths.thumbnail_path(photo_id)
        try:
            size = self.thumbnails.generate(source, dest, self.max_dimension, photo_id=photo_id)
        except (ImageProcessingError, StorageIOError) as e:
            logger.warning(f"Thumbnail generation failed for {photo_id}: {e}")
            self._discard_stale_thumbnail(photo_id)
            return False, None, e
        return True, size, None

    def _discard_stale_thumbnail(self, photo_id: str) -> None:
        # A thumbnail left over from an earlier upload no longer matches the
        # new original.
        try:
            self.blob_store.delete_thumbnail(photo_id)
        except StorageIOError as e:
            logger.warning(f"Could not remove stale thumbnail for {photo_id}: {e}")

    def _commit(self, photo_id: str, has_original: bool, has_thumbnail: bool) -> None:
        if not self.metadata.update_photo_flags(photo_id, has_original, has_thumbnail):
            logger.error(
                f"Flag commit failed for {photo_id}; files on disk are orphaned "
                f"until reconciled (original={has_original}, thumbnail={has_thumbnail})"
            )
            raise ConflictError("Photo metadata could not be updated.", photo_id=photo_id)


def _open_payload(payload: BinaryIO | bytes | None) -> BinaryIO:
    """Return ``payload`` as a stream, rejecting missing or empty input."""
    if payload is None:
        raise InvalidInputError("File is required.")

    if isinstance(payload, (bytes, bytearray, memoryview)):
        stream: BinaryIO = io.BytesIO(bytes(payload))
    elif _is_seekable(payload):
        stream = payload
    else:
        stream = io.BytesIO(payload.read())

    position = stream.tell()
    end = stream.seek(0, io.SEEK_END)
    stream.seek(position)
    if end - position <= 0:
        raise InvalidInputError("File is required.")
    return stream


def _is_seekable(stream: BinaryIO) -> bool:
    # SpooledTemporaryFile only grew seekable() in Python 3.11.
    seekable = getattr(stream, "seekable", None)
    if seekable is not None:
        return seekable()
    return hasattr(stream, "seek") and hasattr(stream, "tell")
