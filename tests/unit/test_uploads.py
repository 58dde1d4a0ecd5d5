"""Tests for photolib.core.uploads — the upload and thumbnail pipeline."""

from __future__ import annotations

import io
import threading
import time
from unittest.mock import patch

import pytest
from PIL import Image

from photolib.core.errors import (
    ConflictError,
    ImageProcessingError,
    InvalidInputError,
    NotFoundError,
    StorageIOError,
)
from photolib.core.metadata_db import MetadataDB
from photolib.core.thumbnails import ThumbnailGenerator
from photolib.core.uploads import UploadOrchestrator, UploadResult


def _files_under(root):
    if not root.exists():
        return []
    return [p for p in root.rglob("*") if p.is_file()]


class TestValidation:
    """Payload and record checks that must happen before any write."""

    @pytest.mark.parametrize("payload", [None, b"", io.BytesIO(b"")])
    def test_missing_payload_rejected(self, orchestrator, photo, payload, test_config):
        with pytest.raises(InvalidInputError) as exc_info:
            orchestrator.upload(photo.id, payload)

        assert exc_info.value.code == "invalid_input"
        assert _files_under(test_config.photos_root) == []

    def test_payload_checked_before_photo_lookup(self, orchestrator):
        # An empty payload for an unknown id reports the payload problem.
        with pytest.raises(InvalidInputError):
            orchestrator.upload("no-such-photo", b"")

    def test_unknown_photo_writes_nothing(self, orchestrator, image_bytes, test_config):
        with pytest.raises(NotFoundError) as exc_info:
            orchestrator.upload("no-such-photo", image_bytes(100, 100))

        assert exc_info.value.photo_id == "no-such-photo"
        assert _files_under(test_config.photos_root) == []

    def test_partially_consumed_stream_uses_remaining_bytes(self, orchestrator, photo, image_bytes):
        data = image_bytes(100, 100)
        stream = io.BytesIO(b"HEADER" + data)
        stream.seek(6)

        result = orchestrator.upload(photo.id, stream)

        assert result.bytes_written == len(data)


class TestUpload:
    """The happy path and idempotence."""

    def test_upload_stores_original_and_thumbnail(self, orchestrator, metadata_db, blob_store, photo, image_bytes):
        data = image_bytes(1200, 800)

        result = orchestrator.upload(photo.id, data)

        assert isinstance(result, UploadResult)
        assert result.has_original is True
        assert result.has_thumbnail is True
        assert result.thumbnail_size == (300, 200)
        assert result.thumbnail_failed is False

        assert blob_store.paths.original_path(photo.id).read_bytes() == data
        with Image.open(blob_store.paths.thumbnail_path(photo.id)) as thumb:
            assert thumb.size == (300, 200)

        stored = metadata_db.find_photo_by_id(photo.id)
        assert stored.has_original is True
        assert stored.has_thumbnail is True

    def test_upload_from_stream(self, orchestrator, blob_store, photo, image_bytes):
        data = image_bytes(640, 480)
        orchestrator.upload(photo.id, io.BytesIO(data))
        assert blob_store.paths.original_path(photo.id).read_bytes() == data

    def test_details_untouched_by_upload(self, orchestrator, metadata_db, photo, image_bytes):
        orchestrator.upload(photo.id, image_bytes(200, 200))
        stored = metadata_db.find_photo_by_id(photo.id)
        assert stored.title == photo.title
        assert stored.description == photo.description
        assert stored.gallery_id == photo.gallery_id

    def test_repeat_upload_is_idempotent(self, orchestrator, metadata_db, blob_store, photo, image_bytes):
        data = image_bytes(1200, 800)
        orchestrator.upload(photo.id, data)
        first_thumb = blob_store.paths.thumbnail_path(photo.id).read_bytes()

        orchestrator.upload(photo.id, data)

        assert blob_store.paths.original_path(photo.id).read_bytes() == data
        assert blob_store.paths.thumbnail_path(photo.id).read_bytes() == first_thumb
        stored = metadata_db.find_photo_by_id(photo.id)
        assert (stored.has_original, stored.has_thumbnail) == (True, True)

    def test_replacement_original_regenerates_thumbnail(self, orchestrator, blob_store, photo, image_bytes):
        orchestrator.upload(photo.id, image_bytes(1200, 800))
        orchestrator.upload(photo.id, image_bytes(400, 800))

        with Image.open(blob_store.paths.thumbnail_path(photo.id)) as thumb:
            assert thumb.size == (150, 300)


class TestStorageFailure:
    def test_original_write_failure_leaves_flags_untouched(
        self, orchestrator, metadata_db, blob_store, photo, image_bytes
    ):
        with patch.object(
            blob_store,
            "store",
            side_effect=StorageIOError("Could not write original file: No space left on device", photo_id=photo.id),
        ):
            with pytest.raises(StorageIOError) as exc_info:
                orchestrator.upload(photo.id, image_bytes(100, 100))

        assert exc_info.value.code == "io_error"
        stored = metadata_db.find_photo_by_id(photo.id)
        assert (stored.has_original, stored.has_thumbnail) == (False, False)
        assert not blob_store.thumbnail_exists(photo.id)

    def test_unwritable_root_raises_io_error(self, metadata_db, temp_dir, photo, image_bytes):
        from photolib.core.blob_store import BlobStore
        from photolib.core.paths import PathResolver

        blocked_root = temp_dir / "not-a-dir"
        blocked_root.write_bytes(b"")
        orchestrator = UploadOrchestrator(metadata_db, BlobStore(PathResolver(blocked_root)), ThumbnailGenerator())

        with pytest.raises(StorageIOError):
            orchestrator.upload(photo.id, image_bytes(100, 100))

        assert metadata_db.find_photo_by_id(photo.id).has_original is False


class TestThumbnailFailure:
    """Invalid images: the original is kept and the thumbnail flag stays false."""

    def test_non_fatal_by_default(self, orchestrator, metadata_db, blob_store, photo):
        data = b"this is not an image"

        result = orchestrator.upload(photo.id, data)

        assert result.has_original is True
        assert result.has_thumbnail is False
        assert isinstance(result.thumbnail_error, ImageProcessingError)
        assert result.thumbnail_failed is True

        assert blob_store.paths.original_path(photo.id).read_bytes() == data
        assert not blob_store.thumbnail_exists(photo.id)
        stored = metadata_db.find_photo_by_id(photo.id)
        assert (stored.has_original, stored.has_thumbnail) == (True, False)

    def test_fatal_policy_raises_after_commit(self, metadata_db, blob_store, photo):
        orchestrator = UploadOrchestrator(
            metadata_db, blob_store, ThumbnailGenerator(), thumbnail_failure_fatal=True
        )

        with pytest.raises(ImageProcessingError) as exc_info:
            orchestrator.upload(photo.id, b"this is not an image")

        assert exc_info.value.photo_id == photo.id
        assert blob_store.exists(photo.id)
        stored = metadata_db.find_photo_by_id(photo.id)
        assert (stored.has_original, stored.has_thumbnail) == (True, False)

    def test_stale_thumbnail_removed(self, orchestrator, metadata_db, blob_store, photo, image_bytes):
        orchestrator.upload(photo.id, image_bytes(600, 400))
        assert blob_store.thumbnail_exists(photo.id)

        orchestrator.upload(photo.id, b"corrupt replacement")

        assert not blob_store.thumbnail_exists(photo.id)
        assert metadata_db.find_photo_by_id(photo.id).has_thumbnail is False

    def test_thumbnail_write_failure_is_reported(self, orchestrator, metadata_db, photo, image_bytes):
        with patch.object(
            ThumbnailGenerator,
            "generate",
            side_effect=StorageIOError("Could not write thumbnail: disk full", photo_id=photo.id),
        ):
            result = orchestrator.upload(photo.id, image_bytes(100, 100))

        assert isinstance(result.thumbnail_error, StorageIOError)
        stored = metadata_db.find_photo_by_id(photo.id)
        assert (stored.has_original, stored.has_thumbnail) == (True, False)


class TestCommitFailure:
    def test_failed_commit_raises_conflict_and_keeps_files(self, orchestrator, blob_store, photo, image_bytes):
        with patch.object(MetadataDB, "update_photo_flags", return_value=False):
            with pytest.raises(ConflictError) as exc_info:
                orchestrator.upload(photo.id, image_bytes(100, 100))

        assert exc_info.value.photo_id == photo.id
        # Files remain on disk for reconciliation.
        assert blob_store.exists(photo.id)
        assert blob_store.thumbnail_exists(photo.id)

    def test_flags_committed_once(self, orchestrator, photo, image_bytes):
        with patch.object(MetadataDB, "update_photo_flags", return_value=True) as mock_update:
            orchestrator.upload(photo.id, image_bytes(100, 100))

        mock_update.assert_called_once_with(photo.id, True, True)


class TestRegenerateThumbnail:
    def test_rebuilds_missing_thumbnail(self, orchestrator, metadata_db, blob_store, photo, image_bytes):
        orchestrator.upload(photo.id, image_bytes(1200, 800))
        blob_store.delete_thumbnail(photo.id)
        metadata_db.update_photo_flags(photo.id, True, False)

        result = orchestrator.regenerate_thumbnail(photo.id)

        assert result.has_thumbnail is True
        assert result.thumbnail_size == (300, 200)
        assert blob_store.thumbnail_exists(photo.id)
        assert metadata_db.find_photo_by_id(photo.id).has_thumbnail is True

    def test_without_original_raises_not_found(self, orchestrator, photo):
        with pytest.raises(NotFoundError, match="no original"):
            orchestrator.regenerate_thumbnail(photo.id)

    def test_unknown_photo_raises_not_found(self, orchestrator):
        with pytest.raises(NotFoundError):
            orchestrator.regenerate_thumbnail("no-such-photo")

    def test_invalid_original_raises_image_error(self, orchestrator, metadata_db, photo):
        orchestrator.upload(photo.id, b"still not an image")

        with pytest.raises(ImageProcessingError):
            orchestrator.regenerate_thumbnail(photo.id)

        stored = metadata_db.find_photo_by_id(photo.id)
        assert (stored.has_original, stored.has_thumbnail) == (True, False)


class TestDeletePhoto:
    def test_removes_record_and_files(self, orchestrator, metadata_db, blob_store, photo, image_bytes):
        orchestrator.upload(photo.id, image_bytes(100, 100))

        orchestrator.delete_photo(photo.id)

        assert metadata_db.find_photo_by_id(photo.id) is None
        assert not blob_store.exists(photo.id)
        assert not blob_store.thumbnail_exists(photo.id)

    def test_keep_files(self, orchestrator, metadata_db, blob_store, photo, image_bytes):
        orchestrator.upload(photo.id, image_bytes(100, 100))

        orchestrator.delete_photo(photo.id, delete_files=False)

        assert metadata_db.find_photo_by_id(photo.id) is None
        assert blob_store.exists(photo.id)

    def test_unknown_photo_raises_not_found(self, orchestrator):
        with pytest.raises(NotFoundError):
            orchestrator.delete_photo("no-such-photo")


class TestConcurrency:
    def test_concurrent_uploads_to_same_photo_stay_paired(
        self, orchestrator, metadata_db, blob_store, photo, image_bytes
    ):
        """The final thumbnail must always be derived from the final original."""
        payloads = [image_bytes(1200, 800), image_bytes(400, 800), image_bytes(900, 900)]
        expected = {
            payloads[0]: (300, 200),
            payloads[1]: (150, 300),
            payloads[2]: (300, 300),
        }
        errors = []

        def worker(data):
            try:
                orchestrator.upload(photo.id, data)
            except Exception as e:  # pragma: no cover - surfaced below
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(payloads[i % 3],)) for i in range(9)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        final_original = blob_store.paths.original_path(photo.id).read_bytes()
        with Image.open(blob_store.paths.thumbnail_path(photo.id)) as thumb:
            assert thumb.size == expected[final_original]
        stored = metadata_db.find_photo_by_id(photo.id)
        assert (stored.has_original, stored.has_thumbnail) == (True, True)
        assert stored.row_version == 9
        assert len(orchestrator.locks) == 0

    def test_upload_waiting_on_delete_reports_not_found(
        self, orchestrator, metadata_db, blob_store, photo, image_bytes, test_config
    ):
        """An upload queued behind a delete of the same photo writes nothing."""
        outcome = []

        def worker():
            try:
                orchestrator.upload(photo.id, image_bytes(100, 100))
            except Exception as e:
                outcome.append(e)

        with orchestrator.locks.hold(photo.id):
            thread = threading.Thread(target=worker)
            thread.start()
            # Wait until the upload is blocked on the photo lock.
            deadline = time.monotonic() + 5
            while orchestrator.locks._locks[photo.id][1] < 2 and time.monotonic() < deadline:
                time.sleep(0.005)
            metadata_db.delete_photo(photo.id)
        thread.join()

        assert len(outcome) == 1
        assert isinstance(outcome[0], NotFoundError)
        assert _files_under(test_config.photos_root) == []

    def test_uploads_to_different_photos(self, orchestrator, metadata_db, blob_store, gallery, image_bytes):
        photos = [metadata_db.create_photo(gallery.id, f"p{i}") for i in range(4)]
        data = image_bytes(500, 500)

        threads = [threading.Thread(target=orchestrator.upload, args=(p.id, data)) for p in photos]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for p in photos:
            assert blob_store.exists(p.id)
            assert metadata_db.find_photo_by_id(p.id).has_thumbnail is True
