"""Repair and migration passes over the photo store.

Nothing in this module runs automatically.  Both passes are invoked
explicitly, through the ``POST /maintenance/reconcile`` endpoint or from
Python.

Reconciliation
--------------
The upload pipeline commits file flags only after the files are written, so
a failed commit leaves files whose record still says ``has_original=False``.
Files can also vanish from disk behind the application's back.
:func:`reconcile` compares every photo record with the blob store:

- a record whose flags disagree with the files on disk is reported as a
  *mismatch* and, with ``repair=True``, its flags are rewritten to match;
- an original on disk with no record at all is reported as an *orphan* and,
  with ``remove_orphans=True``, deleted together with its thumbnail.

The expected flags are derived from disk: ``has_original`` is true when the
original exists, ``has_thumbnail`` when both files exist.

Layout migration
----------------
:func:`migrate_flat_layout` moves files written with the legacy flat layout
(``<root>/<id>.jpg``) into the canonical nested layout
(``<root>/originals/<id>.jpg``, ``<root>/thumbnails/<id>.jpg``).  Files whose
destination already exists are left in place and reported as skipped.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field

from photolib.core.blob_store import BlobStore
from photolib.core.errors import StorageIOError
from photolib.core.locks import KeyedLock
from photolib.core.metadata_db import MetadataDB
from photolib.core.paths import PathResolver

logger = logging.getLogger(__name__)


@dataclass
class FlagMismatch:
    """A photo record whose flags disagree with the files on disk."""

    photo_id: str
    has_original: bool
    has_thumbnail: bool
    original_exists: bool
    thumbnail_exists: bool

    @property
    def expected_flags(self) -> tuple[bool, bool]:
        return self.original_exists, self.original_exists and self.thumbnail_exists


@dataclass
class ReconcileReport:
    """Result of a :func:`reconcile` pass."""

    checked: int = 0
    mismatches: list[FlagMismatch] = field(default_factory=list)
    orphans: list[str] = field(default_factory=list)
    repaired: list[str] = field(default_factory=list)
    removed_orphans: list[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.mismatches and not self.orphans


@dataclass
class MigrationReport:
    """Result of a :func:`migrate_flat_layout` pass."""

    moved: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def reconcile(
    metadata: MetadataDB,
    blob_store: BlobStore,
    *,
    repair: bool = False,
    remove_orphans: bool = False,
    locks: KeyedLock | None = None,
) -> ReconcileReport:
    """Compare photo flags with the blob store and optionally repair them.

    Args:
        metadata: Photo metadata store.
        blob_store: Storage holding the files.
        repair: Rewrite mismatched flags to match the files on disk.
        remove_orphans: Delete originals (and thumbnails) that have no record.
        locks: Lock table shared with the upload pipeline, so a repair never
            races an in-flight upload of the same photo.

    Returns:
        What was checked, found, and changed.
    """
    locks = locks or KeyedLock()
    report = ReconcileReport()
    known_ids: set[str] = set()

    for photo in metadata.iter_photos():
        known_ids.add(photo.id)
        report.checked += 1
        with locks.hold(photo.id):
            mismatch = FlagMismatch(
                photo_id=photo.id,
                has_original=photo.has_original,
                has_thumbnail=photo.has_thumbnail,
                original_exists=blob_store.exists(photo.id),
                thumbnail_exists=blob_store.thumbnail_exists(photo.id),
            )
            if (photo.has_original, photo.has_thumbnail) == mismatch.expected_flags:
                continue

            report.mismatches.append(mismatch)
            logger.warning(
                f"Photo {photo.id} flags (original={photo.has_original}, "
                f"thumbnail={photo.has_thumbnail}) disagree with disk "
                f"(original={mismatch.original_exists}, thumbnail={mismatch.thumbnail_exists})"
            )
            if repair:
                has_original, has_thumbnail = mismatch.expected_flags
                if metadata.update_photo_flags(photo.id, has_original, has_thumbnail):
                    report.repaired.append(photo.id)

    for photo_id in list(blob_store.iter_original_ids()):
        if photo_id in known_ids:
            continue
        with locks.hold(photo_id):
            # The record may have been created after the first loop ran.
            if metadata.find_photo_by_id(photo_id) is not None:
                continue
            report.orphans.append(photo_id)
            logger.warning(f"Orphan original on disk with no record: {photo_id}")
            if remove_orphans:
                blob_store.delete_all(photo_id)
                report.removed_orphans.append(photo_id)

    logger.info(
        f"Reconciled {report.checked} photos: {len(report.mismatches)} mismatches, "
        f"{len(report.orphans)} orphans, {len(report.repaired)} repaired"
    )
    return report


def migrate_flat_layout(legacy: PathResolver, target: PathResolver) -> MigrationReport:
    """Move originals and thumbnails from the flat layout to ``target``.

    Args:
        legacy: Resolver describing the existing flat layout.
        target: Resolver describing the destination (normally nested) layout.

    Returns:
        Ids that were moved and ids that were skipped.

    Raises:
        ValueError: If ``legacy`` is not a flat layout.
        StorageIOError: If a file cannot be moved.
    """
    if legacy.layout != "flat":
        raise ValueError("migrate_flat_layout expects a flat source layout")

    report = MigrationReport()
    source_store = BlobStore(legacy)

    for photo_id in list(source_store.iter_original_ids()):
        src_original = legacy.original_path(photo_id)
        dst_original = target.original_path(photo_id)
        if dst_original.exists():
            logger.warning(f"Skipping {photo_id}: {dst_original} already exists")
            report.skipped.append(photo_id)
            continue

        src_thumbnail = legacy.thumbnail_path(photo_id)
        dst_thumbnail = target.thumbnail_path(photo_id)
        try:
            dst_original.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(src_original), str(dst_original))
            if src_thumbnail.is_file() and not dst_thumbnail.exists():
                dst_thumbnail.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(src_thumbnail), str(dst_thumbnail))
        except OSError as e:
            raise StorageIOError(f"Could not migrate files: {e}", photo_id=photo_id) from e

        report.moved.append(photo_id)
        logger.info(f"Migrated {photo_id} to {dst_original}")

    return report
