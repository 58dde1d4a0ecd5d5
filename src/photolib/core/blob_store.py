"""Filesystem storage for photo originals and thumbnails.

:class:`BlobStore` owns every byte PhotoLib writes to disk.  Paths come from
an injected :class:`~photolib.core.paths.PathResolver`, so tests (and
alternative deployments) can point the store at any directory.

Writes are atomic: content is streamed into a temporary file created next to
the destination, flushed to disk, and then moved into place with
``os.replace``.  A reader fetching ``original_path(id)`` therefore sees
either the previous complete file or the new complete file, never a
truncated one.  If the write fails part-way (disk full, client disconnect)
the temporary file is removed and the destination is left untouched.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO

from photolib.core.errors import StorageIOError
from photolib.core.paths import PathResolver

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024

# mkstemp creates 0600 files; stored files get the usual umask-derived mode.
_UMASK = os.umask(0)
os.umask(_UMASK)
FILE_MODE = 0o666 & ~_UMASK


@contextmanager
def atomic_output(target: Path) -> Iterator[BinaryIO]:
    """Open a temporary file that replaces ``target`` when the block exits.

    The parent directory is created if needed.  On any exception inside the
    block the temporary file is deleted and the exception propagates.

    Args:
        target: Final destination path.

    Yields:
        A binary file handle to write the new content into.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            yield handle
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_path, FILE_MODE)
        os.replace(tmp_path, target)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class BlobStore:
    """Store, probe, and delete photo files on the local filesystem.

    Args:
        paths: Resolver that maps photo ids to file paths.
    """

    def __init__(self, paths: PathResolver) -> None:
        self.paths = paths

    def store(self, photo_id: str, stream: BinaryIO) -> int:
        """Write ``stream`` to the original-file location of ``photo_id``.

        Any previous original is overwritten atomically.

        Args:
            photo_id: Identifier of the photo.
            stream: Readable binary stream positioned at the start of the data.

        Returns:
            Number of bytes written.

        Raises:
            StorageIOError: If the directory cannot be created or the write fails.
        """
        target = self.paths.original_path(photo_id)
        try:
            with atomic_output(target) as handle:
                shutil.copyfileobj(stream, handle, COPY_CHUNK_SIZE)
                size = handle.tell()
        except OSError as e:
            logger.error(f"Failed to store original for {photo_id} at {target}: {e}")
            raise StorageIOError(
                f"Could not write original file: {e.strerror or e}", photo_id=photo_id
            ) from e

        logger.info(f"Stored original for {photo_id} ({size} bytes) at {target}")
        return size

    def exists(self, photo_id: str) -> bool:
        """Return ``True`` if the original file of ``photo_id`` is present."""
        return self.paths.original_path(photo_id).is_file()

    def thumbnail_exists(self, photo_id: str) -> bool:
        """Return ``True`` if the thumbnail file of ``photo_id`` is present."""
        return self.paths.thumbnail_path(photo_id).is_file()

    def delete(self, photo_id: str) -> bool:
        """Remove the original file.  Absent files are not an error.

        Returns:
            ``True`` if a file was removed, ``False`` if there was none.

        Raises:
            StorageIOError: If the file exists but cannot be removed.
        """
        return self._unlink(self.paths.original_path(photo_id), photo_id)

    def delete_thumbnail(self, photo_id: str) -> bool:
        """Remove the thumbnail file.  Absent files are not an error."""
        return self._unlink(self.paths.thumbnail_path(photo_id), photo_id)

    def delete_all(self, photo_id: str) -> None:
        """Remove both the original and the thumbnail of ``photo_id``."""
        self.delete(photo_id)
        self.delete_thumbnail(photo_id)

    def iter_original_ids(self) -> Iterator[str]:
        """Yield the ids of all originals currently on disk."""
        directory = self.paths.originals_dir
        if not directory.is_dir():
            return
        for entry in sorted(directory.iterdir()):
            if not entry.is_file() or entry.name.startswith("."):
                continue
            photo_id = self.paths.photo_id_from_original(entry)
            if photo_id is not None:
                yield photo_id

    def _unlink(self, path: Path, photo_id: str) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageIOError(
                f"Could not delete {path.name}: {e.strerror or e}", photo_id=photo_id
            ) from e
        logger.info(f"Deleted {path}")
        return True
