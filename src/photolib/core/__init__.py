"""Core photo storage pipeline.

This package holds everything between an uploaded byte stream and a photo
record whose ``has_original`` / ``has_thumbnail`` flags can be trusted.

Architecture Overview
---------------------
Components, leaves first:

1. **Path resolution** (paths.py):
   - Pure mapping from photo id to original and thumbnail paths
   - Nested (canonical) and flat (legacy) layouts

2. **Blob storage** (blob_store.py):
   - Atomic temp-then-rename writes of originals
   - Existence checks and idempotent deletes

3. **Thumbnails** (thumbnails.py):
   - Pillow-based bounded resize, never upscaling

4. **Upload orchestration** (uploads.py):
   - Validate, locate, persist, derive, commit
   - Per-photo serialisation via locks.py

5. **Support**:
   - config.py: Pydantic Settings configuration (PHOTOLIB_ prefix)
   - metadata_db.py: SQLite gallery/photo store
   - maintenance.py: Reconciliation and layout migration
   - errors.py: Error taxonomy shared with the API layer
"""

from photolib.core.blob_store import BlobStore
from photolib.core.config import PhotoLibConfig, config
from photolib.core.errors import (
    ConflictError,
    ImageProcessingError,
    InvalidInputError,
    NotFoundError,
    PhotoLibError,
    StorageIOError,
)
from photolib.core.metadata_db import MetadataDB
from photolib.core.paths import PathResolver
from photolib.core.thumbnails import ThumbnailGenerator
from photolib.core.uploads import UploadOrchestrator, UploadResult

__all__ = [
    "BlobStore",
    "ConflictError",
    "ImageProcessingError",
    "InvalidInputError",
    "MetadataDB",
    "NotFoundError",
    "PathResolver",
    "PhotoLibConfig",
    "PhotoLibError",
    "StorageIOError",
    "ThumbnailGenerator",
    "UploadOrchestrator",
    "UploadResult",
    "config",
]
