"""Shared pytest fixtures for PhotoLib tests."""

import io
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from photolib.api.main import create_app
from photolib.core.blob_store import BlobStore
from photolib.core.config import PhotoLibConfig
from photolib.core.metadata_db import MetadataDB
from photolib.core.models import Gallery, Photo
from photolib.core.paths import PathResolver
from photolib.core.thumbnails import ThumbnailGenerator
from photolib.core.uploads import UploadOrchestrator


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> PhotoLibConfig:
    """Create a test configuration rooted in a temporary directory.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        PhotoLibConfig instance for testing
    """
    return PhotoLibConfig(
        _env_file=None,
        photos_root=str(temp_dir / "photos"),
        database_path=str(temp_dir / "db" / "photolib.db"),
        storage_layout="nested",
        thumbnail_max_dimension=300,
        thumbnail_failure_fatal=False,
    )


@pytest.fixture
def path_resolver(test_config: PhotoLibConfig) -> PathResolver:
    return PathResolver.from_config(test_config)


@pytest.fixture
def blob_store(path_resolver: PathResolver) -> BlobStore:
    return BlobStore(path_resolver)


@pytest.fixture
def metadata_db(test_config: PhotoLibConfig) -> MetadataDB:
    return MetadataDB(test_config.database_path)


@pytest.fixture
def orchestrator(metadata_db: MetadataDB, blob_store: BlobStore) -> UploadOrchestrator:
    """Create an upload orchestrator with the default non-fatal thumbnail policy."""
    return UploadOrchestrator(
        metadata_db,
        blob_store,
        ThumbnailGenerator(),
        max_dimension=300,
    )


@pytest.fixture
def gallery(metadata_db: MetadataDB) -> Gallery:
    return metadata_db.create_gallery("Vacation 2025")


@pytest.fixture
def photo(metadata_db: MetadataDB, gallery: Gallery) -> Photo:
    """A photo record with no files uploaded yet."""
    return metadata_db.create_photo(gallery.id, "Beach", description="Sunset at the beach")


@pytest.fixture
def image_bytes() -> Callable[..., bytes]:
    """Return a factory that encodes a solid-colour test image.

    Example::

        data = image_bytes(1200, 800)
        png = image_bytes(64, 64, fmt="PNG", mode="RGBA")
    """

    def _make(
        width: int,
        height: int,
        fmt: str = "JPEG",
        mode: str = "RGB",
        color=(200, 60, 30),
    ) -> bytes:
        if mode == "RGBA" and len(color) == 3:
            color = (*color, 128)
        img = Image.new(mode, (width, height), color=color)
        buf = io.BytesIO()
        img.save(buf, format=fmt)
        return buf.getvalue()

    return _make


@pytest.fixture
def test_client(test_config: PhotoLibConfig) -> Generator[TestClient, None, None]:
    """Create a TestClient for an app bound to the test configuration.

    The client is used as a context manager so the application lifespan
    (service construction) runs.
    """
    app = create_app(test_config)
    with TestClient(app) as client:
        yield client
