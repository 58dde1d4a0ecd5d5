"""PhotoLib — FastAPI Application.

This module defines the FastAPI application factory, all REST API routes,
and the ``main()`` CLI function that launches the uvicorn server.

Architecture
------------
- **Configuration** comes from :class:`~photolib.core.config.PhotoLibConfig`
  (``PHOTOLIB_*`` environment variables).
- **Metadata** (galleries, photos, file flags) lives in SQLite via
  :class:`~photolib.core.metadata_db.MetadataDB`.
- **Files** (originals, thumbnails) are written by
  :class:`~photolib.core.blob_store.BlobStore` and
  :class:`~photolib.core.thumbnails.ThumbnailGenerator`, coordinated by
  :class:`~photolib.core.uploads.UploadOrchestrator`.
- **Errors** raised by the core are rendered by a single exception handler
  as ``{"code": ..., "detail": ...}`` payloads.

Route handlers are plain ``def`` functions: FastAPI runs them in its thread
pool, so file writes, image resizing, and SQLite round-trips never block the
event loop or unrelated requests.

Endpoints
---------
========  ==================================  ====================================
Method    Path                                Purpose
========  ==================================  ====================================
GET       ``/health``                         Liveness check
GET       ``/galleries``                      List galleries
GET       ``/galleries/{id}``                 Single gallery
POST      ``/galleries``                      Create a gallery
DELETE    ``/galleries/{id}``                 Soft-delete a gallery
GET       ``/photos/by-gallery/{gallery_id}`` Photos of a gallery
GET       ``/photos/{id}``                    Single photo record
POST      ``/photos``                         Create photo metadata
PUT       ``/photos/{id}``                    Update title/description
DELETE    ``/photos/{id}``                    Delete record (and files)
POST      ``/photos/{id}/upload``             Upload the original image
GET       ``/photos/{id}/file``               Download the original
GET       ``/photos/{id}/thumbnail``          Download the thumbnail
POST      ``/photos/{id}/thumbnail``          Regenerate the thumbnail
POST      ``/maintenance/reconcile``          Compare flags with files on disk
========  ==================================  ====================================

Usage
-----
CLI (installed entry point)::

    photolib

Direct invocation::

    python -m photolib.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, File, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from photolib import __version__
from photolib.api.models import (
    CreateGalleryRequest,
    CreatePhotoRequest,
    ErrorResponse,
    GalleryResponse,
    PhotoResponse,
    ReconcileResponse,
    UpdatePhotoRequest,
)
from photolib.core.blob_store import BlobStore
from photolib.core.config import PhotoLibConfig, config
from photolib.core.errors import InvalidInputError, NotFoundError, PhotoLibError
from photolib.core.locks import KeyedLock
from photolib.core.maintenance import reconcile
from photolib.core.metadata_db import MetadataDB
from photolib.core.models import utcnow
from photolib.core.paths import PathResolver
from photolib.core.thumbnails import ThumbnailGenerator
from photolib.core.uploads import UploadOrchestrator

logger = logging.getLogger(__name__)

ORIGINAL_MEDIA_TYPE = "image/jpeg"
THUMBNAIL_MEDIA_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}

router = APIRouter()


# ---------------------------------------------------------------------------
# Service container.
# ---------------------------------------------------------------------------


class Services:
    """The collaborators route handlers need, built from one configuration.

    Attributes:
        config: Active configuration.
        metadata: Gallery/photo metadata store.
        blob_store: Original and thumbnail storage.
        orchestrator: Upload pipeline.
        locks: Per-photo lock table shared by uploads, deletes, and repairs.
    """

    def __init__(self, app_config: PhotoLibConfig) -> None:
        self.config = app_config
        self.locks = KeyedLock()
        self.metadata = MetadataDB(app_config.database_path)
        self.blob_store = BlobStore(PathResolver.from_config(app_config))
        self.orchestrator = UploadOrchestrator(
            self.metadata,
            self.blob_store,
            ThumbnailGenerator.from_config(app_config),
            max_dimension=app_config.thumbnail_max_dimension,
            thumbnail_failure_fatal=app_config.thumbnail_failure_fatal,
            locks=self.locks,
        )


def _services(request: Request) -> Services:
    return request.app.state.services


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(app_config: PhotoLibConfig | None = None) -> FastAPI:
    """Build a FastAPI application bound to ``app_config``.

    Args:
        app_config: Configuration to use.  Defaults to the global
            :data:`~photolib.core.config.config` instance.

    Returns:
        The configured application.  Services are created on startup.
    """
    app_config = app_config or config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Create the metadata store and upload pipeline on startup."""
        app.state.services = Services(app_config)
        logger.info(
            f"PhotoLib started (photos_root={app_config.photos_root}, "
            f"layout={app_config.storage_layout})"
        )

        yield  # Application runs here.

        logger.info("PhotoLib shutting down.")

    app = FastAPI(
        title="PhotoLib API",
        description="Personal photo gallery backend with thumbnail generation.",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PhotoLibError)
    async def photolib_error_handler(request: Request, exc: PhotoLibError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: [{exc.code}] {exc}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    app.include_router(router)
    return app


# ---------------------------------------------------------------------------
# Health.
# ---------------------------------------------------------------------------


@router.get("/health")
def health() -> dict:
    """Return a static liveness payload."""
    return {"status": "ok", "time": utcnow().isoformat(), "version": __version__}


# ---------------------------------------------------------------------------
# Galleries.
# ---------------------------------------------------------------------------


@router.get("/galleries", response_model=list[GalleryResponse])
def list_galleries(request: Request) -> list[GalleryResponse]:
    """Return the galleries of the current owner, oldest first.

    Authentication is not implemented, so the owner is always ``None``.
    """
    galleries = _services(request).metadata.list_galleries(owner_id=None)
    return [GalleryResponse.model_validate(g) for g in galleries]


@router.get("/galleries/{gallery_id}", response_model=GalleryResponse, responses=ERROR_RESPONSES)
def get_gallery(gallery_id: str, request: Request) -> GalleryResponse:
    gallery = _services(request).metadata.get_gallery(gallery_id)
    if gallery is None:
        raise NotFoundError("Gallery not found.")
    return GalleryResponse.model_validate(gallery)


@router.post("/galleries", status_code=201, response_model=GalleryResponse)
def create_gallery(req: CreateGalleryRequest, request: Request) -> GalleryResponse:
    gallery = _services(request).metadata.create_gallery(req.title, owner_id=None)
    return GalleryResponse.model_validate(gallery)


@router.delete("/galleries/{gallery_id}", status_code=204, responses=ERROR_RESPONSES)
def delete_gallery(gallery_id: str, request: Request) -> Response:
    """Soft-delete a gallery.  Its photos are left untouched."""
    if not _services(request).metadata.soft_delete_gallery(gallery_id):
        raise NotFoundError("Gallery not found.")
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Photo metadata.
# ---------------------------------------------------------------------------


@router.get("/photos/by-gallery/{gallery_id}", response_model=list[PhotoResponse])
def list_gallery_photos(gallery_id: str, request: Request) -> list[PhotoResponse]:
    photos = _services(request).metadata.list_photos_by_gallery(gallery_id)
    return [PhotoResponse.model_validate(p) for p in photos]


@router.get("/photos/{photo_id}", response_model=PhotoResponse, responses=ERROR_RESPONSES)
def get_photo(photo_id: str, request: Request) -> PhotoResponse:
    photo = _services(request).metadata.find_photo_by_id(photo_id)
    if photo is None:
        raise NotFoundError("Photo not found.", photo_id=photo_id)
    return PhotoResponse.model_validate(photo)


@router.post("/photos", status_code=201, response_model=PhotoResponse, responses=ERROR_RESPONSES)
def create_photo(req: CreatePhotoRequest, request: Request) -> PhotoResponse:
    """Create a photo metadata record.

    Only metadata is created here; the image file is uploaded in a later
    step via ``POST /photos/{id}/upload``.

    Raises:
        InvalidInputError: 400 if ``gallery_id`` is blank.
        NotFoundError: 404 if the gallery does not exist or was deleted.
    """
    services = _services(request)
    if not req.gallery_id.strip():
        raise InvalidInputError("gallery_id must not be empty.")
    if not services.metadata.gallery_exists(req.gallery_id):
        raise NotFoundError(f"Gallery with id '{req.gallery_id}' not found.")

    photo = services.metadata.create_photo(
        req.gallery_id,
        req.title,
        description=req.description,
        client_temp_id=req.client_temp_id,
    )
    return PhotoResponse.model_validate(photo)


@router.put("/photos/{photo_id}", status_code=204, responses=ERROR_RESPONSES)
def update_photo(photo_id: str, req: UpdatePhotoRequest, request: Request) -> Response:
    if not _services(request).metadata.update_photo_details(photo_id, req.title, req.description):
        raise NotFoundError("Photo not found.", photo_id=photo_id)
    return Response(status_code=204)


@router.delete("/photos/{photo_id}", status_code=204, responses=ERROR_RESPONSES)
def delete_photo(photo_id: str, request: Request) -> Response:
    """Delete a photo record and, unless disabled in config, its files."""
    services = _services(request)
    services.orchestrator.delete_photo(
        photo_id, delete_files=services.config.delete_files_with_photo
    )
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Photo files.
# ---------------------------------------------------------------------------


@router.post("/photos/{photo_id}/upload", status_code=204, responses=ERROR_RESPONSES)
def upload_photo(
    photo_id: str,
    request: Request,
    file: UploadFile | None = File(default=None),
) -> Response:
    """Upload the original image for an existing photo.

    The file is stored under the photo id, a thumbnail is derived from it,
    and the photo's ``has_original`` / ``has_thumbnail`` flags are updated.

    When thumbnail generation fails and the failure is configured as
    non-fatal, the upload still succeeds (204) and the response carries
    ``X-Thumbnail-Status: failed`` plus the error code in
    ``X-Thumbnail-Error``.

    Raises:
        InvalidInputError: 400 if the file is missing or empty.
        NotFoundError: 404 if the photo does not exist.
        StorageIOError: 500 if the original could not be written.
        ImageProcessingError: 422 if the thumbnail failed and failures are fatal.
        ConflictError: 500 if the flags could not be committed.
    """
    payload = file.file if file is not None else None
    result = _services(request).orchestrator.upload(photo_id, payload)

    headers = {"X-Thumbnail-Status": "ok" if result.has_thumbnail else "failed"}
    if result.thumbnail_error is not None:
        headers["X-Thumbnail-Error"] = result.thumbnail_error.code
    return Response(status_code=204, headers=headers)


@router.get("/photos/{photo_id}/file", response_class=FileResponse, responses=ERROR_RESPONSES)
def get_photo_file(photo_id: str, request: Request) -> FileResponse:
    """Return the original image bytes unchanged.

    Raises:
        NotFoundError: 404 if the photo is unknown, has no original, or the
            file is missing despite the flag.
    """
    services = _services(request)
    photo = services.metadata.find_photo_by_id(photo_id)
    if photo is None or not photo.has_original:
        raise NotFoundError("Photo file not found.", photo_id=photo_id)

    path = services.blob_store.paths.original_path(photo_id)
    if not path.is_file():
        logger.warning(f"Photo {photo_id} is flagged has_original but {path} is missing")
        raise NotFoundError("Photo file not found.", photo_id=photo_id)

    return FileResponse(path=path, media_type=ORIGINAL_MEDIA_TYPE)


@router.get("/photos/{photo_id}/thumbnail", response_class=FileResponse, responses=ERROR_RESPONSES)
def get_photo_thumbnail(photo_id: str, request: Request) -> FileResponse:
    services = _services(request)
    photo = services.metadata.find_photo_by_id(photo_id)
    if photo is None or not photo.has_thumbnail:
        raise NotFoundError("Thumbnail not found.", photo_id=photo_id)

    path = services.blob_store.paths.thumbnail_path(photo_id)
    if not path.is_file():
        logger.warning(f"Photo {photo_id} is flagged has_thumbnail but {path} is missing")
        raise NotFoundError("Thumbnail not found.", photo_id=photo_id)

    media_type = THUMBNAIL_MEDIA_TYPES[services.config.thumbnail_format]
    return FileResponse(path=path, media_type=media_type)


@router.post("/photos/{photo_id}/thumbnail", status_code=204, responses=ERROR_RESPONSES)
def regenerate_thumbnail(photo_id: str, request: Request) -> Response:
    """Re-derive the thumbnail from the stored original."""
    _services(request).orchestrator.regenerate_thumbnail(photo_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Maintenance.
# ---------------------------------------------------------------------------


@router.post("/maintenance/reconcile", response_model=ReconcileResponse)
def reconcile_store(
    request: Request,
    repair: bool = False,
    remove_orphans: bool = False,
) -> ReconcileResponse:
    """Compare photo flags with the files on disk.

    Args:
        repair: Rewrite flags that disagree with the files on disk.
        remove_orphans: Delete originals that have no photo record.
    """
    services = _services(request)
    report = reconcile(
        services.metadata,
        services.blob_store,
        repair=repair,
        remove_orphans=remove_orphans,
        locks=services.locks,
    )
    return ReconcileResponse.model_validate(report)


# ---------------------------------------------------------------------------
# Module-level application and CLI entry point.
# ---------------------------------------------------------------------------

app = create_app()


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~photolib.core.config.config`
    (``PHOTOLIB_SERVER_HOST`` and ``PHOTOLIB_SERVER_PORT``).  Defaults to
    ``0.0.0.0:8000``.
    """
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "photolib.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
