"""Pydantic request and response models for the PhotoLib API.

These models define the JSON schema for the gallery, photo, and maintenance
endpoints.  Response models are built directly from the metadata dataclasses
via ``from_attributes``.

Models
------
CreateGalleryRequest
    Payload for ``POST /galleries``.
CreatePhotoRequest
    Payload for ``POST /photos``. Creates metadata only; the image is
    uploaded afterwards via ``POST /photos/{id}/upload``.
UpdatePhotoRequest
    Payload for ``PUT /photos/{id}``.
GalleryResponse, PhotoResponse
    Serialised metadata records.
ReconcileResponse
    Result of ``POST /maintenance/reconcile``.
ErrorResponse
    Body of every error response.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ORMModel(BaseModel):
    """Base model that can be populated from dataclass attributes."""

    model_config = ConfigDict(from_attributes=True)


class CreateGalleryRequest(BaseModel):
    """Request body for ``POST /galleries``.

    Attributes:
        title: Human-readable gallery name, e.g. "Vacation 2025".
    """

    title: str = Field(..., min_length=1, description="Human-readable name of the gallery.")


class CreatePhotoRequest(BaseModel):
    """Request body for ``POST /photos``.

    Attributes:
        gallery_id: Gallery the photo belongs to.  Must exist.
        title: Human-readable photo title.
        description: Optional short description.
        client_temp_id: Optional client-side identifier used during sync.
    """

    gallery_id: str = Field(..., description="Identifier of the owning gallery.")
    title: str = Field(default="", description="Human-readable photo title.")
    description: str | None = Field(default=None, description="Optional description.")
    client_temp_id: str | None = Field(
        default=None,
        description="Temporary identifier assigned by the client before sync.",
    )


class UpdatePhotoRequest(BaseModel):
    """Request body for ``PUT /photos/{id}``."""

    title: str = Field(..., description="Updated photo title.")
    description: str | None = Field(default=None, description="Updated description.")


class GalleryResponse(ORMModel):
    id: str
    title: str
    owner_id: str | None = None
    created_at_utc: datetime
    updated_at_utc: datetime


class PhotoResponse(ORMModel):
    id: str
    gallery_id: str
    title: str
    description: str | None = None
    client_temp_id: str | None = None
    has_original: bool
    has_thumbnail: bool
    created_at_utc: datetime
    updated_at_utc: datetime


class FlagMismatchResponse(ORMModel):
    photo_id: str
    has_original: bool
    has_thumbnail: bool
    original_exists: bool
    thumbnail_exists: bool


class ReconcileResponse(ORMModel):
    """Outcome of a reconciliation pass."""

    checked: int
    consistent: bool
    mismatches: list[FlagMismatchResponse]
    orphans: list[str]
    repaired: list[str]
    removed_orphans: list[str]


class ErrorResponse(BaseModel):
    """Body of an error response.

    Attributes:
        code: Error kind (``invalid_input``, ``not_found``, ``io_error``,
            ``image_error``, ``conflict``).
        detail: Human-readable message.
        photo_id: Photo involved, when known.
    """

    code: str
    detail: str
    photo_id: str | None = None
