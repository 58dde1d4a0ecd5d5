"""Error taxonomy for the photo upload pipeline.

Every failure the core can report is a subclass of :class:`PhotoLibError`.
Each class carries a stable ``code`` (rendered into API error payloads) and
the HTTP ``status_code`` the API layer maps it to, so callers can tell
"your upload was saved but preview generation failed" (``image_error``) apart
from "upload failed" (``io_error``).

========================  ===============  ======
Exception                 code             HTTP
========================  ===============  ======
InvalidInputError         invalid_input    400
NotFoundError             not_found        404
StorageIOError            io_error         500
ImageProcessingError      image_error      422
ConflictError             conflict         500
========================  ===============  ======
"""

from __future__ import annotations


class PhotoLibError(Exception):
    """Base class for all errors raised by the PhotoLib core.

    Attributes:
        code: Machine-readable error kind.
        status_code: HTTP status the API responds with.
        photo_id: Identifier of the photo involved, when known.
    """

    code = "error"
    status_code = 500

    def __init__(self, message: str, *, photo_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.photo_id = photo_id

    def to_dict(self) -> dict:
        """Return the error payload served by the API."""
        payload = {"code": self.code, "detail": self.message}
        if self.photo_id is not None:
            payload["photo_id"] = self.photo_id
        return payload


class InvalidInputError(PhotoLibError):
    """Missing or empty upload payload.  No side effects were performed."""

    code = "invalid_input"
    status_code = 400


class NotFoundError(PhotoLibError):
    """The referenced record (or its file) does not exist."""

    code = "not_found"
    status_code = 404


class StorageIOError(PhotoLibError):
    """Filesystem read or write failure."""

    code = "io_error"
    status_code = 500


class ImageProcessingError(PhotoLibError):
    """Source file is not a readable image, or resize/encode failed.

    Raised after the original has been persisted; the original is never
    rolled back because of it.
    """

    code = "image_error"
    status_code = 422


class ConflictError(PhotoLibError):
    """Metadata update failed after files were written.

    The files stay on disk as orphans until a reconciliation pass repairs
    the flags.
    """

    code = "conflict"
    status_code = 500
