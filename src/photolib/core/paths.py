"""Deterministic on-disk locations for photo originals and thumbnails.

:class:`PathResolver` maps a photo identifier to the file paths of its
original and thumbnail.  Path computation is pure: nothing is created,
checked, or touched on disk, so the same call can be repeated freely for
retries and existence checks.

Two layouts are supported:

=========  =====================================  ======================================
Layout     Original                               Thumbnail
=========  =====================================  ======================================
nested     ``<root>/originals/<id>.<ext>``        ``<root>/thumbnails/<id>.<ext>``
flat       ``<root>/<id>.<ext>``                  ``<root>/<id>_thumb.<ext>``
=========  =====================================  ======================================

``nested`` is the canonical layout.  ``flat`` matches older deployments that
wrote ``{root}/{id}.jpg`` directly.
"""

from __future__ import annotations

from pathlib import Path

ORIGINALS_DIRNAME = "originals"
THUMBNAILS_DIRNAME = "thumbnails"
FLAT_THUMBNAIL_SUFFIX = "_thumb"

LAYOUTS = ("nested", "flat")

THUMBNAIL_EXTENSIONS = {
    "JPEG": "jpg",
    "PNG": "png",
    "WEBP": "webp",
}


class PathResolver:
    """Compute original and thumbnail paths under a root directory.

    Args:
        root: Root directory for all photo files.
        layout: ``"nested"`` or ``"flat"``.
        extension: File extension without the leading dot.
        thumbnail_extension: Extension for thumbnails.  Defaults to
            ``extension``.
    """

    def __init__(
        self,
        root: Path | str,
        layout: str = "nested",
        extension: str = "jpg",
        thumbnail_extension: str | None = None,
    ) -> None:
        if layout not in LAYOUTS:
            raise ValueError(f"Unknown storage layout: {layout!r}")
        self.root = Path(root)
        self.layout = layout
        self.extension = extension.lstrip(".").lower()
        self.thumbnail_extension = (thumbnail_extension or extension).lstrip(".").lower()

    @classmethod
    def from_config(cls, config) -> PathResolver:
        """Build a resolver from a :class:`~photolib.core.config.PhotoLibConfig`.

        The thumbnail extension follows ``thumbnail_format`` so a PNG
        thumbnail is never stored under a ``.jpg`` name.
        """
        return cls(
            config.photos_root,
            layout=config.storage_layout,
            extension=config.file_extension,
            thumbnail_extension=THUMBNAIL_EXTENSIONS[config.thumbnail_format],
        )

    @property
    def originals_dir(self) -> Path:
        if self.layout == "flat":
            return self.root
        return self.root / ORIGINALS_DIRNAME

    @property
    def thumbnails_dir(self) -> Path:
        if self.layout == "flat":
            return self.root
        return self.root / THUMBNAILS_DIRNAME

    def original_path(self, photo_id: str) -> Path:
        """Return the path of the original file for ``photo_id``."""
        key = validate_photo_id(photo_id)
        if self.layout == "flat" and key.endswith(FLAT_THUMBNAIL_SUFFIX):
            # Would collide with the thumbnail of another id.
            raise ValueError(f"Invalid photo id for flat layout: {photo_id!r}")
        return self.originals_dir / f"{key}.{self.extension}"

    def thumbnail_path(self, photo_id: str) -> Path:
        """Return the path of the thumbnail file for ``photo_id``."""
        key = validate_photo_id(photo_id)
        if self.layout == "flat":
            return self.thumbnails_dir / f"{key}{FLAT_THUMBNAIL_SUFFIX}.{self.thumbnail_extension}"
        return self.thumbnails_dir / f"{key}.{self.thumbnail_extension}"

    def photo_id_from_original(self, path: Path) -> str | None:
        """Recover the photo id from an original file path, or ``None``.

        Only files that this resolver could have produced are recognised;
        in the flat layout thumbnails share the directory and are skipped.
        """
        if path.suffix.lower() != f".{self.extension}":
            return None
        stem = path.stem
        if self.layout == "flat" and stem.endswith(FLAT_THUMBNAIL_SUFFIX):
            return None
        try:
            return validate_photo_id(stem)
        except ValueError:
            return None


def validate_photo_id(photo_id: str) -> str:
    """Return ``photo_id`` as a safe file stem.

    Rejecting separators and dot segments keeps every computed path inside
    the root and keeps the id-to-path mapping injective.

    Raises:
        ValueError: If the id is empty or could escape its directory.
    """
    key = str(photo_id).strip()
    if not key or key != str(photo_id):
        raise ValueError(f"Invalid photo id: {photo_id!r}")
    if "/" in key or "\\" in key or key in (".", "..") or "\x00" in key:
        raise ValueError(f"Invalid photo id: {photo_id!r}")
    return key
