"""Configuration management for PhotoLib.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the PHOTOLIB_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (PHOTOLIB_* prefix)
2. .env file in the project root
3. Default values defined in PhotoLibConfig

Example .env file:
    PHOTOLIB_PHOTOS_ROOT=data/photos
    PHOTOLIB_DATABASE_PATH=data/photolib.db
    PHOTOLIB_THUMBNAIL_MAX_DIMENSION=300
    PHOTOLIB_THUMBNAIL_FAILURE_FATAL=false

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
The API falls back to it when no explicit configuration is passed to
:func:`photolib.api.main.create_app`.

Usage Example
-------------
    from photolib.core.config import config

    print(config.photos_root)
    print(config.thumbnail_max_dimension)

On-disk Layout
--------------
``storage_layout`` selects how files are arranged under ``photos_root``:

- ``nested`` (default): ``originals/<id>.jpg`` and ``thumbnails/<id>.jpg``
- ``flat``: ``<id>.jpg`` and ``<id>_thumb.jpg`` directly under the root

The flat layout exists for deployments that predate the nested one.  See
:func:`photolib.core.maintenance.migrate_flat_layout` for moving such a
deployment onto the nested layout.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PhotoLibConfig(BaseSettings):
    """Main configuration for PhotoLib.

    Values are loaded from environment variables with the PHOTOLIB_ prefix,
    with fallback to defaults defined here.

    Attributes
    ----------
    Storage:
        photos_root : Path
            Root directory under which originals and thumbnails are stored
        database_path : Path
            SQLite database file holding gallery and photo metadata
        storage_layout : Literal["nested", "flat"]
            On-disk layout of originals and thumbnails
        file_extension : str
            Extension used for original files (thumbnails follow thumbnail_format)

    Thumbnails:
        thumbnail_max_dimension : int
            Neither side of a thumbnail exceeds this many pixels
        thumbnail_format : Literal["JPEG", "PNG", "WEBP"]
            Pillow format name used to encode thumbnails
        thumbnail_quality : int
            Encoder quality for lossy thumbnail formats
        thumbnail_failure_fatal : bool
            Fail the whole upload request when thumbnail generation fails

    Lifecycle:
        delete_files_with_photo : bool
            Remove original and thumbnail files when a photo record is deleted

    Server:
        server_host : str
            Bind address for uvicorn
        server_port : int
            Bind port for uvicorn
        cors_origins : list[str]
            Origins allowed by the CORS middleware

    Notes
    -----
    - The parent directory of ``database_path`` is created on initialization.
    - ``photos_root`` and its subdirectories are created lazily by the blob
      store on the first write.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PHOTOLIB_",
        case_sensitive=False,
    )

    # Storage
    photos_root: Path = Field(
        default=Path("data/photos"),
        description="Root directory for original and thumbnail files",
    )
    database_path: Path = Field(
        default=Path("data/photolib.db"),
        description="SQLite database file for gallery and photo metadata",
    )
    storage_layout: Literal["nested", "flat"] = Field(
        default="nested",
        description="On-disk layout: 'nested' (originals/ + thumbnails/) or legacy 'flat'",
    )
    file_extension: str = Field(
        default="jpg",
        description="File extension for stored originals",
        pattern=r"^[A-Za-z0-9]+$",
    )

    # Thumbnails
    thumbnail_max_dimension: int = Field(
        default=300,
        description="Maximum thumbnail width/height in pixels",
        ge=16,
        le=4096,
    )
    thumbnail_format: Literal["JPEG", "PNG", "WEBP"] = Field(
        default="JPEG",
        description="Pillow format used to encode thumbnails",
    )
    thumbnail_quality: int = Field(
        default=85,
        description="Encoder quality for JPEG/WEBP thumbnails",
        ge=1,
        le=100,
    )
    thumbnail_failure_fatal: bool = Field(
        default=False,
        description="Fail the upload request when thumbnail generation fails",
    )

    # Lifecycle
    delete_files_with_photo: bool = Field(
        default=True,
        description="Delete original/thumbnail files together with the photo record",
    )

    # Server
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    server_port: int = Field(
        default=8000,
        description="Server port",
        ge=1024,
        le=65535,
    )
    cors_origins: list[str] = Field(
        default=["http://localhost:4200"],
        description="Origins allowed to call the API from a browser",
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create the database directory.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        self.database_path.parent.mkdir(parents=True, exist_ok=True)


# Global configuration instance
# Loads values from environment variables (PHOTOLIB_* prefix) and .env file.
config = PhotoLibConfig()
