"""Catalog models for HaiTale.

This module defines the catalog entry handed to the recommender and the
errors raised while loading a catalog.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

FREE_LICENSE_MARKERS = (
    "mit",
    "apache",
    "gpl",
    "lgpl",
    "bsd",
    "mpl",
    "cc0",
    "public domain",
    "unlicense",
)


class CatalogEntry(BaseModel):
    """A single mod as published by a registry."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., description="Registry-unique mod identifier")
    name: str = Field(..., description="Display name")
    version: str = Field("", description="Mod version")
    description: str = Field("", description="Free-text mod description")
    author: str = Field("", description="Mod author")
    license: Optional[str] = Field(None, description="License string as published")
    source: str = Field("", description="Registry tag (modrinth, curseforge, github)")

    # Installer metadata, carried through untouched
    download_url: Optional[str] = Field(
        None, alias="downloadUrl", description="Download location"
    )
    checksum: Optional[str] = Field(None, description="Published file checksum")
    checksum_algorithm: Optional[str] = Field(
        None, alias="checksumAlgorithm", description="Checksum algorithm (SHA-256, ...)"
    )
    file_size: int = Field(0, alias="fileSize", ge=0, description="File size in bytes")

    def is_free_license(self) -> bool:
        """Check if the license is a recognised free/open-source license."""
        if not self.license:
            return False
        lowered = self.license.lower()
        return any(marker in lowered for marker in FREE_LICENSE_MARKERS)

    def __str__(self) -> str:
        """String representation of the entry."""
        return (
            f"{self.name} v{self.version} by {self.author} "
            f"[{self.license}] - {self.description}"
        )


class CatalogLoadError(Exception):
    """Raised when a catalog cannot be loaded."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = "CATALOG_LOAD_ERROR"
        self.details = {"path": path, **(details or {})}
