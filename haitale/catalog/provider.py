"""Catalog providers for HaiTale.

The recommender only needs ``get_free_catalog()``; registry clients live
outside this package. ``FileCatalogProvider`` reads a catalog exported to a
JSON or YAML file.
"""

import json
from pathlib import Path
from typing import Any, List, Protocol, Union

import structlog
import yaml
from pydantic import ValidationError

from .models import CatalogEntry, CatalogLoadError

logger = structlog.get_logger(__name__)


class CatalogProvider(Protocol):
    """Source of the catalog considered for recommendation."""

    def get_free_catalog(self) -> List[CatalogEntry]:
        """Return every free-license entry in the catalog."""
        ...


class FileCatalogProvider:
    """Catalog provider backed by a JSON or YAML file."""

    YAML_SUFFIXES = (".yaml", ".yml")

    def __init__(self, path: Union[str, Path]):
        """Initialize the provider.

        Args:
            path: Catalog file, either a list of entries or a mapping with a ``mods`` list
        """
        self.path = Path(path).expanduser()
        self.logger = structlog.get_logger(self.__class__.__name__)

    def get_catalog(self) -> List[CatalogEntry]:
        """Load and validate every entry in the catalog file.

        Returns:
            Entries in file order; invalid entries are skipped

        Raises:
            CatalogLoadError: If the file is missing or not a valid catalog
        """
        raw_entries = self._read_raw_entries()

        entries: List[CatalogEntry] = []
        for index, raw_entry in enumerate(raw_entries):
            try:
                entries.append(CatalogEntry.model_validate(raw_entry))
            except ValidationError as e:
                self.logger.warning(
                    "Skipping invalid catalog entry",
                    index=index,
                    error=str(e),
                )
                continue

        self.logger.info(
            "Catalog loaded", path=str(self.path), entry_count=len(entries)
        )
        return entries

    def get_free_catalog(self) -> List[CatalogEntry]:
        """Load the catalog and keep only free-license entries."""
        entries = [entry for entry in self.get_catalog() if entry.is_free_license()]
        self.logger.debug("Filtered catalog to free licenses", entry_count=len(entries))
        return entries

    def _read_raw_entries(self) -> List[Any]:
        if not self.path.is_file():
            raise CatalogLoadError(
                f"Catalog file not found: {self.path}", path=str(self.path)
            )

        try:
            text = self.path.read_text(encoding="utf-8")
            if self.path.suffix.lower() in self.YAML_SUFFIXES:
                data = yaml.safe_load(text)
            else:
                data = json.loads(text)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise CatalogLoadError(
                f"Failed to read catalog: {str(e)}", path=str(self.path)
            )

        if isinstance(data, dict):
            data = data.get("mods")

        if not isinstance(data, list):
            raise CatalogLoadError(
                "Catalog must be a list of mods or a mapping with a 'mods' list",
                path=str(self.path),
                details={"type": type(data).__name__},
            )

        return data
