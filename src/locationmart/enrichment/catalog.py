"""
Catalog of enrichment definitions and the adapter registry built from it.

The catalog is configuration: ids, labels, sections and radius defaults
for every enrichment the product offers. The registry binds those ids to
adapter instances. Both are immutable snapshots; "adding" an entry returns
a new snapshot so a batch already running keeps the one it started with.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..utils.errors import CatalogValidationError
from .base import EnrichmentAdapter
from .models import RadiusBounds

logger = logging.getLogger(__name__)


class CatalogEntry(BaseModel):
    """One enrichment definition as supplied by the catalog provider."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(min_length=1)
    label: str = ""
    description: str = ""
    section: str = ""
    category: str = ""
    is_poi: bool = True
    default_radius: Optional[float] = Field(default=None, gt=0)
    max_radius: Optional[float] = Field(default=None, gt=0)
    min_radius: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_radii(self) -> "CatalogEntry":
        if self.max_radius is not None and self.min_radius is not None and self.min_radius > self.max_radius:
            raise ValueError(f"min_radius ({self.min_radius}) exceeds max_radius ({self.max_radius})")
        return self


class Catalog(Mapping):
    """Read-only mapping of enrichment id to ``CatalogEntry``."""

    def __init__(self, entries: Iterable[CatalogEntry] = ()):
        table: dict[str, CatalogEntry] = {}
        for entry in entries:
            if entry.id in table:
                # The same id may be listed under several sections; first listing wins
                logger.debug(f"Catalog id '{entry.id}' listed more than once; keeping section '{table[entry.id].section}'")
                continue
            table[entry.id] = entry
        self._entries = MappingProxyType(table)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]], source: str = "records") -> "Catalog":
        """
        Validate raw records into a catalog.

        Raises:
            CatalogValidationError listing every invalid record
        """
        entries: list[CatalogEntry] = []
        errors: list[dict[str, Any]] = []
        last_error: ValidationError | None = None
        for index, record in enumerate(records):
            try:
                entries.append(CatalogEntry.model_validate(record))
            except ValidationError as e:
                last_error = e
                for err in e.errors():
                    errors.append({**err, "loc": (index, *err.get("loc", ()))})
        if errors:
            raise CatalogValidationError(source, errors, original=last_error)
        return cls(entries)

    @classmethod
    def from_json(cls, path: Path | str) -> "Catalog":
        """Load a JSON list of records, or an object with an ``entries`` list."""
        path = Path(path)
        with open(path, "r", encoding="utf8") as fh:
            data = json.load(fh)
        if isinstance(data, dict):
            data = data.get("entries", [])
        catalog = cls.from_records(data, source=str(path))
        logger.info(f"Loaded {len(catalog)} catalog entries from {path}")
        return catalog

    def with_entry(self, entry: CatalogEntry) -> "Catalog":
        """New catalog with ``entry`` added or replacing the same id."""
        entries = [e for e in self._entries.values() if e.id != entry.id]
        return Catalog([*entries, entry])

    def sections(self) -> dict[str, list[CatalogEntry]]:
        grouped: dict[str, list[CatalogEntry]] = {}
        for entry in self._entries.values():
            grouped.setdefault(entry.section, []).append(entry)
        return grouped

    def __getitem__(self, key: str) -> CatalogEntry:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class AdapterBinding:
    """An adapter plus the radius rules the orchestrator applies to it."""
    adapter: EnrichmentAdapter
    default_radius: float
    radius_bounds: RadiusBounds
    entry: Optional[CatalogEntry] = None

    @classmethod
    def create(cls, adapter: EnrichmentAdapter, entry: Optional[CatalogEntry] = None) -> "AdapterBinding":
        """
        Merge the adapter's declared radius rules with its catalog entry.

        Catalog ``min_radius`` / ``max_radius`` override the adapter's
        bounds; a catalog default radius, when given, overrides the adapter's
        default.
        """
        bounds = adapter.radius_bounds
        default = adapter.default_radius
        if entry is not None:
            minimum = entry.min_radius if entry.min_radius is not None else bounds.minimum
            maximum = entry.max_radius if entry.max_radius is not None else bounds.maximum
            bounds = RadiusBounds(minimum, max(minimum, maximum))
            if entry.default_radius is not None:
                default = entry.default_radius
        return cls(adapter=adapter, default_radius=bounds.clamp(default), radius_bounds=bounds, entry=entry)

    @property
    def identifier(self) -> str:
        return self.adapter.identifier

    def resolve_radius(self, requested: Optional[float]) -> float:
        radius = self.default_radius if requested is None else requested
        return self.radius_bounds.clamp(radius)


class AdapterRegistry(Mapping):
    """Immutable mapping of enrichment id to ``AdapterBinding``."""

    def __init__(self, bindings: Iterable[AdapterBinding] = ()):
        table: dict[str, AdapterBinding] = {}
        for binding in bindings:
            if binding.identifier in table:
                raise ValueError(f"Duplicate enrichment adapter '{binding.identifier}'")
            table[binding.identifier] = binding
        self._bindings = MappingProxyType(table)

    @classmethod
    def build(cls, adapters: Iterable[EnrichmentAdapter], catalog: Optional[Catalog] = None) -> "AdapterRegistry":
        catalog = catalog if catalog is not None else Catalog()
        bindings = [AdapterBinding.create(a, catalog.get(a.identifier)) for a in adapters]
        registry = cls(bindings)
        unbound = sorted(set(catalog) - set(registry))
        if unbound:
            logger.debug(f"Catalog entries without an adapter: {unbound}")
        return registry

    def with_adapter(self, adapter: EnrichmentAdapter, entry: Optional[CatalogEntry] = None) -> "AdapterRegistry":
        """New registry with ``adapter`` added or replacing the same id."""
        others = [b for b in self._bindings.values() if b.identifier != adapter.identifier]
        return AdapterRegistry([*others, AdapterBinding.create(adapter, entry)])

    def without(self, identifier: str) -> "AdapterRegistry":
        return AdapterRegistry(b for b in self._bindings.values() if b.identifier != identifier)

    def __getitem__(self, key: str) -> AdapterBinding:
        return self._bindings[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)
