"""
Data models for enrichment queries and their results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from shapely.geometry.base import BaseGeometry

from ..geocoding.models import ResolvedLocation


class QueryMode(StrEnum):
    """How an enrichment adapter relates its data to the query point."""
    POINT_IN_POLYGON = "point_in_polygon"
    PROXIMITY = "proximity"
    GLOBAL_ATTRIBUTE = "global_attribute"


@dataclass(frozen=True)
class RadiusBounds:
    """Closed interval of usable radii, in miles."""
    minimum: float = 0.1
    maximum: float = 5.0

    def __post_init__(self):
        if self.minimum < 0:
            raise ValueError("minimum radius must be >= 0")
        if self.maximum < self.minimum:
            raise ValueError(f"maximum radius ({self.maximum}) must be >= minimum ({self.minimum})")

    def clamp(self, radius: float) -> float:
        return min(self.maximum, max(self.minimum, float(radius)))


@dataclass(frozen=True)
class EnrichmentSpec:
    """A requested enrichment, with an optional radius override in miles."""
    identifier: str
    radius: Optional[float] = None

    @classmethod
    def from_radii(cls, identifiers: list[str], radii: Mapping[str, float] | None = None) -> list["EnrichmentSpec"]:
        """Build specs from a list of ids and an ``{id: radius}`` mapping."""
        radii = radii or {}
        return [cls(identifier=i, radius=radii.get(i)) for i in identifiers]


@dataclass(frozen=True)
class Feature:
    """
    One normalized feature returned by an enrichment adapter.

    ``distance_miles`` is 0 for containing polygons and None for point
    attributes with no geometry of their own.
    """
    attributes: Mapping[str, Any] = field(default_factory=dict)
    geometry: Optional[BaseGeometry] = field(default=None, compare=False, repr=False)
    distance_miles: Optional[float] = None
    containing: bool = False

    def name(self) -> str:
        for key in ("name", "NAME", "Name", "title", "label"):
            value = self.attributes.get(key)
            if value:
                return str(value)
        return ""


@dataclass(frozen=True)
class EnrichmentRecord:
    """
    One adapter's output for one location.

    Either a (possibly empty) tuple of features, or an error message,
    never both.
    """
    identifier: str
    features: tuple[Feature, ...] = ()
    error: Optional[str] = None
    radius_miles: Optional[float] = None
    mode: Optional[QueryMode] = None

    def __post_init__(self):
        object.__setattr__(self, "features", tuple(self.features))
        if self.error is not None and self.features:
            raise ValueError(f"Record '{self.identifier}' cannot carry both features and an error")

    @classmethod
    def success(
        cls,
        identifier: str,
        features: list[Feature] | tuple[Feature, ...] = (),
        radius_miles: Optional[float] = None,
        mode: Optional[QueryMode] = None,
    ) -> "EnrichmentRecord":
        return cls(identifier=identifier, features=tuple(features), radius_miles=radius_miles, mode=mode)

    @classmethod
    def failure(
        cls,
        identifier: str,
        error: str,
        radius_miles: Optional[float] = None,
        mode: Optional[QueryMode] = None,
    ) -> "EnrichmentRecord":
        return cls(identifier=identifier, error=error or "Unknown error", radius_miles=radius_miles, mode=mode)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def count(self) -> int:
        return len(self.features)

    def nearest(self) -> Optional[Feature]:
        measured = [f for f in self.features if f.distance_miles is not None]
        if not measured:
            return None
        return min(measured, key=lambda f: f.distance_miles)

    def summary(self) -> dict[str, Any]:
        """Flat per-record columns for tabular export."""
        if not self.ok:
            return {f"{self.identifier}_error": self.error}
        nearest = self.nearest()
        row: dict[str, Any] = {
            f"{self.identifier}_count": self.count,
            f"{self.identifier}_radius_miles": self.radius_miles,
        }
        if nearest is not None:
            row[f"{self.identifier}_nearest_miles"] = round(nearest.distance_miles, 3)
            row[f"{self.identifier}_nearest_name"] = nearest.name()
        if self.mode == QueryMode.GLOBAL_ATTRIBUTE and self.count == 1:
            for key, value in self.features[0].attributes.items():
                row[f"{self.identifier}_{key}"] = value
        return row


@dataclass(frozen=True)
class EnrichmentResult:
    """A resolved location plus one record per supported requested enrichment."""
    location: ResolvedLocation
    enrichments: Mapping[str, EnrichmentRecord] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "enrichments", MappingProxyType(dict(self.enrichments)))

    def failed(self) -> list[str]:
        return [k for k, r in self.enrichments.items() if not r.ok]

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "latitude": self.location.lat,
            "longitude": self.location.lon,
            "display_name": self.location.name,
            "source": self.location.source,
            "confidence": self.location.confidence,
        }
        for record in self.enrichments.values():
            row.update(record.summary())
        return row
