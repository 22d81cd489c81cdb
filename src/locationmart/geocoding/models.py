"""
Core data models for geocoding.

These immutable, frozen dataclasses serve as the contract between the
lookup adapters, the composite geocoder and the enrichment pipeline.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Iterable, Optional

_COORD_PATTERN = re.compile(r"^\s*\(?\s*(-?\d+(?:\.\d+)?)\s*[,;\s]\s*(-?\d+(?:\.\d+)?)\s*\)?\s*$")


class LookupMode(StrEnum):
    """Hint for how precise a lookup should be."""
    LOOKUP = "lookup"
    SEARCH = "search"
    AUTO = "auto"


@dataclass(frozen=True)
class BBox:
    """Bounding box in degrees, ordered (south, west, north, east)."""
    south: float
    west: float
    north: float
    east: float

    def __post_init__(self):
        if self.south > self.north:
            raise ValueError(f"south ({self.south}) must be <= north ({self.north})")
        if self.west > self.east:
            raise ValueError(f"west ({self.west}) must be <= east ({self.east})")

    def intersects(self, other: "BBox") -> bool:
        return not (
            other.west > self.east
            or other.east < self.west
            or other.south > self.north
            or other.north < self.south
        )

    def contains(self, lat: float, lon: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lon <= self.east

    def as_viewbox(self) -> str:
        """Nominatim ``viewbox`` order: left, top, right, bottom."""
        return f"{self.west},{self.north},{self.east},{self.south}"


def _normalize_country_codes(codes: str | Iterable[str] | None) -> tuple[str, ...]:
    if not codes:
        return ()
    if isinstance(codes, str):
        codes = codes.split(",")
    return tuple(c.strip().lower() for c in codes if c and c.strip())


def parse_coordinates(text: str) -> Optional[tuple[float, float]]:
    """Parse ``"lat, lon"`` text into a coordinate pair, or None."""
    if not text:
        return None
    match = _COORD_PATTERN.match(text)
    if not match:
        return None
    lat, lon = float(match.group(1)), float(match.group(2))
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        return None
    return lat, lon


@dataclass(frozen=True)
class GeocodeQuery:
    """
    A single geocoding query.

    Either ``text`` or ``coordinates`` must be present for the query to be
    answerable; ``country_codes`` and ``bbox`` narrow which adapters run.
    """
    text: str = ""
    country_codes: tuple[str, ...] = ()
    bbox: Optional[BBox] = None
    mode: LookupMode = LookupMode.AUTO
    coordinates: Optional[tuple[float, float]] = None

    def __post_init__(self):
        object.__setattr__(self, "text", (self.text or "").strip())
        object.__setattr__(self, "country_codes", _normalize_country_codes(self.country_codes))
        object.__setattr__(self, "mode", LookupMode(self.mode))

    @classmethod
    def parse(cls, text: str, **kwargs: Any) -> "GeocodeQuery":
        """Build a query, recognising bare ``"lat, lon"`` text as coordinates."""
        coords = parse_coordinates(text or "")
        if coords is not None:
            return cls(text="", coordinates=coords, **kwargs)
        return cls(text=text or "", **kwargs)

    def is_empty(self) -> bool:
        return not self.text and self.coordinates is None

    def is_reverse(self) -> bool:
        return self.coordinates is not None and not self.text

    def allows_country(self, code: str) -> bool:
        """True when no country filter is set or ``code`` is in it."""
        return not self.country_codes or code.lower() in self.country_codes

    def label(self) -> str:
        if self.text:
            return self.text
        if self.coordinates:
            return f"{self.coordinates[0]:.6f}, {self.coordinates[1]:.6f}"
        return ""


@dataclass(frozen=True)
class RateLimit:
    """Requests-per-second ceiling for one adapter, with optional burst."""
    rps: float
    burst: int = 0

    def __post_init__(self):
        if self.rps <= 0:
            raise ValueError("rps must be > 0")
        if self.burst < 0:
            raise ValueError("burst must be >= 0")


@dataclass(frozen=True)
class GeocodeResult:
    """
    One candidate location produced by a lookup adapter.

    ``confidence`` is the adapter's own score; it is clamped into [0, 1]
    but never recalibrated across sources.
    """
    source: str
    lat: float
    lon: float
    name: str = ""
    confidence: float = 0.0
    raw: Any = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        try:
            confidence = float(self.confidence)
        except (TypeError, ValueError):
            confidence = 0.0
        object.__setattr__(self, "confidence", min(1.0, max(0.0, confidence)))

    def is_valid(self) -> bool:
        """Validates that coordinates are within geographic ranges."""
        try:
            return -90 <= self.lat <= 90 and -180 <= self.lon <= 180
        except TypeError:
            return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "lat": self.lat,
            "lon": self.lon,
            "name": self.name,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class ResolvedLocation:
    """The single candidate chosen for a query."""
    lat: float
    lon: float
    name: str
    source: str
    confidence: float

    @classmethod
    def from_candidate(cls, candidate: GeocodeResult) -> "ResolvedLocation":
        return cls(
            lat=candidate.lat,
            lon=candidate.lon,
            name=candidate.name,
            source=candidate.source,
            confidence=candidate.confidence,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "lat": self.lat,
            "lon": self.lon,
            "name": self.name,
            "source": self.source,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class AdapterFailure:
    """Details of one failed adapter request, kept for observability."""
    adapter: str
    url: str = ""
    http_status: Optional[int] = None
    error_label: str = ""
    message: str = ""


@dataclass(frozen=True)
class GeocodeOutcome:
    """Ranked candidates for one query plus whatever failed on the way."""
    query: GeocodeQuery
    results: list[GeocodeResult] = field(default_factory=list)
    failures: list[AdapterFailure] = field(default_factory=list)
    adapters_tried: list[str] = field(default_factory=list)

    def best(self) -> Optional[GeocodeResult]:
        return self.results[0] if self.results else None
