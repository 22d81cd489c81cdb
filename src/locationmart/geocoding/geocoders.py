"""
Lookup adapters for the providers the composite geocoder queries.

- NominatimAdapter: OpenStreetMap Nominatim, global coverage (search + reverse)
- CensusAdapter: US Census Bureau one-line address geocoder
- ArcGISParcelAdapter: county/state parcel layers published as ArcGIS FeatureServers
- NYCGeoclientAdapter: NYC Department of City Planning Geoclient v2
- CoordinateAdapter: literal "lat, lon" input, no network

Reference: https://nominatim.org/release-docs/latest/api/Search/
           https://geocoding.geo.census.gov/geocoder/Geocoding_Services_API.html
           https://api.cityofnewyork.us/geoclient/v2/
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from ..utils.geometry import esri_to_shape, representative_latlon
from ..utils.http import HttpRequest
from .base import LookupAdapter, RateLimiter
from .models import BBox, GeocodeQuery, GeocodeResult, LookupMode, RateLimit
from .throttling import NoOpRateLimiter

logger = logging.getLogger(__name__)

# Contiguous US plus Alaska, Hawaii and Puerto Rico
US_BBOX = BBox(south=17.5, west=-180.0, north=71.5, east=-64.0)
NYC_BBOX = BBox(south=40.4774, west=-74.2591, north=40.9176, east=-73.7004)

_STATE_SUFFIX = re.compile(r",\s*([A-Za-z]{2})(?:\s+\d{5}(?:-\d{4})?)?\s*(?:,\s*(?:US|USA|United States))?\s*$", re.I)
_ZIP = re.compile(r"\b(\d{5})(?:-\d{4})?\b")


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class NominatimAdapter(LookupAdapter):
    """
    OpenStreetMap Nominatim.

    Free-text queries go to ``/search``; coordinate queries go to ``/reverse``.
    The public instance allows one request per second.
    """

    name = "nominatim"
    rate_limit = RateLimit(rps=1.0)
    source_label = "Nominatim (OSM)"
    confidence = 0.9

    def __init__(
        self,
        base_url: str = "https://nominatim.openstreetmap.org",
        email: Optional[str] = None,
        limit: int = 5,
        user_agent: Optional[str] = None,
        timeout: float = 4.0,
        limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(timeout=timeout, limiter=limiter)
        self.base_url = base_url.rstrip("/")
        self.email = email
        self.limit = limit
        self.user_agent = user_agent

    def _common_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"format": "jsonv2", "addressdetails": 1}
        if self.email:
            params["email"] = self.email
        return params

    def build_requests(self, query: GeocodeQuery) -> list[HttpRequest]:
        headers = {"User-Agent": self.user_agent} if self.user_agent else {}
        params = self._common_params()

        if query.is_reverse():
            lat, lon = query.coordinates
            params.update({"lat": f"{lat:.6f}", "lon": f"{lon:.6f}"})
            return [HttpRequest(f"{self.base_url}/reverse", params=params, headers=headers, label="reverse")]

        params["q"] = query.text
        params["limit"] = 1 if query.mode == LookupMode.LOOKUP else self.limit
        if query.country_codes:
            params["countrycodes"] = ",".join(query.country_codes)
        if query.bbox is not None:
            params["viewbox"] = query.bbox.as_viewbox()
            params["bounded"] = 1
        return [HttpRequest(f"{self.base_url}/search", params=params, headers=headers, label="search")]

    def parse_response(self, payload: Any, query: GeocodeQuery) -> list[GeocodeResult]:
        if isinstance(payload, dict):
            # /reverse answers with a single object, or {"error": ...}
            if "error" in payload:
                return []
            items = [payload]
        elif isinstance(payload, list):
            items = payload
        else:
            return []

        results = []
        for item in items:
            if not isinstance(item, dict):
                continue
            lat, lon = _to_float(item.get("lat")), _to_float(item.get("lon"))
            if lat is None or lon is None:
                continue
            results.append(GeocodeResult(
                source=self.source_label,
                lat=lat,
                lon=lon,
                name=item.get("display_name") or query.label(),
                confidence=self.confidence,
                raw=item,
            ))
        return results


class CensusAdapter(LookupAdapter):
    """US Census Bureau one-line address geocoder (US street addresses only)."""

    name = "census"
    rate_limit = RateLimit(rps=10.0)
    source_label = "US Census"
    confidence = 0.8

    def __init__(
        self,
        base_url: str = "https://geocoding.geo.census.gov/geocoder",
        benchmark: str = "Public_AR_Current",
        timeout: float = 4.0,
        limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(timeout=timeout, limiter=limiter)
        self.base_url = base_url.rstrip("/")
        self.benchmark = benchmark

    def supports(self, query: GeocodeQuery) -> bool:
        if not query.text:
            return False
        if not query.allows_country("us"):
            return False
        return query.bbox is None or US_BBOX.intersects(query.bbox)

    def build_requests(self, query: GeocodeQuery) -> list[HttpRequest]:
        params = {"address": query.text, "benchmark": self.benchmark, "format": "json"}
        return [HttpRequest(f"{self.base_url}/locations/onelineaddress", params=params)]

    def parse_response(self, payload: Any, query: GeocodeQuery) -> list[GeocodeResult]:
        if not isinstance(payload, dict):
            return []
        matches = (payload.get("result") or {}).get("addressMatches") or []

        results = []
        for match in matches:
            coords = match.get("coordinates") if isinstance(match, dict) else None
            if not coords:
                continue
            lat, lon = _to_float(coords.get("y")), _to_float(coords.get("x"))
            if lat is None or lon is None:
                continue
            results.append(GeocodeResult(
                source=self.source_label,
                lat=lat,
                lon=lon,
                name=match.get("matchedAddress") or query.text,
                confidence=self.confidence,
                raw=match,
            ))
        return results


class ArcGISParcelAdapter(LookupAdapter):
    """
    Parcel layer published by a county or state as an ArcGIS FeatureServer.

    Sends an exact match on the site-address field, then a looser prefix
    match as fallback. Candidates whose address equals the normalized
    query score ``exact_confidence``; prefix hits score ``fallback_confidence``.
    The candidate position is the parcel centroid.
    """

    rate_limit = RateLimit(rps=5.0)
    exact_confidence = 0.85
    fallback_confidence = 0.6

    def __init__(
        self,
        name: str,
        url: str,
        address_field: str,
        coverage: BBox,
        label: Optional[str] = None,
        out_fields: str = "*",
        max_records: int = 5,
        rate_limit: Optional[RateLimit] = None,
        timeout: float = 4.0,
        limiter: Optional[RateLimiter] = None,
    ):
        self.name = name
        if rate_limit is not None:
            self.rate_limit = rate_limit
        super().__init__(timeout=timeout, limiter=limiter)
        self.url = url.rstrip("/")
        self.address_field = address_field
        self.coverage = coverage
        self.label = label or name
        self.out_fields = out_fields
        self.max_records = max_records

    @staticmethod
    def normalize_address(text: str) -> str:
        """Street portion of an address, upper-cased with single spaces."""
        street = (text or "").split(",")[0]
        return re.sub(r"\s+", " ", street).strip().upper()

    def supports(self, query: GeocodeQuery) -> bool:
        if not query.text or not query.allows_country("us"):
            return False
        return query.bbox is None or self.coverage.intersects(query.bbox)

    def _params(self, where: str) -> dict[str, Any]:
        return {
            "where": where,
            "outFields": self.out_fields,
            "returnGeometry": "true",
            "outSR": 4326,
            "resultRecordCount": self.max_records,
            "f": "json",
        }

    def build_requests(self, query: GeocodeQuery) -> list[HttpRequest]:
        address = self.normalize_address(query.text).replace("'", "''")
        if not address:
            return []
        field = f"UPPER({self.address_field})"
        return [
            HttpRequest(f"{self.url}/query", params=self._params(f"{field} = '{address}'"), label="exact"),
            HttpRequest(f"{self.url}/query", params=self._params(f"{field} LIKE '{address}%'"), label="fallback"),
        ]

    def parse_response(self, payload: Any, query: GeocodeQuery) -> list[GeocodeResult]:
        if not isinstance(payload, dict):
            return []
        wanted = self.normalize_address(query.text)

        results = []
        for feature in payload.get("features") or []:
            if not isinstance(feature, dict):
                continue
            attributes = feature.get("attributes") or {}
            point = representative_latlon(esri_to_shape(feature.get("geometry")))
            if point is None:
                continue
            site_address = str(attributes.get(self.address_field) or "").strip()
            exact = bool(site_address) and self.normalize_address(site_address) == wanted
            results.append(GeocodeResult(
                source=self.label,
                lat=point[0],
                lon=point[1],
                name=site_address or query.text,
                confidence=self.exact_confidence if exact else self.fallback_confidence,
                raw=attributes,
            ))
        return results


class NYCGeoclientAdapter(LookupAdapter):
    """
    NYC Geoclient API v2 single-field search.

    Street-level precision inside the five boroughs. Requires an API key.
    """

    name = "nyc_geoclient"
    rate_limit = RateLimit(rps=10.0, burst=5)
    source_label = "NYC Geoclient"
    exact_confidence = 0.95
    possible_confidence = 0.85

    def __init__(
        self,
        api_key: str,
        api_base_url: str = "https://api.nyc.gov/geoclient/v2",
        timeout: float = 4.0,
        limiter: Optional[RateLimiter] = None,
    ):
        if not api_key:
            raise ValueError("NYC Geoclient requires an api_key")
        super().__init__(timeout=timeout, limiter=limiter)
        self.api_key = api_key
        self.api_base_url = api_base_url

        logger.info(f"Initialized NYCGeoclientAdapter: {api_base_url}, timeout={timeout}s")

    def supports(self, query: GeocodeQuery) -> bool:
        """
        Skip queries that plainly point outside New York City: a bounding box
        that misses the city, a country filter without ``us``, a trailing
        state code other than NY, or a ZIP outside the city's ranges.
        """
        if not query.text or not query.allows_country("us"):
            return False
        if query.bbox is not None and not NYC_BBOX.intersects(query.bbox):
            return False

        state = _STATE_SUFFIX.search(query.text)
        if state and state.group(1).upper() not in ("NY", "US"):
            return False

        zips = _ZIP.findall(query.text)
        if zips and not any(z.startswith(("100", "101", "102", "103", "104", "110", "111", "112", "113", "114", "116")) for z in zips):
            return False
        return True

    def build_requests(self, query: GeocodeQuery) -> list[HttpRequest]:
        # Build API endpoint URL (avoid urljoin stripping the /v2 segment)
        endpoint = f"{self.api_base_url.rstrip('/')}/search.json"
        params = {"input": query.text, "app_key": self.api_key}
        headers = {"Ocp-Apim-Subscription-Key": self.api_key}
        return [HttpRequest(endpoint, params=params, headers=headers)]

    def _extract(self, response: dict[str, Any]) -> tuple[Optional[float], Optional[float]]:
        # NYC returns coordinates as strings sometimes
        lat = _to_float(response.get("latitude") or response.get("latitudeInternalLabel"))
        lon = _to_float(response.get("longitude") or response.get("longitudeInternalLabel"))
        return lat, lon

    def parse_response(self, payload: Any, query: GeocodeQuery) -> list[GeocodeResult]:
        if not isinstance(payload, dict):
            return []

        results = []
        for item in payload.get("results") or []:
            response = item.get("response") if isinstance(item, dict) else None
            if not response:
                continue
            lat, lon = self._extract(response)
            if lat is None or lon is None or not (-90 <= lat <= 90 and -180 <= lon <= 180):
                continue

            parts = [
                " ".join(p for p in (response.get("houseNumber"), response.get("firstStreetNameNormalized")) if p),
                response.get("firstBoroughName") or response.get("uspsPreferredCityName"),
            ]
            name = ", ".join(p for p in parts if p) or query.text
            exact = str(item.get("status", "")).upper() == "EXACT_MATCH"
            results.append(GeocodeResult(
                source=self.source_label,
                lat=lat,
                lon=lon,
                name=name,
                confidence=self.exact_confidence if exact else self.possible_confidence,
                raw=item,
            ))
        return results


class CoordinateAdapter(LookupAdapter):
    """Resolves a literal coordinate query to itself, without any request."""

    name = "coordinates"
    source_label = "Coordinates"

    def __init__(self):
        super().__init__(timeout=0.0, limiter=NoOpRateLimiter())

    def supports(self, query: GeocodeQuery) -> bool:
        return query.coordinates is not None

    def build_requests(self, query: GeocodeQuery) -> list[HttpRequest]:
        return []

    def parse_response(self, payload: Any, query: GeocodeQuery) -> list[GeocodeResult]:
        return []

    def resolve_locally(self, query: GeocodeQuery) -> list[GeocodeResult]:
        if query.coordinates is None:
            return []
        lat, lon = query.coordinates
        return [GeocodeResult(
            source=self.source_label,
            lat=lat,
            lon=lon,
            name=query.text or query.label(),
            confidence=1.0,
        )]
