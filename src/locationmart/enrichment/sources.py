"""
Concrete enrichment adapter shapes.

Each catalog entry binds to one of these generic shapes rather than to a
bespoke class per data source:

- ArcGISFeatureAdapter: ArcGIS REST ``query`` endpoints (point-in-polygon
  and/or proximity); most government hazard, parcel and boundary layers
- OverpassPOIAdapter: OpenStreetMap points of interest within a radius
- PointAttributeAdapter: a single attribute record for the point itself
  (elevation, weather, census geographies)
- CustomPOIAdapter: user-supplied point tables, searched locally
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable, Iterable, Mapping, Optional

import pandas as pd
from shapely.geometry import Point

from ..geocoding.models import RateLimit, ResolvedLocation
from ..geocoding.throttling import NoOpRateLimiter
from ..utils.errors import AdapterRequestError
from ..utils.geometry import METERS_PER_MILE, distance_to_geometry_miles, esri_to_shape, haversine_miles
from ..utils.http import HttpRequest, fetch_json
from .base import EnrichmentAdapter
from .models import EnrichmentRecord, Feature, QueryMode

logger = logging.getLogger(__name__)

# Slack for features whose nearest vertex sits right on the search circle
_RADIUS_SLACK_MILES = 0.01


class ArcGISFeatureAdapter(EnrichmentAdapter):
    """
    ArcGIS FeatureServer / MapServer layer ``query`` endpoint.

    With both modes enabled the containing features come first (distance 0),
    followed by nearby features ordered by their true distance.
    """

    rate_limit = RateLimit(rps=5.0)

    def __init__(
        self,
        identifier: str,
        url: str,
        modes: Iterable[QueryMode] = (QueryMode.POINT_IN_POLYGON,),
        out_fields: str = "*",
        where: str = "1=1",
        max_records: int = 100,
        id_field: str = "OBJECTID",
        **kwargs: Any,
    ):
        super().__init__(identifier, **kwargs)
        modes = frozenset(QueryMode(m) for m in modes)
        if not modes or QueryMode.GLOBAL_ATTRIBUTE in modes:
            raise ValueError("ArcGIS layers support point_in_polygon and/or proximity")
        self.supported_modes = modes
        self.url = url.rstrip("/")
        self.out_fields = out_fields
        self.where = where
        self.max_records = max_records
        self.id_field = id_field

    def _params(self, location: ResolvedLocation, radius: Optional[float]) -> dict[str, Any]:
        params: dict[str, Any] = {
            "f": "json",
            "where": self.where,
            "geometry": f"{location.lon:.6f},{location.lat:.6f}",
            "geometryType": "esriGeometryPoint",
            "inSR": 4326,
            "spatialRel": "esriSpatialRelIntersects",
            "outFields": self.out_fields,
            "returnGeometry": "true",
            "outSR": 4326,
            "resultRecordCount": self.max_records,
        }
        if radius is not None:
            params["distance"] = radius
            params["units"] = "esriSRUnit_StatuteMile"
        return params

    def _query(self, location: ResolvedLocation, radius: Optional[float]) -> list[dict[str, Any]]:
        request = HttpRequest(f"{self.url}/query", params=self._params(location, radius))
        payload = fetch_json(self.session, request, timeout=self.timeout)
        if not isinstance(payload, dict):
            raise AdapterRequestError("Unexpected payload type", url=request.url, label="bad_payload")
        if "error" in payload:
            # ArcGIS reports query errors inside a 200 response
            error = payload.get("error") or {}
            raise AdapterRequestError(
                f"ArcGIS error {error.get('code')}: {error.get('message')}",
                url=request.url,
                http_status=error.get("code"),
                label="arcgis_error",
            )
        return [f for f in payload.get("features") or [] if isinstance(f, dict)]

    def _feature_key(self, raw: dict[str, Any], feature: Feature) -> Any:
        value = feature.attributes.get(self.id_field)
        if value is not None:
            return value
        return feature.geometry.wkb if feature.geometry is not None else id(raw)

    def _to_feature(self, raw: dict[str, Any], location: ResolvedLocation, containing: bool) -> Feature:
        attributes = raw.get("attributes") or raw.get("properties") or {}
        geometry = esri_to_shape(raw.get("geometry"))
        if containing:
            distance = 0.0
        else:
            distance = distance_to_geometry_miles(location.lat, location.lon, geometry)
        return Feature(
            attributes=dict(attributes),
            geometry=geometry,
            distance_miles=distance,
            containing=containing or distance == 0.0,
        )

    def fetch(self, location: ResolvedLocation, radius: float) -> EnrichmentRecord:
        primary = QueryMode.POINT_IN_POLYGON if self.supports_mode(QueryMode.POINT_IN_POLYGON) else QueryMode.PROXIMITY
        features: list[Feature] = []
        seen: set[Any] = set()

        try:
            if self.supports_mode(QueryMode.POINT_IN_POLYGON):
                for raw in self._query(location, None):
                    feature = self._to_feature(raw, location, containing=True)
                    seen.add(self._feature_key(raw, feature))
                    features.append(feature)

            if self.supports_mode(QueryMode.PROXIMITY):
                if primary == QueryMode.POINT_IN_POLYGON:
                    # Second request of this fetch; the orchestrator paid for the first
                    self.limiter.acquire()
                nearby = []
                for raw in self._query(location, radius):
                    feature = self._to_feature(raw, location, containing=False)
                    key = self._feature_key(raw, feature)
                    if key in seen:
                        continue
                    seen.add(key)
                    if feature.distance_miles is not None and feature.distance_miles > radius + _RADIUS_SLACK_MILES:
                        continue
                    nearby.append(feature)
                nearby.sort(key=lambda f: (f.distance_miles is None, f.distance_miles or 0.0))
                features.extend(nearby)
        except AdapterRequestError as e:
            logger.warning(f"[{self.identifier}] {e}")
            return EnrichmentRecord.failure(self.identifier, str(e), radius_miles=radius, mode=primary)

        mode = QueryMode.PROXIMITY if self.supports_mode(QueryMode.PROXIMITY) else primary
        return EnrichmentRecord.success(self.identifier, features, radius_miles=radius, mode=mode)


def _overpass_filter(expr: str) -> str:
    expr = expr.strip()
    if expr.startswith("["):
        return expr
    if "=" in expr:
        key, value = expr.split("=", 1)
        return f'["{key.strip()}"="{value.strip()}"]'
    return f'["{expr}"]'


class OverpassPOIAdapter(EnrichmentAdapter):
    """
    OpenStreetMap points of interest through the Overpass API.

    ``filters`` are tag expressions such as ``"amenity=hospital"`` or
    ``"leisure=park"``; a feature matching any of them is returned.
    """

    rate_limit = RateLimit(rps=1.0, burst=1)
    supported_modes = frozenset({QueryMode.PROXIMITY})

    def __init__(
        self,
        identifier: str,
        filters: Iterable[str],
        url: str = "https://overpass-api.de/api/interpreter",
        element_types: Iterable[str] = ("node", "way", "relation"),
        max_retries: int = 2,
        retry_delay_s: float = 1.0,
        **kwargs: Any,
    ):
        super().__init__(identifier, **kwargs)
        self.filters = [_overpass_filter(f) for f in filters]
        if not self.filters:
            raise ValueError(f"{identifier}: at least one Overpass filter is required")
        self.url = url
        self.element_types = tuple(element_types)
        self.max_retries = max_retries
        self.retry_delay_s = retry_delay_s

    def build_query(self, lat: float, lon: float, radius_miles: float) -> str:
        meters = int(math.ceil(radius_miles * METERS_PER_MILE))
        around = f"(around:{meters},{lat:.6f},{lon:.6f})"
        clauses = "".join(
            f"{element}{tag_filter}{around};"
            for tag_filter in self.filters
            for element in self.element_types
        )
        server_timeout = max(5, int(self.timeout))
        return f"[out:json][timeout:{server_timeout}];({clauses});out center tags;"

    def fetch(self, location: ResolvedLocation, radius: float) -> EnrichmentRecord:
        request = HttpRequest(
            self.url,
            method="POST",
            data={"data": self.build_query(location.lat, location.lon, radius)},
        )
        try:
            payload = fetch_json(
                self.session,
                request,
                timeout=self.timeout,
                retry_statuses=(429, 504),
                max_retries=self.max_retries,
                retry_delay_s=self.retry_delay_s,
            )
        except AdapterRequestError as e:
            logger.warning(f"[{self.identifier}] Overpass query failed: {e}")
            return EnrichmentRecord.failure(self.identifier, str(e), radius_miles=radius, mode=QueryMode.PROXIMITY)

        elements = payload.get("elements") if isinstance(payload, dict) else None
        if not isinstance(elements, list):
            logger.warning(f"[{self.identifier}] Overpass returned no element list")
            return EnrichmentRecord.failure(
                self.identifier, "Unexpected payload: no element list", radius_miles=radius, mode=QueryMode.PROXIMITY
            )
        features: list[Feature] = []
        seen: set[tuple[Any, Any]] = set()
        for element in elements:
            if not isinstance(element, dict):
                continue
            key = (element.get("type"), element.get("id"))
            if key in seen:
                continue
            center = element.get("center") or {}
            lat = element.get("lat", center.get("lat"))
            lon = element.get("lon", center.get("lon"))
            if lat is None or lon is None:
                continue
            distance = haversine_miles(location.lat, location.lon, float(lat), float(lon))
            if distance > radius + _RADIUS_SLACK_MILES:
                continue
            seen.add(key)
            attributes = dict(element.get("tags") or {})
            attributes.update({"osm_type": element.get("type"), "osm_id": element.get("id")})
            features.append(Feature(
                attributes=attributes,
                geometry=Point(float(lon), float(lat)),
                distance_miles=distance,
            ))

        features.sort(key=lambda f: f.distance_miles)
        return EnrichmentRecord.success(self.identifier, features, radius_miles=radius, mode=QueryMode.PROXIMITY)


class PointAttributeAdapter(EnrichmentAdapter):
    """
    Global attribute at the query point from a plain JSON endpoint.

    ``params`` values may contain ``{lat}`` and ``{lon}`` placeholders.
    ``extract`` turns the decoded payload into one attribute mapping, or
    None when the service has nothing for this point.
    """

    supported_modes = frozenset({QueryMode.GLOBAL_ATTRIBUTE})

    def __init__(
        self,
        identifier: str,
        url: str,
        params: Mapping[str, Any],
        extract: Callable[[Any], Optional[Mapping[str, Any]]],
        **kwargs: Any,
    ):
        super().__init__(identifier, **kwargs)
        self.url = url
        self.params = dict(params)
        self.extract = extract

    def _format_params(self, location: ResolvedLocation) -> dict[str, Any]:
        values = {"lat": f"{location.lat:.6f}", "lon": f"{location.lon:.6f}"}
        return {k: v.format(**values) if isinstance(v, str) else v for k, v in self.params.items()}

    def fetch(self, location: ResolvedLocation, radius: float) -> EnrichmentRecord:
        request = HttpRequest(self.url, params=self._format_params(location))
        try:
            payload = fetch_json(self.session, request, timeout=self.timeout)
        except AdapterRequestError as e:
            logger.warning(f"[{self.identifier}] {e}")
            return EnrichmentRecord.failure(self.identifier, str(e), mode=QueryMode.GLOBAL_ATTRIBUTE)

        try:
            attributes = self.extract(payload)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"[{self.identifier}] unexpected payload: {e}")
            return EnrichmentRecord.failure(
                self.identifier, f"Unexpected payload: {e}", mode=QueryMode.GLOBAL_ATTRIBUTE
            )

        features = [Feature(attributes=dict(attributes))] if attributes else []
        return EnrichmentRecord.success(self.identifier, features, mode=QueryMode.GLOBAL_ATTRIBUTE)


def _require_object(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise TypeError(f"expected a JSON object, got {type(payload).__name__}")
    return payload


def extract_open_meteo_elevation(payload: Any) -> Optional[dict[str, Any]]:
    elevations = _require_object(payload).get("elevation")
    if not elevations or elevations[0] is None:
        return None
    meters = float(elevations[0])
    return {"elevation_m": meters, "elevation_ft": round(meters * 3.28084)}


def extract_open_meteo_weather(payload: Any) -> Optional[dict[str, Any]]:
    current = _require_object(payload).get("current_weather")
    if not current:
        return None
    return {
        "temperature_c": current.get("temperature"),
        "windspeed_kmh": current.get("windspeed"),
        "winddirection_deg": current.get("winddirection"),
        "weathercode": current.get("weathercode"),
        "observed_at": current.get("time"),
    }


def extract_census_geographies(payload: Any) -> Optional[dict[str, Any]]:
    geographies = (_require_object(payload).get("result") or {}).get("geographies")
    if not geographies:
        return None

    def first(*names: str) -> dict[str, Any]:
        for name in names:
            items = geographies.get(name) or []
            if items:
                return items[0]
        return {}

    state = first("States")
    county = first("Counties")
    tract = first("Census Tracts")
    block = first("2020 Census Blocks", "Census Blocks")
    if not (state or county or tract):
        return None
    return {
        "fips_state": state.get("STATE"),
        "state_name": state.get("NAME"),
        "fips_county": county.get("COUNTY"),
        "county_name": county.get("NAME"),
        "fips_tract": tract.get("TRACT"),
        "tract_geoid": tract.get("GEOID"),
        "block_geoid": block.get("GEOID"),
        "urban_rural": {"U": "Urban", "R": "Rural"}.get(block.get("UR")),
    }


class CustomPOIAdapter(EnrichmentAdapter):
    """
    Proximity search over a user-supplied table of points.

    No network; the table is copied at construction so later edits to the
    source data never leak into a running batch.
    """

    supported_modes = frozenset({QueryMode.PROXIMITY})

    def __init__(self, identifier: str, points: Iterable[Mapping[str, Any]], lat_key: str = "lat", lon_key: str = "lon", **kwargs: Any):
        kwargs.setdefault("limiter", NoOpRateLimiter())
        super().__init__(identifier, **kwargs)
        self.points: list[tuple[float, float, dict[str, Any]]] = []
        for point in points:
            try:
                lat, lon = float(point[lat_key]), float(point[lon_key])
            except (KeyError, TypeError, ValueError):
                continue
            if math.isnan(lat) or math.isnan(lon):
                continue
            attributes = {k: v for k, v in point.items() if k not in (lat_key, lon_key)}
            self.points.append((lat, lon, attributes))
        logger.info(f"Loaded {len(self.points)} custom POIs for '{identifier}'")

    @classmethod
    def from_frame(cls, identifier: str, frame: pd.DataFrame, lat_col: str = "lat", lon_col: str = "lon", **kwargs: Any) -> "CustomPOIAdapter":
        missing = {lat_col, lon_col} - set(frame.columns)
        if missing:
            raise ValueError(f"{identifier}: missing coordinate columns {sorted(missing)}")
        records = frame.to_dict(orient="records")
        return cls(identifier, records, lat_key=lat_col, lon_key=lon_col, **kwargs)

    def fetch(self, location: ResolvedLocation, radius: float) -> EnrichmentRecord:
        features = []
        for lat, lon, attributes in self.points:
            distance = haversine_miles(location.lat, location.lon, lat, lon)
            if distance <= radius:
                features.append(Feature(attributes=attributes, geometry=Point(lon, lat), distance_miles=distance))
        features.sort(key=lambda f: f.distance_miles)
        return EnrichmentRecord.success(self.identifier, features, radius_miles=radius, mode=QueryMode.PROXIMITY)
