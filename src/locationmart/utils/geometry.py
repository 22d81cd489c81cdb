"""
Geometry helpers for adapter payloads.

Converts Esri JSON and GeoJSON geometries to shapely shapes (x = lon, y = lat)
and measures great-circle distances in statute miles.
"""

from __future__ import annotations

import logging
from math import radians, sin, cos, sqrt, atan2
from typing import Any, Optional

from shapely.geometry import (
    LinearRing,
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
    shape,
)
from shapely.geometry.base import BaseGeometry
from shapely.ops import nearest_points

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3958.8
METERS_PER_MILE = 1609.344


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two WGS84 points, in miles."""
    phi1, phi2 = radians(lat1), radians(lat2)
    dlat = radians(lat2 - lat1)
    dlon = radians(lon2 - lon1)

    a = sin(dlat / 2) ** 2 + cos(phi1) * cos(phi2) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def _esri_polygon(rings: list[list[list[float]]]) -> Optional[BaseGeometry]:
    # Esri shells are clockwise, holes counter-clockwise
    shells: list[list[Any]] = []
    holes: list[Any] = []
    for ring in rings:
        if len(ring) < 3:
            continue
        coords = [(float(p[0]), float(p[1])) for p in ring]
        if LinearRing(coords).is_ccw:
            holes.append(coords)
        else:
            shells.append([coords, []])

    if not shells:
        if not holes:
            return None
        # Mis-wound data: treat the first ring as the shell, like most clients do
        shells = [[holes[0], []]]
        holes = holes[1:]

    for hole in holes:
        probe = Point(hole[0])
        for shell in shells:
            if Polygon(shell[0]).contains(probe):
                shell[1].append(hole)
                break

    polygons = [Polygon(outer, inner) for outer, inner in shells]
    return polygons[0] if len(polygons) == 1 else MultiPolygon(polygons)


def esri_to_shape(geometry: Optional[dict[str, Any]]) -> Optional[BaseGeometry]:
    """
    Convert an Esri JSON geometry to a shapely geometry.

    Returns None for missing or unrecognized geometries instead of raising.
    """
    if not geometry or not isinstance(geometry, dict):
        return None
    try:
        if "x" in geometry and "y" in geometry:
            if geometry["x"] is None or geometry["y"] is None:
                return None
            return Point(float(geometry["x"]), float(geometry["y"]))
        if "points" in geometry:
            return MultiPoint([(float(p[0]), float(p[1])) for p in geometry["points"]])
        if "paths" in geometry:
            lines = [LineString([(float(p[0]), float(p[1])) for p in path]) for path in geometry["paths"] if len(path) >= 2]
            if not lines:
                return None
            return lines[0] if len(lines) == 1 else MultiLineString(lines)
        if "rings" in geometry:
            return _esri_polygon(geometry["rings"])
        if "type" in geometry and "coordinates" in geometry:
            return shape(geometry)
    except (TypeError, ValueError, IndexError) as e:
        logger.debug(f"Unreadable geometry skipped: {e}")
        return None
    return None


def distance_to_geometry_miles(lat: float, lon: float, geom: Optional[BaseGeometry]) -> Optional[float]:
    """
    Distance in miles from a point to the nearest part of ``geom``.

    Zero when the geometry covers the point. The nearest point is found in
    planar lon/lat space and then measured with the haversine formula.
    """
    if geom is None or geom.is_empty:
        return None
    origin = Point(lon, lat)
    if geom.covers(origin):
        return 0.0
    _, nearest = nearest_points(origin, geom)
    return haversine_miles(lat, lon, nearest.y, nearest.x)


def representative_latlon(geom: Optional[BaseGeometry]) -> Optional[tuple[float, float]]:
    """Return ``(lat, lon)`` for a point geometry, or the centroid of anything else."""
    if geom is None or geom.is_empty:
        return None
    if isinstance(geom, Point):
        return geom.y, geom.x
    centroid = geom.centroid
    if not geom.covers(centroid):
        centroid = geom.representative_point()
    return centroid.y, centroid.x
