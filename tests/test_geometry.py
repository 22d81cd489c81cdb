from __future__ import annotations

import pytest
from shapely.geometry import LineString, MultiPolygon, Point, Polygon

from locationmart.utils.geometry import (
    distance_to_geometry_miles,
    esri_to_shape,
    haversine_miles,
    representative_latlon,
)

# Clockwise square around (40.5, -73.5)
SQUARE = [[-74.0, 40.0], [-74.0, 41.0], [-73.0, 41.0], [-73.0, 40.0], [-74.0, 40.0]]
# Counter-clockwise hole inside it
HOLE = [[-73.6, 40.4], [-73.4, 40.4], [-73.4, 40.6], [-73.6, 40.6], [-73.6, 40.4]]


def test_haversine_known_distance():
    # New York to Los Angeles
    assert haversine_miles(40.7128, -74.0060, 34.0522, -118.2437) == pytest.approx(2445, abs=10)
    assert haversine_miles(40.0, -74.0, 40.0, -74.0) == 0.0


def test_esri_point_and_paths():
    assert esri_to_shape({"x": -73.9, "y": 40.7}) == Point(-73.9, 40.7)
    line = esri_to_shape({"paths": [[[-74.0, 40.0], [-73.0, 40.0]]]})
    assert isinstance(line, LineString)


def test_esri_rings_shell_and_hole():
    polygon = esri_to_shape({"rings": [SQUARE, HOLE]})

    assert isinstance(polygon, Polygon)
    assert len(polygon.interiors) == 1
    assert not polygon.covers(Point(-73.5, 40.5))
    assert polygon.covers(Point(-73.9, 40.1))


def test_esri_two_shells_make_multipolygon():
    other = [[-72.0, 40.0], [-72.0, 41.0], [-71.0, 41.0], [-71.0, 40.0], [-72.0, 40.0]]

    assert isinstance(esri_to_shape({"rings": [SQUARE, other]}), MultiPolygon)


@pytest.mark.parametrize("geometry", [None, {}, {"x": None, "y": 1}, {"rings": [[[0, 0]]]}, {"unknown": 1}])
def test_esri_unreadable_geometry_is_none(geometry):
    assert esri_to_shape(geometry) is None


def test_distance_zero_inside_positive_outside():
    polygon = esri_to_shape({"rings": [SQUARE]})

    assert distance_to_geometry_miles(40.5, -73.5, polygon) == 0.0
    outside = distance_to_geometry_miles(40.5, -72.9, polygon)
    # 0.1 degrees of longitude at 40.5N is about 5.3 miles
    assert outside == pytest.approx(5.26, abs=0.1)
    assert distance_to_geometry_miles(40.5, -73.5, None) is None


def test_representative_latlon():
    assert representative_latlon(Point(-73.9, 40.7)) == (40.7, -73.9)
    lat, lon = representative_latlon(esri_to_shape({"rings": [SQUARE]}))
    assert lat == pytest.approx(40.5)
    assert lon == pytest.approx(-73.5)
    assert representative_latlon(None) is None
