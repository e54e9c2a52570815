"""Shared fixtures for the spreading tests."""
from __future__ import annotations

import json

import pytest
from shapely.geometry import MultiPolygon, Polygon

from data.features import Feature


def polygon_feature(coords, **properties) -> Feature:
    return Feature.from_properties(Polygon(coords), properties)


def multipolygon_feature(polygons, **properties) -> Feature:
    return Feature.from_properties(MultiPolygon([Polygon(coords) for coords in polygons]), properties)


def feature_collection_json(features) -> str:
    return json.dumps({"type": "FeatureCollection", "features": features})


def geojson_polygon(coords, **properties) -> dict:
    return {
        "type": "Feature",
        "properties": properties,
        "geometry": {"type": "Polygon", "coordinates": [[list(point) for point in coords]]},
    }


@pytest.fixture
def aggregate_triangle() -> Feature:
    return polygon_feature([(0, 0), (15, 15), (15, 0), (0, 0)], value=4.5)


@pytest.fixture
def spread_triangles() -> list:
    """Two triangles of area 12.5 and 50, the smaller one first."""
    return [
        polygon_feature([(0, 0), (5, 5), (5, 0), (0, 0)]),
        polygon_feature([(5, 5), (15, 15), (15, 5), (5, 5)]),
    ]
