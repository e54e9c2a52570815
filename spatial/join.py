"""Vertex sampling intersection join between an aggregate feature and the index."""
from __future__ import annotations

from typing import List

from shapely.geometry.base import BaseGeometry

from .geometry import any_vertex_within, is_polygonal
from .index import SpatialIndex


def geometries_intersect(geometry: BaseGeometry, intersect_geometry: BaseGeometry) -> bool:
    """Whether any vertex of *intersect_geometry* lies inside *geometry*.

    Only one direction is checked; callers test both orders. Polygons whose
    edges cross without either one holding a vertex of the other are missed.
    """
    return any_vertex_within(geometry, intersect_geometry)


def intersecting_features(index: SpatialIndex, feature) -> List:
    """Return the spread features of *index* that intersect *feature*."""
    geometry = feature.geometry
    if not is_polygonal(geometry) or geometry.is_empty:
        return []
    overlap = []
    for candidate in index.query(geometry.bounds):
        if geometries_intersect(geometry, candidate.geometry) or geometries_intersect(candidate.geometry, geometry):
            overlap.append(candidate)
    return overlap
