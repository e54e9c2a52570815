"""Spatial index, intersection join and geometry helpers."""

from .geometry import Bounds, EmptyCollectionError, collection_bounds, random_point_in_geometry
from .index import IndexEntry, SpatialIndex
from .join import geometries_intersect, intersecting_features

__all__ = [
    "Bounds",
    "EmptyCollectionError",
    "IndexEntry",
    "SpatialIndex",
    "collection_bounds",
    "geometries_intersect",
    "intersecting_features",
    "random_point_in_geometry",
]
