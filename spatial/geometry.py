"""Geometry helpers built on shapely: bounds, containment and point sampling."""
from __future__ import annotations

import logging
import random
from typing import Iterable, NamedTuple, Tuple

import numpy as np
import shapely
from shapely.geometry.base import BaseGeometry

LOGGER = logging.getLogger(__name__)

MAX_SAMPLE_ATTEMPTS = 1000
OVERLAP_GRID_SIZE = 32
FALLBACK_POINT: Tuple[float, float] = (0.0, 0.0)

_POLYGONAL_TYPES = frozenset({"Polygon", "MultiPolygon"})


class EmptyCollectionError(ValueError):
    """Raised when an operation needs at least one feature and got none."""


class Bounds(NamedTuple):
    minx: float
    miny: float
    maxx: float
    maxy: float

    @classmethod
    def of(cls, geometry: BaseGeometry) -> "Bounds":
        return cls(*geometry.bounds)

    def union(self, other: "Bounds") -> "Bounds":
        return Bounds(
            min(self.minx, other.minx),
            min(self.miny, other.miny),
            max(self.maxx, other.maxx),
            max(self.maxy, other.maxy),
        )


def is_polygonal(geometry: BaseGeometry) -> bool:
    return geometry is not None and geometry.geom_type in _POLYGONAL_TYPES


def collection_bounds(features: Iterable) -> Bounds:
    """Return the union of the bounds of every feature geometry."""
    geometries = [feature.geometry for feature in features]
    if not geometries:
        raise EmptyCollectionError("Cannot compute bounds of an empty feature collection")
    return Bounds(*(float(value) for value in shapely.total_bounds(geometries)))


def contains_point(geometry: BaseGeometry, lon: float, lat: float) -> bool:
    """Point-in-polygon test where points on the boundary count as inside."""
    if not is_polygonal(geometry):
        return False
    return bool(shapely.intersects_xy(geometry, lon, lat))


def any_vertex_within(geometry: BaseGeometry, other: BaseGeometry) -> bool:
    """Whether any vertex of any ring of *other* lies inside *geometry*."""
    if not is_polygonal(geometry) or not is_polygonal(other):
        return False
    coords = shapely.get_coordinates(other)
    if len(coords) == 0:
        return False
    return bool(shapely.intersects_xy(geometry, coords[:, 0], coords[:, 1]).any())


def random_point_in_geometry(
    geometry: BaseGeometry,
    rng: random.Random,
    max_attempts: int = MAX_SAMPLE_ATTEMPTS,
) -> Tuple[float, float]:
    """Rejection sample a point inside *geometry* from its bounding box.

    Falls back to ``(0, 0)`` when no sample lands inside within *max_attempts*,
    which happens for degenerate or numerically tiny polygons.
    """
    minx, miny, maxx, maxy = geometry.bounds
    for _ in range(max_attempts):
        lon = minx + rng.random() * (maxx - minx)
        lat = miny + rng.random() * (maxy - miny)
        if contains_point(geometry, lon, lat):
            return lon, lat
    LOGGER.warning(
        "No point found inside %s with bounds (%f, %f, %f, %f) after %d attempts, using (0, 0)",
        geometry.geom_type,
        minx,
        miny,
        maxx,
        maxy,
        max_attempts,
    )
    return FALLBACK_POINT


def overlap_area(geometry: BaseGeometry, other: BaseGeometry, grid_size: int = OVERLAP_GRID_SIZE) -> float:
    """Approximate the area of *other* that lies inside *geometry*.

    No clipping is done: the share of a regular grid of sample points over
    *other*'s bounding box that falls in both geometries scales *other*'s area.
    """
    if not is_polygonal(geometry) or not is_polygonal(other):
        return 0.0
    area = other.area
    if area <= 0:
        return 0.0
    if geometry.covers(other):
        return area

    minx, miny, maxx, maxy = other.bounds
    steps = (np.arange(grid_size) + 0.5) / grid_size
    xs, ys = np.meshgrid(minx + steps * (maxx - minx), miny + steps * (maxy - miny))
    xs = xs.ravel()
    ys = ys.ravel()
    in_other = shapely.intersects_xy(other, xs, ys)
    hits = int(in_other.sum())
    if hits == 0:
        return area if geometry.intersects(other.representative_point()) else 0.0
    in_both = in_other & shapely.intersects_xy(geometry, xs, ys)
    return area * int(in_both.sum()) / hits
