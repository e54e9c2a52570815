"""Centroid keyed STRtree index over the spread features."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np
import shapely
from shapely.geometry import Point, box
from shapely.strtree import STRtree

from .geometry import Bounds, EmptyCollectionError, collection_bounds

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexEntry:
    """Placement of one spread feature in the index.

    ``position`` refers back into the indexed collection; the entry holds no
    feature data of its own.
    """

    bounds: Bounds
    point: Tuple[float, float]
    position: int


class SpatialIndex:
    """Read-only index answering "which spread features could touch this box".

    Each feature is placed by its area weighted centroid, so a query may
    return false positives (and miss features whose centroid lies outside the
    box); callers confirm matches against the real geometry.
    """

    def __init__(self, features: Sequence, entries: List[IndexEntry], bounds: Bounds) -> None:
        self._features = features
        self._entries = entries
        self.bounds = bounds
        self._tree = STRtree([Point(entry.point) for entry in entries])

    @classmethod
    def build(cls, features: Sequence) -> "SpatialIndex":
        if not features:
            raise EmptyCollectionError("Cannot build a spatial index over an empty spread collection")
        bounds = collection_bounds(features)
        entries: List[IndexEntry] = []
        for position, feature in enumerate(features):
            geometry = feature.geometry
            if geometry is None or geometry.is_empty:
                LOGGER.debug("Not indexing spread feature %d with empty geometry", position)
                continue
            # Prepared once here; workers only ever read these geometries.
            shapely.prepare(geometry)
            centroid = geometry.centroid
            entries.append(IndexEntry(Bounds.of(geometry), (centroid.x, centroid.y), position))
        LOGGER.info(
            "Indexed %d spread features within bounds (%f, %f, %f, %f)",
            len(entries),
            *bounds,
        )
        return cls(features, entries, bounds)

    def __len__(self) -> int:
        return len(self._entries)

    def query_entries(self, bounds: Tuple[float, float, float, float]) -> List[IndexEntry]:
        if not self._entries:
            return []
        hits = self._tree.query(box(*bounds))
        return [self._entries[int(idx)] for idx in np.asarray(hits)]

    def query(self, bounds: Tuple[float, float, float, float]) -> list:
        """Return the features whose centroid falls inside *bounds* (inclusive)."""
        return [self._features[entry.position] for entry in self.query_entries(bounds)]
