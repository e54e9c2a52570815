"""Proportional allocation of an aggregate value into random points."""
from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple, Union

from data.features import Feature, PropertyCoercionError
from spatial.geometry import (
    MAX_SAMPLE_ATTEMPTS,
    OVERLAP_GRID_SIZE,
    overlap_area,
    random_point_in_geometry,
)

LOGGER = logging.getLogger(__name__)

Point = Tuple[float, float]


class InvalidMagnitudeError(PropertyCoercionError):
    """Raised when an aggregate value cannot be spread (e.g. it is negative)."""


class Weighting(str, Enum):
    """How a spread feature's share of the aggregate value is weighted."""

    AREA = "area"
    OVERLAP = "overlap"


def check_aggregate_value(value: float) -> float:
    if not math.isfinite(value):
        raise InvalidMagnitudeError(f"Aggregate value {value!r} is not finite")
    if value < 0:
        raise InvalidMagnitudeError(f"Aggregate value {value!r} is negative")
    return value


@dataclass(frozen=True)
class Spreader:
    """Spreads ``feature``'s aggregate value into its ``spread_features``.

    ``spread_features`` is sorted in place by :meth:`spread`; the aggregate
    value never changes once the spreader exists.
    """

    feature: Feature
    aggregate_value: float
    spread_features: List[Feature] = field(default_factory=list)
    weighting: Weighting = Weighting.AREA
    max_sample_attempts: int = MAX_SAMPLE_ATTEMPTS
    overlap_grid_size: int = OVERLAP_GRID_SIZE

    def __post_init__(self) -> None:
        check_aggregate_value(self.aggregate_value)

    @property
    def target_count(self) -> int:
        return math.floor(self.aggregate_value)

    def spread_weight(self, spread_feature: Feature) -> float:
        if self.weighting is Weighting.OVERLAP:
            return overlap_area(self.feature.geometry, spread_feature.geometry, self.overlap_grid_size)
        return spread_feature.geometry.area

    def spread_weights(self) -> List[float]:
        return [self.spread_weight(spread_feature) for spread_feature in self.spread_features]

    def total_spread_value(self) -> float:
        """Sum of the weights (area or overlap area) of every spread feature."""
        return sum(self.spread_weights())

    def sort_spread_features(self) -> None:
        # list.sort is stable with reverse=True, so equal areas keep input order
        self.spread_features.sort(key=lambda spread_feature: spread_feature.geometry.area, reverse=True)

    def spread(self, rng: Optional[random.Random] = None) -> List[Point]:
        """Return exactly ``floor(aggregate_value)`` points, or none without spread features."""
        rng = rng or random.Random()
        points: List[Point] = []
        if not self.spread_features:
            return points

        self.sort_spread_features()
        weights = self.spread_weights()
        spread_total = sum(weights)
        total_points = self.target_count

        if spread_total > 0:
            for spread_feature, weight in zip(self.spread_features, weights):
                if len(points) >= total_points:
                    break
                magnitude = weight / spread_total * self.aggregate_value
                remainder = magnitude - math.floor(magnitude)

                # Round semi-randomly so that if 5 spread features each have a
                # magnitude of 0.2, about one of them gets a point
                if remainder < rng.random():
                    num_points = math.floor(magnitude)
                else:
                    num_points = math.ceil(magnitude)

                for _ in range(num_points):
                    if len(points) >= total_points:
                        break
                    points.append(self._sample(spread_feature, rng))
        else:
            LOGGER.debug("Spread features have no weight, placing %d points at random", total_points)

        # Rounding can leave a shortfall; fill it from uniformly chosen features
        while len(points) < total_points:
            spread_feature = self.spread_features[rng.randrange(len(self.spread_features))]
            points.append(self._sample(spread_feature, rng))

        return points

    def _sample(self, spread_feature: Feature, rng: random.Random) -> Point:
        return random_point_in_geometry(spread_feature.geometry, rng, self.max_sample_attempts)


def make_spreader(
    feature: Feature,
    spread_features: Union[List[Feature], Callable[[Feature], List[Feature]]],
    prop: str,
    weighting: Weighting = Weighting.AREA,
    max_sample_attempts: int = MAX_SAMPLE_ATTEMPTS,
    overlap_grid_size: int = OVERLAP_GRID_SIZE,
) -> Spreader:
    """Create a :class:`Spreader`, raising :class:`PropertyCoercionError` for a bad *prop* value.

    *spread_features* may be a callable taking *feature*; it is only called
    once the value has been coerced and checked.
    """
    aggregate_value = check_aggregate_value(feature.magnitude(prop))
    if callable(spread_features):
        spread_features = spread_features(feature)
    return Spreader(
        feature=feature,
        aggregate_value=aggregate_value,
        spread_features=spread_features,
        weighting=weighting,
        max_sample_attempts=max_sample_attempts,
        overlap_grid_size=overlap_grid_size,
    )
