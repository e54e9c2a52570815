"""GeoJSON feature model and tolerant feature collection loading."""
from __future__ import annotations

import json
import logging
import math
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from shapely.errors import ShapelyError
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry

LOGGER = logging.getLogger(__name__)

STDIN_NAME = "-"

FeatureCollection = List["Feature"]


class GeoJSONError(ValueError):
    """Raised when a document cannot be read as a GeoJSON feature collection."""


class PropertyCoercionError(ValueError):
    """Raised when a property value cannot be used as a number."""


class ValueKind(str, Enum):
    NUMBER = "number"
    STRING = "string"
    NULL = "null"
    BOOLEAN = "boolean"
    OTHER = "other"


@dataclass(frozen=True)
class PropertyValue:
    """A loosely typed GeoJSON property value tagged with its kind."""

    kind: ValueKind
    raw: Any = None

    @classmethod
    def from_raw(cls, value: Any) -> "PropertyValue":
        if value is None:
            return cls(ValueKind.NULL)
        # bool is an int subclass, so it has to be checked first
        if isinstance(value, bool):
            return cls(ValueKind.BOOLEAN, value)
        if isinstance(value, (int, float)):
            return cls(ValueKind.NUMBER, value)
        if isinstance(value, str):
            return cls(ValueKind.STRING, value)
        return cls(ValueKind.OTHER, value)

    def as_float(self) -> float:
        """Return the value as a finite float or raise :class:`PropertyCoercionError`."""
        if self.kind not in (ValueKind.NUMBER, ValueKind.STRING):
            raise PropertyCoercionError(f"Cannot parse value of kind '{self.kind.value}' as float")
        try:
            number = float(self.raw)
        except (OverflowError, ValueError) as exc:
            raise PropertyCoercionError(f"Could not parse value {self.raw!r} as float") from exc
        if not math.isfinite(number):
            raise PropertyCoercionError(f"Value {self.raw!r} is not a finite number")
        return number


@dataclass
class Feature:
    """A single geographic record: one geometry plus its properties."""

    geometry: BaseGeometry
    properties: Dict[str, PropertyValue] = field(default_factory=dict)

    @classmethod
    def from_geojson(cls, mapping: Mapping[str, Any]) -> "Feature":
        geometry_mapping = mapping.get("geometry")
        if geometry_mapping is None:
            raise GeoJSONError("Feature geometry is null")
        geometry = shape(geometry_mapping)
        if geometry.is_empty:
            raise GeoJSONError("Feature geometry is empty")
        raw_properties = mapping.get("properties") or {}
        if not isinstance(raw_properties, Mapping):
            raise GeoJSONError("Feature properties must be an object")
        properties = {str(key): PropertyValue.from_raw(value) for key, value in raw_properties.items()}
        return cls(geometry=geometry, properties=properties)

    @classmethod
    def from_properties(cls, geometry: BaseGeometry, properties: Optional[Mapping[str, Any]] = None) -> "Feature":
        """Build a feature from plain Python property values."""
        values = {key: PropertyValue.from_raw(value) for key, value in (properties or {}).items()}
        return cls(geometry=geometry, properties=values)

    def property_value(self, name: str) -> PropertyValue:
        try:
            return self.properties[name]
        except KeyError as exc:
            raise PropertyCoercionError(f"Property '{name}' is missing") from exc

    def magnitude(self, name: str) -> float:
        return self.property_value(name).as_float()


def parse_features(raw_features: Iterable[Any]) -> FeatureCollection:
    """Parse raw GeoJSON feature objects one at a time, dropping invalid ones."""
    features: FeatureCollection = []
    for position, raw in enumerate(raw_features):
        if not isinstance(raw, Mapping):
            LOGGER.warning("Skipping feature %d: expected an object, got %s", position, type(raw).__name__)
            continue
        try:
            features.append(Feature.from_geojson(raw))
        except (GeoJSONError, ShapelyError, ValueError, TypeError, KeyError, IndexError, AttributeError) as exc:
            LOGGER.warning("Error occurred parsing feature %d, continuing: %s", position, exc)
    return features


def parse_feature_collection(data: str | bytes) -> FeatureCollection:
    """Decode a FeatureCollection document, keeping only the valid features."""
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as exc:
        raise GeoJSONError(f"Invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise GeoJSONError("GeoJSON document must be an object")
    raw_features = payload.get("features") or []
    if not isinstance(raw_features, list):
        raise GeoJSONError("'features' must be an array")
    features = parse_features(raw_features)
    dropped = len(raw_features) - len(features)
    if dropped:
        LOGGER.warning("Dropped %d of %d features while parsing", dropped, len(raw_features))
    return features


def load_feature_collection(filename: str) -> FeatureCollection:
    """Load a FeatureCollection from *filename*, or from stdin when it is ``-``."""
    if not filename:
        raise ValueError("Filename must not be blank")
    if filename == STDIN_NAME:
        data = sys.stdin.read()
    else:
        data = Path(filename).read_text(encoding="utf-8")
    features = parse_feature_collection(data)
    LOGGER.info("Loaded %d features from %s", len(features), "stdin" if filename == STDIN_NAME else filename)
    return features
