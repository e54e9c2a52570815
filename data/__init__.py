"""Data package exposing the feature model and GeoJSON loading."""

from .features import (
    Feature,
    FeatureCollection,
    GeoJSONError,
    PropertyCoercionError,
    PropertyValue,
    ValueKind,
    load_feature_collection,
    parse_feature_collection,
)

__all__ = [
    "Feature",
    "FeatureCollection",
    "GeoJSONError",
    "PropertyCoercionError",
    "PropertyValue",
    "ValueKind",
    "load_feature_collection",
    "parse_feature_collection",
]
