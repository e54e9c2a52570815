"""Allocation of aggregate values into point samples."""

from .spreader import InvalidMagnitudeError, Spreader, Weighting, check_aggregate_value, make_spreader

__all__ = ["InvalidMagnitudeError", "Spreader", "Weighting", "check_aggregate_value", "make_spreader"]
