"""Shared data contracts for the track model."""

from .types import (
    FRAME,
    POSITION_FEATURES,
    POSITION_T,
    POSITION_X,
    POSITION_Y,
    POSITION_Z,
    QUALITY,
    RADIUS,
    Edge,
    FeatureFilter,
    Spot,
    accepts_all,
)

__all__ = [
    "FRAME",
    "POSITION_FEATURES",
    "POSITION_T",
    "POSITION_X",
    "POSITION_Y",
    "POSITION_Z",
    "QUALITY",
    "RADIUS",
    "Edge",
    "FeatureFilter",
    "Spot",
    "accepts_all",
]
