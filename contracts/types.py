"""Core data contracts for spots, links and feature filters."""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

# Spot features
FRAME = "FRAME"
QUALITY = "QUALITY"
POSITION_X = "POSITION_X"
POSITION_Y = "POSITION_Y"
POSITION_Z = "POSITION_Z"
POSITION_T = "POSITION_T"
RADIUS = "RADIUS"

POSITION_FEATURES = (POSITION_X, POSITION_Y, POSITION_Z)

_spot_ids = itertools.count()
_edge_ids = itertools.count()


class Spot:
    """A detected point object living in one frame.

    Identity is object identity: two spots with identical features are
    still two different spots. The integer ``id`` is a handle used to key
    the spot in the track graph.
    """

    __slots__ = ("id", "name", "features")

    def __init__(
        self,
        x: float = 0.0,
        y: float = 0.0,
        z: float = 0.0,
        radius: float = 1.0,
        quality: float = -1.0,
        name: Optional[str] = None,
        features: Optional[Dict[str, float]] = None,
    ) -> None:
        self.id: int = next(_spot_ids)
        self.name = name if name is not None else f"ID{self.id}"
        self.features: Dict[str, float] = {
            POSITION_X: float(x),
            POSITION_Y: float(y),
            POSITION_Z: float(z),
            RADIUS: float(radius),
            QUALITY: float(quality),
        }
        if features:
            for key, value in features.items():
                self.features[key] = float(value)

    @property
    def frame(self) -> Optional[int]:
        value = self.features.get(FRAME)
        return None if value is None else int(value)

    def get_feature(self, feature: str) -> Optional[float]:
        return self.features.get(feature)

    def put_feature(self, feature: str, value: float) -> None:
        self.features[feature] = float(value)

    def position(self) -> tuple:
        return tuple(self.features.get(f, 0.0) for f in POSITION_FEATURES)

    def __repr__(self) -> str:
        return f"Spot({self.name}, frame={self.frame})"


class Edge:
    """A directed link between two spots.

    Weight and owning track are held by the graph; the edge itself only
    knows its endpoints.
    """

    __slots__ = ("id", "source", "target")

    def __init__(self, source: Spot, target: Spot) -> None:
        self.id: int = next(_edge_ids)
        self.source = source
        self.target = target

    def __repr__(self) -> str:
        return f"Edge({self.source.name} -> {self.target.name})"


@dataclass(frozen=True)
class FeatureFilter:
    """Threshold predicate on a single feature value."""

    feature: str
    value: float
    is_above: bool = True

    def accepts(self, spot: Spot) -> bool:
        value = spot.get_feature(self.feature)
        if value is None or math.isnan(value):
            return False
        if self.is_above:
            return value >= self.value
        return value <= self.value


def accepts_all(filters: Iterable[FeatureFilter], spot: Spot) -> bool:
    """Return True when spot passes every filter."""
    return all(f.accepts(spot) for f in filters)
