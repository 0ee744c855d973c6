"""Feature storage for edges and tracks, plus the analyzer providers."""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Sequence

from contracts import Edge
from exceptions import UnknownAnalyzerError
from features.analyzers import Analyzer, AnalyzerProvider, AnalyzerTarget
from features.edge_analyzers import BUILTIN_EDGE_ANALYZERS
from features.track_analyzers import BUILTIN_TRACK_ANALYZERS
from log_config.logger import get_logger

logger = get_logger(__name__)


class FeatureModel:
    """Holds computed edge and track feature values.

    Spot features live on the Spot objects themselves. Edge features are
    keyed by Edge identity, track features by track ID.
    """

    def __init__(self) -> None:
        self.spot_analyzers = AnalyzerProvider(AnalyzerTarget.SPOT)
        self.edge_analyzers = AnalyzerProvider(AnalyzerTarget.EDGE)
        self.track_analyzers = AnalyzerProvider(AnalyzerTarget.TRACK)
        self._edge_values: Dict[Edge, Dict[str, float]] = {}
        self._track_values: Dict[int, Dict[str, float]] = {}

    # Edge features

    def put_edge_feature(self, edge: Edge, feature: str, value: float) -> None:
        self._edge_values.setdefault(edge, {})[feature] = float(value)

    def get_edge_feature(self, edge: Edge, feature: str) -> Optional[float]:
        return self._edge_values.get(edge, {}).get(feature)

    def edge_features(self, edge: Edge) -> Dict[str, float]:
        return dict(self._edge_values.get(edge, {}))

    def discard_edges(self, edges: Iterable[Edge]) -> None:
        for edge in edges:
            self._edge_values.pop(edge, None)

    # Track features

    def put_track_feature(self, track_id: int, feature: str, value: float) -> None:
        self._track_values.setdefault(track_id, {})[feature] = float(value)

    def get_track_feature(self, track_id: int, feature: str) -> Optional[float]:
        return self._track_values.get(track_id, {}).get(feature)

    def track_features(self, track_id: int) -> Dict[str, float]:
        return dict(self._track_values.get(track_id, {}))

    def discard_tracks(self, track_ids: Iterable[int]) -> None:
        for track_id in track_ids:
            self._track_values.pop(track_id, None)

    def clear_values(self) -> None:
        self._edge_values.clear()
        self._track_values.clear()

    def __repr__(self) -> str:
        return (
            f"FeatureModel(spot={self.spot_analyzers.available_keys()}, "
            f"edge={self.edge_analyzers.available_keys()}, "
            f"track={self.track_analyzers.available_keys()})"
        )


def build_feature_model(
    edge_keys: Sequence[str] = (),
    track_keys: Sequence[str] = (),
) -> FeatureModel:
    """Create a FeatureModel with the named built-in analyzers registered.

    Raises:
        UnknownAnalyzerError: If a key is not a built-in analyzer
    """
    model = FeatureModel()
    for key in edge_keys:
        model.edge_analyzers.register(_lookup(BUILTIN_EDGE_ANALYZERS, key, "edge"))
    for key in track_keys:
        model.track_analyzers.register(_lookup(BUILTIN_TRACK_ANALYZERS, key, "track"))
    logger.debug(f"Built {model!r}")
    return model


def _lookup(builtins: Dict[str, Analyzer], key: str, kind: str) -> Analyzer:
    if key not in builtins:
        raise UnknownAnalyzerError(f"Unknown built-in {kind} analyzer '{key}' (known: {sorted(builtins)})")
    return builtins[key]
