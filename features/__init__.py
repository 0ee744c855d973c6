"""Feature analyzers and storage."""

from features.analyzers import (
    Analyzer,
    AnalyzerProvider,
    AnalyzerTarget,
    Locality,
    edge_analyzer,
    spot_analyzer,
    track_analyzer,
)
from features.feature_model import FeatureModel, build_feature_model

__all__ = [
    "Analyzer",
    "AnalyzerProvider",
    "AnalyzerTarget",
    "FeatureModel",
    "Locality",
    "build_feature_model",
    "edge_analyzer",
    "spot_analyzer",
    "track_analyzer",
]
