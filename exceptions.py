"""Custom exception classes for the track model."""

from __future__ import annotations

from typing import Optional


class TrackModelError(Exception):
    """Base exception for all track model errors."""

    pass


class TransactionError(TrackModelError):
    """Base exception for transaction protocol misuse."""

    pass


class UnbalancedTransactionError(TransactionError):
    """Raised when end_update() is called without a matching begin_update()."""

    def __init__(self, message: str, depth: int = 0):
        self.depth = depth
        super().__init__(message)


class GraphError(TrackModelError):
    """Base exception for track graph errors."""

    pass


class SpotNotInGraphError(GraphError):
    """Raised when an edge references a spot that is not a graph vertex."""

    def __init__(self, message: str, spot_id: Optional[int] = None):
        self.spot_id = spot_id
        super().__init__(message)


class InvalidEdgeError(GraphError):
    """Raised when an edge cannot be created (e.g. self-loop)."""

    pass


class UnknownTrackError(GraphError):
    """Raised when a track ID does not exist in the graph."""

    def __init__(self, message: str, track_id: Optional[int] = None):
        self.track_id = track_id
        super().__init__(message)


class FeatureError(TrackModelError):
    """Base exception for feature computation errors."""

    pass


class AnalyzerError(FeatureError):
    """Raised when a feature analyzer fails during a flush."""

    def __init__(self, message: str, analyzer_key: Optional[str] = None):
        self.analyzer_key = analyzer_key
        super().__init__(message)


class UnknownAnalyzerError(FeatureError):
    """Raised when an analyzer key is not registered."""

    pass


class ConfigError(TrackModelError):
    """Base exception for configuration errors."""

    pass


class InvalidConfigError(ConfigError):
    """Raised when configuration file is invalid or corrupted."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when configuration fails schema validation."""

    def __init__(self, message: str, validation_errors: Optional[list] = None):
        self.validation_errors = validation_errors or []
        super().__init__(message)
