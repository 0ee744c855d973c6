"""Spot storage, track graph and the transactional track model."""

from track.graph_model import TrackGraphModel
from track.model import TrackModel
from track.spot_collection import FilteredView, SpotCollection

__all__ = ["FilteredView", "SpotCollection", "TrackGraphModel", "TrackModel"]
