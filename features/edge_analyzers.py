"""Built-in edge feature analyzers."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Collection, Dict

import numpy as np

from contracts import Edge
from features.analyzers import Analyzer, Locality, edge_analyzer

if TYPE_CHECKING:
    from track.model import TrackModel

EDGE_LENGTH = "EDGE_LENGTH"
EDGE_TIME = "EDGE_TIME"
EDGE_DELTA_T = "EDGE_DELTA_T"
VELOCITY = "VELOCITY"
EDGE_LENGTH_FRACTION = "EDGE_LENGTH_FRACTION"


def _length(edge: Edge) -> float:
    source = np.asarray(edge.source.position(), dtype=float)
    target = np.asarray(edge.target.position(), dtype=float)
    return float(np.linalg.norm(target - source))


@edge_analyzer("edge_length", features=(EDGE_LENGTH,))
def edge_length(edges: Collection[Edge], model: "TrackModel") -> None:
    """Euclidean distance between the two linked spots."""
    for edge in edges:
        model.feature_model.put_edge_feature(edge, EDGE_LENGTH, _length(edge))


@edge_analyzer("edge_time", features=(EDGE_TIME, EDGE_DELTA_T))
def edge_time(edges: Collection[Edge], model: "TrackModel") -> None:
    """Mean frame of the link and its frame span."""
    features = model.feature_model
    for edge in edges:
        source_frame = edge.source.frame or 0
        target_frame = edge.target.frame or 0
        features.put_edge_feature(edge, EDGE_TIME, 0.5 * (source_frame + target_frame))
        features.put_edge_feature(edge, EDGE_DELTA_T, abs(target_frame - source_frame))


@edge_analyzer("edge_velocity", features=(VELOCITY,))
def edge_velocity(edges: Collection[Edge], model: "TrackModel") -> None:
    """Length over frame span; NaN for links within a single frame."""
    features = model.feature_model
    for edge in edges:
        length = features.get_edge_feature(edge, EDGE_LENGTH)
        if length is None:
            length = _length(edge)
        dt = abs((edge.target.frame or 0) - (edge.source.frame or 0))
        features.put_edge_feature(edge, VELOCITY, length / dt if dt else math.nan)


@edge_analyzer("edge_length_fraction", locality=Locality.GLOBAL, features=(EDGE_LENGTH_FRACTION,))
def edge_length_fraction(edges: Collection[Edge], model: "TrackModel") -> None:
    """Share of its track's total path length carried by each link.

    Needs every edge of the owning track, hence GLOBAL.
    """
    graph = model.graph
    features = model.feature_model
    by_track: Dict[int, list] = {}
    for edge in edges:
        by_track.setdefault(graph.track_id_of(edge), []).append(edge)

    for track_edges in by_track.values():
        lengths = np.array([_length(e) for e in track_edges], dtype=float)
        total = float(lengths.sum())
        for edge, length in zip(track_edges, lengths):
            features.put_edge_feature(edge, EDGE_LENGTH_FRACTION, length / total if total > 0 else math.nan)


BUILTIN_EDGE_ANALYZERS: Dict[str, Analyzer] = {
    a.key: a for a in (edge_length, edge_time, edge_velocity, edge_length_fraction)
}
