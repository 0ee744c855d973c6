"""Built-in track feature analyzers.

Track analyzers run after all edge analyzers of the same flush, so they
may read edge features such as EDGE_LENGTH.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Collection, Dict

import numpy as np

from features.analyzers import Analyzer, Locality, track_analyzer
from features.edge_analyzers import EDGE_LENGTH
from log_config.logger import get_logger

if TYPE_CHECKING:
    from track.model import TrackModel

logger = get_logger(__name__)

NUMBER_SPOTS = "NUMBER_SPOTS"
NUMBER_GAPS = "NUMBER_GAPS"
NUMBER_SPLITS = "NUMBER_SPLITS"
NUMBER_MERGES = "NUMBER_MERGES"
TRACK_START = "TRACK_START"
TRACK_STOP = "TRACK_STOP"
TRACK_DURATION = "TRACK_DURATION"
TRACK_DISPLACEMENT = "TRACK_DISPLACEMENT"
TOTAL_EDGE_LENGTH = "TOTAL_EDGE_LENGTH"
TRACK_LENGTH_RANK = "TRACK_LENGTH_RANK"


def _existing(track_ids: Collection[int], model: "TrackModel") -> list:
    known = model.graph.track_ids()
    return sorted(tid for tid in track_ids if tid in known)


@track_analyzer(
    "track_branching",
    features=(NUMBER_SPOTS, NUMBER_GAPS, NUMBER_SPLITS, NUMBER_MERGES),
)
def track_branching(track_ids: Collection[int], model: "TrackModel") -> None:
    """Spot count, gaps (links spanning more than one frame), splits and merges.

    Direction is read from frame order, not from edge direction.
    """
    graph = model.graph
    features = model.feature_model
    for track_id in _existing(track_ids, model):
        spots = graph.track_spots(track_id)
        n_gaps = 0
        successors: Dict[int, int] = {}
        predecessors: Dict[int, int] = {}
        for edge in graph.track_edges(track_id):
            early, late = edge.source, edge.target
            if (early.frame or 0) > (late.frame or 0):
                early, late = late, early
            if abs((late.frame or 0) - (early.frame or 0)) > 1:
                n_gaps += 1
            successors[early.id] = successors.get(early.id, 0) + 1
            predecessors[late.id] = predecessors.get(late.id, 0) + 1

        features.put_track_feature(track_id, NUMBER_SPOTS, len(spots))
        features.put_track_feature(track_id, NUMBER_GAPS, n_gaps)
        features.put_track_feature(track_id, NUMBER_SPLITS, sum(1 for n in successors.values() if n > 1))
        features.put_track_feature(track_id, NUMBER_MERGES, sum(1 for n in predecessors.values() if n > 1))


@track_analyzer(
    "track_duration",
    features=(TRACK_START, TRACK_STOP, TRACK_DURATION, TRACK_DISPLACEMENT),
)
def track_duration(track_ids: Collection[int], model: "TrackModel") -> None:
    """First and last frame, span, and straight-line displacement."""
    graph = model.graph
    features = model.feature_model
    for track_id in _existing(track_ids, model):
        spots = sorted(graph.track_spots(track_id), key=lambda s: ((s.frame or 0), s.id))
        first, last = spots[0], spots[-1]
        start, stop = first.frame or 0, last.frame or 0
        displacement = np.linalg.norm(
            np.asarray(last.position(), dtype=float) - np.asarray(first.position(), dtype=float)
        )
        features.put_track_feature(track_id, TRACK_START, start)
        features.put_track_feature(track_id, TRACK_STOP, stop)
        features.put_track_feature(track_id, TRACK_DURATION, stop - start)
        features.put_track_feature(track_id, TRACK_DISPLACEMENT, float(displacement))


@track_analyzer("track_total_length", features=(TOTAL_EDGE_LENGTH,))
def track_total_length(track_ids: Collection[int], model: "TrackModel") -> None:
    """Sum of the EDGE_LENGTH feature over the track's edges."""
    graph = model.graph
    features = model.feature_model
    for track_id in _existing(track_ids, model):
        lengths = [features.get_edge_feature(e, EDGE_LENGTH) for e in graph.track_edges(track_id)]
        if any(v is None for v in lengths):
            logger.debug(f"Track {track_id} has edges without {EDGE_LENGTH}; total set to NaN")
            total = math.nan
        else:
            total = float(np.sum(lengths))
        features.put_track_feature(track_id, TOTAL_EDGE_LENGTH, total)


@track_analyzer("track_length_rank", locality=Locality.GLOBAL, features=(TRACK_LENGTH_RANK,))
def track_length_rank(track_ids: Collection[int], model: "TrackModel") -> None:
    """1-based rank of each track by TOTAL_EDGE_LENGTH, longest first.

    Ranks only make sense over a whole population, hence GLOBAL.
    """
    features = model.feature_model
    ids = _existing(track_ids, model)
    if not ids:
        return
    totals = np.array(
        [features.get_track_feature(tid, TOTAL_EDGE_LENGTH) or 0.0 for tid in ids],
        dtype=float,
    )
    totals = np.nan_to_num(totals, nan=0.0)
    order = np.argsort(-totals, kind="stable")
    for rank, index in enumerate(order, start=1):
        features.put_track_feature(ids[index], TRACK_LENGTH_RANK, rank)


BUILTIN_TRACK_ANALYZERS: Dict[str, Analyzer] = {
    a.key: a for a in (track_branching, track_duration, track_total_length, track_length_rank)
}
