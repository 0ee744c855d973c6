"""The track model: spots, their links and tracks, edited in transactions.

All edits go through the model. Between ``begin_update()`` and the
matching ``end_update()`` the model only records what changed; when the
outermost transaction closes it regroups tracks, recomputes features
(edges before tracks) and sends one consolidated ModelChangeEvent to every
listener. Nested transactions collapse into that single flush.

Edits made outside a transaction are wrapped in an implicit one, so each
such call flushes on its own.

The model is not thread-safe. Callers serialize access to an instance for
the whole begin/end sequence.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import Collection, Dict, Iterable, Iterator, List, Optional, Set, Union

from app.events.error_bus import ErrorCategory, ErrorEventBus, ErrorSeverity, publish_error
from app.events.event_types import (
    EdgeFlag,
    EventKind,
    ListenerLike,
    ModelChangeEvent,
    ModelChangeEventBuilder,
    SpotFlag,
    notify,
)
from configs.settings import AnalyzerFailurePolicy, AppConfig, GlobalTrackInput, ModelConfig
from contracts import Edge, FeatureFilter, Spot
from exceptions import AnalyzerError, UnbalancedTransactionError
from features.analyzers import Analyzer, AnalyzerProvider
from features.feature_model import FeatureModel, build_feature_model
from log_config.logger import get_logger
from track.graph_model import TrackGraphModel
from track.spot_collection import SpotCollection

logger = get_logger(__name__)


def _transactional(method):
    """Run a model edit inside its own begin/end pair."""

    @functools.wraps(method)
    def wrapper(self: "TrackModel", *args, **kwargs):
        self.begin_update()
        try:
            return method(self, *args, **kwargs)
        finally:
            self.end_update()

    return wrapper


class _PendingChanges:
    """Spot-level dirty sets for the open transaction."""

    __slots__ = ("added", "removed", "moved", "updated")

    def __init__(self) -> None:
        self.added: Set[Spot] = set()
        self.removed: Set[Spot] = set()
        self.moved: Set[Spot] = set()
        self.updated: Set[Spot] = set()

    def __bool__(self) -> bool:
        return bool(self.added or self.removed or self.moved or self.updated)


class TrackModel:
    """Transactional store of spots, links and tracks.

    Attributes:
        spots: The spot collection
        graph: The track graph (vertices are the spots of ``spots``)
        feature_model: Analyzer registry and computed edge/track features
    """

    def __init__(
        self,
        feature_model: Optional[FeatureModel] = None,
        config: Optional[ModelConfig] = None,
        error_bus: Optional[ErrorEventBus] = None,
    ) -> None:
        self.config = config or ModelConfig()
        self.feature_model = feature_model if feature_model is not None else FeatureModel()
        self.spots = SpotCollection()
        self.graph = TrackGraphModel()

        self.global_track_input = self.config.global_track_input
        self.analyzer_failure_policy = self.config.analyzer_failure_policy
        self._space_units = self.config.space_units
        self._time_units = self.config.time_units
        self._error_bus = error_bus

        # Transaction state
        self._update_level = 0
        self._pending = _PendingChanges()
        # Payload-free events queued until the transaction closes
        self._event_cache: Dict[EventKind, None] = {}

        self._listeners: List[ListenerLike] = []

    @classmethod
    def from_config(cls, config: AppConfig, error_bus: Optional[ErrorEventBus] = None) -> "TrackModel":
        """Build a model with the analyzers and policies named in config."""
        feature_model = build_feature_model(
            edge_keys=config.features.edge_analyzers,
            track_keys=config.features.track_analyzers,
        )
        return cls(feature_model=feature_model, config=config.model, error_bus=error_bus)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_model_change_listener(self, listener: ListenerLike) -> None:
        self._listeners.append(listener)

    def remove_model_change_listener(self, listener: ListenerLike) -> bool:
        try:
            self._listeners.remove(listener)
            return True
        except ValueError:
            return False

    @property
    def model_change_listeners(self) -> List[ListenerLike]:
        return list(self._listeners)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @property
    def update_level(self) -> int:
        return self._update_level

    def begin_update(self) -> None:
        self._update_level += 1
        logger.trace(f"begin_update: update level is now {self._update_level}")

    def end_update(self) -> None:
        """Close one transaction level; flush when the outermost one closes.

        Raises:
            UnbalancedTransactionError: If no transaction is open
            AnalyzerError: If an analyzer failed during the flush and the
                failure policy is RAISE
        """
        if self._update_level <= 0:
            logger.error("end_update() called without a matching begin_update()")
            raise UnbalancedTransactionError(
                "end_update() called without a matching begin_update()",
                depth=self._update_level,
            )
        self._update_level -= 1
        logger.trace(f"end_update: update level is now {self._update_level}")
        if self._update_level == 0:
            self._flush_update()

    @contextmanager
    def transaction(self) -> Iterator["TrackModel"]:
        """Context manager wrapping begin_update()/end_update()."""
        self.begin_update()
        try:
            yield self
        finally:
            self.end_update()

    # ------------------------------------------------------------------
    # Spot edits
    # ------------------------------------------------------------------

    @_transactional
    def add_spot_to(self, spot: Spot, frame: int) -> Spot:
        """Add spot to frame and to the graph; its features get updated at flush."""
        self.spots.add(spot, frame)
        self._pending.added.add(spot)
        self.graph.add_vertex(spot)
        logger.debug(f"Adding {spot} to frame {frame}")
        return spot

    @_transactional
    def remove_spot(self, spot: Spot) -> Optional[Spot]:
        """Remove spot from the frame given by its FRAME feature.

        Incident edges are removed with it.

        Returns:
            The spot, or None if it is not in that frame (nothing changes)
        """
        frame = spot.frame
        if frame is None or not self.spots.remove(spot, frame):
            logger.debug(f"{spot} cannot be found in frame {frame}")
            return None
        self._pending.removed.add(spot)
        self.graph.remove_vertex(spot)
        logger.debug(f"Removing {spot} from frame {frame}")
        return spot

    @_transactional
    def move_spot_from(self, spot: Spot, from_frame: int, to_frame: int) -> Optional[Spot]:
        """Move spot between frames and flag its edges as modified.

        Returns:
            The spot, or None if it is not in from_frame (nothing changes)
        """
        if not self.spots.remove(spot, from_frame):
            logger.debug(f"Could not find {spot} in frame {from_frame}")
            return None
        self.spots.add(spot, to_frame)
        self.graph.mark_modified(spot)
        self._pending.moved.add(spot)
        logger.debug(f"Moving {spot} from frame {from_frame} to frame {to_frame}")
        return spot

    @_transactional
    def update_features(self, spot: Spot) -> None:
        """Mark spot for feature update, along with the edges touching it."""
        self._pending.updated.add(spot)
        self.graph.mark_modified(spot)

    mark_updated = update_features

    # ------------------------------------------------------------------
    # Edge edits
    # ------------------------------------------------------------------

    @_transactional
    def add_edge(self, source: Spot, target: Spot, weight: float = 1.0) -> Edge:
        """Link two spots already in the model.

        Raises:
            SpotNotInGraphError: If either spot is not in the model
            InvalidEdgeError: If source is target
        """
        return self.graph.add_edge(source, target, weight)

    @_transactional
    def remove_edge(
        self, source_or_edge: Union[Spot, Edge], target: Optional[Spot] = None
    ) -> Union[Optional[Edge], bool]:
        """Remove a link, by edge or by endpoints.

        Returns:
            For an edge argument, whether it was removed; for two spots,
            the removed edge or None
        """
        return self.graph.remove_edge(source_or_edge, target)

    def set_edge_weight(self, edge: Edge, weight: float) -> bool:
        """Change an edge weight. This is not a structural change and does not flush."""
        return self.graph.set_edge_weight(edge, weight)

    def get_edge_weight(self, edge: Edge) -> Optional[float]:
        return self.graph.get_edge_weight(edge)

    # ------------------------------------------------------------------
    # Bulk operations (fire cached events)
    # ------------------------------------------------------------------

    @_transactional
    def set_spots(self, spots: SpotCollection, do_notify: bool = True) -> None:
        """Replace the whole spot collection.

        The graph is rebuilt with every spot as an isolated vertex, computed
        edge and track features are dropped, and spots below the configured
        initial quality threshold are cropped.
        """
        if self._pending or self.graph.has_edge_changes:
            logger.warning("Replacing the spot collection discards pending edits of the open transaction")
        self._pending = _PendingChanges()

        threshold = self.config.initial_quality_threshold
        if threshold is not None:
            spots.crop(threshold)

        self.spots = spots
        self.graph = TrackGraphModel()
        for spot in spots:
            self.graph.add_vertex(spot)
        self.feature_model.clear_values()
        logger.info(f"Spot collection set: {spots.count_total(False)} spots in {len(spots.frames())} frames")
        if do_notify:
            self._event_cache[EventKind.SPOTS_COMPUTED] = None

    @_transactional
    def filter_spots(self, filters: Iterable[FeatureFilter], do_notify: bool = True) -> None:
        self.spots.filter(filters)
        if do_notify:
            self._event_cache[EventKind.SPOTS_FILTERED] = None

    @_transactional
    def compute_tracks(self, do_notify: bool = True) -> None:
        """Regroup tracks and recompute every edge and track feature."""
        before = self.graph.track_ids()
        self.graph.compute_tracks_from_graph()
        self.feature_model.discard_tracks(before - self.graph.track_ids())
        self.compute_all_features()
        if do_notify:
            self._event_cache[EventKind.TRACKS_COMPUTED] = None

    def compute_all_features(self) -> None:
        """Run every registered analyzer over the whole model."""
        spots = set(self.spots)
        edges = self.graph.edge_set()
        track_ids = self.graph.track_ids()
        for analyzer in self._analyzers(self.feature_model.spot_analyzers):
            self._run_analyzer(analyzer, spots)
        for analyzer in self._analyzers(self.feature_model.edge_analyzers):
            self._run_analyzer(analyzer, edges)
        for analyzer in self._analyzers(self.feature_model.track_analyzers):
            self._run_analyzer(analyzer, track_ids)

    @_transactional
    def set_track_visible(self, track_id: int, visible: bool, do_notify: bool = True) -> bool:
        """Show or hide a track.

        Returns:
            True if the visibility changed

        Raises:
            UnknownTrackError: If the track does not exist
        """
        changed = self.graph.set_track_visible(track_id, visible)
        if changed and do_notify:
            self._event_cache[EventKind.TRACKS_VISIBILITY_CHANGED] = None
        return changed

    @_transactional
    def set_filtered_track_ids(self, track_ids: Iterable[int], do_notify: bool = True) -> None:
        self.graph.set_filtered_track_ids(track_ids)
        if do_notify:
            self._event_cache[EventKind.TRACKS_VISIBILITY_CHANGED] = None

    # ------------------------------------------------------------------
    # Units and summary
    # ------------------------------------------------------------------

    def set_physical_units(self, space_units: str, time_units: str) -> None:
        self._space_units = space_units
        self._time_units = time_units

    @property
    def space_units(self) -> str:
        return self._space_units

    @property
    def time_units(self) -> str:
        return self._time_units

    def summary(self) -> str:
        lines = []
        n_spots = self.spots.count_total(False)
        n_filtered = self.spots.count_total(True)
        n_tracks = self.graph.n_tracks(False)
        n_visible = self.graph.n_tracks(True)
        lines.append(f"Contains {n_spots} spots in total." if n_spots else "No spots.")
        lines.append(f"Contains {n_filtered} filtered spots." if n_filtered else "No filtered spots.")
        lines.append(f"Contains {n_tracks} tracks in total." if n_tracks else "No tracks.")
        lines.append(f"Contains {n_visible} filtered tracks." if n_visible else "No filtered tracks.")
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.summary()

    # ------------------------------------------------------------------
    # Flush
    # ------------------------------------------------------------------

    def _flush_update(self) -> None:
        """Regroup tracks, update features and notify listeners.

        The pending edits are detached before anything else runs, so a
        failure here (or a listener opening its own transaction) never sees
        stale entries from this one.
        """
        graph = self.graph
        pending, self._pending = self._pending, _PendingChanges()
        edges_added = set(graph.edges_added)
        edges_removed = set(graph.edges_removed)
        edges_modified = set(graph.edges_modified)
        event_cache = list(self._event_cache)
        graph.clear_changes()
        self._event_cache.clear()

        logger.debug(
            f"Flushing: spots +{len(pending.added)} -{len(pending.removed)} "
            f"~{len(pending.moved)} *{len(pending.updated)}, edges +{len(edges_added)} "
            f"-{len(edges_removed)} *{len(edges_modified)}, cached events {[k.value for k in event_cache]}"
        )

        old_track_ids = graph.track_ids()

        # Lone new spots do not make tracks, so only edge changes regroup
        tracks_recomputed = bool(edges_added or edges_removed or edges_modified)
        if tracks_recomputed:
            graph.compute_tracks_from_graph()
        current_track_ids = graph.track_ids()

        tracks_to_update = current_track_ids - old_track_ids
        for edge in edges_modified | edges_added:
            track_id = graph.track_id_of(edge)
            if track_id is not None:
                tracks_to_update.add(track_id)
        # Surviving tracks that lost an edge
        cut_track_ids: Set[int] = set()
        for edge in edges_removed:
            for spot in (edge.source, edge.target):
                track_id = graph.track_id_of_spot(spot)
                if track_id is not None:
                    cut_track_ids.add(track_id)
        tracks_to_update |= cut_track_ids

        self.feature_model.discard_edges(edges_removed)
        self.feature_model.discard_tracks(old_track_ids - current_track_ids)

        spots_to_update = {
            s for s in pending.added | pending.moved | pending.updated if s in self.spots
        }

        builder = ModelChangeEventBuilder(self)
        builder.flag_spots(pending.added, SpotFlag.ADDED)
        builder.flag_spots(pending.removed, SpotFlag.REMOVED)
        builder.flag_spots(pending.moved, SpotFlag.FRAME_CHANGED)
        builder.flag_spots(pending.updated, SpotFlag.MODIFIED)
        builder.flag_edges(edges_added, EdgeFlag.ADDED)
        builder.flag_edges(edges_removed, EdgeFlag.REMOVED)
        builder.flag_edges(edges_modified, EdgeFlag.MODIFIED)
        builder.tracks_updated(tracks_to_update)
        event = builder.build()

        # Features: spots, then edges, then tracks
        if spots_to_update:
            self._update_spot_features(spots_to_update)
        edges_to_update = {e for e in edges_added | edges_modified if graph.contains_edge(e)}
        if edges_to_update or cut_track_ids:
            self._update_edge_features(edges_to_update, cut_track_ids)
        if tracks_recomputed:
            self._update_track_features(tracks_to_update)

        if not builder.is_empty:
            logger.debug(f"Firing {event}")
            self._fire(event)

        for kind in event_cache:
            logger.debug(f"Firing cached event {kind.value}")
            self._fire(ModelChangeEvent(source=self, kind=kind))

    def _update_spot_features(self, spots: Set[Spot]) -> None:
        global_input: Optional[Set[Spot]] = None
        for analyzer in self._analyzers(self.feature_model.spot_analyzers):
            if analyzer.is_local:
                self._run_analyzer(analyzer, spots)
                continue
            if global_input is None:
                global_input = set(spots)
                for spot in spots:
                    track_id = self.graph.track_id_of_spot(spot)
                    if track_id is not None:
                        global_input.update(self.graph.track_spots(track_id))
            self._run_analyzer(analyzer, global_input)

    def _update_edge_features(self, edges: Set[Edge], cut_track_ids: Iterable[int] = ()) -> None:
        """Run edge analyzers.

        LOCAL analyzers see only edges. GLOBAL analyzers see every edge of
        the tracks owning edges plus every edge of cut_track_ids, the
        surviving tracks that lost an edge in this flush.
        """
        global_input: Optional[Set[Edge]] = None
        for analyzer in self._analyzers(self.feature_model.edge_analyzers):
            if analyzer.is_local:
                if edges:
                    self._run_analyzer(analyzer, edges)
                continue
            # Whole owning tracks, computed once
            if global_input is None:
                global_input = set()
                track_ids = {self.graph.track_id_of(e) for e in edges} | set(cut_track_ids)
                for track_id in track_ids:
                    if track_id is not None:
                        global_input.update(self.graph.track_edges(track_id))
            self._run_analyzer(analyzer, global_input)

    def _update_track_features(self, tracks_to_update: Set[int]) -> None:
        for analyzer in self._analyzers(self.feature_model.track_analyzers):
            if analyzer.is_local:
                if tracks_to_update:
                    self._run_analyzer(analyzer, tracks_to_update)
            elif self.global_track_input is GlobalTrackInput.FILTERED:
                self._run_analyzer(analyzer, self.graph.filtered_track_ids())
            elif tracks_to_update:
                self._run_analyzer(analyzer, tracks_to_update)

    @staticmethod
    def _analyzers(provider: AnalyzerProvider) -> List[Analyzer]:
        return [provider.get(key) for key in provider.available_keys()]

    def _run_analyzer(self, analyzer: Analyzer, elements: Collection) -> None:
        try:
            analyzer(elements, self)
        except Exception as e:
            logger.exception(f"{analyzer.target.value} analyzer '{analyzer.key}' failed: {e}")
            publish_error(
                category=ErrorCategory.FEATURES,
                severity=ErrorSeverity.ERROR,
                message=f"Analyzer '{analyzer.key}' failed on {len(elements)} element(s)",
                source=type(self).__name__,
                exception=e,
                bus=self._error_bus,
                analyzer=analyzer.key,
            )
            if self.analyzer_failure_policy is AnalyzerFailurePolicy.RAISE:
                raise AnalyzerError(f"Analyzer '{analyzer.key}' failed: {e}", analyzer_key=analyzer.key) from e

    def _fire(self, event: ModelChangeEvent) -> None:
        """Deliver event to every listener, in registration order.

        A failing listener is reported and does not stop the others.
        """
        for listener in list(self._listeners):
            try:
                notify(listener, event)
            except Exception as e:
                listener_name = getattr(listener, "__name__", repr(listener))
                logger.exception(f"Model change listener {listener_name} failed on {event}: {e}")
                publish_error(
                    category=ErrorCategory.LISTENER,
                    severity=ErrorSeverity.WARNING,
                    message=f"Listener failed on {event.kind.value}",
                    source=type(self).__name__,
                    exception=e,
                    bus=self._error_bus,
                )
