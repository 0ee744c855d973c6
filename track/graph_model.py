"""Track graph: spots linked by weighted directed edges, grouped into tracks.

Tracks are the connected components of the graph with edge direction
ignored. Vertices and edges are keyed in a networkx MultiDiGraph by their
integer handles; the Spot and Edge objects are looked up through side
tables so graph elements never reference each other.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Union

import networkx as nx

from contracts import Edge, Spot
from exceptions import InvalidEdgeError, SpotNotInGraphError, UnknownTrackError
from log_config.logger import get_logger

logger = get_logger(__name__)


class TrackGraphModel:
    """Graph store with per-flush edge deltas and track bookkeeping.

    Edge mutations are recorded in ``edges_added``, ``edges_removed`` and
    ``edges_modified``. The owning model reads and clears these sets when a
    transaction closes.
    """

    def __init__(self) -> None:
        self._graph = nx.MultiDiGraph()
        self._spots: Dict[int, Spot] = {}
        self._edges: Dict[int, Edge] = {}

        # Edge deltas since last flush
        self.edges_added: Set[Edge] = set()
        self.edges_removed: Set[Edge] = set()
        self.edges_modified: Set[Edge] = set()

        # Track bookkeeping, rebuilt by compute_tracks_from_graph()
        self._track_spots: Dict[int, FrozenSet[int]] = {}
        self._track_edges: Dict[int, FrozenSet[int]] = {}
        self._track_of_spot: Dict[int, int] = {}
        self._track_of_edge: Dict[int, int] = {}
        self._visible: Set[int] = set()
        self._next_track_id = 0

    # ------------------------------------------------------------------
    # Vertices
    # ------------------------------------------------------------------

    def add_vertex(self, spot: Spot) -> None:
        if spot.id in self._spots:
            return
        self._spots[spot.id] = spot
        self._graph.add_node(spot.id)

    def remove_vertex(self, spot: Spot) -> bool:
        """Remove a spot and all its incident edges.

        Every incident edge is recorded as removed before the vertex goes.

        Returns:
            False if the spot is not a vertex of the graph
        """
        if self._spots.get(spot.id) is not spot:
            return False
        for edge in self.edges_of(spot):
            self._remove_edge(edge)
        self._graph.remove_node(spot.id)
        del self._spots[spot.id]
        return True

    def contains_vertex(self, spot: Spot) -> bool:
        return self._spots.get(spot.id) is spot

    def vertex_count(self) -> int:
        return self._graph.number_of_nodes()

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def add_edge(self, source: Spot, target: Spot, weight: float = 1.0) -> Edge:
        """Link source to target and record the edge as added.

        Raises:
            SpotNotInGraphError: If either endpoint is not a vertex
            InvalidEdgeError: If source and target are the same spot
        """
        for spot in (source, target):
            if not self.contains_vertex(spot):
                raise SpotNotInGraphError(f"{spot} is not a vertex of the track graph", spot_id=spot.id)
        if source is target:
            raise InvalidEdgeError(f"Cannot link {source} to itself")

        edge = Edge(source, target)
        self._edges[edge.id] = edge
        self._graph.add_edge(source.id, target.id, key=edge.id, weight=float(weight))
        self.edges_added.add(edge)
        return edge

    def remove_edge(
        self, source_or_edge: Union[Spot, Edge], target: Optional[Spot] = None
    ) -> Union[Optional[Edge], bool]:
        """Remove an edge given either the edge or its two endpoints.

        ``remove_edge(edge)`` returns a bool; ``remove_edge(source, target)``
        returns the removed Edge or None. Absence is never an error.
        """
        if isinstance(source_or_edge, Edge):
            return self.remove_edge_object(source_or_edge)
        if target is None:
            raise TypeError("remove_edge(source, target) requires a target spot")
        return self.remove_edge_between(source_or_edge, target)

    def remove_edge_between(self, source: Spot, target: Spot) -> Optional[Edge]:
        edge = self.get_edge(source, target)
        if edge is None:
            return None
        self._remove_edge(edge)
        return edge

    def remove_edge_object(self, edge: Edge) -> bool:
        if not self.contains_edge(edge):
            return False
        self._remove_edge(edge)
        return True

    def _remove_edge(self, edge: Edge) -> None:
        self._graph.remove_edge(edge.source.id, edge.target.id, key=edge.id)
        del self._edges[edge.id]
        self.edges_removed.add(edge)

    def get_edge(self, source: Spot, target: Spot) -> Optional[Edge]:
        """Return the oldest edge from source to target, if any."""
        if not (self.contains_vertex(source) and self.contains_vertex(target)):
            return None
        keys = self._graph.get_edge_data(source.id, target.id)
        if not keys:
            return None
        return self._edges[min(keys)]

    def contains_edge(self, edge: Edge) -> bool:
        return self._edges.get(edge.id) is edge

    def edge_source(self, edge: Edge) -> Optional[Spot]:
        return edge.source if self.contains_edge(edge) else None

    def edge_target(self, edge: Edge) -> Optional[Spot]:
        return edge.target if self.contains_edge(edge) else None

    def set_edge_weight(self, edge: Edge, weight: float) -> bool:
        """Update an edge weight. Does not mark the edge as modified.

        Returns:
            False if the edge is not in the graph
        """
        if not self.contains_edge(edge):
            return False
        self._graph[edge.source.id][edge.target.id][edge.id]["weight"] = float(weight)
        return True

    def get_edge_weight(self, edge: Edge) -> Optional[float]:
        if not self.contains_edge(edge):
            return None
        return self._graph[edge.source.id][edge.target.id][edge.id]["weight"]

    def edges_of(self, spot: Spot) -> Set[Edge]:
        """All edges touching spot, in either direction."""
        if not self.contains_vertex(spot):
            return set()
        keys = [k for _, _, k in self._graph.out_edges(spot.id, keys=True)]
        keys.extend(k for _, _, k in self._graph.in_edges(spot.id, keys=True))
        return {self._edges[k] for k in keys}

    def mark_modified(self, spot: Spot) -> Set[Edge]:
        """Flag every edge touching spot as modified and return them."""
        edges = self.edges_of(spot)
        self.edges_modified.update(edges)
        return edges

    def edge_set(self) -> Set[Edge]:
        return set(self._edges.values())

    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    @property
    def has_edge_changes(self) -> bool:
        return bool(self.edges_added or self.edges_removed or self.edges_modified)

    def clear_changes(self) -> None:
        self.edges_added.clear()
        self.edges_removed.clear()
        self.edges_modified.clear()

    # ------------------------------------------------------------------
    # Tracks
    # ------------------------------------------------------------------

    def compute_tracks_from_graph(self) -> Set[int]:
        """Regroup the graph into tracks.

        A component whose vertex set matches a previous track keeps that
        track's ID; any other component gets a fresh ID. Lone vertices do
        not form tracks.

        Returns:
            The IDs that did not exist before this call
        """
        previous_ids = {spots: tid for tid, spots in self._track_spots.items()}
        previous_track_of_spot = self._track_of_spot
        previous_visible = self._visible

        track_spots: Dict[int, FrozenSet[int]] = {}
        track_of_spot: Dict[int, int] = {}
        visible: Set[int] = set()
        new_ids: Set[int] = set()

        for component in nx.weakly_connected_components(self._graph):
            if len(component) < 2:
                continue
            members = frozenset(component)
            track_id = previous_ids.get(members)
            if track_id is None:
                track_id = self._next_track_id
                self._next_track_id += 1
                new_ids.add(track_id)
                ancestors = {
                    previous_track_of_spot[s] for s in members if s in previous_track_of_spot
                }
                # Fresh tracks are visible unless all the tracks they grew from were hidden
                if not ancestors or ancestors & previous_visible:
                    visible.add(track_id)
            elif track_id in previous_visible:
                visible.add(track_id)

            track_spots[track_id] = members
            for spot_id in members:
                track_of_spot[spot_id] = track_id

        track_edge_lists: Dict[int, List[int]] = {tid: [] for tid in track_spots}
        track_of_edge: Dict[int, int] = {}
        for source_id, _, key in self._graph.edges(keys=True):
            track_id = track_of_spot[source_id]
            track_of_edge[key] = track_id
            track_edge_lists[track_id].append(key)

        vanished = set(self._track_spots) - set(track_spots)
        self._track_spots = track_spots
        self._track_edges = {tid: frozenset(keys) for tid, keys in track_edge_lists.items()}
        self._track_of_spot = track_of_spot
        self._track_of_edge = track_of_edge
        self._visible = visible

        logger.debug(
            f"Computed {len(track_spots)} tracks from graph "
            f"({len(new_ids)} new, {len(vanished)} vanished)"
        )
        return new_ids

    def track_ids(self) -> Set[int]:
        return set(self._track_spots)

    def filtered_track_ids(self) -> Set[int]:
        """IDs of the tracks currently flagged visible."""
        return set(self._visible)

    def n_tracks(self, filtered_only: bool = False) -> int:
        if filtered_only:
            return len(self._visible)
        return len(self._track_spots)

    def track_id_of(self, edge: Edge) -> Optional[int]:
        """Track owning edge, as of the last track computation."""
        if not self.contains_edge(edge):
            return None
        return self._track_of_edge.get(edge.id)

    def track_id_of_spot(self, spot: Spot) -> Optional[int]:
        if not self.contains_vertex(spot):
            return None
        return self._track_of_spot.get(spot.id)

    def track_edges(self, track_id: int) -> Set[Edge]:
        self._check_track(track_id)
        return {self._edges[k] for k in self._track_edges[track_id] if k in self._edges}

    def track_spots(self, track_id: int) -> Set[Spot]:
        self._check_track(track_id)
        return {self._spots[s] for s in self._track_spots[track_id] if s in self._spots}

    def is_track_visible(self, track_id: int) -> bool:
        self._check_track(track_id)
        return track_id in self._visible

    def set_track_visible(self, track_id: int, visible: bool) -> bool:
        """Show or hide one track.

        Returns:
            True if the visibility actually changed
        """
        self._check_track(track_id)
        was_visible = track_id in self._visible
        if visible:
            self._visible.add(track_id)
        else:
            self._visible.discard(track_id)
        return was_visible != visible

    def set_filtered_track_ids(self, track_ids: Iterable[int]) -> None:
        """Replace the whole visibility set."""
        track_ids = set(track_ids)
        for track_id in track_ids:
            self._check_track(track_id)
        self._visible = track_ids

    def _check_track(self, track_id: int) -> None:
        if track_id not in self._track_spots:
            raise UnknownTrackError(f"No track with ID {track_id}", track_id=track_id)

    def __repr__(self) -> str:
        return (
            f"TrackGraphModel(vertices={self.vertex_count()}, edges={self.edge_count()}, "
            f"tracks={len(self._track_spots)}, visible={len(self._visible)})"
        )
