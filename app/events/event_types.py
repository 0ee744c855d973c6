"""Change events delivered to model listeners.

One MODEL_MODIFIED event is built per flush and describes every spot, edge
and track touched by the transaction. The other event kinds carry no
payload and are queued during a transaction, then fired after it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, Flag, auto
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Protocol, Union, runtime_checkable

from contracts import Edge, Spot


class EventKind(Enum):
    """Kinds of model change events."""

    MODEL_MODIFIED = "model_modified"
    SPOTS_COMPUTED = "spots_computed"
    SPOTS_FILTERED = "spots_filtered"
    TRACKS_COMPUTED = "tracks_computed"
    TRACKS_VISIBILITY_CHANGED = "tracks_visibility_changed"


class SpotFlag(Flag):
    """What happened to a spot during the transaction. Flags combine."""

    NONE = 0
    ADDED = auto()
    REMOVED = auto()
    FRAME_CHANGED = auto()
    MODIFIED = auto()


class EdgeFlag(Flag):
    """What happened to an edge during the transaction. Flags combine."""

    NONE = 0
    ADDED = auto()
    REMOVED = auto()
    MODIFIED = auto()


_EMPTY: Mapping[Any, Any] = MappingProxyType({})


@dataclass(frozen=True)
class ModelChangeEvent:
    """Consolidated description of one flush, or a payload-free cached event.

    Attributes:
        source: The model that fired the event
        kind: Event kind
        spot_flags: Affected spots and what happened to each
        edge_flags: Affected edges and what happened to each
        tracks_updated: Track IDs views should refresh
    """

    source: Any
    kind: EventKind = EventKind.MODEL_MODIFIED
    spot_flags: Mapping[Spot, SpotFlag] = field(default_factory=lambda: _EMPTY)
    edge_flags: Mapping[Edge, EdgeFlag] = field(default_factory=lambda: _EMPTY)
    tracks_updated: FrozenSet[int] = frozenset()

    @property
    def spots(self) -> FrozenSet[Spot]:
        return frozenset(self.spot_flags)

    @property
    def edges(self) -> FrozenSet[Edge]:
        return frozenset(self.edge_flags)

    def spot_flag(self, spot: Spot) -> SpotFlag:
        return self.spot_flags.get(spot, SpotFlag.NONE)

    def edge_flag(self, edge: Edge) -> EdgeFlag:
        return self.edge_flags.get(edge, EdgeFlag.NONE)

    def __str__(self) -> str:
        if self.kind is not EventKind.MODEL_MODIFIED:
            return f"ModelChangeEvent[{self.kind.value}]"
        return (
            f"ModelChangeEvent[{self.kind.value}] spots={len(self.spot_flags)} "
            f"edges={len(self.edge_flags)} tracks={sorted(self.tracks_updated)}"
        )


class ModelChangeEventBuilder:
    """Accumulates flags during a flush, then freezes them into an event."""

    def __init__(self, source: Any) -> None:
        self._source = source
        self._spot_flags: Dict[Spot, SpotFlag] = {}
        self._edge_flags: Dict[Edge, EdgeFlag] = {}
        self._tracks: FrozenSet[int] = frozenset()

    def flag_spots(self, spots: Iterable[Spot], flag: SpotFlag) -> "ModelChangeEventBuilder":
        for spot in spots:
            self._spot_flags[spot] = self._spot_flags.get(spot, SpotFlag.NONE) | flag
        return self

    def flag_edges(self, edges: Iterable[Edge], flag: EdgeFlag) -> "ModelChangeEventBuilder":
        for edge in edges:
            self._edge_flags[edge] = self._edge_flags.get(edge, EdgeFlag.NONE) | flag
        return self

    def tracks_updated(self, track_ids: Iterable[int]) -> "ModelChangeEventBuilder":
        self._tracks = frozenset(track_ids)
        return self

    @property
    def is_empty(self) -> bool:
        return not (self._spot_flags or self._edge_flags)

    def build(self) -> ModelChangeEvent:
        return ModelChangeEvent(
            source=self._source,
            kind=EventKind.MODEL_MODIFIED,
            spot_flags=MappingProxyType(dict(self._spot_flags)),
            edge_flags=MappingProxyType(dict(self._edge_flags)),
            tracks_updated=self._tracks,
        )


@runtime_checkable
class ModelChangeListener(Protocol):
    """Anything with a model_changed(event) method."""

    def model_changed(self, event: ModelChangeEvent) -> None:
        ...


ListenerLike = Union[ModelChangeListener, Callable[[ModelChangeEvent], None]]


def notify(listener: ListenerLike, event: ModelChangeEvent) -> None:
    """Deliver event to a listener object or a bare callable.

    Objects are recognized by a model_changed method on their class, not by
    isinstance against ModelChangeListener: a runtime protocol check passes
    for any Mock, which would hide a Mock registered as a plain callable.
    """
    if callable(getattr(type(listener), "model_changed", None)):
        listener.model_changed(event)
    else:
        listener(event)
