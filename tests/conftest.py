"""Shared fixtures for track model tests."""

from typing import List

import pytest

from app.events import ErrorEventBus, EventKind, ModelChangeEvent
from contracts import Spot
from features import build_feature_model
from track import TrackModel


class RecordingListener:
    """Listener that keeps every event it receives."""

    def __init__(self) -> None:
        self.events: List[ModelChangeEvent] = []

    def model_changed(self, event: ModelChangeEvent) -> None:
        self.events.append(event)

    @property
    def modified(self) -> List[ModelChangeEvent]:
        return [e for e in self.events if e.kind is EventKind.MODEL_MODIFIED]

    @property
    def kinds(self) -> List[EventKind]:
        return [e.kind for e in self.events]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def error_bus() -> ErrorEventBus:
    return ErrorEventBus()


@pytest.fixture
def model(error_bus) -> TrackModel:
    """Model with the length-based edge and track analyzers."""
    feature_model = build_feature_model(
        edge_keys=("edge_length", "edge_time", "edge_velocity"),
        track_keys=("track_branching", "track_duration", "track_total_length"),
    )
    return TrackModel(feature_model=feature_model, error_bus=error_bus)


@pytest.fixture
def bare_model(error_bus) -> TrackModel:
    """Model with no analyzers registered."""
    return TrackModel(error_bus=error_bus)


@pytest.fixture
def recorder(model) -> RecordingListener:
    listener = RecordingListener()
    model.add_model_change_listener(listener)
    return listener


@pytest.fixture
def spots() -> List[Spot]:
    """Five spots laid out along x, 3-4-5 steps apart."""
    return [
        Spot(x=0.0, y=0.0, quality=1.0, name="A"),
        Spot(x=3.0, y=4.0, quality=2.0, name="B"),
        Spot(x=6.0, y=8.0, quality=3.0, name="C"),
        Spot(x=9.0, y=12.0, quality=4.0, name="D"),
        Spot(x=12.0, y=16.0, quality=5.0, name="E"),
    ]


def populate(model: TrackModel, spots: List[Spot], frames=None) -> None:
    """Add spots to consecutive frames in one transaction."""
    frames = frames if frames is not None else range(len(spots))
    with model.transaction():
        for spot, frame in zip(spots, frames):
            model.add_spot_to(spot, frame)


def link_chain(model: TrackModel, spots: List[Spot]) -> list:
    """Link consecutive spots in one transaction and return the edges."""
    with model.transaction():
        return [model.add_edge(a, b) for a, b in zip(spots, spots[1:])]
