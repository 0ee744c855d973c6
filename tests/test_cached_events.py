"""Payload-free events queued by bulk operations."""

import pytest

from app.events import EventKind
from configs.settings import ModelConfig
from conftest import link_chain, populate
from contracts import QUALITY, FeatureFilter, Spot
from exceptions import UnknownTrackError
from features.edge_analyzers import EDGE_LENGTH
from track import SpotCollection, TrackModel


def test_filter_spots_fires_spots_filtered(model, recorder, spots) -> None:
    populate(model, spots)
    recorder.clear()

    model.filter_spots([FeatureFilter(QUALITY, 3.0)])

    assert recorder.kinds == [EventKind.SPOTS_FILTERED]
    assert str(recorder.events[0]) == "ModelChangeEvent[spots_filtered]"
    assert model.spots.count_total(filtered_only=True) == 3


def test_cached_events_follow_the_change_event(model, recorder, spots) -> None:
    with model.transaction():
        populate(model, spots[:2])
        model.filter_spots([])
        model.filter_spots([FeatureFilter(QUALITY, 2.0)])
        link_chain(model, spots[:2])

    assert recorder.kinds == [EventKind.MODEL_MODIFIED, EventKind.SPOTS_FILTERED]


def test_visibility_change_fires_once(model, recorder, spots) -> None:
    populate(model, spots[:2])
    (edge,) = link_chain(model, spots[:2])
    track_id = model.graph.track_id_of(edge)
    recorder.clear()

    assert model.set_track_visible(track_id, False) is True
    assert recorder.kinds == [EventKind.TRACKS_VISIBILITY_CHANGED]
    assert not model.graph.is_track_visible(track_id)

    recorder.clear()
    assert model.set_track_visible(track_id, False) is False
    assert recorder.events == []


def test_unknown_track_visibility_raises(model) -> None:
    with pytest.raises(UnknownTrackError):
        model.set_track_visible(7, True)
    assert model.update_level == 0


def test_set_filtered_track_ids(model, recorder, spots) -> None:
    populate(model, spots[:4])
    link_chain(model, spots[:2])
    (cd,) = link_chain(model, spots[2:4])
    recorder.clear()

    model.set_filtered_track_ids([model.graph.track_id_of(cd)])

    assert recorder.kinds == [EventKind.TRACKS_VISIBILITY_CHANGED]
    assert model.graph.filtered_track_ids() == {model.graph.track_id_of(cd)}
    assert model.graph.n_tracks(filtered_only=True) == 1


def test_set_spots_replaces_collection_and_graph(model, recorder, spots) -> None:
    populate(model, spots[:2])
    (edge,) = link_chain(model, spots[:2])
    recorder.clear()

    fresh = SpotCollection()
    newcomers = [Spot(name="n1"), Spot(name="n2"), Spot(name="n3")]
    for frame, spot in enumerate(newcomers):
        fresh.add(spot, frame)

    model.set_spots(fresh)

    assert recorder.kinds == [EventKind.SPOTS_COMPUTED]
    assert model.spots is fresh
    assert model.graph.vertex_count() == 3
    assert model.graph.edge_count() == 0
    assert model.feature_model.edge_features(edge) == {}


def test_set_spots_without_notification(model, recorder) -> None:
    model.set_spots(SpotCollection(), do_notify=False)
    assert recorder.events == []


def test_set_spots_crops_below_initial_threshold() -> None:
    model = TrackModel(config=ModelConfig(initial_quality_threshold=2.0))
    collection = SpotCollection()
    good, poor = Spot(quality=2.5), Spot(quality=1.5)
    collection.add(good, 0)
    collection.add(poor, 0)

    model.set_spots(collection)

    assert list(model.spots) == [good]
    assert not model.graph.contains_vertex(poor)


def test_compute_tracks_fires_tracks_computed(model, recorder, spots) -> None:
    populate(model, spots[:2])
    (edge,) = link_chain(model, spots[:2])
    model.feature_model.clear_values()
    recorder.clear()

    model.compute_tracks()

    assert recorder.kinds == [EventKind.TRACKS_COMPUTED]
    assert model.feature_model.get_edge_feature(edge, EDGE_LENGTH) == pytest.approx(5.0)


def test_multiple_cached_events_keep_queue_order(model, recorder, spots) -> None:
    populate(model, spots[:2])
    (edge,) = link_chain(model, spots[:2])
    recorder.clear()

    with model.transaction():
        model.set_track_visible(model.graph.track_id_of(edge), False)
        model.filter_spots([])
        model.compute_tracks()

    assert recorder.kinds == [
        EventKind.TRACKS_VISIBILITY_CHANGED,
        EventKind.SPOTS_FILTERED,
        EventKind.TRACKS_COMPUTED,
    ]
