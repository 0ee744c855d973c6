"""Transactions, edits and the consolidated change event."""

from unittest.mock import Mock

import pytest

from app.events import EdgeFlag, ErrorCategory, EventKind, SpotFlag
from conftest import RecordingListener, link_chain, populate
from contracts import Spot
from exceptions import SpotNotInGraphError, UnbalancedTransactionError


# ----------------------------------------------------------------------
# Transaction protocol
# ----------------------------------------------------------------------


def test_nested_transactions_flush_once(model, recorder, spots) -> None:
    a, b = spots[:2]
    model.begin_update()
    model.begin_update()
    model.add_spot_to(a, 0)
    model.end_update()
    assert model.update_level == 1
    assert recorder.events == []

    model.add_spot_to(b, 1)
    model.end_update()

    assert model.update_level == 0
    assert len(recorder.events) == 1
    event = recorder.events[0]
    assert event.kind is EventKind.MODEL_MODIFIED
    assert event.source is model
    assert event.spots == {a, b}
    assert event.spot_flag(a) is SpotFlag.ADDED


def test_edit_outside_transaction_flushes_immediately(model, recorder, spots) -> None:
    model.add_spot_to(spots[0], 0)
    model.add_spot_to(spots[1], 0)
    assert len(recorder.modified) == 2
    assert recorder.modified[1].spots == {spots[1]}


def test_empty_transaction_fires_nothing(model, recorder) -> None:
    with model.transaction():
        pass
    model.begin_update()
    model.end_update()
    assert recorder.events == []


def test_unmatched_end_update_raises(model) -> None:
    with pytest.raises(UnbalancedTransactionError) as info:
        model.end_update()
    assert info.value.depth == 0
    assert model.update_level == 0

    # The model is still usable afterwards
    with model.transaction():
        model.add_spot_to(Spot(), 0)
    assert model.spots.count_total() == 1


def test_transaction_body_error_still_closes(model, recorder, spots) -> None:
    with pytest.raises(RuntimeError):
        with model.transaction():
            model.add_spot_to(spots[0], 0)
            raise RuntimeError("boom")

    assert model.update_level == 0
    assert len(recorder.modified) == 1


# ----------------------------------------------------------------------
# Spot edits
# ----------------------------------------------------------------------


def test_flags_combine_within_a_transaction(model, recorder, spots) -> None:
    a = spots[0]
    with model.transaction():
        model.add_spot_to(a, 0)
        model.update_features(a)

    event = recorder.modified[0]
    assert event.spot_flag(a) == SpotFlag.ADDED | SpotFlag.MODIFIED
    assert SpotFlag.REMOVED not in event.spot_flag(a)


def test_not_found_operations_are_silent(model, recorder, spots) -> None:
    a, b = spots[:2]
    stranger = Spot(name="stranger")
    model.add_spot_to(a, 2)
    recorder.clear()

    assert model.remove_spot(stranger) is None
    assert model.move_spot_from(a, 5, 6) is None
    assert model.move_spot_from(b, 0, 1) is None
    assert model.remove_edge(a, stranger) is None

    assert recorder.events == []
    assert model.spots.frame_of(a) == 2


def test_not_found_operations_inside_transaction(model, recorder, spots) -> None:
    a, b = spots[:2]
    stranger = Spot(name="stranger")
    model.add_spot_to(a, 2)
    recorder.clear()

    with model.transaction():
        assert model.remove_spot(stranger) is None
        assert model.move_spot_from(a, 5, 6) is None
        assert model.move_spot_from(b, 0, 1) is None
        assert model.remove_edge(a, stranger) is None
        assert model.remove_edge(a, b) is None
        assert not model._pending
        assert not model.graph.has_edge_changes

    assert recorder.events == []
    assert model.spots.frame_of(a) == 2


def test_remove_spot_twice(model, spots) -> None:
    a = spots[0]
    model.add_spot_to(a, 0)
    assert model.remove_spot(a) is a
    assert model.remove_spot(a) is None
    assert a not in model.spots


def test_remove_spot_takes_its_edges(model, recorder, spots) -> None:
    a, b, c = spots[:3]
    populate(model, [a, b, c])
    ab, bc = link_chain(model, [a, b, c])
    recorder.clear()

    model.remove_spot(c)

    event = recorder.modified[0]
    assert event.spot_flag(c) is SpotFlag.REMOVED
    assert event.edge_flag(bc) is EdgeFlag.REMOVED
    assert ab not in event.edges
    assert not model.graph.contains_vertex(c)
    assert model.feature_model.edge_features(bc) == {}
    assert event.tracks_updated == {model.graph.track_id_of(ab)}


def test_move_spot_flags_frame_change_and_edges(model, recorder, spots) -> None:
    a, b = spots[:2]
    populate(model, [a, b])
    (ab,) = link_chain(model, [a, b])
    track_id = model.graph.track_id_of(ab)
    recorder.clear()

    assert model.move_spot_from(b, 1, 3) is b

    event = recorder.modified[0]
    assert event.spot_flag(b) is SpotFlag.FRAME_CHANGED
    assert event.edge_flag(ab) is EdgeFlag.MODIFIED
    assert event.tracks_updated == {track_id}
    assert model.spots.frame_of(b) == 3
    assert model.graph.track_id_of(ab) == track_id


def test_update_features_marks_incident_edges(model, recorder, spots) -> None:
    a, b, c = spots[:3]
    populate(model, [a, b, c])
    ab, bc = link_chain(model, [a, b, c])
    recorder.clear()

    model.update_features(c)

    event = recorder.modified[0]
    assert event.spot_flag(c) is SpotFlag.MODIFIED
    assert event.edges == {bc}
    assert event.edge_flag(bc) is EdgeFlag.MODIFIED


# ----------------------------------------------------------------------
# Edge edits
# ----------------------------------------------------------------------


def test_add_edge_event_reports_new_track(model, recorder, spots) -> None:
    a, b = spots[:2]
    populate(model, [a, b])
    recorder.clear()

    edge = model.add_edge(a, b)

    event = recorder.modified[0]
    assert event.spots == frozenset()
    assert event.edge_flag(edge) is EdgeFlag.ADDED
    assert event.tracks_updated == {model.graph.track_id_of(edge)}


def test_add_then_remove_edge_in_one_transaction(model, recorder, spots) -> None:
    a, b = spots[:2]
    populate(model, [a, b])
    recorder.clear()

    with model.transaction():
        edge = model.add_edge(a, b)
        assert model.remove_edge(edge) is True

    event = recorder.modified[0]
    assert event.edge_flag(edge) == EdgeFlag.ADDED | EdgeFlag.REMOVED
    assert model.feature_model.edge_features(edge) == {}
    assert model.graph.n_tracks() == 0


def test_add_edge_to_unknown_spot_leaves_model_closed(model, spots) -> None:
    a = spots[0]
    model.add_spot_to(a, 0)
    with pytest.raises(SpotNotInGraphError):
        model.add_edge(a, Spot())
    assert model.update_level == 0


def test_edge_weight_changes_do_not_notify(model, recorder, spots) -> None:
    a, b = spots[:2]
    populate(model, [a, b])
    (edge,) = link_chain(model, [a, b])
    recorder.clear()

    assert model.set_edge_weight(edge, 4.0) is True
    assert model.get_edge_weight(edge) == 4.0
    assert recorder.events == []


# ----------------------------------------------------------------------
# Listeners
# ----------------------------------------------------------------------


def test_callable_listener_and_removal(model, spots) -> None:
    received = []
    model.add_model_change_listener(received.append)
    model.add_spot_to(spots[0], 0)
    assert len(received) == 1

    assert model.remove_model_change_listener(received.append) is True
    assert model.remove_model_change_listener(received.append) is False
    model.add_spot_to(spots[1], 0)
    assert len(received) == 1


def test_mock_listener_is_called_directly(model, spots) -> None:
    listener = Mock()
    model.add_model_change_listener(listener)
    model.add_spot_to(spots[0], 0)

    listener.assert_called_once()
    (event,) = listener.call_args[0]
    assert event.spot_flag(spots[0]) & SpotFlag.ADDED
    listener.model_changed.assert_not_called()


def test_failing_listener_does_not_block_others(model, error_bus, spots) -> None:
    def broken(event):
        raise RuntimeError("listener broke")

    recorder = RecordingListener()
    model.add_model_change_listener(broken)
    model.add_model_change_listener(recorder)

    model.add_spot_to(spots[0], 0)

    assert len(recorder.events) == 1
    history = error_bus.get_history(category=ErrorCategory.LISTENER)
    assert len(history) == 1
    assert isinstance(history[0].exception, RuntimeError)


def test_listener_may_edit_the_model(model, spots) -> None:
    a, late = spots[0], spots[4]

    class Reentrant:
        def __init__(self):
            self.events = []

        def model_changed(self, event):
            self.events.append(event)
            if len(self.events) == 1:
                model.add_spot_to(late, 5)

    listener = Reentrant()
    model.add_model_change_listener(listener)
    model.add_spot_to(a, 0)

    assert [e.spots for e in listener.events] == [{a}, {late}]
    assert model.update_level == 0


# ----------------------------------------------------------------------
# Units and summary
# ----------------------------------------------------------------------


def test_physical_units(bare_model) -> None:
    assert bare_model.space_units == "pixels"
    assert bare_model.time_units == "frames"
    bare_model.set_physical_units("µm", "s")
    assert bare_model.space_units == "µm"
    assert bare_model.time_units == "s"


def test_summary(model, spots) -> None:
    assert model.summary() == "No spots.\nNo filtered spots.\nNo tracks.\nNo filtered tracks."

    populate(model, spots[:3])
    link_chain(model, spots[:2])

    assert str(model) == (
        "Contains 3 spots in total.\n"
        "Contains 3 filtered spots.\n"
        "Contains 1 tracks in total.\n"
        "Contains 1 filtered tracks."
    )
