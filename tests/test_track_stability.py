"""Track IDs across merges, splits and unrelated edits."""

from conftest import link_chain, populate
from contracts import Spot
from features.track_analyzers import NUMBER_SPOTS


def _spots(n):
    return [Spot(x=float(i), name=f"s{i}") for i in range(n)]


def test_merge_reports_only_the_merged_track(model, recorder) -> None:
    s = _spots(7)
    populate(model, s)
    (ab,) = link_chain(model, s[0:2])
    link_chain(model, s[2:5])
    (fg,) = link_chain(model, s[5:7])
    bystander = model.graph.track_id_of(fg)
    recorder.clear()

    bridge = model.add_edge(s[1], s[2])

    merged = model.graph.track_id_of(bridge)
    event = recorder.modified[0]
    assert event.tracks_updated == {merged}
    assert model.graph.track_ids() == {merged, bystander}
    assert model.graph.track_id_of(ab) == merged
    assert model.feature_model.get_track_feature(merged, NUMBER_SPOTS) == 5


def test_split_reports_both_halves(model, recorder) -> None:
    s = _spots(4)
    populate(model, s)
    ab, bc, cd = link_chain(model, s)
    original = model.graph.track_id_of(ab)
    recorder.clear()

    assert model.remove_edge(bc) is True

    left, right = model.graph.track_id_of(ab), model.graph.track_id_of(cd)
    event = recorder.modified[0]
    assert left != right
    assert original not in model.graph.track_ids()
    assert event.tracks_updated == {left, right}
    assert model.feature_model.track_features(original) == {}
    assert model.graph.filtered_track_ids() == {left, right}


def test_unrelated_spot_edit_keeps_track_ids(model, recorder) -> None:
    s = _spots(3)
    populate(model, s)
    (ab,) = link_chain(model, s[:2])
    track_id = model.graph.track_id_of(ab)
    recorder.clear()

    model.update_features(s[2])

    assert model.graph.track_id_of(ab) == track_id
    assert recorder.modified[0].tracks_updated == frozenset()


def test_cutting_a_leaf_keeps_remaining_track_fresh(model, recorder) -> None:
    s = _spots(3)
    populate(model, s)
    ab, bc = link_chain(model, s)
    recorder.clear()

    model.remove_edge(s[1], s[2])

    remaining = model.graph.track_id_of(ab)
    assert recorder.modified[0].tracks_updated == {remaining}
    assert model.feature_model.get_track_feature(remaining, NUMBER_SPOTS) == 2
    assert model.graph.track_id_of_spot(s[2]) is None
