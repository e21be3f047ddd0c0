import pytest

from blinktrack.tracker import TrackedBlob
from blinktrack.types import Event, TrackerOut


def _blob(x=100.0, y=50.0, freq=2000, detected_at=0, radius=5.0):
    return TrackedBlob((x, y), freq, detected_at, radius)


def test_period_follows_frequency():
    assert _blob(freq=2000).period == 500.0


def test_zero_frequency_is_rejected():
    with pytest.raises(ValueError):
        _blob(freq=0)


def test_event_inside_is_absorbed():
    blob = _blob()
    event = Event(x=102, y=50, t=1234)
    assert blob.is_event_inside(event)
    assert blob.update(event) is True
    assert blob.last_update == 1234
    assert blob.update_count == 1
    assert blob.update_count_since_pnp == 1


def test_event_outside_is_rejected():
    blob = _blob()
    event = Event(x=110, y=50, t=99)
    assert not blob.is_event_inside(event)
    assert blob.update(event) is False
    assert blob.last_update == 0
    assert blob.center == (100.0, 50.0)
    assert blob.current_distance == pytest.approx(10.0)


def test_boundary_distance_is_outside():
    blob = _blob(radius=5.0)
    assert blob.update(Event(x=105, y=50, t=1)) is False


def test_center_moves_toward_events():
    blob = _blob()
    blob.update(Event(x=103, y=47, t=1))
    assert 100.0 < blob.center_x < 103.0
    assert 47.0 < blob.center_y < 50.0


def test_output_reflects_state():
    blob = _blob(freq=2500)
    blob.update(Event(x=101, y=51, t=5))
    assert blob.output() == TrackerOut(
        x=blob.center_x, y=blob.center_y, r=blob.radius, freq=2500
    )


def test_reset_update_count_only_touches_pnp_counter():
    blob = _blob()
    for t in range(3):
        blob.update(Event(x=100, y=50, t=t))
    blob.reset_update_count()
    assert blob.update_count_since_pnp == 0
    assert blob.update_count == 3


def test_bounding_box_tracks_extremes():
    blob = _blob()
    for x, y in [(101, 51), (98, 52), (100, 48)]:
        blob.update(Event(x=x, y=y, t=1))
    assert (blob.x_min, blob.x_max) == (98, 101)
    assert (blob.y_min, blob.y_max) == (48, 52)


def test_analytics_skipped_with_few_updates():
    blob = _blob()
    blob.update(Event(x=101, y=50, t=1))
    blob.cluster_analytics()
    assert blob.radius == 5.0
    assert blob.first is True


def test_region_shrinks_after_tight_cluster():
    blob = _blob()
    for t in range(201):
        assert blob.update(Event(x=100, y=50, t=t))
    assert blob.radius < 5.0
    assert blob.first is False
    assert blob.update_count == 1
    assert blob.update_count_since_pnp == 201


def test_radius_never_exceeds_maximum():
    blob = _blob(radius=20.0)
    for t in range(201):
        blob.update(Event(x=100 + (t % 7) * 2, y=50, t=t))
    assert blob.radius <= TrackedBlob.max_roi_radius