import pytest

from conftest import PARIS, FakeClock, make_entry, square_ring
from isochrone_cache.domain import TransportMode
from isochrone_cache.exceptions import InterpolationError
from isochrone_cache.geo import haversine_m
from isochrone_cache.interpolation import SpatialInterpolator, blend_rings, select_bracket
from isochrone_cache.store import CacheStore

NOW = 1_700_000_000.0


@pytest.fixture
def store(memory_store):
    return CacheStore(memory_store)


@pytest.fixture
def interpolator(store):
    return SpatialInterpolator(store, radius_m=2000, clock=FakeClock(NOW))


def test_haversine_paris_to_lyon():
    assert haversine_m(PARIS, (4.8357, 45.7640)) == pytest.approx(392_000, rel=0.01)


def test_no_candidates(interpolator):
    assert interpolator.interpolate(PARIS, 15, TransportMode.WALKING) is None


def test_single_candidate(store, interpolator):
    store.set(make_entry(duration=10))
    assert interpolator.interpolate(PARIS, 15, TransportMode.WALKING) is None


def test_bracketing_pair_gives_half_factor(store, interpolator):
    store.set(make_entry(duration=10))
    store.set(make_entry(duration=20))

    result = interpolator.interpolate(PARIS, 15, TransportMode.WALKING)

    assert result is not None
    assert result.factor == 0.5
    assert (result.lower_duration, result.upper_duration) == (10, 20)
    expected = square_ring(PARIS, 0.015)
    assert len(result.polygon) == len(expected)
    for got, want in zip(result.polygon, expected):
        assert got == pytest.approx(want)


def test_result_is_not_cached(store, interpolator):
    store.set(make_entry(duration=10))
    store.set(make_entry(duration=20))
    interpolator.interpolate(PARIS, 15, TransportMode.WALKING)
    assert len(store.memory) == 2


def test_target_outside_range(store, interpolator):
    store.set(make_entry(duration=10))
    store.set(make_entry(duration=20))
    assert interpolator.interpolate(PARIS, 30, TransportMode.WALKING) is None
    assert interpolator.interpolate(PARIS, 5, TransportMode.WALKING) is None


def test_exact_duration_match_does_not_interpolate(store, interpolator):
    store.set(make_entry(duration=10))
    store.set(make_entry(duration=20))
    assert interpolator.interpolate(PARIS, 20, TransportMode.WALKING) is None


def test_other_modes_are_ignored(store, interpolator):
    store.set(make_entry(duration=10))
    store.set(make_entry(duration=20, mode=TransportMode.CYCLING))
    assert interpolator.interpolate(PARIS, 15, TransportMode.WALKING) is None


def test_expired_candidates_are_ignored(store, interpolator):
    store.set(make_entry(duration=10))
    store.set(make_entry(duration=20, created_at=NOW - 7200, ttl=3600))
    assert interpolator.interpolate(PARIS, 15, TransportMode.WALKING) is None


def test_far_candidates_are_ignored(store, interpolator):
    store.set(make_entry(duration=10))
    store.set(make_entry(center=(2.40, 48.88), duration=20))
    assert interpolator.interpolate(PARIS, 15, TransportMode.WALKING) is None


def test_nearby_center_within_radius(store, interpolator):
    store.set(make_entry(center=(2.3600, 48.8600), duration=10))
    store.set(make_entry(duration=20))
    assert interpolator.interpolate(PARIS, 12, TransportMode.WALKING).factor == pytest.approx(0.2)


def test_durable_scan_when_enabled(memory_store):
    memory_store.put(make_entry(duration=10))
    memory_store.put(make_entry(duration=20))
    store = CacheStore(memory_store)

    memory_only = SpatialInterpolator(store, clock=FakeClock(NOW))
    assert memory_only.interpolate(PARIS, 15, TransportMode.WALKING) is None

    with_durable = SpatialInterpolator(store, include_durable=True, clock=FakeClock(NOW))
    assert with_durable.interpolate(PARIS, 15, TransportMode.WALKING).factor == 0.5


def test_closest_bracket_is_selected():
    candidates = [make_entry(duration=d) for d in (5, 10, 20, 30)]
    lower, upper = select_bracket(candidates, 15)
    assert (lower.duration, upper.duration) == (10, 20)


def test_blend_truncates_to_shorter_ring():
    lower = ((0.0, 0.0), (1.0, 0.0), (0.0, 0.0))
    upper = ((2.0, 2.0), (3.0, 2.0))
    assert blend_rings(lower, upper, 0.5) == ((1.0, 1.0), (2.0, 1.0), (1.0, 1.0))


def test_blend_of_unequal_rings_is_closed():
    lower = square_ring(PARIS, 0.01)
    upper = square_ring(PARIS, 0.02, points_per_side=4)

    blended = blend_rings(lower, upper, 0.5)

    assert len(blended) == len(lower) + 1
    assert blended[0] == blended[-1]


def test_blend_of_closed_equal_rings_is_not_padded():
    ring = square_ring(PARIS, 0.01)
    assert len(blend_rings(ring, ring, 0.5)) == len(ring)


def test_blend_rejects_empty_ring():
    with pytest.raises(InterpolationError):
        blend_rings((), ((0.0, 0.0),), 0.5)


def test_failures_are_swallowed(store, interpolator):
    empty = make_entry(duration=10)
    object.__setattr__(empty, "polygon", ())
    store.set(empty)
    store.set(make_entry(duration=20))
    assert interpolator.interpolate(PARIS, 15, TransportMode.WALKING) is None
