import pytest

from isochrone_cache.domain import Quality, TransportMode
from isochrone_cache.policies import assess_quality, cache_key, compute_ttl

HOUR = 3600


def test_cache_key_format():
    assert cache_key((2.3522, 48.8566), 15, TransportMode.WALKING) == "2.352_48.857_15_walking"


def test_cache_key_is_deterministic():
    keys = {cache_key((4.8357, 45.7640), 30, "driving") for _ in range(5)}
    assert len(keys) == 1


def test_centers_in_same_bucket_share_key():
    a = cache_key((2.35210, 48.85660), 10, TransportMode.CYCLING)
    b = cache_key((2.35240, 48.85680), 10, TransportMode.CYCLING)
    assert a == b


def test_duration_and_mode_split_keys():
    center = (2.3522, 48.8566)
    assert cache_key(center, 10, "walking") != cache_key(center, 15, "walking")
    assert cache_key(center, 10, "walking") != cache_key(center, 10, "cycling")


def test_negative_zero_is_normalized():
    assert cache_key((-0.0001, 0.0001), 5, "walking") == cache_key((0.0001, -0.0001), 5, "walking")


def test_unknown_mode_is_rejected():
    with pytest.raises(ValueError):
        cache_key((0, 0), 5, "teleport")


def test_ttl_for_paris_walking_scenario():
    assert compute_ttl(15, TransportMode.WALKING) == 6 * HOUR


def test_driving_ttl_is_shorter():
    assert compute_ttl(60, TransportMode.DRIVING) < compute_ttl(60, TransportMode.WALKING)
    assert compute_ttl(60, TransportMode.DRIVING) == 12 * HOUR


def test_ttl_grows_with_duration_and_caps_at_double():
    assert compute_ttl(120, TransportMode.WALKING) >= compute_ttl(60, TransportMode.WALKING)
    assert compute_ttl(120, TransportMode.WALKING) == 48 * HOUR
    assert compute_ttl(240, TransportMode.WALKING) == 48 * HOUR


def test_ttl_respects_custom_base():
    assert compute_ttl(30, TransportMode.CYCLING, base_ttl=100) == 50


@pytest.mark.parametrize("count, expected", [
    (101, Quality.HIGH),
    (100, Quality.MEDIUM),
    (51, Quality.MEDIUM),
    (50, Quality.LOW),
    (4, Quality.LOW),
])
def test_assess_quality(count, expected):
    ring = [(float(i), 0.0) for i in range(count)]
    assert assess_quality(ring) is expected
