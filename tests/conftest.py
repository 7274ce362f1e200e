import warnings

import pytest

from isochrone_cache import create_app
from isochrone_cache.config import AppConfig
from isochrone_cache.domain import IsochroneEntry, Quality, TransportMode
from isochrone_cache.exceptions import NetworkError
from isochrone_cache.policies import cache_key
from isochrone_cache.services import IsochroneCacheService
from isochrone_cache.store import SqliteIsochroneStore

PARIS = (2.3522, 48.8566)


def square_ring(center, half_size, points_per_side=1):
    """Closed square ring around center; extra points lie on the edges."""
    lng, lat = center
    corners = [
        (lng - half_size, lat - half_size),
        (lng + half_size, lat - half_size),
        (lng + half_size, lat + half_size),
        (lng - half_size, lat + half_size),
    ]
    ring = []
    for i, (x1, y1) in enumerate(corners):
        x2, y2 = corners[(i + 1) % 4]
        for step in range(points_per_side):
            t = step / points_per_side
            ring.append((x1 + (x2 - x1) * t, y1 + (y2 - y1) * t))
    ring.append(ring[0])
    return tuple(ring)


def make_entry(center=PARIS, duration=15, mode=TransportMode.WALKING, created_at=1_700_000_000.0, ttl=3600.0):
    polygon = square_ring(center, 0.001 * duration)
    return IsochroneEntry(
        key=cache_key(center, duration, mode),
        center=center,
        duration=duration,
        transport_mode=mode,
        polygon=polygon,
        simplified_polygon=polygon[::2] + (polygon[0],),
        created_at=created_at,
        ttl=ttl,
        quality=Quality.LOW,
    )


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeProvider:
    """Records calls; ring size grows with duration so results are distinguishable."""

    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def create_isochrone(self, center, duration, transport_mode):
        self.calls.append((center, duration, transport_mode))
        if self.fail:
            raise NetworkError("provider down")
        return square_ring(center, 0.001 * duration, points_per_side=4)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def config(tmp_path):
    return AppConfig(
        mapbox_access_token="test-token",
        cache_db_path=str(tmp_path / "isochrones.db"),
        precompute_enabled=False,
        precompute_initial_delay=0,
        precompute_call_delay=0,
        precompute_area_delay=0,
    )


@pytest.fixture
def service(config, provider, clock):
    svc = IsochroneCacheService(config, provider=provider, clock=clock)
    svc.initialize(start_scheduler=False)
    yield svc
    svc.shutdown()


@pytest.fixture
def memory_store():
    store = SqliteIsochroneStore(":memory:")
    store.open()
    yield store
    store.close()


@pytest.fixture
def app(service):
    """Create app for testing"""
    app = create_app({
        'TESTING': True,
        'RATELIMIT_DEFAULT': '1000/minute',
        'ISOCHRONE_SERVICE': service,
    })
    yield app


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture(autouse=True)
def ignore_limiter_warning():
    warnings.filterwarnings('ignore', message='using in-memory storage')
