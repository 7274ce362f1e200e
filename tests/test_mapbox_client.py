import json

import pytest
import requests

from conftest import PARIS, square_ring
from isochrone_cache.domain import TransportMode
from isochrone_cache.exceptions import APIError, IsochroneError, NetworkError
from isochrone_cache.mapbox_client import MapboxIsochroneClient, exterior_ring_from_geojson


def make_response(status_code=200, payload=None, text=None):
    resp = requests.Response()
    resp.status_code = status_code
    resp.url = "https://api.mapbox.com/isochrone"
    resp._content = (text if text is not None else json.dumps(payload)).encode("utf-8")
    return resp


def feature_collection(ring):
    return {
        "type": "FeatureCollection",
        "features": [{
            "type": "Feature",
            "properties": {"contour": 15},
            "geometry": {"type": "Polygon", "coordinates": [[list(c) for c in ring]]},
        }],
    }


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params, timeout))
        result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def make_client(session):
    return MapboxIsochroneClient(access_token="pk.test", session=session, retry_delay=0)


def test_request_shape_and_parsing():
    ring = square_ring(PARIS, 0.01)
    session = FakeSession(make_response(payload=feature_collection(ring)))

    result = make_client(session).create_isochrone(PARIS, 15, TransportMode.WALKING)

    assert result == ring
    url, params, timeout = session.requests[0]
    assert url == "https://api.mapbox.com/isochrone/v1/mapbox/walking/2.3522,48.8566"
    assert params == {"contours_minutes": "15", "polygons": "true", "denoise": "1", "access_token": "pk.test"}
    assert timeout == (5, 30)


def test_transit_uses_driving_profile():
    session = FakeSession(make_response(payload=feature_collection(square_ring(PARIS, 0.01))))
    make_client(session).create_isochrone(PARIS, 10, TransportMode.TRANSIT)
    assert "/mapbox/driving/" in session.requests[0][0]


def test_retries_server_errors_then_succeeds():
    ring = square_ring(PARIS, 0.01)
    session = FakeSession(
        make_response(503, {"message": "busy"}),
        requests.exceptions.Timeout("slow"),
        make_response(payload=feature_collection(ring)),
    )
    assert make_client(session).create_isochrone(PARIS, 15, "walking") == ring
    assert len(session.requests) == 3


def test_exhausted_retries_raise_network_error():
    session = FakeSession(*[requests.exceptions.ConnectionError("down")] * 3)
    with pytest.raises(NetworkError):
        make_client(session).create_isochrone(PARIS, 15, "walking")
    assert len(session.requests) == 3


def test_invalid_json_is_retried():
    session = FakeSession(*[make_response(text="<html>oops</html>")] * 3)
    with pytest.raises(NetworkError):
        make_client(session).create_isochrone(PARIS, 15, "walking")


def test_client_errors_are_not_retried():
    session = FakeSession(make_response(401, {"message": "Not Authorized - Invalid Token"}))
    with pytest.raises(APIError) as excinfo:
        make_client(session).create_isochrone(PARIS, 15, "walking")
    assert excinfo.value.status_code == 401
    assert "Invalid Token" in str(excinfo.value)
    assert len(session.requests) == 1


def test_response_without_polygon():
    session = FakeSession(make_response(payload={"type": "FeatureCollection", "features": []}))
    with pytest.raises(IsochroneError):
        make_client(session).create_isochrone(PARIS, 15, "walking")


def test_exterior_ring_skips_non_polygon_features():
    ring = square_ring(PARIS, 0.01)
    data = feature_collection(ring)
    data["features"].insert(0, {"type": "Feature", "geometry": {"type": "LineString", "coordinates": [[0, 0], [1, 1]]}})
    assert exterior_ring_from_geojson(data) == ring


def test_empty_token_rejected():
    with pytest.raises(ValueError):
        MapboxIsochroneClient(access_token="")
