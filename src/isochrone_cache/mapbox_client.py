import time
from dataclasses import dataclass, field
from functools import wraps
from json import JSONDecodeError
from typing import Tuple

import requests
from requests.exceptions import ConnectionError, HTTPError, Timeout
from shapely.geometry import shape

from .domain import Coordinate, Ring, TransportMode, as_ring
from .exceptions import APIError, IsochroneError, NetworkError
from .logging_config import get_logger

# Get module logger
logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1
DEFAULT_BACKOFF_MULTIPLIER = 2
DEFAULT_REQUEST_TIMEOUT = (5, 30)

# Mapbox has no transit isochrones; transit falls back to the road network
MAPBOX_PROFILES = {
    TransportMode.WALKING: "walking",
    TransportMode.CYCLING: "cycling",
    TransportMode.DRIVING: "driving",
    TransportMode.TRANSIT: "driving",
}


def _is_retryable_status(status: int) -> bool:
    return status == 429 or 500 <= status < 600


def retry_on_network_error(max_attempts=DEFAULT_MAX_ATTEMPTS, delay=DEFAULT_RETRY_DELAY, backoff=DEFAULT_BACKOFF_MULTIPLIER):
    """Retry timeouts, connection errors, 429/5xx responses and garbled JSON.

    Non-retryable HTTP errors are re-raised immediately. Once attempts are
    exhausted the last failure is raised as NetworkError.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            current_delay = delay

            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except (Timeout, ConnectionError, HTTPError, JSONDecodeError) as e:
                    if isinstance(e, HTTPError) and not _is_retryable_status(e.response.status_code):
                        raise

                    if attempt == max_attempts - 1:
                        logger.error(
                            "API call failed after retries",
                            service="mapbox",
                            error_type=type(e).__name__,
                            error_message=str(e),
                            total_attempts=max_attempts
                        )
                        raise NetworkError(f"Isochrone provider unavailable: {e}") from e

                    logger.warning(
                        "API call failed, retrying",
                        service="mapbox",
                        attempt=attempt + 1,
                        max_attempts=max_attempts,
                        error_type=type(e).__name__,
                        error_message=str(e),
                        retry_delay_seconds=current_delay
                    )
                    time.sleep(current_delay)
                    current_delay *= backoff
            return None

        return wrapper
    return decorator


def _api_error_from_response(resp: requests.Response) -> APIError:
    try:
        data = resp.json()
    except ValueError:
        data = None
    message = data.get("message") if isinstance(data, dict) else None
    return APIError(
        f"Mapbox API error {resp.status_code}: {message or resp.text[:200]}",
        status_code=resp.status_code,
        response_data=data if isinstance(data, dict) else None,
    )


def exterior_ring_from_geojson(data: dict) -> Ring:
    """First Polygon feature's exterior ring from a Mapbox FeatureCollection."""
    for feature in data.get("features") or []:
        geometry = feature.get("geometry") or {}
        if geometry.get("type") == "Polygon":
            polygon = shape(geometry)
            if polygon.is_empty:
                continue
            return as_ring(polygon.exterior.coords)
    raise IsochroneError("Provider response contains no polygon")


@dataclass
class MapboxIsochroneClient:
    """Client for the Mapbox Isochrone API.

    create_isochrone either returns a closed exterior ring or raises one of
    NetworkError, APIError or IsochroneError.
    """

    access_token: str
    base_url: str = "https://api.mapbox.com"
    timeout: Tuple[int, int] = DEFAULT_REQUEST_TIMEOUT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    retry_backoff: float = DEFAULT_BACKOFF_MULTIPLIER
    session: requests.Session = field(default_factory=requests.Session, repr=False)

    def __post_init__(self) -> None:
        if not self.access_token:
            raise ValueError("Mapbox access token must not be empty")
        self._fetch = retry_on_network_error(
            max_attempts=self.max_attempts,
            delay=self.retry_delay,
            backoff=self.retry_backoff,
        )(self._fetch_once)

    @classmethod
    def from_config(cls, config) -> 'MapboxIsochroneClient':
        return cls(
            access_token=config.mapbox_access_token,
            base_url=config.mapbox_url,
            timeout=config.provider_timeout,
            max_attempts=config.max_retry_attempts,
            retry_delay=config.retry_delay,
            retry_backoff=config.retry_backoff,
        )

    def _fetch_once(self, url: str, params: dict) -> dict:
        resp = self.session.get(url, params=params, timeout=self.timeout)
        if resp.status_code >= 400:
            if _is_retryable_status(resp.status_code):
                resp.raise_for_status()
            raise _api_error_from_response(resp)
        return resp.json()

    def create_isochrone(self, center: Coordinate, duration: int, transport_mode: TransportMode) -> Ring:
        lng, lat = center
        profile = MAPBOX_PROFILES[TransportMode(transport_mode)]
        url = f"{self.base_url.rstrip('/')}/isochrone/v1/mapbox/{profile}/{lng},{lat}"
        params = {
            "contours_minutes": str(int(duration)),
            "polygons": "true",
            "denoise": "1",
            "access_token": self.access_token,
        }

        start_time = time.perf_counter()
        data = self._fetch(url, params)
        if not isinstance(data, dict):
            raise IsochroneError("Provider response is not a GeoJSON object")

        ring = exterior_ring_from_geojson(data)

        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "External API call succeeded",
            service="mapbox",
            endpoint="/isochrone/v1",
            profile=profile,
            duration=duration,
            vertices=len(ring),
            latency_ms=round(latency_ms, 2),
        )
        return ring
