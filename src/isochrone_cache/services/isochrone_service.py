"""Isochrone service: cached, interpolated and precomputed reachability polygons."""

import threading
import time
from typing import Callable, Iterable, Optional

import requests

from ..config import AppConfig
from ..domain import Coordinate, IsochroneEntry, PrecomputeArea, Ring, TransportMode, as_ring
from ..exceptions import IsochroneCacheError, StoreError
from ..interpolation import SpatialInterpolator
from ..logging_config import get_logger
from ..mapbox_client import MapboxIsochroneClient
from ..metrics import MetricsCollector, MetricsSnapshot
from ..policies import assess_quality, cache_key, compute_ttl
from ..scheduler import PrecomputeScheduler
from ..simplify import simplify_ring
from ..store import CacheStore, DurableStore, MemoryTier, SqliteIsochroneStore

logger = get_logger(__name__)


class IsochroneCacheService:
    """Serves isochrones from cache, interpolation or the provider.

    One instance is built by the application factory and shared by every
    consumer. The provider only needs a ``create_isochrone(center, duration,
    mode)`` method returning a ring or raising.

    Concurrent misses on the same key are not coalesced: each caller hits
    the provider and writes its own (identical) entry.
    """

    def __init__(
        self,
        config: AppConfig,
        provider=None,
        durable: Optional[DurableStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self._provider = provider
        self._clock = clock
        self.store = CacheStore(
            durable if durable is not None else SqliteIsochroneStore(config.cache_db_path),
            MemoryTier(config.memory_cache_maxsize),
        )
        self.interpolator = SpatialInterpolator(
            self.store,
            radius_m=config.interpolation_radius_m,
            include_durable=config.interpolation_scan_durable,
            clock=clock,
        )
        self.metrics = MetricsCollector()
        self.scheduler = PrecomputeScheduler(
            fetch=self.precompute_isochrone,
            initial_delay=config.precompute_initial_delay,
            interval=config.precompute_interval,
            refresh_after=config.precompute_refresh_hours * 3600,
            call_delay=config.precompute_call_delay,
            area_delay=config.precompute_area_delay,
            clock=clock,
        )
        # Keys written by the scheduler in this process, for precomputed_hits
        self._precomputed_keys = set()
        self._precomputed_lock = threading.Lock()
        self._initialized = False

    @property
    def provider(self):
        """Lazy initialization of the Mapbox client."""
        if self._provider is None:
            self._provider = MapboxIsochroneClient.from_config(self.config)
        return self._provider

    def initialize(self, areas: Optional[Iterable[PrecomputeArea]] = None, start_scheduler: bool = True) -> None:
        """Open the durable tier, seed precompute areas and start warming."""
        if self._initialized:
            return
        try:
            self.store.durable.open()
        except StoreError as e:
            # Memory tier still works; reads miss and writes stay in-process
            logger.error("Durable tier unavailable, running memory-only", error_message=str(e))

        self.scheduler.set_areas(areas if areas is not None else self.config.precompute_areas)
        if start_scheduler and self.config.precompute_enabled:
            self.scheduler.start()

        self._initialized = True
        logger.info("IsochroneCacheService initialized",
                    precompute_areas=len(self.scheduler.areas),
                    precompute_enabled=self.config.precompute_enabled)

    def shutdown(self) -> None:
        self.scheduler.stop()
        self.store.durable.close()
        self._initialized = False

    def get_isochrone(
        self,
        center: Coordinate,
        duration: int,
        transport_mode: TransportMode,
        use_simplified: bool = False,
    ) -> Optional[Ring]:
        """Return an isochrone ring, or None when none can be produced."""
        return self._serve(center, duration, transport_mode, use_simplified, precompute=False)

    def precompute_isochrone(self, center: Coordinate, duration: int, transport_mode: TransportMode) -> Optional[Ring]:
        """Same path as get_isochrone, attributed to the precompute scheduler."""
        return self._serve(center, duration, transport_mode, False, precompute=True)

    def _serve(self, center, duration, transport_mode, use_simplified, precompute) -> Optional[Ring]:
        start_time = time.perf_counter()
        self.metrics.record_request()

        try:
            mode = TransportMode(transport_mode)
            center = (float(center[0]), float(center[1]))
            key = cache_key(center, duration, mode)

            cached = self.store.get(key)
            if cached is not None and not cached.is_expired(self._clock()):
                self.metrics.record_hit(precomputed=not precompute and self._was_precomputed(key))
                self._record_elapsed(start_time)
                logger.debug("Isochrone cache HIT", key=key)
                if use_simplified and cached.simplified_polygon is not None:
                    return cached.simplified_polygon
                return cached.polygon

            interpolated = self.interpolator.interpolate(center, duration, mode)
            if interpolated is not None:
                self.metrics.record_interpolation()
                self._record_elapsed(start_time)
                logger.debug("Isochrone interpolated", key=key, factor=round(interpolated.factor, 3))
                return interpolated.polygon

            logger.info("Fetching isochrone from provider", key=key)
            polygon = self._fetch_from_provider(center, duration, mode)
            if polygon is None:
                return None

            self._cache_isochrone(key, center, duration, mode, polygon)
            with self._precomputed_lock:
                if precompute:
                    self._precomputed_keys.add(key)
                else:
                    self._precomputed_keys.discard(key)
            self._record_elapsed(start_time)
            return polygon

        except Exception as e:
            logger.error("Isochrone cache error", error_type=type(e).__name__, error_message=str(e))
            return None

    def _fetch_from_provider(self, center, duration, mode) -> Optional[Ring]:
        try:
            polygon = self.provider.create_isochrone(center, duration, mode)
        except (IsochroneCacheError, requests.RequestException, ValueError) as e:
            self.metrics.record_provider_call(success=False)
            logger.warning("Provider returned no isochrone", duration=duration,
                           transport_mode=mode.value, error_type=type(e).__name__,
                           error_message=str(e))
            return None

        if not polygon:
            self.metrics.record_provider_call(success=False)
            return None
        self.metrics.record_provider_call(success=True)
        return as_ring(polygon)

    def _cache_isochrone(self, key, center, duration, mode, polygon: Ring) -> IsochroneEntry:
        try:
            simplified = simplify_ring(polygon, self.config.simplify_tolerance)
        except (ValueError, RecursionError) as e:
            logger.warning("Simplification failed, storing full polygon only", key=key,
                           error_type=type(e).__name__, error_message=str(e))
            simplified = None

        entry = IsochroneEntry(
            key=key,
            center=center,
            duration=int(duration),
            transport_mode=mode,
            polygon=polygon,
            simplified_polygon=simplified,
            created_at=self._clock(),
            ttl=compute_ttl(duration, mode, self.config.base_ttl_seconds),
            quality=assess_quality(polygon),
        )
        self.store.set(entry)
        logger.info("Isochrone cached", key=key, ttl_seconds=entry.ttl, quality=entry.quality.value,
                    vertices=len(polygon),
                    simplified_vertices=len(simplified) if simplified is not None else None)
        return entry

    def _was_precomputed(self, key: str) -> bool:
        with self._precomputed_lock:
            return key in self._precomputed_keys

    def _record_elapsed(self, start_time: float) -> None:
        self.metrics.record_response_time((time.perf_counter() - start_time) * 1000)

    def get_metrics(self) -> MetricsSnapshot:
        return self.metrics.snapshot()

    def clear_cache(self) -> None:
        self.store.clear()
        with self._precomputed_lock:
            self._precomputed_keys.clear()
        self.metrics.reset()
        logger.info("Isochrone cache cleared")
