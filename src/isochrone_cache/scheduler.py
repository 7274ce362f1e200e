"""Background warming of popular areas."""

import threading
import time
from typing import Callable, Iterable, List, Optional

from .domain import Coordinate, PrecomputeArea, Ring, TransportMode
from .logging_config import get_logger

logger = get_logger(__name__)

FetchFunc = Callable[[Coordinate, int, TransportMode], Optional[Ring]]


class PrecomputeScheduler:
    """Periodically walks precompute areas and warms the cache through fetch.

    A sweep that finds another one in progress is skipped outright. Areas
    run in descending priority (ties keep list order) and are left alone
    for refresh_after seconds once fully swept.
    """

    def __init__(
        self,
        fetch: FetchFunc,
        areas: Optional[Iterable[PrecomputeArea]] = None,
        initial_delay: float = 5,
        interval: float = 3600,
        refresh_after: float = 24 * 3600,
        call_delay: float = 0.5,
        area_delay: float = 2.0,
        clock: Callable[[], float] = time.time,
    ):
        self._fetch = fetch
        self.areas: List[PrecomputeArea] = list(areas or [])
        self.initial_delay = initial_delay
        self.interval = interval
        self.refresh_after = refresh_after
        self.call_delay = call_delay
        self.area_delay = area_delay
        self._clock = clock

        self._sweep_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_precomputing(self) -> bool:
        return self._sweep_lock.locked()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def set_areas(self, areas: Iterable[PrecomputeArea]) -> None:
        self.areas = list(areas)

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="isochrone-precompute", daemon=True)
        self._thread.start()
        logger.info("Precompute scheduler started", areas=len(self.areas),
                    initial_delay=self.initial_delay, interval=self.interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Precompute scheduler stopped")

    def _loop(self) -> None:
        if self._stop_event.wait(self.initial_delay):
            return
        while not self._stop_event.is_set():
            self.run_once()
            if self._stop_event.wait(self.interval):
                return

    def _pause(self, seconds: float) -> bool:
        """Sleep unless stopped; True when the scheduler was asked to stop."""
        return self._stop_event.wait(seconds) if seconds > 0 else self._stop_event.is_set()

    def run_once(self) -> int:
        """Run one sweep and return the number of combinations warmed.

        Returns 0 without doing anything if a sweep is already running.
        """
        if not self._sweep_lock.acquire(blocking=False):
            logger.debug("Precompute sweep already running, skipping tick")
            return 0

        warmed = 0
        logger.info("Starting background isochrone precomputation")
        try:
            for area in sorted(self.areas, key=lambda a: a.priority, reverse=True):
                if self._clock() - area.last_computed_at < self.refresh_after:
                    continue

                area_warmed, stopped = self._precompute_area(area)
                warmed += area_warmed
                if stopped:
                    break
                area.last_computed_at = self._clock()
                logger.info("Precomputed area", area=area.label, warmed=area_warmed)

                if self._pause(self.area_delay):
                    break
        except Exception as e:
            logger.error("Precomputation error", error_type=type(e).__name__, error_message=str(e))
        finally:
            self._sweep_lock.release()
            logger.info("Background precomputation completed", warmed=warmed)
        return warmed

    def _precompute_area(self, area: PrecomputeArea):
        center = area.center
        warmed = 0
        for duration in area.durations:
            for mode in area.transport_modes:
                try:
                    if self._fetch(center, duration, mode) is not None:
                        warmed += 1
                    else:
                        logger.warning("Precomputation returned no polygon", area=area.label,
                                       duration=duration, transport_mode=str(mode))
                except Exception as e:
                    logger.warning("Precomputation failed", area=area.label, duration=duration,
                                   transport_mode=str(mode), error_type=type(e).__name__,
                                   error_message=str(e))
                if self._pause(self.call_delay):
                    return warmed, True
        return warmed, False
