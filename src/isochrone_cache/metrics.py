"""Request counters and latency tracking for the isochrone cache."""

import threading
from dataclasses import asdict, dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class MetricsSnapshot:
    total_requests: int = 0
    cache_hits: int = 0
    interpolated_results: int = 0
    precomputed_hits: int = 0
    provider_calls: int = 0
    provider_failures: int = 0
    average_response_time_ms: float = 0.0
    hit_ratio: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class MetricsCollector:
    """Thread-safe counters updated by every get_isochrone call.

    average_response_time_ms is the running mean over completed calls
    (cache hits, interpolations and provider fetches).
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._total_requests = 0
            self._cache_hits = 0
            self._interpolated_results = 0
            self._precomputed_hits = 0
            self._provider_calls = 0
            self._provider_failures = 0
            self._completed = 0
            self._total_response_ms = 0.0

    def record_request(self) -> None:
        with self._lock:
            self._total_requests += 1

    def record_hit(self, precomputed: bool = False) -> None:
        with self._lock:
            self._cache_hits += 1
            if precomputed:
                self._precomputed_hits += 1

    def record_interpolation(self) -> None:
        with self._lock:
            self._interpolated_results += 1

    def record_provider_call(self, success: bool) -> None:
        with self._lock:
            self._provider_calls += 1
            if not success:
                self._provider_failures += 1

    def record_response_time(self, elapsed_ms: float) -> None:
        with self._lock:
            self._completed += 1
            self._total_response_ms += elapsed_ms

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            average = self._total_response_ms / self._completed if self._completed else 0.0
            hit_ratio = self._cache_hits / self._total_requests if self._total_requests else 0.0
            return MetricsSnapshot(
                total_requests=self._total_requests,
                cache_hits=self._cache_hits,
                interpolated_results=self._interpolated_results,
                precomputed_hits=self._precomputed_hits,
                provider_calls=self._provider_calls,
                provider_failures=self._provider_failures,
                average_response_time_ms=average,
                hit_ratio=hit_ratio,
            )
