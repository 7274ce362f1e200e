"""Configuration management for the isochrone cache."""

import os
from dataclasses import dataclass, field
from typing import List, Tuple
from dotenv import load_dotenv

from .domain import PrecomputeArea, default_precompute_areas
from .exceptions import ConfigurationError

# Support custom ENV_FILE for loading different .env files
# e.g., ENV_FILE=.env.prod gunicorn ...
env_file = os.getenv("ENV_FILE", ".env")
load_dotenv(env_file)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AppConfig:
    """Central configuration for the isochrone cache."""

    # Provider
    mapbox_access_token: str
    mapbox_url: str = field(default_factory=lambda: os.getenv("MAPBOX_URL", "https://api.mapbox.com"))
    provider_timeout: Tuple[int, int] = (5, 30)
    max_duration_minutes: int = 60  # Mapbox contours_minutes upper bound

    # Environment Settings
    env: str = field(default_factory=lambda: os.getenv("ENV", "local"))

    # Cache Settings
    cache_db_path: str = field(default_factory=lambda: os.getenv("CACHE_DB_PATH", "isochrone-cache.db"))
    memory_cache_maxsize: int = 512
    base_ttl_hours: float = 24

    # Geometry Settings
    simplify_tolerance: float = 0.001  # degrees, roughly 100 m
    interpolation_radius_m: float = 2000
    interpolation_scan_durable: bool = False

    # Retry Settings
    max_retry_attempts: int = 3
    retry_delay: float = 1
    retry_backoff: float = 2

    # Precompute Settings
    precompute_enabled: bool = field(default_factory=lambda: _env_flag("PRECOMPUTE_ENABLED", True))
    precompute_initial_delay: float = 5
    precompute_interval: float = 3600  # seconds
    precompute_refresh_hours: float = 24
    precompute_call_delay: float = 0.5
    precompute_area_delay: float = 2.0
    precompute_areas: List[PrecomputeArea] = field(default_factory=default_precompute_areas)

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Create configuration from environment variables."""
        mapbox_access_token = os.getenv("MAPBOX_ACCESS_TOKEN")

        if not mapbox_access_token:
            raise ConfigurationError("MAPBOX_ACCESS_TOKEN environment variable not set")

        return cls(mapbox_access_token=mapbox_access_token)

    def validate(self) -> None:
        """Validate configuration values."""
        if not self.mapbox_access_token:
            raise ConfigurationError("Mapbox access token must not be empty")
        if not self.mapbox_url:
            raise ConfigurationError("Mapbox URL must not be empty")
        if any(t <= 0 for t in self.provider_timeout):
            raise ConfigurationError("Provider timeout values must be positive")
        if self.max_duration_minutes <= 0:
            raise ConfigurationError("Max duration must be positive")
        if self.memory_cache_maxsize <= 0:
            raise ConfigurationError("Memory cache size must be positive")
        if self.base_ttl_hours <= 0:
            raise ConfigurationError("Base TTL must be positive")
        if self.simplify_tolerance < 0:
            raise ConfigurationError(f"Simplify tolerance must be non-negative, got {self.simplify_tolerance}")
        if self.interpolation_radius_m <= 0:
            raise ConfigurationError("Interpolation radius must be positive")
        if self.max_retry_attempts < 1:
            raise ConfigurationError("At least one provider attempt is required")

        delays = {
            'precompute_initial_delay': self.precompute_initial_delay,
            'precompute_interval': self.precompute_interval,
            'precompute_call_delay': self.precompute_call_delay,
            'precompute_area_delay': self.precompute_area_delay,
        }
        for name, value in delays.items():
            if value < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {value}")

        for area in self.precompute_areas:
            min_lng, min_lat, max_lng, max_lat = area.bbox
            if min_lng > max_lng or min_lat > max_lat:
                raise ConfigurationError(f"Precompute area {area.label} has an inverted bbox")
            bad = [d for d in area.durations if d <= 0 or d > self.max_duration_minutes]
            if bad:
                raise ConfigurationError(f"Precompute area {area.label} has out-of-range durations: {bad}")

    @property
    def base_ttl_seconds(self) -> float:
        return self.base_ttl_hours * 3600

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.env == "prod"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.env in ("local", "dev")

    @property
    def log_format(self) -> str:
        """Get log format based on environment."""
        return "json" if self.is_production else "text"

    @property
    def log_level(self) -> str:
        """Get log level based on environment."""
        if self.is_production:
            return os.getenv("LOG_LEVEL", "INFO")
        else:
            return os.getenv("LOG_LEVEL", "DEBUG")
