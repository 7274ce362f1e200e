"""Services package for business logic components."""

from .isochrone_service import IsochroneCacheService

__all__ = [
    'IsochroneCacheService',
]
