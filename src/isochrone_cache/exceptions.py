"""Common exception classes for the isochrone cache."""


class IsochroneCacheError(Exception):
    """Base exception for all isochrone-cache errors."""
    pass


class ConfigurationError(IsochroneCacheError):
    """Raised when there's an issue with application configuration."""
    pass


class NetworkError(IsochroneCacheError):
    """Raised when the isochrone provider cannot be reached."""
    pass


class APIError(IsochroneCacheError):
    """Raised when an external API returns an error."""

    def __init__(self, message: str, status_code: int = None, response_data: dict = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class IsochroneError(IsochroneCacheError):
    """Raised when the provider response holds no usable polygon."""
    pass


class StoreError(IsochroneCacheError):
    """Raised when the durable tier cannot be read or written."""
    pass


class InterpolationError(IsochroneCacheError):
    """Raised when two cached polygons cannot be blended."""
    pass
