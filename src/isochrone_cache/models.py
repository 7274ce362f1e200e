"""Pydantic models for API request and response schemas."""

from pydantic import BaseModel, Field
from typing import List, Literal, Optional, Tuple

from .domain import TransportMode


class IsochroneQuery(BaseModel):
    lng: float = Field(..., ge=-180, le=180, description="Center longitude")
    lat: float = Field(..., ge=-90, le=90, description="Center latitude")
    duration: int = Field(..., ge=1, le=60, description="Travel time budget in minutes")
    mode: TransportMode = TransportMode.WALKING
    simplified: bool = False


class PolygonGeometry(BaseModel):
    """GeoJSON Polygon geometry"""
    type: Literal["Polygon"] = "Polygon"
    coordinates: List[List[Tuple[float, float]]]  # [[(lon, lat), (lon, lat), ...]]


class IsochroneProperties(BaseModel):
    duration: int
    mode: TransportMode
    simplified: bool = False


class IsochroneFeature(BaseModel):
    type: Literal["Feature"] = "Feature"
    properties: IsochroneProperties
    geometry: PolygonGeometry


class MetricsModel(BaseModel):
    total_requests: int = 0
    cache_hits: int = 0
    interpolated_results: int = 0
    precomputed_hits: int = 0
    provider_calls: int = 0
    provider_failures: int = 0
    average_response_time_ms: float = 0.0
    hit_ratio: float = Field(default=0.0, ge=0, le=1)


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Optional[list] = None
