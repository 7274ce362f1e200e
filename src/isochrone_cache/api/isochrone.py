from flask import Blueprint, current_app
from flask_pydantic import validate

from isochrone_cache.models import (
    ErrorResponse,
    IsochroneFeature,
    IsochroneProperties,
    IsochroneQuery,
    MetricsModel,
    PolygonGeometry,
)
from isochrone_cache.services import IsochroneCacheService


def get_isochrone_service() -> IsochroneCacheService:
    return current_app.isochrone_service


bp = Blueprint('isochrone', __name__, url_prefix='/api/isochrone')


@bp.get('')
@validate()
def get_isochrone(query: IsochroneQuery):
    service = get_isochrone_service()
    ring = service.get_isochrone(
        (query.lng, query.lat),
        query.duration,
        query.mode,
        use_simplified=query.simplified,
    )

    if ring is None:
        error = ErrorResponse(
            error="not_found",
            message=f"No {query.mode.value} isochrone available for {query.duration} minutes",
        )
        return error.model_dump(exclude_none=True), 404

    feature = IsochroneFeature(
        properties=IsochroneProperties(
            duration=query.duration,
            mode=query.mode,
            simplified=query.simplified,
        ),
        geometry=PolygonGeometry(coordinates=[list(ring)]),
    )
    return feature.model_dump(mode="json")


@bp.get('/metrics')
def metrics():
    snapshot = get_isochrone_service().get_metrics()
    return MetricsModel(**snapshot.to_dict()).model_dump()


@bp.delete('/cache')
def clear_cache():
    get_isochrone_service().clear_cache()
    return '', 204
