from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version

from flask import Blueprint, current_app

bp = Blueprint('health', __name__)


def _package_version() -> str:
    try:
        return version('isochrone-cache')
    except PackageNotFoundError:
        return 'unknown'


@bp.route('/health')
def health():
    service = current_app.isochrone_service
    return {
        'status': 'healthy',
        'version': _package_version(),
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'memory_entries': len(service.store.memory),
        'precomputing': service.scheduler.is_precomputing,
    }
