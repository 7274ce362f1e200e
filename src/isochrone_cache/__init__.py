import atexit
import os

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from .config import AppConfig
from .logging_config import configure_logging
from .tracing import RequestTracing


def _build_service(app_config: AppConfig):
    from .services import IsochroneCacheService

    app_config.validate()
    service = IsochroneCacheService(app_config)
    service.initialize()
    atexit.register(service.shutdown)
    return service


def create_app(test_config=None):
    """Application factory.

    Tests may pass ``ISOCHRONE_SERVICE`` in test_config to supply a service
    built around a fake provider; otherwise one is built from the environment.
    """
    env = os.getenv('ENV', 'local')

    # create and configure the app
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_mapping(
        SECRET_KEY='dev',
        RATELIMIT_DEFAULT='100/minute' if env in ('local', 'dev') else '60/minute',
    )
    app.json.ensure_ascii = False

    if test_config is None:
        # load the instance config, if it exists, when not testing
        app.config.from_pyfile('config.py', silent=True)
    else:
        # load the test config if passed in
        app.config.from_mapping(test_config)

    if not app.config.get('TESTING'):
        configure_logging()

    CORS(
        app,
        supports_credentials=False,
        origins=os.getenv('FRONTEND_URL', '*') if env == 'prod' else '*',
        methods=['GET', 'DELETE', 'OPTIONS'],
        allow_headers='*',
        expose_headers=['X-Trace-ID'],
    )

    limiter = Limiter(
        get_remote_address,
        default_limits=[app.config['RATELIMIT_DEFAULT']],
    )
    limiter.init_app(app)

    RequestTracing(app)

    service = app.config.get('ISOCHRONE_SERVICE')
    app.isochrone_service = service if service is not None else _build_service(AppConfig.from_env())

    from . import health
    app.register_blueprint(health.bp)

    from .api import isochrone
    app.register_blueprint(isochrone.bp)

    return app
