import re
import secrets
import time

from flask import g, request

from isochrone_cache.logging_config import bind_trace_id, clear_trace_id, get_logger

logger = get_logger(__name__)

TRACE_HEADER = 'X-Trace-ID'
_VALID_TRACE_ID = re.compile(r'^[A-Za-z0-9_\-]{1,64}$')


def _generate_trace_id() -> str:
    """Return a trace ID like 'req_7f3a9b2c'."""
    return f"req_{secrets.token_hex(4)}"


def get_trace_id() -> str:
    """Trace ID for the current request.

    A well-formed ID supplied by the caller (e.g. the map front-end) is
    reused so its logs and ours can be joined; anything else is replaced.
    """
    if 'trace_id' not in g:
        incoming = request.headers.get(TRACE_HEADER, '')
        g.trace_id = incoming if _VALID_TRACE_ID.match(incoming) else _generate_trace_id()
    return g.trace_id


def _start_trace():
    bind_trace_id(get_trace_id())
    g.start_time = time.perf_counter()


def _log_request(response):
    duration_ms = (time.perf_counter() - g.get('start_time', time.perf_counter())) * 1000
    logger.info(
        "API request completed",
        method=request.method,
        endpoint=request.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2)
    )
    response.headers[TRACE_HEADER] = get_trace_id()
    return response


def _end_trace(exception):
    # Runs even when the view raised, so contexts never leak across requests
    clear_trace_id()


class RequestTracing:
    def __init__(self, app=None):
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        app.before_request(_start_trace)
        app.after_request(_log_request)
        app.teardown_request(_end_trace)
