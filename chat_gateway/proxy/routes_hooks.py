import time
import uuid

from flask import g, request
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from .config import get_settings
from .errors import _error
from .logger import logger
from .logging_utils import _log_request_complete
from .routes_auth import _authorize_request


def _payload_too_large():
    limit = get_settings().max_request_size
    return _error(f"请求体过大，最大支持 {limit}", status=413)


def register_request_hooks(app):
    @app.before_request
    def _start_request():
        request_id = request.headers.get("X-Request-ID") or request.headers.get("X-Request-Id")
        if not request_id:
            request_id = uuid.uuid4().hex
        g.request_id = request_id
        g.start_time = time.time()

    @app.before_request
    def _enforce_size_limit():
        if request.content_length is not None and request.content_length > get_settings().max_request_bytes:
            logger.warning(
                "Request body too large request_id=%s method=%s path=%s length=%s",
                g.request_id,
                request.method,
                request.path,
                request.content_length,
            )
            return _payload_too_large()
        return None

    app.before_request(_authorize_request)

    @app.after_request
    def _finalize_request(response):
        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers.setdefault("X-Request-ID", request_id)
        if not response.is_streamed:
            _log_request_complete(response.status_code, stream=False)
        return response

    @app.errorhandler(RequestEntityTooLarge)
    def _handle_too_large(error):
        return _payload_too_large()

    @app.errorhandler(Exception)
    def _handle_exception(error):
        if isinstance(error, HTTPException):
            logger.warning(
                "HTTP error request_id=%s method=%s path=%s status=%s message=%s",
                getattr(g, "request_id", None),
                request.method,
                request.path,
                error.code,
                error.description,
            )
            return _error(error.description, status=error.code)
        logger.exception(
            "Unhandled error request_id=%s method=%s path=%s",
            getattr(g, "request_id", None),
            request.method,
            request.path,
        )
        return _error("Internal server error.", status=500)
