import time
import uuid

from flask import Response, g, jsonify, request, stream_with_context

from .client import generate_assistant_response, iter_assistant_response
from .config import get_settings
from .errors import InvalidRequestError, _error, _handle_backend_error
from .logger import logger
from .logging_utils import _log_payload
from .routes_auth import _extract_bearer_token
from .streaming import (
    CompletionAccumulator,
    ResponseEnvelope,
    _open_stream,
    _safe_stream,
    _stream_chat_sse,
    _stream_error_sse,
)
from .translator import build_backend_request, parse_chat_request

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


def _sse_response(generator):
    request_id = getattr(g, "request_id", uuid.uuid4().hex)
    start_time = getattr(g, "start_time", time.time())
    safe_stream = _safe_stream(generator, request_id, start_time, request.method, request.path)
    return Response(
        stream_with_context(safe_stream),
        mimetype="text/event-stream",
        headers=SSE_HEADERS,
    )


def register_chat_routes(app):
    @app.post("/v1/chat/completions")
    def create_chat_completion():
        settings = get_settings()
        payload = request.get_json(silent=True)
        if payload is None:
            return _error("Invalid or missing JSON body.", status=400)
        _log_payload("incoming.raw", payload)
        try:
            chat_request = parse_chat_request(payload)
        except InvalidRequestError as exc:
            return _error(str(exc), status=exc.status_code)

        request_body = build_backend_request(chat_request, settings)
        _log_payload("outgoing.payload", request_body)
        envelope = ResponseEnvelope.start(chat_request.model)
        token = _extract_bearer_token()

        if chat_request.stream:
            try:
                chunks = _open_stream(iter_assistant_response(request_body, settings, token=token))
            except Exception as exc:
                logger.exception("Backend error before stream start on /v1/chat/completions.")
                return _sse_response(_stream_error_sse(envelope, exc))
            return _sse_response(_stream_chat_sse(envelope, chunks))

        accumulator = CompletionAccumulator()
        try:
            generate_assistant_response(request_body, accumulator.add, settings, token=token)
        except Exception as exc:
            logger.exception("Backend error on /v1/chat/completions.")
            return _handle_backend_error(exc)
        return jsonify(accumulator.to_completion(envelope))
