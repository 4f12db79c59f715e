import json
import time

from flask import g, request

from .config import get_settings
from .logger import logger

_SUMMARY_MAX_DEPTH = 6
_SUMMARY_MAX_ITEMS = 50


def _truncate_log(value, max_chars=None):
    if value is None:
        return ""
    if max_chars is None:
        max_chars = get_settings().log_max_chars
    text = value if isinstance(value, str) else str(value)
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars]}...<truncated>"


def _safe_json_dumps(value):
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def _summarize_payload(value, depth=0, max_chars=2000):
    if depth >= _SUMMARY_MAX_DEPTH:
        return "<max_depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return _truncate_log(value, max_chars)
    if isinstance(value, bytes):
        return f"<bytes:{len(value)}>"
    if isinstance(value, dict):
        result = {}
        items = list(value.items())
        for idx, (key, val) in enumerate(items):
            if idx >= _SUMMARY_MAX_ITEMS:
                result["<truncated_keys>"] = len(items) - _SUMMARY_MAX_ITEMS
                break
            result[str(key)] = _summarize_payload(val, depth + 1, max_chars)
        return result
    if isinstance(value, (list, tuple)):
        items = list(value)
        summarized = [_summarize_payload(item, depth + 1, max_chars) for item in items[:_SUMMARY_MAX_ITEMS]]
        if len(items) > _SUMMARY_MAX_ITEMS:
            summarized.append(f"<truncated_items:{len(items) - _SUMMARY_MAX_ITEMS}>")
        return summarized
    return _truncate_log(str(value), max_chars)


def _log_payload(label, payload):
    settings = get_settings()
    if not settings.log_payloads:
        return
    summarized = _summarize_payload(payload, max_chars=settings.log_max_chars)
    logger.info("%s=%s", label, _truncate_log(_safe_json_dumps(summarized), settings.log_max_chars * 2))


def _log_backend_chunk(chunk):
    settings = get_settings()
    if not settings.log_stream_events:
        return
    payload = chunk.tool_calls if chunk.is_tool_calls else chunk.text
    logger.info(
        "backend.chunk kind=%s payload=%s",
        chunk.kind,
        _truncate_log(_safe_json_dumps(payload), settings.log_max_chars),
    )


def _log_tool_calls(tool_calls, source):
    settings = get_settings()
    if not settings.log_tool_calls:
        return
    for call in tool_calls or []:
        function = call.get("function") or {}
        logger.info(
            "Tool call (%s) name=%s call_id=%s arguments=%s",
            source,
            function.get("name"),
            call.get("id"),
            _truncate_log(function.get("arguments"), settings.log_max_chars),
        )


def _log_request_complete(status_code, stream=False):
    start_time = getattr(g, "start_time", None)
    duration_ms = (time.time() - start_time) * 1000.0 if start_time else 0.0
    logger.info(
        "request.complete request_id=%s method=%s path=%s status=%s duration_ms=%.2f stream=%s",
        getattr(g, "request_id", None),
        request.method,
        request.path,
        status_code,
        duration_ms,
        stream,
    )
