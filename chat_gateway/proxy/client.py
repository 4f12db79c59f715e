from dataclasses import dataclass

from openai import OpenAI

from .errors import BackendError
from .normalize import _ensure_json_str, _serialize_model

CONTENT = "content"
TOOL_CALLS = "tool_calls"

CLIENT_CACHE = {}


@dataclass(frozen=True)
class BackendChunk:
    """One unit of backend output: either a text delta or a tool-calls list."""

    kind: str
    text: str = ""
    tool_calls: tuple = ()

    @classmethod
    def content(cls, text):
        return cls(kind=CONTENT, text=text)

    @classmethod
    def calls(cls, tool_calls):
        return cls(kind=TOOL_CALLS, tool_calls=tuple(tool_calls))

    @property
    def is_tool_calls(self):
        return self.kind == TOOL_CALLS


def _get_client(api_key, settings):
    cache_key = (api_key, settings.openai_base_url)
    client = CLIENT_CACHE.get(cache_key)
    if client is None:
        client = OpenAI(
            api_key=api_key,
            base_url=settings.openai_base_url,
            timeout=settings.openai_timeout,
            max_retries=settings.openai_max_retries,
            organization=settings.openai_organization,
            project=settings.openai_project,
        )
        CLIENT_CACHE[cache_key] = client
    return client


def _resolve_upstream_key(incoming_token, settings):
    if settings.forward_auth_header:
        if not incoming_token:
            raise BackendError("Missing Authorization header for upstream forwarding.", status_code=401)
        return incoming_token
    if settings.openai_api_key:
        return settings.openai_api_key
    raise BackendError("OPENAI_API_KEY is not set.")


def _tool_call_from_item(item, index):
    return {
        "index": index,
        "id": item.get("call_id") or item.get("id") or f"call_{index + 1}",
        "type": "function",
        "function": {
            "name": item.get("name"),
            "arguments": _ensure_json_str(item.get("arguments"), "{}"),
        },
    }


def _event_error_message(data):
    error = data.get("error")
    if not error and isinstance(data.get("response"), dict):
        error = data["response"].get("error")
    if isinstance(error, dict):
        return error.get("message") or error.get("code") or "Upstream response failed."
    return data.get("message") or "Upstream response failed."


def iter_assistant_response(request_body, settings, token=None):
    """Yield ``BackendChunk`` values for one upstream call, in arrival order.

    Text deltas are yielded as they arrive. Function calls are collected and
    yielded once, as a single tool-calls chunk, when the response finishes.
    """
    client = _get_client(_resolve_upstream_key(token, settings), settings)
    tool_calls = []
    for event in client.responses.create(**request_body, stream=True):
        data = _serialize_model(event)
        if not isinstance(data, dict):
            continue
        event_type = data.get("type")

        if event_type == "response.output_text.delta":
            text_delta = _ensure_json_str(data.get("delta"), "")
            if text_delta:
                yield BackendChunk.content(text_delta)
            continue

        if event_type == "response.output_item.done":
            item = data.get("item") or {}
            if isinstance(item, dict) and item.get("type") == "function_call":
                tool_calls.append(_tool_call_from_item(item, len(tool_calls)))
            continue

        if event_type in {"response.failed", "error"}:
            raise BackendError(_event_error_message(data))

        if event_type in {"response.completed", "response.incomplete"}:
            break

    if tool_calls:
        yield BackendChunk.calls(tool_calls)


def generate_assistant_response(request_body, callback, settings, token=None):
    for chunk in iter_assistant_response(request_body, settings, token=token):
        callback(chunk)


def get_available_models(settings, token=None):
    client = _get_client(_resolve_upstream_key(token, settings), settings)
    models = _serialize_model(client.models.list())
    if isinstance(models, dict):
        models.setdefault("object", "list")
    return models
