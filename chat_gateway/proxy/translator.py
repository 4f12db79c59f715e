from dataclasses import dataclass, field
from types import MappingProxyType

from .errors import InvalidRequestError
from .normalize import generate_request_body


@dataclass(frozen=True)
class ChatCompletionRequest:
    messages: object
    model: object = None
    stream: bool = True
    tools: object = None
    params: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))


def _is_truthy(value):
    if value is None or value is False or value == "":
        return False
    if isinstance(value, (int, float)):
        return value == value and value != 0
    return True


def parse_chat_request(body):
    """Split an inbound chat-completions body into its known fields.

    Only the presence of ``messages`` is checked. Every field other than
    ``messages``, ``model``, ``stream`` and ``tools`` is kept verbatim in
    ``params``.
    """
    messages = body.get("messages") if isinstance(body, dict) else None
    if not _is_truthy(messages):
        raise InvalidRequestError("messages is required")
    params = dict(body)
    params.pop("messages")
    model = params.pop("model", None)
    stream = params.pop("stream") if "stream" in params else True
    tools = params.pop("tools", None)
    return ChatCompletionRequest(
        messages=messages,
        model=model,
        stream=_is_truthy(stream),
        tools=tools,
        params=MappingProxyType(params),
    )


def build_backend_request(chat_request, settings):
    return generate_request_body(
        chat_request.messages,
        chat_request.model,
        dict(chat_request.params),
        chat_request.tools,
        settings=settings,
    )
