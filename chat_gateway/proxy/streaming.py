import itertools
import json
import time
from dataclasses import dataclass

from .errors import _error_message
from .logger import logger
from .logging_utils import _log_backend_chunk, _log_tool_calls

DONE_FRAME = "data: [DONE]\n\n"
ERROR_MARKER = "错误: "

_NO_CHUNK = object()


@dataclass(frozen=True)
class ResponseEnvelope:
    """Identity fields shared by every unit emitted for one request."""

    id: str
    created: int
    model: object

    @classmethod
    def start(cls, model, now=None):
        now = time.time() if now is None else now
        return cls(id=f"chatcmpl-{int(now * 1000)}", created=int(now), model=model)

    def fields(self, object_type):
        # A request without a model gets no "model" key at all.
        fields = {"id": self.id, "object": object_type, "created": self.created}
        if self.model is not None:
            fields["model"] = self.model
        return fields


def _finish_reason(saw_tool_calls):
    return "tool_calls" if saw_tool_calls else "stop"


def _chat_completion_chunk(envelope, delta, finish_reason=None):
    return dict(
        envelope.fields("chat.completion.chunk"),
        choices=[
            {
                "index": 0,
                "delta": delta,
                "finish_reason": finish_reason,
            }
        ],
    )


def _sse(payload):
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _chunk_delta(chunk):
    if chunk.is_tool_calls:
        return {"tool_calls": list(chunk.tool_calls)}
    return {"content": chunk.text}


def _open_stream(chunks):
    """Start the backend call and wait for its first chunk.

    A failure raised here happens before any byte reaches the client, so the
    caller can still pick the error path for its mode.
    """
    chunks = iter(chunks)
    first = next(chunks, _NO_CHUNK)
    if first is _NO_CHUNK:
        return iter(())
    return itertools.chain((first,), chunks)


def _stream_chat_sse(envelope, chunks):
    saw_tool_calls = False
    for chunk in chunks:
        _log_backend_chunk(chunk)
        if chunk.is_tool_calls:
            saw_tool_calls = True
            _log_tool_calls(chunk.tool_calls, "stream")
        yield _sse(_chat_completion_chunk(envelope, _chunk_delta(chunk)))
    yield _sse(_chat_completion_chunk(envelope, {}, finish_reason=_finish_reason(saw_tool_calls)))
    yield DONE_FRAME


def _stream_error_sse(envelope, error):
    content = f"{ERROR_MARKER}{_error_message(error)}"
    yield _sse(_chat_completion_chunk(envelope, {"content": content}))
    yield _sse(_chat_completion_chunk(envelope, {}, finish_reason="stop"))
    yield DONE_FRAME


def _safe_stream(generator, request_id, start_time, method, path):
    status = 200
    try:
        for frame in generator:
            yield frame
    except (BrokenPipeError, ConnectionResetError):
        status = 499
        logger.info(
            "Stream client disconnect request_id=%s method=%s path=%s",
            request_id,
            method,
            path,
        )
    except Exception:
        # Output is already on the wire; the stream ends without a closing frame.
        status = 500
        logger.exception(
            "Backend failed mid-stream request_id=%s method=%s path=%s",
            request_id,
            method,
            path,
        )
    finally:
        duration_ms = (time.time() - start_time) * 1000.0 if start_time else 0.0
        logger.info(
            "request.complete request_id=%s method=%s path=%s status=%s duration_ms=%.2f stream=True",
            request_id,
            method,
            path,
            status,
            duration_ms,
        )


class CompletionAccumulator:
    """Collects backend chunks for a buffered (non-streaming) reply."""

    def __init__(self):
        self.content_parts = []
        self.tool_calls = []

    def add(self, chunk):
        _log_backend_chunk(chunk)
        if chunk.is_tool_calls:
            self.tool_calls = list(chunk.tool_calls)
        else:
            self.content_parts.append(chunk.text)

    def to_completion(self, envelope):
        message = {"role": "assistant", "content": "".join(self.content_parts)}
        if self.tool_calls:
            message["tool_calls"] = self.tool_calls
            _log_tool_calls(self.tool_calls, "buffered")
        return dict(
            envelope.fields("chat.completion"),
            choices=[
                {
                    "index": 0,
                    "message": message,
                    "finish_reason": _finish_reason(bool(self.tool_calls)),
                }
            ],
        )
