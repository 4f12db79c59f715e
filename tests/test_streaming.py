import json

import pytest

from chat_gateway.proxy.client import BackendChunk
from chat_gateway.proxy.errors import BackendError
from chat_gateway.proxy.streaming import (
    DONE_FRAME,
    CompletionAccumulator,
    ResponseEnvelope,
    _open_stream,
    _safe_stream,
    _stream_chat_sse,
    _stream_error_sse,
)


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield


def _decode(frames):
    return [frame if frame == DONE_FRAME else json.loads(frame[len("data: "):]) for frame in frames]


def test_envelope_is_derived_from_one_timestamp():
    envelope = ResponseEnvelope.start("m", now=1700000000.5)
    assert envelope.id == "chatcmpl-1700000000500"
    assert envelope.created == 1700000000
    assert envelope.model == "m"


def test_open_stream_surfaces_first_failure():
    def failing():
        raise BackendError("no key")
        yield

    with pytest.raises(BackendError):
        _open_stream(failing())


def test_open_stream_defers_later_failures():
    def partial():
        yield BackendChunk.content("a")
        raise BackendError("late")

    chunks = _open_stream(partial())
    assert next(chunks) == BackendChunk.content("a")
    with pytest.raises(BackendError):
        next(chunks)


def test_open_stream_empty_backend():
    assert list(_open_stream(iter(()))) == []


def test_stream_frames_end_with_done(ctx):
    envelope = ResponseEnvelope.start("m", now=10.0)
    frames = list(_stream_chat_sse(envelope, [BackendChunk.content("x")]))
    assert frames[-1] == "data: [DONE]\n\n"
    decoded = _decode(frames[:-1])
    assert decoded[0]["choices"][0]["delta"] == {"content": "x"}
    assert decoded[1]["choices"][0]["delta"] == {}
    assert all(frame.endswith("\n\n") for frame in frames)


def test_stream_frames_keep_non_ascii_text(ctx):
    envelope = ResponseEnvelope.start("m", now=10.0)
    frames = list(_stream_chat_sse(envelope, [BackendChunk.content("你好")]))
    assert "你好" in frames[0]


def test_error_stream_uses_given_envelope():
    envelope = ResponseEnvelope.start("m", now=42.5)
    decoded = _decode(list(_stream_error_sse(envelope, BackendError("boom"))))
    assert decoded[0]["choices"][0]["delta"]["content"] == "错误: boom"
    assert decoded[1]["choices"][0]["finish_reason"] == "stop"
    assert decoded[2] == DONE_FRAME
    assert {frame["id"] for frame in decoded[:2]} == {"chatcmpl-42500"}
    assert {frame["created"] for frame in decoded[:2]} == {42}


def test_safe_stream_stops_quietly_after_failure():
    def broken():
        yield "data: first\n\n"
        raise BackendError("late")

    assert list(_safe_stream(broken(), "rid", None, "POST", "/v1/chat/completions")) == ["data: first\n\n"]


def test_accumulator_concatenates_and_replaces(ctx):
    accumulator = CompletionAccumulator()
    first = {"index": 0, "id": "a", "type": "function", "function": {"name": "f", "arguments": "{}"}}
    second = dict(first, id="b")
    accumulator.add(BackendChunk.content("He"))
    accumulator.add(BackendChunk.calls([first]))
    accumulator.add(BackendChunk.content("llo"))
    accumulator.add(BackendChunk.calls([second]))
    completion = accumulator.to_completion(ResponseEnvelope.start("m", now=1.0))
    choice = completion["choices"][0]
    assert choice["message"] == {"role": "assistant", "content": "Hello", "tool_calls": [second]}
    assert choice["finish_reason"] == "tool_calls"
    assert completion["id"] == "chatcmpl-1000"


def test_accumulator_without_chunks(ctx):
    completion = CompletionAccumulator().to_completion(ResponseEnvelope.start("m", now=1.0))
    assert completion["choices"][0]["message"] == {"role": "assistant", "content": ""}
    assert completion["choices"][0]["finish_reason"] == "stop"
