import json

import pytest

from chat_gateway.app import create_app
from chat_gateway.proxy import client as client_module
from chat_gateway.proxy import routes_chat as routes_chat_module
from chat_gateway.proxy.config import GatewaySettings


class FakeBackend:
    """Stands in for the upstream call; replays ``chunks`` then raises ``error``."""

    def __init__(self):
        self.chunks = []
        self.error = None
        self.calls = []

    def iter_assistant_response(self, request_body, settings, token=None):
        self.calls.append({"body": request_body, "token": token})
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


def make_settings(tmp_path, **overrides):
    values = {
        "data_dir": str(tmp_path / "data"),
        "public_dir": str(tmp_path / "public"),
        "openai_api_key": "sk-upstream",
    }
    values.update(overrides)
    return GatewaySettings(**values)


def parse_sse(response):
    text = response.get_data(as_text=True)
    frames = [frame for frame in text.split("\n\n") if frame]
    parsed = []
    for frame in frames:
        assert frame.startswith("data: ")
        body = frame[len("data: "):]
        parsed.append(body if body == "[DONE]" else json.loads(body))
    return parsed


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def app(settings):
    app = create_app(settings)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def backend(monkeypatch):
    fake = FakeBackend()
    monkeypatch.setattr(routes_chat_module, "iter_assistant_response", fake.iter_assistant_response)
    monkeypatch.setattr(client_module, "iter_assistant_response", fake.iter_assistant_response)
    return fake
