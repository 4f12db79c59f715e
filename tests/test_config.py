import pytest

from chat_gateway.proxy.config import GatewaySettings, parse_size


@pytest.mark.parametrize(
    "value, expected",
    [
        ("50mb", 50 * 1024 * 1024),
        ("1kb", 1024),
        ("10", 10),
        ("2GB", 2 * 1024 ** 3),
        ("1.5kb", 1536),
        (4096, 4096),
    ],
)
def test_parse_size(value, expected):
    assert parse_size(value) == expected


def test_parse_size_rejects_garbage():
    with pytest.raises(ValueError):
        parse_size("lots")


def test_defaults_from_env(monkeypatch):
    for name in ("GATEWAY_HOST", "GATEWAY_PORT", "GATEWAY_API_KEY", "GATEWAY_MAX_REQUEST_SIZE", "OPENAI_BASE_URL"):
        monkeypatch.delenv(name, raising=False)
    settings = GatewaySettings.from_env()
    assert settings.host == "0.0.0.0"
    assert settings.port == 8045
    assert settings.api_key is None
    assert settings.max_request_size == "50mb"
    assert settings.openai_base_url == "https://api.openai.com/v1"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("GATEWAY_PORT", "9000")
    monkeypatch.setenv("GATEWAY_API_KEY", "secret")
    monkeypatch.setenv("GATEWAY_MAX_REQUEST_SIZE", "2mb")
    monkeypatch.setenv("OPENAI_BASE_URL", "http://upstream:8080/")
    monkeypatch.setenv("OPENAI_PARAM_DEFAULTS", "{\"temperature\": 0.7}")
    monkeypatch.setenv("OPENAI_PARAM_DROP", "user, seed")
    monkeypatch.setenv("GATEWAY_LOG_PAYLOADS", "yes")
    settings = GatewaySettings.from_env()
    assert settings.port == 9000
    assert settings.api_key == "secret"
    assert settings.max_request_bytes == 2 * 1024 * 1024
    assert settings.openai_base_url == "http://upstream:8080/v1"
    assert settings.param_defaults == {"temperature": 0.7}
    assert settings.param_drop == ("user", "seed")
    assert settings.log_payloads is True


def test_invalid_values_fall_back(monkeypatch):
    monkeypatch.setenv("GATEWAY_PORT", "eighty")
    monkeypatch.setenv("GATEWAY_MAX_REQUEST_SIZE", "huge")
    monkeypatch.setenv("OPENAI_PARAM_OVERRIDES", "{broken")
    settings = GatewaySettings.from_env()
    assert settings.port == 8045
    assert settings.max_request_size == "50mb"
    assert settings.param_overrides == {}


def test_settings_are_frozen():
    settings = GatewaySettings()
    with pytest.raises(AttributeError):
        settings.api_key = "changed"
