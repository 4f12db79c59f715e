import json
import os
import re
from dataclasses import dataclass, field

from flask import current_app

from .logger import logger

SETTINGS_KEY = "GATEWAY_SETTINGS"

_PACKAGE_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
_SIZE_UNITS = {"b": 1, "kb": 1024, "mb": 1024 ** 2, "gb": 1024 ** 3}
_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(b|kb|mb|gb)?\s*$", re.IGNORECASE)


def _load_dotenv():
    dotenv_path = os.path.join(os.path.dirname(_PACKAGE_ROOT), ".env")
    if not os.path.isfile(dotenv_path):
        return
    try:
        with open(dotenv_path, "r", encoding="utf-8") as handle:
            for line in handle:
                stripped = line.strip()
                if not stripped or stripped.startswith("#"):
                    continue
                if stripped.startswith("export "):
                    stripped = stripped[7:].strip()
                if "=" not in stripped:
                    logger.warning("Skipping invalid .env line: %s", stripped)
                    continue
                key, value = stripped.split("=", 1)
                key = key.strip()
                value = value.strip()
                if not key:
                    continue
                if len(value) >= 2 and value[0] == value[-1] and value[0] in {"\"", "'"}:
                    value = value[1:-1]
                os.environ.setdefault(key, value)
    except OSError as exc:
        logger.warning("Failed to load .env file %s: %s", dotenv_path, exc)


def _bool_env(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _json_env(name, default):
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Invalid JSON in %s, using default.", name)
        return default


def _int_env(name, default):
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning("Invalid integer in %s, using %s.", name, default)
        return default


def _float_env(name, default):
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        logger.warning("Invalid number in %s, using %s.", name, default)
        return default


def _list_env(name):
    return tuple(key.strip() for key in os.getenv(name, "").split(",") if key.strip())


def _normalize_base_url(base_url):
    trimmed = base_url.rstrip("/")
    if not trimmed.endswith("/v1"):
        trimmed = f"{trimmed}/v1"
    return trimmed


def parse_size(value):
    """Convert a size limit such as ``"50mb"`` into bytes (1024-based units)."""
    if isinstance(value, int):
        return value
    match = _SIZE_PATTERN.match(str(value))
    if not match:
        raise ValueError(f"Invalid size limit: {value!r}")
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[(unit or "b").lower()])


@dataclass(frozen=True)
class GatewaySettings:
    host: str = "0.0.0.0"
    port: int = 8045
    api_key: str | None = None
    max_request_size: str = "50mb"
    data_dir: str = os.path.join(os.path.dirname(_PACKAGE_ROOT), "data")
    public_dir: str = os.path.join(os.path.dirname(_PACKAGE_ROOT), "public")

    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_timeout: float = 120.0
    openai_max_retries: int = 2
    openai_organization: str | None = None
    openai_project: str | None = None
    forward_auth_header: bool = False

    param_defaults: dict = field(default_factory=dict)
    param_overrides: dict = field(default_factory=dict)
    param_drop: tuple = ()

    log_payloads: bool = False
    log_stream_events: bool = False
    log_tool_calls: bool = False
    log_max_chars: int = 2000

    @property
    def max_request_bytes(self):
        return parse_size(self.max_request_size)

    @classmethod
    def from_env(cls):
        max_request_size = os.getenv("GATEWAY_MAX_REQUEST_SIZE", "50mb")
        try:
            parse_size(max_request_size)
        except ValueError:
            logger.warning("Invalid GATEWAY_MAX_REQUEST_SIZE %r, using 50mb.", max_request_size)
            max_request_size = "50mb"
        return cls(
            host=os.getenv("GATEWAY_HOST", "0.0.0.0"),
            port=_int_env("GATEWAY_PORT", 8045),
            api_key=os.getenv("GATEWAY_API_KEY") or None,
            max_request_size=max_request_size,
            data_dir=os.getenv("GATEWAY_DATA_DIR", cls.data_dir),
            public_dir=os.getenv("GATEWAY_PUBLIC_DIR", cls.public_dir),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_base_url=_normalize_base_url(os.getenv("OPENAI_BASE_URL", "https://api.openai.com")),
            openai_timeout=_float_env("OPENAI_TIMEOUT", 120.0),
            openai_max_retries=_int_env("OPENAI_MAX_RETRIES", 2),
            openai_organization=os.getenv("OPENAI_ORGANIZATION"),
            openai_project=os.getenv("OPENAI_PROJECT"),
            forward_auth_header=_bool_env("GATEWAY_FORWARD_AUTH_HEADER", False),
            param_defaults=_json_env("OPENAI_PARAM_DEFAULTS", {}),
            param_overrides=_json_env("OPENAI_PARAM_OVERRIDES", {}),
            param_drop=_list_env("OPENAI_PARAM_DROP"),
            log_payloads=_bool_env("GATEWAY_LOG_PAYLOADS", False),
            log_stream_events=_bool_env("GATEWAY_LOG_STREAM_EVENTS", False),
            log_tool_calls=_bool_env("GATEWAY_LOG_TOOL_CALLS", False),
            log_max_chars=_int_env("GATEWAY_LOG_MAX_CHARS", 2000),
        )


def get_settings():
    return current_app.config[SETTINGS_KEY]


_load_dotenv()
