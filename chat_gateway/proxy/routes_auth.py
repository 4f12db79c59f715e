from flask import request

from .config import get_settings
from .errors import _error
from .logger import logger

PROTECTED_PREFIX = "/v1/"


def _extract_bearer_token():
    auth = request.headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        return auth[7:]
    return auth


def _authorize_request():
    if request.method == "OPTIONS" or not request.path.startswith(PROTECTED_PREFIX):
        return None
    api_key = get_settings().api_key
    if not api_key:
        return None
    if _extract_bearer_token() != api_key:
        logger.warning("API key check failed: %s %s", request.method, request.path)
        return _error("Invalid API Key", status=401)
    return None
