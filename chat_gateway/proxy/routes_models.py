from flask import jsonify

from .client import get_available_models
from .config import get_settings
from .errors import _handle_backend_error
from .logger import logger
from .routes_auth import _extract_bearer_token


def register_model_routes(app):
    @app.get("/v1/models")
    def list_models():
        try:
            models = get_available_models(get_settings(), token=_extract_bearer_token())
        except Exception as exc:
            logger.exception("Backend error on /v1/models.")
            return _handle_backend_error(exc)
        return jsonify(models)
