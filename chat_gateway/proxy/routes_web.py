import json
import os

from flask import abort, jsonify, request, send_from_directory

from .config import get_settings
from .errors import _error
from .logger import logger

ACCOUNTS_FILE = "accounts.json"


def _write_token_file(data_dir, token_data):
    os.makedirs(data_dir, exist_ok=True)
    path = os.path.join(data_dir, ACCOUNTS_FILE)
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(token_data, handle, ensure_ascii=False, indent=2)
    return path


def register_web_routes(app):
    @app.post("/api/upload-token")
    def upload_token():
        token_data = request.get_json(silent=True)
        if token_data is None:
            if request.is_json:
                return _error("No data provided", status=400)
            token_data = {}
        try:
            _write_token_file(get_settings().data_dir, token_data)
        except OSError:
            logger.exception("Failed to save token.")
            return _error("Failed to save token", status=500)
        logger.info("Token updated via Web UI")
        return jsonify({"success": True, "message": "Token saved"})

    @app.get("/")
    def index():
        public_dir = get_settings().public_dir
        if not os.path.isfile(os.path.join(public_dir, "index.html")):
            abort(404)
        return send_from_directory(public_dir, "index.html")
