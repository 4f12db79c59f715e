import errno
import signal
import sys
import threading

from flask import Flask
from flask_cors import CORS
from werkzeug.serving import make_server

from .proxy.config import SETTINGS_KEY, GatewaySettings
from .proxy.logger import logger
from .proxy.routes import register_routes


def create_app(settings=None):
    settings = settings or GatewaySettings.from_env()
    app = Flask(__name__, static_folder=settings.public_dir, static_url_path="")
    app.config[SETTINGS_KEY] = settings
    app.config["MAX_CONTENT_LENGTH"] = settings.max_request_bytes
    app.json.ensure_ascii = False
    CORS(app)
    register_routes(app)
    return app


def _bind_server(app, settings):
    try:
        return make_server(settings.host, settings.port, app, threaded=True)
    except OSError as exc:
        if exc.errno == errno.EADDRINUSE:
            logger.error("Port %s is already in use", settings.port)
        elif exc.errno == errno.EACCES:
            logger.error("Permission denied for port %s", settings.port)
        else:
            logger.error("Server failed to start: %s", exc)
        sys.exit(1)


def main():
    app = create_app()
    settings = app.config[SETTINGS_KEY]
    server = _bind_server(app, settings)

    def shutdown(signum, frame):
        logger.info("Shutting down server...")
        threading.Thread(target=server.shutdown, daemon=True).start()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    logger.info(
        "Server started on %s:%s (upstream=%s)",
        settings.host,
        settings.port,
        settings.openai_base_url,
    )
    server.serve_forever()
    server.server_close()
    logger.info("Server closed")


if __name__ == "__main__":
    main()
