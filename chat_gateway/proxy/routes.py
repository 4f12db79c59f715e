from .routes_chat import register_chat_routes
from .routes_hooks import register_request_hooks
from .routes_models import register_model_routes
from .routes_web import register_web_routes


def register_routes(app):
    register_request_hooks(app)
    register_web_routes(app)
    register_model_routes(app)
    register_chat_routes(app)
