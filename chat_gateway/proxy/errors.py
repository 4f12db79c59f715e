from flask import jsonify


class InvalidRequestError(Exception):
    status_code = 400


class BackendError(Exception):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _error_payload(message):
    return {"error": message}


def _error(message, status=400):
    return jsonify(_error_payload(message)), status


def _error_message(error):
    message = getattr(error, "message", None) or str(error)
    return message or error.__class__.__name__


def _handle_backend_error(error):
    return _error(_error_message(error), status=500)
