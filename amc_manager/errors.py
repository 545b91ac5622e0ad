"""
amc_manager/errors.py

Uniform JSON error envelope for the API:

    {"error": "<short message>", "details": <object | string | null>}

Routes raise ApiError (or call abort()); the handlers registered here turn
both into the envelope. Unexpected exceptions become a 500 with details withheld.
"""

from __future__ import annotations

from typing import Any

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException


class ApiError(Exception):
    """An error with an HTTP status that is safe to show to the client."""

    status_code = 400

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details


class ValidationError(ApiError):
    status_code = 400

    def __init__(self, details: Any = None, message: str = "Validation failed"):
        super().__init__(message, details=details)


class ConflictError(ApiError):
    status_code = 409


def error_response(message: str, status_code: int, details: Any = None):
    response = jsonify({"error": message, "details": details})
    response.status_code = status_code
    return response


def register_error_handlers(app: Flask) -> None:
    """Install the JSON envelope for ApiError, HTTP errors and unhandled exceptions."""

    @app.errorhandler(ApiError)
    def _api_error(e: ApiError):
        return error_response(e.message, e.status_code, e.details)

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        if e.code == 403:
            app.logger.warning("Forbidden: %s", e.description)
        return error_response(e.name, e.code or 500, e.description)

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):
        app.logger.exception("Unhandled exception: %s", e)
        return error_response("Internal Server Error", 500, None)
