# Overview: JSON response envelope and app-wide error handlers.

"""
Every API response has the shape:

    {"success": bool, "message"?: str, "data"?: any, "details"?: dict}

Business errors raised by services (PosError, ValidationError, ConflictError)
are mapped to this envelope here, so routes only handle the success path.
"""

from __future__ import annotations

from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException

from .errors import PosError
from .validation import ConflictError, ValidationError


def ok(data=None, message: str | None = None, status: int = 200):
    body: dict = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return jsonify(body), status


def fail(message: str, status: int = 400, details: dict | None = None):
    body: dict = {"success": False, "message": message}
    if details:
        body["details"] = details
    return jsonify(body), status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(PosError)
    def handle_pos_error(e: PosError):
        return fail(e.message, e.status_code, e.details)

    @app.errorhandler(ValidationError)
    def handle_validation_error(e: ValidationError):
        return fail(str(e), 400)

    @app.errorhandler(ConflictError)
    def handle_conflict_error(e: ConflictError):
        return fail(str(e), 409)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        return fail(e.description or e.name, e.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        current_app.logger.exception("Unhandled error")
        return fail("Internal server error", 500)
