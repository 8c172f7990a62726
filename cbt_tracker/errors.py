"""Centralised error handling and custom exceptions.

This module defines the exception classes raised by the service layer
and the Flask handlers that serialise them into JSON responses. Each
error carries a stable ``code`` so clients can render a specific message,
for example telling "no therapist assigned" apart from a plain
authorisation failure. The Flask app registers these handlers during
application factory initialisation.
"""
from __future__ import annotations

from flask import jsonify
from marshmallow import ValidationError as SchemaValidationError


class ApiError(Exception):
    """Base class for errors that map onto an HTTP response."""

    code = "ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def payload(self) -> dict:
        return {"code": self.code, "message": self.message}

    def to_response(self, status_code: int | None = None):
        return jsonify({"error": self.payload()}), status_code or self.status_code


class Unauthenticated(ApiError):
    """Raised when no valid identity accompanies the request."""

    code = "UNAUTHENTICATED"
    status_code = 401


class Forbidden(ApiError):
    """Raised when the actor's role may not use the operation at all."""

    code = "FORBIDDEN"
    status_code = 403


class AccessDenied(ApiError):
    """Raised when the role is right but the actor has no relationship
    to the target record."""

    code = "ACCESS_DENIED"
    status_code = 403


class NotFoundError(ApiError):
    """Raised when a requested resource cannot be found."""

    code = "NOT_FOUND"
    status_code = 404


class NoTherapistAssigned(ApiError):
    """Raised when a patient tries to share data but has no therapist."""

    code = "NO_THERAPIST_ASSIGNED"
    status_code = 409


class ConflictError(ApiError):
    """Raised when a uniqueness or resource conflict occurs."""

    code = "CONFLICT"
    status_code = 409


class ValidationError(ApiError):
    """Raised when input validation fails."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, fields: dict | None = None) -> None:
        super().__init__(message)
        self.fields = fields or {}

    def payload(self) -> dict:
        return {**super().payload(), "fields": self.fields}


class AnalysisFailed(ApiError):
    """Raised when the external text analysis call fails or times out."""

    code = "ANALYSIS_FAILED"
    status_code = 502


def register_error_handlers(app) -> None:
    """Register custom error handlers on the given Flask app."""
    @app.errorhandler(ApiError)
    def handle_api_error(err: ApiError):
        return err.to_response()

    @app.errorhandler(SchemaValidationError)
    def handle_schema_error(err: SchemaValidationError):
        return ValidationError("Invalid input.", fields=err.messages).to_response()


def register_jwt_callbacks(jwt) -> None:
    """Render every JWT failure as ``Unauthenticated`` and load the user.

    The user lookup makes ``flask_jwt_extended.current_user`` return the
    ``User`` row for the token subject.
    """
    from .models import User
    from .db import db

    def _unauthenticated(message: str):
        return Unauthenticated(message).to_response()

    @jwt.user_lookup_loader
    def load_user(_jwt_header, jwt_data):
        try:
            user_id = int(jwt_data["sub"])
        except (KeyError, TypeError, ValueError):
            return None
        return db.session.get(User, user_id)

    @jwt.user_lookup_error_loader
    def user_lookup_failed(_jwt_header, _jwt_data):
        return _unauthenticated("Account no longer exists.")

    @jwt.unauthorized_loader
    def missing_token(reason: str):
        return _unauthenticated(reason)

    @jwt.invalid_token_loader
    def invalid_token(reason: str):
        return _unauthenticated(reason)

    @jwt.expired_token_loader
    def expired_token(_jwt_header, _jwt_data):
        return _unauthenticated("Token has expired.")
