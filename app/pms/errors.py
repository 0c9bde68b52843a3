"""
Service-layer exceptions.

Services raise these; the app-level error handler in ``create_app`` turns them
into ``{"error": ...}`` JSON responses with the matching status code.
"""
from __future__ import annotations


class ServiceError(Exception):
    status_code = 400

    def __init__(self, message: str, *, details: list | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body: dict = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ServiceError):
    status_code = 400

    def __init__(self, details: list[str], message: str = "Validation failed") -> None:
        super().__init__(message, details=details)


class BadRequest(ServiceError):
    status_code = 400


class Unauthorized(ServiceError):
    status_code = 401


class Forbidden(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class Conflict(ServiceError):
    status_code = 409
