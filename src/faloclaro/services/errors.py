"""Exceptions raised by the service layer and rendered by the API as ``{"error": ...}``."""


class ServiceError(Exception):
    """A request-level failure with the HTTP status it maps to."""

    status_code = 400

    def __init__(self, message: str, status_code: int | None = None, **extra):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra


class NotFoundError(ServiceError):
    status_code = 404


class ConfigurationError(ServiceError):
    """A required credential or setting is missing on the server."""

    status_code = 500
