"""Domain exceptions for the analytics core.

Classes:
    ClicktrailError:
        Base class for all application-specific errors.

    NotFoundError:
        Raised when a short code does not resolve to a link.

    ValidationError:
        Raised for malformed query parameters or invalid state changes.

    UpstreamUnavailable:
        Raised when the geo/IP collaborator cannot answer. Degraded, not fatal.

    PersistenceError:
        Raised when reading from or writing to the click ledger fails.
"""


class ClicktrailError(Exception):
    """Base exception for all application-specific errors."""

    error_code = "app:clicktrail_error"


class NotFoundError(ClicktrailError):
    """Raised when a short code is unknown."""

    error_code = "link:not_found"


class ValidationError(ClicktrailError):
    """Raised when request parameters are malformed (e.g. end before start)."""

    error_code = "request:validation_error"


class UpstreamUnavailable(ClicktrailError):
    """Raised when geo/IP resolution fails."""

    error_code = "upstream:unavailable"


class PersistenceError(ClicktrailError):
    """Raised when the click ledger or link store cannot be read or written."""

    error_code = "storage:persistence_error"
