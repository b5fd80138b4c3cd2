"""
Domain Exceptions

Errors raised while decoding entity graphs and while applying them to the
store. The web layer translates each of them into an HTTP status.
"""

from typing import Optional


class NorthwindError(Exception):
    """Base class for all application errors"""

    status_code = 500

    def __init__(self, message: str, entity: Optional[object] = None):
        super().__init__(message)
        self.message = message
        self.entity = entity


class GraphFormatError(NorthwindError):
    """Transport payload is not a well-formed entity graph"""

    status_code = 400


class InvalidChangeSetError(NorthwindError):
    """Tracking metadata on an entity cannot be applied"""

    status_code = 422


class ConcurrencyConflictError(NorthwindError):
    """Row version supplied with an update no longer matches the store"""

    status_code = 409


class ConstraintViolationError(NorthwindError):
    """Foreign key or uniqueness constraint rejected by the store"""

    status_code = 409
