"""Error kinds raised by the entity services.

Handlers map each kind to a status code; only the kind and a generic
message ever reach the client.
"""
import functools
import logging

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for every error a service operation reports."""
    kind = "Internal"
    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidInput(ServiceError):
    kind = "InvalidInput"
    status_code = 400
    default_detail = "Invalid input"


class Unauthorized(ServiceError):
    kind = "Unauthorized"
    status_code = 401
    default_detail = "Invalid credentials"


class Conflict(ServiceError):
    # Duplicate unique key on creation, reported as a bad request
    kind = "Conflict"
    status_code = 400
    default_detail = "Resource already exists"


class NotFound(ServiceError):
    kind = "NotFound"
    status_code = 404
    default_detail = "Not found"


class Internal(ServiceError):
    pass


def reports_internal(func):
    """Let ServiceErrors through; turn anything else into Internal."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ServiceError:
            raise
        except Exception as exc:
            logger.exception("Unexpected failure in %s", func.__qualname__)
            raise Internal() from exc

    return wrapper
