"""Service layer — business logic orchestration."""


class ServiceError(Exception):
    """Base service exception."""

    kind = "internal"


class InvalidInputError(ServiceError):
    """Malformed or out-of-range request (-> HTTP 400)."""

    kind = "invalid_input"


class NotFoundError(ServiceError):
    """No live resource at that id (-> HTTP 404)."""

    kind = "not_found"


class ConflictError(ServiceError):
    """Uniqueness violation (-> HTTP 409)."""

    kind = "conflict"


class RequestTimeoutError(ServiceError):
    """Deadline exceeded during storage access (-> HTTP 504)."""

    kind = "timeout"


class InternalError(ServiceError):
    """Unclassified storage or runtime failure (-> HTTP 500)."""

    kind = "internal"
