# --- Service layer exception classes ---

class ServiceError(Exception):
    """General exception class for the service layer."""
    status_code = 500


class ValidationError(ServiceError):
    """Malformed or out-of-policy input."""
    status_code = 400


class NotFoundError(ServiceError):
    """A referenced entity does not exist."""
    status_code = 404


class ForbiddenError(ServiceError):
    """The principal is not allowed to touch the resource."""
    status_code = 403


class ConflictError(ServiceError):
    """A uniqueness constraint of the store was violated."""
    status_code = 409
