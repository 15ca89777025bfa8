"""Error taxonomy shared by services and mapped to HTTP responses in main."""


class ServiceError(Exception):
    """Base exception for service operations."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ValidationError(ServiceError):
    """Malformed, missing or out-of-range input."""

    status_code = 400
    code = "validation_error"


class AuthError(ServiceError):
    """Missing or invalid session, or a failed ceremony."""

    status_code = 401
    code = "not_authenticated"


class CeremonyError(AuthError):
    """A WebAuthn ceremony could not be verified."""

    status_code = 400
    code = "ceremony_failed"


class PermissionDeniedError(ServiceError):
    status_code = 403
    code = "forbidden"


class NotFoundError(ServiceError):
    """Unknown family, vendor or transaction, or a transaction already resolved."""

    status_code = 404
    code = "not_found"


class ConflictError(ServiceError):
    """Duplicate username or family number."""

    status_code = 409
    code = "conflict"


class DeliveryError(ServiceError):
    """Push delivery failed. Logged and counted, never surfaced to the requester."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.delivery_status = status_code


class StorageConflictError(ServiceError):
    """Lost the race to resolve a transaction; the caller answers 'already processed'."""

    status_code = 200
    code = "already_processed"
