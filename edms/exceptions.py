class EDMSError(Exception):
    code = "edms_error"
    status_code = 500

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(EDMSError):
    """Actor, document or grant does not exist."""

    code = "not_found"
    status_code = 404


class ValidationError(EDMSError):
    """Illegal transition, missing comment/decision, unknown vocabulary value."""

    code = "validation_error"
    status_code = 400


class PermissionDeniedError(EDMSError):
    """Raised at administration/API edges only.

    The resolver itself reports denials as ``PermissionDecision(allowed=False)``.
    """

    code = "permission_denied"
    status_code = 403


class PersistenceError(EDMSError):
    """Store timeout or unavailability.

    ``retryable`` marks a transient "busy" condition (lock wait, pool
    exhaustion) as opposed to a permanent failure.
    """

    code = "persistence_error"
    status_code = 503

    def __init__(self, message: str, details=None, retryable: bool = True):
        super().__init__(message, details)
        self.retryable = retryable


class AuditFailure(EDMSError):
    """Best-effort audit append failed. Logged, never propagated to callers."""

    code = "audit_failure"
