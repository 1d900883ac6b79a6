"""Error taxonomy raised by services and rendered by the API layer."""
from typing import Any, Dict, Optional


class AttendanceError(Exception):
    """Base error carrying an HTTP status, a machine code and extra payload."""

    status_code = 500
    code = 'SERVER_ERROR'

    def __init__(self, message: str, code: Optional[str] = None,
                 status_code: Optional[int] = None, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {
            'error': True,
            'code': self.code,
            'message': self.message,
            'status_code': self.status_code
        }
        body.update(self.payload)
        return body


class ValidationError(AttendanceError):
    """Malformed input."""
    status_code = 400
    code = 'VALIDATION_ERROR'


class NotFoundError(AttendanceError):
    """Missing session, record, class or dispute."""
    status_code = 404
    code = 'NOT_FOUND'


class AuthorizationError(AttendanceError):
    """Wrong owner or role."""
    status_code = 403
    code = 'UNAUTHORIZED'


class ConflictError(AttendanceError):
    """State does not allow the operation (already marked, already active...)."""
    status_code = 400
    code = 'CONFLICT'


class VerificationFailure(AttendanceError):
    """Proof rejected; payload tells the client how to retry legitimately."""
    status_code = 400
    code = 'VERIFICATION_FAILED'


class FraudBlock(AttendanceError):
    """Blocking fraud heuristic fired. Never downgraded to a validation error."""
    status_code = 403
    code = 'FRAUD_BLOCKED'


class InternalError(AttendanceError):
    """Store unavailable or unexpected failure; retrying is safe."""
    status_code = 500
    code = 'INTERNAL_ERROR'
