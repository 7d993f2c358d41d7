"""
Service Errors

Error taxonomy shared by every service. Each error carries the HTTP status
and machine-readable code the API layer renders, so route handlers never
translate errors themselves.
"""

from typing import Optional


class ServiceError(Exception):
    """Base class for expected, caller-visible service failures"""

    status_code = 500
    code = 'INTERNAL_ERROR'

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self):
        return {
            'success': False,
            'error': self.code,
            'message': self.message
        }


class NotFoundError(ServiceError):
    """Entity missing, soft-deleted, or outside the caller's ownership scope"""
    status_code = 404
    code = 'NOT_FOUND'


class ConflictError(ServiceError):
    """Uniqueness violation or operation on a resource in a final state"""
    status_code = 409
    code = 'CONFLICT'


class ForbiddenError(ServiceError):
    """Action is illegal for the resource's current state"""
    status_code = 403
    code = 'FORBIDDEN'


class BadRequestError(ServiceError):
    """Malformed or incomplete input"""
    status_code = 400
    code = 'BAD_REQUEST'
