"""
Service Layer Architecture

Business logic for the trip review workflow and salary calculation. Route
handlers stay thin; services own validation, transactions and audit.

Services Architecture:
- **ReferenceService**: driver/vehicle/route/station lookups for trip references
- **TripService**: trip lifecycle (draft, submit, approve, reject), edits, soft delete
- **AttachmentService**: weight tickets and photos attached to trips
- **FileService**: attachment file storage
- **SalaryRuleService**: versioned per-ton rates and rule resolution
- **SalaryService**: salary periods, recalculation, locking and results
- **AuditService**: post-commit audit trail
"""

from .errors import ServiceError, NotFoundError, ConflictError, ForbiddenError, BadRequestError
from .audit_service import AuditService
from .transaction_helper import TransactionHelper
from .reference_service import ReferenceService
from .trip_service import TripService, TransitionOutcome, TransitionResult
from .attachment_service import AttachmentService
from .file_service import FileService
from .salary_rule_service import SalaryRuleService
from .salary_service import SalaryService

__all__ = [
    'ServiceError',
    'NotFoundError',
    'ConflictError',
    'ForbiddenError',
    'BadRequestError',
    'AuditService',
    'TransactionHelper',
    'ReferenceService',
    'TripService',
    'TransitionOutcome',
    'TransitionResult',
    'AttachmentService',
    'FileService',
    'SalaryRuleService',
    'SalaryService'
]
