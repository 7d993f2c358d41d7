"""
Transaction Helper Service

Every mutating service operation runs inside exactly one transaction:
- commit on success, rollback on any exception or interrupt, then re-raise
- no internal retries; the caller decides whether to retry
- audit entries queued during the transaction are written after commit
"""

from contextlib import contextmanager
from functools import wraps
from typing import Callable
import logging

from app import db
from .audit_service import AuditService
from .errors import ServiceError

logger = logging.getLogger(__name__)

class TransactionHelper:
    """Helper class for managing database transactions safely"""

    @staticmethod
    @contextmanager
    def transaction():
        """
        Context manager form of a unit of work.

        Usage:
            with TransactionHelper.transaction():
                trip.status = TripStatus.PENDING
        """
        try:
            yield db.session
            db.session.commit()
        except ServiceError:
            db.session.rollback()
            AuditService.discard_pending()
            raise
        except Exception as e:
            db.session.rollback()
            AuditService.discard_pending()
            logger.error(f"Transaction rolled back: {str(e)}")
            raise
        except BaseException:
            db.session.rollback()
            AuditService.discard_pending()
            logger.error("Transaction rolled back: interrupted")
            raise

        AuditService.flush_pending()

    @staticmethod
    def with_transaction(func: Callable) -> Callable:
        """
        Decorator that wraps a function in a database transaction.

        Decorated methods must not call each other; shared helpers stay
        undecorated so a single commit covers the whole operation.

        Usage:
            @TransactionHelper.with_transaction
            def submit_trip(self, trip_id, actor):
                ...
        """
        @wraps(func)
        def wrapper(*args, **kwargs):
            with TransactionHelper.transaction():
                return func(*args, **kwargs)
        return wrapper
