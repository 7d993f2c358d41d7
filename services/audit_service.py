"""
Audit Service

Append-only change log for trips, attachments, salary rules and periods.
Entries are queued on the session while a transaction runs and written in
their own commit once the primary transaction has committed. A failed audit
write is logged and never fails the operation that produced it.
"""

from typing import Optional, Dict, Any, List
import logging
import json
from datetime import date, datetime
from decimal import Decimal

from flask import g, has_request_context
from sqlalchemy.exc import SQLAlchemyError

from app import db
from models import AuditLog, AuditAction

logger = logging.getLogger(__name__)

PENDING_KEY = 'pending_audit'

# Bookkeeping columns never count as a change
IGNORED_FIELDS = frozenset({'created_at', 'updated_at'})


def _json_default(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _dumps(value):
    if value is None:
        return None
    return json.dumps(value, default=_json_default, sort_keys=True)


class AuditService:
    """Service class for centralized audit logging"""

    @staticmethod
    def log_create(entity_type: str, entity_id: int, payload: Dict[str, Any], context=None):
        AuditService._queue(AuditAction.CREATE, entity_type, entity_id, None, payload, context)

    @staticmethod
    def log_update(entity_type: str, entity_id: int, before: Dict[str, Any],
                   after: Dict[str, Any], context=None):
        AuditService._queue(AuditAction.UPDATE, entity_type, entity_id, before, after, context)

    @staticmethod
    def log_delete(entity_type: str, entity_id: int, payload: Dict[str, Any], context=None):
        AuditService._queue(AuditAction.DELETE, entity_type, entity_id, payload, None, context)

    @staticmethod
    def calculate_changes(before: Optional[Dict[str, Any]],
                          after: Optional[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        """
        Diff two snapshots.

        Returns:
            {field: {'from': old, 'to': new}} for every field whose value differs
        """
        before = before or {}
        after = after or {}
        changes = {}
        for field in sorted(set(before) | set(after)):
            if field in IGNORED_FIELDS:
                continue
            old, new = before.get(field), after.get(field)
            if old != new:
                changes[field] = {'from': old, 'to': new}
        return changes

    @staticmethod
    def _queue(action: AuditAction, entity_type: str, entity_id: int,
               before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]], context=None):
        request_id = getattr(context, 'request_id', None)
        if request_id is None and has_request_context():
            request_id = getattr(g, 'correlation_id', None)

        entry = {
            'action': action,
            'entity_type': entity_type,
            'entity_id': entity_id,
            'before': before,
            'after': after,
            'user_id': getattr(context, 'user_id', None),
            'user_email': getattr(context, 'email', None),
            'ip_address': getattr(context, 'ip_address', None),
            'user_agent': getattr(context, 'user_agent', None),
            'request_id': request_id,
        }
        db.session.info.setdefault(PENDING_KEY, []).append(entry)
        logger.debug(f"Audit queued: {action.name} {entity_type}:{entity_id}")

    @staticmethod
    def _build_log(entry: Dict[str, Any]) -> AuditLog:
        changes = AuditService.calculate_changes(entry['before'], entry['after'])
        return AuditLog(
            action=entry['action'],
            entity_type=entry['entity_type'],
            entity_id=entry['entity_id'],
            old_values=_dumps(entry['before']),
            new_values=_dumps(entry['after']),
            changed_fields=_dumps(changes),
            user_id=entry['user_id'],
            user_email=entry['user_email'],
            ip_address=entry['ip_address'],
            user_agent=(entry['user_agent'] or '')[:500] or None,
            request_id=entry['request_id'],
        )

    @staticmethod
    def flush_pending() -> bool:
        """
        Write queued entries after the primary commit.

        Returns:
            bool: True if every entry was written (or nothing was queued)
        """
        pending = db.session.info.pop(PENDING_KEY, None)
        if not pending:
            return True

        try:
            for entry in pending:
                db.session.add(AuditService._build_log(entry))
            db.session.commit()
            logger.debug(f"Audit flushed: {len(pending)} entries")
            return True
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception(f"Audit write failed, dropped {len(pending)} entries")
            return False

    @staticmethod
    def discard_pending():
        pending = db.session.info.pop(PENDING_KEY, None)
        if pending:
            logger.debug(f"Audit discarded after rollback: {len(pending)} entries")

    @staticmethod
    def get_entity_history(entity_type: str, entity_id: int, limit: int = 10) -> List[AuditLog]:
        """
        Get audit history for a specific entity, newest first.

        Args:
            entity_type: Type of entity (e.g., 'trip', 'salary_period')
            entity_id: ID of entity
            limit: Maximum number of records to return
        """
        return AuditLog.query.filter_by(entity_type=entity_type, entity_id=entity_id) \
                             .order_by(AuditLog.created_at.desc(), AuditLog.id.desc()) \
                             .limit(limit).all()
