"""
Salary Rule Service

Versioned, time-bounded per-ton rates. Rules are never hard-deleted; a
replaced rate is deactivated and a new rule (or version) is created.
"""

from datetime import date
from typing import Optional, List
import json
import logging

from app import db
from models import SalaryRule, SalaryRuleType
from .validators import parse_amount, parse_date, parse_id, clean_text
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .reference_service import ReferenceService
from .errors import NotFoundError, ConflictError, BadRequestError

logger = logging.getLogger(__name__)

AUDIT_ENTITY = 'salary_rules'

class SalaryRuleService:
    """Service class for salary rules"""

    def __init__(self):
        self.audit_service = AuditService()
        self.reference_service = ReferenceService()

    def resolve_active_rule(self, on_date: date) -> Optional[SalaryRule]:
        """
        Pick the PER_TON rule in force on ``on_date``.

        Latest effective_from wins; ties go to the highest version. Route
        scoping is not considered. Returns None when nothing matches, and
        callers must treat that as blocking.
        """
        return SalaryRule.query.filter(
            SalaryRule.is_active.is_(True),
            SalaryRule.rule_type == SalaryRuleType.PER_TON,
            SalaryRule.effective_from <= on_date,
            db.or_(SalaryRule.effective_to.is_(None), SalaryRule.effective_to >= on_date)
        ).order_by(
            SalaryRule.effective_from.desc(),
            SalaryRule.version.desc(),
            SalaryRule.id.desc()
        ).first()

    def get_rule(self, rule_id: int) -> SalaryRule:
        rule = db.session.get(SalaryRule, rule_id)
        if rule is None:
            raise NotFoundError('Salary rule not found')
        return rule

    def list_rules(self, active_only: bool = False) -> List[SalaryRule]:
        query = SalaryRule.query
        if active_only:
            query = query.filter(SalaryRule.is_active.is_(True))
        return query.order_by(SalaryRule.effective_from.desc(), SalaryRule.version.desc()).all()

    @TransactionHelper.with_transaction
    def create_rule(self, name, rate_per_ton, effective_from, effective_to=None,
                    route_id=None, description=None, actor=None) -> SalaryRule:
        """
        Create an active PER_TON rule.

        Args:
            name: display name
            rate_per_ton: amount paid per ton, > 0
            effective_from: first day the rate applies
            effective_to: last day the rate applies, open-ended when None
            route_id: optional route scope, stored for reference
            description: free text
            actor: ActorContext of the creator

        Returns:
            SalaryRule: the new rule, versioned after existing rules with the
            same effective_from
        """
        name = clean_text(name, 150)
        if not name:
            raise BadRequestError('name is required')
        rate = parse_amount(rate_per_ton, 'rate_per_ton')
        start = parse_date(effective_from, 'effective_from', required=True)
        end = parse_date(effective_to, 'effective_to')
        if end is not None and end < start:
            raise BadRequestError('effective_to must not be before effective_from')

        route_id = parse_id(route_id, 'route_id', required=False)
        if route_id is not None:
            self.reference_service.find_route(route_id)

        latest_version = db.session.query(db.func.max(SalaryRule.version)).filter(
            SalaryRule.rule_type == SalaryRuleType.PER_TON,
            SalaryRule.effective_from == start
        ).scalar()

        rule = SalaryRule(
            name=name,
            description=clean_text(description),
            rule_type=SalaryRuleType.PER_TON,
            rate_amount=rate,
            config_json=json.dumps({'rate_per_ton': str(rate)}),
            effective_from=start,
            effective_to=end,
            version=(latest_version or 0) + 1,
            is_active=True,
            route_id=route_id,
            created_by_id=getattr(actor, 'user_id', None),
        )
        db.session.add(rule)
        db.session.flush()

        self.audit_service.log_create(AUDIT_ENTITY, rule.id, rule.to_dict(), actor)
        logger.info(f"Salary rule {rule.id} v{rule.version} created: {rate}/ton from {start}")
        return rule

    @TransactionHelper.with_transaction
    def deactivate_rule(self, rule_id: int, actor=None) -> SalaryRule:
        rule = self.get_rule(rule_id)
        if not rule.is_active:
            raise ConflictError('Salary rule is already inactive')

        before = rule.to_dict()
        rule.is_active = False
        db.session.flush()

        self.audit_service.log_update(AUDIT_ENTITY, rule.id, before, rule.to_dict(), actor)
        logger.info(f"Salary rule {rule.id} v{rule.version} deactivated")
        return rule
