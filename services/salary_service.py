"""
Salary Service

Half-month salary periods and the per-ton calculator.

Period lifecycle: OPEN <-> CALCULATING during recalculation, OPEN -> LOCKED
on close. Results are fully derived: every recalculation replaces all
SalaryResult rows of the period in one transaction.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any, List, Tuple
import logging

from sqlalchemy.exc import IntegrityError

from app import db
from models import (Trip, TripStatus, SalaryPeriod, SalaryPeriodStatus, SalaryResult,
                    SalaryRule, BreakdownEntry)
from timezone_utils import get_local_time_naive
from utils.codes import generate_period_code
from .validators import parse_date, parse_enum, parse_id, clean_text
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .salary_rule_service import SalaryRuleService
from .errors import NotFoundError, ConflictError, BadRequestError

logger = logging.getLogger(__name__)

AUDIT_ENTITY = 'salary_periods'

MONEY = Decimal('0.01')
WEIGHT = Decimal('0.001')

CALCULATION_VERSION = 1


@dataclass
class DriverSalary:
    """Accumulated salary figures for one driver"""
    driver_id: int
    breakdown: List[BreakdownEntry] = field(default_factory=list)
    total_weight: Decimal = Decimal('0')
    total_amount: Decimal = Decimal('0')

    @property
    def total_trips(self) -> int:
        return len(self.breakdown)


@dataclass(frozen=True)
class RecalculationSummary:
    period: SalaryPeriod
    total_drivers: int
    total_trips: int
    total_weight: Decimal
    total_amount: Decimal
    rule: SalaryRule

    def to_dict(self):
        return {
            'period': self.period.to_dict(result_count=self.total_drivers),
            'summary': {
                'total_drivers': self.total_drivers,
                'total_trips': self.total_trips,
                'total_weight': float(self.total_weight),
                'total_amount': float(self.total_amount),
                'rule_used': {
                    'id': self.rule.id,
                    'name': self.rule.name,
                    'version': self.rule.version,
                    'rate_per_ton': float(self.rule.rate_amount),
                },
            },
        }


def calculate_salaries(trips: List[Trip], rate_per_ton: Decimal) -> List[DriverSalary]:
    """
    Group approved trips by driver and price them at ``rate_per_ton``.

    Trips are processed in (trip_date, id) order so repeated runs give the
    same breakdown; drivers come back ordered by id.
    """
    rate = Decimal(rate_per_ton)
    by_driver: Dict[int, DriverSalary] = {}

    for trip in sorted(trips, key=lambda t: (t.trip_date, t.id)):
        weight = Decimal(trip.salary_weight).quantize(WEIGHT)
        amount = (weight * rate).quantize(MONEY, rounding=ROUND_HALF_UP)

        salary = by_driver.setdefault(trip.driver_id, DriverSalary(driver_id=trip.driver_id))
        salary.breakdown.append(BreakdownEntry(
            trip_id=trip.id,
            trip_code=trip.trip_code,
            trip_date=trip.trip_date,
            route_name=trip.route.name if trip.route else '',
            weight=weight,
            rate_per_ton=rate.quantize(MONEY),
            amount=amount,
        ))
        salary.total_weight += weight
        salary.total_amount += amount

    return [by_driver[driver_id] for driver_id in sorted(by_driver)]


class SalaryService:
    """Service class for salary periods and results"""

    def __init__(self):
        self.audit_service = AuditService()
        self.rule_service = SalaryRuleService()

    # ------------------------------------------------------------------
    # Periods
    # ------------------------------------------------------------------

    def get_period(self, period_id: int, for_update: bool = False) -> SalaryPeriod:
        query = SalaryPeriod.query.filter(SalaryPeriod.id == period_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        period = query.first()
        if period is None:
            raise NotFoundError('Salary period not found')
        return period

    def list_periods(self, status=None, limit: int = 50) -> List[Tuple[SalaryPeriod, int]]:
        """
        List periods newest first.

        Returns:
            list of (period, result_count)
        """
        result_count = db.session.query(db.func.count(SalaryResult.id)) \
            .filter(SalaryResult.period_id == SalaryPeriod.id) \
            .correlate(SalaryPeriod).scalar_subquery()
        query = db.session.query(SalaryPeriod, result_count)
        if status:
            query = query.filter(SalaryPeriod.status == parse_enum(status, SalaryPeriodStatus, 'status'))
        limit = max(1, min(parse_id(limit, 'limit', required=False) or 50, 200))
        rows = query.order_by(SalaryPeriod.period_start.desc()).limit(limit).all()
        return [(period, count) for period, count in rows]

    def _code_taken(self, code: str) -> bool:
        return SalaryPeriod.query.filter_by(code=code).first() is not None

    @TransactionHelper.with_transaction
    def create_period(self, name, period_start, period_end, actor=None) -> SalaryPeriod:
        """
        Create an OPEN half-month period.

        Raises:
            BadRequestError: end not strictly after start
            ConflictError: a period already exists for the same half-month
        """
        start = parse_date(period_start, 'period_start', required=True)
        end = parse_date(period_end, 'period_end', required=True)
        if end <= start:
            raise BadRequestError('End date must be after start date')

        code = generate_period_code(start)
        if self._code_taken(code):
            raise ConflictError(f"Period with code {code} already exists")

        period = SalaryPeriod(
            code=code,
            name=clean_text(name, 150) or code,
            period_start=start,
            period_end=end,
            status=SalaryPeriodStatus.OPEN,
        )
        db.session.add(period)
        try:
            db.session.flush()
        except IntegrityError:
            logger.warning(f"Concurrent create of salary period {code}")
            raise ConflictError(f"Period with code {code} already exists")

        self.audit_service.log_create(AUDIT_ENTITY, period.id, period.to_dict(), actor)
        logger.info(f"Salary period {code} created ({start} to {end})")
        return period

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def _rebuild_results(self, period: SalaryPeriod, rule: SalaryRule, actor) -> RecalculationSummary:
        before = period.to_dict()
        if period.status == SalaryPeriodStatus.CALCULATING:
            logger.warning(f"Period {period.code} left in CALCULATING by an aborted run, recalculating")
        period.status = SalaryPeriodStatus.CALCULATING
        db.session.flush()

        trips = Trip.active_query().filter(
            Trip.status == TripStatus.APPROVED,
            Trip.trip_date >= period.period_start,
            Trip.trip_date <= period.period_end
        ).order_by(Trip.trip_date.asc(), Trip.id.asc()).all()

        salaries = calculate_salaries(trips, rule.rate_amount)

        db.session.query(SalaryResult).filter(SalaryResult.period_id == period.id) \
            .delete(synchronize_session=False)
        db.session.expire(period, ['results'])

        calculated_at = get_local_time_naive()
        for salary in salaries:
            result = SalaryResult(
                period_id=period.id,
                driver_id=salary.driver_id,
                total_trips=salary.total_trips,
                total_weight=salary.total_weight,
                base_salary=salary.total_amount,
                bonus_amount=Decimal('0'),
                penalty_amount=Decimal('0'),
                total_salary=salary.total_amount,
                calculated_at=calculated_at,
                calculation_version=CALCULATION_VERSION,
                rule_version_used=rule.id,
            )
            result.breakdown = salary.breakdown
            db.session.add(result)

        period.status = SalaryPeriodStatus.OPEN
        db.session.flush()

        after = period.to_dict(result_count=len(salaries))
        after['action'] = 'recalculate'
        self.audit_service.log_update(AUDIT_ENTITY, period.id, before, after, actor)

        summary = RecalculationSummary(
            period=period,
            total_drivers=len(salaries),
            total_trips=len(trips),
            total_weight=sum((s.total_weight for s in salaries), Decimal('0')),
            total_amount=sum((s.total_amount for s in salaries), Decimal('0')),
            rule=rule,
        )
        logger.info(
            f"Period {period.code} recalculated: {summary.total_drivers} drivers, "
            f"{summary.total_trips} trips, total {summary.total_amount} (rule {rule.id} v{rule.version})"
        )
        return summary

    def recalculate(self, period_id: int, actor=None) -> RecalculationSummary:
        """
        Rebuild all salary results of a period from its approved trips.

        The period row stays locked for the whole rebuild. OPEN -> CALCULATING,
        delete, insert and CALCULATING -> OPEN share one transaction, so
        CALCULATING is never committed and a failure of any kind rolls back
        to the previous results.

        Raises:
            NotFoundError: unknown period
            ConflictError: period locked
            BadRequestError: no active PER_TON rule at period start
        """
        with TransactionHelper.transaction():
            period = self.get_period(period_id, for_update=True)
            if period.is_locked:
                logger.warning(f"Recalculation refused for locked period {period.code}")
                raise ConflictError('Cannot recalculate closed period')

            rule = self.rule_service.resolve_active_rule(period.period_start)
            if rule is None:
                logger.warning(f"No active salary rule for period {period.code} at {period.period_start}")
                raise BadRequestError('No active salary rule found')

            return self._rebuild_results(period, rule, actor)

    @TransactionHelper.with_transaction
    def close_period(self, period_id: int, actor=None) -> SalaryPeriod:
        """
        Lock a period for good. There is no unlock.

        Raises:
            ConflictError: already locked or being recalculated
            BadRequestError: no salary results yet
        """
        period = self.get_period(period_id, for_update=True)
        if period.is_locked:
            raise ConflictError('Period is already closed')

        if SalaryResult.query.filter_by(period_id=period.id).count() == 0:
            raise BadRequestError('Cannot close period without salary results. Please run recalculate first.')

        before = period.to_dict()
        locked = db.session.query(SalaryPeriod).filter(
            SalaryPeriod.id == period.id,
            SalaryPeriod.status == SalaryPeriodStatus.OPEN
        ).update({
            'status': SalaryPeriodStatus.LOCKED,
            'locked_at': get_local_time_naive(),
            'locked_by_id': getattr(actor, 'user_id', None),
        }, synchronize_session=False)
        db.session.refresh(period)

        if not locked:
            if period.status == SalaryPeriodStatus.CALCULATING:
                raise ConflictError('Period is being recalculated, please retry later')
            raise ConflictError('Period is already closed')

        after = period.to_dict()
        after['action'] = 'close'
        self.audit_service.log_update(AUDIT_ENTITY, period.id, before, after, actor)
        logger.info(f"Salary period {period.code} locked by user {period.locked_by_id}")
        return period

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def get_results(self, period_id: int, driver_id: Optional[int] = None) -> Tuple[SalaryPeriod, List[SalaryResult]]:
        period = self.get_period(period_id)
        query = SalaryResult.query.filter(SalaryResult.period_id == period.id)
        if driver_id is not None:
            query = query.filter(SalaryResult.driver_id == driver_id)
        results = query.order_by(SalaryResult.total_salary.desc(), SalaryResult.driver_id.asc()).all()
        return period, results

    def get_driver_result(self, period_id: int, driver_id: int) -> SalaryResult:
        result = SalaryResult.query.filter_by(period_id=period_id, driver_id=driver_id).first()
        if result is None:
            raise NotFoundError('Salary result not found')
        return result

    def get_export_data(self, period_id: int) -> Dict[str, Any]:
        """Plain projection of a period's results for spreadsheet exporters"""
        period, results = self.get_results(period_id)
        rows = [{
            'employee_code': result.driver.employee_code,
            'driver_name': result.driver.full_name,
            'total_trips': result.total_trips,
            'total_weight': float(result.total_weight),
            'total_amount': float(result.total_salary),
        } for result in results]

        return {
            'period': {
                'code': period.code,
                'name': period.name,
                'start': period.period_start.isoformat(),
                'end': period.period_end.isoformat(),
                'status': period.status.name,
            },
            'data': rows,
            'summary': {
                'total_drivers': len(results),
                'total_trips': sum(result.total_trips for result in results),
                'total_weight': float(sum((result.total_weight for result in results), Decimal('0'))),
                'total_amount': float(sum((result.total_salary for result in results), Decimal('0'))),
            },
        }
