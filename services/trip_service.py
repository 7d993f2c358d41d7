"""
Trip Service

Owns the trip lifecycle: DRAFT -> PENDING -> APPROVED | REJECTED.
Enforces transition legality, idempotent re-invocation of the terminal
transitions, immutability of approved trips and row-level ownership for
driver self-service calls.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any, Tuple, List
import logging

from sqlalchemy.exc import IntegrityError

from app import db
from models import Trip, TripStatus, Deleted, TERMINAL_TRIP_STATUSES
from timezone_utils import get_local_time_naive
from utils.codes import generate_trip_code
from .validators import parse_date, parse_datetime, parse_weight, parse_id, parse_enum, clean_text
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .reference_service import ReferenceService
from .errors import NotFoundError, ConflictError, ForbiddenError, BadRequestError

logger = logging.getLogger(__name__)

AUDIT_ENTITY = 'trips'

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200

REFERENCE_FIELDS = ('driver_id', 'vehicle_id', 'route_id', 'origin_id', 'destination_id')


class TransitionOutcome(Enum):
    APPLIED = 'applied'
    ALREADY_APPLIED = 'already_applied'


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of approve/reject; ALREADY_APPLIED carries the trip as it stands"""
    outcome: TransitionOutcome
    trip: Trip

    @property
    def already_processed(self) -> bool:
        return self.outcome is TransitionOutcome.ALREADY_APPLIED


def find_trip(trip_id: int, driver_id: Optional[int] = None, for_update: bool = False) -> Trip:
    """
    Single lookup path for trips.

    Id, owner scope and soft-delete state are filtered in one query, so a
    trip owned by another driver is indistinguishable from a missing one.

    Raises:
        NotFoundError: no visible trip matches
    """
    query = Trip.active_query().filter(Trip.id == trip_id)
    if driver_id is not None:
        query = query.filter(Trip.driver_id == driver_id)
    if for_update:
        query = query.with_for_update().populate_existing()
    trip = query.first()
    if trip is None:
        raise NotFoundError('Trip not found or access denied' if driver_id is not None else 'Trip not found')
    return trip


class TripService:
    """Service class for trip lifecycle operations"""

    def __init__(self):
        self.audit_service = AuditService()
        self.reference_service = ReferenceService()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_trips(self, filters: Optional[Dict[str, Any]] = None) -> Tuple[List[Trip], int]:
        """
        List visible trips, newest first.

        Args:
            filters: driver_id, vehicle_id, route_id, status, start_date,
                end_date, limit, offset

        Returns:
            tuple: (trips, total matching count before paging)
        """
        filters = filters or {}
        query = Trip.active_query()

        for key in ('driver_id', 'vehicle_id', 'route_id'):
            value = parse_id(filters.get(key), key, required=False)
            if value is not None:
                query = query.filter(getattr(Trip, key) == value)

        if filters.get('status'):
            query = query.filter(Trip.status == parse_enum(filters['status'], TripStatus, 'status'))

        start_date = parse_date(filters.get('start_date'), 'start_date')
        end_date = parse_date(filters.get('end_date'), 'end_date')
        if start_date:
            query = query.filter(Trip.trip_date >= start_date)
        if end_date:
            query = query.filter(Trip.trip_date <= end_date)

        limit = parse_id(filters.get('limit'), 'limit', required=False) or DEFAULT_PAGE_SIZE
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, parse_id(filters.get('offset'), 'offset', required=False) or 0)

        total = query.count()
        trips = query.order_by(Trip.trip_date.desc(), Trip.created_at.desc(), Trip.id.desc()) \
                     .offset(offset).limit(limit).all()
        return trips, total

    def get_review_queue(self, filters: Optional[Dict[str, Any]] = None) -> Tuple[List[Trip], int]:
        filters = dict(filters or {})
        if not filters.get('status'):
            filters['status'] = TripStatus.PENDING
        return self.list_trips(filters)

    def list_driver_trips(self, driver_id: int, status=None, limit=None) -> Tuple[List[Trip], int]:
        """List trips for one driver; the driver filter cannot be overridden."""
        return self.list_trips({'driver_id': driver_id, 'status': status, 'limit': limit})

    def get_trip(self, trip_id: int, include_audit: bool = False) -> Dict[str, Any]:
        trip = find_trip(trip_id)
        data = trip.to_dict()
        if include_audit:
            history = self.audit_service.get_entity_history(AUDIT_ENTITY, trip.id, limit=10)
            data['audit_logs'] = [entry.to_dict() for entry in history]
        return data

    def find_by_id_for_driver(self, trip_id: int, driver_id: int) -> Trip:
        return find_trip(trip_id, driver_id=driver_id)

    # ------------------------------------------------------------------
    # Creation and edits
    # ------------------------------------------------------------------

    def _create(self, data: Dict[str, Any], actor) -> Trip:
        references = {key: parse_id(data.get(key), key) for key in REFERENCE_FIELDS}
        trip_date = parse_date(data.get('trip_date'), 'trip_date', required=True)
        departure_time = parse_datetime(data.get('departure_time'), 'departure_time')
        arrival_time = parse_datetime(data.get('arrival_time'), 'arrival_time')
        weight_loaded = parse_weight(data.get('weight_loaded'), 'weight_loaded')
        weight_unloaded = parse_weight(data.get('weight_unloaded'), 'weight_unloaded')

        self.reference_service.validate_trip_references(**references)

        trip = Trip(
            trip_code=generate_trip_code(),
            trip_date=trip_date,
            departure_time=departure_time,
            arrival_time=arrival_time,
            weight_loaded=weight_loaded,
            weight_unloaded=weight_unloaded,
            note=clean_text(data.get('note')),
            status=TripStatus.DRAFT,
            **references
        )
        db.session.add(trip)
        try:
            db.session.flush()
        except IntegrityError:
            logger.warning(f"Trip code collision on {trip.trip_code}")
            raise ConflictError(f"Trip code {trip.trip_code} already exists, please retry")

        self.audit_service.log_create(AUDIT_ENTITY, trip.id, trip.snapshot(), actor)
        logger.info(f"Trip {trip.trip_code} created for driver {trip.driver_id}")
        return trip

    @TransactionHelper.with_transaction
    def create_trip(self, data: Dict[str, Any], actor=None) -> Trip:
        """
        Create a DRAFT trip after checking all five references.

        Raises:
            NotFoundError: naming the first reference that does not resolve
            BadRequestError: malformed input
        """
        return self._create(data, actor)

    @TransactionHelper.with_transaction
    def create_for_driver(self, data: Dict[str, Any], driver_id: int, actor=None) -> Trip:
        """Create a trip owned by the calling driver; any supplied driver_id is ignored."""
        payload = dict(data)
        payload['driver_id'] = driver_id
        return self._create(payload, actor)

    @TransactionHelper.with_transaction
    def update_trip(self, trip_id: int, data: Dict[str, Any], actor=None) -> Trip:
        """
        Patch the fields present in ``data``.

        Status is changed only through the transition operations, so it is
        not accepted here.
        """
        trip = find_trip(trip_id, for_update=True)
        if trip.status == TripStatus.APPROVED:
            logger.warning(f"Rejected edit of approved trip {trip.trip_code}")
            raise ForbiddenError('Cannot edit approved trips')
        if 'status' in data:
            raise BadRequestError('status cannot be changed by update; use submit, approve or reject')

        before = trip.snapshot()
        changes = {}

        for key in REFERENCE_FIELDS:
            if key in data:
                changes[key] = parse_id(data[key], key)
        if 'trip_date' in data:
            changes['trip_date'] = parse_date(data['trip_date'], 'trip_date', required=True)
        for key in ('departure_time', 'arrival_time'):
            if key in data:
                changes[key] = parse_datetime(data[key], key)
        for key in ('weight_loaded', 'weight_unloaded', 'weight_final'):
            if key in data:
                changes[key] = parse_weight(data[key], key)
        if 'note' in data:
            changes['note'] = clean_text(data['note'])

        # Changed references must still resolve
        merged = {key: changes.get(key, getattr(trip, key)) for key in REFERENCE_FIELDS}
        if any(key in changes and changes[key] != getattr(trip, key) for key in REFERENCE_FIELDS):
            self.reference_service.validate_trip_references(**merged)

        for key, value in changes.items():
            setattr(trip, key, value)
        db.session.flush()

        self.audit_service.log_update(AUDIT_ENTITY, trip.id, before, trip.snapshot(), actor)
        logger.info(f"Trip {trip.trip_code} updated: {', '.join(sorted(changes)) or 'no fields'}")
        return trip

    @TransactionHelper.with_transaction
    def delete_trip(self, trip_id: int, actor=None) -> Trip:
        """Soft delete; the row stays for audit."""
        trip = find_trip(trip_id, for_update=True)
        if trip.status == TripStatus.APPROVED:
            logger.warning(f"Rejected delete of approved trip {trip.trip_code}")
            raise ForbiddenError('Cannot delete approved trips')

        before = trip.snapshot()
        trip.deleted_at = get_local_time_naive()
        db.session.flush()

        self.audit_service.log_delete(AUDIT_ENTITY, trip.id, before, actor)
        logger.info(f"Trip {trip.trip_code} soft-deleted")
        return trip

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _compare_and_set(self, trip: Trip, expected: TripStatus, values: Dict[str, Any]) -> bool:
        """Apply ``values`` only if the row still has the expected status."""
        updated = db.session.query(Trip).filter(
            Trip.id == trip.id,
            Trip.status == expected,
            Trip.deleted_at.is_(None)
        ).update(values, synchronize_session=False)
        db.session.refresh(trip)
        return updated == 1

    def _submit(self, trip: Trip, actor) -> Trip:
        if trip.status != TripStatus.DRAFT:
            logger.warning(f"Submit refused for trip {trip.trip_code} in {trip.status.name}")
            raise ForbiddenError('Only draft trips can be submitted')

        before = trip.snapshot()
        if not self._compare_and_set(trip, TripStatus.DRAFT, {
            'status': TripStatus.PENDING,
            'submitted_at': get_local_time_naive(),
        }):
            raise ForbiddenError('Only draft trips can be submitted')

        self.audit_service.log_update(AUDIT_ENTITY, trip.id, before, trip.snapshot(), actor)
        logger.info(f"Trip {trip.trip_code} submitted for review")
        return trip

    @TransactionHelper.with_transaction
    def submit_trip(self, trip_id: int, actor=None) -> Trip:
        return self._submit(find_trip(trip_id, for_update=True), actor)

    @TransactionHelper.with_transaction
    def submit_for_driver(self, trip_id: int, driver_id: int, actor=None) -> Trip:
        return self._submit(find_trip(trip_id, driver_id=driver_id, for_update=True), actor)

    def _resolve(self, trip: Trip, target: TripStatus, values: Dict[str, Any], actor) -> TransitionResult:
        before = trip.snapshot()
        if self._compare_and_set(trip, TripStatus.PENDING, values):
            self.audit_service.log_update(AUDIT_ENTITY, trip.id, before, trip.snapshot(), actor)
            logger.info(f"Trip {trip.trip_code} {target.name.lower()} by user {getattr(actor, 'user_id', None)}")
            return TransitionResult(TransitionOutcome.APPLIED, trip)

        # Lost a race with another reviewer
        if isinstance(trip.record_state, Deleted):
            raise NotFoundError('Trip not found')
        if trip.status in TERMINAL_TRIP_STATUSES:
            logger.info(f"Trip {trip.trip_code} was resolved concurrently as {trip.status.name}")
            return TransitionResult(TransitionOutcome.ALREADY_APPLIED, trip)
        raise ForbiddenError(f"Cannot {target.name.lower()} trip with status '{trip.status.name}'")

    @TransactionHelper.with_transaction
    def approve_trip(self, trip_id: int, weight_final=None, actor=None) -> TransitionResult:
        """
        Approve a PENDING trip.

        Args:
            trip_id: ID of trip
            weight_final: authoritative weight; defaults to weight_loaded
            actor: ActorContext of the reviewer

        Returns:
            TransitionResult: ALREADY_APPLIED when the trip is already approved
        """
        weight = parse_weight(weight_final, 'weight_final')
        trip = find_trip(trip_id, for_update=True)

        if trip.status == TripStatus.APPROVED:
            logger.info(f"Approve replay on trip {trip.trip_code}")
            return TransitionResult(TransitionOutcome.ALREADY_APPLIED, trip)
        if trip.status != TripStatus.PENDING:
            logger.warning(f"Approve refused for trip {trip.trip_code} in {trip.status.name}")
            raise ForbiddenError(
                f"Cannot approve trip with status '{trip.status.name}'. Only PENDING trips can be approved."
            )

        return self._resolve(trip, TripStatus.APPROVED, {
            'status': TripStatus.APPROVED,
            'weight_final': weight if weight is not None else trip.weight_loaded,
            'reviewed_by_id': getattr(actor, 'user_id', None),
            'reviewed_at': get_local_time_naive(),
        }, actor)

    @TransactionHelper.with_transaction
    def reject_trip(self, trip_id: int, reason, actor=None) -> TransitionResult:
        """
        Reject a PENDING trip with a non-empty reason.

        Returns:
            TransitionResult: ALREADY_APPLIED when the trip is already rejected
        """
        trip = find_trip(trip_id, for_update=True)

        reason = clean_text(reason)
        if not reason:
            raise BadRequestError('Rejection reason is required')

        if trip.status == TripStatus.REJECTED:
            logger.info(f"Reject replay on trip {trip.trip_code}")
            return TransitionResult(TransitionOutcome.ALREADY_APPLIED, trip)
        if trip.status != TripStatus.PENDING:
            logger.warning(f"Reject refused for trip {trip.trip_code} in {trip.status.name}")
            raise ForbiddenError(
                f"Cannot reject trip with status '{trip.status.name}'. Only PENDING trips can be rejected."
            )

        return self._resolve(trip, TripStatus.REJECTED, {
            'status': TripStatus.REJECTED,
            'rejection_reason': reason,
            'reviewed_by_id': getattr(actor, 'user_id', None),
            'reviewed_at': get_local_time_naive(),
        }, actor)
