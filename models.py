from dataclasses import dataclass
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
import json
import uuid
from typing import List

from sqlalchemy import Index, UniqueConstraint
from sqlalchemy.ext.hybrid import hybrid_property

from app import db
from timezone_utils import get_local_time_naive

# Enums for better data integrity
class UserRole(Enum):
    ADMIN = 'admin'
    DISPATCHER = 'dispatcher'
    HR = 'hr'
    DRIVER = 'driver'

class TripStatus(Enum):
    DRAFT = 'draft'
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    # Reserved: read paths may show it, no transition produces it
    EXCEPTION = 'exception'

TERMINAL_TRIP_STATUSES = (TripStatus.APPROVED, TripStatus.REJECTED)

class TripRecordType(Enum):
    WEIGHT_TICKET_LOAD = 'weight_ticket_load'
    WEIGHT_TICKET_UNLOAD = 'weight_ticket_unload'
    PHOTO = 'photo'
    OTHER = 'other'

class StationType(Enum):
    MINE = 'mine'
    WAREHOUSE = 'warehouse'
    PORT = 'port'
    FACTORY = 'factory'
    OTHER = 'other'

class SalaryRuleType(Enum):
    PER_TON = 'per_ton'
    ALLOWANCE = 'allowance'
    BONUS = 'bonus'
    PENALTY = 'penalty'

class SalaryPeriodStatus(Enum):
    OPEN = 'open'
    CALCULATING = 'calculating'
    LOCKED = 'locked'

class AuditAction(Enum):
    CREATE = 'create'
    UPDATE = 'update'
    DELETE = 'delete'


def _num(value):
    return float(value) if value is not None else None

def _iso(value):
    return value.isoformat() if value is not None else None


# Soft delete state. Every query path goes through active_query() or
# record_state instead of checking deleted_at by hand.
@dataclass(frozen=True)
class Active:
    pass

@dataclass(frozen=True)
class Deleted:
    at: datetime


class SoftDeleteMixin:
    deleted_at = db.Column(db.DateTime, index=True)

    @hybrid_property
    def is_deleted(self):
        return self.deleted_at is not None

    @is_deleted.expression
    def is_deleted(cls):
        return cls.deleted_at.isnot(None)

    @property
    def record_state(self):
        if self.deleted_at is None:
            return Active()
        return Deleted(self.deleted_at)

    @classmethod
    def active_query(cls):
        return cls.query.filter(cls.deleted_at.is_(None))


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20))
    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.DRIVER, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    driver_profile = db.relationship('Driver', back_populates='user', uselist=False)

    def __repr__(self):
        return f'<User {self.email}>'


class Driver(SoftDeleteMixin, db.Model):
    __tablename__ = 'drivers'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True)
    employee_code = db.Column(db.String(20), unique=True, nullable=False, index=True)

    full_name = db.Column(db.String(100), nullable=False, index=True)
    phone = db.Column(db.String(20))
    license_number = db.Column(db.String(50), unique=True)
    license_type = db.Column(db.String(10))

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    user = db.relationship('User', back_populates='driver_profile')

    def summary(self):
        return {'id': self.id, 'employee_code': self.employee_code, 'full_name': self.full_name}

    def __repr__(self):
        return f'<Driver {self.employee_code}>'


class Vehicle(SoftDeleteMixin, db.Model):
    __tablename__ = 'vehicles'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    plate_no = db.Column(db.String(20), unique=True, nullable=False, index=True)
    vehicle_type = db.Column(db.String(50))
    capacity_tons = db.Column(db.Numeric(8, 2))
    brand = db.Column(db.String(50))
    model = db.Column(db.String(100))
    manufacturing_year = db.Column(db.Integer)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    def summary(self):
        return {'id': self.id, 'plate_no': self.plate_no, 'vehicle_type': self.vehicle_type}

    def __repr__(self):
        return f'<Vehicle {self.plate_no}>'


class Station(SoftDeleteMixin, db.Model):
    __tablename__ = 'stations'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    station_type = db.Column(db.Enum(StationType), nullable=False, default=StationType.OTHER)
    address = db.Column(db.Text)
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)

    def summary(self):
        return {'id': self.id, 'code': self.code, 'name': self.name}

    def __repr__(self):
        return f'<Station {self.code}>'


class Route(SoftDeleteMixin, db.Model):
    __tablename__ = 'routes'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    origin_id = db.Column(db.Integer, db.ForeignKey('stations.id'), nullable=False)
    destination_id = db.Column(db.Integer, db.ForeignKey('stations.id'), nullable=False)
    distance_km = db.Column(db.Numeric(8, 2))

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)

    origin = db.relationship('Station', foreign_keys=[origin_id])
    destination = db.relationship('Station', foreign_keys=[destination_id])

    def summary(self):
        return {'id': self.id, 'code': self.code, 'name': self.name}

    def __repr__(self):
        return f'<Route {self.code}>'


class Trip(SoftDeleteMixin, db.Model):
    __tablename__ = 'trips'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    trip_code = db.Column(db.String(20), unique=True, nullable=False, index=True)

    # Core relationships
    driver_id = db.Column(db.Integer, db.ForeignKey('drivers.id'), nullable=False, index=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey('vehicles.id'), nullable=False, index=True)
    route_id = db.Column(db.Integer, db.ForeignKey('routes.id'), nullable=False, index=True)
    origin_id = db.Column(db.Integer, db.ForeignKey('stations.id'), nullable=False)
    destination_id = db.Column(db.Integer, db.ForeignKey('stations.id'), nullable=False)

    # Timing
    trip_date = db.Column(db.Date, nullable=False, index=True)
    departure_time = db.Column(db.DateTime)
    arrival_time = db.Column(db.DateTime)

    # Weights in tons; weight_final is the salary input
    weight_loaded = db.Column(db.Numeric(12, 3))
    weight_unloaded = db.Column(db.Numeric(12, 3))
    weight_final = db.Column(db.Numeric(12, 3))

    status = db.Column(db.Enum(TripStatus), nullable=False, default=TripStatus.DRAFT, index=True)
    note = db.Column(db.Text)

    # Review workflow
    submitted_at = db.Column(db.DateTime)
    reviewed_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    reviewed_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    # Relationships
    driver = db.relationship('Driver')
    vehicle = db.relationship('Vehicle')
    route = db.relationship('Route')
    origin = db.relationship('Station', foreign_keys=[origin_id])
    destination = db.relationship('Station', foreign_keys=[destination_id])
    reviewer = db.relationship('User', foreign_keys=[reviewed_by_id])
    records = db.relationship('TripRecord', back_populates='trip', order_by='TripRecord.id')

    __table_args__ = (
        Index('idx_trip_status_date', 'status', 'trip_date'),
        Index('idx_trip_driver_date', 'driver_id', 'trip_date'),
    )

    @property
    def salary_weight(self):
        """Weight used for salary: final, else loaded, else zero"""
        if self.weight_final is not None:
            return self.weight_final
        if self.weight_loaded is not None:
            return self.weight_loaded
        return Decimal('0')

    def snapshot(self):
        """Flat column snapshot used for audit before/after diffs"""
        return {
            'id': self.id,
            'trip_code': self.trip_code,
            'driver_id': self.driver_id,
            'vehicle_id': self.vehicle_id,
            'route_id': self.route_id,
            'origin_id': self.origin_id,
            'destination_id': self.destination_id,
            'trip_date': _iso(self.trip_date),
            'departure_time': _iso(self.departure_time),
            'arrival_time': _iso(self.arrival_time),
            'weight_loaded': _num(self.weight_loaded),
            'weight_unloaded': _num(self.weight_unloaded),
            'weight_final': _num(self.weight_final),
            'status': self.status.name if self.status else None,
            'note': self.note,
            'submitted_at': _iso(self.submitted_at),
            'reviewed_by_id': self.reviewed_by_id,
            'reviewed_at': _iso(self.reviewed_at),
            'rejection_reason': self.rejection_reason,
            'deleted_at': _iso(self.deleted_at),
        }

    def to_dict(self, include_records=True):
        data = self.snapshot()
        data.update({
            'uuid': self.uuid,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
            'driver': self.driver.summary() if self.driver else None,
            'vehicle': self.vehicle.summary() if self.vehicle else None,
            'route': self.route.summary() if self.route else None,
            'origin': self.origin.summary() if self.origin else None,
            'destination': self.destination.summary() if self.destination else None,
        })
        if include_records:
            data['records'] = [record.to_dict() for record in self.records]
        return data

    def __repr__(self):
        return f'<Trip {self.trip_code}:{self.status.name if self.status else None}>'


class TripRecord(db.Model):
    """Weight ticket or photo evidence attached to a trip"""
    __tablename__ = 'trip_records'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    trip_id = db.Column(db.Integer, db.ForeignKey('trips.id'), nullable=False, index=True)

    record_type = db.Column(db.Enum(TripRecordType), nullable=False, default=TripRecordType.PHOTO)
    file_url = db.Column(db.String(500), nullable=False)
    file_name = db.Column(db.String(255))
    file_type = db.Column(db.String(100))

    ticket_no = db.Column(db.String(50))
    weight = db.Column(db.Numeric(12, 3))
    weighed_at = db.Column(db.DateTime)
    note = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)

    trip = db.relationship('Trip', back_populates='records')

    def to_dict(self):
        return {
            'id': self.id,
            'trip_id': self.trip_id,
            'record_type': self.record_type.name if self.record_type else None,
            'file_url': self.file_url,
            'file_name': self.file_name,
            'file_type': self.file_type,
            'ticket_no': self.ticket_no,
            'weight': _num(self.weight),
            'weighed_at': _iso(self.weighed_at),
            'note': self.note,
            'created_at': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<TripRecord {self.id}:{self.record_type.value}>'


class SalaryRule(db.Model):
    __tablename__ = 'salary_rules'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    rule_type = db.Column(db.Enum(SalaryRuleType), nullable=False, default=SalaryRuleType.PER_TON, index=True)
    rate_amount = db.Column(db.Numeric(14, 2), nullable=False)
    config_json = db.Column(db.Text)

    effective_from = db.Column(db.Date, nullable=False, index=True)
    effective_to = db.Column(db.Date)
    version = db.Column(db.Integer, nullable=False, default=1)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    route_id = db.Column(db.Integer, db.ForeignKey('routes.id'))
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)

    route = db.relationship('Route')

    def get_config(self):
        return json.loads(self.config_json) if self.config_json else {}

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'rule_type': self.rule_type.name,
            'rate_amount': _num(self.rate_amount),
            'effective_from': _iso(self.effective_from),
            'effective_to': _iso(self.effective_to),
            'version': self.version,
            'is_active': self.is_active,
            'route': self.route.summary() if self.route else None,
            'created_by_id': self.created_by_id,
            'created_at': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<SalaryRule {self.id} v{self.version}>'


class SalaryPeriod(db.Model):
    __tablename__ = 'salary_periods'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)
    status = db.Column(db.Enum(SalaryPeriodStatus), nullable=False, default=SalaryPeriodStatus.OPEN, index=True)

    locked_at = db.Column(db.DateTime)
    locked_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))

    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    results = db.relationship('SalaryResult', back_populates='period', cascade='all, delete-orphan',
                              order_by='SalaryResult.driver_id')
    locked_by = db.relationship('User', foreign_keys=[locked_by_id])

    @hybrid_property
    def is_locked(self):
        return self.status == SalaryPeriodStatus.LOCKED

    def to_dict(self, result_count=None):
        data = {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'period_start': _iso(self.period_start),
            'period_end': _iso(self.period_end),
            'status': self.status.name,
            'locked_at': _iso(self.locked_at),
            'locked_by_id': self.locked_by_id,
            'created_at': _iso(self.created_at),
        }
        if result_count is not None:
            data['result_count'] = result_count
        return data

    def __repr__(self):
        return f'<SalaryPeriod {self.code}:{self.status.name}>'


@dataclass(frozen=True)
class BreakdownEntry:
    """One contributing trip inside a driver's salary result"""
    trip_id: int
    trip_code: str
    trip_date: date
    route_name: str
    weight: Decimal
    rate_per_ton: Decimal
    amount: Decimal

    def to_dict(self):
        # Decimals are stored as strings so repeated calculations serialize identically
        return {
            'trip_id': self.trip_id,
            'trip_code': self.trip_code,
            'trip_date': self.trip_date.isoformat(),
            'route_name': self.route_name,
            'weight': str(self.weight),
            'rate_per_ton': str(self.rate_per_ton),
            'amount': str(self.amount),
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            trip_id=data['trip_id'],
            trip_code=data['trip_code'],
            trip_date=date.fromisoformat(data['trip_date']),
            route_name=data['route_name'],
            weight=Decimal(data['weight']),
            rate_per_ton=Decimal(data['rate_per_ton']),
            amount=Decimal(data['amount']),
        )


class SalaryResult(db.Model):
    __tablename__ = 'salary_results'

    id = db.Column(db.Integer, primary_key=True)
    period_id = db.Column(db.Integer, db.ForeignKey('salary_periods.id'), nullable=False, index=True)
    driver_id = db.Column(db.Integer, db.ForeignKey('drivers.id'), nullable=False, index=True)

    total_trips = db.Column(db.Integer, nullable=False, default=0)
    total_weight = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    base_salary = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    # Bonus and penalty are carried for payroll exports; the calculator leaves them at zero
    bonus_amount = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    penalty_amount = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    total_salary = db.Column(db.Numeric(16, 2), nullable=False, default=0)

    calculation_details = db.Column(db.Text, nullable=False, default='[]')  # JSON array of BreakdownEntry
    calculated_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    calculation_version = db.Column(db.Integer, nullable=False, default=1)
    rule_version_used = db.Column(db.Integer, db.ForeignKey('salary_rules.id'))

    period = db.relationship('SalaryPeriod', back_populates='results')
    driver = db.relationship('Driver')

    __table_args__ = (
        UniqueConstraint('period_id', 'driver_id', name='unique_period_driver_result'),
    )

    @property
    def breakdown(self) -> List[BreakdownEntry]:
        return [BreakdownEntry.from_dict(item) for item in json.loads(self.calculation_details or '[]')]

    @breakdown.setter
    def breakdown(self, entries: List[BreakdownEntry]):
        self.calculation_details = json.dumps([entry.to_dict() for entry in entries], separators=(',', ':'))

    def to_dict(self, include_breakdown=True):
        data = {
            'id': self.id,
            'period_id': self.period_id,
            'driver': self.driver.summary() if self.driver else {'id': self.driver_id},
            'total_trips': self.total_trips,
            'total_weight': _num(self.total_weight),
            'base_salary': _num(self.base_salary),
            'bonus_amount': _num(self.bonus_amount),
            'penalty_amount': _num(self.penalty_amount),
            'total_salary': _num(self.total_salary),
            'calculated_at': _iso(self.calculated_at),
            'rule_version_used': self.rule_version_used,
        }
        if include_breakdown:
            data['breakdown'] = json.loads(self.calculation_details or '[]')
        return data

    def __repr__(self):
        return f'<SalaryResult period={self.period_id} driver={self.driver_id}>'


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)
    user_email = db.Column(db.String(120))

    # Action details
    action = db.Column(db.Enum(AuditAction), nullable=False, index=True)
    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False)

    # Change tracking
    old_values = db.Column(db.Text)  # JSON
    new_values = db.Column(db.Text)  # JSON
    changed_fields = db.Column(db.Text)  # JSON {field: {from, to}}

    # Request context
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    request_id = db.Column(db.String(64))

    created_at = db.Column(db.DateTime, default=get_local_time_naive, index=True)

    user = db.relationship('User')

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
        Index('idx_audit_date_user', 'created_at', 'user_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'action': self.action.name,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'changes': json.loads(self.changed_fields) if self.changed_fields else None,
            'user_id': self.user_id,
            'user_email': self.user_email,
            'request_id': self.request_id,
            'created_at': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<AuditLog {self.action.name} {self.entity_type}:{self.entity_id}>'
