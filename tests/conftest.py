"""
Test configuration and fixtures for the transport payroll service
"""

import os
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

# Set test environment before importing app
os.environ.update({
    'FLASK_ENV': 'testing',
    'SESSION_SECRET': 'test_secret_key_for_testing_only_0123456789',
    'JWT_SECRET_KEY': 'test_jwt_secret_for_testing_only_0123456789',
    'DATABASE_URL': 'sqlite://',
})

import factory
from factory import Faker
from factory.alchemy import SQLAlchemyModelFactory
from flask_jwt_extended import create_access_token

from app import create_app, db
from models import (User, UserRole, Driver, Vehicle, Station, StationType, Route, Trip, TripStatus,
                    SalaryRule, SalaryRuleType, SalaryPeriod, SalaryPeriodStatus)
from utils.access_control import ActorContext
from utils.codes import generate_period_code


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing"""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SQLALCHEMY_ENGINE_OPTIONS': {},
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'MAX_UPLOAD_MB': 1,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    yield db.session
    db.session.rollback()


# Factory classes for test data generation
class UserFactory(SQLAlchemyModelFactory):
    class Meta:
        model = User
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    email = factory.Sequence(lambda n: f"user{n}@test.com")
    full_name = Faker('name')
    role = UserRole.DISPATCHER
    is_active = True


class DriverFactory(SQLAlchemyModelFactory):
    class Meta:
        model = Driver
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    employee_code = factory.Sequence(lambda n: f"TX{n:04d}")
    full_name = Faker('name')
    license_number = factory.Sequence(lambda n: f"B2-{n:06d}")
    license_type = 'C'
    is_active = True


class VehicleFactory(SQLAlchemyModelFactory):
    class Meta:
        model = Vehicle
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    plate_no = factory.Sequence(lambda n: f"51C-{n:05d}")
    vehicle_type = 'Dump truck'
    capacity_tons = Decimal('15')
    is_active = True


class StationFactory(SQLAlchemyModelFactory):
    class Meta:
        model = Station
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    code = factory.Sequence(lambda n: f"ST-{n:03d}")
    name = factory.Sequence(lambda n: f"Station {n}")
    station_type = StationType.MINE
    is_active = True


class RouteFactory(SQLAlchemyModelFactory):
    class Meta:
        model = Route
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    code = factory.Sequence(lambda n: f"RT-{n:03d}")
    name = factory.Sequence(lambda n: f"Route {n}")
    origin = factory.SubFactory(StationFactory)
    destination = factory.SubFactory(StationFactory, station_type=StationType.WAREHOUSE)
    distance_km = Decimal('35')
    is_active = True


class TripFactory(SQLAlchemyModelFactory):
    class Meta:
        model = Trip
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    trip_code = factory.Sequence(lambda n: f"TR241205-{n:04d}")
    driver = factory.SubFactory(DriverFactory)
    vehicle = factory.SubFactory(VehicleFactory)
    route = factory.SubFactory(RouteFactory)
    origin = factory.SelfAttribute('route.origin')
    destination = factory.SelfAttribute('route.destination')
    trip_date = date(2024, 12, 5)
    weight_loaded = Decimal('14.200')
    status = TripStatus.DRAFT


class SalaryRuleFactory(SQLAlchemyModelFactory):
    class Meta:
        model = SalaryRule
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    name = factory.Sequence(lambda n: f"Rule {n}")
    rule_type = SalaryRuleType.PER_TON
    rate_amount = Decimal('50000')
    effective_from = date(2024, 1, 1)
    version = 1
    is_active = True


class SalaryPeriodFactory(SQLAlchemyModelFactory):
    class Meta:
        model = SalaryPeriod
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    period_start = date(2024, 12, 1)
    period_end = date(2024, 12, 15)
    code = factory.LazyAttribute(lambda o: generate_period_code(o.period_start))
    name = factory.LazyAttribute(lambda o: o.code)
    status = SalaryPeriodStatus.OPEN


@pytest.fixture
def factories(app):
    """Factory classes bound to the current app's session"""
    return SimpleNamespace(
        user=UserFactory,
        driver=DriverFactory,
        vehicle=VehicleFactory,
        station=StationFactory,
        route=RouteFactory,
        trip=TripFactory,
        rule=SalaryRuleFactory,
        period=SalaryPeriodFactory,
    )


@pytest.fixture
def reference(factories):
    """One of each trip reference plus a second driver"""
    route = factories.route()
    return SimpleNamespace(
        driver=factories.driver(),
        other_driver=factories.driver(),
        vehicle=factories.vehicle(),
        route=route,
        origin=route.origin,
        destination=route.destination,
    )


@pytest.fixture
def trip_payload(reference):
    def build(**overrides):
        payload = {
            'driver_id': reference.driver.id,
            'vehicle_id': reference.vehicle.id,
            'route_id': reference.route.id,
            'origin_id': reference.origin.id,
            'destination_id': reference.destination.id,
            'trip_date': '2024-12-05',
            'weight_loaded': '14.2',
        }
        payload.update(overrides)
        return payload
    return build


@pytest.fixture
def reviewer(factories):
    return factories.user(role=UserRole.DISPATCHER)


@pytest.fixture
def actor(reviewer):
    """ActorContext for a dispatcher"""
    return ActorContext(
        user_id=reviewer.id,
        roles=frozenset({UserRole.DISPATCHER}),
        email=reviewer.email,
        request_id='test-request',
    )


@pytest.fixture
def auth_headers(app):
    """Build a bearer header carrying the given roles and optional driver id"""
    def build(user_id=1, roles=('admin',), driver_id=None, email=None):
        claims = {'roles': list(roles), 'email': email or f"user{user_id}@test.com"}
        if driver_id is not None:
            claims['driver_id'] = driver_id
        token = create_access_token(identity=str(user_id), additional_claims=claims)
        return {'Authorization': f'Bearer {token}'}
    return build
