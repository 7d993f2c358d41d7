#!/usr/bin/env python3
"""
Database Management Commands for the transport payroll service

Usage:
    python database_commands.py --help
    python database_commands.py init
    python database_commands.py seed
    python database_commands.py status
"""

import os
import sys
import argparse
import logging
from datetime import date
from decimal import Decimal
from app import create_app, db

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

def setup_app_context():
    """Setup Flask application context for database operations."""
    # Set a temporary SESSION_SECRET for CLI operations if not set
    if not os.environ.get('SESSION_SECRET'):
        os.environ['SESSION_SECRET'] = 'cli_temp_secret_not_for_production'

    app = create_app()
    return app.app_context()

def seed_reference_data():
    """
    Load demo users, drivers, vehicles, stations, routes and one PER_TON rule.

    Returns:
        bool: False when data already exists and nothing was written
    """
    from models import (User, UserRole, Driver, Vehicle, Station, StationType, Route,
                        SalaryRule, SalaryRuleType)
    from services import TransactionHelper

    if User.query.first() is not None:
        logger.info("Seed skipped: users table is not empty")
        return False

    with TransactionHelper.transaction():
        users = {}
        for email, name, role in [
            ('admin@transport.local', 'Admin User', UserRole.ADMIN),
            ('dispatcher@transport.local', 'Nguyen Van Dieu', UserRole.DISPATCHER),
            ('hr@transport.local', 'Tran Thi HR', UserRole.HR),
            ('driver1@transport.local', 'Le Van Tai', UserRole.DRIVER),
            ('driver2@transport.local', 'Pham Van Xe', UserRole.DRIVER),
        ]:
            users[email] = User(email=email, full_name=name, role=role)
            db.session.add(users[email])
        db.session.flush()

        for code, name, license_no, user_email in [
            ('TX001', 'Le Van Tai', 'B2-123456', 'driver1@transport.local'),
            ('TX002', 'Pham Van Xe', 'B2-234567', 'driver2@transport.local'),
            ('TX003', 'Hoang Van Ba', 'B2-345678', None),
        ]:
            db.session.add(Driver(
                employee_code=code,
                full_name=name,
                license_number=license_no,
                license_type='C',
                user_id=users[user_email].id if user_email else None
            ))

        for plate, vehicle_type, capacity, brand in [
            ('51C-12345', 'Dump truck', 15, 'Hyundai'),
            ('51C-23456', 'Dump truck', 18, 'Hino'),
            ('51C-34567', 'Tractor', 30, 'Volvo'),
        ]:
            db.session.add(Vehicle(plate_no=plate, vehicle_type=vehicle_type,
                                   capacity_tons=Decimal(capacity), brand=brand))

        stations = {}
        for code, name, station_type in [
            ('MO-01', 'Mo Da Tan Uyen', StationType.MINE),
            ('MO-02', 'Mo Cat Binh Duong', StationType.MINE),
            ('KHO-01', 'Kho VLXD Quan 9', StationType.WAREHOUSE),
            ('NM-01', 'Nha may Be tong A', StationType.FACTORY),
            ('CANG-01', 'Cang Cat Lai', StationType.PORT),
        ]:
            stations[code] = Station(code=code, name=name, station_type=station_type)
            db.session.add(stations[code])
        db.session.flush()

        for code, name, origin, destination, distance in [
            ('TU-01', 'Mo Tan Uyen - Kho Q9', 'MO-01', 'KHO-01', 35),
            ('TU-02', 'Mo Tan Uyen - NM Be tong', 'MO-01', 'NM-01', 40),
            ('BD-01', 'Mo Cat BD - Cang Cat Lai', 'MO-02', 'CANG-01', 50),
        ]:
            db.session.add(Route(code=code, name=name, origin_id=stations[origin].id,
                                 destination_id=stations[destination].id,
                                 distance_km=Decimal(distance)))

        db.session.add(SalaryRule(
            name='Standard per-ton rate',
            description='Default rate for all routes',
            rule_type=SalaryRuleType.PER_TON,
            rate_amount=Decimal('50000'),
            effective_from=date(2024, 1, 1),
            version=1,
            is_active=True,
            created_by_id=users['admin@transport.local'].id
        ))

    logger.info("Seed data created")
    return True

def cmd_init(args):
    """Create all tables."""
    with setup_app_context():
        db.create_all()
        print("✅ Database tables created")

def cmd_seed(args):
    """Load demo reference data."""
    with setup_app_context():
        if seed_reference_data():
            print("✅ Seed data created")
        else:
            print("⚠️ Database already contains users, seed skipped")

def cmd_status(args):
    """Display configuration readiness and table row counts."""
    from models import (User, Driver, Vehicle, Station, Route, Trip, SalaryRule,
                        SalaryPeriod, SalaryResult, AuditLog)
    from utils.config_validator import check_production_readiness

    with setup_app_context():
        print("=" * 60)
        print("DATABASE STATUS REPORT")
        print("=" * 60)

        readiness = check_production_readiness()
        print(f"Production Ready: {'✅ YES' if readiness['production_ready'] else '❌ NO'}")
        for issue in readiness['issues']:
            print(f"  - {issue}")

        print("\nTable Statistics:")
        for model in (User, Driver, Vehicle, Station, Route, Trip, SalaryRule,
                      SalaryPeriod, SalaryResult, AuditLog):
            print(f"  {model.__tablename__}: {model.query.count()} records")

def main():
    """Main command line interface."""
    parser = argparse.ArgumentParser(
        description="Database Management Commands for the transport payroll service",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')
    subparsers.add_parser('init', help='Create database tables')
    subparsers.add_parser('seed', help='Load demo reference data into an empty database')
    subparsers.add_parser('status', help='Display configuration and table statistics')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        'init': cmd_init,
        'seed': cmd_seed,
        'status': cmd_status,
    }

    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error occurred")
        print(f"❌ Unexpected error: {str(e)}")
        sys.exit(1)

if __name__ == "__main__":
    main()
