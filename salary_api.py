"""
Salary API Module
Salary rules, periods, recalculation, locking and result reads for HR
"""

from flask import Blueprint, request, jsonify, g
import logging

from models import UserRole
from services import SalaryService, SalaryRuleService
from utils.access_control import roles_required

logger = logging.getLogger(__name__)

# Create salary API blueprint
salary_api_bp = Blueprint('salary_api', __name__)

salary_service = SalaryService()
rule_service = SalaryRuleService()

PAYROLL_ROLES = (UserRole.ADMIN, UserRole.HR)


def _json_body():
    return request.get_json(silent=True) or {}


# ----------------------------------------------------------------------
# Rules
# ----------------------------------------------------------------------

@salary_api_bp.route('/rules', methods=['GET'])
@roles_required(*PAYROLL_ROLES)
def list_rules():
    active_only = request.args.get('active_only', 'false').lower() in ('true', '1', 'yes')
    rules = rule_service.list_rules(active_only=active_only)
    return jsonify({'success': True, 'rules': [rule.to_dict() for rule in rules]})


@salary_api_bp.route('/rules', methods=['POST'])
@roles_required(*PAYROLL_ROLES)
def create_rule():
    data = _json_body()
    rule = rule_service.create_rule(
        name=data.get('name'),
        rate_per_ton=data.get('rate_per_ton'),
        effective_from=data.get('effective_from'),
        effective_to=data.get('effective_to'),
        route_id=data.get('route_id'),
        description=data.get('description'),
        actor=g.actor
    )
    return jsonify({'success': True, 'rule': rule.to_dict()}), 201


@salary_api_bp.route('/rules/<int:rule_id>/deactivate', methods=['POST'])
@roles_required(*PAYROLL_ROLES)
def deactivate_rule(rule_id):
    rule = rule_service.deactivate_rule(rule_id, g.actor)
    return jsonify({'success': True, 'rule': rule.to_dict()})


# ----------------------------------------------------------------------
# Periods
# ----------------------------------------------------------------------

@salary_api_bp.route('/periods', methods=['GET'])
@roles_required(*PAYROLL_ROLES)
def list_periods():
    rows = salary_service.list_periods(status=request.args.get('status'),
                                       limit=request.args.get('limit', 50))
    return jsonify({
        'success': True,
        'periods': [period.to_dict(result_count=count) for period, count in rows]
    })


@salary_api_bp.route('/periods', methods=['POST'])
@roles_required(*PAYROLL_ROLES)
def create_period():
    data = _json_body()
    period = salary_service.create_period(
        data.get('name'), data.get('period_start'), data.get('period_end'), g.actor
    )
    return jsonify({'success': True, 'period': period.to_dict()}), 201


@salary_api_bp.route('/periods/<int:period_id>', methods=['GET'])
@roles_required(*PAYROLL_ROLES)
def get_period(period_id):
    period, results = salary_service.get_results(period_id)
    data = period.to_dict(result_count=len(results))
    data['results'] = [result.to_dict(include_breakdown=False) for result in results]
    return jsonify({'success': True, 'period': data})


@salary_api_bp.route('/periods/<int:period_id>/recalculate', methods=['POST'])
@roles_required(*PAYROLL_ROLES)
def recalculate_period(period_id):
    summary = salary_service.recalculate(period_id, g.actor)
    response = summary.to_dict()
    response['success'] = True
    return jsonify(response)


@salary_api_bp.route('/periods/<int:period_id>/close', methods=['POST'])
@roles_required(*PAYROLL_ROLES)
def close_period(period_id):
    period = salary_service.close_period(period_id, g.actor)
    return jsonify({'success': True, 'message': 'Period closed', 'period': period.to_dict()})


@salary_api_bp.route('/periods/<int:period_id>/results', methods=['GET'])
@roles_required(*PAYROLL_ROLES)
def period_results(period_id):
    period, results = salary_service.get_results(period_id)
    return jsonify({
        'success': True,
        'period': period.to_dict(result_count=len(results)),
        'results': [result.to_dict() for result in results]
    })


@salary_api_bp.route('/periods/<int:period_id>/drivers/<int:driver_id>', methods=['GET'])
@roles_required(*PAYROLL_ROLES)
def driver_result(period_id, driver_id):
    result = salary_service.get_driver_result(period_id, driver_id)
    data = result.to_dict()
    data['period'] = result.period.to_dict()
    return jsonify({'success': True, 'result': data})


@salary_api_bp.route('/periods/<int:period_id>/export', methods=['GET'])
@roles_required(*PAYROLL_ROLES)
def export_period(period_id):
    export = salary_service.get_export_data(period_id)
    export['success'] = True
    return jsonify(export)
