"""
Trips API Module
Trip review endpoints for staff and self-service endpoints for drivers
"""

from flask import Blueprint, request, jsonify, g
import logging

from models import UserRole
from services import TripService, AttachmentService, FileService
from services.errors import ForbiddenError
from utils.access_control import roles_required

logger = logging.getLogger(__name__)

# Create trips API blueprint
trips_api_bp = Blueprint('trips_api', __name__)

trip_service = TripService()
attachment_service = AttachmentService()
file_service = FileService()

REVIEW_ROLES = (UserRole.ADMIN, UserRole.DISPATCHER, UserRole.HR)
EDIT_ROLES = (UserRole.ADMIN, UserRole.DISPATCHER)


def _json_body():
    return request.get_json(silent=True) or {}


def _flag(name):
    return request.args.get(name, 'false').lower() in ('true', '1', 'yes')


def _current_driver_id():
    """Driver id from the token; drivers without a profile cannot use self-service"""
    if g.actor.driver_id is None:
        raise ForbiddenError('No driver profile linked to this account', code='NO_DRIVER_PROFILE')
    return g.actor.driver_id


def _list_response(trips, total):
    return jsonify({
        'success': True,
        'trips': [trip.to_dict(include_records=False) for trip in trips],
        'total': total
    })


def _transition_response(result, verb):
    trip_data = result.trip.to_dict()
    if result.already_processed:
        return jsonify({
            'success': False,
            'error': 'ALREADY_PROCESSED',
            'already_processed': True,
            'message': f"Trip already {result.trip.status.name.lower()}",
            'trip': trip_data
        }), 409
    return jsonify({'success': True, 'message': f'Trip {verb}', 'trip': trip_data})


def _add_attachment(trip_id, driver_id=None):
    """Store the uploaded file (or accept a JSON file reference) and attach it"""
    stored = None
    if request.files:
        stored = file_service.save_trip_attachment(request.files.get('file'))
        attachment = dict(stored)
        for key in ('record_type', 'ticket_no', 'weight', 'note'):
            attachment[key] = request.form.get(key)
    else:
        attachment = _json_body()

    try:
        if driver_id is None:
            record = attachment_service.add_attachment(trip_id, attachment, g.actor)
        else:
            record = attachment_service.add_attachment_for_driver(trip_id, driver_id, attachment, g.actor)
    except Exception:
        if stored:
            file_service.delete_trip_attachment(stored['file_url'])
        raise

    return jsonify({'success': True, 'record': record.to_dict()}), 201


# ----------------------------------------------------------------------
# Staff endpoints
# ----------------------------------------------------------------------

@trips_api_bp.route('/', methods=['GET'])
@roles_required(*REVIEW_ROLES)
def list_trips():
    trips, total = trip_service.list_trips(request.args.to_dict())
    return _list_response(trips, total)


@trips_api_bp.route('/review-queue', methods=['GET'])
@roles_required(*REVIEW_ROLES)
def review_queue():
    """PENDING trips awaiting approve/reject"""
    trips, total = trip_service.get_review_queue(request.args.to_dict())
    return _list_response(trips, total)


@trips_api_bp.route('/<int:trip_id>', methods=['GET'])
@roles_required(*REVIEW_ROLES)
def get_trip(trip_id):
    trip_data = trip_service.get_trip(trip_id, include_audit=_flag('include_audit'))
    return jsonify({'success': True, 'trip': trip_data})


@trips_api_bp.route('/', methods=['POST'])
@roles_required(*EDIT_ROLES)
def create_trip():
    trip = trip_service.create_trip(_json_body(), g.actor)
    return jsonify({'success': True, 'trip': trip.to_dict()}), 201


@trips_api_bp.route('/<int:trip_id>', methods=['PUT'])
@roles_required(*EDIT_ROLES)
def update_trip(trip_id):
    trip = trip_service.update_trip(trip_id, _json_body(), g.actor)
    return jsonify({'success': True, 'trip': trip.to_dict()})


@trips_api_bp.route('/<int:trip_id>/submit', methods=['POST'])
@roles_required(*EDIT_ROLES)
def submit_trip(trip_id):
    trip = trip_service.submit_trip(trip_id, g.actor)
    return jsonify({'success': True, 'message': 'Trip submitted for review', 'trip': trip.to_dict()})


@trips_api_bp.route('/<int:trip_id>/approve', methods=['POST'])
@roles_required(*REVIEW_ROLES)
def approve_trip(trip_id):
    result = trip_service.approve_trip(trip_id, _json_body().get('weight_final'), g.actor)
    return _transition_response(result, 'approved')


@trips_api_bp.route('/<int:trip_id>/reject', methods=['POST'])
@roles_required(*REVIEW_ROLES)
def reject_trip(trip_id):
    result = trip_service.reject_trip(trip_id, _json_body().get('reason'), g.actor)
    return _transition_response(result, 'rejected')


@trips_api_bp.route('/<int:trip_id>', methods=['DELETE'])
@roles_required(UserRole.ADMIN)
def delete_trip(trip_id):
    trip = trip_service.delete_trip(trip_id, g.actor)
    return jsonify({
        'success': True,
        'message': 'Trip deleted successfully',
        'deleted_at': trip.deleted_at.isoformat()
    })


@trips_api_bp.route('/<int:trip_id>/attachments', methods=['POST'])
@roles_required(*EDIT_ROLES)
def add_attachment(trip_id):
    return _add_attachment(trip_id)


# ----------------------------------------------------------------------
# Driver self-service endpoints (always scoped to the token's driver)
# ----------------------------------------------------------------------

@trips_api_bp.route('/my', methods=['GET'])
@roles_required(UserRole.DRIVER)
def my_trips():
    trips, total = trip_service.list_driver_trips(
        _current_driver_id(),
        status=request.args.get('status'),
        limit=request.args.get('limit')
    )
    return _list_response(trips, total)


@trips_api_bp.route('/my/<int:trip_id>', methods=['GET'])
@roles_required(UserRole.DRIVER)
def my_trip(trip_id):
    trip = trip_service.find_by_id_for_driver(trip_id, _current_driver_id())
    return jsonify({'success': True, 'trip': trip.to_dict()})


@trips_api_bp.route('/my', methods=['POST'])
@roles_required(UserRole.DRIVER)
def create_my_trip():
    trip = trip_service.create_for_driver(_json_body(), _current_driver_id(), g.actor)
    return jsonify({'success': True, 'trip': trip.to_dict()}), 201


@trips_api_bp.route('/my/<int:trip_id>/submit', methods=['POST'])
@roles_required(UserRole.DRIVER)
def submit_my_trip(trip_id):
    trip = trip_service.submit_for_driver(trip_id, _current_driver_id(), g.actor)
    return jsonify({'success': True, 'message': 'Trip submitted for review', 'trip': trip.to_dict()})


@trips_api_bp.route('/my/<int:trip_id>/attachments', methods=['POST'])
@roles_required(UserRole.DRIVER)
def add_my_attachment(trip_id):
    return _add_attachment(trip_id, driver_id=_current_driver_id())
