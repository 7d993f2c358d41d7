"""
Attachment Service

Adds weight-ticket and photo records to trips that are not yet approved.
"""

from typing import Dict, Any
import logging

from app import db
from models import TripRecord, TripRecordType, TripStatus, Trip
from timezone_utils import get_local_time_naive
from .validators import parse_enum, parse_weight, clean_text
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .trip_service import find_trip
from .errors import ForbiddenError, BadRequestError

logger = logging.getLogger(__name__)

AUDIT_ENTITY = 'trip_records'

class AttachmentService:
    """Service class for trip attachment records"""

    def __init__(self):
        self.audit_service = AuditService()

    def _add(self, trip: Trip, attachment: Dict[str, Any], actor) -> TripRecord:
        if trip.status == TripStatus.APPROVED:
            logger.warning(f"Attachment refused on approved trip {trip.trip_code}")
            raise ForbiddenError('Cannot add attachments to approved trips')

        file_url = clean_text(attachment.get('file_url'), 500)
        if not file_url:
            raise BadRequestError('file_url is required')

        weight = parse_weight(attachment.get('weight'), 'weight')
        record = TripRecord(
            trip_id=trip.id,
            record_type=parse_enum(attachment.get('record_type'), TripRecordType, 'record_type',
                                   default=TripRecordType.PHOTO),
            file_url=file_url,
            file_name=clean_text(attachment.get('file_name'), 255),
            file_type=clean_text(attachment.get('file_type'), 100),
            ticket_no=clean_text(attachment.get('ticket_no'), 50),
            weight=weight,
            weighed_at=get_local_time_naive() if weight is not None else None,
            note=clean_text(attachment.get('note')),
        )
        db.session.add(record)
        db.session.flush()

        self.audit_service.log_create(AUDIT_ENTITY, record.id, {
            'trip_id': trip.id,
            'record_type': record.record_type.name,
            'file_url': record.file_url,
            'ticket_no': record.ticket_no,
            'weight': weight,
        }, actor)
        logger.info(f"Attachment {record.id} ({record.record_type.name}) added to trip {trip.trip_code}")
        return record

    @TransactionHelper.with_transaction
    def add_attachment(self, trip_id: int, attachment: Dict[str, Any], actor=None) -> TripRecord:
        """
        Attach evidence to a trip.

        Args:
            trip_id: ID of trip
            attachment: record_type, file_url, file_name, file_type, and
                optional ticket_no, weight, note
            actor: ActorContext of the caller

        Raises:
            NotFoundError: trip missing or soft-deleted
            ForbiddenError: trip already approved
        """
        return self._add(find_trip(trip_id, for_update=True), attachment, actor)

    @TransactionHelper.with_transaction
    def add_attachment_for_driver(self, trip_id: int, driver_id: int, attachment: Dict[str, Any],
                                  actor=None) -> TripRecord:
        return self._add(find_trip(trip_id, driver_id=driver_id, for_update=True), attachment, actor)
