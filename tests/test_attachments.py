"""
Trip attachment tests: weight tickets, photos and stored files
"""

import io
import os
from decimal import Decimal

import pytest
from flask import current_app
from werkzeug.datastructures import FileStorage

from models import TripRecord, TripRecordType, TripStatus, AuditLog
from services import AttachmentService, FileService
from services.errors import BadRequestError, ForbiddenError, NotFoundError

pytestmark = pytest.mark.workflow


@pytest.fixture
def attachments(app):
    return AttachmentService()


@pytest.fixture
def files(app):
    return FileService()


def _upload(name='ticket.jpg', content=b'\xff\xd8\xff fake jpeg', mimetype='image/jpeg'):
    return FileStorage(stream=io.BytesIO(content), filename=name, content_type=mimetype)


def _stored_path(file_url):
    return os.path.join(current_app.root_path, current_app.config['UPLOAD_FOLDER'],
                        'trips', os.path.basename(file_url))


class TestAttachmentService:

    def test_photo_is_default_type(self, attachments, factories, actor):
        trip = factories.trip()

        record = attachments.add_attachment(trip.id, {'file_url': '/uploads/trips/a.jpg'}, actor)

        assert record.record_type == TripRecordType.PHOTO
        assert record.weight is None
        assert record.weighed_at is None
        assert AuditLog.query.filter_by(entity_type='trip_records', entity_id=record.id).count() == 1

    def test_weight_ticket_with_weight(self, attachments, factories, actor):
        trip = factories.trip(status=TripStatus.PENDING)

        record = attachments.add_attachment(trip.id, {
            'file_url': '/uploads/trips/b.pdf',
            'record_type': 'weight_ticket_load',
            'ticket_no': 'PC-00123',
            'weight': '14.2',
        }, actor)

        assert record.record_type == TripRecordType.WEIGHT_TICKET_LOAD
        assert record.weight == Decimal('14.2')
        assert record.weighed_at is not None
        assert [r.id for r in trip.records] == [record.id]

    @pytest.mark.parametrize('status', [TripStatus.REJECTED, TripStatus.DRAFT])
    def test_allowed_before_approval(self, attachments, factories, actor, status):
        trip = factories.trip(status=status)

        record = attachments.add_attachment(trip.id, {'file_url': '/uploads/trips/c.png'}, actor)

        assert record.trip_id == trip.id

    def test_approved_trip_is_frozen(self, attachments, factories, actor):
        trip = factories.trip(status=TripStatus.APPROVED)

        with pytest.raises(ForbiddenError, match='Cannot add attachments to approved trips'):
            attachments.add_attachment(trip.id, {'file_url': '/uploads/trips/d.png'}, actor)
        assert TripRecord.query.count() == 0

    def test_file_url_required(self, attachments, factories, actor):
        trip = factories.trip()

        with pytest.raises(BadRequestError, match='file_url is required'):
            attachments.add_attachment(trip.id, {'record_type': 'PHOTO'}, actor)

    def test_unknown_record_type(self, attachments, factories, actor):
        trip = factories.trip()

        with pytest.raises(BadRequestError, match='record_type must be one of'):
            attachments.add_attachment(trip.id, {'file_url': '/x.png', 'record_type': 'selfie'}, actor)

    def test_driver_scope(self, attachments, factories, reference, actor):
        trip = factories.trip(driver=reference.other_driver)

        with pytest.raises(NotFoundError, match='access denied'):
            attachments.add_attachment_for_driver(trip.id, reference.driver.id,
                                                  {'file_url': '/uploads/trips/e.png'}, actor)


class TestFileService:

    def test_save_stores_random_name(self, files):
        stored = files.save_trip_attachment(_upload('../../Weigh Ticket.JPG'))

        assert stored['file_url'].startswith('/uploads/trips/')
        assert stored['file_url'].endswith('.jpg')
        assert stored['file_name'] == 'Weigh_Ticket.JPG'
        assert stored['file_type'] == 'image/jpeg'
        assert os.path.exists(_stored_path(stored['file_url']))

    def test_missing_file(self, files):
        with pytest.raises(BadRequestError, match='No file provided'):
            files.save_trip_attachment(None)

    def test_disallowed_extension(self, files):
        with pytest.raises(BadRequestError, match='File type not allowed'):
            files.save_trip_attachment(_upload('script.exe', mimetype='application/octet-stream'))

    def test_too_large(self, files):
        oversized = b'0' * (1024 * 1024 + 1)

        with pytest.raises(BadRequestError, match='File too large. Maximum size: 1MB'):
            files.save_trip_attachment(_upload('big.png', oversized, 'image/png'))

    def test_delete_removes_file(self, files):
        stored = files.save_trip_attachment(_upload('ticket.pdf', b'%PDF-1.4', 'application/pdf'))

        assert files.delete_trip_attachment(stored['file_url']) is True
        assert not os.path.exists(_stored_path(stored['file_url']))
        assert files.delete_trip_attachment(stored['file_url']) is False

    @pytest.mark.parametrize('filename, allowed', [
        ('a.jpeg', True), ('b.PDF', True), ('c.gif', False), ('noext', False),
    ])
    def test_allowed_file(self, files, filename, allowed):
        assert files.allowed_file(filename) is allowed
