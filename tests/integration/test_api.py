"""
HTTP API tests through the Flask test client
"""

import io
import os
from datetime import date
from decimal import Decimal

import pytest
from flask import current_app

from models import TripStatus, TripRecord, UserRole

pytestmark = pytest.mark.integration

TRIPS = '/api/v1/trips'
SALARY = '/api/v1/salary'


@pytest.fixture
def staff(auth_headers, reviewer):
    return auth_headers(user_id=reviewer.id, roles=['dispatcher'], email=reviewer.email)


@pytest.fixture
def hr(auth_headers, factories):
    user = factories.user(role=UserRole.HR)
    return auth_headers(user_id=user.id, roles=['hr'], email=user.email)


@pytest.fixture
def admin(auth_headers, factories):
    user = factories.user(role=UserRole.ADMIN)
    return auth_headers(user_id=user.id, roles=['admin'], email=user.email)


class TestPlumbing:

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json()['status'] == 'ok'

    def test_missing_token(self, client):
        response = client.get(f'{TRIPS}/')

        assert response.status_code == 401
        assert response.get_json()['error'] == 'UNAUTHORIZED'

    def test_garbage_token(self, client):
        response = client.get(f'{TRIPS}/', headers={'Authorization': 'Bearer not-a-jwt'})

        assert response.status_code == 422
        assert response.get_json()['error'] == 'INVALID_TOKEN'

    def test_unknown_route_is_json(self, client):
        response = client.get('/api/v1/nothing-here')

        assert response.status_code == 404
        body = response.get_json()
        assert body['success'] is False
        assert body['error'] == 'NOT_FOUND'

    def test_request_id_is_echoed(self, client, staff):
        response = client.get(f'{TRIPS}/', headers={**staff, 'X-Request-ID': 'abc-123'})

        assert response.headers['X-Request-ID'] == 'abc-123'

    def test_request_id_is_generated(self, client):
        response = client.get('/health')

        assert response.headers.get('X-Request-ID')


class TestTripEndpoints:

    def test_full_review_cycle(self, client, staff, trip_payload):
        created = client.post(f'{TRIPS}/', json=trip_payload(), headers=staff)
        assert created.status_code == 201
        trip = created.get_json()['trip']
        assert trip['status'] == 'DRAFT'
        assert trip['driver']['id'] == trip_payload()['driver_id']

        submitted = client.post(f"{TRIPS}/{trip['id']}/submit", headers=staff)
        assert submitted.status_code == 200
        assert submitted.get_json()['trip']['status'] == 'PENDING'

        queue = client.get(f'{TRIPS}/review-queue', headers=staff).get_json()
        assert [t['id'] for t in queue['trips']] == [trip['id']]

        approved = client.post(f"{TRIPS}/{trip['id']}/approve", json={'weight_final': 14.5}, headers=staff)
        assert approved.status_code == 200
        body = approved.get_json()
        assert body['success'] is True
        assert body['trip']['status'] == 'APPROVED'
        assert body['trip']['weight_final'] == 14.5

        replay = client.post(f"{TRIPS}/{trip['id']}/approve", json={'weight_final': 99}, headers=staff)
        assert replay.status_code == 409
        body = replay.get_json()
        assert body['already_processed'] is True
        assert body['error'] == 'ALREADY_PROCESSED'
        assert body['trip']['weight_final'] == 14.5

        detail = client.get(f"{TRIPS}/{trip['id']}?include_audit=true", headers=staff).get_json()
        assert [log['action'] for log in detail['trip']['audit_logs']] == ['UPDATE', 'UPDATE', 'CREATE']

    def test_unknown_reference(self, client, staff, trip_payload):
        response = client.post(f'{TRIPS}/', json=trip_payload(route_id=99999), headers=staff)

        assert response.status_code == 404
        assert response.get_json()['message'] == 'Route not found'

    def test_reject_requires_reason(self, client, staff, factories):
        trip = factories.trip(status=TripStatus.PENDING)

        response = client.post(f'{TRIPS}/{trip.id}/reject', json={}, headers=staff)

        assert response.status_code == 400
        assert response.get_json()['error'] == 'BAD_REQUEST'

    def test_approve_draft_is_forbidden(self, client, staff, factories):
        trip = factories.trip()

        response = client.post(f'{TRIPS}/{trip.id}/approve', headers=staff)

        assert response.status_code == 403
        assert 'Only PENDING trips can be approved' in response.get_json()['message']

    def test_edit_approved_is_forbidden(self, client, staff, factories):
        trip = factories.trip(status=TripStatus.APPROVED)

        response = client.put(f'{TRIPS}/{trip.id}', json={'note': 'late fix'}, headers=staff)

        assert response.status_code == 403
        assert response.get_json()['message'] == 'Cannot edit approved trips'

    def test_missing_trip(self, client, staff):
        response = client.get(f'{TRIPS}/424242', headers=staff)

        assert response.status_code == 404

    def test_list_filters(self, client, staff, factories, reference):
        factories.trip(driver=reference.driver, trip_date=date(2024, 12, 2))
        factories.trip(driver=reference.other_driver, trip_date=date(2024, 12, 3))

        body = client.get(f'{TRIPS}/?driver_id={reference.driver.id}', headers=staff).get_json()

        assert body['total'] == 1
        assert 'records' not in body['trips'][0]

    def test_bad_filter(self, client, staff):
        response = client.get(f'{TRIPS}/?start_date=yesterday', headers=staff)

        assert response.status_code == 400

    def test_admin_soft_delete(self, client, admin, factories):
        trip = factories.trip()

        response = client.delete(f'{TRIPS}/{trip.id}', headers=admin)

        assert response.status_code == 200
        assert response.get_json()['deleted_at']
        assert client.get(f'{TRIPS}/{trip.id}', headers=admin).status_code == 404

    def test_multipart_attachment(self, client, staff, factories):
        trip = factories.trip(status=TripStatus.PENDING)

        response = client.post(
            f'{TRIPS}/{trip.id}/attachments',
            data={
                'file': (io.BytesIO(b'\x89PNG fake'), 'ticket.png'),
                'record_type': 'WEIGHT_TICKET_UNLOAD',
                'weight': '13.9',
            },
            content_type='multipart/form-data',
            headers=staff,
        )

        assert response.status_code == 201
        record = response.get_json()['record']
        assert record['record_type'] == 'WEIGHT_TICKET_UNLOAD'
        assert record['weight'] == 13.9
        assert record['file_name'] == 'ticket.png'
        stored = os.path.join(current_app.config['UPLOAD_FOLDER'], 'trips', os.path.basename(record['file_url']))
        assert os.path.exists(stored)

    def test_rejected_upload_removes_file(self, client, staff, factories):
        trip = factories.trip(status=TripStatus.APPROVED)

        response = client.post(
            f'{TRIPS}/{trip.id}/attachments',
            data={'file': (io.BytesIO(b'\x89PNG fake'), 'ticket.png')},
            content_type='multipart/form-data',
            headers=staff,
        )

        assert response.status_code == 403
        trips_dir = os.path.join(current_app.config['UPLOAD_FOLDER'], 'trips')
        assert not os.path.isdir(trips_dir) or os.listdir(trips_dir) == []
        assert TripRecord.query.count() == 0

    def test_json_attachment(self, client, staff, factories):
        trip = factories.trip()

        response = client.post(f'{TRIPS}/{trip.id}/attachments',
                               json={'file_url': '/uploads/trips/x.pdf', 'record_type': 'OTHER'},
                               headers=staff)

        assert response.status_code == 201
        assert response.get_json()['record']['record_type'] == 'OTHER'


class TestSalaryEndpoints:

    def test_period_lifecycle(self, client, hr, factories, reference):
        factories.trip(driver=reference.driver, status=TripStatus.APPROVED,
                       weight_final=Decimal('14.2'), trip_date=date(2024, 12, 3))
        factories.trip(driver=reference.driver, status=TripStatus.APPROVED,
                       weight_loaded=Decimal('15.0'), weight_final=None, trip_date=date(2024, 12, 10))

        rule = client.post(f'{SALARY}/rules', json={
            'name': 'Standard', 'rate_per_ton': 50000, 'effective_from': '2024-01-01'
        }, headers=hr)
        assert rule.status_code == 201
        assert rule.get_json()['rule']['version'] == 1

        created = client.post(f'{SALARY}/periods', json={
            'period_start': '2024-12-01', 'period_end': '2024-12-15'
        }, headers=hr)
        assert created.status_code == 201
        period = created.get_json()['period']
        assert period['code'] == '2024-12-P1'

        early_close = client.post(f"{SALARY}/periods/{period['id']}/close", headers=hr)
        assert early_close.status_code == 400

        recalculated = client.post(f"{SALARY}/periods/{period['id']}/recalculate", headers=hr)
        assert recalculated.status_code == 200
        summary = recalculated.get_json()['summary']
        assert summary['total_trips'] == 2
        assert summary['total_amount'] == 1460000.0
        assert summary['rule_used']['rate_per_ton'] == 50000.0

        results = client.get(f"{SALARY}/periods/{period['id']}/results", headers=hr).get_json()
        assert results['results'][0]['total_weight'] == 29.2
        assert len(results['results'][0]['breakdown']) == 2

        driver_result = client.get(
            f"{SALARY}/periods/{period['id']}/drivers/{reference.driver.id}", headers=hr
        ).get_json()
        assert driver_result['result']['total_salary'] == 1460000.0

        export = client.get(f"{SALARY}/periods/{period['id']}/export", headers=hr).get_json()
        assert export['summary']['total_amount'] == 1460000.0

        closed = client.post(f"{SALARY}/periods/{period['id']}/close", headers=hr)
        assert closed.status_code == 200
        assert closed.get_json()['period']['status'] == 'LOCKED'

        again = client.post(f"{SALARY}/periods/{period['id']}/recalculate", headers=hr)
        assert again.status_code == 409
        assert again.get_json()['message'] == 'Cannot recalculate closed period'

        listed = client.get(f'{SALARY}/periods', headers=hr).get_json()
        assert listed['periods'][0]['result_count'] == 1

    def test_recalculate_without_rule(self, client, admin, factories):
        period = factories.period()

        response = client.post(f'{SALARY}/periods/{period.id}/recalculate',
                               headers=admin)

        assert response.status_code == 400
        assert response.get_json()['message'] == 'No active salary rule found'

    def test_deactivate_rule(self, client, admin, factories):
        rule = factories.rule()

        first = client.post(f'{SALARY}/rules/{rule.id}/deactivate', headers=admin)
        second = client.post(f'{SALARY}/rules/{rule.id}/deactivate', headers=admin)

        assert first.get_json()['rule']['is_active'] is False
        assert second.status_code == 409

    def test_period_detail_omits_breakdown(self, client, hr, factories):
        period = factories.period()

        body = client.get(f'{SALARY}/periods/{period.id}', headers=hr).get_json()

        assert body['period']['code'] == '2024-12-P1'
        assert body['period']['results'] == []
