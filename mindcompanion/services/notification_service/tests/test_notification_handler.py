"""Tests for Notification Service HTTP handler."""
import json
from datetime import timedelta

import pytest
from unittest.mock import MagicMock, patch

from mindcompanion.shared.database import RepositoryError
from mindcompanion.shared.models import NotificationChannel, utc_now
from mindcompanion.shared.utils import configure_pii_salt
from mindcompanion.services.notification_service.reminders import Appointment


@pytest.fixture(autouse=True)
def setup_pii_salt():
    """Configure PII salt before each test."""
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@pytest.fixture
def handler():
    from mindcompanion.services.notification_service import handler
    return handler


@pytest.fixture
def client(handler):
    """Create Flask test client."""
    handler.app.config['TESTING'] = True
    with handler.app.test_client() as client:
        yield client


def enqueue_body(user_id, source_id, **overrides):
    body = {
        'userId': user_id,
        'type': 'appointment_update',
        'sourceEntity': {'kind': 'appointment', 'id': source_id, 'attributes': {}},
        'context': {'title': 'Appointment moved', 'message': 'Your session is now at 3pm.'},
    }
    body.update(overrides)
    return body


class TestHealthEndpoint:
    def test_health_returns_200(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['service'] == 'notification-service'
        assert data['backend'] == 'memory'

    def test_ready_without_database(self, client):
        assert client.get('/ready').status_code == 200


class TestEnqueueEndpoint:
    def test_creates_in_app_and_email(self, client, handler):
        handler.components.identity_store.add_user('user_enqueue_email', 'student@example.edu')

        response = client.post(
            '/enqueue-notification', json=enqueue_body('user_enqueue_email', 'apt_h1')
        )

        assert response.status_code == 201
        data = json.loads(response.data)
        assert data['channelsCreated'] == 2
        assert [r['channel'] for r in data['perChannelResult']] == ['in_app', 'email']
        assert data['contactResolved'] is True

    def test_repeat_is_skipped(self, client):
        body = enqueue_body('user_enqueue_repeat', 'apt_h2')
        client.post('/enqueue-notification', json=body)

        response = client.post('/enqueue-notification', json=body)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['channelsCreated'] == 0
        assert data['skippedReason'] == 'already-notified'

    def test_unknown_user_gets_in_app_only(self, client):
        response = client.post(
            '/enqueue-notification', json=enqueue_body('user_enqueue_unknown', 'apt_h3')
        )

        data = json.loads(response.data)
        assert data['channelsCreated'] == 1
        assert data['contactResolved'] is False

    def test_dry_run_writes_nothing(self, client, handler):
        response = client.post(
            '/enqueue-notification',
            json=enqueue_body('user_enqueue_dry', 'apt_h4', dryRun=True),
        )

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['perChannelResult'][0]['status'] == 'dry-run'
        assert handler.components.repository.list_for_user('user_enqueue_dry') == []

    @pytest.mark.parametrize("body", [
        enqueue_body('', 'apt_bad'),
        enqueue_body('user_bad', 'apt_bad', type='not_a_type'),
        enqueue_body('user_bad', 'apt_bad', sourceEntity={'kind': 'appointment'}),
        enqueue_body('user_bad', 'apt_bad', sourceEntity='apt_bad'),
        enqueue_body('user_bad', 'apt_bad', context=['x']),
        enqueue_body(
            'user_bad', 'alert_bad', type='crisis_alert',
            sourceEntity={'kind': 'crisis_alert', 'id': 'alert_bad', 'attributes': {'level': 'bogus'}},
        ),
    ])
    def test_invalid_body_returns_400(self, client, body):
        response = client.post('/enqueue-notification', json=body)

        assert response.status_code == 400
        assert 'error' in json.loads(response.data)

    def test_missing_body_returns_400(self, client):
        response = client.post('/enqueue-notification', data='x', content_type='text/plain')
        assert response.status_code == 400


class TestDispatchEndpoint:
    def test_sends_pending_records(self, client, handler):
        handler.components.identity_store.add_user('user_dispatch', 'dispatch@example.edu')
        client.post('/enqueue-notification', json=enqueue_body('user_dispatch', 'apt_h5'))
        email = MagicMock()
        email.configured = True

        with patch.dict(handler.dispatcher.providers, {NotificationChannel.EMAIL: email}):
            response = client.post('/dispatch-pending', json={'limit': 100})

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['dryRun'] is False
        statuses = {r['channel']: r['status'] for r in data['results']}
        assert statuses['in_app'] == 'skipped'
        assert statuses['email'] == 'sent'
        email.send.assert_any_call(
            'dispatch@example.edu', 'Appointment moved', 'Your session is now at 3pm.'
        )

    def test_dry_run(self, client, handler):
        client.post('/enqueue-notification', json=enqueue_body('user_dispatch_dry', 'apt_h6'))

        response = client.post('/dispatch-pending', json={'dryRun': True})

        data = json.loads(response.data)
        assert data['dryRun'] is True
        assert all(r['status'] == 'dry-run' for r in data['results'])
        assert handler.components.repository.list_for_user('user_dispatch_dry')[0].is_pending

    def test_empty_body_uses_defaults(self, client):
        assert client.post('/dispatch-pending').status_code == 200

    def test_non_numeric_limit_returns_400(self, client):
        response = client.post('/dispatch-pending', json={'limit': 'ten'})
        assert response.status_code == 400

    @pytest.mark.parametrize("raw_limit", ["NaN", "Infinity", "1e400"])
    def test_non_finite_limit_returns_400(self, client, raw_limit):
        response = client.post(
            '/dispatch-pending',
            data='{"limit": ' + raw_limit + '}',
            content_type='application/json',
        )

        assert response.status_code == 400
        assert 'finite' in json.loads(response.data)['error']

    def test_fetch_failure_returns_500(self, client, handler):
        with patch.object(
            handler.dispatcher.repository, 'fetch_pending', side_effect=RepositoryError("db down")
        ):
            response = client.post('/dispatch-pending', json={})

        assert response.status_code == 500


class TestAppointmentRemindersEndpoint:
    def test_enqueues_reminder(self, client, handler):
        handler.components.appointments.add(Appointment(
            id='apt_handler_reminder',
            user_id='user_reminder',
            appointment_date=utc_now() + timedelta(minutes=30),
            counselor_name='Dr. Okafor',
        ))

        response = client.post('/appointment-reminders', json={'lookAheadMinutes': 60})

        assert response.status_code == 200
        data = json.loads(response.data)
        entry = [r for r in data['results'] if r['appointmentId'] == 'apt_handler_reminder'][0]
        assert entry['created'] == 1
        assert 'windowStart' in data and 'windowEnd' in data

    def test_fetch_failure_returns_500(self, client, handler):
        with patch.object(
            handler.reminder_scheduler.repository, 'list_upcoming',
            side_effect=RepositoryError("db down"),
        ):
            response = client.post('/appointment-reminders', json={})

        assert response.status_code == 500
