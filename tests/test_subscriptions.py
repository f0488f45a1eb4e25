import pytest
import io
import json
from datetime import datetime, timedelta

from carwash.models import SystemNotification, UserSession
from carwash.services import subscription_service
from carwash.services.subscription_service import RequestStateError


@pytest.fixture
def pending_request(db, sample_user):
    request_row = subscription_service.submit_request(
        sample_user,
        "VIP Gold Ultimate",
        "gcash",
        reference_number="GC-1234567890",
        account_name="Juan Dela Cruz",
        amount=799,
    )
    db.session.commit()
    return request_row


def notifications_for(db, user_id):
    return [
        n for n in db.session.query(SystemNotification).all()
        if user_id in (n.target_users or [])
    ]


@pytest.mark.subscription
class TestSubscriptionWorkflow:

    def test_submit_creates_pending_request(self, pending_request):
        assert pending_request.status == "pending"
        assert float(pending_request.package_price) == 799
        assert pending_request.customer_status == "active"

    def test_online_payment_needs_reference(self, db, sample_user):
        with pytest.raises(ValueError):
            subscription_service.submit_request(sample_user, "Classic Silver", "gcash")

    def test_over_counter_needs_no_reference(self, db, sample_user):
        request_row = subscription_service.submit_request(
            sample_user, "Classic Silver", "over_counter"
        )
        assert request_row.reference_number is None

    def test_unknown_package(self, db, sample_user):
        with pytest.raises(ValueError):
            subscription_service.submit_request(
                sample_user, "Diamond", "gcash", reference_number="X"
            )

    def test_approve_grants_tier_for_thirty_days(self, db, sample_user, pending_request):
        now = datetime(2030, 1, 1, 12, 0)

        subscription_service.approve_request(pending_request, "admin@example.com", now=now)
        db.session.commit()

        assert pending_request.status == "approved"
        assert pending_request.reviewed_by == "admin@example.com"
        assert pending_request.review_notes == "Payment verified and subscription activated"
        assert sample_user.subscription_status == "vip"
        assert sample_user.subscription_expiry == now + timedelta(days=30)

        titles = [n.title for n in notifications_for(db, sample_user.id)]
        assert titles == ["Subscription Approved! 🎉"]

    def test_renewal_extends_current_expiry(self, db, sample_user, pending_request):
        now = datetime(2030, 1, 1, 12, 0)
        sample_user.subscription_expiry = now + timedelta(days=10)
        db.session.commit()

        subscription_service.approve_request(pending_request, "admin@example.com", now=now)

        assert sample_user.subscription_expiry == now + timedelta(days=40)

    def test_reject_needs_reason(self, db, pending_request):
        with pytest.raises(ValueError):
            subscription_service.reject_request(pending_request, "admin@example.com", "")
        assert pending_request.status == "pending"

    def test_reviewed_request_cannot_be_reviewed_again(self, db, pending_request):
        subscription_service.reject_request(pending_request, "admin@example.com", "Blurry receipt")

        with pytest.raises(RequestStateError):
            subscription_service.approve_request(pending_request, "admin@example.com")

    def test_under_review_can_still_be_approved(self, db, sample_user, pending_request):
        subscription_service.mark_under_review(pending_request, "admin@example.com", "Checking GCash")
        subscription_service.approve_request(pending_request, "admin@example.com")

        assert pending_request.status == "approved"

    def test_ban_flags_requests_and_disables_account(self, db, sample_user, pending_request):
        db.session.add(
            UserSession(
                user_id=sample_user.id,
                session_token="abc",
                expires_at=datetime.utcnow() + timedelta(hours=1),
            )
        )
        db.session.commit()

        status = subscription_service.ban_customer(sample_user, "admin@example.com", "Fake receipts")
        db.session.commit()

        assert status.status == "banned"
        assert pending_request.customer_status == "banned"
        assert pending_request.review_notes == "Customer banned: Fake receipts"
        assert sample_user.is_active is False
        assert all(not s.is_active for s in sample_user.sessions)

        notification = notifications_for(db, sample_user.id)[-1]
        assert notification.title == "Account Status Update"
        assert notification.priority == "urgent"
        assert notification.action_text == "Contact Support"

    def test_banned_customer_cannot_submit(self, db, sample_user):
        subscription_service.ban_customer(sample_user, "admin@example.com", "Abuse")
        db.session.commit()

        with pytest.raises(RequestStateError):
            subscription_service.submit_request(
                sample_user, "Classic Silver", "over_counter"
            )

    def test_unban_restores_customer(self, db, sample_user, pending_request):
        subscription_service.ban_customer(sample_user, "admin@example.com", "Abuse")
        db.session.commit()

        subscription_service.unban_customer(sample_user, "admin@example.com")
        db.session.commit()
        db.session.refresh(pending_request)

        assert subscription_service.current_customer_status(sample_user.id) == "active"
        assert pending_request.customer_status == "active"
        assert sample_user.is_active is True

    def test_stats(self, db, sample_user, pending_request):
        other = subscription_service.submit_request(
            sample_user, "Classic Silver", "over_counter"
        )
        db.session.commit()
        subscription_service.reject_request(other, "admin@example.com", "Duplicate")
        subscription_service.ban_customer(sample_user, "admin@example.com", "Abuse")
        db.session.commit()

        assert subscription_service.get_stats() == {
            "total": 2,
            "pending": 1,
            "approved": 0,
            "rejected": 1,
            "under_review": 0,
            "banned": 1,
        }


@pytest.mark.subscription
class TestSubscriptionEndpoints:

    def test_packages_are_public(self, client):
        response = client.get('/api/subscriptions/packages')

        packages = json.loads(response.data)['packages']
        assert {p['name']: p['tier'] for p in packages} == {
            'Classic Silver': 'basic',
            'VIP Gold Ultimate': 'vip',
            'Premium Platinum Elite': 'premium',
        }

    def test_submit_request(self, client, auth_headers):
        response = client.post(
            '/api/subscriptions/requests',
            json={
                'package_type': 'Premium Platinum Elite',
                'payment_method': 'bank_transfer',
                'reference_number': 'BPI-998877',
                'amount': 1299,
            },
            headers=auth_headers
        )

        assert response.status_code == 201
        data = json.loads(response.data)
        assert data['request']['status'] == 'pending'
        assert data['request']['payment_details']['reference_number'] == 'BPI-998877'

    def test_submit_without_reference(self, client, auth_headers):
        response = client.post(
            '/api/subscriptions/requests',
            json={'package_type': 'Classic Silver', 'payment_method': 'gcash'},
            headers=auth_headers
        )
        assert response.status_code == 400

    def test_invalid_request_uploads_no_receipt(self, client, app, auth_headers, monkeypatch):
        uploads = []
        monkeypatch.setitem(app.config, 'S3_BUCKET_NAME', 'receipts-bucket')
        monkeypatch.setattr(
            'carwash.api.subscriptions.requests.upload_file_to_s3',
            lambda file, key, bucket: uploads.append(key) or f'https://s3/{key}'
        )

        response = client.post(
            '/api/subscriptions/requests',
            data={
                'package_type': 'Gold Plated',
                'payment_method': 'gcash',
                'reference_number': 'GC-1',
                'receipt': (io.BytesIO(b'receipt'), 'receipt.png'),
            },
            content_type='multipart/form-data',
            headers=auth_headers
        )

        assert response.status_code == 400
        assert uploads == []

    def test_failed_save_deletes_uploaded_receipt(self, client, app, auth_headers, monkeypatch):
        deleted = []
        monkeypatch.setitem(app.config, 'S3_BUCKET_NAME', 'receipts-bucket')
        monkeypatch.setattr(
            'carwash.api.subscriptions.requests.upload_file_to_s3',
            lambda file, key, bucket: f'https://s3/{key}'
        )
        monkeypatch.setattr(
            'carwash.api.subscriptions.requests.delete_file_from_s3',
            lambda url, bucket: deleted.append(url) or True
        )

        def broken_submit(*args, **kwargs):
            raise RuntimeError('database unavailable')

        monkeypatch.setattr(subscription_service, 'submit_request', broken_submit)

        response = client.post(
            '/api/subscriptions/requests',
            data={
                'package_type': 'Classic Silver',
                'payment_method': 'gcash',
                'reference_number': 'GC-2',
                'receipt': (io.BytesIO(b'receipt'), 'receipt.png'),
            },
            content_type='multipart/form-data',
            headers=auth_headers
        )

        assert response.status_code == 500
        assert len(deleted) == 1
        assert deleted[0].endswith('_receipt.png')

    def test_customer_cannot_review(self, client, auth_headers, pending_request):
        response = client.post(
            f'/api/subscriptions/requests/{pending_request.id}/approve',
            headers=auth_headers
        )
        assert response.status_code == 403

    def test_admin_approves(self, client, admin_headers, auth_headers, pending_request):
        response = client.post(
            f'/api/subscriptions/requests/{pending_request.id}/approve',
            json={'notes': 'GCash verified'},
            headers=admin_headers
        )
        assert response.status_code == 200
        assert json.loads(response.data)['request']['review_notes'] == 'GCash verified'

        response = client.get('/api/auth/me', headers=auth_headers)
        assert json.loads(response.data)['user']['subscription_status'] == 'vip'

        response = client.post(
            f'/api/subscriptions/requests/{pending_request.id}/approve',
            headers=admin_headers
        )
        assert response.status_code == 409

    def test_reject_requires_reason(self, client, admin_headers, pending_request):
        response = client.post(
            f'/api/subscriptions/requests/{pending_request.id}/reject',
            json={},
            headers=admin_headers
        )
        assert response.status_code == 400

    def test_review_queue_filters_by_status(self, client, admin_headers, pending_request):
        response = client.get('/api/subscriptions/requests?status=pending', headers=admin_headers)
        assert json.loads(response.data)['count'] == 1

        response = client.get('/api/subscriptions/requests?status=approved', headers=admin_headers)
        assert json.loads(response.data)['count'] == 0

    def test_unknown_request(self, client, admin_headers):
        response = client.get('/api/subscriptions/requests/999', headers=admin_headers)
        assert response.status_code == 404

    def test_ban_blocks_login(self, client, admin_headers, sample_user):
        response = client.post(
            f'/api/subscriptions/customers/{sample_user.id}/ban',
            json={'reason': 'Fraudulent payments'},
            headers=admin_headers
        )
        assert response.status_code == 200
        assert json.loads(response.data)['customer_status']['status'] == 'banned'

        response = client.post(
            '/api/auth/login',
            json={'email': 'customer@example.com', 'password': 'password123'}
        )
        assert response.status_code == 403

    def test_ban_requires_reason(self, client, admin_headers, sample_user):
        response = client.post(
            f'/api/subscriptions/customers/{sample_user.id}/ban',
            json={},
            headers=admin_headers
        )
        assert response.status_code == 400

    def test_admin_cannot_ban_self(self, client, admin_headers, admin_user):
        response = client.post(
            f'/api/subscriptions/customers/{admin_user.id}/ban',
            json={'reason': 'Oops'},
            headers=admin_headers
        )
        assert response.status_code == 400

    def test_manager_cannot_ban_staff(self, client, login, make_user, admin_user):
        make_user('manager@example.com', role='manager', full_name='Shift Manager')
        manager_headers = login('manager@example.com')

        response = client.post(
            f'/api/subscriptions/customers/{admin_user.id}/ban',
            json={'reason': 'Takeover'},
            headers=manager_headers
        )

        assert response.status_code == 403
        assert admin_user.is_active is True
        login('admin@example.com')

    def test_stats_endpoint(self, client, admin_headers, pending_request):
        response = client.get('/api/subscriptions/stats', headers=admin_headers)

        assert response.status_code == 200
        assert json.loads(response.data)['stats']['pending'] == 1
