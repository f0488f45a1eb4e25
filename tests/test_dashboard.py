import pytest
import json
from datetime import datetime, timedelta

from carwash.scheduler import expire_memberships


@pytest.mark.admin
class TestDashboard:

    def test_summary_requires_staff(self, client, auth_headers):
        assert client.get('/api/admin/dashboard/summary', headers=auth_headers).status_code == 403

    def test_summary_counts(self, client, admin_headers, sample_user, make_user):
        make_user('inactive@example.com', is_active=False)

        response = client.get('/api/admin/dashboard/summary', headers=admin_headers)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['totalUsers'] == 3
        assert data['activeUsers'] == 2
        assert data['totalBookings'] == 0
        assert data['pendingSubscriptionRequests'] == 0
        assert data['todaysSales']['total_sales'] == 0

    def test_service_mix(self, client, admin_headers):
        response = client.get('/api/admin/dashboard/service-mix', headers=admin_headers)

        assert response.status_code == 200
        assert json.loads(response.data) == []


@pytest.mark.subscription
class TestMembershipExpiry:

    def test_lapsed_memberships_return_to_free(self, db, sample_user, make_user):
        now = datetime(2030, 1, 1)
        sample_user.subscription_status = "vip"
        sample_user.subscription_expiry = now - timedelta(minutes=1)
        current = make_user('member@example.com')
        current.subscription_status = "premium"
        current.subscription_expiry = now + timedelta(days=3)
        db.session.commit()

        assert expire_memberships(now=now) == 1

        assert sample_user.subscription_status == "free"
        assert sample_user.subscription_expiry is None
        assert current.subscription_status == "premium"
