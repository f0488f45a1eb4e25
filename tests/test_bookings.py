import pytest
import json
import re
from datetime import date, timedelta


def open_day(days_ahead=10):
    """A future Monday-to-Saturday date, well outside the lead time."""
    day = date.today() + timedelta(days=days_ahead)
    while day.weekday() == 6:
        day += timedelta(days=1)
    return day.isoformat()


@pytest.fixture
def guest_booking():
    return {
        "category": "carwash",
        "service": "vip_pro",
        "date": open_day(),
        "time_slot": "10:00",
        "branch": "tumaga",
        "full_name": "Maria Santos",
        "mobile": "09181234567",
        "email": "maria@example.com",
        "plate_number": "ABC 1234",
    }


def book(client, payload, headers=None):
    return client.post(
        '/api/bookings',
        data=json.dumps(payload),
        content_type='application/json',
        headers=headers or {}
    )


@pytest.mark.booking
class TestCreateBooking:

    def test_guest_booking_success(self, client, guest_booking):
        response = book(client, guest_booking)

        assert response.status_code == 201
        booking = json.loads(response.data)['booking']
        assert re.match(r'^FAC-\d{6}-[A-Z0-9]{3}$', booking['confirmation_code'])
        assert booking['type'] == 'guest'
        assert booking['status'] == 'pending'
        assert booking['total_price'] == 400.0
        assert booking['guest_info']['email'] == 'maria@example.com'

    def test_guest_must_give_contact_details(self, client, guest_booking):
        guest_booking.pop('mobile')
        response = book(client, guest_booking)

        assert response.status_code == 400
        assert 'mobile' in json.loads(response.data)['message']

    def test_registered_booking_links_user(self, client, auth_headers, sample_user, guest_booking):
        for field in ('full_name', 'mobile', 'email'):
            guest_booking.pop(field)
        response = book(client, guest_booking, headers=auth_headers)

        assert response.status_code == 201
        booking = json.loads(response.data)['booking']
        assert booking['type'] == 'registered'
        assert booking['user_id'] == sample_user.id
        assert booking['guest_info']['email'] == 'customer@example.com'

    def test_logged_out_token_books_as_guest(self, client, auth_headers, guest_booking):
        assert client.post('/api/auth/logout', headers=auth_headers).status_code == 200

        response = book(client, guest_booking, headers=auth_headers)

        assert response.status_code == 201
        booking = json.loads(response.data)['booking']
        assert booking['user_id'] is None
        assert booking['type'] == 'guest'

    def test_branch_name_is_stored_as_id(self, client, guest_booking):
        guest_booking['branch'] = 'Boalan Hub'
        response = book(client, guest_booking)

        assert response.status_code == 201
        assert json.loads(response.data)['booking']['branch'] == 'boalan'

    def test_unknown_branch(self, client, guest_booking):
        guest_booking['branch'] = 'atlantis'
        assert book(client, guest_booking).status_code == 400

    def test_invalid_category(self, client, guest_booking):
        guest_booking['category'] = 'oil_change'
        assert book(client, guest_booking).status_code == 400

    def test_home_service_requires_location(self, client, guest_booking):
        guest_booking['service_type'] = 'home'
        guest_booking['service'] = 'premium'
        assert book(client, guest_booking).status_code == 400

    def test_home_service_price_multiplier(self, client, guest_booking):
        guest_booking.update({
            'service_type': 'home',
            'service': 'premium',
            'service_location': 'Tetuan, Zamboanga City',
        })
        response = book(client, guest_booking)

        assert response.status_code == 201
        booking = json.loads(response.data)['booking']
        assert booking['base_price'] == 1500.0
        assert booking['total_price'] == 1800.0

    def test_negative_price_rejected(self, client, guest_booking):
        guest_booking.update({'base_price': -1, 'total_price': 100})
        assert book(client, guest_booking).status_code == 400

    def test_slot_capacity_is_enforced(self, client, guest_booking):
        assert book(client, guest_booking).status_code == 201
        assert book(client, guest_booking).status_code == 201

        response = book(client, guest_booking)

        assert response.status_code == 409
        data = json.loads(response.data)
        assert data['reason'] == 'fully_booked'
        assert data['message'].startswith('No availability for 10:00')

    def test_blackout_date_rejected(self, client, admin_headers, guest_booking):
        client.post(
            '/api/admin/config/blackout-dates',
            json={'date': guest_booking['date']},
            headers=admin_headers
        )

        response = book(client, guest_booking)

        assert response.status_code == 409
        assert json.loads(response.data)['reason'] == 'blackout_date'

    def test_admins_are_notified(self, client, admin_headers, guest_booking):
        book(client, guest_booking)

        response = client.get('/api/notifications', headers=admin_headers)
        notifications = json.loads(response.data)['notifications']

        assert notifications[0]['type'] == 'new_booking'
        assert notifications[0]['priority'] == 'high'
        assert notifications[0]['play_sound'] is True


@pytest.mark.booking
class TestBookingLookup:

    def test_customer_sees_only_own_bookings(self, client, auth_headers, guest_booking):
        book(client, guest_booking)
        own = dict(guest_booking, time_slot='11:00')
        book(client, own, headers=auth_headers)

        response = client.get('/api/bookings', headers=auth_headers)
        data = json.loads(response.data)

        assert data['count'] == 1
        assert data['bookings'][0]['time_slot'] == '11:00'

    def test_staff_see_all_bookings(self, client, admin_headers, guest_booking):
        book(client, guest_booking)
        book(client, dict(guest_booking, time_slot='11:00'))

        response = client.get('/api/bookings', headers=admin_headers)
        assert json.loads(response.data)['count'] == 2

    def test_lookup_by_confirmation_code(self, client, guest_booking):
        code = json.loads(book(client, guest_booking).data)['booking']['confirmation_code']

        response = client.get(f'/api/bookings/code/{code.lower()}')

        assert response.status_code == 200
        assert json.loads(response.data)['booking']['confirmation_code'] == code

    def test_unknown_code(self, client):
        assert client.get('/api/bookings/code/FAC-000000-XXX').status_code == 404


@pytest.mark.booking
class TestBookingStatus:

    def test_status_transition_is_recorded(self, client, admin_headers, guest_booking):
        booking_id = json.loads(book(client, guest_booking).data)['booking']['id']

        response = client.patch(
            f'/api/bookings/{booking_id}',
            json={'status': 'confirmed'},
            headers=admin_headers
        )
        assert response.status_code == 200

        response = client.get(f'/api/bookings/{booking_id}', headers=admin_headers)
        history = json.loads(response.data)['booking']['status_history']
        assert [h['to_status'] for h in history] == ['pending', 'confirmed']
        assert history[1]['changed_by'] == 'admin@example.com'

    def test_completed_booking_cannot_reopen(self, client, admin_headers, guest_booking):
        booking_id = json.loads(book(client, guest_booking).data)['booking']['id']
        client.patch(f'/api/bookings/{booking_id}', json={'status': 'completed'}, headers=admin_headers)

        response = client.patch(
            f'/api/bookings/{booking_id}',
            json={'status': 'pending'},
            headers=admin_headers
        )
        assert response.status_code == 409

    def test_completion_awards_loyalty_points(self, client, admin_headers, auth_headers, guest_booking):
        for field in ('full_name', 'mobile', 'email'):
            guest_booking.pop(field)
        booking = json.loads(book(client, guest_booking, headers=auth_headers).data)['booking']

        for _ in range(2):
            response = client.patch(
                f'/api/bookings/{booking["id"]}',
                json={'status': 'completed'},
                headers=admin_headers
            )
            assert response.status_code == 200

        response = client.get('/api/auth/me', headers=auth_headers)
        assert json.loads(response.data)['user']['loyalty_points'] == int(booking['total_price'])

    def test_customer_cannot_update_status(self, client, auth_headers, guest_booking):
        booking_id = json.loads(book(client, guest_booking).data)['booking']['id']

        response = client.patch(
            f'/api/bookings/{booking_id}',
            json={'status': 'confirmed'},
            headers=auth_headers
        )
        assert response.status_code == 403

    def test_cancel_releases_slot(self, client, auth_headers, guest_booking):
        own = dict(guest_booking)
        for field in ('full_name', 'mobile', 'email'):
            own.pop(field)
        booking_id = json.loads(book(client, own, headers=auth_headers).data)['booking']['id']
        book(client, guest_booking)

        assert book(client, guest_booking).status_code == 409

        response = client.post(f'/api/bookings/{booking_id}/cancel', headers=auth_headers)
        assert response.status_code == 200
        assert json.loads(response.data)['booking']['status'] == 'cancelled'

        assert book(client, guest_booking).status_code == 201

    def test_cancel_twice_conflicts(self, client, auth_headers, guest_booking):
        own = dict(guest_booking)
        for field in ('full_name', 'mobile', 'email'):
            own.pop(field)
        booking_id = json.loads(book(client, own, headers=auth_headers).data)['booking']['id']

        client.post(f'/api/bookings/{booking_id}/cancel', headers=auth_headers)
        response = client.post(f'/api/bookings/{booking_id}/cancel', headers=auth_headers)
        assert response.status_code == 409

    def test_reschedule_into_full_slot(self, client, admin_headers, guest_booking):
        booking_id = json.loads(book(client, guest_booking).data)['booking']['id']
        full = dict(guest_booking, time_slot='11:00')
        book(client, full)
        book(client, full)

        response = client.patch(
            f'/api/bookings/{booking_id}',
            json={'time_slot': '11:00'},
            headers=admin_headers
        )
        assert response.status_code == 409

    def test_reschedule_within_own_slot(self, client, admin_headers, guest_booking):
        booking_id = json.loads(book(client, guest_booking).data)['booking']['id']
        book(client, guest_booking)

        # The booking itself does not count against its own slot
        response = client.patch(
            f'/api/bookings/{booking_id}',
            json={'time_slot': '10:00', 'notes': 'Same slot'},
            headers=admin_headers
        )
        assert response.status_code == 200


@pytest.mark.booking
class TestAvailabilityEndpoints:

    def test_availability_counts_bookings(self, client, guest_booking):
        book(client, guest_booking)

        response = client.get(
            f"/api/bookings/availability?date={guest_booking['date']}&time_slot=10:00&branch=tumaga"
        )

        assert response.status_code == 200
        availability = json.loads(response.data)['availability']
        assert availability['is_available'] is True
        assert availability['booked_count'] == 1
        assert availability['remaining'] == 1

    def test_availability_requires_params(self, client):
        assert client.get('/api/bookings/availability?date=2030-01-07').status_code == 400

    def test_slots_for_day(self, client, guest_booking):
        response = client.get(f"/api/bookings/slots?date={guest_booking['date']}&branch=tumaga")

        assert response.status_code == 200
        slots = json.loads(response.data)['slots']
        assert len(slots) == 10
        assert all(s['is_available'] for s in slots)

    def test_quote(self, client):
        response = client.post(
            '/api/bookings/quote',
            json={'category': 'graphene_coating', 'unit_type': 'motorcycle', 'unit_size': 'big_bike'}
        )

        assert response.status_code == 200
        assert json.loads(response.data)['quote']['total_price'] == 8000.0

    def test_garage_settings(self, client):
        response = client.get('/api/bookings/garage-settings')

        data = json.loads(response.data)['data']
        assert data['timezone'] == 'Asia/Manila'
        assert data['garage_open_time'] == 8
