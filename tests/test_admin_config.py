import pytest
import json
import copy

from carwash.services.admin_config import (
    DEFAULT_CONFIG,
    admin_config,
    deep_merge,
    find_branch,
    generate_time_slots,
    quote_price,
)


def config_with_monday(**day):
    config = copy.deepcopy(DEFAULT_CONFIG)
    config["scheduling"]["workingHours"]["monday"].update(day)
    return config


@pytest.mark.admin
class TestTimeSlots:

    def test_default_weekday_slots(self):
        slots = generate_time_slots(DEFAULT_CONFIG, "monday")

        assert slots[0] == "08:00"
        assert slots[-1] == "17:00"
        assert len(slots) == 10

    def test_end_time_is_exclusive(self):
        config = config_with_monday(startTime="08:00", endTime="09:30", slotDuration=30)
        assert generate_time_slots(config, "monday") == ["08:00", "08:30", "09:00"]

    def test_partial_last_slot_still_starts_before_end(self):
        config = config_with_monday(startTime="08:00", endTime="09:15", slotDuration=45)
        assert generate_time_slots(config, "monday") == ["08:00", "08:45"]

    def test_disabled_day_has_no_slots(self):
        assert generate_time_slots(DEFAULT_CONFIG, "sunday") == []

    def test_day_lookup_ignores_case(self):
        assert generate_time_slots(DEFAULT_CONFIG, "Monday") == generate_time_slots(
            DEFAULT_CONFIG, "monday"
        )

    def test_unknown_day_has_no_slots(self):
        assert generate_time_slots(DEFAULT_CONFIG, "funday") == []


@pytest.mark.admin
class TestConfigHelpers:

    def test_deep_merge_keeps_missing_defaults(self):
        merged = deep_merge(DEFAULT_CONFIG, {"scheduling": {"capacityPerSlot": 5}})

        assert merged["scheduling"]["capacityPerSlot"] == 5
        assert merged["scheduling"]["leadTime"] == 2
        assert merged["pricing"] == DEFAULT_CONFIG["pricing"]

    def test_deep_merge_replaces_lists(self):
        merged = deep_merge(DEFAULT_CONFIG, {"branches": [{"id": "solo", "name": "Solo"}]})
        assert [b["id"] for b in merged["branches"]] == ["solo"]

    def test_deep_merge_does_not_touch_defaults(self):
        deep_merge(DEFAULT_CONFIG, {"scheduling": {"blackoutDates": ["2030-01-01"]}})
        assert DEFAULT_CONFIG["scheduling"]["blackoutDates"] == []

    def test_find_branch_skips_disabled(self):
        config = copy.deepcopy(DEFAULT_CONFIG)
        config["branches"][1]["enabled"] = False

        assert find_branch(config, "boalan") is None
        assert find_branch(config, "boalan", enabled_only=False)["id"] == "boalan"

    def test_quote_carwash(self):
        quote = quote_price(DEFAULT_CONFIG, "carwash", "vip_pro")
        assert quote == {"base_price": 400.0, "multiplier": 1.0, "total_price": 400.0}

    def test_quote_detailing_by_unit(self):
        quote = quote_price(
            DEFAULT_CONFIG, "auto_detailing", unit_type="car", unit_size="suv"
        )
        assert quote["total_price"] == 4500.0

    def test_quote_home_service_applies_multiplier(self):
        quote = quote_price(DEFAULT_CONFIG, "carwash", "premium", service_type="home")

        assert quote["base_price"] == 1500.0
        assert quote["total_price"] == 1800.0

    def test_quote_rejects_service_not_offered_at_home(self):
        with pytest.raises(ValueError):
            quote_price(DEFAULT_CONFIG, "carwash", "classic", service_type="home")

    def test_quote_unknown_service(self):
        with pytest.raises(ValueError):
            quote_price(DEFAULT_CONFIG, "carwash", "platinum")


@pytest.mark.admin
class TestAdminConfigManager:

    def test_defaults_without_stored_row(self, db):
        assert admin_config.get_config() == DEFAULT_CONFIG

    def test_save_fills_missing_keys(self, db):
        saved = admin_config.save_config({"terms": {"noShowPolicy": "Strict"}})

        assert saved["terms"]["noShowPolicy"] == "Strict"
        assert saved["terms"]["cancellationPolicy"] == DEFAULT_CONFIG["terms"]["cancellationPolicy"]
        assert admin_config.get_config() == saved

    def test_update_scheduling_validates(self, db):
        with pytest.raises(ValueError):
            admin_config.update_scheduling(
                {"workingHours": {"monday": {"startTime": "18:00", "endTime": "08:00"}}}
            )
        with pytest.raises(ValueError):
            admin_config.update_scheduling({"capacityPerSlot": -1})

    def test_update_scheduling_checks_each_time(self, db):
        with pytest.raises(ValueError):
            admin_config.update_scheduling({"workingHours": {"monday": {"startTime": "8am"}}})
        with pytest.raises(ValueError):
            admin_config.update_scheduling({"workingHours": {"monday": {"endTime": "25:00"}}})

    def test_update_scheduling_compares_with_stored_hours(self, db):
        with pytest.raises(ValueError):
            admin_config.update_scheduling({"workingHours": {"monday": {"startTime": "19:00"}}})
        assert admin_config.get_config()["scheduling"]["workingHours"]["monday"]["startTime"] == "08:00"

    def test_partial_day_update_keeps_other_days(self, db):
        admin_config.update_scheduling({"workingHours": {"tuesday": {"endTime": "16:00"}}})
        config = admin_config.update_scheduling({"workingHours": {"monday": {"startTime": "09:00"}}})

        hours = config["scheduling"]["workingHours"]
        assert hours["monday"]["startTime"] == "09:00"
        assert hours["monday"]["endTime"] == "18:00"
        assert hours["tuesday"]["endTime"] == "16:00"

    def test_save_config_validates_scheduling(self, db):
        with pytest.raises(ValueError):
            admin_config.save_config({"scheduling": {"workingHours": {"monday": {"startTime": "8am"}}}})
        with pytest.raises(ValueError):
            admin_config.save_config({"scheduling": {"blackoutDates": ["2030-02-30"]}})
        assert admin_config.get_config() == DEFAULT_CONFIG

    def test_update_scheduling_keeps_other_fields(self, db):
        config = admin_config.update_scheduling({"capacityPerSlot": 4})

        assert config["scheduling"]["capacityPerSlot"] == 4
        assert config["scheduling"]["timezone"] == "Asia/Manila"

    def test_invalid_pricing_category(self, db):
        with pytest.raises(ValueError):
            admin_config.update_pricing("waxing", {})

    def test_blackout_dates_are_idempotent(self, db):
        admin_config.add_blackout_date("2030-12-25")
        config = admin_config.add_blackout_date("2030-12-25")
        assert config["scheduling"]["blackoutDates"] == ["2030-12-25"]

        config = admin_config.remove_blackout_date("2030-12-25")
        assert config["scheduling"]["blackoutDates"] == []

    def test_blackout_date_format(self, db):
        with pytest.raises(ValueError):
            admin_config.add_blackout_date("25-12-2030")
        with pytest.raises(ValueError):
            admin_config.add_blackout_date("2030-13-45")

    def test_branch_lifecycle(self, db):
        admin_config.add_branch({"id": "tetuan", "name": "Tetuan Hub"})
        with pytest.raises(ValueError):
            admin_config.add_branch({"id": "tetuan", "name": "Again"})

        config = admin_config.update_branch("tetuan", {"address": "Tetuan Road"})
        assert find_branch(config, "tetuan")["address"] == "Tetuan Road"
        assert admin_config.update_branch("missing", {"name": "x"}) is None

        config = admin_config.remove_branch("tetuan")
        assert find_branch(config, "tetuan") is None

    def test_reset_to_defaults(self, db):
        admin_config.update_scheduling({"capacityPerSlot": 9})
        assert admin_config.reset_to_defaults() == DEFAULT_CONFIG


@pytest.mark.admin
class TestAdminConfigEndpoints:

    def test_config_is_public(self, client):
        response = client.get('/api/admin/config')

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['config']['scheduling']['capacityPerSlot'] == 2

    def test_customer_cannot_change_config(self, client, auth_headers):
        response = client.patch(
            '/api/admin/config/scheduling',
            json={'capacityPerSlot': 3},
            headers=auth_headers
        )
        assert response.status_code == 403

    def test_admin_updates_scheduling(self, client, admin_headers):
        response = client.patch(
            '/api/admin/config/scheduling',
            json={'capacityPerSlot': 3},
            headers=admin_headers
        )

        assert response.status_code == 200
        assert json.loads(response.data)['config']['scheduling']['capacityPerSlot'] == 3

    def test_invalid_scheduling_is_400(self, client, admin_headers):
        response = client.patch(
            '/api/admin/config/scheduling',
            json={'leadTime': 'soon'},
            headers=admin_headers
        )
        assert response.status_code == 400

    def test_put_rejects_bad_working_hours(self, client, admin_headers):
        response = client.put(
            '/api/admin/config',
            json={'scheduling': {'workingHours': {'monday': {'startTime': '8am'}}}},
            headers=admin_headers
        )

        assert response.status_code == 400
        assert '8am' in json.loads(response.data)['message']

        response = client.get('/api/bookings/slots?date=2030-01-07&branch=tumaga')
        assert response.status_code == 200

    def test_patch_rejects_bad_working_hours(self, client, admin_headers):
        response = client.patch(
            '/api/admin/config/scheduling',
            json={'workingHours': {'monday': {'startTime': '8am'}}},
            headers=admin_headers
        )
        assert response.status_code == 400

        response = client.get('/api/admin/config')
        monday = json.loads(response.data)['config']['scheduling']['workingHours']['monday']
        assert monday['startTime'] == '08:00'

    def test_add_branch_and_duplicate(self, client, admin_headers):
        branch = {'id': 'tetuan', 'name': 'Tetuan Hub'}

        response = client.post('/api/admin/config/branches', json=branch, headers=admin_headers)
        assert response.status_code == 201

        response = client.post('/api/admin/config/branches', json=branch, headers=admin_headers)
        assert response.status_code == 400

    def test_update_unknown_branch_is_404(self, client, admin_headers):
        response = client.patch(
            '/api/admin/config/branches/missing',
            json={'name': 'Nope'},
            headers=admin_headers
        )
        assert response.status_code == 404

    def test_blackout_date_endpoints(self, client, admin_headers):
        response = client.post(
            '/api/admin/config/blackout-dates',
            json={'date': '2030-12-25'},
            headers=admin_headers
        )
        assert response.status_code == 200
        assert '2030-12-25' in json.loads(response.data)['config']['scheduling']['blackoutDates']

        response = client.delete(
            '/api/admin/config/blackout-dates/2030-12-25',
            headers=admin_headers
        )
        assert json.loads(response.data)['config']['scheduling']['blackoutDates'] == []

    def test_time_slots_endpoint(self, client):
        response = client.get('/api/admin/config/time-slots/saturday')

        assert response.status_code == 200
        assert json.loads(response.data)['slots'][0] == '08:00'

        response = client.get('/api/admin/config/time-slots/funday')
        assert response.status_code == 400
