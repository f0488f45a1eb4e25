import pytest
from datetime import date, datetime
from types import SimpleNamespace

from carwash.models import Booking
from carwash.services.admin_config import DEFAULT_CONFIG, admin_config, deep_merge
from carwash.services.availability import (
    SlotUnavailableError,
    check_slot,
    get_slots_for_date,
    is_slot_available,
    lock_slot,
    reserve_slot,
)

MONDAY = date(2030, 1, 7)
SUNDAY = date(2030, 1, 6)
# Naive values are read in the configured Asia/Manila timezone
EARLY_MONDAY = datetime(2030, 1, 7, 6, 0)


def add_booking(db, time_slot="09:00", branch="tumaga", status="pending", day=MONDAY):
    booking = Booking(
        confirmation_code=f"FAC-{time_slot}-{status}-{db.session.query(Booking).count()}",
        category="carwash",
        service="classic",
        date=day,
        time_slot=time_slot,
        branch=branch,
        base_price=200,
        total_price=200,
        status=status,
    )
    db.session.add(booking)
    db.session.commit()
    return booking


@pytest.mark.booking
class TestCheckSlot:

    def test_open_slot_is_available(self, db):
        result = check_slot(MONDAY, "09:00", "tumaga", now=EARLY_MONDAY)

        assert result["is_available"] is True
        assert result["reason"] is None
        assert result["capacity"] == 2
        assert result["remaining"] == 2

    def test_branch_can_be_given_by_name(self, db):
        result = check_slot(MONDAY, "09:00", "Tumaga Hub", now=EARLY_MONDAY)

        assert result["is_available"] is True
        assert result["branch"] == "tumaga"

    def test_unknown_branch(self, db):
        result = check_slot(MONDAY, "09:00", "nowhere", now=EARLY_MONDAY)

        assert result["is_available"] is False
        assert result["reason"] == "unknown_branch"

    def test_blackout_date(self, db):
        admin_config.add_blackout_date(MONDAY.isoformat())

        result = check_slot(MONDAY, "09:00", "tumaga", now=EARLY_MONDAY)

        assert result["is_available"] is False
        assert result["reason"] == "blackout_date"

    def test_closed_day(self, db):
        result = check_slot(SUNDAY, "09:00", "tumaga", now=datetime(2030, 1, 5, 6, 0))

        assert result["is_available"] is False
        assert result["reason"] == "closed"

    def test_slot_outside_working_hours(self, db):
        result = check_slot(MONDAY, "18:00", "tumaga", now=EARLY_MONDAY)
        assert result["reason"] == "closed"

    def test_lead_time_boundary(self, db):
        # Exactly two hours ahead is still bookable
        assert is_slot_available(MONDAY, "08:00", "tumaga", now=EARLY_MONDAY)

        result = check_slot(MONDAY, "08:00", "tumaga", now=datetime(2030, 1, 7, 6, 30))
        assert result["is_available"] is False
        assert result["reason"] == "lead_time"

    def test_home_service_uses_its_own_lead_time(self, db):
        result = check_slot(MONDAY, "09:00", "tumaga", service_type="home", now=EARLY_MONDAY)
        assert result["reason"] == "lead_time"

        assert is_slot_available(
            MONDAY, "10:00", "tumaga", service_type="home", now=EARLY_MONDAY
        )

    def test_past_slot_is_unavailable(self, db):
        result = check_slot(MONDAY, "09:00", "tumaga", now=datetime(2030, 1, 8, 9, 0))
        assert result["reason"] == "lead_time"

    def test_capacity_reached(self, db):
        add_booking(db)
        add_booking(db)

        result = check_slot(MONDAY, "09:00", "tumaga", now=EARLY_MONDAY)

        assert result["is_available"] is False
        assert result["reason"] == "fully_booked"
        assert result["booked_count"] == 2
        assert result["remaining"] == 0

    def test_cancelled_bookings_do_not_count(self, db):
        add_booking(db)
        add_booking(db, status="cancelled")

        result = check_slot(MONDAY, "09:00", "tumaga", now=EARLY_MONDAY)

        assert result["is_available"] is True
        assert result["booked_count"] == 1
        assert result["remaining"] == 1

    def test_bookings_are_counted_per_branch_and_slot(self, db):
        add_booking(db, branch="boalan")
        add_booking(db, branch="boalan")
        add_booking(db, time_slot="10:00")
        add_booking(db, time_slot="10:00")

        assert is_slot_available(MONDAY, "09:00", "tumaga", now=EARLY_MONDAY)

    def test_excluded_booking_frees_its_own_place(self, db):
        add_booking(db)
        booking = add_booking(db)

        result = check_slot(
            MONDAY, "09:00", "tumaga", now=EARLY_MONDAY, exclude_booking_id=booking.id
        )
        assert result["is_available"] is True

    def test_blackout_is_checked_before_capacity(self, db):
        add_booking(db)
        add_booking(db)
        config = deep_merge(DEFAULT_CONFIG, {"scheduling": {"blackoutDates": ["2030-01-07"]}})

        result = check_slot(MONDAY, "09:00", "tumaga", now=EARLY_MONDAY, config=config)
        assert result["reason"] == "blackout_date"

    def test_invalid_date_raises(self, db):
        with pytest.raises(ValueError):
            check_slot("07/01/2030", "09:00", "tumaga", now=EARLY_MONDAY)


@pytest.mark.booking
class TestSlotsForDate:

    def test_every_configured_slot_is_listed(self, db):
        slots = get_slots_for_date(MONDAY, "tumaga", now=EARLY_MONDAY)

        assert [s["time_slot"] for s in slots] == [
            "08:00", "09:00", "10:00", "11:00", "12:00",
            "13:00", "14:00", "15:00", "16:00", "17:00",
        ]
        assert all(s["is_available"] for s in slots)

    def test_closed_day_has_no_slots(self, db):
        assert get_slots_for_date(SUNDAY, "tumaga", now=EARLY_MONDAY) == []


@pytest.mark.booking
class TestReserveSlot:

    def test_reserve_returns_the_check(self, db):
        result = reserve_slot(MONDAY, "09:00", "tumaga", now=EARLY_MONDAY)
        assert result["is_available"] is True

    def test_full_slot_raises_with_reason(self, db):
        add_booking(db)
        add_booking(db)

        with pytest.raises(SlotUnavailableError) as exc_info:
            reserve_slot(MONDAY, "09:00", "tumaga", now=EARLY_MONDAY)

        assert exc_info.value.reason == "fully_booked"
        assert "No availability for 09:00 on 2030-01-07 at Tumaga Hub" in str(exc_info.value)
        assert exc_info.value.availability["booked_count"] == 2

    def test_sqlite_takes_no_lock(self, db, monkeypatch):
        statements = []
        monkeypatch.setattr(db.session, "execute", lambda *args, **kwargs: statements.append(args))

        lock_slot(MONDAY, "09:00", "tumaga")

        assert statements == []

    def test_postgres_takes_advisory_lock_per_slot(self, db, monkeypatch):
        statements = []
        monkeypatch.setattr(
            db.session, "get_bind", lambda *args, **kwargs: SimpleNamespace(
                dialect=SimpleNamespace(name="postgresql")
            )
        )
        monkeypatch.setattr(
            db.session, "execute", lambda statement, params: statements.append((str(statement), params))
        )

        lock_slot(MONDAY, "09:00", "tumaga")
        lock_slot("2030-01-07", "09:00", "tumaga")
        lock_slot(MONDAY, "10:00", "tumaga")

        assert [sql for sql, _ in statements] == ["SELECT pg_advisory_xact_lock(:key)"] * 3
        keys = [params["key"] for _, params in statements]
        assert keys[0] == keys[1]
        assert keys[0] != keys[2]
