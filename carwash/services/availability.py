"""
Booking slot availability.

A slot (date, time slot, branch) is bookable when the date is not blacked
out, the branch is open that day, the slot start is at least the configured
lead time away, and fewer than ``capacityPerSlot`` non-cancelled bookings
already hold it.
"""
import zlib
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import func, text

from carwash.extensions import db
from carwash.models import Booking
from carwash.services.admin_config import (
    WEEKDAYS,
    admin_config,
    find_branch,
    generate_time_slots,
    parse_hhmm,
)


UNAVAILABLE_MESSAGES = {
    "unknown_branch": "Branch '{branch}' is not available for booking.",
    "blackout_date": "Bookings are closed on {date}. Please choose another date.",
    "closed": "{branch} is not open for {time_slot} on {date}.",
    "lead_time": "{time_slot} on {date} is too soon to book. Please select a later time slot.",
    "fully_booked": (
        "No availability for {time_slot} on {date} at {branch}. "
        "Please select another time slot."
    ),
}


class SlotUnavailableError(Exception):
    """Raised when a booking targets a slot that cannot take it."""

    def __init__(self, message, reason=None, availability=None):
        super().__init__(message)
        self.reason = reason
        self.availability = availability


def parse_date(value):
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (TypeError, ValueError):
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD")


def local_now(config):
    return datetime.now(ZoneInfo(config["scheduling"].get("timezone") or "UTC"))


def slot_start(config, slot_date, time_slot):
    minutes = parse_hhmm(time_slot)
    tz = ZoneInfo(config["scheduling"].get("timezone") or "UTC")
    return datetime.combine(slot_date, time(minutes // 60, minutes % 60), tzinfo=tz)


def count_booked(slot_date, time_slot, branch_id, exclude_booking_id=None):
    query = db.session.query(func.count(Booking.id)).filter(
        Booking.date == slot_date,
        Booking.time_slot == time_slot,
        Booking.branch == branch_id,
        Booking.status != "cancelled",
    )
    if exclude_booking_id is not None:
        query = query.filter(Booking.id != exclude_booking_id)
    return query.scalar() or 0


def check_slot(slot_date, time_slot, branch, service_type="branch", now=None,
               config=None, exclude_booking_id=None):
    """
    Evaluate one slot and explain the outcome.

    ``now`` may be passed to pin the clock; naive values are read in the
    configured timezone. Returns a dict with ``is_available``, ``reason``,
    ``booked_count``, ``capacity`` and ``remaining``.
    """
    config = config or admin_config.get_config()
    scheduling = config["scheduling"]
    slot_date = parse_date(slot_date)
    capacity = int(scheduling.get("capacityPerSlot", 0))

    result = {
        "date": slot_date.isoformat(),
        "time_slot": time_slot,
        "branch": branch,
        "is_available": False,
        "reason": None,
        "booked_count": 0,
        "capacity": capacity,
        "remaining": 0,
    }

    branch_config = find_branch(config, branch)
    if branch_config is None:
        result["reason"] = "unknown_branch"
        return result
    result["branch"] = branch_config["id"]

    if slot_date.isoformat() in scheduling.get("blackoutDates", []):
        result["reason"] = "blackout_date"
        return result

    weekday = WEEKDAYS[slot_date.weekday()]
    if time_slot not in generate_time_slots(config, weekday):
        result["reason"] = "closed"
        return result

    if now is None:
        now = local_now(config)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=ZoneInfo(scheduling.get("timezone") or "UTC"))

    if service_type == "home":
        lead_hours = float(config["homeService"].get("leadTime", 0))
    else:
        lead_hours = float(scheduling.get("leadTime", 0))
    if slot_start(config, slot_date, time_slot) - now < timedelta(hours=lead_hours):
        result["reason"] = "lead_time"
        return result

    booked = count_booked(slot_date, time_slot, branch_config["id"], exclude_booking_id)
    result["booked_count"] = booked
    result["remaining"] = max(capacity - booked, 0)
    if booked >= capacity:
        result["reason"] = "fully_booked"
        return result

    result["is_available"] = True
    return result


def is_slot_available(slot_date, time_slot, branch, **kwargs):
    return check_slot(slot_date, time_slot, branch, **kwargs)["is_available"]


def get_slots_for_date(slot_date, branch, service_type="branch", now=None, config=None):
    config = config or admin_config.get_config()
    slot_date = parse_date(slot_date)
    weekday = WEEKDAYS[slot_date.weekday()]
    return [
        check_slot(slot_date, slot, branch, service_type=service_type, now=now, config=config)
        for slot in generate_time_slots(config, weekday)
    ]


def lock_slot(slot_date, time_slot, branch_id):
    """
    Serialize writers for one slot until the current transaction ends.

    Only Postgres takes a lock, a transaction-scoped advisory lock keyed on
    the slot. Other backends get no lock: under sqlite's deferred
    transactions the capacity count runs before the write lock is held, so
    two concurrent bookings can both pass the check there.
    """
    bind = db.session.get_bind()
    if bind.dialect.name != "postgresql":
        return
    key = zlib.crc32(f"{parse_date(slot_date).isoformat()}|{time_slot}|{branch_id}".encode())
    db.session.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": key})


def reserve_slot(slot_date, time_slot, branch, service_type="branch", now=None,
                 config=None, exclude_booking_id=None):
    """
    Lock a slot and re-check it inside the caller's transaction.

    Raises SlotUnavailableError carrying the failed check, otherwise returns
    the check. The caller must commit or roll back to release the lock.
    """
    config = config or admin_config.get_config()
    branch_config = find_branch(config, branch)
    branch_id = branch_config["id"] if branch_config else branch

    lock_slot(slot_date, time_slot, branch_id)
    check = check_slot(
        slot_date,
        time_slot,
        branch_id,
        service_type=service_type,
        now=now,
        config=config,
        exclude_booking_id=exclude_booking_id,
    )
    if not check["is_available"]:
        template = UNAVAILABLE_MESSAGES.get(check["reason"], "Selected slot is not available.")
        message = template.format(
            date=check["date"],
            time_slot=time_slot,
            branch=branch_config["name"] if branch_config else branch,
        )
        raise SlotUnavailableError(message, check["reason"], check)
    return check
