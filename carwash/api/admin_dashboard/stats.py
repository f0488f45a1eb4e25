from flask import Blueprint, jsonify
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo
from carwash.extensions import db
from sqlalchemy import func
from carwash.models import Booking, InventoryItem, SubscriptionRequest, User
from carwash.services import pos_service
from carwash.utils.auth import roles_required

dashboard_bp = Blueprint(
    "dashboard_bp",
    __name__,
    url_prefix="/api/admin/dashboard",
)


def _today():
    return datetime.now(ZoneInfo(pos_service.BUSINESS_TIMEZONE)).date()


# -------------------------------------------------------------------
# 1) SUMMARY: users, bookings, pending requests, stock alerts, sales
# -------------------------------------------------------------------
@dashboard_bp.route("/summary", methods=["GET"])
@roles_required("admin", "superadmin", "manager")
def get_summary():
    """
    Admin dashboard summary
    ---
    tags:
      - Dashboard
    responses:
      200:
        description: Headline counts for the admin dashboard
    """
    today = _today()

    total_users = db.session.query(func.count(User.id)).scalar() or 0
    active_users = (
        db.session.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar() or 0
    )
    bookings_by_status = {
        status: int(count)
        for status, count in db.session.query(Booking.status, func.count(Booking.id))
        .group_by(Booking.status)
        .all()
    }
    todays_bookings = (
        db.session.query(func.count(Booking.id))
        .filter(Booking.date == today, Booking.status != "cancelled")
        .scalar()
        or 0
    )
    pending_requests = (
        db.session.query(func.count(SubscriptionRequest.id))
        .filter(SubscriptionRequest.status.in_(["pending", "under_review"]))
        .scalar()
        or 0
    )
    low_stock = (
        db.session.query(func.count(InventoryItem.id))
        .filter(
            InventoryItem.is_active.is_(True),
            InventoryItem.current_stock <= InventoryItem.min_stock_level,
        )
        .scalar()
        or 0
    )

    return jsonify(
        {
            "totalUsers": total_users,
            "activeUsers": active_users,
            "totalBookings": sum(bookings_by_status.values()),
            "bookingsByStatus": bookings_by_status,
            "todaysBookings": todays_bookings,
            "pendingSubscriptionRequests": pending_requests,
            "lowStockItems": low_stock,
            "todaysSales": pos_service.daily_report(today),
        }
    )


# -------------------------------------------------------------------
# 2) BOOKING TREND: bookings per service date (next 7 days)
# -------------------------------------------------------------------
@dashboard_bp.route("/booking-trend", methods=["GET"])
@roles_required("admin", "superadmin", "manager")
def get_booking_trend():
    """Upcoming non-cancelled bookings per day for the coming week."""

    today = _today()
    rows = (
        db.session.query(
            Booking.date.label("day"),
            func.count(Booking.id).label("bookings"),
        )
        .filter(
            Booking.date >= today,
            Booking.date < today + timedelta(days=7),
            Booking.status != "cancelled",
        )
        .group_by(Booking.date)
        .order_by(Booking.date)
        .all()
    )

    data = [{"day": str(r.day), "bookings": int(r.bookings)} for r in rows]
    return jsonify(data)


# -------------------------------------------------------------------
# 3) SERVICE MIX: bookings per category
# -------------------------------------------------------------------
@dashboard_bp.route("/service-mix", methods=["GET"])
@roles_required("admin", "superadmin", "manager")
def get_service_mix():
    rows = (
        db.session.query(
            Booking.category.label("name"),
            func.count(Booking.id).label("value"),
        )
        .filter(Booking.status != "cancelled")
        .group_by(Booking.category)
        .all()
    )

    data = [{"name": (r.name or "Unknown"), "value": int(r.value)} for r in rows]
    return jsonify(data)
