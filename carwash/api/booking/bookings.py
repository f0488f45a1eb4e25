# Book, reschedule, cancel car wash appointments and check slot availability
from flask import Blueprint, jsonify, request, current_app, g
from carwash.extensions import db
from ...models import Booking, BookingStatusHistory, User, BOOKING_STATUSES
from ...services.admin_config import admin_config, find_branch, quote_price
from ...services.availability import (
    SlotUnavailableError,
    check_slot,
    get_slots_for_date,
    local_now,
    parse_date,
    reserve_slot,
)
from ...services.email_service import email_service
from ...services.notification_service import notify_admins
from ...utils.auth import optional_user, token_required, roles_required
from sqlalchemy.exc import IntegrityError
from datetime import datetime
import random
import string
import time

bookings_bp = Blueprint("bookings", __name__, url_prefix="/api/bookings")

CATEGORIES = ("carwash", "auto_detailing", "graphene_coating")
SERVICE_TYPES = ("branch", "home")
STAFF_ROLES = ("admin", "superadmin", "manager", "cashier", "crew")
GARAGE_OPEN_HOUR = 8
GARAGE_CLOSE_HOUR = 20
LOYALTY_POINTS_PER_PESO = 1

# Statuses a booking may move to from each status
ALLOWED_TRANSITIONS = {
    "pending": {"confirmed", "in_progress", "completed", "cancelled"},
    "confirmed": {"in_progress", "completed", "cancelled"},
    "in_progress": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}


class InvalidTransitionError(Exception):
    pass


def generate_confirmation_code():
    millis = str(int(time.time() * 1000))[-6:]
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=3))
    return f"FAC-{millis}-{suffix}"


def _is_price(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0


def _is_staff(user):
    return user is not None and user.role in STAFF_ROLES


def _can_view(user, booking):
    return _is_staff(user) or (booking.user_id is not None and booking.user_id == user.id)


def award_loyalty_points(booking):
    """Credit a completed booking's total to its customer as loyalty points."""
    if booking.user_id is None:
        return 0
    user = db.session.get(User, booking.user_id)
    if not user:
        return 0
    earned = int(float(booking.total_price or 0) * LOYALTY_POINTS_PER_PESO)
    user.loyalty_points = (user.loyalty_points or 0) + earned
    current_app.logger.info(f"Awarded {earned} loyalty points to user {user.id} for booking {booking.id}")
    return earned


def record_status_change(booking, new_status, changed_by=None, notes=None):
    current = booking.status
    if current == new_status:
        return False
    if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(
            f"Cannot change booking status from '{current}' to '{new_status}'"
        )
    booking.status = new_status
    if new_status == "completed":
        booking.completed_at = datetime.utcnow()
        award_loyalty_points(booking)
    db.session.add(
        BookingStatusHistory(
            booking_id=booking.id,
            from_status=current,
            to_status=new_status,
            notes=notes,
            changed_by=changed_by,
        )
    )
    return True


def _unavailable_response(error):
    return jsonify({
        "status": "error",
        "message": str(error),
        "reason": error.reason,
        "availability": error.availability,
    }), 409


@bookings_bp.route("", methods=["POST"])
def create_booking():
    """
    Create a booking
    ---
    tags:
      - Bookings
    summary: Book a car wash, detailing or coating slot
    description: >
      Registered customers send their bearer token; guests send full_name,
      mobile and email. Prices are quoted from the admin configuration when
      omitted. The slot is re-checked under a per-slot lock so capacity is
      never exceeded.
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - category
            - service
            - date
            - time_slot
            - branch
          properties:
            category:
              type: string
              enum: [carwash, auto_detailing, graphene_coating]
            service:
              type: string
              example: vip_pro
            service_type:
              type: string
              enum: [branch, home]
            unit_type:
              type: string
              example: car
            unit_size:
              type: string
              example: sedan
            date:
              type: string
              example: "2025-01-20"
            time_slot:
              type: string
              example: "10:00"
            branch:
              type: string
              example: tumaga
            full_name:
              type: string
            mobile:
              type: string
            email:
              type: string
            base_price:
              type: number
            total_price:
              type: number
    responses:
      201:
        description: Booking created
      400:
        description: Missing or invalid fields
      409:
        description: Slot not available
    """
    try:
        data = request.get_json(silent=True) or {}
        user = optional_user()

        required = ["category", "service", "date", "time_slot", "branch"]
        if user is None:
            required += ["full_name", "mobile", "email"]
        missing = [field for field in required if not data.get(field)]
        if missing:
            return jsonify({
                "status": "error",
                "message": f"Missing required fields: {', '.join(missing)}"
            }), 400

        category = data["category"]
        if category not in CATEGORIES:
            return jsonify({
                "status": "error",
                "message": f"Invalid category. Must be one of: {', '.join(CATEGORIES)}"
            }), 400

        service_type = data.get("service_type", "branch")
        if service_type not in SERVICE_TYPES:
            return jsonify({"status": "error", "message": "service_type must be 'branch' or 'home'"}), 400
        if service_type == "home" and not data.get("service_location"):
            return jsonify({"status": "error", "message": "service_location is required for home service"}), 400

        try:
            booking_date = parse_date(data["date"])
        except ValueError as e:
            return jsonify({"status": "error", "message": str(e)}), 400

        config = admin_config.get_config()
        branch = find_branch(config, data["branch"])
        if branch is None:
            return jsonify({"status": "error", "message": f"Unknown branch '{data['branch']}'"}), 400

        base_price = data.get("base_price")
        total_price = data.get("total_price")
        if base_price is None or total_price is None:
            try:
                quote = quote_price(
                    config,
                    category,
                    service=data["service"],
                    unit_type=data.get("unit_type"),
                    unit_size=data.get("unit_size"),
                    service_type=service_type,
                )
            except ValueError as e:
                return jsonify({"status": "error", "message": str(e)}), 400
            base_price = quote["base_price"] if base_price is None else base_price
            total_price = quote["total_price"] if total_price is None else total_price

        if not _is_price(base_price) or not _is_price(total_price):
            return jsonify({
                "status": "error",
                "message": "base_price and total_price must be non-negative numbers"
            }), 400

        time_slot = data["time_slot"]
        try:
            reserve_slot(
                booking_date, time_slot, branch["id"], service_type=service_type, config=config
            )
        except SlotUnavailableError as e:
            db.session.rollback()
            return _unavailable_response(e)

        guest_info = {
            "full_name": data.get("full_name") or (user.full_name if user else None),
            "mobile": data.get("mobile") or (user.contact_number if user else None),
            "email": data.get("email") or (user.email if user else None),
        }

        booking = Booking(
            user_id=user.id if user else None,
            guest_info=guest_info,
            type="registered" if user else "guest",
            confirmation_code=generate_confirmation_code(),
            category=category,
            service=data["service"],
            service_type=service_type,
            unit_type=data.get("unit_type"),
            unit_size=data.get("unit_size"),
            plate_number=data.get("plate_number"),
            vehicle_model=data.get("vehicle_model"),
            date=booking_date,
            time_slot=time_slot,
            branch=branch["id"],
            service_location=data.get("service_location"),
            base_price=base_price,
            total_price=total_price,
            payment_method=data.get("payment_method"),
            payment_status="pending",
            status="pending",
            notes=data.get("notes"),
            special_requests=data.get("special_requests"),
        )
        db.session.add(booking)
        db.session.flush()

        db.session.add(
            BookingStatusHistory(
                booking_id=booking.id,
                from_status=None,
                to_status="pending",
                notes="Booking created",
                changed_by=guest_info["email"],
            )
        )
        notify_admins(
            "new_booking",
            "New Booking Received",
            f"{guest_info['full_name']} booked {data['service']} on "
            f"{booking_date.isoformat()} at {time_slot} ({branch['name']})",
            priority="high",
            data={
                "booking_id": booking.id,
                "confirmation_code": booking.confirmation_code,
                "branch": branch["id"],
                "date": booking_date.isoformat(),
                "time_slot": time_slot,
            },
            action_url=f"/admin/bookings/{booking.id}",
            action_text="View Booking",
            play_sound=True,
            sound_type="booking",
        )
        db.session.commit()

        result = email_service.send_booking_confirmation(
            to_email=guest_info["email"],
            customer_name=guest_info["full_name"],
            confirmation_code=booking.confirmation_code,
            service_name=data["service"],
            booking_date=booking_date.isoformat(),
            time_slot=time_slot,
            branch_name=branch["name"],
            total_price=float(total_price),
        )
        if not result["success"]:
            current_app.logger.error(
                f"Booking {booking.id} confirmation email failed: {result.get('error')}"
            )

        return jsonify({
            "status": "success",
            "message": "Booking created successfully",
            "booking": booking.to_dict(),
        }), 201

    except IntegrityError as e:
        db.session.rollback()
        return jsonify({
            "status": "error",
            "message": "Database integrity error",
            "details": str(e.orig)
        }), 400

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to create booking: {e}")
        return jsonify({
            "status": "error",
            "message": "Internal server error",
            "details": str(e)
        }), 500


@bookings_bp.route("", methods=["GET"])
@token_required
def list_bookings():
    """
    GET /api/bookings?user_id=&status=&branch=&date=
    Purpose: List bookings, newest first.

    Behavior:
    - Staff see every booking and may filter by user_id.
    - Customers only ever see their own bookings.
    """
    user = g.current_user
    query = db.session.query(Booking)

    if _is_staff(user):
        user_id = request.args.get("user_id", type=int)
        if user_id:
            query = query.filter(Booking.user_id == user_id)
    else:
        query = query.filter(Booking.user_id == user.id)

    status = request.args.get("status")
    if status:
        query = query.filter(Booking.status == status)
    branch = request.args.get("branch")
    if branch:
        query = query.filter(Booking.branch == branch)
    date_str = request.args.get("date")
    if date_str:
        try:
            query = query.filter(Booking.date == parse_date(date_str))
        except ValueError as e:
            return jsonify({"status": "error", "message": str(e)}), 400

    bookings = query.order_by(Booking.created_at.desc(), Booking.id.desc()).all()
    return jsonify({
        "status": "success",
        "count": len(bookings),
        "bookings": [b.to_dict() for b in bookings],
    }), 200


@bookings_bp.route("/<int:booking_id>", methods=["GET"])
@token_required
def get_booking(booking_id):
    booking = db.session.get(Booking, booking_id)
    if not booking or not _can_view(g.current_user, booking):
        return jsonify({"status": "error", "message": "Booking not found"}), 404

    result = booking.to_dict()
    result["status_history"] = [h.to_dict() for h in booking.status_history]
    return jsonify({"status": "success", "booking": result}), 200


@bookings_bp.route("/code/<string:confirmation_code>", methods=["GET"])
def get_booking_by_code(confirmation_code):
    """
    GET /api/bookings/code/<confirmation_code>
    Purpose: Let guests look up their booking without an account.
    """
    booking = (
        db.session.query(Booking)
        .filter(Booking.confirmation_code == confirmation_code.upper())
        .first()
    )
    if not booking:
        return jsonify({"status": "error", "message": "Booking not found"}), 404
    return jsonify({"status": "success", "booking": booking.to_dict()}), 200


@bookings_bp.route("/<int:booking_id>", methods=["PATCH"])
@roles_required(*STAFF_ROLES)
def update_booking(booking_id):
    """
    PATCH /api/bookings/<booking_id>
    Purpose: Staff update of status, payment and schedule.
    Input: JSON with any of status, payment_status, payment_method, notes,
           date, time_slot, branch, status_notes.

    Behavior:
    - Status changes follow ALLOWED_TRANSITIONS and append a history row.
    - Moving the booking re-checks the new slot (the booking itself is not
      counted against capacity).
    """
    try:
        data = request.get_json(silent=True) or {}
        booking = db.session.get(Booking, booking_id)
        if not booking:
            return jsonify({"status": "error", "message": "Booking not found"}), 404

        if any(key in data for key in ("date", "time_slot", "branch")):
            config = admin_config.get_config()
            try:
                new_date = parse_date(data.get("date", booking.date))
            except ValueError as e:
                return jsonify({"status": "error", "message": str(e)}), 400
            new_slot = data.get("time_slot", booking.time_slot)
            branch = find_branch(config, data.get("branch", booking.branch))
            if branch is None:
                return jsonify({"status": "error", "message": "Unknown branch"}), 400

            try:
                reserve_slot(
                    new_date,
                    new_slot,
                    branch["id"],
                    service_type=booking.service_type,
                    config=config,
                    exclude_booking_id=booking.id,
                )
            except SlotUnavailableError as e:
                db.session.rollback()
                return _unavailable_response(e)
            booking.date = new_date
            booking.time_slot = new_slot
            booking.branch = branch["id"]

        if "status" in data:
            if data["status"] not in BOOKING_STATUSES:
                return jsonify({
                    "status": "error",
                    "message": f"Invalid status. Must be one of: {', '.join(BOOKING_STATUSES)}"
                }), 400
            record_status_change(
                booking, data["status"], g.current_user.email, data.get("status_notes")
            )

        for field in ("payment_status", "payment_method", "notes"):
            if field in data:
                setattr(booking, field, data[field])

        db.session.commit()
        return jsonify({"status": "success", "booking": booking.to_dict()}), 200

    except InvalidTransitionError as e:
        db.session.rollback()
        return jsonify({"status": "error", "message": str(e)}), 409

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to update booking {booking_id}: {e}")
        return jsonify({
            "status": "error",
            "message": "Internal server error",
            "details": str(e)
        }), 500


@bookings_bp.route("/<int:booking_id>/cancel", methods=["POST"])
@token_required
def cancel_booking(booking_id):
    """
    Cancel a booking
    ---
    tags:
      - Bookings
    parameters:
      - in: path
        name: booking_id
        type: integer
        required: true
      - in: body
        name: body
        schema:
          type: object
          properties:
            reason:
              type: string
    responses:
      200:
        description: Booking cancelled, its slot is released
      404:
        description: Booking not found
      409:
        description: Booking already completed or cancelled
    """
    try:
        data = request.get_json(silent=True) or {}
        booking = db.session.get(Booking, booking_id)
        if not booking or not _can_view(g.current_user, booking):
            return jsonify({"status": "error", "message": "Booking not found"}), 404

        record_status_change(
            booking,
            "cancelled",
            g.current_user.email,
            data.get("reason") or "Cancelled by request",
        )
        db.session.commit()
        return jsonify({
            "status": "success",
            "message": "Booking cancelled",
            "booking": booking.to_dict(),
        }), 200

    except InvalidTransitionError as e:
        db.session.rollback()
        return jsonify({"status": "error", "message": str(e)}), 409

    except Exception as e:
        db.session.rollback()
        return jsonify({
            "status": "error",
            "message": "Internal server error",
            "details": str(e)
        }), 500


@bookings_bp.route("/availability", methods=["GET"])
def get_availability():
    """
    Check one slot
    ---
    tags:
      - Bookings
    parameters:
      - in: query
        name: date
        type: string
        required: true
      - in: query
        name: time_slot
        type: string
        required: true
      - in: query
        name: branch
        type: string
        required: true
      - in: query
        name: service_type
        type: string
        enum: [branch, home]
    responses:
      200:
        description: Slot availability with the reason when unavailable
      400:
        description: Missing or invalid parameters
    """
    date_str = request.args.get("date")
    time_slot = request.args.get("time_slot")
    branch = request.args.get("branch")
    if not date_str or not time_slot or not branch:
        return jsonify({
            "status": "error",
            "message": "Missing required query parameters: date, time_slot, branch"
        }), 400

    try:
        check = check_slot(
            date_str,
            time_slot,
            branch,
            service_type=request.args.get("service_type", "branch"),
        )
    except ValueError as e:
        return jsonify({"status": "error", "message": str(e)}), 400

    return jsonify({"status": "success", "availability": check}), 200


@bookings_bp.route("/slots", methods=["GET"])
def get_slots():
    """
    GET /api/bookings/slots?date=YYYY-MM-DD&branch=<id>&service_type=branch
    Purpose: Every configured slot for the day with its availability.
    """
    date_str = request.args.get("date")
    branch = request.args.get("branch")
    if not date_str or not branch:
        return jsonify({
            "status": "error",
            "message": "Missing required query parameters: date, branch"
        }), 400

    try:
        slots = get_slots_for_date(
            date_str, branch, service_type=request.args.get("service_type", "branch")
        )
    except ValueError as e:
        return jsonify({"status": "error", "message": str(e)}), 400

    return jsonify({"status": "success", "date": date_str, "branch": branch, "slots": slots}), 200


@bookings_bp.route("/quote", methods=["POST"])
def get_quote():
    """
    Price a booking
    ---
    tags:
      - Bookings
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            category:
              type: string
            service:
              type: string
            unit_type:
              type: string
            unit_size:
              type: string
            service_type:
              type: string
    responses:
      200:
        description: Base price, home service multiplier and total
      400:
        description: Combination is not priced
    """
    data = request.get_json(silent=True) or {}
    try:
        quote = quote_price(
            admin_config.get_config(),
            data.get("category"),
            service=data.get("service"),
            unit_type=data.get("unit_type"),
            unit_size=data.get("unit_size"),
            service_type=data.get("service_type", "branch"),
        )
    except ValueError as e:
        return jsonify({"status": "error", "message": str(e)}), 400

    return jsonify({"status": "success", "quote": quote, "currency": "PHP"}), 200


@bookings_bp.route("/garage-settings", methods=["GET"])
def get_garage_settings():
    """Current local time and whether the garage is open right now."""
    config = admin_config.get_config()
    now = local_now(config)
    return jsonify({
        "status": "success",
        "data": {
            "current_time": now.isoformat(),
            "current_hour": now.hour,
            "current_minute": now.minute,
            "current_date": now.date().isoformat(),
            "garage_open_time": GARAGE_OPEN_HOUR,
            "garage_close_time": GARAGE_CLOSE_HOUR,
            "is_garage_open": GARAGE_OPEN_HOUR <= now.hour < GARAGE_CLOSE_HOUR,
            "timezone": config["scheduling"]["timezone"],
        },
    }), 200
