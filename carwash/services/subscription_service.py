"""
Membership request review workflow.

Customers submit a package request with proof of payment; admins approve,
reject, or park it under review. Admins may also ban a customer, which
flags every request the customer has and disables the account.

Functions here stage changes on the session; callers commit.
"""
from datetime import datetime, timedelta

from sqlalchemy import func, select

from carwash.extensions import db
from carwash.models import CustomerStatus, SubscriptionRequest, User
from carwash.services.notification_service import notify_user

PACKAGES = {
    "Classic Silver": {"price": 299, "tier": "basic"},
    "VIP Gold Ultimate": {"price": 799, "tier": "vip"},
    "Premium Platinum Elite": {"price": 1299, "tier": "premium"},
}
PAYMENT_METHODS = ("gcash", "maya", "bank_transfer", "over_counter")
MEMBERSHIP_DAYS = 30
REVIEWABLE = ("pending", "under_review")
DEFAULT_APPROVAL_NOTES = "Payment verified and subscription activated"


class RequestStateError(Exception):
    """Raised when a request is not in a state that allows the action."""


def get_customer_status(user_id):
    return db.session.scalar(select(CustomerStatus).where(CustomerStatus.user_id == user_id))


def current_customer_status(user_id):
    status = get_customer_status(user_id)
    return status.status if status else "active"


def validate_submission(user, package_type, payment_method, reference_number=None, amount=None):
    """
    Check a membership request before anything is stored or uploaded.

    Returns the amount as a float, or None when it was not given.
    """
    if package_type not in PACKAGES:
        raise ValueError(f"Invalid package. Must be one of: {', '.join(PACKAGES)}")
    if payment_method not in PAYMENT_METHODS:
        raise ValueError(
            f"Invalid payment method. Must be one of: {', '.join(PAYMENT_METHODS)}"
        )
    if payment_method != "over_counter" and not reference_number:
        raise ValueError("reference_number is required for online payments")
    if amount is not None:
        try:
            amount = float(amount)
        except (TypeError, ValueError):
            raise ValueError("amount must be a number")
        if amount < 0:
            raise ValueError("amount must be a non-negative number")

    customer_status = current_customer_status(user.id)
    if customer_status == "banned":
        raise RequestStateError("Banned customers cannot submit subscription requests")
    return amount


def submit_request(user, package_type, payment_method, reference_number=None,
                   account_name=None, amount=None, payment_date=None,
                   user_phone=None, receipt=None):
    amount = validate_submission(user, package_type, payment_method, reference_number, amount)
    customer_status = current_customer_status(user.id)

    request_row = SubscriptionRequest(
        user_id=user.id,
        user_email=user.email,
        user_name=user.full_name,
        user_phone=user_phone or user.contact_number,
        package_type=package_type,
        package_price=PACKAGES[package_type]["price"],
        payment_method=payment_method,
        reference_number=reference_number,
        account_name=account_name,
        amount=amount,
        payment_date=payment_date,
        receipt_url=(receipt or {}).get("url"),
        receipt_file_name=(receipt or {}).get("file_name"),
        receipt_file_size=(receipt or {}).get("file_size"),
        status="pending",
        customer_status=customer_status,
    )
    db.session.add(request_row)
    return request_row


def _review(request_row, status, admin_email, notes):
    if request_row.status not in REVIEWABLE:
        raise RequestStateError(
            f"Request {request_row.id} is already {request_row.status}"
        )
    request_row.status = status
    request_row.reviewed_by = admin_email
    request_row.reviewed_date = datetime.utcnow()
    request_row.review_notes = notes


def approve_request(request_row, admin_email, notes=None, now=None):
    _review(request_row, "approved", admin_email, notes or DEFAULT_APPROVAL_NOTES)

    user = db.session.get(User, request_row.user_id)
    if user:
        now = now or datetime.utcnow()
        # Renewals extend from the later of now and the current expiry
        start = max(now, user.subscription_expiry or now)
        user.subscription_status = PACKAGES[request_row.package_type]["tier"]
        user.subscription_expiry = start + timedelta(days=MEMBERSHIP_DAYS)

    notify_user(
        request_row.user_id,
        "subscription_approved",
        "Subscription Approved! 🎉",
        f"Your {request_row.package_type} subscription has been approved and activated!",
        priority="high",
        data={"request_id": request_row.id, "package_type": request_row.package_type},
        action_url="/manage-subscription",
        action_text="View Subscription",
    )
    return request_row


def reject_request(request_row, admin_email, reason):
    if not reason:
        raise ValueError("A rejection reason is required")
    _review(request_row, "rejected", admin_email, reason)
    notify_user(
        request_row.user_id,
        "subscription_rejected",
        "Subscription Request Update",
        f"Your subscription request has been rejected. Reason: {reason}",
        priority="medium",
        data={"request_id": request_row.id, "package_type": request_row.package_type},
        action_url="/subscriptions",
        action_text="Try Again",
    )
    return request_row


def mark_under_review(request_row, admin_email, notes=None):
    _review(request_row, "under_review", admin_email, notes)
    return request_row


def ban_customer(user, admin_email, reason, suspension_end=None):
    if not reason:
        raise ValueError("A ban reason is required")
    now = datetime.utcnow()

    requests = (
        db.session.query(SubscriptionRequest)
        .filter(SubscriptionRequest.user_id == user.id)
        .all()
    )
    for request_row in requests:
        request_row.customer_status = "banned"
        request_row.review_notes = f"Customer banned: {reason}"
        request_row.reviewed_by = admin_email
        request_row.reviewed_date = now

    status = get_customer_status(user.id)
    if status is None:
        status = CustomerStatus(user_id=user.id, email=user.email)
        db.session.add(status)
    status.status = "banned"
    status.ban_reason = reason
    status.ban_date = now
    status.banned_by = admin_email
    status.suspension_end = suspension_end

    user.is_active = False
    for session in user.sessions:
        session.is_active = False

    notify_user(
        user.id,
        "account_status",
        "Account Status Update",
        f"Your account has been suspended. Reason: {reason}. "
        "Please contact support for assistance.",
        priority="urgent",
        data={"status": "banned", "reason": reason},
        action_url="/profile",
        action_text="Contact Support",
    )
    return status


def unban_customer(user, admin_email):
    status = get_customer_status(user.id)
    if status is None:
        status = CustomerStatus(user_id=user.id, email=user.email)
        db.session.add(status)
    status.status = "active"
    status.ban_reason = None
    status.ban_date = None
    status.banned_by = None
    status.suspension_end = None

    (
        db.session.query(SubscriptionRequest)
        .filter(SubscriptionRequest.user_id == user.id)
        .update({SubscriptionRequest.customer_status: "active"}, synchronize_session="fetch")
    )
    user.is_active = True

    notify_user(
        user.id,
        "account_status",
        "Account Status Update",
        "Your account has been reactivated. Welcome back!",
        priority="medium",
        data={"status": "active", "reactivated_by": admin_email},
    )
    return status


def get_stats():
    counts = dict(
        db.session.query(SubscriptionRequest.status, func.count(SubscriptionRequest.id))
        .group_by(SubscriptionRequest.status)
        .all()
    )
    banned = (
        db.session.query(func.count(CustomerStatus.id))
        .filter(CustomerStatus.status == "banned")
        .scalar()
        or 0
    )
    return {
        "total": sum(counts.values()),
        "pending": counts.get("pending", 0),
        "approved": counts.get("approved", 0),
        "rejected": counts.get("rejected", 0),
        "under_review": counts.get("under_review", 0),
        "banned": banned,
    }
