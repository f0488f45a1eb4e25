# Membership requests: submission, admin review, customer bans
from flask import Blueprint, jsonify, request, current_app, g
from carwash.extensions import db
from ...models import CustomerStatus, SubscriptionRequest, User
from ...services import subscription_service
from ...services.email_service import email_service
from ...services.subscription_service import RequestStateError, PACKAGES
from ...utils.auth import token_required, roles_required
from ...utils.s3_utils import allowed_receipt, delete_file_from_s3, upload_file_to_s3
from sqlalchemy.exc import IntegrityError
import uuid

subscriptions_bp = Blueprint("subscriptions", __name__, url_prefix="/api/subscriptions")

REVIEWER_ROLES = ("admin", "superadmin", "manager")


def _get_request_or_404(request_id):
    request_row = db.session.get(SubscriptionRequest, request_id)
    if not request_row:
        return None, (jsonify({"status": "error", "message": "Subscription request not found"}), 404)
    return request_row, None


def _discard_receipt(receipt, bucket_name):
    if receipt and bucket_name and not delete_file_from_s3(receipt["url"], bucket_name):
        current_app.logger.error(f"Could not delete orphaned receipt {receipt['url']}")


@subscriptions_bp.route("/packages", methods=["GET"])
def list_packages():
    """Membership packages with their monthly price and granted tier."""
    return jsonify({
        "status": "success",
        "packages": [
            {"name": name, "price": info["price"], "tier": info["tier"]}
            for name, info in PACKAGES.items()
        ],
    }), 200


@subscriptions_bp.route("/requests", methods=["POST"])
@token_required
def submit_request():
    """
    Submit a membership request
    ---
    tags:
      - Subscriptions
    consumes:
      - multipart/form-data
      - application/json
    parameters:
      - in: formData
        name: package_type
        type: string
        required: true
        enum: [Classic Silver, VIP Gold Ultimate, Premium Platinum Elite]
      - in: formData
        name: payment_method
        type: string
        required: true
        enum: [gcash, maya, bank_transfer, over_counter]
      - in: formData
        name: reference_number
        type: string
      - in: formData
        name: account_name
        type: string
      - in: formData
        name: amount
        type: number
      - in: formData
        name: payment_date
        type: string
      - in: formData
        name: receipt
        type: file
    responses:
      201:
        description: Request submitted and waiting for review
      400:
        description: Invalid package, payment method or receipt
      403:
        description: Customer is banned
    """
    receipt = None
    bucket_name = current_app.config.get("S3_BUCKET_NAME")
    try:
        data = request.form if request.files or request.form else (request.get_json(silent=True) or {})
        receipt_file = request.files.get("receipt")

        subscription_service.validate_submission(
            g.current_user,
            data.get("package_type"),
            data.get("payment_method"),
            reference_number=data.get("reference_number"),
            amount=data.get("amount"),
        )

        if receipt_file:
            if not allowed_receipt(receipt_file.filename):
                return jsonify({"status": "error", "message": "Receipt must be an image or PDF"}), 400

            if not bucket_name:
                current_app.logger.error("S3_BUCKET_NAME is not configured")
                return jsonify({"status": "error", "message": "Server configuration error"}), 500

            key = f"receipts/{g.current_user.id}/{uuid.uuid4()}_{receipt_file.filename}"
            receipt = {
                "url": upload_file_to_s3(receipt_file, key, bucket_name),
                "file_name": receipt_file.filename,
                "file_size": receipt_file.content_length or None,
            }

        request_row = subscription_service.submit_request(
            g.current_user,
            data.get("package_type"),
            data.get("payment_method"),
            reference_number=data.get("reference_number"),
            account_name=data.get("account_name"),
            amount=data.get("amount"),
            payment_date=data.get("payment_date"),
            user_phone=data.get("user_phone"),
            receipt=receipt,
        )
        db.session.commit()

        return jsonify({
            "status": "success",
            "message": "Subscription request submitted for review",
            "request": request_row.to_dict(),
        }), 201

    except ValueError as e:
        db.session.rollback()
        _discard_receipt(receipt, bucket_name)
        return jsonify({"status": "error", "message": str(e)}), 400

    except RequestStateError as e:
        db.session.rollback()
        _discard_receipt(receipt, bucket_name)
        return jsonify({"status": "error", "message": str(e)}), 403

    except IntegrityError as e:
        db.session.rollback()
        _discard_receipt(receipt, bucket_name)
        return jsonify({
            "status": "error",
            "message": "Database integrity error",
            "details": str(e.orig)
        }), 400

    except Exception as e:
        db.session.rollback()
        _discard_receipt(receipt, bucket_name)
        current_app.logger.error(f"Failed to submit subscription request: {e}")
        return jsonify({
            "status": "error",
            "message": "Internal server error",
            "details": str(e)
        }), 500


@subscriptions_bp.route("/requests/mine", methods=["GET"])
@token_required
def list_my_requests():
    requests = (
        db.session.query(SubscriptionRequest)
        .filter(SubscriptionRequest.user_id == g.current_user.id)
        .order_by(SubscriptionRequest.submission_date.desc())
        .all()
    )
    return jsonify({"status": "success", "requests": [r.to_dict() for r in requests]}), 200


@subscriptions_bp.route("/requests", methods=["GET"])
@roles_required(*REVIEWER_ROLES)
def list_requests():
    """
    GET /api/subscriptions/requests?status=<status>&customer_status=<status>
    Purpose: Review queue, newest submission first.
    """
    query = db.session.query(SubscriptionRequest)
    status = request.args.get("status")
    if status:
        query = query.filter(SubscriptionRequest.status == status)
    customer_status = request.args.get("customer_status")
    if customer_status:
        query = query.filter(SubscriptionRequest.customer_status == customer_status)

    requests = query.order_by(
        SubscriptionRequest.submission_date.desc(), SubscriptionRequest.id.desc()
    ).all()
    return jsonify({
        "status": "success",
        "count": len(requests),
        "requests": [r.to_dict() for r in requests],
    }), 200


@subscriptions_bp.route("/requests/<int:request_id>", methods=["GET"])
@roles_required(*REVIEWER_ROLES)
def get_request(request_id):
    request_row, error = _get_request_or_404(request_id)
    if error:
        return error
    return jsonify({"status": "success", "request": request_row.to_dict()}), 200


@subscriptions_bp.route("/requests/<int:request_id>/approve", methods=["POST"])
@roles_required(*REVIEWER_ROLES)
def approve_request(request_id):
    """
    Approve a membership request
    ---
    tags:
      - Subscriptions
    parameters:
      - in: path
        name: request_id
        type: integer
        required: true
      - in: body
        name: body
        schema:
          type: object
          properties:
            notes:
              type: string
    responses:
      200:
        description: Request approved, customer tier and expiry updated
      404:
        description: Request not found
      409:
        description: Request was already reviewed
    """
    try:
        request_row, error = _get_request_or_404(request_id)
        if error:
            return error
        data = request.get_json(silent=True) or {}

        subscription_service.approve_request(request_row, g.current_user.email, data.get("notes"))
        db.session.commit()

        result = email_service.send_subscription_decision(
            request_row.user_email, request_row.user_name, request_row.package_type, approved=True
        )
        if not result["success"]:
            current_app.logger.error(f"Approval email for request {request_id} failed: {result.get('error')}")

        return jsonify({
            "status": "success",
            "message": "Subscription approved",
            "request": request_row.to_dict(),
        }), 200

    except RequestStateError as e:
        db.session.rollback()
        return jsonify({"status": "error", "message": str(e)}), 409

    except Exception as e:
        db.session.rollback()
        return jsonify({
            "status": "error",
            "message": "Internal server error",
            "details": str(e)
        }), 500


@subscriptions_bp.route("/requests/<int:request_id>/reject", methods=["POST"])
@roles_required(*REVIEWER_ROLES)
def reject_request(request_id):
    """
    POST /api/subscriptions/requests/<request_id>/reject
    Purpose: Reject a pending request.
    Input: JSON {"reason": str} (required)
    """
    try:
        request_row, error = _get_request_or_404(request_id)
        if error:
            return error
        data = request.get_json(silent=True) or {}
        reason = data.get("reason")

        subscription_service.reject_request(request_row, g.current_user.email, reason)
        db.session.commit()

        result = email_service.send_subscription_decision(
            request_row.user_email,
            request_row.user_name,
            request_row.package_type,
            approved=False,
            notes=reason,
        )
        if not result["success"]:
            current_app.logger.error(f"Rejection email for request {request_id} failed: {result.get('error')}")

        return jsonify({
            "status": "success",
            "message": "Subscription rejected",
            "request": request_row.to_dict(),
        }), 200

    except ValueError as e:
        db.session.rollback()
        return jsonify({"status": "error", "message": str(e)}), 400

    except RequestStateError as e:
        db.session.rollback()
        return jsonify({"status": "error", "message": str(e)}), 409

    except Exception as e:
        db.session.rollback()
        return jsonify({
            "status": "error",
            "message": "Internal server error",
            "details": str(e)
        }), 500


@subscriptions_bp.route("/requests/<int:request_id>/review", methods=["POST"])
@roles_required(*REVIEWER_ROLES)
def mark_under_review(request_id):
    try:
        request_row, error = _get_request_or_404(request_id)
        if error:
            return error
        data = request.get_json(silent=True) or {}

        subscription_service.mark_under_review(request_row, g.current_user.email, data.get("notes"))
        db.session.commit()
        return jsonify({"status": "success", "request": request_row.to_dict()}), 200

    except RequestStateError as e:
        db.session.rollback()
        return jsonify({"status": "error", "message": str(e)}), 409


@subscriptions_bp.route("/requests/<int:request_id>", methods=["DELETE"])
@roles_required("admin", "superadmin")
def delete_request(request_id):
    """Remove a request and its uploaded receipt."""
    request_row, error = _get_request_or_404(request_id)
    if error:
        return error

    bucket_name = current_app.config.get("S3_BUCKET_NAME")
    if request_row.receipt_url and bucket_name:
        if not delete_file_from_s3(request_row.receipt_url, bucket_name):
            current_app.logger.error(f"Could not delete receipt for request {request_id}")

    db.session.delete(request_row)
    db.session.commit()
    return jsonify({"status": "success", "message": "Subscription request deleted"}), 200


@subscriptions_bp.route("/customers/<int:user_id>/ban", methods=["POST"])
@roles_required(*REVIEWER_ROLES)
def ban_customer(user_id):
    """
    Ban a customer
    ---
    tags:
      - Subscriptions
    parameters:
      - in: path
        name: user_id
        type: integer
        required: true
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - reason
          properties:
            reason:
              type: string
    responses:
      200:
        description: Customer banned, account disabled and requests flagged
      400:
        description: Reason missing
      403:
        description: Target is a staff account
      404:
        description: User not found
    """
    try:
        user = db.session.get(User, user_id)
        if not user:
            return jsonify({"status": "error", "message": f"No user found with ID {user_id}"}), 404
        if user.id == g.current_user.id:
            return jsonify({"status": "error", "message": "You cannot ban yourself"}), 400
        if user.role != "user":
            return jsonify({"status": "error", "message": "Only customer accounts can be banned"}), 403
        data = request.get_json(silent=True) or {}

        status = subscription_service.ban_customer(user, g.current_user.email, data.get("reason"))
        db.session.commit()

        result = email_service.send_account_status_notice(user.email, data.get("reason"))
        if not result["success"]:
            current_app.logger.error(f"Ban notice for user {user_id} failed: {result.get('error')}")

        return jsonify({
            "status": "success",
            "message": "Customer banned",
            "customer_status": status.to_dict(),
        }), 200

    except ValueError as e:
        db.session.rollback()
        return jsonify({"status": "error", "message": str(e)}), 400

    except Exception as e:
        db.session.rollback()
        return jsonify({
            "status": "error",
            "message": "Internal server error",
            "details": str(e)
        }), 500


@subscriptions_bp.route("/customers/<int:user_id>/unban", methods=["POST"])
@roles_required(*REVIEWER_ROLES)
def unban_customer(user_id):
    try:
        user = db.session.get(User, user_id)
        if not user:
            return jsonify({"status": "error", "message": f"No user found with ID {user_id}"}), 404

        status = subscription_service.unban_customer(user, g.current_user.email)
        db.session.commit()
        return jsonify({
            "status": "success",
            "message": "Customer reactivated",
            "customer_status": status.to_dict(),
        }), 200

    except Exception as e:
        db.session.rollback()
        return jsonify({
            "status": "error",
            "message": "Internal server error",
            "details": str(e)
        }), 500


@subscriptions_bp.route("/customers/statuses", methods=["GET"])
@roles_required(*REVIEWER_ROLES)
def list_customer_statuses():
    query = db.session.query(CustomerStatus)
    status = request.args.get("status")
    if status:
        query = query.filter(CustomerStatus.status == status)
    return jsonify({
        "status": "success",
        "customers": [c.to_dict() for c in query.all()],
    }), 200


@subscriptions_bp.route("/stats", methods=["GET"])
@roles_required(*REVIEWER_ROLES)
def get_stats():
    """Request counts by review status plus banned customers."""
    return jsonify({"status": "success", "stats": subscription_service.get_stats()}), 200
