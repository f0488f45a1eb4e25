from flask import Blueprint, request, jsonify, g
from carwash.services.email_service import email_service
from carwash.services import notification_service
from carwash.extensions import db
from carwash.models import SystemNotification
from carwash.utils.auth import token_required, roles_required

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.route("", methods=["GET"])
@token_required
def list_notifications():
    """
    Notifications for the current user
    ---
    tags:
      - Notifications
    parameters:
      - in: query
        name: unread
        type: boolean
      - in: query
        name: limit
        type: integer
    responses:
      200:
        description: Notifications targeted at the user's role or id, newest first
    """
    unread_only = request.args.get("unread", "false").lower() == "true"
    limit = request.args.get("limit", 50, type=int)
    user = g.current_user

    notifications = notification_service.list_for_user(user, unread_only=unread_only, limit=limit)
    return jsonify({
        "status": "success",
        "notifications": [n.to_dict(user_id=user.id) for n in notifications],
    }), 200


@notifications_bp.route("/unread-count", methods=["GET"])
@token_required
def unread_count():
    count = len(notification_service.list_for_user(g.current_user, unread_only=True, limit=None))
    return jsonify({"status": "success", "unread_count": count}), 200


@notifications_bp.route("/<int:notification_id>/read", methods=["POST"])
@token_required
def mark_read(notification_id):
    """
    POST /api/notifications/<notification_id>/read
    Purpose: Record that the current user has read a notification.

    Behavior:
    - Marking twice keeps a single read receipt.
    - Notifications not targeted at the user return 404.
    """
    user = g.current_user
    notification = db.session.get(SystemNotification, notification_id)
    if not notification or not notification_service.is_targeted(notification, user):
        return jsonify({"status": "error", "message": "Notification not found"}), 404

    if notification_service.mark_read(notification, user.id):
        db.session.commit()
    return jsonify({"status": "success", "notification": notification.to_dict(user_id=user.id)}), 200


@notifications_bp.route("/read-all", methods=["POST"])
@token_required
def mark_all_read():
    user = g.current_user
    marked = 0
    for notification in notification_service.list_for_user(user, unread_only=True, limit=None):
        if notification_service.mark_read(notification, user.id):
            marked += 1
    db.session.commit()
    return jsonify({"status": "success", "marked": marked}), 200


@notifications_bp.route("", methods=["POST"])
@roles_required("admin", "superadmin", "manager")
def send_notification():
    """
    Broadcast a notification
    ---
    tags:
      - Notifications
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - title
            - message
          properties:
            type:
              type: string
              example: announcement
            title:
              type: string
            message:
              type: string
            priority:
              type: string
              enum: [low, medium, high, urgent]
            target_roles:
              type: array
              items:
                type: string
            target_users:
              type: array
              items:
                type: integer
    responses:
      201:
        description: Notification created
      400:
        description: Missing title, message or targets
    """
    data = request.get_json(silent=True) or {}
    if not data.get("title") or not data.get("message"):
        return jsonify({"status": "error", "message": "title and message are required"}), 400

    try:
        notification = notification_service.create_notification(
            data.get("type", "announcement"),
            data["title"],
            data["message"],
            priority=data.get("priority", "medium"),
            target_roles=data.get("target_roles"),
            target_users=data.get("target_users"),
            data=data.get("data"),
            action_url=data.get("action_url"),
            action_text=data.get("action_text"),
        )
        db.session.commit()
    except (ValueError, TypeError) as e:
        db.session.rollback()
        return jsonify({"status": "error", "message": str(e)}), 400

    return jsonify({"status": "success", "notification": notification.to_dict()}), 201


@notifications_bp.route("/test-email", methods=["POST"])
@roles_required("admin", "superadmin")
def test_email():
    """
    Test email configuration
    ---
    tags:
      - Notifications
    summary: Send a test email to verify Resend integration
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - email
          properties:
            email:
              type: string
              format: email
    responses:
      200:
        description: Test email sent successfully
      400:
        description: Email is required
      500:
        description: Email service error
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")

        if not email:
            return jsonify({"status": "error", "message": "Email is required"}), 400

        result = email_service.send_test_email(email)

        if result["success"]:
            return jsonify({
                "status": "success",
                "message": result["message"],
                "email_id": result.get("email_id"),
            }), 200
        return jsonify({"status": "error", "message": result["error"]}), 500

    except Exception as e:
        return jsonify({"status": "error", "message": str(e)}), 500
