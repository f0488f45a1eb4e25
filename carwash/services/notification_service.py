# In-app notifications targeted by role and/or user
from datetime import datetime

from carwash.extensions import db
from carwash.models import ADMIN_ROLES, SystemNotification

PRIORITIES = ("low", "medium", "high", "urgent")


def create_notification(type, title, message, priority="medium", target_roles=None,
                        target_users=None, data=None, action_url=None,
                        action_text=None, play_sound=False, sound_type=None):
    """
    Stage a notification on the current session.

    The caller commits, so the notification lands in the same transaction
    as the change it reports.
    """
    if priority not in PRIORITIES:
        raise ValueError(f"Invalid priority '{priority}'")
    if not target_roles and not target_users:
        raise ValueError("A notification needs at least one target role or user")

    notification = SystemNotification(
        type=type,
        title=title,
        message=message,
        priority=priority,
        target_roles=list(target_roles or []),
        target_users=[int(u) for u in (target_users or [])],
        data=data or {},
        read_by=[],
        action_url=action_url,
        action_text=action_text,
        play_sound=play_sound,
        sound_type=sound_type,
    )
    db.session.add(notification)
    return notification


def notify_admins(type, title, message, **kwargs):
    return create_notification(type, title, message, target_roles=list(ADMIN_ROLES), **kwargs)


def notify_user(user_id, type, title, message, **kwargs):
    return create_notification(type, title, message, target_users=[user_id], **kwargs)


def is_targeted(notification, user):
    return user.role in (notification.target_roles or []) or user.id in (
        notification.target_users or []
    )


def list_for_user(user, unread_only=False, limit=50):
    # JSON list membership isn't portable across dialects, filter here
    candidates = (
        db.session.query(SystemNotification)
        .order_by(SystemNotification.created_at.desc(), SystemNotification.id.desc())
        .all()
    )
    visible = [n for n in candidates if is_targeted(n, user)]
    if unread_only:
        visible = [n for n in visible if not n.is_read_by(user.id)]
    return visible[:limit]


def mark_read(notification, user_id):
    """Record a read receipt once per user. Returns True when newly marked."""
    if notification.is_read_by(user_id):
        return False
    # New list so the JSON column is flagged dirty
    notification.read_by = list(notification.read_by or []) + [
        {"userId": user_id, "readAt": datetime.utcnow().isoformat()}
    ]
    return True
