from functools import wraps

import jwt
from flask import current_app, g, jsonify, request
from sqlalchemy import select

from carwash.extensions import db
from carwash.models import User, UserSession


def _error(message, status):
    return jsonify({"status": "error", "message": message}), status


def decode_token(token):
    return jwt.decode(token, current_app.config["SECRET_KEY"], algorithms=["HS256"])


def _active_session(payload):
    session_token = payload.get("sid")
    if not session_token:
        return None
    session = db.session.scalar(
        select(UserSession).where(UserSession.session_token == session_token)
    )
    if session and session.is_active:
        return session
    return None


def token_required(f):
    """Load the bearer token's user into ``g.current_user``."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            return _error("Authorization token is missing", 401)

        try:
            payload = decode_token(header.split(" ", 1)[1])
        except jwt.ExpiredSignatureError:
            return _error("Token has expired", 401)
        except jwt.InvalidTokenError:
            return _error("Invalid token", 401)

        user = db.session.get(User, payload.get("user_id"))
        if not user:
            return _error("User not found", 401)
        if not user.is_active:
            return _error("Account is disabled", 403)

        if payload.get("sid"):
            session = _active_session(payload)
            if session is None:
                return _error("Session has ended", 401)
            g.current_session = session

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def roles_required(*roles):
    """Allow only users whose role is one of ``roles``."""

    def decorator(f):
        @wraps(f)
        @token_required
        def decorated_function(*args, **kwargs):
            if g.current_user.role not in roles:
                return _error("You do not have permission to perform this action", 403)
            return f(*args, **kwargs)

        return decorated_function

    return decorator


def optional_user():
    """Return the bearer token's active user, or None for guests."""
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    try:
        payload = decode_token(header.split(" ", 1)[1])
    except jwt.InvalidTokenError:
        return None
    if payload.get("sid") and _active_session(payload) is None:
        return None
    user = db.session.get(User, payload.get("user_id"))
    if user and user.is_active:
        return user
    return None
