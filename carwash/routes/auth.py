from flask import Blueprint, request, jsonify, current_app, g
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from ..extensions import db
from ..models import User, UserSession, USER_ROLES
from ..utils.auth import token_required, roles_required
import bcrypt
import jwt
import datetime
import secrets

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def issue_token(user):
    """Create a session row and a signed token pointing at it."""
    hours = current_app.config.get("JWT_EXPIRATION_HOURS", 24)
    expires_at = datetime.datetime.utcnow() + datetime.timedelta(hours=hours)
    session = UserSession(
        user_id=user.id,
        session_token=secrets.token_hex(32),
        expires_at=expires_at,
        ip_address=request.remote_addr,
        user_agent=(request.headers.get("User-Agent") or "")[:255],
    )
    db.session.add(session)

    payload = {
        "user_id": user.id,
        "email": user.email,
        "role": user.role,
        "sid": session.session_token,
        "exp": expires_at,
    }
    token = jwt.encode(payload, current_app.config["SECRET_KEY"], algorithm="HS256")
    return token, session


@auth_bp.route("/register", methods=["POST"])
def register_user():
    """
    Register a customer account
    ---
    tags:
      - Authentication
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - email
            - password
            - full_name
          properties:
            email:
              type: string
            password:
              type: string
            full_name:
              type: string
            contact_number:
              type: string
            branch_location:
              type: string
    responses:
      201:
        description: User registered
      400:
        description: Missing or invalid fields
      409:
        description: Email already registered
    """
    try:
        data = request.get_json(force=True) or {}
        email = (data.get("email") or "").strip().lower()
        password = data.get("password")
        full_name = (data.get("full_name") or "").strip()

        if not email or not password or not full_name:
            return jsonify({
                "status": "error",
                "message": "Missing required fields (email, password, full_name)"
            }), 400

        if len(password) < 6:
            return jsonify({
                "status": "error",
                "message": "Password must be at least 6 characters"
            }), 400

        existing = db.session.scalar(select(User).where(User.email == email))
        if existing:
            return jsonify({
                "status": "error",
                "message": "User with this email already exists"
            }), 409

        hashed_pw = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt())

        user = User(
            email=email,
            full_name=full_name,
            password_hash=hashed_pw.decode("utf-8"),
            role="user",
            contact_number=data.get("contact_number"),
            branch_location=data.get("branch_location"),
        )
        db.session.add(user)
        db.session.commit()

        return jsonify({
            "status": "success",
            "message": "User registered successfully",
            "user": user.to_dict()
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
        return jsonify({
            "status": "error",
            "message": "Internal server error",
            "details": str(e)
        }), 500


@auth_bp.route("/login", methods=["POST"])
def login_user():
    """
    Log in with email and password
    ---
    tags:
      - Authentication
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            email:
              type: string
            password:
              type: string
    responses:
      200:
        description: Login successful, returns a bearer token
      400:
        description: Email and password required
      401:
        description: Invalid credentials
      403:
        description: Account is disabled
    """
    try:
        data = request.get_json(force=True) or {}
        email = (data.get("email") or "").strip().lower()
        password = data.get("password")

        if not email or not password:
            return jsonify({
                "status": "error",
                "message": "Email and password required"
            }), 400

        user = db.session.scalar(select(User).where(User.email == email))
        if not user or not user.password_hash:
            return jsonify({
                "status": "error",
                "message": "Invalid credentials"
            }), 401

        if not bcrypt.checkpw(password.encode("utf-8"), user.password_hash.encode("utf-8")):
            return jsonify({
                "status": "error",
                "message": "Invalid credentials"
            }), 401

        if not user.is_active:
            return jsonify({
                "status": "error",
                "message": "Account is disabled"
            }), 403

        user.last_login_at = datetime.datetime.utcnow()
        token, session = issue_token(user)
        db.session.commit()

        return jsonify({
            "status": "success",
            "message": "Login successful",
            "token": token,
            "expires_at": session.expires_at.isoformat(),
            "user": user.to_dict()
        }), 200

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Login failed: {e}")
        return jsonify({
            "status": "error",
            "message": "Internal server error",
            "details": str(e)
        }), 500


@auth_bp.route("/logout", methods=["POST"])
@token_required
def logout_user():
    """
    POST /api/auth/logout
    Purpose: End the session behind the current bearer token.
    """
    session = g.get("current_session")
    if session:
        session.is_active = False
        db.session.commit()
    return jsonify({"status": "success", "message": "Logged out"}), 200


@auth_bp.route("/me", methods=["GET"])
@token_required
def get_current_user():
    """
    Current user profile
    ---
    tags:
      - Authentication
    responses:
      200:
        description: The authenticated user
      401:
        description: Missing or invalid token
    """
    return jsonify({"status": "success", "user": g.current_user.to_dict()}), 200


@auth_bp.route("/users", methods=["GET"])
@roles_required("admin", "superadmin")
def list_users():
    """
    GET /api/auth/users?role=<role>&active=<true|false>
    Purpose: Admin listing of accounts.
    """
    query = db.session.query(User)
    role = request.args.get("role")
    if role:
        query = query.filter(User.role == role)
    active = request.args.get("active")
    if active is not None:
        query = query.filter(User.is_active == (active.lower() == "true"))

    users = query.order_by(User.created_at.desc()).all()
    return jsonify({"status": "success", "users": [u.to_dict() for u in users]}), 200


@auth_bp.route("/users/<int:user_id>/status", methods=["PATCH"])
@roles_required("admin", "superadmin")
def set_user_status(user_id):
    """
    PATCH /api/auth/users/<user_id>/status
    Purpose: Enable or disable an account.
    Input: JSON {"is_active": bool}

    Behavior:
    - Disabling an account also ends its open sessions.
    - Admins cannot disable themselves.
    """
    try:
        data = request.get_json(force=True) or {}
        if not isinstance(data.get("is_active"), bool):
            return jsonify({"status": "error", "message": "is_active (boolean) is required"}), 400

        user = db.session.get(User, user_id)
        if not user:
            return jsonify({"status": "error", "message": f"No user found with ID {user_id}"}), 404

        if user.id == g.current_user.id and not data["is_active"]:
            return jsonify({"status": "error", "message": "You cannot disable your own account"}), 400

        user.is_active = data["is_active"]
        if not user.is_active:
            for session in user.sessions:
                session.is_active = False
        db.session.commit()

        return jsonify({"status": "success", "user": user.to_dict()}), 200

    except Exception as e:
        db.session.rollback()
        return jsonify({
            "status": "error",
            "message": "Internal server error",
            "details": str(e)
        }), 500


@auth_bp.route("/users/<int:user_id>/role", methods=["PATCH"])
@roles_required("superadmin")
def set_user_role(user_id):
    """Superadmin-only role assignment."""
    data = request.get_json(force=True) or {}
    role = data.get("role")
    if role not in USER_ROLES:
        return jsonify({
            "status": "error",
            "message": f"Role must be one of: {', '.join(USER_ROLES)}"
        }), 400

    user = db.session.get(User, user_id)
    if not user:
        return jsonify({"status": "error", "message": f"No user found with ID {user_id}"}), 404

    user.role = role
    db.session.commit()
    return jsonify({"status": "success", "user": user.to_dict()}), 200
