# Admin business configuration: pricing, scheduling, terms, branches, blackout dates
from flask import Blueprint, jsonify, request, current_app
from ...services.admin_config import (
    PRICING_CATEGORIES,
    WEEKDAYS,
    admin_config,
    generate_time_slots,
)
from ...utils.auth import roles_required
from carwash.extensions import db

admin_settings_bp = Blueprint("admin_settings", __name__, url_prefix="/api/admin/config")

CONFIG_ROLES = ("admin", "superadmin")


def _ok(config, message=None, status=200):
    body = {"status": "success", "config": config}
    if message:
        body["message"] = message
    return jsonify(body), status


def _run(update, message):
    """Apply a manager update, mapping bad input to 400."""
    try:
        return _ok(update(), message)
    except ValueError as e:
        db.session.rollback()
        return jsonify({"status": "error", "message": str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Admin config update failed: {e}")
        return jsonify({
            "status": "error",
            "message": "Internal server error",
            "details": str(e)
        }), 500


@admin_settings_bp.route("", methods=["GET"])
def get_config():
    """
    Current business configuration
    ---
    tags:
      - Admin Config
    summary: Pricing, scheduling, home service, terms, branches and payment methods
    responses:
      200:
        description: Stored configuration merged over the defaults
    """
    return _ok(admin_config.get_config())


@admin_settings_bp.route("", methods=["PUT"])
@roles_required(*CONFIG_ROLES)
def save_config():
    """
    Replace the configuration
    ---
    tags:
      - Admin Config
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
    responses:
      200:
        description: Saved; missing keys are filled from defaults
      400:
        description: Body is not an object
    """
    data = request.get_json(silent=True)
    return _run(lambda: admin_config.save_config(data), "Configuration saved")


@admin_settings_bp.route("/reset", methods=["POST"])
@roles_required(*CONFIG_ROLES)
def reset_config():
    return _run(admin_config.reset_to_defaults, "Configuration reset to defaults")


@admin_settings_bp.route("/pricing/<string:category>", methods=["PUT"])
@roles_required(*CONFIG_ROLES)
def update_pricing(category):
    """
    PUT /api/admin/config/pricing/<category>
    Purpose: Replace one pricing table.
    Input: category in carwash, autoDetailing, grapheneCoating; JSON table body.
    """
    if category not in PRICING_CATEGORIES:
        return jsonify({
            "status": "error",
            "message": f"Invalid pricing category. Must be one of: {', '.join(PRICING_CATEGORIES)}"
        }), 400
    data = request.get_json(silent=True)
    return _run(lambda: admin_config.update_pricing(category, data), "Pricing updated")


@admin_settings_bp.route("/scheduling", methods=["PATCH"])
@roles_required(*CONFIG_ROLES)
def update_scheduling():
    data = request.get_json(silent=True)
    return _run(lambda: admin_config.update_scheduling(data), "Scheduling updated")


@admin_settings_bp.route("/terms", methods=["PATCH"])
@roles_required(*CONFIG_ROLES)
def update_terms():
    data = request.get_json(silent=True)
    return _run(lambda: admin_config.update_terms(data), "Terms updated")


@admin_settings_bp.route("/branches", methods=["POST"])
@roles_required(*CONFIG_ROLES)
def add_branch():
    """
    Add a branch
    ---
    tags:
      - Admin Config
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - id
            - name
          properties:
            id:
              type: string
            name:
              type: string
            address:
              type: string
            features:
              type: array
              items:
                type: string
            enabled:
              type: boolean
    responses:
      201:
        description: Branch added
      400:
        description: Missing fields or duplicate id
    """
    data = request.get_json(silent=True)
    response, status = _run(lambda: admin_config.add_branch(data), "Branch added")
    return response, (201 if status == 200 else status)


@admin_settings_bp.route("/branches/<string:branch_id>", methods=["PATCH"])
@roles_required(*CONFIG_ROLES)
def update_branch(branch_id):
    data = request.get_json(silent=True) or {}
    try:
        config = admin_config.update_branch(branch_id, data)
    except Exception as e:
        db.session.rollback()
        return jsonify({
            "status": "error",
            "message": "Internal server error",
            "details": str(e)
        }), 500
    if config is None:
        return jsonify({"status": "error", "message": f"Branch '{branch_id}' not found"}), 404
    return _ok(config, "Branch updated")


@admin_settings_bp.route("/branches/<string:branch_id>", methods=["DELETE"])
@roles_required(*CONFIG_ROLES)
def remove_branch(branch_id):
    return _run(lambda: admin_config.remove_branch(branch_id), "Branch removed")


@admin_settings_bp.route("/blackout-dates", methods=["POST"])
@roles_required(*CONFIG_ROLES)
def add_blackout_date():
    """
    POST /api/admin/config/blackout-dates
    Input: JSON {"date": "YYYY-MM-DD"}
    Behavior: adding a date that is already blacked out is a no-op.
    """
    data = request.get_json(silent=True) or {}
    return _run(lambda: admin_config.add_blackout_date(data.get("date")), "Blackout date added")


@admin_settings_bp.route("/blackout-dates/<string:date_str>", methods=["DELETE"])
@roles_required(*CONFIG_ROLES)
def remove_blackout_date(date_str):
    return _run(lambda: admin_config.remove_blackout_date(date_str), "Blackout date removed")


@admin_settings_bp.route("/time-slots/<string:day>", methods=["GET"])
def get_time_slots(day):
    """Slot labels generated from the working hours of a weekday."""
    if day.lower() not in WEEKDAYS:
        return jsonify({"status": "error", "message": f"Unknown weekday '{day}'"}), 400
    return jsonify({
        "status": "success",
        "day": day.lower(),
        "slots": generate_time_slots(admin_config.get_config(), day),
    }), 200
