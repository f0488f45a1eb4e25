# Inventory items, stock movements, low-stock alerts
from flask import Blueprint, jsonify, request, current_app, g
from carwash.extensions import db
from ...models import InventoryItem, StockMovement
from ...services.inventory_service import (
    INVENTORY_ROLES,
    non_negative_int,
    apply_stock_movement,
)
from ...utils.auth import roles_required
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

ITEM_FIELDS = (
    "name",
    "category",
    "description",
    "min_stock_level",
    "max_stock_level",
    "unit_price",
    "supplier",
    "barcode",
)


@inventory_bp.route("/items", methods=["GET"])
@roles_required(*INVENTORY_ROLES)
def list_items():
    """
    GET /api/inventory/items?category=&search=&include_inactive=false
    Purpose: Inventory list sorted by name.
    """
    query = db.session.query(InventoryItem)
    if request.args.get("include_inactive", "false").lower() != "true":
        query = query.filter(InventoryItem.is_active.is_(True))
    category = request.args.get("category")
    if category:
        query = query.filter(InventoryItem.category == category)
    search = request.args.get("search")
    if search:
        query = query.filter(InventoryItem.name.ilike(f"%{search}%"))

    items = query.order_by(InventoryItem.name).all()
    return jsonify({"status": "success", "items": [i.to_dict() for i in items]}), 200


@inventory_bp.route("/items", methods=["POST"])
@roles_required(*INVENTORY_ROLES)
def create_item():
    """
    Add an inventory item
    ---
    tags:
      - Inventory
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - name
            - category
          properties:
            name:
              type: string
            category:
              type: string
            current_stock:
              type: integer
            min_stock_level:
              type: integer
            max_stock_level:
              type: integer
            unit_price:
              type: number
            supplier:
              type: string
    responses:
      201:
        description: Item created
      400:
        description: Missing or invalid fields
    """
    try:
        data = request.get_json(silent=True) or {}
        if not data.get("name") or not data.get("category"):
            return jsonify({"status": "error", "message": "name and category are required"}), 400

        current_stock = non_negative_int(data.get("current_stock", 0), "current_stock")
        min_stock = non_negative_int(data.get("min_stock_level", 0), "min_stock_level")
        unit_price = data.get("unit_price", 0)
        if isinstance(unit_price, bool) or not isinstance(unit_price, (int, float)) or unit_price < 0:
            return jsonify({"status": "error", "message": "unit_price must be a non-negative number"}), 400

        item = InventoryItem(
            name=data["name"],
            category=data["category"],
            description=data.get("description"),
            current_stock=current_stock,
            min_stock_level=min_stock,
            max_stock_level=data.get("max_stock_level"),
            unit_price=unit_price,
            supplier=data.get("supplier"),
            barcode=data.get("barcode"),
        )
        db.session.add(item)
        db.session.commit()
        return jsonify({"status": "success", "item": item.to_dict()}), 201

    except ValueError as e:
        db.session.rollback()
        return jsonify({"status": "error", "message": str(e)}), 400

    except IntegrityError as e:
        db.session.rollback()
        return jsonify({
            "status": "error",
            "message": "Database integrity error",
            "details": str(e.orig)
        }), 400


@inventory_bp.route("/items/<int:item_id>", methods=["GET"])
@roles_required(*INVENTORY_ROLES)
def get_item(item_id):
    item = db.session.get(InventoryItem, item_id)
    if not item:
        return jsonify({"status": "error", "message": "Item not found"}), 404
    return jsonify({"status": "success", "item": item.to_dict()}), 200


@inventory_bp.route("/items/<int:item_id>", methods=["PATCH"])
@roles_required(*INVENTORY_ROLES)
def update_item(item_id):
    """
    PATCH /api/inventory/items/<item_id>
    Purpose: Edit item details. Stock levels change only through movements.
    """
    item = db.session.get(InventoryItem, item_id)
    if not item:
        return jsonify({"status": "error", "message": "Item not found"}), 404

    data = request.get_json(silent=True) or {}
    if "current_stock" in data:
        return jsonify({
            "status": "error",
            "message": "Use a stock movement to change current_stock"
        }), 400

    try:
        if "min_stock_level" in data:
            non_negative_int(data["min_stock_level"], "min_stock_level")
        for field in ITEM_FIELDS:
            if field in data:
                setattr(item, field, data[field])
        if "is_active" in data:
            item.is_active = bool(data["is_active"])
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({"status": "error", "message": str(e)}), 400

    return jsonify({"status": "success", "item": item.to_dict()}), 200


@inventory_bp.route("/items/<int:item_id>", methods=["DELETE"])
@roles_required(*INVENTORY_ROLES)
def delete_item(item_id):
    """Soft delete; movement history is kept."""
    item = db.session.get(InventoryItem, item_id)
    if not item:
        return jsonify({"status": "error", "message": "Item not found"}), 404
    item.is_active = False
    db.session.commit()
    return jsonify({"status": "success", "message": "Item deactivated"}), 200


@inventory_bp.route("/items/<int:item_id>/movements", methods=["POST"])
@roles_required(*INVENTORY_ROLES)
def create_movement(item_id):
    """
    Record a stock movement
    ---
    tags:
      - Inventory
    parameters:
      - in: path
        name: item_id
        type: integer
        required: true
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - type
            - quantity
          properties:
            type:
              type: string
              enum: [in, out, adjustment]
            quantity:
              type: integer
            reason:
              type: string
            reference:
              type: string
            notes:
              type: string
    responses:
      201:
        description: Movement recorded, returns the updated item
      400:
        description: Invalid movement or insufficient stock
      404:
        description: Item not found
    """
    try:
        item = db.session.get(InventoryItem, item_id)
        if not item or not item.is_active:
            return jsonify({"status": "error", "message": "Item not found"}), 404

        data = request.get_json(silent=True) or {}
        movement = apply_stock_movement(
            item,
            data.get("type"),
            data.get("quantity"),
            performed_by=g.current_user.email,
            reason=data.get("reason"),
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        db.session.commit()
        return jsonify({
            "status": "success",
            "movement": movement.to_dict(),
            "item": item.to_dict(),
        }), 201

    except ValueError as e:
        db.session.rollback()
        return jsonify({"status": "error", "message": str(e)}), 400

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Stock movement failed for item {item_id}: {e}")
        return jsonify({
            "status": "error",
            "message": "Internal server error",
            "details": str(e)
        }), 500


@inventory_bp.route("/movements", methods=["GET"])
@roles_required(*INVENTORY_ROLES)
def list_movements():
    query = db.session.query(StockMovement)
    item_id = request.args.get("item_id", type=int)
    if item_id:
        query = query.filter(StockMovement.item_id == item_id)
    limit = request.args.get("limit", 100, type=int)

    movements = (
        query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
    return jsonify({"status": "success", "movements": [m.to_dict() for m in movements]}), 200


@inventory_bp.route("/low-stock", methods=["GET"])
@roles_required(*INVENTORY_ROLES)
def list_low_stock():
    items = (
        db.session.query(InventoryItem)
        .filter(
            InventoryItem.is_active.is_(True),
            InventoryItem.current_stock <= InventoryItem.min_stock_level,
        )
        .order_by(InventoryItem.current_stock)
        .all()
    )
    return jsonify({"status": "success", "items": [i.to_dict() for i in items]}), 200


@inventory_bp.route("/analytics", methods=["GET"])
@roles_required(*INVENTORY_ROLES)
def get_analytics():
    """Stock value and alert counts over active items."""
    active = db.session.query(InventoryItem).filter(InventoryItem.is_active.is_(True))

    total_items = active.count()
    total_value = (
        db.session.query(func.sum(InventoryItem.current_stock * InventoryItem.unit_price))
        .filter(InventoryItem.is_active.is_(True))
        .scalar()
        or 0
    )
    low_stock = active.filter(InventoryItem.current_stock <= InventoryItem.min_stock_level).count()
    out_of_stock = active.filter(InventoryItem.current_stock == 0).count()
    categories = (
        db.session.query(InventoryItem.category, func.count(InventoryItem.id))
        .filter(InventoryItem.is_active.is_(True))
        .group_by(InventoryItem.category)
        .all()
    )

    return jsonify({
        "status": "success",
        "analytics": {
            "total_items": total_items,
            "total_stock_value": round(float(total_value), 2),
            "low_stock_count": low_stock,
            "out_of_stock_count": out_of_stock,
            "categories": [{"name": name, "count": count} for name, count in categories],
        },
    }), 200
