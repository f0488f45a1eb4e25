# Stock level changes shared by the inventory and POS endpoints
from carwash.extensions import db
from carwash.models import StockMovement
from carwash.services.notification_service import create_notification

INVENTORY_ROLES = ("admin", "superadmin", "manager", "inventory_manager")
MOVEMENT_TYPES = ("in", "out", "adjustment")


def non_negative_int(value, field):
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{field} must be a non-negative integer")
    return value


def apply_stock_movement(item, movement_type, quantity, performed_by=None,
                         reason=None, reference=None, notes=None):
    """
    Change an item's stock and log the movement.

    ``in`` adds, ``out`` removes (never below zero), ``adjustment`` sets the
    counted stock level directly.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"Invalid movement type. Must be one of: {', '.join(MOVEMENT_TYPES)}")
    non_negative_int(quantity, "quantity")
    if movement_type != "adjustment" and quantity == 0:
        raise ValueError("quantity must be greater than zero")

    previous = item.current_stock
    if movement_type == "in":
        new_stock = previous + quantity
    elif movement_type == "out":
        if quantity > previous:
            raise ValueError(
                f"Insufficient stock for '{item.name}': {previous} available, {quantity} requested"
            )
        new_stock = previous - quantity
    else:
        new_stock = quantity

    item.current_stock = new_stock
    movement = StockMovement(
        item_id=item.id,
        type=movement_type,
        quantity=quantity,
        previous_stock=previous,
        new_stock=new_stock,
        reason=reason,
        reference=reference,
        performed_by=performed_by,
        notes=notes,
    )
    db.session.add(movement)

    # Alert once, when the item crosses into low stock
    if previous > item.min_stock_level >= new_stock:
        create_notification(
            "low_stock",
            "Low Stock Alert",
            f"{item.name} is down to {new_stock} (minimum {item.min_stock_level})",
            priority="high" if new_stock == 0 else "medium",
            target_roles=list(INVENTORY_ROLES),
            data={"item_id": item.id, "current_stock": new_stock},
            action_url="/admin/inventory",
            action_text="Restock",
        )
    return movement


