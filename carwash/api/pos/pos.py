# Cashier shifts, walk-in sales, expenses and daily sales reports
from flask import Blueprint, jsonify, request, send_file, current_app, g
from carwash.extensions import db
from ...models import InventoryItem, PosExpense, PosSession, PosTransaction, PosTransactionItem
from ...services import pos_service
from ...services.availability import parse_date
from ...services.inventory_service import apply_stock_movement
from ...utils.auth import roles_required
from sqlalchemy.exc import IntegrityError
from datetime import datetime
from io import BytesIO
from zoneinfo import ZoneInfo
import pandas as pd
import random
import string

pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")

POS_ROLES = ("cashier", "admin", "superadmin", "manager")
PAYMENT_METHODS = ("cash", "card", "gcash", "bank")


def _money(value, field):
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a non-negative number")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be a non-negative number")
    if amount < 0:
        raise ValueError(f"{field} must be a non-negative number")
    return round(amount, 2)


def _today():
    return datetime.now(ZoneInfo(pos_service.BUSINESS_TIMEZONE)).date()


def generate_transaction_number():
    stamp = datetime.utcnow().strftime("%Y%m%d%H%M%S")
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"TXN-{stamp}-{suffix}"


def _open_session_for(cashier_id):
    return (
        db.session.query(PosSession)
        .filter(
            PosSession.cashier_id == str(cashier_id),
            PosSession.session_date == _today(),
            PosSession.status == "open",
        )
        .order_by(PosSession.opened_at.desc())
        .first()
    )


@pos_bp.route("/sessions/open", methods=["POST"])
@roles_required(*POS_ROLES)
def open_session():
    """
    Open a cashier shift
    ---
    tags:
      - POS
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            opening_balance:
              type: number
            branch_id:
              type: string
    responses:
      201:
        description: Session opened
      400:
        description: Invalid opening balance
      409:
        description: Cashier already has an open session today
    """
    try:
        data = request.get_json(silent=True) or {}
        user = g.current_user
        opening_balance = _money(data.get("opening_balance", 0), "opening_balance")

        if _open_session_for(user.id):
            return jsonify({
                "status": "error",
                "message": "You already have an open POS session today"
            }), 409

        session = PosSession(
            status="open",
            session_date=_today(),
            cashier_id=str(user.id),
            cashier_name=user.full_name,
            branch_id=data.get("branch_id") or user.branch_location or "main",
            opening_balance=opening_balance,
        )
        db.session.add(session)
        db.session.commit()
        return jsonify({"status": "success", "session": session.to_dict()}), 201

    except ValueError as e:
        db.session.rollback()
        return jsonify({"status": "error", "message": str(e)}), 400


@pos_bp.route("/sessions/current", methods=["GET"])
@roles_required(*POS_ROLES)
def get_current_session():
    session = _open_session_for(g.current_user.id)
    return jsonify({
        "status": "success",
        "session": session.to_dict() if session else None,
    }), 200


@pos_bp.route("/sessions", methods=["GET"])
@roles_required("admin", "superadmin", "manager")
def list_sessions():
    query = db.session.query(PosSession)
    date_str = request.args.get("date")
    if date_str:
        try:
            query = query.filter(PosSession.session_date == parse_date(date_str))
        except ValueError as e:
            return jsonify({"status": "error", "message": str(e)}), 400
    sessions = query.order_by(PosSession.opened_at.desc()).all()
    return jsonify({"status": "success", "sessions": [s.to_dict() for s in sessions]}), 200


@pos_bp.route("/sessions/<int:session_id>/close", methods=["POST"])
@roles_required(*POS_ROLES)
def close_session(session_id):
    """
    Close a shift with cash reconciliation
    ---
    tags:
      - POS
    parameters:
      - in: path
        name: session_id
        type: integer
        required: true
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - actual_cash
            - actual_digital
          properties:
            actual_cash:
              type: number
            actual_digital:
              type: number
            remittance_notes:
              type: string
    responses:
      200:
        description: Session closed with expected totals and variances
      400:
        description: Counted amounts missing or invalid
      404:
        description: Session not found
      409:
        description: Session already closed
    """
    try:
        session = db.session.get(PosSession, session_id)
        if not session:
            return jsonify({"status": "error", "message": "Session not found"}), 404
        if session.status != "open":
            return jsonify({"status": "error", "message": "Session is already closed"}), 409

        data = request.get_json(silent=True) or {}
        actual_cash = _money(data.get("actual_cash"), "actual_cash")
        actual_digital = _money(data.get("actual_digital"), "actual_digital")

        reconciliation = pos_service.close_session(
            session, actual_cash, actual_digital, data.get("remittance_notes")
        )
        db.session.commit()

        current_app.logger.info(
            f"POS session {session_id} closed, balanced={reconciliation['is_balanced']}"
        )
        return jsonify({
            "status": "success",
            "session": session.to_dict(),
            "reconciliation": reconciliation,
        }), 200

    except ValueError as e:
        db.session.rollback()
        return jsonify({"status": "error", "message": str(e)}), 400

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to close POS session {session_id}: {e}")
        return jsonify({
            "status": "error",
            "message": "Internal server error",
            "details": str(e)
        }), 500


@pos_bp.route("/transactions", methods=["POST"])
@roles_required(*POS_ROLES)
def create_transaction():
    """
    POST /api/pos/transactions
    Purpose: Ring up a walk-in sale.
    Input: JSON {
        "items": [{"item_name", "unit_price", "quantity", "product_id"?, ...}],
        "payment_method": cash|card|gcash|bank,
        "amount_paid"?, "discount_amount"?, "tax_amount"?,
        "customer_name"?, "customer_phone"?, "customer_email"?, "notes"?
    }

    Behavior:
    - total = items subtotal + tax - discount.
    - Cash sales need amount_paid >= total; change is returned.
    - Items with a product_id draw down the matching inventory item.
    """
    try:
        data = request.get_json(silent=True) or {}
        items = data.get("items") or []
        if not items:
            return jsonify({"status": "error", "message": "At least one item is required"}), 400

        payment_method = data.get("payment_method")
        if payment_method not in PAYMENT_METHODS:
            return jsonify({
                "status": "error",
                "message": f"Invalid payment method. Must be one of: {', '.join(PAYMENT_METHODS)}"
            }), 400

        line_items = []
        subtotal = 0.0
        for entry in items:
            if not entry.get("item_name"):
                raise ValueError("Every item needs an item_name")
            unit_price = _money(entry.get("unit_price"), "unit_price")
            quantity = entry.get("quantity", 1)
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                raise ValueError("quantity must be a positive integer")
            line_total = round(unit_price * quantity, 2)
            subtotal = round(subtotal + line_total, 2)
            line_items.append((entry, unit_price, quantity, line_total))

        tax_amount = _money(data.get("tax_amount", 0), "tax_amount")
        discount_amount = _money(data.get("discount_amount", 0), "discount_amount")
        total_amount = round(subtotal + tax_amount - discount_amount, 2)
        if total_amount < 0:
            raise ValueError("Discount cannot exceed the sale amount")

        amount_paid = data.get("amount_paid")
        amount_paid = total_amount if amount_paid is None else _money(amount_paid, "amount_paid")
        if amount_paid < total_amount:
            raise ValueError("amount_paid is less than the total amount")

        user = g.current_user
        transaction = PosTransaction(
            transaction_number=generate_transaction_number(),
            customer_id=data.get("customer_id"),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            customer_email=data.get("customer_email"),
            type="sale",
            status="completed",
            branch_id=data.get("branch_id") or user.branch_location or "main",
            cashier_id=str(user.id),
            cashier_name=user.full_name,
            subtotal=subtotal,
            tax_amount=tax_amount,
            discount_amount=discount_amount,
            total_amount=total_amount,
            payment_method=payment_method,
            payment_reference=data.get("payment_reference"),
            amount_paid=amount_paid,
            change_amount=round(amount_paid - total_amount, 2),
            notes=data.get("notes"),
        )
        db.session.add(transaction)
        db.session.flush()

        for entry, unit_price, quantity, line_total in line_items:
            transaction.items.append(
                PosTransactionItem(
                    product_id=entry.get("product_id"),
                    item_name=entry["item_name"],
                    item_sku=entry.get("item_sku"),
                    item_category=entry.get("item_category"),
                    unit_price=unit_price,
                    quantity=quantity,
                    subtotal=line_total,
                    final_price=line_total,
                )
            )
            if entry.get("product_id"):
                product = db.session.get(InventoryItem, entry["product_id"])
                if product and product.is_active:
                    apply_stock_movement(
                        product,
                        "out",
                        quantity,
                        performed_by=user.email,
                        reason="POS sale",
                        reference=transaction.transaction_number,
                    )

        transaction.receipt_data = {
            "transaction_number": transaction.transaction_number,
            "cashier": user.full_name,
            "items": [
                {"name": entry["item_name"], "quantity": quantity, "total": line_total}
                for entry, _, quantity, line_total in line_items
            ],
            "total": total_amount,
            "paid": amount_paid,
            "change": round(amount_paid - total_amount, 2),
        }
        db.session.commit()

        return jsonify({
            "status": "success",
            "transaction": transaction.to_dict(include_items=True),
        }), 201

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

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to create POS transaction: {e}")
        return jsonify({
            "status": "error",
            "message": "Internal server error",
            "details": str(e)
        }), 500


@pos_bp.route("/transactions", methods=["GET"])
@roles_required(*POS_ROLES)
def list_transactions():
    """
    GET /api/pos/transactions?date=YYYY-MM-DD&limit=100
    Purpose: Sales for a business day (defaults to today), newest first.
    """
    try:
        day = parse_date(request.args["date"]) if request.args.get("date") else _today()
    except ValueError as e:
        return jsonify({"status": "error", "message": str(e)}), 400

    start, end = pos_service.business_day_bounds(day)
    limit = request.args.get("limit", 100, type=int)
    transactions = (
        db.session.query(PosTransaction)
        .filter(PosTransaction.created_at >= start, PosTransaction.created_at < end)
        .order_by(PosTransaction.created_at.desc())
        .limit(limit)
        .all()
    )
    return jsonify({
        "status": "success",
        "date": day.isoformat(),
        "transactions": [t.to_dict() for t in transactions],
    }), 200


@pos_bp.route("/transactions/<int:transaction_id>", methods=["GET"])
@roles_required(*POS_ROLES)
def get_transaction(transaction_id):
    transaction = db.session.get(PosTransaction, transaction_id)
    if not transaction:
        return jsonify({"status": "error", "message": "Transaction not found"}), 404
    return jsonify({
        "status": "success",
        "transaction": transaction.to_dict(include_items=True),
    }), 200


@pos_bp.route("/expenses", methods=["POST"])
@roles_required(*POS_ROLES)
def create_expense():
    """
    Record a shift expense
    ---
    tags:
      - POS
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - category
            - description
            - amount
          properties:
            pos_session_id:
              type: integer
            category:
              type: string
            description:
              type: string
            amount:
              type: number
            payment_method:
              type: string
    responses:
      201:
        description: Expense recorded
      400:
        description: Missing or invalid fields
    """
    try:
        data = request.get_json(silent=True) or {}
        if not data.get("category") or not data.get("description"):
            return jsonify({"status": "error", "message": "category and description are required"}), 400
        amount = _money(data.get("amount"), "amount")

        session_id = data.get("pos_session_id")
        if session_id is None:
            open_session = _open_session_for(g.current_user.id)
            session_id = open_session.id if open_session else None
        elif not db.session.get(PosSession, session_id):
            return jsonify({"status": "error", "message": "Session not found"}), 404

        expense = PosExpense(
            pos_session_id=session_id,
            category=data["category"],
            description=data["description"],
            amount=amount,
            payment_method=data.get("payment_method", "cash"),
            notes=data.get("notes"),
            recorded_by=str(g.current_user.id),
            recorded_by_name=g.current_user.full_name,
        )
        db.session.add(expense)
        db.session.commit()
        return jsonify({"status": "success", "expense": expense.to_dict()}), 201

    except ValueError as e:
        db.session.rollback()
        return jsonify({"status": "error", "message": str(e)}), 400


@pos_bp.route("/expenses", methods=["GET"])
@roles_required(*POS_ROLES)
def list_expenses():
    query = db.session.query(PosExpense)
    session_id = request.args.get("session_id", type=int)
    if session_id:
        query = query.filter(PosExpense.pos_session_id == session_id)
    expenses = query.order_by(PosExpense.created_at.desc()).all()
    return jsonify({"status": "success", "expenses": [e.to_dict() for e in expenses]}), 200


@pos_bp.route("/expenses/<int:expense_id>", methods=["DELETE"])
@roles_required(*POS_ROLES)
def delete_expense(expense_id):
    expense = db.session.get(PosExpense, expense_id)
    if not expense:
        return jsonify({"status": "error", "message": "Expense not found"}), 404
    if expense.session is not None and expense.session.status == "closed":
        return jsonify({
            "status": "error",
            "message": "Expenses of a closed session cannot be deleted"
        }), 409
    db.session.delete(expense)
    db.session.commit()
    return jsonify({"status": "success", "message": "Expense deleted"}), 200


@pos_bp.route("/reports/daily/<string:date_str>", methods=["GET"])
@roles_required(*POS_ROLES)
def get_daily_report(date_str):
    """
    Daily sales report
    ---
    tags:
      - POS
    parameters:
      - in: path
        name: date_str
        type: string
        required: true
        description: YYYY-MM-DD
    responses:
      200:
        description: Sales per payment method, expenses and net income
      400:
        description: Invalid date, report is returned zeroed
    """
    try:
        day = parse_date(date_str)
    except ValueError as e:
        return jsonify({
            "status": "error",
            "message": str(e),
            "report": pos_service.empty_daily_report(date_str),
        }), 400

    return jsonify({"status": "success", "report": pos_service.daily_report(day)}), 200


@pos_bp.route("/reports/daily/<string:date_str>/export", methods=["GET"])
@roles_required("admin", "superadmin", "manager")
def export_daily_report(date_str):
    """Excel workbook with the day's summary, transactions and expenses."""
    try:
        day = parse_date(date_str)
    except ValueError as e:
        return jsonify({"status": "error", "message": str(e)}), 400

    start, end = pos_service.business_day_bounds(day)
    summary = pos_service.daily_report(day)
    transactions = (
        db.session.query(
            PosTransaction.transaction_number,
            PosTransaction.cashier_name,
            PosTransaction.payment_method,
            PosTransaction.total_amount,
            PosTransaction.status,
            PosTransaction.created_at,
        )
        .filter(PosTransaction.created_at >= start, PosTransaction.created_at < end)
        .all()
    )
    expenses = (
        db.session.query(
            PosExpense.category,
            PosExpense.description,
            PosExpense.amount,
            PosExpense.recorded_by_name,
            PosExpense.created_at,
        )
        .filter(PosExpense.created_at >= start, PosExpense.created_at < end)
        .all()
    )

    output = BytesIO()
    with pd.ExcelWriter(output, engine="xlsxwriter") as writer:
        df_summary = pd.DataFrame(list(summary.items()), columns=["Metric", "Value"])
        df_summary.to_excel(writer, sheet_name="Summary", index=False)

        df_transactions = pd.DataFrame(
            transactions,
            columns=["Transaction", "Cashier", "Payment Method", "Total", "Status", "Created At"],
        )
        df_transactions.to_excel(writer, sheet_name="Transactions", index=False)

        df_expenses = pd.DataFrame(
            expenses,
            columns=["Category", "Description", "Amount", "Recorded By", "Created At"],
        )
        df_expenses.to_excel(writer, sheet_name="Expenses", index=False)

    output.seek(0)
    return send_file(
        output,
        as_attachment=True,
        download_name=f"POS_Daily_Report_{day.isoformat()}.xlsx",
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
