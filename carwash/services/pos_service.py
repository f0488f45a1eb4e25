"""
Point-of-sale money handling: sales totals per payment method, end of
shift reconciliation and the daily sales report.

Walk-in POS transactions and online bookings both count as sales.
"""
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from carwash.extensions import db
from carwash.models import Booking, PosExpense, PosTransaction

BUSINESS_TIMEZONE = "Asia/Manila"
PAYMENT_BUCKETS = ("cash", "card", "gcash", "bank")
PAYMENT_ALIASES = {"bank_transfer": "bank", "online": "bank", "maya": "gcash"}
BALANCE_TOLERANCE = 0.01


def round2(value):
    return round(float(value or 0), 2)


def normalize_payment_method(method, default="cash"):
    method = (method or default).lower()
    return PAYMENT_ALIASES.get(method, method)


def business_day_bounds(day, tz_name=BUSINESS_TIMEZONE):
    """Naive UTC [start, end) for a local calendar day."""
    tz = ZoneInfo(tz_name)
    start = datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)
    end = start + timedelta(days=1)
    return start.replace(tzinfo=None), end.replace(tzinfo=None)


def collect_sales(start, end=None, completed_only=False):
    """
    Sales between ``start`` and ``end`` (naive UTC) as
    ``[{"amount", "payment_method", "source"}]``.
    """
    end = end or datetime.utcnow()

    transactions = db.session.query(PosTransaction).filter(
        PosTransaction.created_at >= start, PosTransaction.created_at < end
    )
    if completed_only:
        transactions = transactions.filter(PosTransaction.status == "completed")
    else:
        transactions = transactions.filter(PosTransaction.status != "voided")

    bookings = db.session.query(Booking).filter(
        Booking.created_at >= start,
        Booking.created_at < end,
        Booking.status != "cancelled",
    )

    sales = [
        {
            "amount": round2(t.total_amount),
            "payment_method": t.payment_method,
            "source": "pos",
        }
        for t in transactions.all()
    ]
    sales += [
        {
            "amount": round2(b.total_price),
            "payment_method": b.payment_method,
            "source": "booking",
        }
        for b in bookings.all()
    ]
    return sales


def totals_by_method(sales, default_method="cash"):
    totals = {bucket: 0.0 for bucket in PAYMENT_BUCKETS}
    for sale in sales:
        bucket = normalize_payment_method(sale["payment_method"], default_method)
        if bucket in totals:
            totals[bucket] = round2(totals[bucket] + sale["amount"])
    return totals


def reconcile(opening_balance, totals, total_expenses, actual_cash, actual_digital):
    """
    Compare counted money against what the sales say should be there.

    Cash drawer: opening balance plus cash sales minus cash paid out.
    Digital: card, GCash and bank sales. Balanced when both variances are
    within one centavo.
    """
    opening_balance = round2(opening_balance)
    total_expenses = round2(total_expenses)
    actual_cash = round2(actual_cash)
    actual_digital = round2(actual_digital)

    expected_cash = round2(opening_balance + totals["cash"] - total_expenses)
    expected_digital = round2(totals["card"] + totals["gcash"] + totals["bank"])
    cash_variance = round2(actual_cash - expected_cash)
    digital_variance = round2(actual_digital - expected_digital)

    return {
        "total_cash_sales": totals["cash"],
        "total_card_sales": totals["card"],
        "total_gcash_sales": totals["gcash"],
        "total_bank_sales": totals["bank"],
        "total_expenses": total_expenses,
        "expected_cash": expected_cash,
        "actual_cash": actual_cash,
        "cash_variance": cash_variance,
        "expected_digital": expected_digital,
        "actual_digital": actual_digital,
        "digital_variance": digital_variance,
        "closing_balance": round2(actual_cash + actual_digital),
        "is_balanced": (
            abs(cash_variance) <= BALANCE_TOLERANCE
            and abs(digital_variance) <= BALANCE_TOLERANCE
        ),
    }


def close_session(session, actual_cash, actual_digital, remittance_notes=None, now=None):
    now = now or datetime.utcnow()
    sales = collect_sales(session.opened_at, now)
    totals = totals_by_method(sales)
    expenses = sum(round2(e.amount) for e in session.expenses)

    result = reconcile(session.opening_balance, totals, expenses, actual_cash, actual_digital)
    for field, value in result.items():
        setattr(session, field, value)
    session.status = "closed"
    session.closed_at = now
    session.remittance_notes = remittance_notes
    return result


def empty_daily_report(day_label):
    return {
        "date": day_label,
        "total_sales": 0,
        "total_cash": 0,
        "total_card": 0,
        "total_gcash": 0,
        "total_bank": 0,
        "total_expenses": 0,
        "net_income": 0,
        "transaction_count": 0,
        "expense_count": 0,
    }


def daily_report(day):
    start, end = business_day_bounds(day)
    sales = collect_sales(start, end, completed_only=True)
    totals = totals_by_method(sales, default_method="unknown")
    expenses = (
        db.session.query(PosExpense)
        .filter(PosExpense.created_at >= start, PosExpense.created_at < end)
        .all()
    )

    total_sales = round2(sum(s["amount"] for s in sales))
    total_expenses = round2(sum(float(e.amount) for e in expenses))
    return {
        "date": day.isoformat(),
        "total_sales": total_sales,
        "total_cash": totals["cash"],
        "total_card": totals["card"],
        "total_gcash": totals["gcash"],
        "total_bank": totals["bank"],
        "total_expenses": total_expenses,
        "net_income": round2(total_sales - total_expenses),
        "transaction_count": len(sales),
        "expense_count": len(expenses),
    }
