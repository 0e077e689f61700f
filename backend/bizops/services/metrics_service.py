# Overview: Read-only metrics for the dashboard, customer profile and reports.

from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Callable, Iterable

from sqlalchemy import case, func, or_

from ..config import get_setting
from ..errors import ValidationError
from ..extensions import db
from ..models import Customer, Product, Receivable, ServiceTicket, Target, Transaction
from ..models.finance import (
    PAYABLE,
    RECEIVABLE,
    RECEIVABLE_UNPAID,
    REVENUE_TYPES,
    TRANSACTION_EXPENSE,
    TRANSACTION_SALE,
)
from ..models.repairs import SERVICE_COMPLETED
from ..models.targets import TARGET_ACTIVE
from .concurrency import run_with_retry
from .customer_service import get_customer, points_for_amount
from .periods import calendar_windows, last_n_days, month_key, one_year_before, start_of_month, start_of_next_month
from .target_service import sum_revenue_cents
from bizops.time_utils import parse_iso_datetime, to_utc_z, utcnow
"""
Metrics Invariants (authoritative)

- Revenue is income + sale; expense is cost. Same filter as the targets.
- Period cards use the windows from periods.py, never their own.
- Classifications (amounts in cents):
    risk:          no sale ever -> new; >180 days since last sale -> high;
                   >90 -> medium; else low
    loyalty tier:  points >1000 champion, >500 loyal, >100 regular, else new
    profitability: spent >5000.00 high, >2000.00 medium, else low
- Lifetime value = total spent + cost of COMPLETED services.
- Rankings sort descending and keep first-seen order on ties.
- Nothing here writes. Store reads retry on lock/timeout errors.
"""

logger = logging.getLogger(__name__)

RISK_NEW = "new"
RISK_LOW = "low"
RISK_MEDIUM = "medium"
RISK_HIGH = "high"

PROFITABILITY_HIGH_CENTS = 500_000
PROFITABILITY_MEDIUM_CENTS = 200_000

NEXT_SERVICE_AFTER_DAYS = 90


def classify_risk(last_sale_at: datetime | None, now: datetime | None = None) -> str:
    if last_sale_at is None:
        return RISK_NEW
    days = ((now or utcnow()) - last_sale_at).days
    if days > 180:
        return RISK_HIGH
    if days > 90:
        return RISK_MEDIUM
    return RISK_LOW


def loyalty_tier(points: int) -> str:
    points = points or 0
    if points > 1000:
        return "champion"
    if points > 500:
        return "loyal"
    if points > 100:
        return "regular"
    return "new"


def profitability(total_spent_cents: int) -> str:
    total_spent_cents = total_spent_cents or 0
    if total_spent_cents > PROFITABILITY_HIGH_CENTS:
        return "high"
    if total_spent_cents > PROFITABILITY_MEDIUM_CENTS:
        return "medium"
    return "low"


def lifetime_value(total_spent_cents: int, services: Iterable[ServiceTicket]) -> int:
    completed = sum(s.cost_cents or 0 for s in services if s.status == SERVICE_COMPLETED)
    return (total_spent_cents or 0) + completed


def rank_top(rows: Iterable[dict], key: str, limit: int | None = None) -> list[dict]:
    """Descending by rows[key]; sorted() is stable, so ties keep input order."""
    ranked = sorted(rows, key=lambda row: row[key], reverse=True)
    return ranked[:limit] if limit is not None else ranked


def _with_retry(func_: Callable, session=None):
    attempts = int(get_setting("READ_RETRY_ATTEMPTS", 3))
    return run_with_retry(func_, attempts=attempts, session=session)


def _group(rows: Iterable, key_fn: Callable, init: Callable[[object], dict], add: Callable[[dict, object], None]) -> list[dict]:
    """Group in first-seen order."""
    groups: OrderedDict = OrderedDict()
    for row in rows:
        key = key_fn(row)
        if key not in groups:
            groups[key] = init(row)
        add(groups[key], row)
    return list(groups.values())


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

def _product_rankings(transactions: list[Transaction]) -> list[dict]:
    def init(tx):
        return {
            "product_id": tx.product_id,
            "name": tx.product.name if tx.product is not None else None,
            "category": tx.product.category if tx.product is not None else None,
            "quantity_sold": 0,
            "revenue_cents": 0,
        }

    def add(group, tx):
        group["quantity_sold"] += tx.quantity or 0
        group["revenue_cents"] += tx.amount_cents or 0

    sales = [tx for tx in transactions if tx.type == TRANSACTION_SALE and tx.product_id is not None]
    return _group(sales, lambda tx: tx.product_id, init, add)


def _build_dashboard(now: datetime, session) -> dict:
    revenue = {}
    for name, (start, end) in calendar_windows(now).items():
        total, count = sum_revenue_cents(start, end, session=session)
        revenue[name] = {"total_cents": total, "count": count}

    totals = dict(
        session.query(Transaction.type, func.coalesce(func.sum(Transaction.amount_cents), 0))
        .group_by(Transaction.type)
        .all()
    )
    income_cents = sum(int(totals.get(t, 0) or 0) for t in REVENUE_TYPES)
    expense_cents = int(totals.get(TRANSACTION_EXPENSE, 0) or 0)

    service_revenue = session.query(func.coalesce(func.sum(ServiceTicket.cost_cents), 0)).filter(
        ServiceTicket.status == SERVICE_COMPLETED
    ).scalar()
    service_counts = dict(
        session.query(ServiceTicket.status, func.count(ServiceTicket.id)).group_by(ServiceTicket.status).all()
    )

    product_stats = session.query(
        func.count(Product.id),
        func.coalesce(func.sum(Product.stock), 0),
        func.coalesce(func.sum(case((Product.stock <= Product.min_stock, 1), else_=0)), 0),
        func.coalesce(func.sum(case((Product.stock == 0, 1), else_=0)), 0),
    ).one()
    low_stock = (
        session.query(Product)
        .filter(Product.stock <= Product.min_stock)
        .order_by(Product.stock.asc(), Product.id.asc())
        .limit(10)
        .all()
    )

    month_start, month_end = start_of_month(now), start_of_next_month(now)
    month_sales = (
        session.query(Transaction)
        .filter(
            Transaction.type == TRANSACTION_SALE,
            Transaction.created_at >= month_start,
            Transaction.created_at < month_end,
        )
        .order_by(Transaction.created_at.asc(), Transaction.id.asc())
        .all()
    )
    top_products = rank_top(_product_rankings(month_sales), "revenue_cents", limit=5)

    customers = session.query(Customer).order_by(Customer.id.asc()).all()
    top_customers = rank_top(
        [
            {
                "customer_id": c.id,
                "name": c.full_name,
                "total_spent_cents": c.total_spent_cents or 0,
                "visit_count": c.visit_count or 0,
                "loyalty_points": c.loyalty_points or 0,
            }
            for c in customers
        ],
        "total_spent_cents",
        limit=5,
    )

    trend = []
    for start, end in last_n_days(7, now):
        total, count = sum_revenue_cents(start, end, session=session)
        trend.append({"date": start.date().isoformat(), "total_cents": total, "count": count})

    unpaid = dict(
        session.query(Receivable.type, func.coalesce(func.sum(Receivable.amount_cents), 0))
        .filter(Receivable.status == RECEIVABLE_UNPAID)
        .group_by(Receivable.type)
        .all()
    )
    receivable_cents = int(unpaid.get(RECEIVABLE, 0) or 0)
    payable_cents = int(unpaid.get(PAYABLE, 0) or 0)

    active_targets = session.query(Target).filter(Target.status == TARGET_ACTIVE).all()
    mean_progress = (
        round(sum(t.progress_pct for t in active_targets) / len(active_targets), 2) if active_targets else 0
    )

    return {
        "generated_at": to_utc_z(now),
        "revenue": revenue,
        "totals": {
            "income_cents": income_cents,
            "expense_cents": expense_cents,
            "net_cents": income_cents - expense_cents,
            "service_revenue_cents": int(service_revenue or 0),
        },
        "services": {status: int(count) for status, count in service_counts.items()},
        "products": {
            "count": int(product_stats[0] or 0),
            "total_stock": int(product_stats[1] or 0),
            "low_stock_count": int(product_stats[2] or 0),
            "out_of_stock_count": int(product_stats[3] or 0),
            "low_stock": [p.to_dict() for p in low_stock],
        },
        "top_products": top_products,
        "top_customers": top_customers,
        "daily_trend": trend,
        "receivables": {
            "receivable_unpaid_cents": receivable_cents,
            "payable_unpaid_cents": payable_cents,
            "net_cents": receivable_cents - payable_cents,
        },
        "targets": {
            "active_count": len(active_targets),
            "mean_progress_pct": mean_progress,
        },
    }


def dashboard(*, now: datetime | None = None, session=None) -> dict:
    session = session or db.session
    now = now or utcnow()
    return _with_retry(lambda: _build_dashboard(now, session), session=session)


# ---------------------------------------------------------------------------
# Customer profile
# ---------------------------------------------------------------------------

def _customer_filter(column_id, column_phone, customer: Customer):
    if customer.phone:
        return or_(column_id == customer.id, column_phone == customer.phone)
    return column_id == customer.id


def _build_profile(customer_id: int, now: datetime, session) -> dict:
    customer = get_customer(customer_id, session=session)

    transactions = (
        session.query(Transaction)
        .filter(_customer_filter(Transaction.customer_id, Transaction.customer_phone, customer))
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .all()
    )
    services = (
        session.query(ServiceTicket)
        .filter(_customer_filter(ServiceTicket.customer_id, ServiceTicket.customer_phone, customer))
        .order_by(ServiceTicket.received_at.desc(), ServiceTicket.id.desc())
        .all()
    )
    receivables = (
        session.query(Receivable)
        .filter(_customer_filter(Receivable.customer_id, Receivable.phone, customer))
        .order_by(Receivable.created_at.desc(), Receivable.id.desc())
        .all()
    )

    # Oldest first so groupings keep first-seen order
    sales = [tx for tx in reversed(transactions) if tx.type == TRANSACTION_SALE]
    last_sale_at = sales[-1].created_at if sales else None

    def purchase_init(tx):
        return {
            "product_id": tx.product_id,
            "name": tx.product.name if tx.product is not None else None,
            "category": tx.product.category if tx.product is not None else None,
            "total_quantity": 0,
            "total_spent_cents": 0,
            "count": 0,
            "last_purchase_at": None,
        }

    def purchase_add(group, tx):
        group["total_quantity"] += tx.quantity or 0
        group["total_spent_cents"] += tx.amount_cents or 0
        group["count"] += 1
        group["last_purchase_at"] = to_utc_z(tx.created_at)

    purchase_history = _group(
        [tx for tx in sales if tx.product_id is not None], lambda tx: tx.product_id, purchase_init, purchase_add
    )
    for group in purchase_history:
        group["average_price_cents"] = group["total_spent_cents"] // group["count"] if group["count"] else 0
    purchase_history = rank_top(purchase_history, "total_spent_cents")

    def category_init(tx):
        return {"category": tx.category, "total_spent_cents": 0, "item_count": 0, "last_purchase_at": None}

    def category_add(group, tx):
        group["total_spent_cents"] += tx.amount_cents or 0
        group["item_count"] += tx.quantity or 0
        group["last_purchase_at"] = to_utc_z(tx.created_at)

    favourite_categories = rank_top(
        _group([tx for tx in sales if tx.category], lambda tx: tx.category, category_init, category_add),
        "total_spent_cents",
    )

    def brand_init(svc):
        return {
            "device_brand": svc.device_brand,
            "service_count": 0,
            "total_cost_cents": 0,
            "completed": 0,
            "last_service_at": None,
            "_ratings": [],
        }

    def brand_add(group, svc):
        group["service_count"] += 1
        group["total_cost_cents"] += svc.cost_cents or 0
        if svc.status == SERVICE_COMPLETED:
            group["completed"] += 1
        if group["last_service_at"] is None or svc.received_at > group["last_service_at"]:
            group["last_service_at"] = svc.received_at
        if svc.customer_rating:
            group["_ratings"].append(svc.customer_rating)

    service_history = _group(list(reversed(services)), lambda s: s.device_brand, brand_init, brand_add)
    for group in service_history:
        ratings = group.pop("_ratings")
        group["average_rating"] = round(sum(ratings) / len(ratings), 2) if ratings else None
        group["last_service_at"] = to_utc_z(group["last_service_at"])
    service_history = rank_top(service_history, "service_count")

    year_ago = one_year_before(now)
    monthly_spending = _group(
        [tx for tx in sales if tx.created_at >= year_ago],
        lambda tx: month_key(tx.created_at),
        lambda tx: {"month": month_key(tx.created_at), "total_spent_cents": 0, "count": 0},
        lambda g, tx: g.update(total_spent_cents=g["total_spent_cents"] + (tx.amount_cents or 0), count=g["count"] + 1),
    )
    loyalty_history = _group(
        sales,
        lambda tx: month_key(tx.created_at),
        lambda tx: {"month": month_key(tx.created_at), "points_earned": 0, "count": 0},
        lambda g, tx: g.update(
            points_earned=g["points_earned"] + points_for_amount(tx.amount_cents or 0), count=g["count"] + 1
        ),
    )

    ratings = [s.customer_rating for s in services if s.customer_rating]
    total_spent = customer.total_spent_cents or 0
    ltv = lifetime_value(total_spent, services)

    months_as_customer = max(1, (now - customer.created_at).days // 30) if customer.created_at else 1
    frequency = (
        round((customer.visit_count or 0) / months_as_customer)
        if customer.visit_count and customer.last_purchase_at
        else 0
    )

    last_received = max((s.received_at for s in services), default=None)
    points = customer.loyalty_points or 0

    return {
        "customer": {
            **customer.to_dict(),
            "member_since": to_utc_z(customer.created_at),
            "last_sale_at": to_utc_z(last_sale_at),
            "days_since_last_sale": (now - last_sale_at).days if last_sale_at else None,
            "has_sales": bool(sales),
        },
        "stats": {
            "total_transactions": len(transactions),
            "total_purchases": len(sales),
            "total_services": len(services),
            "completed_services": sum(1 for s in services if s.status == SERVICE_COMPLETED),
            "average_service_rating": round(sum(ratings) / len(ratings), 2) if ratings else 0,
            "lifetime_value_cents": ltv,
        },
        "transactions": [tx.to_dict() for tx in transactions],
        "services": [s.to_dict() for s in services],
        "receivables": [r.to_dict() for r in receivables],
        "purchase_history": purchase_history,
        "service_history": service_history,
        "monthly_spending": monthly_spending,
        "favourite_categories": favourite_categories,
        "loyalty_history": loyalty_history,
        "insights": {
            "purchase_frequency": frequency,
            "average_basket_cents": total_spent // len(sales) if sales else 0,
            "lifetime_value_cents": ltv,
            "risk_level": classify_risk(last_sale_at, now),
            "loyalty_tier": loyalty_tier(points),
            "profitability": profitability(total_spent),
        },
        "recommendations": {
            "suggested_categories": favourite_categories[:3],
            "next_service_reminder": (
                to_utc_z(last_received + timedelta(days=NEXT_SERVICE_AFTER_DAYS)) if last_received else None
            ),
            "loyalty_reward_cents": (points // 100) * 10 * 100 if points >= 100 else None,
        },
    }


def customer_profile(customer_id: int, *, now: datetime | None = None, session=None) -> dict:
    session = session or db.session
    now = now or utcnow()
    return _with_retry(lambda: _build_profile(customer_id, now, session), session=session)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

def _parse_range(start: str | None, end: str | None, now: datetime) -> tuple[datetime, datetime]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end, end_of_day=True) if end else None
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 datetimes")
    end_dt = end_dt or now
    start_dt = start_dt or (end_dt - timedelta(days=30))
    if start_dt > end_dt:
        raise ValidationError("start must be before end")
    return start_dt, end_dt


def _build_revenue_report(start_dt: datetime, end_dt: datetime, group_by: str, session) -> dict:
    if group_by == "day":
        period_expr = func.strftime("%Y-%m-%d", Transaction.created_at)
    elif group_by == "month":
        period_expr = func.strftime("%Y-%m", Transaction.created_at)
    else:
        raise ValidationError("group_by must be day or month")

    revenue_cents = func.coalesce(
        func.sum(case((Transaction.type.in_(REVENUE_TYPES), Transaction.amount_cents), else_=0)), 0
    )
    expense_cents = func.coalesce(
        func.sum(case((Transaction.type == TRANSACTION_EXPENSE, Transaction.amount_cents), else_=0)), 0
    )
    rows = (
        session.query(
            period_expr.label("period"),
            revenue_cents.label("revenue_cents"),
            expense_cents.label("expense_cents"),
            func.count(Transaction.id).label("count"),
        )
        .filter(Transaction.created_at >= start_dt, Transaction.created_at <= end_dt)
        .group_by("period")
        .order_by("period")
        .all()
    )
    return {
        "group_by": group_by,
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "rows": [
            {
                "period": row.period,
                "revenue_cents": int(row.revenue_cents or 0),
                "expense_cents": int(row.expense_cents or 0),
                "net_cents": int(row.revenue_cents or 0) - int(row.expense_cents or 0),
                "count": int(row.count or 0),
            }
            for row in rows
        ],
    }


def revenue_report(
    *,
    start: str | None = None,
    end: str | None = None,
    group_by: str = "day",
    now: datetime | None = None,
    session=None,
) -> dict:
    session = session or db.session
    start_dt, end_dt = _parse_range(start, end, now or utcnow())
    return _with_retry(lambda: _build_revenue_report(start_dt, end_dt, group_by, session), session=session)


def _build_top_report(start_dt: datetime, end_dt: datetime, limit: int, session) -> dict:
    transactions = (
        session.query(Transaction)
        .filter(
            Transaction.type.in_(REVENUE_TYPES),
            Transaction.created_at >= start_dt,
            Transaction.created_at <= end_dt,
        )
        .order_by(Transaction.created_at.asc(), Transaction.id.asc())
        .all()
    )

    categories = _group(
        [tx for tx in transactions if tx.category],
        lambda tx: tx.category,
        lambda tx: {"category": tx.category, "revenue_cents": 0, "count": 0},
        lambda g, tx: g.update(revenue_cents=g["revenue_cents"] + tx.amount_cents, count=g["count"] + 1),
    )

    def customer_key(tx):
        return ("id", tx.customer_id) if tx.customer_id else ("phone", tx.customer_phone)

    customers = _group(
        [tx for tx in transactions if tx.customer_id or tx.customer_phone],
        customer_key,
        lambda tx: {
            "customer_id": tx.customer_id,
            "name": " ".join(p for p in (tx.customer_name, tx.customer_surname) if p),
            "phone": tx.customer_phone,
            "revenue_cents": 0,
            "count": 0,
        },
        lambda g, tx: g.update(revenue_cents=g["revenue_cents"] + tx.amount_cents, count=g["count"] + 1),
    )

    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "products": rank_top(_product_rankings(transactions), "revenue_cents", limit=limit),
        "categories": rank_top(categories, "revenue_cents", limit=limit),
        "customers": rank_top(customers, "revenue_cents", limit=limit),
    }


def top_report(
    *,
    start: str | None = None,
    end: str | None = None,
    limit: int = 10,
    now: datetime | None = None,
    session=None,
) -> dict:
    session = session or db.session
    if limit <= 0:
        raise ValidationError("limit must be greater than 0")
    start_dt, end_dt = _parse_range(start, end, now or utcnow())
    return _with_retry(lambda: _build_top_report(start_dt, end_dt, limit, session), session=session)
