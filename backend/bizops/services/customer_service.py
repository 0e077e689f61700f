# Overview: Customer ledger sync for sales, receivables for non-cash sales, loyalty.

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..config import get_setting
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Receivable, Transaction
from ..validation import coerce_int
from ..models.finance import (
    PAYMENT_CASH,
    PAYMENT_CREDIT,
    PAYMENT_INSTALLMENT,
    RECEIVABLE,
    RECEIVABLE_UNPAID,
)
from bizops.time_utils import utcnow
"""
Customer Ledger Invariants (authoritative)

- A sale that names a registered customer books against that customer.
  Otherwise customers are matched by exact phone; the oldest match wins when
  the store holds duplicates (phone is not unique).
- A sale only ever ADDS to visit_count, total_spent_cents and loyalty_points.
  Editing or deleting the sale later does NOT reverse these aggregates; this
  is a known gap, not something to patch silently here.
- Loyalty points: floor(amount / 10 currency units) per sale, for new and
  returning customers alike (LOYALTY_CENTS_PER_POINT).
- Every non-cash sale produces one unpaid receivable for the sale amount.
"""

logger = logging.getLogger(__name__)


def points_for_amount(amount_cents: int) -> int:
    cents_per_point = int(get_setting("LOYALTY_CENTS_PER_POINT", 1000))
    if amount_cents <= 0:
        return 0
    return amount_cents // cents_per_point


def get_customer(customer_id: int, session=None) -> Customer:
    session = session or db.session
    customer = session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def find_by_phone(phone: str | None, session=None) -> Customer | None:
    if not phone or not phone.strip():
        return None
    session = session or db.session
    return (
        session.query(Customer)
        .filter(Customer.phone == phone.strip())
        .order_by(Customer.id.asc())
        .first()
    )


def sync_customer_for_sale(
    *,
    first_name: str,
    last_name: str | None,
    phone: str,
    amount_cents: int,
    customer: Customer | None = None,
    now: datetime | None = None,
    session=None,
) -> tuple[Customer, bool]:
    """
    Upsert the customer behind a sale. Returns (customer, created).

    A known `customer` skips the phone lookup. Does not commit; runs as one
    saga step.
    """
    session = session or db.session
    now = now or utcnow()
    first_name = (first_name or "").strip()
    last_name = (last_name or "").strip()
    phone = (phone or "").strip()
    if not first_name or not phone:
        raise ValidationError("customer name and phone are required to sync a customer")

    points = points_for_amount(amount_cents)
    if customer is None:
        customer = find_by_phone(phone, session=session)

    if customer is None:
        customer = Customer(
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            loyalty_points=points,
            total_spent_cents=amount_cents,
            visit_count=1,
            last_visit_at=now,
            last_purchase_at=now,
            created_at=now,
        )
        session.add(customer)
        session.flush()
        logger.info("customer created id=%s phone=%s spent=%s", customer.id, phone, amount_cents)
        return customer, True

    customer.visit_count = (customer.visit_count or 0) + 1
    customer.total_spent_cents = (customer.total_spent_cents or 0) + amount_cents
    customer.loyalty_points = (customer.loyalty_points or 0) + points
    customer.last_visit_at = now
    customer.last_purchase_at = now

    # Keep the stored name in step with what the cashier just entered
    if customer.first_name != first_name or (last_name and customer.last_name != last_name):
        customer.first_name = first_name
        if last_name:
            customer.last_name = last_name

    session.flush()
    logger.info("customer updated id=%s visits=%s spent=%s", customer.id, customer.visit_count, customer.total_spent_cents)
    return customer, False


def receivable_due_date(payment_type: str, now: datetime | None = None) -> datetime:
    now = now or utcnow()
    if payment_type == PAYMENT_INSTALLMENT:
        days = int(get_setting("INSTALLMENT_DUE_DAYS", 7))
    else:
        days = int(get_setting("CREDIT_DUE_DAYS", 30))
    return now + timedelta(days=days)


def create_sale_receivable(
    *,
    customer: Customer,
    transaction: Transaction,
    payment_type: str,
    now: datetime | None = None,
    session=None,
) -> Receivable:
    """Unpaid receivable for a credit/installment sale. Does not commit."""
    if payment_type == PAYMENT_CASH:
        raise ValidationError("cash sales do not create receivables")
    if payment_type not in (PAYMENT_CREDIT, PAYMENT_INSTALLMENT):
        raise ValidationError(f"unknown payment type: {payment_type}")

    session = session or db.session
    now = now or utcnow()

    receivable = Receivable(
        customer_id=customer.id,
        first_name=transaction.customer_name or customer.first_name,
        last_name=transaction.customer_surname or customer.last_name,
        phone=transaction.customer_phone or customer.phone,
        amount_cents=transaction.amount_cents,
        description=f"Sale receivable: {transaction.description or ''}".strip(),
        type=RECEIVABLE,
        status=RECEIVABLE_UNPAID,
        payment_plan="installment" if payment_type == PAYMENT_INSTALLMENT else "single",
        transaction_id=transaction.id,
        due_date=receivable_due_date(payment_type, now),
        created_at=now,
    )
    session.add(receivable)
    session.flush()
    logger.info("receivable created id=%s amount=%s customer=%s", receivable.id, receivable.amount_cents, customer.id)
    return receivable


def add_loyalty_points(customer_id: int, points, session=None) -> Customer:
    """Manual loyalty award."""
    session = session or db.session
    points = coerce_int("points", points)
    if points <= 0:
        raise ValidationError("points must be greater than 0")

    customer = get_customer(customer_id, session=session)
    customer.loyalty_points = (customer.loyalty_points or 0) + points
    session.commit()
    return customer


def discount_card_percentage(customer: Customer, now: datetime | None = None) -> int | None:
    """Percentage of an active, unexpired discount card, else None."""
    if not customer.card_number or not customer.card_active:
        return None
    now = now or utcnow()
    if customer.card_expiry is not None and customer.card_expiry < now:
        return None
    return customer.card_percentage
