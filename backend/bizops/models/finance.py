from __future__ import annotations

from ..extensions import db
from bizops.time_utils import to_utc_z, utcnow


TRANSACTION_INCOME = "income"
TRANSACTION_EXPENSE = "expense"
TRANSACTION_SALE = "sale"
TRANSACTION_TYPES = (TRANSACTION_INCOME, TRANSACTION_EXPENSE, TRANSACTION_SALE)

# Types counted as revenue everywhere (targets, dashboard, reports)
REVENUE_TYPES = (TRANSACTION_INCOME, TRANSACTION_SALE)

DISCOUNT_FIXED = "fixed"
DISCOUNT_PERCENT = "percent"
DISCOUNT_TYPES = (DISCOUNT_FIXED, DISCOUNT_PERCENT)

PAYMENT_CASH = "cash"
PAYMENT_CREDIT = "credit"
PAYMENT_INSTALLMENT = "installment"
PAYMENT_TYPES = (PAYMENT_CASH, PAYMENT_CREDIT, PAYMENT_INSTALLMENT)


class Transaction(db.Model):
    """
    Financial transaction record (income, expense or sale).

    SALE SHAPE:
    A multi-line sale is stored as ONE row. product_id points at the first
    line's product and quantity at that line's units; the full line detail
    survives only in the description. Stock is adjusted for every line at
    creation time, but edit/delete compensation only sees product_id/quantity.

    quantity is deliberately NOT the total units across all lines. Storing the
    total would make a later edit or delete return every line's units to the
    first product.

    Customer fields are a denormalized snapshot taken at sale time, not a live
    reference; customer_id is set only when a registered customer was chosen.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_type_created", "type", "created_at"),
        db.Index("ix_transactions_customer_phone", "customer_phone"),
        db.UniqueConstraint("service_id", name="uq_transactions_service"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False, index=True)

    # amount_cents is post-discount; original_amount_cents is the subtotal
    amount_cents = db.Column(db.Integer, nullable=False)
    original_amount_cents = db.Column(db.Integer, nullable=False)
    discount_value = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_type = db.Column(db.String(16), nullable=False, default=DISCOUNT_FIXED)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)

    description = db.Column(db.String(500), nullable=True)
    category = db.Column(db.String(128), nullable=True, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(128), nullable=True)
    customer_surname = db.Column(db.String(128), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    payment_type = db.Column(db.String(16), nullable=False, default=PAYMENT_CASH)

    # Idempotency key for service-completion income (one income per ticket)
    service_id = db.Column(db.Integer, db.ForeignKey("service_tickets.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product")
    customer = db.relationship("Customer")

    @property
    def is_revenue(self) -> bool:
        return self.type in REVENUE_TYPES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "original_amount_cents": self.original_amount_cents,
            "discount_value": float(self.discount_value or 0),
            "discount_type": self.discount_type,
            "discount_cents": self.discount_cents,
            "description": self.description,
            "category": self.category,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_surname": self.customer_surname,
            "customer_phone": self.customer_phone,
            "payment_type": self.payment_type,
            "service_id": self.service_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


RECEIVABLE = "receivable"
PAYABLE = "payable"
RECEIVABLE_TYPES = (RECEIVABLE, PAYABLE)

RECEIVABLE_UNPAID = "unpaid"
RECEIVABLE_PAID = "paid"


class Receivable(db.Model):
    """
    Debt owed to (receivable) or by (payable) the business.

    Created automatically for non-cash sales; independent lifecycle afterward.
    """
    __tablename__ = "receivables"
    __table_args__ = (
        db.Index("ix_receivables_type_status", "type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    first_name = db.Column(db.String(128), nullable=True)
    last_name = db.Column(db.String(128), nullable=True)
    phone = db.Column(db.String(32), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(500), nullable=True)
    type = db.Column(db.String(16), nullable=False, default=RECEIVABLE)
    status = db.Column(db.String(16), nullable=False, default=RECEIVABLE_UNPAID, index=True)
    payment_plan = db.Column(db.String(16), nullable=False, default="single")  # single, installment

    transaction_id = db.Column(db.Integer, nullable=True, index=True)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    customer = db.relationship("Customer", backref=db.backref("receivables", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "type": self.type,
            "status": self.status,
            "payment_plan": self.payment_plan,
            "transaction_id": self.transaction_id,
            "due_date": to_utc_z(self.due_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
