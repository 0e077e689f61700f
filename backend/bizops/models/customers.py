from __future__ import annotations

from ..extensions import db
from bizops.time_utils import to_utc_z, utcnow


class Customer(db.Model):
    """
    Customer master data for tracking purchases and loyalty.

    Phone is the natural matching key for the ledger sync but is NOT unique at
    the store level; lookups take the oldest match.

    Denormalized aggregates (total_spent_cents, visit_count, loyalty_points)
    are only ever incremented by sales. Editing or deleting a sale does not
    reverse them.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_phone", "phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    first_name = db.Column(db.String(128), nullable=False)
    last_name = db.Column(db.String(128), nullable=False, default="")
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)
    visit_count = db.Column(db.Integer, nullable=False, default=0)
    last_visit_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_purchase_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Optional discount card
    card_number = db.Column(db.String(64), nullable=True)
    card_percentage = db.Column(db.Integer, nullable=True)
    card_expiry = db.Column(db.DateTime(timezone=True), nullable=True)
    card_active = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def discount_card_dict(self) -> dict | None:
        if not self.card_number:
            return None
        return {
            "card_number": self.card_number,
            "percentage": self.card_percentage,
            "expiry": to_utc_z(self.card_expiry),
            "active": self.card_active,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "phone": self.phone,
            "email": self.email,
            "loyalty_points": self.loyalty_points,
            "total_spent_cents": self.total_spent_cents,
            "visit_count": self.visit_count,
            "last_visit_at": to_utc_z(self.last_visit_at),
            "last_purchase_at": to_utc_z(self.last_purchase_at),
            "discount_card": self.discount_card_dict(),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
