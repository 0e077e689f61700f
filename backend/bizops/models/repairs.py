from __future__ import annotations

from ..extensions import db
from bizops.time_utils import to_utc_z, utcnow


SERVICE_PENDING = "pending"
SERVICE_IN_PROGRESS = "in-progress"
SERVICE_COMPLETED = "completed"
SERVICE_CANCELLED = "cancelled"
SERVICE_STATUSES = (SERVICE_PENDING, SERVICE_IN_PROGRESS, SERVICE_COMPLETED, SERVICE_CANCELLED)


class ServiceTicket(db.Model):
    """
    Repair/service ticket for a customer's device.

    Lifecycle: pending -> in-progress -> completed | cancelled.
    Entering "completed" with a positive cost books exactly one income
    transaction (see services/repair_service.py).
    """
    __tablename__ = "service_tickets"
    __table_args__ = (
        db.Index("ix_service_tickets_status_received", "status", "received_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=True, index=True)

    device_brand = db.Column(db.String(128), nullable=False)
    device_model = db.Column(db.String(128), nullable=False, default="")
    serial_number = db.Column(db.String(128), nullable=True)

    problem = db.Column(db.Text, nullable=False)
    solution = db.Column(db.Text, nullable=True)

    labor_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    parts_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=SERVICE_PENDING, index=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    warranty_days = db.Column(db.Integer, nullable=False, default=30)
    customer_rating = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    customer = db.relationship("Customer", backref=db.backref("service_tickets", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "device_brand": self.device_brand,
            "device_model": self.device_model,
            "serial_number": self.serial_number,
            "problem": self.problem,
            "solution": self.solution,
            "labor_cost_cents": self.labor_cost_cents,
            "parts_cost_cents": self.parts_cost_cents,
            "cost_cents": self.cost_cents,
            "status": self.status,
            "received_at": to_utc_z(self.received_at),
            "completed_at": to_utc_z(self.completed_at),
            "warranty_days": self.warranty_days,
            "customer_rating": self.customer_rating,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
