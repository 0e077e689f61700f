from __future__ import annotations

from ..extensions import db
from bizops.time_utils import to_utc_z, utcnow


PERIOD_DAILY = "daily"
PERIOD_WEEKLY = "weekly"
PERIOD_MONTHLY = "monthly"
PERIOD_YEARLY = "yearly"
PERIODS = (PERIOD_DAILY, PERIOD_WEEKLY, PERIOD_MONTHLY, PERIOD_YEARLY)

TARGET_ACTIVE = "active"
TARGET_COMPLETED = "completed"
TARGET_EXPIRED = "expired"


class Target(db.Model):
    """
    Recurring sales goal for a fixed period.

    current_amount_cents, status, start_at and end_at are derived by the
    target recalculator and overwritten on every pass; never hand-edit them.
    """
    __tablename__ = "targets"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.String(500), nullable=True)

    target_amount_cents = db.Column(db.Integer, nullable=False)
    current_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    period = db.Column(db.String(16), nullable=False)
    start_at = db.Column(db.DateTime(timezone=True), nullable=True)
    end_at = db.Column(db.DateTime(timezone=True), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=TARGET_ACTIVE, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def progress_pct(self) -> float:
        if not self.target_amount_cents:
            return 0.0
        return round(self.current_amount_cents / self.target_amount_cents * 100.0, 1)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "target_amount_cents": self.target_amount_cents,
            "current_amount_cents": self.current_amount_cents,
            "progress_pct": self.progress_pct,
            "period": self.period,
            "start_at": to_utc_z(self.start_at),
            "end_at": to_utc_z(self.end_at),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
