from __future__ import annotations

from ..extensions import db
from bizops.time_utils import to_utc_z, utcnow


class WorkflowEvent(db.Model):
    """
    Append-only log of multi-step workflow transitions.

    One row per step transition (applied, failed, compensated,
    compensation_failed) plus a terminal row per run (completed, aborted).
    Rows sharing run_id belong to the same workflow execution.
    """
    __tablename__ = "workflow_events"
    __table_args__ = (
        db.Index("ix_workflow_events_run", "run_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    run_id = db.Column(db.String(36), nullable=False)
    workflow = db.Column(db.String(64), nullable=False, index=True)  # e.g., sale.create, transaction.update
    step = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(32), nullable=False, index=True)

    # What it refers to (generic pointer)
    entity_type = db.Column(db.String(64), nullable=True)
    entity_id = db.Column(db.Integer, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    note = db.Column(db.String(500), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "run_id": self.run_id,
            "workflow": self.workflow,
            "step": self.step,
            "status": self.status,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
        }
