# Overview: Append-only workflow event log; records every saga step transition.

from __future__ import annotations

from typing import Optional

from ..extensions import db
from ..models import WorkflowEvent
"""
Workflow Event Log Invariants (authoritative)

- Append-only: no updates/deletes of existing events.
- No domain/business logic here.
- An "applied" event is written in the same commit as the step it records,
  so the log never claims a step that did not persist.
- Failure/compensation events are written in their own commit after the
  failed step has been rolled back.
"""


def append_workflow_event(
    *,
    run_id: str,
    workflow: str,
    step: str,
    status: str,
    entity_type: str | None = None,
    entity_id: int | None = None,
    note: Optional[str] = None,
    session=None,
) -> WorkflowEvent:
    """Stage one event on the session; the caller owns the commit."""
    session = session or db.session
    ev = WorkflowEvent(
        run_id=run_id,
        workflow=workflow,
        step=step,
        status=status,
        entity_type=entity_type,
        entity_id=entity_id,
        note=(note or "")[:500] or None,
    )
    session.add(ev)
    return ev


def list_workflow_events(run_id: str, session=None) -> list[WorkflowEvent]:
    session = session or db.session
    return (
        session.query(WorkflowEvent)
        .filter_by(run_id=run_id)
        .order_by(WorkflowEvent.id.asc())
        .all()
    )


UNRECONCILED_STATUSES = ("not_compensable", "compensation_failed")


def unreconciled_runs(*, limit: int = 20, session=None) -> list[dict]:
    """Runs that left a step in place after failing; newest first."""
    session = session or db.session
    rows = (
        session.query(WorkflowEvent.run_id, WorkflowEvent.workflow, WorkflowEvent.step, WorkflowEvent.occurred_at)
        .filter(WorkflowEvent.status.in_(UNRECONCILED_STATUSES))
        .order_by(WorkflowEvent.id.desc())
        .all()
    )

    runs: dict[str, dict] = {}
    for run_id, workflow, step, occurred_at in rows:
        if run_id not in runs and len(runs) >= limit:
            break
        run = runs.setdefault(run_id, {"run_id": run_id, "workflow": workflow, "steps": [], "occurred_at": occurred_at})
        run["steps"].append(step)
    return list(runs.values())
