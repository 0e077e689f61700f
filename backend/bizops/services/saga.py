# Overview: Ordered, compensable workflow steps over independent tables.

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..errors import BizOpsError, PartialApplicationError, StoreFailure
from ..extensions import db
from .ledger_service import append_workflow_event
"""
Saga Semantics (authoritative)

Each step is committed on its own, exactly as if the tables were independent
collections with no shared transaction. That is the guarantee level the rest
of the system is designed around.

- step(): run the action, append an "applied" event, commit. On failure the
  step's own writes are rolled back and the error propagates.
- SQLAlchemy errors are converted to StoreFailure at the step boundary.
- When the saga body raises, completed steps are undone in reverse order
  using their compensation. Steps registered without a compensation (e.g.
  the customer ledger) are reported as uncompensated.
- If every applied step was undone, the original error is re-raised.
  Otherwise PartialApplicationError is raised with the applied/uncompensated
  step names so the divergence can be reconciled by hand.
- Nothing is ever retried.
"""

logger = logging.getLogger(__name__)


@dataclass
class _AppliedStep:
    name: str
    compensation: Optional[Callable[[], Any]]


class Saga:
    """
    Usage:

        with Saga("sale.create") as saga:
            saga.step("stock.decrease", lambda: ..., compensation=lambda: ...)
            tx = saga.step("transaction.insert", insert_tx, compensation=...)
    """

    def __init__(self, workflow: str, *, session=None):
        self.workflow = workflow
        self.session = session or db.session
        self.run_id = str(uuid.uuid4())
        self.applied: list[_AppliedStep] = []
        self.failed_step: str | None = None

    def __enter__(self) -> "Saga":
        logger.info("workflow %s run=%s started", self.workflow, self.run_id)
        return self

    def step(
        self,
        name: str,
        action: Callable[[], Any],
        *,
        compensation: Optional[Callable[[], Any]] = None,
        entity_type: str | None = None,
    ) -> Any:
        try:
            result = action()
            self.session.flush()
            entity_id = getattr(result, "id", None) if entity_type else None
            append_workflow_event(
                run_id=self.run_id,
                workflow=self.workflow,
                step=name,
                status="applied",
                entity_type=entity_type,
                entity_id=entity_id,
                session=self.session,
            )
            self.session.commit()
        except BizOpsError as exc:
            self.session.rollback()
            self.failed_step = name
            self._record(name, "failed", note=exc.message)
            logger.warning("workflow %s run=%s step %s failed: %s", self.workflow, self.run_id, name, exc)
            raise
        except SQLAlchemyError as exc:
            self.session.rollback()
            self.failed_step = name
            self._record(name, "failed", note=str(exc))
            logger.error("workflow %s run=%s step %s store failure: %s", self.workflow, self.run_id, name, exc)
            raise StoreFailure(str(exc), details={"step": name, "run_id": self.run_id}) from exc

        self.applied.append(_AppliedStep(name=name, compensation=compensation))
        logger.info("workflow %s run=%s step %s applied", self.workflow, self.run_id, name)
        return result

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is None:
            self._record("-", "completed")
            logger.info("workflow %s run=%s completed", self.workflow, self.run_id)
            return False

        # The body may have left pending writes behind
        self.session.rollback()
        uncompensated = self._compensate()
        self._record("-", "aborted", note=str(exc))

        if uncompensated:
            logger.error(
                "workflow %s run=%s PARTIALLY APPLIED; manual reconciliation needed: %s",
                self.workflow,
                self.run_id,
                ", ".join(uncompensated),
            )
            raise PartialApplicationError(
                str(exc),
                details={
                    "run_id": self.run_id,
                    "workflow": self.workflow,
                    "failed_step": self.failed_step,
                    "applied": [s.name for s in self.applied],
                    "uncompensated": uncompensated,
                },
            ) from exc
        return False

    def _compensate(self) -> list[str]:
        uncompensated: list[str] = []
        for applied in reversed(self.applied):
            if applied.compensation is None:
                uncompensated.append(applied.name)
                self._record(applied.name, "not_compensable")
                continue
            try:
                applied.compensation()
                self.session.flush()
                append_workflow_event(
                    run_id=self.run_id,
                    workflow=self.workflow,
                    step=applied.name,
                    status="compensated",
                    session=self.session,
                )
                self.session.commit()
                logger.info("workflow %s run=%s step %s compensated", self.workflow, self.run_id, applied.name)
            except (BizOpsError, SQLAlchemyError) as exc:
                self.session.rollback()
                uncompensated.append(applied.name)
                self._record(applied.name, "compensation_failed", note=str(exc))
                logger.error(
                    "workflow %s run=%s compensation of %s failed: %s",
                    self.workflow, self.run_id, applied.name, exc,
                )
        return uncompensated

    def _record(self, step: str, status: str, note: str | None = None) -> None:
        try:
            append_workflow_event(
                run_id=self.run_id,
                workflow=self.workflow,
                step=step,
                status=status,
                note=note,
                session=self.session,
            )
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("could not record workflow event %s/%s (%s)", self.workflow, step, status)
