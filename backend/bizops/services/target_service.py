# Overview: Target recalculator plus target create/update/list.

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..errors import BizOpsError, NotFoundError, StoreFailure, ValidationError
from ..extensions import db
from ..models import Target, Transaction
from ..models.finance import REVENUE_TYPES
from ..models.targets import PERIODS, TARGET_ACTIVE, TARGET_COMPLETED, TARGET_EXPIRED
from ..validation import coerce_cents, coerce_choice, coerce_text
from .concurrency import keyed_lock
from .periods import period_window
from bizops.time_utils import utcnow
"""
Target Invariants (authoritative)

- Only status='active' targets are recalculated. completed/expired are final.
- current_amount_cents = SUM(amount_cents) of income+sale transactions with
  created_at in [start, end) of the target's period window at `now`.
- Status: current >= target -> completed; else now > end -> expired; else active.
- start_at/end_at are persisted with the amount, pinning the window used.
- Recalculation is idempotent and has no side effects beyond the target row.
  Passes for the same target are serialized in-process; across processes the
  last writer wins, which is safe because every pass computes the same value.
"""

logger = logging.getLogger(__name__)


def sum_revenue_cents(start: datetime, end: datetime, session=None) -> tuple[int, int]:
    """(total cents, transaction count) of revenue in [start, end)."""
    session = session or db.session
    total, count = session.query(
        func.coalesce(func.sum(Transaction.amount_cents), 0),
        func.count(Transaction.id),
    ).filter(
        Transaction.type.in_(REVENUE_TYPES),
        Transaction.created_at >= start,
        Transaction.created_at < end,
    ).one()
    return int(total or 0), int(count or 0)


def evaluate_target(target: Target, *, now: datetime | None = None, session=None) -> Target:
    """Recompute one target in place. Does not commit."""
    now = now or utcnow()
    start, end = period_window(target.period, now)
    current, count = sum_revenue_cents(start, end, session=session)

    if current >= target.target_amount_cents:
        status = TARGET_COMPLETED
    elif now > end:
        status = TARGET_EXPIRED
    else:
        status = TARGET_ACTIVE

    target.current_amount_cents = current
    target.status = status
    target.start_at = start
    target.end_at = end

    logger.debug(
        "target %s (%s): %s transactions, %s/%s cents -> %s",
        target.id, target.title, count, current, target.target_amount_cents, status,
    )
    return target


def recalculate_targets(*, now: datetime | None = None, session=None) -> list[Target]:
    """Recompute every active target. Each target is committed on its own."""
    session = session or db.session
    now = now or utcnow()

    target_ids = [
        row.id for row in session.query(Target.id).filter(Target.status == TARGET_ACTIVE).order_by(Target.id)
    ]
    updated: list[Target] = []

    for target_id in target_ids:
        with keyed_lock("target", target_id):
            target = session.get(Target, target_id, populate_existing=True)
            if target is None or target.status != TARGET_ACTIVE:
                continue
            try:
                evaluate_target(target, now=now, session=session)
            except ValidationError:
                # A stored period outside the allowed set cannot be windowed
                logger.error("target %s has invalid period %r; skipped", target.id, target.period)
                continue
            try:
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise StoreFailure(str(exc), details={"target_id": target_id}) from exc
            updated.append(target)
            if target.status != TARGET_ACTIVE:
                logger.info("target %s (%s) is now %s", target.id, target.title, target.status)

    logger.info("recalculated %s active targets", len(updated))
    return updated


def refresh_targets_quietly(*, now: datetime | None = None, session=None) -> int | None:
    """
    Best-effort pass after a revenue transaction changed.

    The transaction is already committed at this point, so a failure here is
    logged and reported as None instead of failing the caller.
    """
    try:
        return len(recalculate_targets(now=now, session=session))
    except (BizOpsError, SQLAlchemyError):
        (session or db.session).rollback()
        logger.exception("target recalculation failed; targets may be stale until the next pass")
        return None


def get_target(target_id: int, session=None) -> Target:
    session = session or db.session
    target = session.get(Target, target_id)
    if target is None:
        raise NotFoundError(f"Target {target_id} not found", details={"target_id": target_id})
    return target


def _parse_target_fields(payload: dict) -> dict:
    title = coerce_text("title", payload.get("title"), required=True, max_length=255)
    amount = coerce_cents("target_amount_cents", payload.get("target_amount_cents"))
    if amount <= 0:
        raise ValidationError("target_amount_cents must be greater than 0")
    period = coerce_choice("period", payload.get("period"), PERIODS)
    description = coerce_text("description", payload.get("description"), max_length=500)
    return {
        "title": title,
        "target_amount_cents": amount,
        "period": period,
        "description": description,
    }


def create_target(payload: dict, *, now: datetime | None = None, session=None) -> Target:
    session = session or db.session
    fields = _parse_target_fields(payload or {})
    now = now or utcnow()

    target = Target(status=TARGET_ACTIVE, created_at=now, **fields)
    session.add(target)
    evaluate_target(target, now=now, session=session)
    session.commit()
    logger.info("target created id=%s title=%s period=%s", target.id, target.title, target.period)
    return target


def update_target(target_id: int, payload: dict, *, now: datetime | None = None, session=None) -> Target:
    """Edit title/amount/period/description; the window is re-pinned immediately."""
    session = session or db.session
    fields = _parse_target_fields(payload or {})
    now = now or utcnow()

    with keyed_lock("target", target_id):
        target = get_target(target_id, session=session)
        for key, value in fields.items():
            setattr(target, key, value)
        start, end = period_window(target.period, now)
        target.start_at = start
        target.end_at = end
        if target.status == TARGET_ACTIVE:
            evaluate_target(target, now=now, session=session)
        session.commit()
    return target


def list_targets(*, now: datetime | None = None, refresh: bool = True, session=None) -> list[Target]:
    """All targets, newest first. Active ones are recalculated before listing."""
    session = session or db.session
    if refresh:
        recalculate_targets(now=now, session=session)
    return session.query(Target).order_by(Target.created_at.desc(), Target.id.desc()).all()
