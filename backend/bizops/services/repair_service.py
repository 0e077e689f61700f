# Overview: Service ticket intake/update and the completion trigger that books service income.

from __future__ import annotations

import logging

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, ServiceTicket, Transaction
from ..models.finance import TRANSACTION_INCOME
from ..models.repairs import (
    SERVICE_CANCELLED,
    SERVICE_COMPLETED,
    SERVICE_IN_PROGRESS,
    SERVICE_PENDING,
    SERVICE_STATUSES,
)
from ..validation import coerce_cents, coerce_choice, coerce_int, coerce_text, require_json_object
from .saga import Saga
from .target_service import refresh_targets_quietly
from .transaction_service import build_entry
from bizops.time_utils import utcnow
"""
Service Ticket State Machine (authoritative)

    pending -> in-progress -> completed
    pending | in-progress -> cancelled
    in-progress -> pending        (sent back to the queue)
    cancelled -> pending          (reopened)
    completed: terminal

Completion trigger:
- Fires only on a real transition INTO completed (previous status !=
  completed) with cost_cents > 0.
- Books one income transaction (category "Service", no stock effect) keyed by
  Transaction.service_id. A second completion of the same ticket finds the
  existing row and books nothing.
- Afterwards every active target is recalculated.
- Saving a ticket that is already completed, or editing any other field,
  never re-triggers.
"""

logger = logging.getLogger(__name__)

SERVICE_INCOME_CATEGORY = "Service"

ALLOWED_TRANSITIONS = {
    SERVICE_PENDING: {SERVICE_IN_PROGRESS, SERVICE_COMPLETED, SERVICE_CANCELLED},
    SERVICE_IN_PROGRESS: {SERVICE_PENDING, SERVICE_COMPLETED, SERVICE_CANCELLED},
    SERVICE_CANCELLED: {SERVICE_PENDING},
    SERVICE_COMPLETED: set(),
}

_EDITABLE_TEXT = {
    "customer_name": 255,
    "customer_phone": 32,
    "device_brand": 128,
    "device_model": 128,
    "serial_number": 128,
    "problem": 5000,
    "solution": 5000,
    "notes": 5000,
}
_EDITABLE_CENTS = ("labor_cost_cents", "parts_cost_cents", "cost_cents")
_EDITABLE = tuple(_EDITABLE_TEXT) + _EDITABLE_CENTS + ("status", "warranty_days", "customer_rating")
_SNAPSHOT = _EDITABLE + ("completed_at",)


def validate_transition(current: str, new: str) -> None:
    if new == current:
        return
    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValidationError(
            f"Cannot move service from {current} to {new}",
            details={"from": current, "to": new},
        )


def get_service(service_id: int, session=None) -> ServiceTicket:
    session = session or db.session
    ticket = session.get(ServiceTicket, service_id)
    if ticket is None:
        raise NotFoundError(f"Service {service_id} not found", details={"service_id": service_id})
    return ticket


def _cost_from(fields: dict, fallback: int = 0) -> int:
    # cost = labor + parts whenever either part is known
    if "labor_cost_cents" in fields or "parts_cost_cents" in fields:
        return fields.get("labor_cost_cents", 0) + fields.get("parts_cost_cents", 0)
    return fields.get("cost_cents", fallback)


def _parse_fields(payload: dict, *, partial: bool) -> dict:
    payload = require_json_object(payload)
    unknown = set(payload) - set(_EDITABLE) - {"customer_id"}
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    fields: dict = {}
    for key, max_length in _EDITABLE_TEXT.items():
        if key in payload:
            fields[key] = coerce_text(key, payload[key], max_length=max_length)
    for key in _EDITABLE_CENTS:
        if key in payload and payload[key] is not None:
            fields[key] = coerce_cents(key, payload[key])
    if "status" in payload:
        fields["status"] = coerce_choice("status", payload["status"], SERVICE_STATUSES)
    if payload.get("warranty_days") is not None:
        fields["warranty_days"] = coerce_int("warranty_days", payload["warranty_days"], minimum=0)
    if payload.get("customer_rating") is not None:
        rating = coerce_int("customer_rating", payload["customer_rating"], minimum=1)
        if rating > 5:
            raise ValidationError("customer_rating must be between 1 and 5")
        fields["customer_rating"] = rating

    if not partial:
        for key in ("customer_name", "device_brand", "problem"):
            if not fields.get(key):
                raise ValidationError(f"{key} is required")
    else:
        for key in ("customer_name", "device_brand", "problem"):
            if key in fields and not fields[key]:
                raise ValidationError(f"{key} cannot be blank")
    return fields


def create_service(payload: dict, session=None) -> ServiceTicket:
    """Intake a device. Always starts pending."""
    session = session or db.session
    payload = require_json_object(payload)

    customer = None
    if payload.get("customer_id") is not None:
        customer = session.get(Customer, coerce_int("customer_id", payload["customer_id"]))
    if customer is not None:
        payload = {
            **payload,
            "customer_name": payload.get("customer_name") or customer.full_name,
            "customer_phone": payload.get("customer_phone") or customer.phone,
        }

    fields = _parse_fields(payload, partial=False)
    if fields.pop("status", SERVICE_PENDING) != SERVICE_PENDING:
        raise ValidationError("new services start as pending")

    now = utcnow()
    ticket = ServiceTicket(
        customer_id=customer.id if customer is not None else None,
        customer_name=fields.pop("customer_name"),
        device_brand=fields.pop("device_brand"),
        device_model=fields.pop("device_model", None) or "",
        problem=fields.pop("problem"),
        cost_cents=_cost_from(fields),
        status=SERVICE_PENDING,
        received_at=now,
        created_at=now,
        **{k: v for k, v in fields.items() if k != "cost_cents"},
    )
    session.add(ticket)
    session.commit()
    logger.info("service created id=%s customer=%s device=%s %s", ticket.id, ticket.customer_name, ticket.device_brand, ticket.device_model)
    return ticket


def service_income_description(ticket: ServiceTicket) -> str:
    device = " ".join(part for part in (ticket.device_brand, ticket.device_model) if part)
    return f"Service income: {ticket.customer_name} - {device} ({ticket.problem})"


def find_service_income(service_id: int, session=None) -> Transaction | None:
    session = session or db.session
    return (
        session.query(Transaction)
        .filter(Transaction.service_id == service_id, Transaction.type == TRANSACTION_INCOME)
        .first()
    )


def should_trigger(previous_status: str, ticket: ServiceTicket) -> bool:
    return (
        previous_status != SERVICE_COMPLETED
        and ticket.status == SERVICE_COMPLETED
        and (ticket.cost_cents or 0) > 0
    )


def _write_fields(service_id: int, fields: dict, session) -> ServiceTicket:
    ticket = get_service(service_id, session=session)
    for key, value in fields.items():
        setattr(ticket, key, value)
    ticket.updated_at = utcnow()
    session.flush()
    return ticket


def update_service(service_id: int, payload: dict, session=None) -> ServiceTicket:
    """
    Apply field edits and status changes; book service income on completion.

    The ticket write and the income insert are separate saga steps. If the
    income cannot be written the ticket edit is undone as well.
    """
    session = session or db.session
    ticket = get_service(service_id, session=session)
    fields = _parse_fields(payload, partial=True)
    fields.pop("customer_id", None)

    previous_status = ticket.status
    validate_transition(previous_status, fields.get("status", previous_status))

    if any(k in fields for k in ("labor_cost_cents", "parts_cost_cents")):
        merged = {
            "labor_cost_cents": fields.get("labor_cost_cents", ticket.labor_cost_cents or 0),
            "parts_cost_cents": fields.get("parts_cost_cents", ticket.parts_cost_cents or 0),
        }
        fields["cost_cents"] = _cost_from(merged)

    if fields.get("status") == SERVICE_COMPLETED and previous_status != SERVICE_COMPLETED:
        fields["completed_at"] = utcnow()
    elif fields.get("status") in (SERVICE_PENDING, SERVICE_IN_PROGRESS, SERVICE_CANCELLED):
        fields["completed_at"] = None

    snapshot = {key: getattr(ticket, key) for key in _SNAPSHOT}
    booked = False

    with Saga("service.update", session=session) as saga:
        ticket = saga.step(
            "service.write",
            lambda: _write_fields(service_id, fields, session),
            compensation=lambda: _write_fields(service_id, snapshot, session),
            entity_type="service",
        )

        if should_trigger(previous_status, ticket):
            if find_service_income(ticket.id, session=session) is not None:
                logger.info("service %s already has its income transaction; not booking again", ticket.id)
            else:
                income = build_entry(
                    type=TRANSACTION_INCOME,
                    amount_cents=ticket.cost_cents,
                    description=service_income_description(ticket),
                    category=SERVICE_INCOME_CATEGORY,
                    customer_id=ticket.customer_id,
                    customer_name=ticket.customer_name,
                    customer_phone=ticket.customer_phone,
                    service_id=ticket.id,
                    session=session,
                )
                saga.step(
                    "income.insert",
                    lambda: _insert_income(income, session),
                    compensation=lambda: _delete_income(ticket.id, session),
                    entity_type="transaction",
                )
                booked = True

    ticket = get_service(service_id, session=session)
    logger.info("service updated id=%s status %s -> %s booked_income=%s", ticket.id, previous_status, ticket.status, booked)
    if booked:
        refresh_targets_quietly(session=session)
    return ticket


def _insert_income(income: Transaction, session) -> Transaction:
    session.add(income)
    session.flush()
    return income


def _delete_income(service_id: int, session) -> None:
    session.query(Transaction).filter(Transaction.service_id == service_id).delete(synchronize_session=False)
