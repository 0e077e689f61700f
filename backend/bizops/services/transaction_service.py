# Overview: Transaction recorder; sale/income/expense create, edit and delete with stock compensation.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Product, Receivable, Transaction
from ..models.finance import (
    DISCOUNT_FIXED,
    DISCOUNT_PERCENT,
    DISCOUNT_TYPES,
    PAYMENT_CASH,
    PAYMENT_TYPES,
    REVENUE_TYPES,
    TRANSACTION_EXPENSE,
    TRANSACTION_INCOME,
    TRANSACTION_SALE,
    TRANSACTION_TYPES,
)
from ..validation import (
    coerce_cents,
    coerce_choice,
    coerce_datetime,
    coerce_decimal,
    coerce_int,
    coerce_text,
    require_json_object,
)
from . import customer_service, stock_service
from .discounts import discount_amount, final_amount
from .saga import Saga
from .target_service import refresh_targets_quietly
from bizops.time_utils import utcnow
"""
Transaction Recorder Invariants (authoritative)

Create(sale):
- subtotal = SUM(unit_price * qty) over all lines; amount = discounted subtotal.
- ONE transaction row; product_id/quantity describe the FIRST line only.
- Stock is decreased for EVERY line, before the row is written.
- Customer ledger sync runs when a phone is given; non-cash sales also
  create an unpaid receivable (and therefore require name + phone).

Update:
- Undo-then-redo: restore the old sale's stock, then take the new sale's
  stock, then write the row. Each stock step is compensable, so a failure
  leaves stock as it was before the edit.

Delete:
- Restore stock first, then delete the row.

Create/update/delete of revenue (income, sale) rows trigger a best-effort
target recalculation after the workflow commits.

Customer aggregates are never reversed by update/delete (see customer_service).
"""

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaleLine:
    product_id: int
    quantity: int
    unit_price_cents: int | None = None


@dataclass(frozen=True)
class _PricedLine:
    product: Product
    quantity: int
    unit_price_cents: int

    @property
    def total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass(frozen=True)
class _CustomerSnapshot:
    customer_id: int | None
    first_name: str | None
    last_name: str | None
    phone: str | None


def get_transaction(transaction_id: int, session=None) -> Transaction:
    session = session or db.session
    tx = session.get(Transaction, transaction_id)
    if tx is None:
        raise NotFoundError(f"Transaction {transaction_id} not found", details={"transaction_id": transaction_id})
    return tx


def _resolve_customer(
    *,
    customer_id,
    customer_name,
    customer_surname,
    customer_phone,
    session,
) -> _CustomerSnapshot:
    # A registered customer overrides the typed-in snapshot; an unknown id is ignored
    if customer_id is not None:
        customer = session.get(Customer, coerce_int("customer_id", customer_id))
        if customer is not None:
            return _CustomerSnapshot(
                customer_id=customer.id,
                first_name=customer.first_name,
                last_name=customer.last_name,
                phone=customer.phone,
            )
        logger.info("customer_id %s not found; using typed-in customer details", customer_id)

    return _CustomerSnapshot(
        customer_id=None,
        first_name=coerce_text("customer_name", customer_name, max_length=128),
        last_name=coerce_text("customer_surname", customer_surname, max_length=128),
        phone=coerce_text("customer_phone", customer_phone, max_length=32),
    )


def _price_lines(lines: list[SaleLine], session) -> list[_PricedLine]:
    if not lines:
        raise ValidationError("a sale needs at least one line")

    priced = []
    for line in lines:
        quantity = coerce_int("quantity", line.quantity)
        if quantity <= 0:
            raise ValidationError("quantity must be greater than 0")
        product = stock_service.get_product(coerce_int("product_id", line.product_id), session=session)
        if line.unit_price_cents is None:
            unit_price = product.sell_price_cents
        else:
            unit_price = coerce_cents("unit_price_cents", line.unit_price_cents)
        priced.append(_PricedLine(product=product, quantity=quantity, unit_price_cents=unit_price))
    return priced


def _validate_discount(subtotal_cents: int, discount: Decimal, discount_type: str) -> None:
    if discount < 0:
        raise ValidationError("discount must be >= 0")
    if discount_type == DISCOUNT_PERCENT and discount > 100:
        raise ValidationError("percent discount cannot exceed 100")
    if discount_type == DISCOUNT_FIXED and discount > subtotal_cents:
        raise ValidationError("fixed discount cannot exceed the subtotal")


def _line_summary(priced: list[_PricedLine]) -> str:
    return ", ".join(f"{line.quantity}x {line.product.name}" for line in priced)


def record_sale(
    *,
    lines: list[SaleLine],
    discount=0,
    discount_type: str = DISCOUNT_FIXED,
    payment_type: str = PAYMENT_CASH,
    description: str | None = None,
    category: str | None = None,
    customer_id=None,
    customer_name: str | None = None,
    customer_surname: str | None = None,
    customer_phone: str | None = None,
    created_at: datetime | None = None,
    session=None,
) -> Transaction:
    """Record a sale: stock for every line, one transaction, customer ledger, receivable."""
    session = session or db.session
    now = utcnow()

    # Validation happens before any mutation
    discount_type = coerce_choice("discount_type", discount_type or DISCOUNT_FIXED, DISCOUNT_TYPES)
    payment_type = coerce_choice("payment_type", payment_type or PAYMENT_CASH, PAYMENT_TYPES)
    discount_dec = coerce_decimal("discount", discount if discount is not None else 0)

    priced = _price_lines(lines, session)
    subtotal = sum(line.total_cents for line in priced)
    _validate_discount(subtotal, discount_dec, discount_type)
    # Apply exactly what the discount_value column can store
    discount_dec = discount_dec.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    amount = final_amount(subtotal, discount_dec, discount_type)
    cut = discount_amount(subtotal, discount_dec, discount_type)

    customer = _resolve_customer(
        customer_id=customer_id,
        customer_name=customer_name,
        customer_surname=customer_surname,
        customer_phone=customer_phone,
        session=session,
    )
    if customer.phone and not customer.first_name:
        raise ValidationError("customer_name is required when customer_phone is given")
    if payment_type != PAYMENT_CASH and not (customer.first_name and customer.phone):
        raise ValidationError("customer name and phone are required for credit and installment sales")

    registered = session.get(Customer, customer.customer_id) if customer.customer_id is not None else None

    primary = priced[0]
    tx = Transaction(
        type=TRANSACTION_SALE,
        amount_cents=amount,
        original_amount_cents=subtotal,
        discount_value=discount_dec,
        discount_type=discount_type,
        discount_cents=cut,
        description=coerce_text("description", description, max_length=500) or _line_summary(priced),
        category=coerce_text("category", category, max_length=128) or primary.product.category,
        product_id=primary.product.id,
        quantity=primary.quantity,
        customer_id=customer.customer_id,
        customer_name=customer.first_name,
        customer_surname=customer.last_name,
        customer_phone=customer.phone,
        payment_type=payment_type,
        created_at=coerce_datetime("created_at", created_at) or now,
    )

    with Saga("sale.create", session=session) as saga:
        for line in priced:
            product_id, quantity = line.product.id, line.quantity
            saga.step(
                f"stock.decrease:{product_id}",
                lambda p=product_id, q=quantity: stock_service.decrease(p, q, now=now, session=session),
                compensation=lambda p=product_id, q=quantity: stock_service.increase(p, q, session=session),
            )

        saga.step(
            "transaction.insert",
            lambda: _insert(tx, session),
            compensation=lambda: _delete_by_id(tx.id, session),
            entity_type="transaction",
        )

        if customer.phone:
            synced, _created = saga.step(
                "customer.sync",
                lambda: customer_service.sync_customer_for_sale(
                    first_name=customer.first_name,
                    last_name=customer.last_name,
                    phone=customer.phone,
                    amount_cents=amount,
                    customer=registered,
                    now=now,
                    session=session,
                ),
            )
            if payment_type != PAYMENT_CASH:
                saga.step(
                    "receivable.insert",
                    lambda: customer_service.create_sale_receivable(
                        customer=synced,
                        transaction=tx,
                        payment_type=payment_type,
                        now=now,
                        session=session,
                    ),
                    compensation=lambda: _delete_receivables_for(tx.id, session),
                    entity_type="receivable",
                )

    logger.info(
        "sale recorded id=%s lines=%s subtotal=%s amount=%s payment=%s",
        tx.id, len(priced), subtotal, amount, payment_type,
    )
    refresh_targets_quietly(session=session)
    return tx


def build_entry(
    *,
    type: str,
    amount_cents,
    description: str | None = None,
    category: str | None = None,
    customer_id=None,
    customer_name: str | None = None,
    customer_surname: str | None = None,
    customer_phone: str | None = None,
    service_id: int | None = None,
    created_at=None,
    session=None,
) -> Transaction:
    """Validated, unsaved income/expense row (no stock or customer effect)."""
    session = session or db.session
    tx_type = coerce_choice("type", type, (TRANSACTION_INCOME, TRANSACTION_EXPENSE))
    amount = coerce_cents("amount_cents", amount_cents)
    customer = _resolve_customer(
        customer_id=customer_id,
        customer_name=customer_name,
        customer_surname=customer_surname,
        customer_phone=customer_phone,
        session=session,
    )
    return Transaction(
        type=tx_type,
        amount_cents=amount,
        original_amount_cents=amount,
        discount_value=0,
        discount_type=DISCOUNT_FIXED,
        discount_cents=0,
        description=coerce_text("description", description, max_length=500),
        category=coerce_text("category", category, max_length=128),
        product_id=None,
        quantity=1,
        customer_id=customer.customer_id,
        customer_name=customer.first_name,
        customer_surname=customer.last_name,
        customer_phone=customer.phone,
        payment_type=PAYMENT_CASH,
        service_id=service_id,
        created_at=coerce_datetime("created_at", created_at) or utcnow(),
    )


def record_entry(*, refresh_targets: bool = True, session=None, **fields) -> Transaction:
    """Record a plain income/expense transaction."""
    session = session or db.session
    tx = build_entry(session=session, **fields)

    with Saga(f"{tx.type}.create", session=session) as saga:
        saga.step("transaction.insert", lambda: _insert(tx, session), entity_type="transaction")

    logger.info("%s recorded id=%s amount=%s", tx.type, tx.id, tx.amount_cents)
    if refresh_targets and tx.is_revenue:
        refresh_targets_quietly(session=session)
    return tx


def parse_sale_lines(payload: dict) -> list[SaleLine]:
    """`items` list, or a single product_id/quantity pair at the top level."""
    items = payload.get("items")
    if items is None:
        if payload.get("product_id") is None:
            raise ValidationError("a sale needs items or product_id")
        items = [{
            "product_id": payload.get("product_id"),
            "quantity": payload.get("quantity", 1),
            "unit_price_cents": payload.get("unit_price_cents"),
        }]
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    lines = []
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError("each item must be an object")
        lines.append(SaleLine(
            product_id=coerce_int("product_id", item.get("product_id")),
            quantity=coerce_int("quantity", item.get("quantity", 1)),
            unit_price_cents=item.get("unit_price_cents"),
        ))
    return lines


_CUSTOMER_KEYS = ("customer_id", "customer_name", "customer_surname", "customer_phone")


def create_transaction(payload: dict, session=None) -> Transaction:
    """Entry point for the API: dispatch on payload['type']."""
    payload = require_json_object(payload)
    tx_type = coerce_choice("type", payload.get("type"), TRANSACTION_TYPES)
    customer_fields = {k: payload.get(k) for k in _CUSTOMER_KEYS}

    if tx_type == TRANSACTION_SALE:
        return record_sale(
            lines=parse_sale_lines(payload),
            discount=payload.get("discount", 0),
            discount_type=payload.get("discount_type", DISCOUNT_FIXED),
            payment_type=payload.get("payment_type", PAYMENT_CASH),
            description=payload.get("description"),
            category=payload.get("category"),
            created_at=payload.get("created_at"),
            session=session,
            **customer_fields,
        )

    return record_entry(
        type=tx_type,
        amount_cents=payload.get("amount_cents"),
        description=payload.get("description"),
        category=payload.get("category"),
        created_at=payload.get("created_at"),
        session=session,
        **customer_fields,
    )


_UPDATABLE = (
    "type", "amount_cents", "original_amount_cents", "description", "category",
    "product_id", "quantity", "customer_name", "customer_surname", "customer_phone",
)


def _parse_update(existing: Transaction, payload: dict, session) -> dict:
    """Merge payload over the existing row and validate the result."""
    payload = require_json_object(payload)
    unknown = set(payload) - set(_UPDATABLE)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    merged = {key: getattr(existing, key) for key in _UPDATABLE}
    merged.update(payload)

    fields = {
        "type": coerce_choice("type", merged["type"], TRANSACTION_TYPES),
        "amount_cents": coerce_cents("amount_cents", merged["amount_cents"]),
        "description": coerce_text("description", merged["description"], max_length=500),
        "category": coerce_text("category", merged["category"], max_length=128),
        "customer_name": coerce_text("customer_name", merged["customer_name"], max_length=128),
        "customer_surname": coerce_text("customer_surname", merged["customer_surname"], max_length=128),
        "customer_phone": coerce_text("customer_phone", merged["customer_phone"], max_length=32),
    }

    if "original_amount_cents" in payload:
        fields["original_amount_cents"] = coerce_cents("original_amount_cents", payload["original_amount_cents"])
    elif "amount_cents" in payload and existing.discount_cents == 0:
        fields["original_amount_cents"] = fields["amount_cents"]

    product_id = merged["product_id"]
    if fields["type"] == TRANSACTION_SALE:
        if product_id is not None:
            product_id = coerce_int("product_id", product_id)
            stock_service.get_product(product_id, session=session)
        quantity = coerce_int("quantity", merged["quantity"] if merged["quantity"] is not None else 1)
        if quantity <= 0:
            raise ValidationError("quantity must be greater than 0")
    else:
        product_id, quantity = None, 1
    fields["product_id"] = product_id
    fields["quantity"] = quantity
    return fields


def _stock_effect(tx_type: str, product_id: int | None, quantity: int) -> tuple[int, int] | None:
    if tx_type == TRANSACTION_SALE and product_id is not None:
        return product_id, quantity
    return None


def update_transaction(transaction_id: int, payload: dict, session=None) -> Transaction:
    """Edit a transaction: compensate the old stock effect, apply the new one, write the row."""
    session = session or db.session
    tx = get_transaction(transaction_id, session=session)
    fields = _parse_update(tx, payload, session)

    old_effect = _stock_effect(tx.type, tx.product_id, tx.quantity)
    new_effect = _stock_effect(fields["type"], fields["product_id"], fields["quantity"])
    touches_revenue = tx.is_revenue or fields["type"] in REVENUE_TYPES

    if old_effect is not None and old_effect == new_effect:
        # Same product and units: stock and sales stats stay as they are
        old_effect = new_effect = None

    if old_effect and not stock_service.product_exists(old_effect[0], session=session):
        logger.warning(
            "transaction %s: product %s is gone; its %s units cannot be restored",
            tx.id, old_effect[0], old_effect[1],
        )
        old_effect = None

    with Saga("transaction.update", session=session) as saga:
        if old_effect:
            pid, qty = old_effect
            saga.step(
                f"stock.restore:{pid}",
                lambda: stock_service.increase(pid, qty, session=session),
                compensation=lambda: stock_service.decrease(pid, qty, session=session),
            )
        if new_effect:
            npid, nqty = new_effect
            saga.step(
                f"stock.apply:{npid}",
                lambda: stock_service.decrease(npid, nqty, session=session),
                compensation=lambda: stock_service.increase(npid, nqty, session=session),
            )
        saga.step(
            "transaction.write",
            lambda: _apply_fields(transaction_id, fields, session),
            entity_type="transaction",
        )

    tx = get_transaction(transaction_id, session=session)
    logger.info("transaction updated id=%s old_effect=%s new_effect=%s", tx.id, old_effect, new_effect)
    if touches_revenue:
        refresh_targets_quietly(session=session)
    return tx


def delete_transaction(transaction_id: int, session=None) -> None:
    """Delete a transaction, restoring stock for a sale first."""
    session = session or db.session
    tx = get_transaction(transaction_id, session=session)
    effect = _stock_effect(tx.type, tx.product_id, tx.quantity)
    was_revenue = tx.is_revenue

    if effect and not stock_service.product_exists(effect[0], session=session):
        logger.warning("transaction %s: product %s is gone; deleting without stock restore", tx.id, effect[0])
        effect = None

    with Saga("transaction.delete", session=session) as saga:
        if effect:
            pid, qty = effect
            saga.step(
                f"stock.restore:{pid}",
                lambda: stock_service.increase(pid, qty, session=session),
                compensation=lambda: stock_service.decrease(pid, qty, session=session),
            )
        saga.step("transaction.delete", lambda: _delete_by_id(transaction_id, session))

    logger.info("transaction deleted id=%s restored=%s", transaction_id, effect)
    if was_revenue:
        refresh_targets_quietly(session=session)


def _insert(tx: Transaction, session) -> Transaction:
    session.add(tx)
    session.flush()
    return tx


def _apply_fields(transaction_id: int, fields: dict, session) -> Transaction:
    tx = get_transaction(transaction_id, session=session)
    for key, value in fields.items():
        setattr(tx, key, value)
    tx.updated_at = utcnow()
    session.flush()
    return tx


def _delete_by_id(transaction_id: int, session) -> None:
    tx = session.get(Transaction, transaction_id)
    if tx is not None:
        session.delete(tx)
        session.flush()


def _delete_receivables_for(transaction_id: int, session) -> None:
    session.query(Receivable).filter(Receivable.transaction_id == transaction_id).delete(
        synchronize_session=False
    )
