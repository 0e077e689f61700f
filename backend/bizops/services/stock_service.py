# Overview: Stock ledger; the only writer of Product.stock.

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import case, update

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from bizops.time_utils import utcnow
"""
Stock Ledger Invariants (authoritative)

- Product.stock never goes negative.
- decrease() is a single conditional UPDATE ("... WHERE stock >= qty"), so two
  concurrent sales of the last unit cannot both succeed; the loser gets
  InsufficientStockError and nothing is written.
- increase() is the compensation for decrease() and also reverts total_sold
  (floored at 0).
- Neither call commits; the caller (a saga step) owns the commit.
"""

logger = logging.getLogger(__name__)


def _require_positive(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    return quantity


def get_product(product_id: int, *, refresh: bool = False, session=None) -> Product:
    session = session or db.session
    product = session.get(Product, product_id, populate_existing=refresh)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def decrease(product_id: int, quantity: int, *, now: datetime | None = None, session=None) -> Product:
    """Take quantity units out of stock, or raise InsufficientStockError."""
    session = session or db.session
    quantity = _require_positive(quantity)
    now = now or utcnow()

    result = session.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(
            stock=Product.stock - quantity,
            total_sold=Product.total_sold + quantity,
            last_sale_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session="fetch")
    )

    if result.rowcount == 0:
        product = get_product(product_id, refresh=True, session=session)
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}",
            details={
                "product_id": product_id,
                "requested_quantity": quantity,
                "on_hand": product.stock,
            },
        )

    product = get_product(product_id, refresh=True, session=session)
    logger.debug("stock decreased product=%s qty=%s remaining=%s", product_id, quantity, product.stock)
    return product


def increase(product_id: int, quantity: int, *, session=None) -> Product:
    """Put quantity units back (edit/delete compensation)."""
    session = session or db.session
    quantity = _require_positive(quantity)

    result = session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(
            stock=Product.stock + quantity,
            total_sold=case(
                (Product.total_sold >= quantity, Product.total_sold - quantity),
                else_=0,
            ),
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session="fetch")
    )

    if result.rowcount == 0:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})

    product = get_product(product_id, refresh=True, session=session)
    logger.debug("stock increased product=%s qty=%s now=%s", product_id, quantity, product.stock)
    return product


def product_exists(product_id: int, session=None) -> bool:
    session = session or db.session
    return session.get(Product, product_id) is not None
