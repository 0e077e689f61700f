import pytest

from bizops.errors import InsufficientStockError, NotFoundError, ValidationError
from bizops.services import stock_service


def test_decrease_updates_stock_and_sales_stats(db_session, make_product):
    product = make_product(stock=5)

    stock_service.decrease(product.id, 3)
    db_session.commit()

    refreshed = stock_service.get_product(product.id, refresh=True)
    assert refreshed.stock == 2
    assert refreshed.total_sold == 3
    assert refreshed.last_sale_at is not None


def test_decrease_refuses_to_go_negative(db_session, make_product):
    product = make_product(stock=2)

    with pytest.raises(InsufficientStockError) as exc_info:
        stock_service.decrease(product.id, 3)

    assert exc_info.value.details == {"product_id": product.id, "requested_quantity": 3, "on_hand": 2}
    db_session.rollback()
    assert stock_service.get_product(product.id, refresh=True).stock == 2


def test_decrease_to_exactly_zero(db_session, make_product):
    product = make_product(stock=4)
    stock_service.decrease(product.id, 4)
    db_session.commit()
    assert stock_service.get_product(product.id, refresh=True).stock == 0


def test_increase_reverts_total_sold_floored_at_zero(db_session, make_product):
    product = make_product(stock=5)
    stock_service.decrease(product.id, 2)
    stock_service.increase(product.id, 5)
    db_session.commit()

    refreshed = stock_service.get_product(product.id, refresh=True)
    assert refreshed.stock == 8
    assert refreshed.total_sold == 0


@pytest.mark.parametrize("qty", [0, -1, True, 1.5])
def test_non_positive_quantity_rejected(db_session, make_product, qty):
    product = make_product(stock=5)
    with pytest.raises(ValidationError):
        stock_service.decrease(product.id, qty)
    with pytest.raises(ValidationError):
        stock_service.increase(product.id, qty)


def test_missing_product(db_session):
    with pytest.raises(NotFoundError):
        stock_service.decrease(999, 1)
    with pytest.raises(NotFoundError):
        stock_service.increase(999, 1)
