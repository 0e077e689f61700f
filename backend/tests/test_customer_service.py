from datetime import datetime, timedelta

import pytest

from bizops.errors import NotFoundError, ValidationError
from bizops.models import Customer, Transaction
from bizops.services import customer_service


NOW = datetime(2025, 6, 15, 12, 0, 0)


@pytest.mark.parametrize("amount,points", [(0, 0), (999, 0), (1000, 1), (15000, 15), (15999, 15), (-500, 0)])
def test_points_for_amount(app, amount, points):
    assert customer_service.points_for_amount(amount) == points


def test_new_customer(db_session):
    customer, created = customer_service.sync_customer_for_sale(
        first_name=" Grace ", last_name="Hopper", phone=" 5551234 ", amount_cents=15000, now=NOW
    )
    db_session.commit()

    assert created is True
    assert customer.phone == "5551234"
    assert customer.first_name == "Grace"
    assert customer.visit_count == 1
    assert customer.total_spent_cents == 15000
    assert customer.loyalty_points == 15
    assert customer.last_purchase_at == NOW
    assert customer.last_visit_at == NOW


def test_oldest_duplicate_phone_wins(db_session, make_customer):
    older = make_customer("First", phone="5551234")
    make_customer("Second", phone="5551234")

    customer, created = customer_service.sync_customer_for_sale(
        first_name="First", last_name="", phone="5551234", amount_cents=1000, now=NOW
    )

    assert created is False
    assert customer.id == older.id


def test_known_customer_skips_the_phone_lookup(db_session, make_customer):
    make_customer("First", phone="5551234")
    second = make_customer("Second", phone="5551234")

    customer, created = customer_service.sync_customer_for_sale(
        first_name="Second", last_name="Lovelace", phone="5551234", amount_cents=2000,
        customer=second, now=NOW,
    )

    assert created is False
    assert customer.id == second.id
    assert customer.visit_count == 1
    assert customer.total_spent_cents == 2000


def test_sync_requires_name_and_phone(db_session):
    with pytest.raises(ValidationError):
        customer_service.sync_customer_for_sale(first_name="", last_name="", phone="1", amount_cents=1)
    with pytest.raises(ValidationError):
        customer_service.sync_customer_for_sale(first_name="A", last_name="", phone="  ", amount_cents=1)


def test_receivable_due_dates(app):
    assert customer_service.receivable_due_date("credit", NOW) == NOW + timedelta(days=30)
    assert customer_service.receivable_due_date("installment", NOW) == NOW + timedelta(days=7)


def test_cash_sale_has_no_receivable(db_session, make_customer):
    customer = make_customer()
    tx = Transaction(type="sale", amount_cents=100, original_amount_cents=100, payment_type="cash")
    with pytest.raises(ValidationError):
        customer_service.create_sale_receivable(customer=customer, transaction=tx, payment_type="cash")


def test_manual_loyalty_award(db_session, make_customer):
    customer = make_customer(loyalty_points=10)

    customer_service.add_loyalty_points(customer.id, 40)

    assert db_session.get(Customer, customer.id, populate_existing=True).loyalty_points == 50


@pytest.mark.parametrize("points", [0, -5, "ten", 2.5])
def test_manual_loyalty_rejects_bad_points(db_session, make_customer, points):
    customer = make_customer()
    with pytest.raises(ValidationError):
        customer_service.add_loyalty_points(customer.id, points)


def test_manual_loyalty_unknown_customer(db_session):
    with pytest.raises(NotFoundError):
        customer_service.add_loyalty_points(12345, 5)


def test_discount_card_percentage(db_session, make_customer):
    customer = make_customer(
        card_number="CARD-1", card_percentage=15, card_active=True, card_expiry=NOW + timedelta(days=1)
    )
    assert customer_service.discount_card_percentage(customer, NOW) == 15
    assert customer_service.discount_card_percentage(customer, NOW + timedelta(days=2)) is None

    customer.card_active = False
    assert customer_service.discount_card_percentage(customer, NOW) is None
