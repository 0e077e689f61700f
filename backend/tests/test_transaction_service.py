"""
Transaction recorder tests: sale creation, undo-then-redo edits, deletes and
the compensation that runs when a step of the workflow fails.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from bizops.errors import InsufficientStockError, NotFoundError, PartialApplicationError, StoreFailure, ValidationError
from bizops.models import Customer, Product, Receivable, Target, Transaction, WorkflowEvent
from bizops.services import customer_service, transaction_service
from bizops.services.discounts import final_amount
from bizops.services.transaction_service import SaleLine


def _stock(db_session, product_id):
    return db_session.get(Product, product_id, populate_existing=True).stock


def _sale(product, qty=1, **payload):
    return transaction_service.create_transaction({
        "type": "sale",
        "items": [{"product_id": product.id, "quantity": qty}],
        **payload,
    })


class TestCreateSale:
    def test_percent_discount_sale(self, db_session, make_product):
        product = make_product("Helmet", stock=10, sell_price_cents=10000)

        tx = _sale(product, 2, discount=10, discount_type="percent")

        assert tx.type == "sale"
        assert tx.original_amount_cents == 20000
        assert tx.discount_cents == 2000
        assert tx.amount_cents == 18000
        assert tx.quantity == 2
        assert _stock(db_session, product.id) == 8

    def test_percent_discount_is_applied_as_stored(self, db_session, make_product):
        product = make_product(stock=5, sell_price_cents=100000)

        tx = _sale(product, 1, discount="12.345", discount_type="percent")

        stored = db_session.get(Transaction, tx.id, populate_existing=True)
        assert stored.discount_value == Decimal("12.35")
        assert stored.discount_cents == 12350
        assert stored.amount_cents == 87650
        assert final_amount(stored.original_amount_cents, stored.discount_value, "percent") == stored.amount_cents

    def test_multi_line_sale_takes_stock_for_every_line(self, db_session, make_product):
        scooter = make_product("Scooter X", stock=5, sell_price_cents=50000, category="Scooters")
        helmet = make_product("Helmet", stock=5, sell_price_cents=5000, category="Gear")

        tx = transaction_service.record_sale(lines=[
            SaleLine(product_id=scooter.id, quantity=2),
            SaleLine(product_id=helmet.id, quantity=1, unit_price_cents=4000),
        ])

        assert tx.original_amount_cents == 104000
        assert tx.amount_cents == 104000
        # Only the first line is described by product_id/quantity
        assert tx.product_id == scooter.id
        assert tx.quantity == 2
        assert tx.description == "2x Scooter X, 1x Helmet"
        assert tx.category == "Scooters"
        assert _stock(db_session, scooter.id) == 3
        assert _stock(db_session, helmet.id) == 4

    def test_legacy_single_product_payload(self, db_session, make_product):
        product = make_product(stock=3, sell_price_cents=1500)
        tx = transaction_service.create_transaction({"type": "sale", "product_id": product.id, "quantity": 2})
        assert tx.amount_cents == 3000
        assert _stock(db_session, product.id) == 1

    def test_first_cash_sale_creates_customer(self, db_session, make_product):
        product = make_product(stock=5, sell_price_cents=15000)

        _sale(product, customer_name="Grace", customer_surname="Hopper", customer_phone="5551234")

        customer = db_session.query(Customer).filter_by(phone="5551234").one()
        assert customer.visit_count == 1
        assert customer.total_spent_cents == 15000
        assert customer.loyalty_points == 15
        assert db_session.query(Receivable).count() == 0

    def test_credit_sale_creates_unpaid_receivable(self, db_session, make_product):
        product = make_product(stock=5, sell_price_cents=15000)

        tx = _sale(product, payment_type="credit", customer_name="Grace", customer_phone="5551234")

        receivable = db_session.query(Receivable).one()
        assert receivable.type == "receivable"
        assert receivable.status == "unpaid"
        assert receivable.amount_cents == 15000
        assert receivable.transaction_id == tx.id
        assert receivable.payment_plan == "single"
        assert receivable.due_date - receivable.created_at == timedelta(days=30)
        customer = db_session.query(Customer).one()
        assert receivable.customer_id == customer.id

    def test_installment_sale_due_in_a_week(self, db_session, make_product):
        product = make_product(stock=5, sell_price_cents=15000)
        _sale(product, payment_type="installment", customer_name="Grace", customer_phone="5551234")

        receivable = db_session.query(Receivable).one()
        assert receivable.payment_plan == "installment"
        assert receivable.due_date - receivable.created_at == timedelta(days=7)

    def test_returning_customer_accumulates(self, db_session, make_product, make_customer):
        customer = make_customer("Grace", "H", phone="5551234", visit_count=2, total_spent_cents=5000, loyalty_points=5)
        product = make_product(stock=5, sell_price_cents=20000)

        _sale(product, customer_name="Grace", customer_surname="Hopper", customer_phone="5551234")

        customer = db_session.get(Customer, customer.id, populate_existing=True)
        assert customer.visit_count == 3
        assert customer.total_spent_cents == 25000
        assert customer.loyalty_points == 25
        assert customer.last_name == "Hopper"
        assert db_session.query(Customer).count() == 1

    def test_registered_customer_snapshot(self, db_session, make_product, make_customer):
        customer = make_customer("Linus", "T", phone="5559999")
        product = make_product(stock=5)

        tx = _sale(product, customer_id=customer.id, customer_name="ignored")

        assert tx.customer_id == customer.id
        assert tx.customer_name == "Linus"
        assert tx.customer_phone == "5559999"

    def test_registered_customer_sharing_a_phone_gets_the_whole_sale(self, db_session, make_product, make_customer):
        older = make_customer("Mona", "Older", phone="555")
        chosen = make_customer("Nina", "Chosen", phone="555")
        product = make_product(stock=5, sell_price_cents=20000)

        tx = _sale(product, customer_id=chosen.id, payment_type="credit")

        receivable = db_session.query(Receivable).one()
        assert tx.customer_id == chosen.id
        assert receivable.customer_id == chosen.id
        chosen = db_session.get(Customer, chosen.id, populate_existing=True)
        older = db_session.get(Customer, older.id, populate_existing=True)
        assert (chosen.visit_count, chosen.total_spent_cents, chosen.loyalty_points) == (1, 20000, 20)
        assert (older.visit_count, older.total_spent_cents) == (0, 0)
        assert chosen.first_name == "Nina"

    def test_revenue_refreshes_targets(self, db_session, make_product, make_target):
        target = make_target(target_amount_cents=15000, period="monthly")
        product = make_product(stock=5, sell_price_cents=20000)

        _sale(product)

        target = db_session.get(Target, target.id, populate_existing=True)
        assert target.current_amount_cents == 20000
        assert target.status == "completed"

    def test_successful_sale_is_logged_step_by_step(self, db_session, make_product):
        product = make_product(stock=5)
        _sale(product, customer_name="Grace", customer_phone="5551234")

        steps = [(e.step, e.status) for e in db_session.query(WorkflowEvent).order_by(WorkflowEvent.id)]
        assert steps == [
            (f"stock.decrease:{product.id}", "applied"),
            ("transaction.insert", "applied"),
            ("customer.sync", "applied"),
            ("-", "completed"),
        ]


class TestSaleValidation:
    @pytest.mark.parametrize("payload", [
        {"discount": -1},
        {"discount": 101, "discount_type": "percent"},
        {"discount": 10001, "discount_type": "fixed"},
        {"payment_type": "credit"},
        {"payment_type": "installment", "customer_name": "Grace"},
        {"customer_phone": "5551234"},
        {"payment_type": "cheque"},
    ])
    def test_rejected_before_any_mutation(self, db_session, make_product, payload):
        product = make_product(stock=5, sell_price_cents=10000)

        with pytest.raises(ValidationError):
            _sale(product, **payload)

        assert _stock(db_session, product.id) == 5
        assert db_session.query(Transaction).count() == 0
        assert db_session.query(WorkflowEvent).count() == 0

    @pytest.mark.parametrize("qty", [0, -2, "1.5"])
    def test_bad_quantity(self, db_session, make_product, qty):
        product = make_product(stock=5)
        with pytest.raises(ValidationError):
            _sale(product, qty)

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            transaction_service.create_transaction({"type": "sale", "items": [{"product_id": 42, "quantity": 1}]})


class TestSaleFailures:
    def test_insufficient_stock_on_second_line_restores_first(self, db_session, make_product):
        first = make_product("A", stock=5)
        second = make_product("B", stock=1)

        with pytest.raises(InsufficientStockError):
            transaction_service.record_sale(lines=[
                SaleLine(product_id=first.id, quantity=2),
                SaleLine(product_id=second.id, quantity=3),
            ])

        assert _stock(db_session, first.id) == 5
        assert _stock(db_session, second.id) == 1
        assert db_session.query(Transaction).count() == 0
        statuses = [e.status for e in db_session.query(WorkflowEvent).order_by(WorkflowEvent.id)]
        assert statuses == ["applied", "failed", "compensated", "aborted"]

    def test_customer_sync_failure_undoes_sale(self, db_session, make_product, monkeypatch):
        product = make_product(stock=5)

        def boom(**kwargs):
            raise StoreFailure("customers unavailable")

        monkeypatch.setattr(customer_service, "sync_customer_for_sale", boom)

        with pytest.raises(StoreFailure) as exc_info:
            _sale(product, 2, customer_name="Grace", customer_phone="5551234")

        assert not isinstance(exc_info.value, PartialApplicationError)
        assert _stock(db_session, product.id) == 5
        assert db_session.query(Transaction).count() == 0

    def test_receivable_failure_reports_partial_application(self, db_session, make_product, monkeypatch):
        product = make_product(stock=5, sell_price_cents=15000)

        def boom(**kwargs):
            raise StoreFailure("receivables unavailable")

        monkeypatch.setattr(customer_service, "create_sale_receivable", boom)

        with pytest.raises(PartialApplicationError) as exc_info:
            _sale(product, payment_type="credit", customer_name="Grace", customer_phone="5551234")

        details = exc_info.value.details
        assert details["failed_step"] == "receivable.insert"
        assert details["uncompensated"] == ["customer.sync"]
        # Compensable steps were undone; the customer ledger was not
        assert _stock(db_session, product.id) == 5
        assert db_session.query(Transaction).count() == 0
        assert db_session.query(Customer).count() == 1


class TestEntries:
    def test_income_has_no_stock_effect(self, db_session, make_product):
        product = make_product(stock=5)
        tx = transaction_service.create_transaction(
            {"type": "income", "amount_cents": 5000, "description": "Consulting", "category": "Other"}
        )
        assert tx.amount_cents == 5000
        assert tx.original_amount_cents == 5000
        assert tx.product_id is None
        assert _stock(db_session, product.id) == 5

    def test_expense_does_not_count_towards_targets(self, db_session, make_target):
        target = make_target(target_amount_cents=1000)
        transaction_service.create_transaction({"type": "expense", "amount_cents": 5000})
        transaction_service.create_transaction({"type": "income", "amount_cents": 300})

        target = db_session.get(Target, target.id, populate_existing=True)
        assert target.current_amount_cents == 300
        assert target.status == "active"

    def test_back_dated_entry(self, db_session):
        tx = transaction_service.create_transaction(
            {"type": "income", "amount_cents": 100, "created_at": "2024-03-01T10:00:00Z"}
        )
        assert tx.created_at.isoformat() == "2024-03-01T10:00:00"

    def test_unknown_type(self, db_session):
        with pytest.raises(ValidationError):
            transaction_service.create_transaction({"type": "refund", "amount_cents": 100})


class TestUpdate:
    def test_moving_a_sale_to_another_product(self, db_session, make_product):
        a = make_product("A", stock=10)
        b = make_product("B", stock=10)
        bystander = make_product("C", stock=10)
        tx = _sale(a, 3)
        assert _stock(db_session, a.id) == 7

        transaction_service.update_transaction(tx.id, {"product_id": b.id, "quantity": 5})

        assert _stock(db_session, a.id) == 10
        assert _stock(db_session, b.id) == 5
        assert _stock(db_session, bystander.id) == 10
        updated = transaction_service.get_transaction(tx.id)
        assert (updated.product_id, updated.quantity) == (b.id, 5)

    def test_changing_quantity_on_the_same_product(self, db_session, make_product):
        product = make_product(stock=10)
        tx = _sale(product, 3)

        transaction_service.update_transaction(tx.id, {"quantity": 5})

        assert _stock(db_session, product.id) == 5

    def test_edit_order_is_restore_then_apply(self, db_session, make_product):
        product = make_product(stock=3)
        tx = _sale(product, 3)
        assert _stock(db_session, product.id) == 0

        # Only possible because the old 3 units come back first
        transaction_service.update_transaction(tx.id, {"quantity": 2})
        assert _stock(db_session, product.id) == 1

        steps = [
            e.step for e in db_session.query(WorkflowEvent)
            .filter_by(workflow="transaction.update", status="applied")
            .order_by(WorkflowEvent.id)
        ]
        assert steps == [f"stock.restore:{product.id}", f"stock.apply:{product.id}", "transaction.write"]

    def test_text_edit_leaves_stock_and_sales_stats_alone(self, db_session, make_product):
        product = make_product(stock=10)
        tx = _sale(product, 3)
        last_sold = datetime(2020, 1, 1)
        db_session.get(Product, product.id).last_sale_at = last_sold
        db_session.commit()

        transaction_service.update_transaction(tx.id, {"description": "typo fix"})

        product = db_session.get(Product, product.id, populate_existing=True)
        assert (product.stock, product.total_sold, product.last_sale_at) == (7, 3, last_sold)
        steps = [
            e.step for e in db_session.query(WorkflowEvent)
            .filter_by(workflow="transaction.update", status="applied")
        ]
        assert steps == ["transaction.write"]
        assert transaction_service.get_transaction(tx.id).description == "typo fix"

    def test_failed_apply_puts_old_stock_back(self, db_session, make_product):
        a = make_product("A", stock=10)
        b = make_product("B", stock=2)
        tx = _sale(a, 3)

        with pytest.raises(InsufficientStockError):
            transaction_service.update_transaction(tx.id, {"product_id": b.id, "quantity": 5})

        assert _stock(db_session, a.id) == 7
        assert _stock(db_session, b.id) == 2
        unchanged = transaction_service.get_transaction(tx.id)
        assert (unchanged.product_id, unchanged.quantity) == (a.id, 3)

    def test_sale_turned_into_income_releases_stock(self, db_session, make_product):
        product = make_product(stock=10)
        tx = _sale(product, 4)

        updated = transaction_service.update_transaction(tx.id, {"type": "income", "amount_cents": 100})

        assert _stock(db_session, product.id) == 10
        assert updated.product_id is None

    def test_customer_aggregates_are_not_reversed(self, db_session, make_product):
        product = make_product(stock=10, sell_price_cents=20000)
        tx = _sale(product, 1, customer_name="Grace", customer_phone="5551234")

        transaction_service.update_transaction(tx.id, {"quantity": 2})
        transaction_service.delete_transaction(tx.id)

        customer = db_session.query(Customer).one()
        assert customer.visit_count == 1
        assert customer.total_spent_cents == 20000

    def test_expense_turned_into_income_refreshes_targets(self, db_session, make_target):
        target = make_target(target_amount_cents=1000)
        tx = transaction_service.create_transaction({"type": "expense", "amount_cents": 600})
        assert not tx.is_revenue

        updated = transaction_service.update_transaction(tx.id, {"type": "income"})

        assert updated.is_revenue
        target = db_session.get(Target, target.id, populate_existing=True)
        assert target.current_amount_cents == 600

    def test_unknown_field_rejected(self, db_session):
        tx = transaction_service.create_transaction({"type": "income", "amount_cents": 100})
        with pytest.raises(ValidationError):
            transaction_service.update_transaction(tx.id, {"payment_type": "credit"})

    def test_missing_transaction(self, db_session):
        with pytest.raises(NotFoundError):
            transaction_service.update_transaction(404, {"amount_cents": 1})


class TestDelete:
    def test_deleting_a_sale_restores_stock(self, db_session, make_product):
        product = make_product(stock=10)
        tx = _sale(product, 4)

        transaction_service.delete_transaction(tx.id)

        assert _stock(db_session, product.id) == 10
        assert db_session.get(Transaction, tx.id) is None

    def test_deleting_income_leaves_stock_alone(self, db_session, make_product):
        product = make_product(stock=10)
        tx = transaction_service.create_transaction({"type": "income", "amount_cents": 100})

        transaction_service.delete_transaction(tx.id)

        assert _stock(db_session, product.id) == 10

    def test_deleting_sale_of_removed_product(self, db_session, make_product):
        product = make_product(stock=10)
        tx = _sale(product, 4)
        db_session.delete(db_session.get(Product, product.id))
        db_session.commit()

        transaction_service.delete_transaction(tx.id)
        assert db_session.get(Transaction, tx.id) is None

    def test_delete_refreshes_targets(self, db_session, make_product, make_target):
        target = make_target(target_amount_cents=100000)
        product = make_product(stock=10, sell_price_cents=20000)
        tx = _sale(product)

        transaction_service.delete_transaction(tx.id)

        target = db_session.get(Target, target.id, populate_existing=True)
        assert target.current_amount_cents == 0

    def test_missing_transaction(self, db_session):
        with pytest.raises(NotFoundError):
            transaction_service.delete_transaction(404)
