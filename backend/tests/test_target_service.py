from datetime import datetime

import pytest

from bizops.errors import NotFoundError, ValidationError
from bizops.models import Target, Transaction
from bizops.services import target_service


NOW = datetime(2025, 6, 15, 12, 0, 0)


@pytest.fixture
def add_tx(db_session):
    def _add(amount_cents, *, type="income", created_at=NOW):
        tx = Transaction(
            type=type,
            amount_cents=amount_cents,
            original_amount_cents=amount_cents,
            created_at=created_at,
        )
        db_session.add(tx)
        db_session.commit()
        return tx
    return _add


def test_monthly_target_completes(db_session, make_target, add_tx):
    target = make_target(target_amount_cents=100000, period="monthly")
    add_tx(40000, created_at=datetime(2025, 6, 2))
    add_tx(70000, type="sale", created_at=datetime(2025, 6, 14))

    target_service.recalculate_targets(now=NOW)

    target = db_session.get(Target, target.id, populate_existing=True)
    assert target.current_amount_cents == 110000
    assert target.status == "completed"
    assert target.start_at == datetime(2025, 6, 1)
    assert target.end_at == datetime(2025, 7, 1)


def test_window_is_half_open_and_ignores_expenses(db_session, make_target, add_tx):
    target = make_target(target_amount_cents=10**8, period="monthly")
    add_tx(100, created_at=datetime(2025, 6, 1))
    add_tx(200, created_at=datetime(2025, 7, 1))
    add_tx(400, created_at=datetime(2025, 5, 31, 23, 59, 59))
    add_tx(800, type="expense")

    target_service.recalculate_targets(now=NOW)

    assert db_session.get(Target, target.id, populate_existing=True).current_amount_cents == 100


def test_recalculation_is_idempotent(db_session, make_target, add_tx):
    target = make_target(target_amount_cents=50000, period="weekly")
    add_tx(12000)

    target_service.recalculate_targets(now=NOW)
    first = db_session.get(Target, target.id, populate_existing=True)
    first_state = (first.current_amount_cents, first.status, first.start_at, first.end_at)

    target_service.recalculate_targets(now=NOW)
    second = db_session.get(Target, target.id, populate_existing=True)

    assert (second.current_amount_cents, second.status, second.start_at, second.end_at) == first_state
    assert first_state[:2] == (12000, "active")


def test_finished_targets_are_left_alone(db_session, make_target, add_tx):
    done = make_target("done", target_amount_cents=1, status="completed")
    expired = make_target("expired", target_amount_cents=1, status="expired")
    add_tx(5000)

    updated = target_service.recalculate_targets(now=NOW)

    assert updated == []
    assert db_session.get(Target, done.id).current_amount_cents == 0
    assert db_session.get(Target, expired.id).current_amount_cents == 0


def test_window_rolls_forward_with_the_clock(db_session, make_target, add_tx):
    target = make_target(target_amount_cents=10**6, period="daily")
    add_tx(500, created_at=datetime(2025, 6, 14, 9, 0))
    add_tx(300, created_at=datetime(2025, 6, 15, 9, 0))

    target_service.evaluate_target(target, now=datetime(2025, 6, 14, 18, 0))
    assert (target.current_amount_cents, target.start_at) == (500, datetime(2025, 6, 14))

    target_service.evaluate_target(target, now=NOW)
    assert (target.current_amount_cents, target.start_at) == (300, datetime(2025, 6, 15))
    assert target.status == "active"


def test_invalid_stored_period_is_skipped(db_session, make_target):
    broken = make_target("broken", period="fortnightly")
    fine = make_target("fine", period="daily")

    updated = target_service.recalculate_targets(now=NOW)

    assert [t.id for t in updated] == [fine.id]
    assert db_session.get(Target, broken.id).status == "active"


def test_create_target_pins_window(db_session, add_tx):
    add_tx(3000)

    target = target_service.create_target(
        {"title": "June", "target_amount_cents": 10000, "period": "monthly"}, now=NOW
    )

    assert target.current_amount_cents == 3000
    assert target.start_at == datetime(2025, 6, 1)
    assert target.progress_pct == 30.0


@pytest.mark.parametrize("payload", [
    {"target_amount_cents": 100, "period": "daily"},
    {"title": "x", "target_amount_cents": 0, "period": "daily"},
    {"title": "x", "target_amount_cents": 100, "period": "hourly"},
])
def test_create_target_validation(db_session, payload):
    with pytest.raises(ValidationError):
        target_service.create_target(payload, now=NOW)


def test_update_target(db_session, make_target, add_tx):
    target = make_target(target_amount_cents=10**6, period="yearly")
    add_tx(2500)

    target_service.update_target(
        target.id, {"title": "Today", "target_amount_cents": 2000, "period": "daily"}, now=NOW
    )

    target = db_session.get(Target, target.id, populate_existing=True)
    assert target.title == "Today"
    assert target.status == "completed"
    assert target.start_at == datetime(2025, 6, 15)


def test_update_missing_target(db_session):
    with pytest.raises(NotFoundError):
        target_service.update_target(99, {"title": "x", "target_amount_cents": 1, "period": "daily"}, now=NOW)


def test_list_targets_refreshes_first(db_session, make_target, add_tx):
    make_target("old", target_amount_cents=10**6)
    newer = make_target("new", target_amount_cents=10**6)
    add_tx(700)

    targets = target_service.list_targets(now=NOW)

    assert targets[0].id == newer.id
    assert {t.current_amount_cents for t in targets} == {700}
