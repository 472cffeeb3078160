import asyncio

import pytest

from app.services.expiry_sweeper import ExpirySweeper
from app.services.order_service import ActorContext, CustomerIdentity, OrderService
from app.services.stock_ledger import StockLedger

from conftest import add_menu_item, add_user


def place(service, identity, item, quantity=2, method="shopeepay"):
    return service.place_order(identity, [{"menuId": item.id, "quantity": quantity}], method)


class TestSweepExpired:
    def test_scenario_c_expired_order_is_cancelled_and_restocked(
        self, db, service, clock, customer_identity, matcha
    ):
        placed = place(service, customer_identity, matcha)
        assert StockLedger(db).get_stock(matcha.id) == 3

        clock.advance(minutes=16)
        assert service.sweep_expired() == 1

        order = service.store.get_order(placed.order_id)
        assert order.status == "cancelled"
        assert order.cancelled_at == clock()
        assert order.cancel_reason == "expired"
        assert order.cancelled_by is None
        assert order.expiry_time is None
        assert StockLedger(db).get_stock(matcha.id) == 5

    def test_open_window_is_left_alone(self, service, clock, customer_identity, matcha):
        placed = place(service, customer_identity, matcha)

        clock.advance(minutes=14)
        assert service.sweep_expired() == 0

        # justo en el vencimiento todavía no está vencido
        clock.advance(minutes=1)
        assert service.sweep_expired() == 0
        assert service.store.get_order(placed.order_id).status == "awaiting_payment"

    def test_pending_orders_never_expire(self, service, clock, customer_identity, matcha):
        placed = place(service, customer_identity, matcha, method="cash")

        clock.advance(days=2)
        assert service.sweep_expired() == 0
        assert service.store.get_order(placed.order_id).status == "pending"

    def test_sweep_is_idempotent(self, db, service, clock, customer_identity, matcha):
        place(service, customer_identity, matcha)
        clock.advance(minutes=20)

        assert service.sweep_expired() == 1
        assert service.sweep_expired() == 0
        assert StockLedger(db).get_stock(matcha.id) == 5

    def test_failing_order_does_not_stop_the_sweep(
        self, db, service, clock, customer_identity, matcha, monkeypatch
    ):
        first = place(service, customer_identity, matcha, quantity=1)
        clock.advance(minutes=1)
        second = place(service, customer_identity, matcha, quantity=1)
        clock.advance(minutes=20)

        original = service.ledger.restore
        calls = []

        def restore_fails_once(lines):
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("disco lleno")
            return original(lines)

        monkeypatch.setattr(service.ledger, "restore", restore_fails_once)

        assert service.sweep_expired() == 1
        assert service.store.get_order(first.order_id).status == "awaiting_payment"
        assert service.store.get_order(second.order_id).status == "cancelled"
        assert StockLedger(db).get_stock(matcha.id) == 4

        # la pasada siguiente recoge el que falló
        assert service.sweep_expired() == 1
        assert StockLedger(db).get_stock(matcha.id) == 5


def test_order_cancelled_during_sweep_is_skipped(file_session_factory, clock, monkeypatch):
    setup = file_session_factory()
    sari = ActorContext.from_user(add_user(setup, "sari@example.com", "Sari"))
    item_id = add_menu_item(setup, "Matcha", 18000, 5).id
    placed = OrderService(setup, clock=clock).place_order(
        CustomerIdentity(sari.email, sari.name), [{"menuId": item_id, "quantity": 2}], "shopeepay"
    )
    setup.close()
    clock.advance(minutes=16)

    sweeper_db, customer_db = file_session_factory(), file_session_factory()
    sweeper = OrderService(sweeper_db, clock=clock)
    original = sweeper.store.query_orders

    def query_then_customer_cancels(*args, **kwargs):
        orders = original(*args, **kwargs)
        OrderService(customer_db, clock=clock).cancel_order(placed.order_id, sari)
        return orders

    monkeypatch.setattr(sweeper.store, "query_orders", query_then_customer_cancels)

    assert sweeper.sweep_expired() == 0

    check = file_session_factory()
    order = OrderService(check, clock=clock).store.get_order(placed.order_id)
    assert order.status == "cancelled"
    assert order.cancel_reason == "customer"
    assert StockLedger(check).get_stock(item_id) == 5
    for session in (sweeper_db, customer_db, check):
        session.close()


class TestExpirySweeper:
    @pytest.fixture
    def expired_order(self, db, service, clock, customer_identity, matcha):
        placed = place(service, customer_identity, matcha)
        clock.advance(minutes=30)
        return placed

    def test_run_once_uses_its_own_session(self, db, session_factory, clock, expired_order, matcha):
        sweeper = ExpirySweeper(session_factory=session_factory, interval_seconds=1, clock=clock)

        assert sweeper.run_once() == 1

        db.expire_all()
        assert StockLedger(db).get_stock(matcha.id) == 5

    def test_start_and_stop(self, db, session_factory, clock, expired_order):
        sweeper = ExpirySweeper(session_factory=session_factory, interval_seconds=0.05, clock=clock)
        passes = []
        original = sweeper.run_once

        def counting_run_once():
            passes.append(original())
            return passes[-1]

        sweeper.run_once = counting_run_once

        async def scenario():
            task = sweeper.start()
            await asyncio.sleep(0.2)
            await sweeper.stop()
            return task

        task = asyncio.run(scenario())

        assert task.done()
        assert len(passes) >= 2
        assert passes[0] == 1
        assert sum(passes) == 1

    def test_failed_pass_keeps_running(self, session_factory, clock):
        sweeper = ExpirySweeper(session_factory=session_factory, interval_seconds=0.01, clock=clock)
        passes = []

        def broken_run_once():
            passes.append(1)
            raise RuntimeError("sin conexión")

        sweeper.run_once = broken_run_once

        async def scenario():
            sweeper.start()
            await asyncio.sleep(0.1)
            await sweeper.stop()

        asyncio.run(scenario())
        assert len(passes) >= 2
