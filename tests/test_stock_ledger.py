import pytest

from app.core.errors import InsufficientStockError, NotFoundError
from app.services.stock_ledger import StockLedger, StockLine

from conftest import add_menu_item


class TestAdjustStock:
    def test_get_stock(self, db, matcha):
        assert StockLedger(db).get_stock(matcha.id) == 5

    def test_get_stock_unknown_item(self, db):
        with pytest.raises(NotFoundError):
            StockLedger(db).get_stock(999)

    def test_adjust_returns_new_value(self, db, matcha):
        ledger = StockLedger(db)
        assert ledger.adjust_stock(matcha.id, -2) == 3
        assert ledger.adjust_stock(matcha.id, 4) == 7

    def test_adjust_below_zero_is_rejected(self, db, matcha):
        ledger = StockLedger(db)
        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.adjust_stock(matcha.id, -6)

        assert exc_info.value.shortages == [
            {"menuId": matcha.id, "name": "Matcha", "requested": 6, "available": 5}
        ]
        assert ledger.get_stock(matcha.id) == 5

    def test_adjust_to_exactly_zero(self, db, matcha):
        assert StockLedger(db).adjust_stock(matcha.id, -5) == 0

    def test_adjust_unknown_item(self, db):
        with pytest.raises(NotFoundError):
            StockLedger(db).adjust_stock(999, 1)


class TestReserve:
    def test_reserve_decrements_every_line(self, db, matcha, croissant):
        ledger = StockLedger(db)
        ledger.reserve([StockLine(matcha.id, 3), StockLine(croissant.id, 2)])

        assert ledger.get_stock(matcha.id) == 2
        assert ledger.get_stock(croissant.id) == 0

    def test_reserve_is_all_or_nothing(self, db, matcha, croissant):
        ledger = StockLedger(db)
        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.reserve([StockLine(matcha.id, 3), StockLine(croissant.id, 3)])

        assert exc_info.value.shortages == [
            {"menuId": croissant.id, "name": "Croissant", "requested": 3, "available": 2}
        ]
        assert ledger.get_stock(matcha.id) == 5
        assert ledger.get_stock(croissant.id) == 2

    def test_reserve_merges_repeated_items(self, db, matcha):
        ledger = StockLedger(db)
        with pytest.raises(InsufficientStockError):
            ledger.reserve([StockLine(matcha.id, 3), StockLine(matcha.id, 3)])
        assert ledger.get_stock(matcha.id) == 5

    def test_reserve_reports_every_short_item(self, db, matcha, croissant):
        with pytest.raises(InsufficientStockError) as exc_info:
            StockLedger(db).reserve([StockLine(matcha.id, 10), StockLine(croissant.id, 10)])

        assert [s["menuId"] for s in exc_info.value.shortages] == [matcha.id, croissant.id]
        assert "Matcha" in exc_info.value.message

    def test_reserve_unknown_item(self, db, matcha):
        with pytest.raises(NotFoundError):
            StockLedger(db).reserve([StockLine(matcha.id, 1), StockLine(999, 1)])
        assert StockLedger(db).get_stock(matcha.id) == 5

    def test_reserve_then_restore_round_trip(self, db, matcha, croissant):
        ledger = StockLedger(db)
        lines = [StockLine(matcha.id, 4), StockLine(croissant.id, 1)]

        ledger.reserve(lines)
        ledger.restore(lines)

        assert ledger.get_stock(matcha.id) == 5
        assert ledger.get_stock(croissant.id) == 2


class TestRestore:
    def test_restore_has_no_upper_bound(self, db, matcha):
        ledger = StockLedger(db)
        ledger.restore([StockLine(matcha.id, 100)])
        assert ledger.get_stock(matcha.id) == 105

    def test_restore_skips_deleted_menu_item(self, db, matcha, croissant):
        ledger = StockLedger(db)
        croissant_id = croissant.id
        db.delete(croissant)
        db.commit()

        ledger.restore([StockLine(croissant_id, 1, "Croissant"), StockLine(matcha.id, 1)])

        assert ledger.get_stock(matcha.id) == 6


def test_reserve_gives_back_when_concurrent_order_drains_an_item(file_session_factory, monkeypatch):
    setup = file_session_factory()
    matcha_id = add_menu_item(setup, "Matcha", 18000, 5).id
    croissant_id = add_menu_item(setup, "Croissant", 15000, 2, category="food").id
    setup.close()

    db_a, db_b = file_session_factory(), file_session_factory()
    ledger_a = StockLedger(db_a)
    original = ledger_a.find_shortages

    def check_then_other_order_drains(lines):
        shortages = original(lines)
        # B vende los croissants entre la verificación y el descuento de A
        StockLedger(db_b).adjust_stock(croissant_id, -2)
        db_b.commit()
        return shortages

    monkeypatch.setattr(ledger_a, "find_shortages", check_then_other_order_drains)

    with pytest.raises(InsufficientStockError) as exc_info:
        ledger_a.reserve([StockLine(matcha_id, 2), StockLine(croissant_id, 1)])

    assert exc_info.value.shortages[0]["menuId"] == croissant_id
    assert exc_info.value.shortages[0]["available"] == 0
    assert ledger_a.get_stock(matcha_id) == 5
    db_a.commit()

    check = file_session_factory()
    assert StockLedger(check).get_stock(matcha_id) == 5
    assert StockLedger(check).get_stock(croissant_id) == 0
    for session in (db_a, db_b, check):
        session.close()
