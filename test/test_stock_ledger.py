from pathlib import Path
import sqlite3

import pytest
from conftest import make_store

from storeledger.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from storeledger.domain.models import Reference
from storeledger.services.inventory_service import InventoryService
from storeledger.services.stock_ledger import StockLedger, replay, verify_chain


def _setup(tmp_path: Path, stock: int = 10):
    store = make_store(tmp_path)
    inv = InventoryService(store)
    pid = inv.add_product(name="Huile 1L", sale_price=250.0, purchase_price=200.0, stock_quantity=stock, barcode="613000000001")
    return store, inv, pid


def test_in_out_and_adjustment_follow_their_formulas(tmp_path: Path):
    store, _inv, pid = _setup(tmp_path, stock=10)
    ledger = StockLedger()

    with store.unit_of_work() as uow:
        r_in = ledger.apply_movement(uow, pid, "in", 5, "Achat")
        r_out = ledger.apply_movement(uow, pid, "out", 3, "Vente", reference=Reference("sale", 1))
        r_adj = ledger.apply_movement(uow, pid, "adjustment", 4, "Inventaire")

    assert (r_in.previous_stock, r_in.new_stock) == (10, 15)
    assert (r_out.previous_stock, r_out.new_stock) == (15, 12)
    assert (r_adj.previous_stock, r_adj.new_stock) == (12, 4)
    assert store.get_product(pid).stock_quantity == 4

    movements = store.list_movements(pid)
    assert [m.type for m in movements] == ["adjustment", "in", "out", "adjustment"]
    assert movements[2].reference_type == "sale"
    assert movements[2].reference_id == 1


def test_out_below_zero_fails_and_writes_nothing(tmp_path: Path):
    store, _inv, pid = _setup(tmp_path, stock=2)

    with pytest.raises(InsufficientStockError, match="Available: 2"):
        with store.unit_of_work() as uow:
            StockLedger().apply_movement(uow, pid, "out", 3, "Vente")

    assert store.get_product(pid).stock_quantity == 2
    assert len(store.list_movements(pid)) == 1


def test_unknown_product_is_not_found(tmp_path: Path):
    store, _inv, _pid = _setup(tmp_path)

    with pytest.raises(NotFoundError):
        with store.unit_of_work() as uow:
            StockLedger().apply_movement(uow, 999, "in", 1, "Achat")


def test_rejects_bad_quantities_and_types(tmp_path: Path):
    store, _inv, pid = _setup(tmp_path)
    ledger = StockLedger()

    with store.unit_of_work() as uow:
        with pytest.raises(ValidationError):
            ledger.apply_movement(uow, pid, "in", 0, "Achat")
        with pytest.raises(ValidationError):
            ledger.apply_movement(uow, pid, "adjustment", -1, "Inventaire")
        with pytest.raises(ValidationError, match="Unknown movement type"):
            ledger.apply_movement(uow, pid, "transfer", 1, "x")
        with pytest.raises(ValidationError, match="whole number"):
            ledger.apply_movement(uow, pid, "out", 2.9, "Vente")


def test_replaying_movements_from_zero_reproduces_stock(tmp_path: Path):
    store, inv, pid = _setup(tmp_path, stock=7)
    inv.adjust_stock(pid, "in", 12)
    inv.adjust_stock(pid, "out", 5)
    inv.adjust_stock(pid, "adjustment", 9)
    inv.adjust_stock(pid, "out", 2)

    movements = store.list_movements(pid)
    product = store.get_product(pid)
    assert replay(movements) == product.stock_quantity == 7

    report = verify_chain(pid, product.stock_quantity, movements)
    assert report.ok
    for prev, nxt in zip(movements, movements[1:]):
        assert nxt.previous_stock == prev.new_stock


def test_movements_are_append_only(tmp_path: Path):
    store, _inv, pid = _setup(tmp_path)

    conn = store._conn()
    try:
        with pytest.raises(sqlite3.DatabaseError, match="append-only"):
            conn.execute("UPDATE stock_movements SET quantity = 99 WHERE product_id = ?", (pid,))
        with pytest.raises(sqlite3.DatabaseError, match="append-only"):
            conn.execute("DELETE FROM stock_movements")
    finally:
        conn.close()
