from pathlib import Path
from dataclasses import replace

import pytest
from conftest import balance_of, make_store

from storeledger.domain.errors import (
    AlreadyVoidedError,
    CreditLimitExceededError,
    InsufficientStockError,
    InvalidPaymentError,
    NotFoundError,
    ValidationError,
)
from storeledger.domain.policies import StrictCreditLimitPolicy
from storeledger.services.inventory_service import InventoryService
from storeledger.services.operations_service import OperationsService
from storeledger.services.sales_service import SalesService


def _setup(tmp_path: Path):
    store = make_store(tmp_path)
    inv = InventoryService(store)
    p1 = inv.add_product(name="Lait 1L", sale_price=100.0, purchase_price=70.0, vat_rate=19.0, stock_quantity=10)
    p2 = inv.add_product(name="Pain", sale_price=20.0, purchase_price=12.0, vat_rate=0.0, stock_quantity=1)
    return store, SalesService(store), p1, p2


def test_cash_sale_posts_totals_stock_and_balanced_journal(tmp_path: Path):
    store, sales, p1, _p2 = _setup(tmp_path)

    res = sales.create_sale([{"product_id": p1, "quantity": 2}], payment_method="cash", amount_paid=250.0)

    assert res.invoice_number == "INV-000001"
    assert res.total == pytest.approx(238.0)
    assert res.change == pytest.approx(12.0)

    sale = sales.get_sale(res.sale_id)
    assert sale.status == "completed"
    assert sale.subtotal == pytest.approx(200.0)
    assert sale.vat_amount == pytest.approx(38.0)
    assert store.get_product(p1).stock_quantity == 8

    items = sales.sale_items_for_sale(res.sale_id)
    assert len(items) == 1
    assert items[0].product_name == "Lait 1L"
    assert items[0].total == pytest.approx(238.0)

    payments = sales.payments_for_sale(res.sale_id)
    assert [(p.amount, p.method) for p in payments] == [(250.0, "cash")]

    entries = store.list_journal(reference_type="sale", reference_id=res.sale_id)
    posted = {(e.account_code, round(e.debit, 2), round(e.credit, 2)) for e in entries}
    assert posted == {("1000", 238.0, 0.0), ("4000", 0.0, 200.0), ("2100", 0.0, 38.0)}
    assert balance_of(store, "1000") == 238.0

    out = [m for m in store.list_movements(p1) if m.type == "out"]
    assert len(out) == 1
    assert (out[0].reference_type, out[0].reference_id, out[0].quantity) == ("sale", res.sale_id, 2)


def test_card_sale_settles_to_bank_and_vat_free_line_has_no_vat_entry(tmp_path: Path):
    store, sales, _p1, p2 = _setup(tmp_path)

    res = sales.create_sale([{"product_id": p2, "quantity": 1}], payment_method="card", amount_paid=20.0)

    codes = [e.account_code for e in store.list_journal(reference_type="sale", reference_id=res.sale_id)]
    assert codes == ["1100", "4000"]
    assert res.change == 0.0


def test_invoice_numbers_are_sequential_without_gaps(tmp_path: Path):
    store, sales, p1, _p2 = _setup(tmp_path)

    first = sales.create_sale([{"product_id": p1, "quantity": 1}], "cash", 119.0)
    with pytest.raises(InvalidPaymentError):
        sales.create_sale([{"product_id": p1, "quantity": 1}], "cash", 1.0)
    with pytest.raises(InsufficientStockError):
        sales.create_sale([{"product_id": p1, "quantity": 50}], "cash", 10_000.0)
    second = sales.create_sale([{"product_id": p1, "quantity": 1}], "cash", 119.0)

    assert (first.invoice_number, second.invoice_number) == ("INV-000001", "INV-000002")
    assert store.get_settings().invoice_next_number == 3


def test_invoice_prefix_comes_from_settings(tmp_path: Path):
    store, sales, p1, _p2 = _setup(tmp_path)
    settings = store.get_settings()
    store.save_settings(replace(settings, invoice_prefix="FAC"))

    res = sales.create_sale([{"product_id": p1, "quantity": 1}], "cash", 119.0)
    assert res.invoice_number == "FAC-000001"


def test_sale_is_atomic_when_a_later_line_is_short(tmp_path: Path):
    store, sales, p1, p2 = _setup(tmp_path)

    with pytest.raises(InsufficientStockError, match="Pain"):
        sales.create_sale(
            [{"product_id": p1, "quantity": 2}, {"product_id": p2, "quantity": 5}],
            payment_method="cash",
            amount_paid=1000.0,
        )

    assert store.get_product(p1).stock_quantity == 10
    assert store.get_product(p2).stock_quantity == 1
    assert store.list_sales() == []
    assert store.list_journal() == []
    assert [m.type for m in store.list_movements(p1)] == ["adjustment"]
    assert store.get_settings().invoice_next_number == 1


def test_discounts_reduce_net_sales(tmp_path: Path):
    store, sales, p1, _p2 = _setup(tmp_path)

    res = sales.create_sale(
        [{"product_id": p1, "quantity": 2, "discount": 20.0}],
        payment_method="cash",
        amount_paid=500.0,
        discount_amount=30.0,
    )

    # line: 200 - 20 = 180, VAT 34.2; sale discount 30
    assert res.total == pytest.approx(180.0 - 30.0 + 34.2)
    entries = store.list_journal(reference_type="sale", reference_id=res.sale_id)
    assert sum(e.debit for e in entries) == pytest.approx(sum(e.credit for e in entries))
    sales_line = [e for e in entries if e.account_code == "4000"][0]
    assert sales_line.credit == pytest.approx(150.0)


def test_payment_validation(tmp_path: Path):
    _store, sales, p1, _p2 = _setup(tmp_path)
    item = [{"product_id": p1, "quantity": 1}]

    with pytest.raises(InvalidPaymentError, match="Unknown payment method"):
        sales.create_sale(item, "bitcoin", 200.0)
    with pytest.raises(InvalidPaymentError, match=">= 0"):
        sales.create_sale(item, "cash", -1.0)
    with pytest.raises(InvalidPaymentError, match="needs a client"):
        sales.create_sale(item, "credit", 0.0)
    with pytest.raises(InvalidPaymentError, match="below the total"):
        sales.create_sale(item, "cash", 100.0)


def test_cart_validation(tmp_path: Path):
    _store, sales, p1, _p2 = _setup(tmp_path)

    with pytest.raises(ValidationError, match="Cart is empty"):
        sales.create_sale([], "cash", 0.0)
    with pytest.raises(ValidationError, match="Qty"):
        sales.create_sale([{"product_id": p1, "quantity": 0}], "cash", 0.0)
    with pytest.raises(NotFoundError):
        sales.create_sale([{"product_id": 999, "quantity": 1}], "cash", 100.0)


def test_credit_sale_moves_client_balance_and_receivables(tmp_path: Path):
    store, sales, p1, _p2 = _setup(tmp_path)
    cid = store.add_client("Épicerie Amine", credit_limit=100.0)

    res = sales.create_sale([{"product_id": p1, "quantity": 1}], "credit", 0.0, client_id=cid)

    # advisory limit: the sale goes through even above the limit
    assert store.get_client(cid).balance == pytest.approx(119.0)
    assert balance_of(store, "1200") == 119.0
    assert sales.list_sales(client_id=cid)[0].id == res.sale_id


def test_strict_credit_policy_blocks_and_rolls_back(tmp_path: Path):
    store, _sales, p1, _p2 = _setup(tmp_path)
    sales = SalesService(store, credit_policy=StrictCreditLimitPolicy())
    cid = store.add_client("Client plafonné", credit_limit=100.0)

    with pytest.raises(CreditLimitExceededError):
        sales.create_sale([{"product_id": p1, "quantity": 1}], "credit", 0.0, client_id=cid)

    assert store.get_client(cid).balance == 0.0
    assert store.get_product(p1).stock_quantity == 10
    assert store.list_sales() == []


def test_void_restores_stock_and_reverses_journal(tmp_path: Path):
    store, sales, p1, _p2 = _setup(tmp_path)
    res = sales.create_sale([{"product_id": p1, "quantity": 3}], "cash", 400.0)

    sales.void_sale(res.sale_id, reason="Erreur de caisse", actor_user_id=None)

    sale = sales.get_sale(res.sale_id)
    assert sale.status == "voided"
    assert sale.void_reason == "Erreur de caisse"
    assert store.get_product(p1).stock_quantity == 10

    restock = [m for m in store.list_movements(p1) if m.reference_type == "sale_void"]
    assert [(m.type, m.quantity) for m in restock] == [("in", 3)]

    for code in ("1000", "4000", "2100"):
        assert balance_of(store, code) == 0.0
    reversal = store.list_journal(reference_type="sale_void", reference_id=res.sale_id)
    assert len(reversal) == 3
    assert all(e.description == f"Annulation {res.invoice_number}" for e in reversal)

    audit = store.list_audit(action="sale_voided")
    assert audit[0][4] == res.sale_id
    ops = OperationsService(store, store.db_path, tmp_path / "logs", tmp_path / "backups")
    assert ops.run_health_check().ledger_ok


def test_void_credit_sale_reduces_client_balance(tmp_path: Path):
    store, sales, p1, _p2 = _setup(tmp_path)
    cid = store.add_client("Client crédit")
    res = sales.create_sale([{"product_id": p1, "quantity": 2}], "credit", 0.0, client_id=cid)

    sales.void_sale(res.sale_id, reason="Retour")

    assert store.get_client(cid).balance == pytest.approx(0.0)
    assert balance_of(store, "1200") == 0.0


def test_void_twice_or_unknown_sale_fails(tmp_path: Path):
    store, sales, p1, _p2 = _setup(tmp_path)
    res = sales.create_sale([{"product_id": p1, "quantity": 1}], "cash", 119.0)
    sales.void_sale(res.sale_id, reason=None)

    with pytest.raises(AlreadyVoidedError):
        sales.void_sale(res.sale_id, reason=None)
    with pytest.raises(NotFoundError):
        sales.void_sale(999, reason=None)

    assert store.get_product(p1).stock_quantity == 10
    assert len(store.list_journal(reference_type="sale_void")) == 3


def test_fractional_or_non_finite_cart_values_are_rejected(tmp_path: Path):
    store, sales, p1, _p2 = _setup(tmp_path)

    with pytest.raises(ValidationError, match="whole number"):
        sales.create_sale([{"product_id": p1, "quantity": 2.9}], "cash", 1000.0)
    with pytest.raises(ValidationError, match="whole number"):
        sales.create_sale([{"product_id": p1, "quantity": "1.5"}], "cash", 1000.0)
    with pytest.raises(ValidationError, match="finite"):
        sales.create_sale([{"product_id": p1, "quantity": 1, "unit_price": float("inf")}], "cash", 1000.0)
    with pytest.raises(ValidationError, match="finite"):
        sales.create_sale([{"product_id": p1, "quantity": 1, "vat_rate": float("nan")}], "cash", 1000.0)
    with pytest.raises(ValidationError, match="finite"):
        sales.create_sale([{"product_id": p1, "quantity": 1}], "cash", float("inf"))
    with pytest.raises(ValidationError, match="finite"):
        sales.create_sale([{"product_id": p1, "quantity": 1}], "cash", 1000.0, discount_amount="inf")

    assert store.get_product(p1).stock_quantity == 10
    assert store.list_sales() == []
    assert store.list_journal() == []


def test_whole_float_quantity_is_accepted(tmp_path: Path):
    store, sales, p1, _p2 = _setup(tmp_path)

    res = sales.create_sale([{"product_id": p1, "quantity": 2.0}], "cash", 238.0)

    assert res.total == pytest.approx(238.0)
    assert store.get_product(p1).stock_quantity == 8


def test_malformed_cart_lines_are_validation_errors(tmp_path: Path):
    _store, sales, p1, _p2 = _setup(tmp_path)

    with pytest.raises(ValidationError, match="Qty is required"):
        sales.create_sale([{"product_id": p1}], "cash", 100.0)
    with pytest.raises(ValidationError, match="Product id is required"):
        sales.create_sale([{"quantity": 1}], "cash", 100.0)
    with pytest.raises(ValidationError, match="must be a number"):
        sales.create_sale([{"product_id": p1, "quantity": "deux"}], "cash", 100.0)
