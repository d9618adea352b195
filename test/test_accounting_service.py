from pathlib import Path

import pytest
from conftest import balance_of, make_store

from storeledger.domain.errors import (
    InvalidPaymentError,
    MissingAccountMappingError,
    NotFoundError,
    UnbalancedEntryError,
    ValidationError,
)
from storeledger.services.accounting_service import AccountingService
from storeledger.services.inventory_service import InventoryService
from storeledger.services.purchase_service import PurchaseService
from storeledger.services.sales_service import SalesService


def _svc(tmp_path: Path):
    store = make_store(tmp_path)
    return store, AccountingService(store)


def test_manual_entry_posts_and_audits(tmp_path: Path):
    store, acc = _svc(tmp_path)

    acc.post_manual_entry(
        [
            {"account_code": "1000", "debit": 5000.0},
            {"account_code": "3000", "credit": 5000.0, "description": "Apport"},
        ],
        description="Apport en capital",
    )

    assert balance_of(store, "1000") == 5000.0
    assert balance_of(store, "3000") == -5000.0
    entries = acc.list_journal(reference_type="manual")
    assert [e.description for e in entries] == ["Apport en capital", "Apport"]
    assert store.list_audit(action="manual_entry")[0][5] == "Apport en capital"


def test_manual_entry_by_account_id(tmp_path: Path):
    store, acc = _svc(tmp_path)
    cash = store.get_account_by_code("1000")
    bank = store.get_account_by_code("1100")

    acc.post_manual_entry(
        [{"account_id": bank.id, "debit": 300}, {"account_id": cash.id, "credit": 300}],
        description="Versement banque",
    )

    assert balance_of(store, "1100") == 300.0
    assert balance_of(store, "1000") == -300.0


def test_manual_entry_rejections_write_nothing(tmp_path: Path):
    store, acc = _svc(tmp_path)

    with pytest.raises(ValidationError, match="Description"):
        acc.post_manual_entry([{"account_code": "1000", "debit": 1}, {"account_code": "3000", "credit": 1}], "  ")
    with pytest.raises(ValidationError, match="at least two lines"):
        acc.post_manual_entry([{"account_code": "1000", "debit": 1}], "x")
    with pytest.raises(ValidationError, match=">= 0"):
        acc.post_manual_entry([{"account_code": "1000", "debit": -1}, {"account_code": "3000", "credit": -1}], "x")
    with pytest.raises(UnbalancedEntryError):
        acc.post_manual_entry([{"account_code": "1000", "debit": 10}, {"account_code": "3000", "credit": 9}], "x")
    with pytest.raises(MissingAccountMappingError):
        acc.post_manual_entry([{"account_code": "1000", "debit": 10}, {"account_code": "9999", "credit": 10}], "x")

    assert store.list_journal() == []
    assert store.list_audit(action="manual_entry") == []


def test_manual_entry_rejects_lines_without_amount(tmp_path: Path):
    _store, acc = _svc(tmp_path)
    with pytest.raises(ValidationError, match="debit or a credit"):
        acc.post_manual_entry(
            [{"account_code": "1000", "debit": 10}, {"account_code": "3000", "credit": 10}, {"account_code": "4000"}],
            "x",
        )


def test_expense_uses_category_account_and_settlement(tmp_path: Path):
    store, acc = _svc(tmp_path)
    rent = store.get_expense_category_by_name("Loyer")

    eid = acc.record_expense(30_000.0, "Loyer octobre", payment_method="bank_transfer", category_id=rent.id)

    assert balance_of(store, "6100") == 30_000.0
    assert balance_of(store, "1100") == -30_000.0
    expense = store.get_expense(eid)
    assert expense.category_id == rent.id
    assert [e.account_code for e in acc.list_journal(reference_type="expense", reference_id=eid)] == ["6100", "1100"]


def test_expense_without_category_goes_to_general_charges(tmp_path: Path):
    store, acc = _svc(tmp_path)

    acc.record_expense(450.0, "Sacs plastiques")

    assert balance_of(store, "6000") == 450.0
    assert balance_of(store, "1000") == -450.0
    assert len(acc.list_expenses()) == 1


def test_expense_validation(tmp_path: Path):
    store, acc = _svc(tmp_path)

    with pytest.raises(ValidationError):
        acc.record_expense(0, "Rien")
    with pytest.raises(ValidationError, match="Description"):
        acc.record_expense(10, "")
    with pytest.raises(InvalidPaymentError):
        acc.record_expense(10, "A crédit", payment_method="credit")
    with pytest.raises(NotFoundError):
        acc.record_expense(10, "Catégorie inconnue", category_id=999)
    assert store.list_expenses() == []


def test_add_account_rules(tmp_path: Path):
    _store, acc = _svc(tmp_path)

    acc.add_account("6400", "Internet", "expense")
    assert "6400" in {a.code for a in acc.list_accounts()}
    with pytest.raises(ValidationError, match="already exists"):
        acc.add_account("6400", "Doublon", "expense")
    with pytest.raises(ValidationError, match="Unknown account type"):
        acc.add_account("7000", "Autre", "income")


def test_statements_after_a_trading_day(tmp_path: Path):
    store, acc = _svc(tmp_path)
    inv = InventoryService(store)
    pid = inv.add_product(name="Café 250g", sale_price=100.0, purchase_price=60.0, vat_rate=19.0)
    sid = store.add_supplier("Torréfacteur")

    PurchaseService(store).create_purchase(sid, [{"product_id": pid, "quantity": 10, "unit_price": 60.0}])
    SalesService(store).create_sale([{"product_id": pid, "quantity": 2}], "cash", 238.0)
    acc.record_expense(50.0, "Transport")

    pnl = acc.profit_and_loss()
    assert pnl.revenue == pytest.approx(200.0)
    assert pnl.cost_of_goods == pytest.approx(600.0)
    assert pnl.expenses == pytest.approx(50.0)
    assert pnl.net_profit == pytest.approx(200.0 - 600.0 - 50.0)

    vat = acc.vat_summary()
    assert vat.collected == pytest.approx(38.0)
    assert vat.deductible == pytest.approx(114.0)
    assert vat.payable == pytest.approx(-76.0)

    rows = acc.trial_balance()
    assert sum(r.debit for r in rows) == pytest.approx(sum(r.credit for r in rows))


def test_infinite_amounts_never_reach_the_journal(tmp_path: Path):
    store, acc = _svc(tmp_path)

    with pytest.raises(ValidationError, match="finite"):
        acc.record_expense(float("inf"), "Loyer")
    with pytest.raises(ValidationError, match="finite"):
        acc.post_manual_entry(
            [{"account_code": "1000", "debit": "inf"}, {"account_code": "3000", "credit": "inf"}], "Ouverture"
        )
    with pytest.raises(ValidationError, match="finite"):
        acc.post_manual_entry(
            [{"account_code": "1000", "debit": float("nan")}, {"account_code": "3000", "credit": 1.0}], "Ouverture"
        )
    with pytest.raises(ValidationError, match="must be a number"):
        acc.post_manual_entry(
            [{"account_code": "1000", "debit": "cent"}, {"account_code": "3000", "credit": 100.0}], "Ouverture"
        )

    assert store.list_journal() == []
    assert store.list_expenses() == []
    assert balance_of(store, "1000") == 0.0
