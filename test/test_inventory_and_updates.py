from pathlib import Path

import pytest
from conftest import make_store

from storeledger.domain.errors import NotFoundError, SupplierNotFoundError, ValidationError
from storeledger.domain.updates import (
    UNSET,
    ClientUpdate,
    ProductUpdate,
    StoreSettingsUpdate,
    SupplierUpdate,
    present_fields,
)
from storeledger.services.inventory_service import InventoryService
from storeledger.services.party_service import PartyService
from storeledger.services.settings_service import SettingsService


def test_present_fields_ignores_unset_but_keeps_none():
    patch = ProductUpdate(sale_price=12.5, barcode=None)

    assert present_fields(patch) == {"sale_price": 12.5, "barcode": None}
    assert not UNSET
    assert repr(UNSET) == "UNSET"


def test_partial_product_update_touches_only_given_fields(tmp_path: Path):
    store = make_store(tmp_path)
    inv = InventoryService(store)
    pid = inv.add_product(name="Farine 1kg", sale_price=90.0, purchase_price=70.0, barcode="6130010",
                          sku="FAR-1", stock_quantity=4, min_stock_level=2)

    updated = inv.update_product(pid, ProductUpdate(sale_price=95.0, barcode=None))

    assert updated.sale_price == 95.0
    assert updated.barcode is None
    stored = store.get_product(pid)
    assert stored.sale_price == 95.0
    assert stored.barcode is None
    assert (stored.name, stored.sku, stored.purchase_price, stored.min_stock_level) == ("Farine 1kg", "FAR-1", 70.0, 2)
    assert stored.stock_quantity == 4


def test_product_validation_and_uniqueness(tmp_path: Path):
    store = make_store(tmp_path)
    inv = InventoryService(store)
    pid = inv.add_product(name="Sel", sale_price=30.0, barcode="6130020", sku="SEL-1")

    with pytest.raises(ValidationError, match="Name is required"):
        inv.add_product(name="  ", sale_price=1.0)
    with pytest.raises(ValidationError, match="Sale price"):
        inv.add_product(name="Négatif", sale_price=-1.0)
    with pytest.raises(ValidationError, match="Barcode 6130020 is already used"):
        inv.add_product(name="Autre", sale_price=1.0, barcode="6130020")
    with pytest.raises(ValidationError, match="SKU SEL-1"):
        inv.add_product(name="Autre", sale_price=1.0, sku="SEL-1")
    with pytest.raises(ValidationError, match="Sale price"):
        inv.update_product(pid, ProductUpdate(sale_price=-5.0))

    other = inv.add_product(name="Poivre", sale_price=40.0)
    with pytest.raises(ValidationError, match="already used"):
        inv.update_product(other, ProductUpdate(barcode="6130020"))


def test_deleted_product_is_hidden_but_keeps_its_codes(tmp_path: Path):
    store = make_store(tmp_path)
    inv = InventoryService(store)
    pid = inv.add_product(name="Ancien", sale_price=10.0, barcode="6130030", stock_quantity=2)

    inv.delete_product(pid)

    assert all(p.id != pid for p in inv.list_products())
    with pytest.raises(NotFoundError):
        inv.get_product_by_barcode("6130030")
    with pytest.raises(ValidationError, match="already used"):
        inv.add_product(name="Nouveau", sale_price=10.0, barcode="6130030")
    with pytest.raises(NotFoundError):
        inv.delete_product(pid)


def test_low_stock_and_search(tmp_path: Path):
    store = make_store(tmp_path)
    inv = InventoryService(store)
    low = inv.add_product(name="Levure", sale_price=20.0, stock_quantity=1, min_stock_level=5)
    inv.add_product(name="Lentilles", sale_price=200.0, stock_quantity=50, min_stock_level=5, sku="LEN-1")

    assert [p.id for p in inv.low_stock()] == [low]
    assert [p.name for p in inv.list_products("LEN")] == ["Lentilles"]
    assert len(inv.list_products("Le")) == 2


def test_manual_stock_adjustment_is_recorded(tmp_path: Path):
    store = make_store(tmp_path)
    inv = InventoryService(store)
    pid = inv.add_product(name="Huile", sale_price=300.0, stock_quantity=10)

    result = inv.adjust_stock(pid, "adjustment", 7, "Inventaire physique")

    assert (result.previous_stock, result.new_stock) == (10, 7)
    last = inv.movements(pid)[-1]
    assert (last.type, last.reason) == ("adjustment", "Inventaire physique")
    assert inv.adjust_stock(pid, "out", 2).new_stock == 5
    assert inv.movements(pid)[-1].reason == "Ajustement manuel"


def test_client_and_supplier_updates(tmp_path: Path):
    store = make_store(tmp_path)
    parties = PartyService(store)
    cid = parties.add_client("  Café du coin ", phone="0555", credit_limit=5000.0)
    sid = parties.add_supplier("Grossiste")

    client = parties.update_client(cid, ClientUpdate(credit_limit=8000.0))
    assert (client.name, client.phone, client.credit_limit) == ("Café du coin", "0555", 8000.0)

    supplier = parties.update_supplier(sid, SupplierUpdate(email="contact@grossiste.dz"))
    assert store.get_supplier(sid).email == supplier.email == "contact@grossiste.dz"

    with pytest.raises(ValidationError):
        parties.update_client(cid, ClientUpdate(credit_limit=-1.0))
    with pytest.raises(ValidationError):
        parties.add_client(" ")

    parties.deactivate_client(cid)
    assert parties.list_clients() == []
    assert parties.clients_with_balance() == []

    with pytest.raises(SupplierNotFoundError):
        parties.get_supplier(999)


def test_settings_update_keeps_counters(tmp_path: Path):
    store = make_store(tmp_path)
    svc = SettingsService(store)

    updated = svc.update(StoreSettingsUpdate(store_name="Superette Nour", invoice_prefix="FAC", vat_rate=9.0))

    assert (updated.store_name, updated.invoice_prefix, updated.vat_rate) == ("Superette Nour", "FAC", 9.0)
    assert svc.get().currency == "DZD"
    assert svc.get().invoice_next_number == 1

    with pytest.raises(ValidationError, match="Invoice prefix"):
        svc.update(StoreSettingsUpdate(invoice_prefix="FAC-2026"))
    with pytest.raises(ValidationError, match="Store name"):
        svc.update(StoreSettingsUpdate(store_name=" "))
    assert svc.get().invoice_prefix == "FAC"
