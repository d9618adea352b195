from __future__ import annotations

from typing import Callable, Optional

from storeledger.domain.amounts import to_amount, to_quantity
from storeledger.domain.errors import NotFoundError, ValidationError
from storeledger.domain.models import MovementResult, Product, Reference, StockMovement
from storeledger.domain.updates import ProductUpdate, apply_update, present_fields
from storeledger.repositories.unit_of_work import UnitOfWork
from storeledger.services.stock_ledger import StockLedger


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _validate_product(p: Product) -> None:
    if not p.name.strip():
        raise ValidationError("Name is required.")
    for label, value in (("Purchase price", p.purchase_price), ("Sale price", p.sale_price), ("VAT rate", p.vat_rate)):
        to_amount(value, label)
    if p.purchase_price < 0:
        raise ValidationError("Purchase price must be >= 0.")
    if p.sale_price < 0:
        raise ValidationError("Sale price must be >= 0.")
    if p.vat_rate < 0:
        raise ValidationError("VAT rate must be >= 0.")
    if p.min_stock_level < 0:
        raise ValidationError("Min stock must be >= 0.")


class InventoryService:
    def __init__(self, store, uow_factory: Callable[[], UnitOfWork] | None = None,
                 stock_ledger: StockLedger | None = None):
        self.store = store
        self.uow_factory = uow_factory or store.unit_of_work
        self.stock = stock_ledger or StockLedger()

    def list_products(self, search: str | None = None) -> list[Product]:
        return self.store.list_products(search=search)

    def low_stock(self) -> list[Product]:
        return self.store.list_low_stock()

    def get_product(self, product_id: int) -> Product:
        p = self.store.get_product(int(product_id))
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def get_product_by_barcode(self, barcode: str) -> Product:
        p = self.store.get_product_by_barcode(barcode.strip())
        if not p or not p.is_active:
            raise NotFoundError(f"No product with barcode {barcode}.")
        return p

    def add_product(
        self,
        name: str,
        sale_price: float,
        purchase_price: float = 0.0,
        vat_rate: float = 19.0,
        stock_quantity: int = 0,
        min_stock_level: int = 5,
        barcode: str | None = None,
        sku: str | None = None,
        name_ar: str | None = None,
        description: str | None = None,
        category_id: int | None = None,
        unit: str = "unit",
        actor_user_id: int | None = None,
    ) -> int:
        """Create a product; an opening stock is booked as an adjustment so the movement history replays from zero."""
        draft = Product(
            id=0,
            barcode=_clean(barcode),
            sku=_clean(sku),
            name=(name or "").strip(),
            name_ar=_clean(name_ar),
            description=_clean(description),
            category_id=category_id,
            purchase_price=to_amount(purchase_price, "Purchase price", default=0.0),
            sale_price=to_amount(sale_price, "Sale price"),
            vat_rate=to_amount(vat_rate, "VAT rate"),
            stock_quantity=to_quantity(stock_quantity, "Stock"),
            min_stock_level=to_quantity(min_stock_level, "Min stock"),
            unit=unit,
        )
        _validate_product(draft)
        if draft.stock_quantity < 0:
            raise ValidationError("Stock values must be >= 0.")
        self._ensure_unique(draft)

        with self.uow_factory() as uow:
            pid = uow.insert_product(
                name=draft.name,
                barcode=draft.barcode,
                sku=draft.sku,
                name_ar=draft.name_ar,
                description=draft.description,
                category_id=draft.category_id,
                purchase_price=draft.purchase_price,
                sale_price=draft.sale_price,
                vat_rate=draft.vat_rate,
                min_stock_level=draft.min_stock_level,
                unit=draft.unit,
            )
            if draft.stock_quantity > 0:
                self.stock.apply_movement(
                    uow, pid, "adjustment", draft.stock_quantity, "Stock initial", actor_user_id, Reference("product", pid)
                )
        return pid

    def update_product(self, product_id: int, patch: ProductUpdate) -> Product:
        current = self.get_product(product_id)
        changes = present_fields(patch)
        for key in ("barcode", "sku", "name_ar", "description"):
            if key in changes:
                changes[key] = _clean(changes[key])
        if "name" in changes:
            changes["name"] = (changes["name"] or "").strip()
        updated = apply_update(current, ProductUpdate(**changes))
        _validate_product(updated)
        self._ensure_unique(updated)
        if not self.store.save_product(updated):
            raise NotFoundError("Product not found.")
        return updated

    def delete_product(self, product_id: int) -> None:
        self.get_product(product_id)
        if not self.store.deactivate_product(int(product_id)):
            raise NotFoundError("Product not found.")

    def adjust_stock(
        self,
        product_id: int,
        movement_type: str,
        quantity: int,
        reason: str | None = None,
        actor_user_id: int | None = None,
    ) -> MovementResult:
        with self.uow_factory() as uow:
            return self.stock.apply_movement(
                uow, int(product_id), movement_type, quantity, reason or "Ajustement manuel", actor_user_id
            )

    def movements(self, product_id: int | None = None, limit: int | None = None) -> list[StockMovement]:
        return self.store.list_movements(product_id, limit)

    def _ensure_unique(self, p: Product) -> None:
        if p.barcode:
            other = self.store.get_product_by_barcode(p.barcode)
            if other and other.id != p.id:
                raise ValidationError(f"Barcode {p.barcode} is already used by {other.name}.")
        if p.sku:
            other = self.store.get_product_by_sku(p.sku)
            if other and other.id != p.id:
                raise ValidationError(f"SKU {p.sku} is already used by {other.name}.")
