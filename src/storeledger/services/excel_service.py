from __future__ import annotations

from openpyxl import load_workbook

from storeledger.domain.amounts import to_amount, to_quantity
from storeledger.domain.errors import AppError, ValidationError
from storeledger.domain.updates import ProductUpdate
import logging

log = logging.getLogger(__name__)

REQUIRED_HEADERS = ["name", "sale_price", "purchase_price", "stock"]


def _text(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class ExcelService:
    def __init__(self, store, inventory_service):
        self.store = store
        self.inventory = inventory_service

    def import_products_excel(self, path: str, actor_user_id: int | None = None) -> tuple[int, int]:
        """
        Headers (first row, any order):
          name | sale_price | purchase_price | stock | barcode? | sku? | name_ar? | vat_rate? | min_stock?

        New products are created with ``stock`` as opening stock. For a product
        already known by barcode or SKU, ``stock`` is a quantity received and
        the other columns overwrite the catalogue values.
        """
        wb = load_workbook(path, read_only=True, data_only=True)
        ws = wb.active

        header_row = next(ws.iter_rows(min_row=1, max_row=1, values_only=True), ())
        headers = {}
        for idx, v in enumerate(header_row):
            if isinstance(v, str):
                headers[v.strip().lower()] = idx
        for r in REQUIRED_HEADERS:
            if r not in headers:
                raise ValidationError(f"Missing column header: {r}")

        def cell(values, name):
            idx = headers.get(name)
            return values[idx] if idx is not None and idx < len(values) else None

        ok = 0
        skipped = 0
        for row_no, values in enumerate(ws.iter_rows(min_row=2, values_only=True), start=2):
            try:
                name = _text(cell(values, "name"))
                if not name:
                    skipped += 1
                    continue
                barcode = _text(cell(values, "barcode"))
                sku = _text(cell(values, "sku"))
                sale_price = to_amount(cell(values, "sale_price"), "sale_price")
                purchase_price = to_amount(cell(values, "purchase_price"), "purchase_price")
                stock = to_quantity(cell(values, "stock") or 0, "stock")
                vat_raw = cell(values, "vat_rate")
                min_raw = cell(values, "min_stock")
                if stock < 0:
                    raise ValidationError("stock must be >= 0")

                existing = None
                if barcode:
                    existing = self.store.get_product_by_barcode(barcode)
                if existing is None and sku:
                    existing = self.store.get_product_by_sku(sku)

                if existing:
                    patch = ProductUpdate(
                        name=name,
                        name_ar=_text(cell(values, "name_ar")) or existing.name_ar,
                        sale_price=sale_price,
                        purchase_price=purchase_price,
                        vat_rate=to_amount(vat_raw, "vat_rate") if vat_raw is not None else existing.vat_rate,
                        min_stock_level=to_quantity(min_raw, "min_stock") if min_raw is not None else existing.min_stock_level,
                        is_active=1,
                    )
                    self.inventory.update_product(existing.id, patch)
                    if stock > 0:
                        self.inventory.adjust_stock(existing.id, "in", stock, "Import Excel", actor_user_id)
                else:
                    self.inventory.add_product(
                        name=name,
                        barcode=barcode,
                        sku=sku,
                        name_ar=_text(cell(values, "name_ar")),
                        sale_price=sale_price,
                        purchase_price=purchase_price,
                        vat_rate=to_amount(vat_raw, "vat_rate") if vat_raw is not None else self.store.get_settings().vat_rate,
                        min_stock_level=to_quantity(min_raw, "min_stock") if min_raw is not None else 5,
                        stock_quantity=stock,
                        actor_user_id=actor_user_id,
                    )
                ok += 1
            except AppError as e:
                log.warning("Excel import skipped row %s: %s", row_no, e)
                skipped += 1

        wb.close()
        return ok, skipped
