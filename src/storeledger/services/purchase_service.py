from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable, Optional

import logging
from storeledger.config import LedgerPolicy
from storeledger.domain.amounts import to_amount, to_id, to_quantity
from storeledger.domain.errors import NotFoundError, SupplierNotFoundError, ValidationError
from storeledger.domain.models import JournalLine, Purchase, PurchaseItem, PurchaseResult, Reference
from storeledger.repositories.unit_of_work import UnitOfWork, now_iso
from storeledger.services.journal_poster import JournalPoster
from storeledger.services.stock_ledger import StockLedger

log = logging.getLogger("storeledger.accounting")


class PurchaseService:
    def __init__(
        self,
        store,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        stock_ledger: StockLedger | None = None,
        journal: JournalPoster | None = None,
        policy: LedgerPolicy | None = None,
    ):
        self.store = store
        self.uow_factory = uow_factory or store.unit_of_work
        self.policy = policy or LedgerPolicy()
        self.stock = stock_ledger or StockLedger()
        self.journal = journal or JournalPoster(self.policy)

    def create_purchase(
        self,
        supplier_id: int,
        items: Iterable[dict],
        amount_paid: float = 0.0,
        notes: Optional[str] = None,
        actor_user_id: int | None = None,
    ) -> PurchaseResult:
        """
        items: [{product_id, quantity, unit_price, vat_rate?}]

        Stock comes in at the purchase price, which also becomes the product's
        recorded cost (last-cost). The supplier is owed whatever is not paid now.
        """
        items = list(items)
        if not items:
            raise ValidationError("Purchase has no items.")
        amount_paid = to_amount(amount_paid, "Amount paid", default=0.0)
        if amount_paid < 0:
            raise ValidationError("Amount paid must be >= 0.")
        order = []
        for it in items:
            qty = to_quantity(it.get("quantity"))
            if qty <= 0:
                raise ValidationError("Qty must be >= 1.")
            unit_price = to_amount(it.get("unit_price"), "Unit cost")
            if unit_price < 0:
                raise ValidationError("Unit cost must be >= 0.")
            vat_rate = it.get("vat_rate")
            if vat_rate is not None:
                vat_rate = to_amount(vat_rate, "VAT rate")
                if vat_rate < 0:
                    raise ValidationError("VAT rate must be >= 0.")
            order.append((to_id(it.get("product_id"), "Product id"), qty, unit_price, vat_rate))

        accounts = self.policy.accounts
        with self.uow_factory() as uow:
            supplier = uow.get_supplier(int(supplier_id))
            if not supplier or not supplier.is_active:
                raise SupplierNotFoundError(f"Supplier {supplier_id} not found.")

            lines = []
            subtotal = 0.0
            total_vat = 0.0
            for product_id, qty, unit_price, vat_rate in order:
                product = uow.get_product(product_id)
                if not product or not product.is_active:
                    raise NotFoundError(f"Product {product_id} not found/active.")
                if vat_rate is None:
                    vat_rate = product.vat_rate
                line_total = unit_price * qty
                line_vat = line_total * vat_rate / 100
                subtotal += line_total
                total_vat += line_vat
                lines.append((product, qty, unit_price, vat_rate, line_vat, line_total + line_vat))

            total = subtotal + total_vat
            if amount_paid > total + 0.01:
                raise ValidationError(f"Amount paid {amount_paid:.2f} exceeds the purchase total {total:.2f}.")
            amount_paid = min(amount_paid, total)
            owed = total - amount_paid

            purchase_date = now_iso()
            reference_number = uow.next_purchase_number(datetime.now().year)
            purchase_id = uow.insert_purchase(
                reference_number=reference_number,
                supplier_id=supplier.id,
                user_id=actor_user_id,
                purchase_date=purchase_date,
                subtotal=subtotal,
                vat_amount=total_vat,
                total=total,
                amount_paid=amount_paid,
                notes=notes,
            )
            ref = Reference("purchase", purchase_id)
            for product, qty, unit_price, vat_rate, line_vat, line_total in lines:
                uow.insert_purchase_item(purchase_id, product.id, product.name, qty, unit_price, vat_rate, line_vat, line_total)
                self.stock.apply_movement(uow, product.id, "in", qty, "Achat", actor_user_id, ref)
                uow.set_product_purchase_price(product.id, unit_price)

            if owed > 0:
                uow.adjust_supplier_balance(supplier.id, owed)
            if amount_paid > 0:
                uow.insert_payment("purchase", purchase_id, amount_paid, "cash", actor_user_id)

            journal_lines = [
                JournalLine(account_code=accounts.stock, debit=subtotal, description=f"Achat {reference_number}"),
                JournalLine(account_code=accounts.vat_input, debit=total_vat, description=f"TVA Achat {reference_number}"),
                JournalLine(account_code=accounts.payable, credit=owed, description=f"Achat {reference_number}"),
                JournalLine(account_code=accounts.cash, credit=amount_paid, description=f"Règlement {reference_number}"),
            ]
            self.journal.post(uow, journal_lines, reference=ref, entry_date=purchase_date, actor_user_id=actor_user_id)

        log.info(
            "purchase_created purchase_id=%s reference=%s supplier_id=%s total=%.2f paid=%.2f actor=%s",
            purchase_id, reference_number, supplier.id, total, amount_paid, actor_user_id,
        )
        return PurchaseResult(purchase_id=purchase_id, reference_number=reference_number, total=total)

    def get_purchase(self, purchase_id: int) -> Purchase:
        purchase = self.store.get_purchase(int(purchase_id))
        if not purchase:
            raise NotFoundError(f"Purchase {purchase_id} not found.")
        return purchase

    def purchase_items_for_purchase(self, purchase_id: int) -> list[PurchaseItem]:
        return self.store.list_purchase_items(int(purchase_id))

    def list_purchases(self, start_iso: str | None = None, end_iso: str | None = None,
                       supplier_id: int | None = None) -> list[Purchase]:
        return self.store.list_purchases(start_iso, end_iso, supplier_id)
