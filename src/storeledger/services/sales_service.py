from __future__ import annotations

from typing import Callable, Iterable, Optional

import logging
from storeledger.config import PAYMENT_METHODS, AccountMap, LedgerPolicy
from storeledger.domain.amounts import to_amount, to_id, to_quantity
from storeledger.domain.errors import (
    AlreadyVoidedError,
    InvalidPaymentError,
    NotFoundError,
    ValidationError,
)
from storeledger.domain.models import JournalLine, Payment, Reference, Sale, SaleItem, SaleResult
from storeledger.domain.policies import AdvisoryCreditLimitPolicy, CreditLimitPolicy
from storeledger.repositories.unit_of_work import UnitOfWork, now_iso
from storeledger.services.journal_poster import JournalPoster
from storeledger.services.stock_ledger import StockLedger

log = logging.getLogger("storeledger.sales")

PAYMENT_TOLERANCE = 0.01


def sale_journal_lines(
    accounts: AccountMap,
    invoice_number: str,
    payment_method: str,
    net_sales: float,
    vat_amount: float,
    total: float,
) -> list[JournalLine]:
    lines = [
        JournalLine(
            account_code=accounts.settlement_for(payment_method),
            debit=total,
            description=f"Vente {invoice_number}",
        ),
        JournalLine(account_code=accounts.sales, credit=net_sales, description=f"Vente {invoice_number}"),
    ]
    if vat_amount > 0:
        lines.append(
            JournalLine(account_code=accounts.vat_output, credit=vat_amount, description=f"TVA Vente {invoice_number}")
        )
    return lines


class SalesService:
    def __init__(
        self,
        store,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        stock_ledger: StockLedger | None = None,
        journal: JournalPoster | None = None,
        policy: LedgerPolicy | None = None,
        credit_policy: CreditLimitPolicy | None = None,
    ):
        self.store = store
        self.uow_factory = uow_factory or store.unit_of_work
        self.policy = policy or LedgerPolicy()
        self.stock = stock_ledger or StockLedger()
        self.journal = journal or JournalPoster(self.policy)
        self.credit_policy = credit_policy or AdvisoryCreditLimitPolicy()

    def create_sale(
        self,
        items: Iterable[dict],
        payment_method: str,
        amount_paid: float,
        client_id: int | None = None,
        discount_amount: float | None = None,
        discount_percent: float = 0.0,
        notes: Optional[str] = None,
        actor_user_id: int | None = None,
    ) -> SaleResult:
        """
        items: [{product_id, quantity, unit_price?, discount?, vat_rate?}]

        unit_price and vat_rate default to the product's current values.
        """
        items = list(items)
        if not items:
            raise ValidationError("Cart is empty.")
        if payment_method not in PAYMENT_METHODS:
            raise InvalidPaymentError(f"Unknown payment method '{payment_method}'.")
        amount_paid = to_amount(amount_paid, "Amount paid")
        if amount_paid < 0:
            raise InvalidPaymentError("Amount paid must be >= 0.")
        if payment_method == "credit" and client_id is None:
            raise InvalidPaymentError("A credit sale needs a client.")
        if discount_amount is not None:
            discount_amount = to_amount(discount_amount, "Discount")
            if discount_amount < 0:
                raise ValidationError("Discount must be >= 0.")
        discount_percent = to_amount(discount_percent, "Discount percent", default=0.0)
        if not 0 <= discount_percent <= 100:
            raise ValidationError("Discount percent must be between 0 and 100.")

        cart = []
        for it in items:
            qty = to_quantity(it.get("quantity"))
            if qty <= 0:
                raise ValidationError("Qty must be >= 1.")
            unit_price = it.get("unit_price")
            if unit_price is not None:
                unit_price = to_amount(unit_price, "Unit price")
                if unit_price < 0:
                    raise ValidationError("Unit price must be >= 0.")
            vat_rate = it.get("vat_rate")
            if vat_rate is not None:
                vat_rate = to_amount(vat_rate, "VAT rate")
                if vat_rate < 0:
                    raise ValidationError("VAT rate must be >= 0.")
            line_discount = to_amount(it.get("discount"), "Line discount", default=0.0)
            if line_discount < 0:
                raise ValidationError("Line discount must be >= 0.")
            cart.append((to_id(it.get("product_id"), "Product id"), qty, unit_price, vat_rate, line_discount))

        accounts = self.policy.accounts
        with self.uow_factory() as uow:
            client = None
            if client_id is not None:
                client = uow.get_client(int(client_id))
                if not client or not client.is_active:
                    raise NotFoundError(f"Client {client_id} not found.")

            lines = []
            subtotal = 0.0
            total_vat = 0.0
            for product_id, qty, unit_price, vat_rate, line_discount in cart:
                product = uow.get_product(product_id)
                if not product or not product.is_active:
                    raise NotFoundError(f"Product {product_id} not found/active.")
                if unit_price is None:
                    unit_price = product.sale_price
                if vat_rate is None:
                    vat_rate = product.vat_rate
                line_subtotal = unit_price * qty - line_discount
                if line_subtotal < 0:
                    raise ValidationError(f"Discount on {product.name} exceeds the line amount.")
                line_vat = line_subtotal * vat_rate / 100
                subtotal += line_subtotal
                total_vat += line_vat
                lines.append((product, qty, unit_price, line_discount, vat_rate, line_vat, line_subtotal + line_vat))

            discount = discount_amount if discount_amount is not None else subtotal * discount_percent / 100
            total = subtotal - discount + total_vat
            if payment_method != "credit" and amount_paid + PAYMENT_TOLERANCE < total:
                raise InvalidPaymentError(f"Amount paid {amount_paid:.2f} is below the total {total:.2f}.")
            change = max(0.0, amount_paid - total)

            invoice_number = uow.next_invoice_number()
            sale_date = now_iso()
            sale_id = uow.insert_sale(
                invoice_number=invoice_number,
                user_id=actor_user_id,
                client_id=client.id if client else None,
                sale_date=sale_date,
                subtotal=subtotal,
                discount_amount=discount,
                discount_percent=discount_percent,
                vat_amount=total_vat,
                total=total,
                amount_paid=amount_paid,
                change_amount=change,
                payment_method=payment_method,
                notes=notes,
            )
            ref = Reference("sale", sale_id)
            for product, qty, unit_price, line_discount, vat_rate, line_vat, line_total in lines:
                uow.insert_sale_item(
                    sale_id, product.id, product.name, product.barcode, qty, unit_price,
                    line_discount, vat_rate, line_vat, line_total,
                )
                self.stock.apply_movement(uow, product.id, "out", qty, "Vente", actor_user_id, ref)

            uow.insert_payment("sale", sale_id, amount_paid, payment_method, actor_user_id)
            self.journal.post(
                uow,
                sale_journal_lines(accounts, invoice_number, payment_method, subtotal - discount, total_vat, total),
                reference=ref,
                entry_date=sale_date,
                actor_user_id=actor_user_id,
            )

            if payment_method == "credit" and client:
                self.credit_policy.check(client, client.balance + total)
                uow.adjust_client_balance(client.id, total)

        log.info(
            "sale_created sale_id=%s invoice=%s items=%s total=%.2f method=%s actor=%s",
            sale_id, invoice_number, len(items), total, payment_method, actor_user_id,
        )
        return SaleResult(sale_id=sale_id, invoice_number=invoice_number, total=total, change=change)

    def void_sale(self, sale_id: int, reason: Optional[str], actor_user_id: int | None = None) -> None:
        with self.uow_factory() as uow:
            sale = uow.get_sale(int(sale_id))
            if not sale:
                raise NotFoundError(f"Sale {sale_id} not found.")
            if sale.status != "completed":
                raise AlreadyVoidedError(f"Sale {sale.invoice_number} is {sale.status} and cannot be voided.")

            ref = Reference("sale_void", sale.id)
            for item in uow.get_sale_items(sale.id):
                self.stock.apply_movement(uow, item.product_id, "in", item.quantity, "Annulation vente", actor_user_id, ref)

            uow.mark_sale_voided(sale.id, reason)

            if sale.payment_method == "credit" and sale.client_id is not None:
                uow.adjust_client_balance(sale.client_id, -sale.total)

            original = uow.journal_entries_for("sale", sale.id)
            reversal = [
                JournalLine(
                    account_id=e.account_id,
                    debit=e.credit,
                    credit=e.debit,
                    description=f"Annulation {sale.invoice_number}",
                )
                for e in original
            ]
            if reversal:
                self.journal.post(uow, reversal, reference=ref, actor_user_id=actor_user_id)
            uow.insert_audit("sale_voided", "sale", sale.id, reason, actor_user_id)

        log.info("sale_voided sale_id=%s invoice=%s reason=%s actor=%s", sale.id, sale.invoice_number, reason, actor_user_id)

    def get_sale(self, sale_id: int) -> Sale:
        sale = self.store.get_sale(int(sale_id))
        if not sale:
            raise NotFoundError(f"Sale {sale_id} not found.")
        return sale

    def sale_items_for_sale(self, sale_id: int) -> list[SaleItem]:
        return self.store.list_sale_items(int(sale_id))

    def payments_for_sale(self, sale_id: int) -> list[Payment]:
        return self.store.list_payments("sale", int(sale_id))

    def list_sales(self, start_iso: str | None = None, end_iso: str | None = None,
                   status: str | None = None, client_id: int | None = None) -> list[Sale]:
        return self.store.list_sales(start_iso, end_iso, status, client_id)
