from __future__ import annotations

import logging
import sqlite3
from typing import Any, Callable, Iterable, Optional

from storeledger.domain.errors import AppError
from storeledger.domain.license import LicenseRequest, LicenseStatus
from storeledger.domain.models import PurchaseResult, SaleResult
from storeledger.domain.result import Err, Ok, Result

log = logging.getLogger(__name__)


class ShellApi:
    """What the UI shell calls. Every operation answers ``Ok(value)`` or ``Err(kind, message)``.

    Ledger writes need the id of an active user whose role allows the action.
    Domain failures keep their kind; storage and file-system failures become
    ``PersistenceFailure`` and are logged with their traceback.
    """

    def __init__(self, sales, purchases, accounting, license_service, auth):
        self.sales = sales
        self.purchases = purchases
        self.accounting = accounting
        self.license = license_service
        self.auth = auth

    def _call(self, operation: str, fn: Callable[[], Any]) -> Result:
        try:
            return Ok(fn())
        except AppError as exc:
            log.info("operation_rejected op=%s kind=%s error=%s", operation, exc.kind, exc)
            return Err(exc.kind, str(exc))
        except (sqlite3.Error, OSError) as exc:
            log.exception("operation_failed op=%s", operation)
            return Err("PersistenceFailure", str(exc))

    def _guarded(self, operation: str, actor_user_id: int | None, fn: Callable[[], Any]) -> Result:
        def run():
            self.auth.authorize(actor_user_id, operation)
            return fn()

        return self._call(operation, run)

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
    ) -> Result[SaleResult]:
        return self._guarded(
            "create_sale",
            actor_user_id,
            lambda: self.sales.create_sale(
                items,
                payment_method=payment_method,
                amount_paid=amount_paid,
                client_id=client_id,
                discount_amount=discount_amount,
                discount_percent=discount_percent,
                notes=notes,
                actor_user_id=actor_user_id,
            ),
        )

    def void_sale(self, sale_id: int, reason: Optional[str], actor_user_id: int | None = None) -> Result[None]:
        return self._guarded(
            "void_sale", actor_user_id, lambda: self.sales.void_sale(sale_id, reason, actor_user_id=actor_user_id)
        )

    def create_purchase(
        self,
        supplier_id: int,
        items: Iterable[dict],
        amount_paid: float = 0.0,
        notes: Optional[str] = None,
        actor_user_id: int | None = None,
    ) -> Result[PurchaseResult]:
        return self._guarded(
            "create_purchase",
            actor_user_id,
            lambda: self.purchases.create_purchase(
                supplier_id, items, amount_paid=amount_paid, notes=notes, actor_user_id=actor_user_id
            ),
        )

    def post_manual_entry(
        self,
        lines: Iterable[dict],
        description: str,
        entry_date: Optional[str] = None,
        actor_user_id: int | None = None,
    ) -> Result[None]:
        return self._guarded(
            "post_manual_entry",
            actor_user_id,
            lambda: self.accounting.post_manual_entry(lines, description, entry_date, actor_user_id=actor_user_id),
        )

    def record_expense(
        self,
        amount: float,
        description: str,
        expense_date: Optional[str] = None,
        payment_method: str = "cash",
        category_id: int | None = None,
        reference: Optional[str] = None,
        actor_user_id: int | None = None,
    ) -> Result[int]:
        return self._guarded(
            "record_expense",
            actor_user_id,
            lambda: self.accounting.record_expense(
                amount,
                description,
                expense_date=expense_date,
                payment_method=payment_method,
                category_id=category_id,
                reference=reference,
                actor_user_id=actor_user_id,
            ),
        )

    def license_generate_request(self, customer_name: str) -> Result[LicenseRequest]:
        return self._call("license_generate_request", lambda: self.license.generate_request(customer_name))

    def license_activate(self, blob: str) -> Result[LicenseStatus]:
        return self._call("license_activate", lambda: self.license.activate(blob))

    def license_status(self) -> Result[LicenseStatus]:
        return self._call("license_status", self.license.get_status)
