from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from storeledger.config import PAYMENT_METHODS, LedgerPolicy
from storeledger.domain.amounts import to_amount, to_id
from storeledger.domain.errors import InvalidPaymentError, NotFoundError, ValidationError
from storeledger.domain.models import Account, Expense, ExpenseCategory, JournalEntry, JournalLine, Reference
from storeledger.repositories.unit_of_work import UnitOfWork, now_iso
from storeledger.services.journal_poster import JournalPoster, ensure_balanced

log = logging.getLogger("storeledger.accounting")

ACCOUNT_TYPES = ("asset", "liability", "equity", "revenue", "expense")


@dataclass(frozen=True)
class ProfitAndLoss:
    revenue: float
    cost_of_goods: float
    expenses: float

    @property
    def gross_profit(self) -> float:
        return self.revenue - self.cost_of_goods

    @property
    def net_profit(self) -> float:
        return self.gross_profit - self.expenses


@dataclass(frozen=True)
class VatSummary:
    collected: float
    deductible: float

    @property
    def payable(self) -> float:
        return self.collected - self.deductible


@dataclass(frozen=True)
class TrialBalanceRow:
    code: str
    name: str
    type: str
    debit: float
    credit: float


class AccountingService:
    def __init__(
        self,
        store,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        journal: JournalPoster | None = None,
        policy: LedgerPolicy | None = None,
    ):
        self.store = store
        self.uow_factory = uow_factory or store.unit_of_work
        self.policy = policy or LedgerPolicy()
        self.journal = journal or JournalPoster(self.policy)

    def post_manual_entry(
        self,
        lines: Iterable[dict],
        description: str,
        entry_date: Optional[str] = None,
        actor_user_id: int | None = None,
    ) -> None:
        """
        lines: [{account_id | account_code, debit, credit, description?}]
        """
        description = (description or "").strip()
        if not description:
            raise ValidationError("Description is required.")

        journal_lines = []
        for ln in lines:
            debit = to_amount(ln.get("debit"), "Debit", default=0.0)
            credit = to_amount(ln.get("credit"), "Credit", default=0.0)
            if debit < 0 or credit < 0:
                raise ValidationError("Debit and credit must be >= 0.")
            if debit == 0 and credit == 0:
                raise ValidationError("Every line needs a debit or a credit amount.")
            journal_lines.append(
                JournalLine(
                    account_id=to_id(ln["account_id"], "Account id") if ln.get("account_id") is not None else None,
                    account_code=str(ln["account_code"]) if ln.get("account_code") is not None else None,
                    debit=debit,
                    credit=credit,
                    description=ln.get("description") or description,
                )
            )
        if len(journal_lines) < 2:
            raise ValidationError("A manual entry needs at least two lines.")
        total_debit, _ = ensure_balanced(journal_lines, self.policy.tolerance)

        with self.uow_factory() as uow:
            ids = self.journal.post(
                uow,
                journal_lines,
                reference=Reference("manual"),
                entry_date=entry_date,
                actor_user_id=actor_user_id,
            )
            uow.insert_audit("manual_entry", "journal_entry", ids[0] if ids else None, description, actor_user_id)
        log.info("manual_entry_posted lines=%s amount=%.2f actor=%s", len(journal_lines), total_debit, actor_user_id)

    def record_expense(
        self,
        amount: float,
        description: str,
        expense_date: Optional[str] = None,
        payment_method: str = "cash",
        category_id: int | None = None,
        reference: Optional[str] = None,
        actor_user_id: int | None = None,
    ) -> int:
        amount = to_amount(amount, "Amount")
        if amount <= 0:
            raise ValidationError("Amount must be > 0.")
        description = (description or "").strip()
        if not description:
            raise ValidationError("Description is required.")
        if payment_method not in PAYMENT_METHODS or payment_method == "credit":
            raise InvalidPaymentError(f"Expenses cannot be paid by '{payment_method}'.")

        accounts = self.policy.accounts
        expense_date = expense_date or now_iso()
        with self.uow_factory() as uow:
            expense_account = accounts.default_expense
            if category_id is not None:
                category = uow.get_expense_category(int(category_id))
                if not category:
                    raise NotFoundError(f"Expense category {category_id} not found.")
                if category.account_code:
                    expense_account = category.account_code

            expense_id = uow.insert_expense(
                category_id, amount, description, expense_date, payment_method, reference, actor_user_id
            )
            self.journal.post(
                uow,
                [
                    JournalLine(account_code=expense_account, debit=amount, description=description),
                    JournalLine(account_code=accounts.settlement_for(payment_method), credit=amount, description=description),
                ],
                reference=Reference("expense", expense_id),
                entry_date=expense_date,
                actor_user_id=actor_user_id,
            )
        log.info("expense_recorded expense_id=%s account=%s amount=%.2f actor=%s", expense_id, expense_account, amount, actor_user_id)
        return expense_id

    # ---------- Chart of accounts ----------
    def list_accounts(self) -> list[Account]:
        return self.store.list_accounts()

    def add_account(self, code: str, name: str, account_type: str, name_ar: str | None = None,
                    parent_code: str | None = None) -> int:
        code = (code or "").strip()
        name = (name or "").strip()
        if not code or not name:
            raise ValidationError("Code and Name are required.")
        if account_type not in ACCOUNT_TYPES:
            raise ValidationError(f"Unknown account type '{account_type}'.")
        if self.store.get_account_by_code(code):
            raise ValidationError(f"Account {code} already exists.")
        return self.store.add_account(code, name, account_type, name_ar, parent_code)

    def list_journal(self, **filters) -> list[JournalEntry]:
        return self.store.list_journal(**filters)

    def list_expenses(self, start_iso: str | None = None, end_iso: str | None = None) -> list[Expense]:
        return self.store.list_expenses(start_iso, end_iso)

    def list_expense_categories(self) -> list[ExpenseCategory]:
        return self.store.list_expense_categories()

    # ---------- Statements ----------
    def trial_balance(self, start_iso: str | None = None, end_iso: str | None = None) -> list[TrialBalanceRow]:
        return [
            TrialBalanceRow(code=code, name=name, type=typ, debit=debit, credit=credit)
            for code, name, typ, debit, credit in self.store.account_activity(start_iso, end_iso)
        ]

    def profit_and_loss(self, start_iso: str | None = None, end_iso: str | None = None) -> ProfitAndLoss:
        revenue = 0.0
        cogs = 0.0
        expenses = 0.0
        cogs_code = self.policy.accounts.stock
        for row in self.trial_balance(start_iso, end_iso):
            if row.type == "revenue":
                revenue += row.credit - row.debit
            elif row.type == "expense" and row.code == cogs_code:
                cogs += row.debit - row.credit
            elif row.type == "expense":
                expenses += row.debit - row.credit
        return ProfitAndLoss(revenue=revenue, cost_of_goods=cogs, expenses=expenses)

    def vat_summary(self, start_iso: str | None = None, end_iso: str | None = None) -> VatSummary:
        accounts = self.policy.accounts
        collected = 0.0
        deductible = 0.0
        for row in self.trial_balance(start_iso, end_iso):
            if row.code == accounts.vat_output:
                collected += row.credit - row.debit
            elif row.code == accounts.vat_input:
                deductible += row.debit - row.credit
        return VatSummary(collected=collected, deductible=deductible)
