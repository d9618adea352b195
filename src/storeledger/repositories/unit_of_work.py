from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

from storeledger.domain.errors import NotFoundError
from storeledger.domain.models import (
    Account,
    Client,
    ExpenseCategory,
    JournalEntry,
    Product,
    Sale,
    SaleItem,
    Supplier,
)
from storeledger.repositories import rows


def now_iso() -> str:
    return datetime.now().replace(microsecond=0).isoformat(sep=" ")


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def get_product(self, product_id: int) -> Optional[Product]: ...
    def set_product_stock(self, product_id: int, stock_quantity: int) -> None: ...
    def insert_movement(self, product_id: int, movement_type: str, quantity: int, previous_stock: int, new_stock: int,
                        reason: Optional[str], reference_type: Optional[str], reference_id: Optional[int],
                        user_id: Optional[int]) -> int: ...
    def get_account_by_code(self, code: str) -> Optional[Account]: ...
    def get_account(self, account_id: int) -> Optional[Account]: ...
    def insert_journal_entry(self, batch_id: str, entry_date: str, account_id: int, debit: float, credit: float,
                             description: Optional[str], reference_type: Optional[str],
                             reference_id: Optional[int], user_id: Optional[int]) -> int: ...
    def adjust_account_balance(self, account_id: int, delta: float) -> None: ...


class SqliteUnitOfWork:
    """One business event, one SQLite transaction.

    ``BEGIN IMMEDIATE`` takes the write lock up front; leaving the block with an
    exception rolls back every write made through this object.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None

    def __enter__(self) -> "SqliteUnitOfWork":
        conn = sqlite3.connect(self.db_path, isolation_level=None)
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute("BEGIN IMMEDIATE")
        self._conn = conn
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        conn = self._conn
        self._conn = None
        if conn is None:
            return None
        try:
            if exc_type is None:
                conn.execute("COMMIT")
            else:
                conn.execute("ROLLBACK")
        finally:
            conn.close()
        return None

    @property
    def cur(self) -> sqlite3.Cursor:
        if self._conn is None:
            raise RuntimeError("Unit of work used outside of its 'with' block.")
        return self._conn.cursor()

    # ---------- Products / stock ----------
    def get_product(self, product_id: int) -> Optional[Product]:
        cur = self.cur
        cur.execute(f"SELECT {rows.PRODUCT_COLUMNS} FROM products WHERE id=?", (int(product_id),))
        r = cur.fetchone()
        return rows.product_from_row(r) if r else None

    def insert_product(
        self,
        name: str,
        barcode: Optional[str],
        sku: Optional[str],
        name_ar: Optional[str],
        description: Optional[str],
        category_id: Optional[int],
        purchase_price: float,
        sale_price: float,
        vat_rate: float,
        min_stock_level: int,
        unit: str,
    ) -> int:
        cur = self.cur
        cur.execute(
            """
            INSERT INTO products (
                barcode, sku, name, name_ar, description, category_id, purchase_price, sale_price,
                vat_rate, stock_quantity, min_stock_level, unit, is_active, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, 1, ?, ?)
            """,
            (
                barcode, sku, name, name_ar, description, category_id, float(purchase_price), float(sale_price),
                float(vat_rate), int(min_stock_level), unit, now_iso(), now_iso(),
            ),
        )
        return int(cur.lastrowid)

    def set_product_stock(self, product_id: int, stock_quantity: int) -> None:
        self.cur.execute(
            "UPDATE products SET stock_quantity=?, updated_at=? WHERE id=?",
            (int(stock_quantity), now_iso(), int(product_id)),
        )

    def set_product_purchase_price(self, product_id: int, purchase_price: float) -> None:
        self.cur.execute(
            "UPDATE products SET purchase_price=?, updated_at=? WHERE id=?",
            (float(purchase_price), now_iso(), int(product_id)),
        )

    def insert_movement(
        self,
        product_id: int,
        movement_type: str,
        quantity: int,
        previous_stock: int,
        new_stock: int,
        reason: Optional[str],
        reference_type: Optional[str],
        reference_id: Optional[int],
        user_id: Optional[int],
    ) -> int:
        cur = self.cur
        cur.execute(
            """
            INSERT INTO stock_movements (
                product_id, type, quantity, previous_stock, new_stock, reason,
                reference_type, reference_id, user_id, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                int(product_id), movement_type, int(quantity), int(previous_stock), int(new_stock), reason,
                reference_type, reference_id, user_id, now_iso(),
            ),
        )
        return int(cur.lastrowid)

    # ---------- Document numbers ----------
    def next_invoice_number(self) -> str:
        cur = self.cur
        cur.execute("SELECT invoice_prefix, invoice_next_number FROM store_config WHERE id=1")
        row = cur.fetchone()
        if not row:
            raise NotFoundError("Store configuration is missing.")
        prefix, seq = str(row[0]), int(row[1])
        cur.execute("UPDATE store_config SET invoice_next_number = invoice_next_number + 1 WHERE id=1")
        return f"{prefix}-{seq:06d}"

    def next_purchase_number(self, year: int) -> str:
        cur = self.cur
        cur.execute("SELECT purchase_next_number FROM store_config WHERE id=1")
        row = cur.fetchone()
        if not row:
            raise NotFoundError("Store configuration is missing.")
        seq = int(row[0])
        cur.execute("UPDATE store_config SET purchase_next_number = purchase_next_number + 1 WHERE id=1")
        return f"PUR-{int(year)}-{seq:05d}"

    # ---------- Sales ----------
    def insert_sale(
        self,
        invoice_number: str,
        user_id: Optional[int],
        client_id: Optional[int],
        sale_date: str,
        subtotal: float,
        discount_amount: float,
        discount_percent: float,
        vat_amount: float,
        total: float,
        amount_paid: float,
        change_amount: float,
        payment_method: str,
        notes: Optional[str],
    ) -> int:
        cur = self.cur
        cur.execute(
            """
            INSERT INTO sales (
                invoice_number, user_id, client_id, sale_date, subtotal, discount_amount, discount_percent,
                vat_amount, total, amount_paid, change_amount, payment_method, status, notes, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'completed', ?, ?)
            """,
            (
                invoice_number, user_id, client_id, sale_date, float(subtotal), float(discount_amount),
                float(discount_percent), float(vat_amount), float(total), float(amount_paid),
                float(change_amount), payment_method, notes, now_iso(),
            ),
        )
        return int(cur.lastrowid)

    def insert_sale_item(
        self,
        sale_id: int,
        product_id: int,
        product_name: str,
        barcode: Optional[str],
        quantity: int,
        unit_price: float,
        discount: float,
        vat_rate: float,
        vat_amount: float,
        total: float,
    ) -> int:
        cur = self.cur
        cur.execute(
            """
            INSERT INTO sale_items (
                sale_id, product_id, product_name, barcode, quantity, unit_price, discount, vat_rate, vat_amount, total
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                int(sale_id), int(product_id), product_name, barcode, int(quantity), float(unit_price),
                float(discount), float(vat_rate), float(vat_amount), float(total),
            ),
        )
        return int(cur.lastrowid)

    def get_sale(self, sale_id: int) -> Optional[Sale]:
        cur = self.cur
        cur.execute(f"SELECT {rows.SALE_COLUMNS} FROM sales WHERE id=?", (int(sale_id),))
        r = cur.fetchone()
        return rows.sale_from_row(r) if r else None

    def get_sale_items(self, sale_id: int) -> list[SaleItem]:
        cur = self.cur
        cur.execute(f"SELECT {rows.SALE_ITEM_COLUMNS} FROM sale_items WHERE sale_id=? ORDER BY id", (int(sale_id),))
        return [rows.sale_item_from_row(r) for r in cur.fetchall()]

    def mark_sale_voided(self, sale_id: int, reason: Optional[str]) -> None:
        self.cur.execute(
            "UPDATE sales SET status='voided', void_reason=? WHERE id=? AND status='completed'",
            (reason, int(sale_id)),
        )

    def insert_payment(
        self,
        reference_type: str,
        reference_id: int,
        amount: float,
        method: str,
        user_id: Optional[int],
        notes: Optional[str] = None,
    ) -> int:
        cur = self.cur
        cur.execute(
            """
            INSERT INTO payments (reference_type, reference_id, amount, method, payment_date, user_id, notes)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (reference_type, int(reference_id), float(amount), method, now_iso(), user_id, notes),
        )
        return int(cur.lastrowid)

    # ---------- Purchases ----------
    def insert_purchase(
        self,
        reference_number: str,
        supplier_id: int,
        user_id: Optional[int],
        purchase_date: str,
        subtotal: float,
        vat_amount: float,
        total: float,
        amount_paid: float,
        notes: Optional[str],
    ) -> int:
        cur = self.cur
        cur.execute(
            """
            INSERT INTO purchases (
                reference_number, supplier_id, user_id, purchase_date, subtotal, vat_amount, total,
                amount_paid, status, notes, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'received', ?, ?)
            """,
            (
                reference_number, int(supplier_id), user_id, purchase_date, float(subtotal), float(vat_amount),
                float(total), float(amount_paid), notes, now_iso(),
            ),
        )
        return int(cur.lastrowid)

    def insert_purchase_item(
        self,
        purchase_id: int,
        product_id: int,
        product_name: str,
        quantity: int,
        unit_price: float,
        vat_rate: float,
        vat_amount: float,
        total: float,
    ) -> int:
        cur = self.cur
        cur.execute(
            """
            INSERT INTO purchase_items (
                purchase_id, product_id, product_name, quantity, unit_price, vat_rate, vat_amount, total
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                int(purchase_id), int(product_id), product_name, int(quantity), float(unit_price),
                float(vat_rate), float(vat_amount), float(total),
            ),
        )
        return int(cur.lastrowid)

    # ---------- Accounts / journal ----------
    def get_account_by_code(self, code: str) -> Optional[Account]:
        cur = self.cur
        cur.execute(f"SELECT {rows.ACCOUNT_COLUMNS} FROM accounts WHERE code=? AND is_active=1", (str(code),))
        r = cur.fetchone()
        return rows.account_from_row(r) if r else None

    def get_account(self, account_id: int) -> Optional[Account]:
        cur = self.cur
        cur.execute(f"SELECT {rows.ACCOUNT_COLUMNS} FROM accounts WHERE id=? AND is_active=1", (int(account_id),))
        r = cur.fetchone()
        return rows.account_from_row(r) if r else None

    def insert_journal_entry(
        self,
        batch_id: str,
        entry_date: str,
        account_id: int,
        debit: float,
        credit: float,
        description: Optional[str],
        reference_type: Optional[str],
        reference_id: Optional[int],
        user_id: Optional[int],
    ) -> int:
        cur = self.cur
        cur.execute(
            """
            INSERT INTO journal_entries (
                batch_id, entry_date, account_id, debit, credit, description,
                reference_type, reference_id, user_id, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                batch_id, entry_date, int(account_id), float(debit), float(credit), description,
                reference_type, reference_id, user_id, now_iso(),
            ),
        )
        return int(cur.lastrowid)

    def adjust_account_balance(self, account_id: int, delta: float) -> None:
        self.cur.execute("UPDATE accounts SET balance = balance + ? WHERE id=?", (float(delta), int(account_id)))

    def journal_entries_for(self, reference_type: str, reference_id: int) -> list[JournalEntry]:
        cur = self.cur
        cur.execute(
            f"""
            SELECT {rows.JOURNAL_COLUMNS}
            FROM journal_entries j
            JOIN accounts a ON a.id = j.account_id
            WHERE j.reference_type=? AND j.reference_id=?
            ORDER BY j.id
            """,
            (reference_type, int(reference_id)),
        )
        return [rows.journal_from_row(r) for r in cur.fetchall()]

    # ---------- Counterparties ----------
    def get_client(self, client_id: int) -> Optional[Client]:
        cur = self.cur
        cur.execute(f"SELECT {rows.CLIENT_COLUMNS} FROM clients WHERE id=?", (int(client_id),))
        r = cur.fetchone()
        return rows.client_from_row(r) if r else None

    def adjust_client_balance(self, client_id: int, delta: float) -> None:
        self.cur.execute("UPDATE clients SET balance = balance + ? WHERE id=?", (float(delta), int(client_id)))

    def get_supplier(self, supplier_id: int) -> Optional[Supplier]:
        cur = self.cur
        cur.execute(f"SELECT {rows.SUPPLIER_COLUMNS} FROM suppliers WHERE id=?", (int(supplier_id),))
        r = cur.fetchone()
        return rows.supplier_from_row(r) if r else None

    def adjust_supplier_balance(self, supplier_id: int, delta: float) -> None:
        self.cur.execute("UPDATE suppliers SET balance = balance + ? WHERE id=?", (float(delta), int(supplier_id)))

    # ---------- Expenses ----------
    def get_expense_category(self, category_id: int) -> Optional[ExpenseCategory]:
        cur = self.cur
        cur.execute(f"SELECT {rows.EXPENSE_CATEGORY_COLUMNS} FROM expense_categories WHERE id=?", (int(category_id),))
        r = cur.fetchone()
        return rows.expense_category_from_row(r) if r else None

    def insert_expense(
        self,
        category_id: Optional[int],
        amount: float,
        description: str,
        expense_date: str,
        payment_method: str,
        reference: Optional[str],
        user_id: Optional[int],
    ) -> int:
        cur = self.cur
        cur.execute(
            """
            INSERT INTO expenses (
                category_id, amount, description, expense_date, payment_method, reference, user_id, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (category_id, float(amount), description, expense_date, payment_method, reference, user_id, now_iso()),
        )
        return int(cur.lastrowid)

    # ---------- Audit ----------
    def insert_audit(
        self,
        action: str,
        entity_type: Optional[str],
        entity_id: Optional[int],
        details: Optional[str],
        user_id: Optional[int],
    ) -> int:
        cur = self.cur
        cur.execute(
            """
            INSERT INTO audit_log (user_id, action, entity_type, entity_id, details, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (user_id, action, entity_type, entity_id, details, now_iso()),
        )
        return int(cur.lastrowid)
