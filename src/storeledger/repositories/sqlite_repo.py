from __future__ import annotations

import sqlite3
import hashlib
import hmac
import logging
import os
import secrets
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional

from storeledger.domain.models import (
    Account,
    Client,
    Expense,
    ExpenseCategory,
    JournalEntry,
    Payment,
    Product,
    Purchase,
    PurchaseItem,
    Sale,
    SaleItem,
    StockMovement,
    StoreSettings,
    Supplier,
    User,
)
from storeledger.repositories import rows
from storeledger.repositories.unit_of_work import SqliteUnitOfWork, now_iso

log = logging.getLogger(__name__)

DEFAULT_ACCOUNTS = [
    # code, name, name_ar, type
    ("1000", "Caisse", "الصندوق", "asset"),
    ("1100", "Banque", "البنك", "asset"),
    ("1200", "Clients", "العملاء", "asset"),
    ("1300", "Stock", "المخزون", "asset"),
    ("1400", "TVA déductible", "الرسم على القيمة المضافة القابل للخصم", "asset"),
    ("2000", "Fournisseurs", "الموردون", "liability"),
    ("2100", "TVA à payer", "الرسم على القيمة المضافة المستحق", "liability"),
    ("3000", "Capital", "رأس المال", "equity"),
    ("4000", "Ventes", "المبيعات", "revenue"),
    ("5000", "Coût des marchandises", "تكلفة البضائع", "expense"),
    ("6000", "Charges générales", "المصاريف العامة", "expense"),
    ("6100", "Loyer", "الإيجار", "expense"),
    ("6200", "Salaires", "الرواتب", "expense"),
    ("6300", "Électricité", "الكهرباء", "expense"),
]

DEFAULT_EXPENSE_CATEGORIES = [
    ("Loyer", "الإيجار", "6100"),
    ("Salaires", "الرواتب", "6200"),
    ("Électricité", "الكهرباء", "6300"),
    ("Eau", "الماء", "6000"),
    ("Transport", "النقل", "6000"),
    ("Fournitures", "اللوازم", "6000"),
]

APPEND_ONLY_TABLES = ("stock_movements", "journal_entries", "audit_log")


class SqliteLedgerStore:
    """Owns the SQLite file: schema, seed data, reads and plain CRUD writes.

    Multi-step business events go through :meth:`unit_of_work` instead.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def unit_of_work(self) -> SqliteUnitOfWork:
        return SqliteUnitOfWork(self.db_path)

    def init_db(self) -> None:
        self.run_migrations()
        self._ensure_bootstrap_admin()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_indexes_and_append_only),
                (3, self._migration_v3_auth_hardening),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
                log.info("migration_applied version=%s", version)
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def schema_version(self) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
        version = int(cur.fetchone()[0])
        conn.close()
        return version

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT NOT NULL UNIQUE,
                pin TEXT NOT NULL,
                role TEXT NOT NULL CHECK(role IN ('admin','user')),
                active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS store_config (
                id INTEGER PRIMARY KEY CHECK(id = 1),
                store_name TEXT NOT NULL DEFAULT 'Mon Magasin',
                store_name_ar TEXT,
                address TEXT,
                phone TEXT,
                tax_id TEXT,
                currency TEXT NOT NULL DEFAULT 'DZD',
                vat_rate REAL NOT NULL DEFAULT 19 CHECK(vat_rate >= 0),
                invoice_prefix TEXT NOT NULL DEFAULT 'INV',
                invoice_next_number INTEGER NOT NULL DEFAULT 1 CHECK(invoice_next_number >= 1),
                purchase_next_number INTEGER NOT NULL DEFAULT 1 CHECK(purchase_next_number >= 1)
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS product_categories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                name_ar TEXT,
                parent_id INTEGER REFERENCES product_categories(id)
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS products (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                barcode TEXT UNIQUE,
                sku TEXT UNIQUE,
                name TEXT NOT NULL,
                name_ar TEXT,
                description TEXT,
                category_id INTEGER REFERENCES product_categories(id),
                purchase_price REAL NOT NULL DEFAULT 0 CHECK(purchase_price >= 0),
                sale_price REAL NOT NULL DEFAULT 0 CHECK(sale_price >= 0),
                vat_rate REAL NOT NULL DEFAULT 19 CHECK(vat_rate >= 0),
                stock_quantity INTEGER NOT NULL DEFAULT 0,
                min_stock_level INTEGER NOT NULL DEFAULT 5 CHECK(min_stock_level >= 0),
                unit TEXT NOT NULL DEFAULT 'unit',
                is_active INTEGER NOT NULL DEFAULT 1 CHECK(is_active IN (0,1)),
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                updated_at TEXT
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS stock_movements (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                product_id INTEGER NOT NULL REFERENCES products(id),
                type TEXT NOT NULL CHECK(type IN ('in','out','adjustment')),
                quantity INTEGER NOT NULL CHECK(quantity >= 0),
                previous_stock INTEGER NOT NULL,
                new_stock INTEGER NOT NULL CHECK(new_stock >= 0),
                reason TEXT,
                reference_type TEXT,
                reference_id INTEGER,
                user_id INTEGER REFERENCES users(id),
                created_at TEXT NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS accounts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                code TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                name_ar TEXT,
                type TEXT NOT NULL CHECK(type IN ('asset','liability','equity','revenue','expense')),
                parent_code TEXT,
                balance REAL NOT NULL DEFAULT 0,
                is_system INTEGER NOT NULL DEFAULT 0,
                is_active INTEGER NOT NULL DEFAULT 1
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS journal_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                batch_id TEXT NOT NULL,
                entry_date TEXT NOT NULL,
                account_id INTEGER NOT NULL REFERENCES accounts(id),
                debit REAL NOT NULL DEFAULT 0 CHECK(debit >= 0),
                credit REAL NOT NULL DEFAULT 0 CHECK(credit >= 0),
                description TEXT,
                reference_type TEXT,
                reference_id INTEGER,
                user_id INTEGER REFERENCES users(id),
                created_at TEXT NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS clients (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                phone TEXT,
                email TEXT,
                address TEXT,
                tax_id TEXT,
                balance REAL NOT NULL DEFAULT 0,
                credit_limit REAL NOT NULL DEFAULT 0 CHECK(credit_limit >= 0),
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS suppliers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                phone TEXT,
                email TEXT,
                address TEXT,
                tax_id TEXT,
                balance REAL NOT NULL DEFAULT 0,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS sales (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                invoice_number TEXT NOT NULL UNIQUE,
                user_id INTEGER REFERENCES users(id),
                client_id INTEGER REFERENCES clients(id),
                sale_date TEXT NOT NULL,
                subtotal REAL NOT NULL,
                discount_amount REAL NOT NULL DEFAULT 0,
                discount_percent REAL NOT NULL DEFAULT 0,
                vat_amount REAL NOT NULL DEFAULT 0,
                total REAL NOT NULL,
                amount_paid REAL NOT NULL DEFAULT 0,
                change_amount REAL NOT NULL DEFAULT 0,
                payment_method TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'completed' CHECK(status IN ('completed','pending','voided')),
                notes TEXT,
                void_reason TEXT,
                created_at TEXT NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS sale_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sale_id INTEGER NOT NULL REFERENCES sales(id) ON DELETE CASCADE,
                product_id INTEGER NOT NULL REFERENCES products(id),
                product_name TEXT NOT NULL,
                barcode TEXT,
                quantity INTEGER NOT NULL CHECK(quantity > 0),
                unit_price REAL NOT NULL CHECK(unit_price >= 0),
                discount REAL NOT NULL DEFAULT 0 CHECK(discount >= 0),
                vat_rate REAL NOT NULL DEFAULT 0,
                vat_amount REAL NOT NULL DEFAULT 0,
                total REAL NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS payments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                reference_type TEXT NOT NULL,
                reference_id INTEGER NOT NULL,
                amount REAL NOT NULL CHECK(amount >= 0),
                method TEXT NOT NULL CHECK(method IN ('cash','card','check','credit','bank_transfer')),
                payment_date TEXT NOT NULL,
                user_id INTEGER REFERENCES users(id),
                notes TEXT
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS purchases (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                reference_number TEXT NOT NULL UNIQUE,
                supplier_id INTEGER NOT NULL REFERENCES suppliers(id),
                user_id INTEGER REFERENCES users(id),
                purchase_date TEXT NOT NULL,
                subtotal REAL NOT NULL,
                vat_amount REAL NOT NULL DEFAULT 0,
                total REAL NOT NULL,
                amount_paid REAL NOT NULL DEFAULT 0,
                status TEXT NOT NULL DEFAULT 'received' CHECK(status IN ('received','pending','cancelled')),
                notes TEXT,
                created_at TEXT NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS purchase_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                purchase_id INTEGER NOT NULL REFERENCES purchases(id) ON DELETE CASCADE,
                product_id INTEGER NOT NULL REFERENCES products(id),
                product_name TEXT NOT NULL,
                quantity INTEGER NOT NULL CHECK(quantity > 0),
                unit_price REAL NOT NULL CHECK(unit_price >= 0),
                vat_rate REAL NOT NULL DEFAULT 0,
                vat_amount REAL NOT NULL DEFAULT 0,
                total REAL NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS expense_categories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                name_ar TEXT,
                account_code TEXT
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS expenses (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                category_id INTEGER REFERENCES expense_categories(id),
                amount REAL NOT NULL CHECK(amount > 0),
                description TEXT NOT NULL,
                expense_date TEXT NOT NULL,
                payment_method TEXT NOT NULL,
                reference TEXT,
                user_id INTEGER REFERENCES users(id),
                created_at TEXT NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS audit_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER REFERENCES users(id),
                action TEXT NOT NULL,
                entity_type TEXT,
                entity_id INTEGER,
                details TEXT,
                created_at TEXT NOT NULL
            )
            """
        )

        self._seed_defaults(cur)

    def _seed_defaults(self, cur: sqlite3.Cursor) -> None:
        cur.execute("INSERT OR IGNORE INTO store_config (id) VALUES (1)")
        cur.executemany(
            """
            INSERT OR IGNORE INTO accounts (code, name, name_ar, type, is_system)
            VALUES (?, ?, ?, ?, 1)
            """,
            DEFAULT_ACCOUNTS,
        )
        cur.executemany(
            "INSERT OR IGNORE INTO expense_categories (name, name_ar, account_code) VALUES (?, ?, ?)",
            DEFAULT_EXPENSE_CATEGORIES,
        )

    def _migration_v2_indexes_and_append_only(self, cur: sqlite3.Cursor) -> None:
        cur.execute("CREATE INDEX IF NOT EXISTS ix_movements_product ON stock_movements(product_id, id)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_journal_reference ON journal_entries(reference_type, reference_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_journal_batch ON journal_entries(batch_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_journal_date ON journal_entries(entry_date)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_sales_date ON sales(sale_date)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_purchases_date ON purchases(purchase_date)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_payments_reference ON payments(reference_type, reference_id)")

        # Ledger facts are immutable once written.
        for table in APPEND_ONLY_TABLES:
            for event in ("UPDATE", "DELETE"):
                cur.execute(
                    f"""
                    CREATE TRIGGER IF NOT EXISTS trg_{table}_no_{event.lower()}
                    BEFORE {event} ON {table}
                    BEGIN
                        SELECT RAISE(ABORT, '{table} is append-only');
                    END
                    """
                )

    def _migration_v3_auth_hardening(self, cur: sqlite3.Cursor) -> None:
        self._add_column_if_missing(cur, "users", "failed_attempts", "INTEGER NOT NULL DEFAULT 0")
        self._add_column_if_missing(cur, "users", "locked_until", "TEXT")
        self._add_column_if_missing(cur, "users", "must_change_pin", "INTEGER NOT NULL DEFAULT 0")

        cur.execute("UPDATE users SET must_change_pin = 1 WHERE username = 'admin'")

    def _ensure_bootstrap_admin(self) -> None:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) FROM users WHERE active=1")
        active_users = int(cur.fetchone()[0])
        if active_users > 0:
            conn.close()
            return

        bootstrap_pin = os.environ.get("STORELEDGER_BOOTSTRAP_ADMIN_PIN", "").strip() or secrets.token_urlsafe(12)
        # A deactivated admin row is reset rather than duplicated.
        cur.execute(
            """
            INSERT INTO users (username, pin, role, active, must_change_pin)
            VALUES ('admin', ?, 'admin', 1, 1)
            ON CONFLICT(username) DO UPDATE SET
                pin=excluded.pin, role='admin', active=1, must_change_pin=1, failed_attempts=0, locked_until=NULL
            """,
            (self._hash_pin(bootstrap_pin),),
        )
        conn.commit()
        conn.close()

        # One-time PIN handed to the operator through a file only the owner can read.
        pin_file = Path(self.db_path).parent / ".admin_bootstrap_pin"
        pin_file.write_text(bootstrap_pin + "\n", encoding="utf-8")
        try:
            pin_file.chmod(0o600)
        except OSError as exc:
            log.warning("bootstrap_pin_chmod_failed path=%s error=%s", pin_file, exc)

    def _add_column_if_missing(self, cur: sqlite3.Cursor, table: str, column: str, definition: str) -> None:
        cur.execute(f"PRAGMA table_info({table})")
        cols = {str(r[1]) for r in cur.fetchall()}
        if column in cols:
            return
        cur.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    def integrity_check(self) -> str:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("PRAGMA integrity_check")
        row = cur.fetchone()
        conn.close()
        return str(row[0]) if row else "unknown"

    # ---------- Users ----------
    def list_users(self) -> list[User]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "SELECT id, username, role, active, COALESCE(must_change_pin, 0) FROM users WHERE active=1 ORDER BY username"
        )
        result = cur.fetchall()
        conn.close()
        return [
            User(id=int(r[0]), username=str(r[1]), role=str(r[2]), active=int(r[3]), must_change_pin=int(r[4]))
            for r in result
        ]

    def get_user(self, user_id: int) -> Optional[User]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "SELECT id, username, role, active, COALESCE(must_change_pin, 0) FROM users WHERE active=1 AND id=?",
            (int(user_id),),
        )
        r = cur.fetchone()
        conn.close()
        if not r:
            return None
        return User(id=int(r[0]), username=str(r[1]), role=str(r[2]), active=int(r[3]), must_change_pin=int(r[4]))

    def _get_user_row(self, cur: sqlite3.Cursor, username: str):
        cur.execute(
            """
            SELECT id, username, role, active, pin,
                   COALESCE(failed_attempts, 0), locked_until, COALESCE(must_change_pin, 0)
            FROM users
            WHERE active=1 AND username=?
            """,
            (username,),
        )
        return cur.fetchone()

    def get_user_security_state(self, username: str) -> tuple[int, Optional[str]] | None:
        conn = self._conn()
        cur = conn.cursor()
        row = self._get_user_row(cur, username)
        conn.close()
        if not row:
            return None
        return int(row[5]), (str(row[6]) if row[6] is not None else None)

    def record_login_failure(self, username: str, max_attempts: int, lockout_seconds: int) -> tuple[int, Optional[str]]:
        conn = self._conn()
        cur = conn.cursor()
        row = self._get_user_row(cur, username)
        if not row:
            conn.close()
            return 0, None

        attempts = int(row[5]) + 1
        locked_until = None
        if attempts >= int(max_attempts):
            attempts = 0
            cur.execute(
                "UPDATE users SET failed_attempts=?, locked_until=datetime('now', ?) WHERE id=?",
                (attempts, f"+{int(lockout_seconds)} seconds", int(row[0])),
            )
            cur.execute("SELECT locked_until FROM users WHERE id=?", (int(row[0]),))
            locked_until = str(cur.fetchone()[0])
        else:
            cur.execute("UPDATE users SET failed_attempts=? WHERE id=?", (attempts, int(row[0])))
        conn.commit()
        conn.close()
        return attempts, locked_until

    def clear_login_guard(self, user_id: int) -> None:
        conn = self._conn()
        conn.execute("UPDATE users SET failed_attempts=0, locked_until=NULL WHERE id=?", (int(user_id),))
        conn.commit()
        conn.close()

    def authenticate_user(self, username: str, pin: str) -> Optional[User]:
        conn = self._conn()
        cur = conn.cursor()
        row = self._get_user_row(cur, username)
        if row and self._verify_pin(str(row[4]), pin):
            cur.execute("UPDATE users SET failed_attempts=0, locked_until=NULL WHERE id=?", (int(row[0]),))
            conn.commit()
            conn.close()
            return User(
                id=int(row[0]),
                username=str(row[1]),
                role=str(row[2]),
                active=int(row[3]),
                must_change_pin=int(row[7]),
            )
        conn.close()
        return None

    def create_user(self, username: str, pin: str, role: str, must_change_pin: int = 0) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO users (username, pin, role, active, must_change_pin)
            VALUES (?, ?, ?, 1, ?)
            """,
            (username, self._hash_pin(pin), role, int(must_change_pin)),
        )
        uid = int(cur.lastrowid)
        conn.commit()
        conn.close()
        return uid

    def change_user_pin(self, user_id: int, current_pin: str, new_pin: str) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT pin FROM users WHERE id=? AND active=1", (int(user_id),))
        row = cur.fetchone()
        if not row or not self._verify_pin(str(row[0]), current_pin):
            conn.close()
            return False

        cur.execute("UPDATE users SET pin=?, must_change_pin=0 WHERE id=?", (self._hash_pin(new_pin), int(user_id)))
        conn.commit()
        conn.close()
        return True

    @staticmethod
    def _hash_pin(pin: str, *, rounds: int = 200_000, salt: str | None = None) -> str:
        salt = salt or secrets.token_hex(16)
        digest = hashlib.pbkdf2_hmac("sha256", pin.encode("utf-8"), bytes.fromhex(salt), rounds).hex()
        return f"pbkdf2_sha256${rounds}${salt}${digest}"

    @staticmethod
    def _verify_pin(stored: str, provided: str) -> bool:
        if not stored.startswith("pbkdf2_sha256$"):
            return False
        try:
            _algo, rounds_s, salt, digest = stored.split("$", 3)
            rounds = int(rounds_s)
            salt_bytes = bytes.fromhex(salt)
        except ValueError:
            return False
        candidate = hashlib.pbkdf2_hmac("sha256", provided.encode("utf-8"), salt_bytes, rounds).hex()
        return hmac.compare_digest(candidate, digest)

    # ---------- Store settings ----------
    def get_settings(self) -> StoreSettings:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.SETTINGS_COLUMNS} FROM store_config WHERE id=1")
        r = cur.fetchone()
        conn.close()
        return rows.settings_from_row(r)

    def save_settings(self, settings: StoreSettings) -> None:
        # Document counters are owned by the unit of work and never written here.
        conn = self._conn()
        conn.execute(
            """
            UPDATE store_config
            SET store_name=?, store_name_ar=?, address=?, phone=?, tax_id=?, currency=?, vat_rate=?, invoice_prefix=?
            WHERE id=1
            """,
            (
                settings.store_name, settings.store_name_ar, settings.address, settings.phone, settings.tax_id,
                settings.currency, float(settings.vat_rate), settings.invoice_prefix,
            ),
        )
        conn.commit()
        conn.close()

    # ---------- Products ----------
    def _one_product(self, where: str, params: tuple) -> Optional[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.PRODUCT_COLUMNS} FROM products WHERE {where}", params)
        r = cur.fetchone()
        conn.close()
        return rows.product_from_row(r) if r else None

    def get_product(self, product_id: int) -> Optional[Product]:
        return self._one_product("id=?", (int(product_id),))

    def get_product_by_barcode(self, barcode: str) -> Optional[Product]:
        return self._one_product("barcode=?", (barcode,))

    def get_product_by_sku(self, sku: str) -> Optional[Product]:
        return self._one_product("sku=?", (sku,))

    def list_products(self, search: str | None = None, include_inactive: bool = False) -> list[Product]:
        clauses = []
        params: list = []
        if not include_inactive:
            clauses.append("is_active=1")
        if search:
            clauses.append("(name LIKE ? OR name_ar LIKE ? OR barcode LIKE ? OR sku LIKE ?)")
            like = f"%{search}%"
            params.extend([like, like, like, like])
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.PRODUCT_COLUMNS} FROM products {where} ORDER BY name", tuple(params))
        result = cur.fetchall()
        conn.close()
        return [rows.product_from_row(r) for r in result]

    def list_low_stock(self) -> list[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT {rows.PRODUCT_COLUMNS}
            FROM products
            WHERE is_active=1 AND stock_quantity <= min_stock_level
            ORDER BY (stock_quantity - min_stock_level) ASC, name
            """
        )
        result = cur.fetchall()
        conn.close()
        return [rows.product_from_row(r) for r in result]

    def save_product(self, product: Product) -> bool:
        """Write every editable column of ``product``; stock is left to the stock ledger."""
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            UPDATE products
            SET barcode=?, sku=?, name=?, name_ar=?, description=?, category_id=?, purchase_price=?,
                sale_price=?, vat_rate=?, min_stock_level=?, unit=?, is_active=?, updated_at=?
            WHERE id=?
            """,
            (
                product.barcode, product.sku, product.name, product.name_ar, product.description,
                product.category_id, float(product.purchase_price), float(product.sale_price),
                float(product.vat_rate), int(product.min_stock_level), product.unit, int(product.is_active),
                now_iso(), int(product.id),
            ),
        )
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return changed

    def deactivate_product(self, product_id: int) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("UPDATE products SET is_active=0, updated_at=? WHERE id=? AND is_active=1", (now_iso(), int(product_id)))
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return changed

    def list_movements(self, product_id: int | None = None, limit: int | None = None) -> list[StockMovement]:
        sql = f"SELECT {rows.MOVEMENT_COLUMNS} FROM stock_movements"
        params: list = []
        if product_id is not None:
            sql += " WHERE product_id=?"
            params.append(int(product_id))
        sql += " ORDER BY id"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(sql, tuple(params))
        result = cur.fetchall()
        conn.close()
        return [rows.movement_from_row(r) for r in result]

    # ---------- Clients / suppliers ----------
    def add_client(self, name: str, phone=None, email=None, address=None, tax_id=None, credit_limit: float = 0.0) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "INSERT INTO clients (name, phone, email, address, tax_id, credit_limit) VALUES (?, ?, ?, ?, ?, ?)",
            (name, phone, email, address, tax_id, float(credit_limit)),
        )
        cid = int(cur.lastrowid)
        conn.commit()
        conn.close()
        return cid

    def get_client(self, client_id: int) -> Optional[Client]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.CLIENT_COLUMNS} FROM clients WHERE id=?", (int(client_id),))
        r = cur.fetchone()
        conn.close()
        return rows.client_from_row(r) if r else None

    def list_clients(self, include_inactive: bool = False) -> list[Client]:
        where = "" if include_inactive else "WHERE is_active=1"
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.CLIENT_COLUMNS} FROM clients {where} ORDER BY name")
        result = cur.fetchall()
        conn.close()
        return [rows.client_from_row(r) for r in result]

    def save_client(self, client: Client) -> bool:
        # balance is a derived figure and is only moved by posted events
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            UPDATE clients SET name=?, phone=?, email=?, address=?, tax_id=?, credit_limit=?, is_active=?
            WHERE id=?
            """,
            (
                client.name, client.phone, client.email, client.address, client.tax_id,
                float(client.credit_limit), int(client.is_active), int(client.id),
            ),
        )
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return changed

    def add_supplier(self, name: str, phone=None, email=None, address=None, tax_id=None) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "INSERT INTO suppliers (name, phone, email, address, tax_id) VALUES (?, ?, ?, ?, ?)",
            (name, phone, email, address, tax_id),
        )
        sid = int(cur.lastrowid)
        conn.commit()
        conn.close()
        return sid

    def get_supplier(self, supplier_id: int) -> Optional[Supplier]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.SUPPLIER_COLUMNS} FROM suppliers WHERE id=?", (int(supplier_id),))
        r = cur.fetchone()
        conn.close()
        return rows.supplier_from_row(r) if r else None

    def list_suppliers(self, include_inactive: bool = False) -> list[Supplier]:
        where = "" if include_inactive else "WHERE is_active=1"
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.SUPPLIER_COLUMNS} FROM suppliers {where} ORDER BY name")
        result = cur.fetchall()
        conn.close()
        return [rows.supplier_from_row(r) for r in result]

    def save_supplier(self, supplier: Supplier) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "UPDATE suppliers SET name=?, phone=?, email=?, address=?, tax_id=?, is_active=? WHERE id=?",
            (
                supplier.name, supplier.phone, supplier.email, supplier.address, supplier.tax_id,
                int(supplier.is_active), int(supplier.id),
            ),
        )
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return changed

    # ---------- Sales ----------
    def get_sale(self, sale_id: int) -> Optional[Sale]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.SALE_COLUMNS} FROM sales WHERE id=?", (int(sale_id),))
        r = cur.fetchone()
        conn.close()
        return rows.sale_from_row(r) if r else None

    def get_sale_by_invoice(self, invoice_number: str) -> Optional[Sale]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.SALE_COLUMNS} FROM sales WHERE invoice_number=?", (invoice_number,))
        r = cur.fetchone()
        conn.close()
        return rows.sale_from_row(r) if r else None

    def list_sale_items(self, sale_id: int) -> list[SaleItem]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.SALE_ITEM_COLUMNS} FROM sale_items WHERE sale_id=? ORDER BY id", (int(sale_id),))
        result = cur.fetchall()
        conn.close()
        return [rows.sale_item_from_row(r) for r in result]

    def list_sales(
        self,
        start_iso: str | None = None,
        end_iso: str | None = None,
        status: str | None = None,
        client_id: int | None = None,
    ) -> list[Sale]:
        clauses = []
        params: list = []
        if start_iso:
            clauses.append("sale_date >= ?")
            params.append(start_iso)
        if end_iso:
            clauses.append("sale_date <= ?")
            params.append(end_iso)
        if status:
            clauses.append("status = ?")
            params.append(status)
        if client_id is not None:
            clauses.append("client_id = ?")
            params.append(int(client_id))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.SALE_COLUMNS} FROM sales {where} ORDER BY sale_date, id", tuple(params))
        result = cur.fetchall()
        conn.close()
        return [rows.sale_from_row(r) for r in result]

    def list_payments(self, reference_type: str, reference_id: int) -> list[Payment]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"SELECT {rows.PAYMENT_COLUMNS} FROM payments WHERE reference_type=? AND reference_id=? ORDER BY id",
            (reference_type, int(reference_id)),
        )
        result = cur.fetchall()
        conn.close()
        return [rows.payment_from_row(r) for r in result]

    def sales_totals_by_method(self, start_iso: str, end_iso: str) -> list[tuple[str, int, float]]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT payment_method, COUNT(*), COALESCE(SUM(total), 0)
            FROM sales
            WHERE status='completed' AND sale_date >= ? AND sale_date <= ?
            GROUP BY payment_method
            ORDER BY payment_method
            """,
            (start_iso, end_iso),
        )
        result = cur.fetchall()
        conn.close()
        return [(str(r[0]), int(r[1]), float(r[2])) for r in result]

    # ---------- Purchases ----------
    def get_purchase(self, purchase_id: int) -> Optional[Purchase]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.PURCHASE_COLUMNS} FROM purchases WHERE id=?", (int(purchase_id),))
        r = cur.fetchone()
        conn.close()
        return rows.purchase_from_row(r) if r else None

    def list_purchase_items(self, purchase_id: int) -> list[PurchaseItem]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"SELECT {rows.PURCHASE_ITEM_COLUMNS} FROM purchase_items WHERE purchase_id=? ORDER BY id",
            (int(purchase_id),),
        )
        result = cur.fetchall()
        conn.close()
        return [rows.purchase_item_from_row(r) for r in result]

    def list_purchases(
        self,
        start_iso: str | None = None,
        end_iso: str | None = None,
        supplier_id: int | None = None,
    ) -> list[Purchase]:
        clauses = []
        params: list = []
        if start_iso:
            clauses.append("purchase_date >= ?")
            params.append(start_iso)
        if end_iso:
            clauses.append("purchase_date <= ?")
            params.append(end_iso)
        if supplier_id is not None:
            clauses.append("supplier_id = ?")
            params.append(int(supplier_id))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.PURCHASE_COLUMNS} FROM purchases {where} ORDER BY purchase_date, id", tuple(params))
        result = cur.fetchall()
        conn.close()
        return [rows.purchase_from_row(r) for r in result]

    # ---------- Accounts / journal ----------
    def list_accounts(self) -> list[Account]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.ACCOUNT_COLUMNS} FROM accounts ORDER BY code")
        result = cur.fetchall()
        conn.close()
        return [rows.account_from_row(r) for r in result]

    def get_account_by_code(self, code: str) -> Optional[Account]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.ACCOUNT_COLUMNS} FROM accounts WHERE code=?", (str(code),))
        r = cur.fetchone()
        conn.close()
        return rows.account_from_row(r) if r else None

    def add_account(self, code: str, name: str, account_type: str, name_ar: str | None = None,
                    parent_code: str | None = None) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "INSERT INTO accounts (code, name, name_ar, type, parent_code, is_system) VALUES (?, ?, ?, ?, ?, 0)",
            (code, name, name_ar, account_type, parent_code),
        )
        aid = int(cur.lastrowid)
        conn.commit()
        conn.close()
        return aid

    def deactivate_account(self, code: str) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("UPDATE accounts SET is_active=0 WHERE code=?", (code,))
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return changed

    def list_journal(
        self,
        reference_type: str | None = None,
        reference_id: int | None = None,
        account_code: str | None = None,
        start_iso: str | None = None,
        end_iso: str | None = None,
    ) -> list[JournalEntry]:
        clauses = []
        params: list = []
        if reference_type:
            clauses.append("j.reference_type = ?")
            params.append(reference_type)
        if reference_id is not None:
            clauses.append("j.reference_id = ?")
            params.append(int(reference_id))
        if account_code:
            clauses.append("a.code = ?")
            params.append(account_code)
        if start_iso:
            clauses.append("j.entry_date >= ?")
            params.append(start_iso)
        if end_iso:
            clauses.append("j.entry_date <= ?")
            params.append(end_iso)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT {rows.JOURNAL_COLUMNS}
            FROM journal_entries j
            JOIN accounts a ON a.id = j.account_id
            {where}
            ORDER BY j.entry_date, j.id
            """,
            tuple(params),
        )
        result = cur.fetchall()
        conn.close()
        return [rows.journal_from_row(r) for r in result]

    def account_activity(self, start_iso: str | None = None, end_iso: str | None = None) -> list[tuple[str, str, str, float, float]]:
        """Per-account (code, name, type, total debit, total credit) over a date window."""
        clauses = []
        params: list = []
        if start_iso:
            clauses.append("j.entry_date >= ?")
            params.append(start_iso)
        if end_iso:
            clauses.append("j.entry_date <= ?")
            params.append(end_iso)
        on_extra = f" AND {' AND '.join(clauses)}" if clauses else ""
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT a.code, a.name, a.type, COALESCE(SUM(j.debit), 0), COALESCE(SUM(j.credit), 0)
            FROM accounts a
            LEFT JOIN journal_entries j ON j.account_id = a.id{on_extra}
            GROUP BY a.id
            ORDER BY a.code
            """,
            tuple(params),
        )
        result = cur.fetchall()
        conn.close()
        return [(str(r[0]), str(r[1]), str(r[2]), float(r[3]), float(r[4])) for r in result]

    def journal_batch_totals(self) -> list[tuple[str, Optional[str], Optional[int], float, float]]:
        """(batch id, reference type, reference id, Σdebit, Σcredit) for every posted batch."""
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT batch_id, MIN(reference_type), MIN(reference_id), SUM(debit), SUM(credit)
            FROM journal_entries
            GROUP BY batch_id
            ORDER BY MIN(id)
            """
        )
        result = cur.fetchall()
        conn.close()
        return [
            (str(r[0]), (str(r[1]) if r[1] is not None else None), (int(r[2]) if r[2] is not None else None),
             float(r[3]), float(r[4]))
            for r in result
        ]

    def account_balance_drift(self) -> list[tuple[str, float, float]]:
        """Accounts whose cached balance differs from Σ(debit - credit) of their lines."""
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT a.code, a.balance, COALESCE(SUM(j.debit - j.credit), 0) AS computed
            FROM accounts a
            LEFT JOIN journal_entries j ON j.account_id = a.id
            GROUP BY a.id
            HAVING ABS(a.balance - computed) > 0.005
            ORDER BY a.code
            """
        )
        result = cur.fetchall()
        conn.close()
        return [(str(r[0]), float(r[1]), float(r[2])) for r in result]

    # ---------- Expenses ----------
    def list_expense_categories(self) -> list[ExpenseCategory]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.EXPENSE_CATEGORY_COLUMNS} FROM expense_categories ORDER BY name")
        result = cur.fetchall()
        conn.close()
        return [rows.expense_category_from_row(r) for r in result]

    def get_expense_category_by_name(self, name: str) -> Optional[ExpenseCategory]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.EXPENSE_CATEGORY_COLUMNS} FROM expense_categories WHERE name=?", (name,))
        r = cur.fetchone()
        conn.close()
        return rows.expense_category_from_row(r) if r else None

    def get_expense(self, expense_id: int) -> Optional[Expense]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.EXPENSE_COLUMNS} FROM expenses WHERE id=?", (int(expense_id),))
        r = cur.fetchone()
        conn.close()
        return rows.expense_from_row(r) if r else None

    def list_expenses(self, start_iso: str | None = None, end_iso: str | None = None) -> list[Expense]:
        clauses = []
        params: list = []
        if start_iso:
            clauses.append("expense_date >= ?")
            params.append(start_iso)
        if end_iso:
            clauses.append("expense_date <= ?")
            params.append(end_iso)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {rows.EXPENSE_COLUMNS} FROM expenses {where} ORDER BY expense_date, id", tuple(params))
        result = cur.fetchall()
        conn.close()
        return [rows.expense_from_row(r) for r in result]

    # ---------- Audit ----------
    def record_audit(
        self,
        action: str,
        entity_type: str | None = None,
        entity_id: int | None = None,
        details: str | None = None,
        user_id: int | None = None,
    ) -> int:
        with self.unit_of_work() as uow:
            return uow.insert_audit(action, entity_type, entity_id, details, user_id)

    def list_audit(self, action: str | None = None, limit: int = 100) -> list[tuple[int, Optional[int], str, Optional[str], Optional[int], Optional[str], str]]:
        sql = "SELECT id, user_id, action, entity_type, entity_id, details, created_at FROM audit_log"
        params: list = []
        if action:
            sql += " WHERE action=?"
            params.append(action)
        sql += " ORDER BY id DESC LIMIT ?"
        params.append(int(limit))
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(sql, tuple(params))
        result = cur.fetchall()
        conn.close()
        return [tuple(r) for r in result]
