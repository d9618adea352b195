"""Column lists and tuple-row mappers shared by the store and the unit of work."""
from __future__ import annotations

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
)

PRODUCT_COLUMNS = """
    id, barcode, sku, name, name_ar, description, category_id, purchase_price, sale_price,
    vat_rate, stock_quantity, min_stock_level, unit, is_active
"""

MOVEMENT_COLUMNS = """
    id, product_id, type, quantity, previous_stock, new_stock, reason,
    reference_type, reference_id, user_id, created_at
"""

ACCOUNT_COLUMNS = "id, code, name, name_ar, type, parent_code, balance, is_system, is_active"

JOURNAL_COLUMNS = """
    j.id, j.entry_date, j.account_id, a.code, j.debit, j.credit, j.description,
    j.reference_type, j.reference_id, j.user_id, j.created_at
"""

SALE_COLUMNS = """
    id, invoice_number, user_id, client_id, sale_date, subtotal, discount_amount, discount_percent,
    vat_amount, total, amount_paid, change_amount, payment_method, status, notes, void_reason
"""

SALE_ITEM_COLUMNS = """
    id, sale_id, product_id, product_name, barcode, quantity, unit_price, discount, vat_rate, vat_amount, total
"""

PURCHASE_COLUMNS = """
    id, reference_number, supplier_id, user_id, purchase_date, subtotal, vat_amount, total,
    amount_paid, status, notes
"""

PURCHASE_ITEM_COLUMNS = """
    id, purchase_id, product_id, product_name, quantity, unit_price, vat_rate, vat_amount, total
"""

PAYMENT_COLUMNS = "id, reference_type, reference_id, amount, method, payment_date, user_id"

CLIENT_COLUMNS = "id, name, phone, email, address, tax_id, balance, credit_limit, is_active"

SUPPLIER_COLUMNS = "id, name, phone, email, address, tax_id, balance, is_active"

EXPENSE_CATEGORY_COLUMNS = "id, name, name_ar, account_code"

EXPENSE_COLUMNS = "id, category_id, amount, description, expense_date, payment_method, reference, user_id"

SETTINGS_COLUMNS = """
    store_name, store_name_ar, address, phone, tax_id, currency, vat_rate,
    invoice_prefix, invoice_next_number, purchase_next_number
"""


def _opt_str(v) -> str | None:
    return str(v) if v is not None else None


def _opt_int(v) -> int | None:
    return int(v) if v is not None else None


def product_from_row(r) -> Product:
    return Product(
        id=int(r[0]),
        barcode=_opt_str(r[1]),
        sku=_opt_str(r[2]),
        name=str(r[3]),
        name_ar=_opt_str(r[4]),
        description=_opt_str(r[5]),
        category_id=_opt_int(r[6]),
        purchase_price=float(r[7]),
        sale_price=float(r[8]),
        vat_rate=float(r[9]),
        stock_quantity=int(r[10]),
        min_stock_level=int(r[11]),
        unit=str(r[12]),
        is_active=int(r[13]),
    )


def movement_from_row(r) -> StockMovement:
    return StockMovement(
        id=int(r[0]),
        product_id=int(r[1]),
        type=str(r[2]),
        quantity=int(r[3]),
        previous_stock=int(r[4]),
        new_stock=int(r[5]),
        reason=_opt_str(r[6]),
        reference_type=_opt_str(r[7]),
        reference_id=_opt_int(r[8]),
        user_id=_opt_int(r[9]),
        created_at=str(r[10]),
    )


def account_from_row(r) -> Account:
    return Account(
        id=int(r[0]),
        code=str(r[1]),
        name=str(r[2]),
        name_ar=_opt_str(r[3]),
        type=str(r[4]),
        parent_code=_opt_str(r[5]),
        balance=float(r[6]),
        is_system=int(r[7]),
        is_active=int(r[8]),
    )


def journal_from_row(r) -> JournalEntry:
    return JournalEntry(
        id=int(r[0]),
        entry_date=str(r[1]),
        account_id=int(r[2]),
        account_code=str(r[3]),
        debit=float(r[4]),
        credit=float(r[5]),
        description=_opt_str(r[6]),
        reference_type=_opt_str(r[7]),
        reference_id=_opt_int(r[8]),
        user_id=_opt_int(r[9]),
        created_at=str(r[10]),
    )


def sale_from_row(r) -> Sale:
    return Sale(
        id=int(r[0]),
        invoice_number=str(r[1]),
        user_id=_opt_int(r[2]),
        client_id=_opt_int(r[3]),
        sale_date=str(r[4]),
        subtotal=float(r[5]),
        discount_amount=float(r[6]),
        discount_percent=float(r[7]),
        vat_amount=float(r[8]),
        total=float(r[9]),
        amount_paid=float(r[10]),
        change_amount=float(r[11]),
        payment_method=str(r[12]),
        status=str(r[13]),
        notes=_opt_str(r[14]),
        void_reason=_opt_str(r[15]),
    )


def sale_item_from_row(r) -> SaleItem:
    return SaleItem(
        id=int(r[0]),
        sale_id=int(r[1]),
        product_id=int(r[2]),
        product_name=str(r[3]),
        barcode=_opt_str(r[4]),
        quantity=int(r[5]),
        unit_price=float(r[6]),
        discount=float(r[7]),
        vat_rate=float(r[8]),
        vat_amount=float(r[9]),
        total=float(r[10]),
    )


def purchase_from_row(r) -> Purchase:
    return Purchase(
        id=int(r[0]),
        reference_number=str(r[1]),
        supplier_id=int(r[2]),
        user_id=_opt_int(r[3]),
        purchase_date=str(r[4]),
        subtotal=float(r[5]),
        vat_amount=float(r[6]),
        total=float(r[7]),
        amount_paid=float(r[8]),
        status=str(r[9]),
        notes=_opt_str(r[10]),
    )


def purchase_item_from_row(r) -> PurchaseItem:
    return PurchaseItem(
        id=int(r[0]),
        purchase_id=int(r[1]),
        product_id=int(r[2]),
        product_name=str(r[3]),
        quantity=int(r[4]),
        unit_price=float(r[5]),
        vat_rate=float(r[6]),
        vat_amount=float(r[7]),
        total=float(r[8]),
    )


def payment_from_row(r) -> Payment:
    return Payment(
        id=int(r[0]),
        reference_type=str(r[1]),
        reference_id=int(r[2]),
        amount=float(r[3]),
        method=str(r[4]),
        payment_date=str(r[5]),
        user_id=_opt_int(r[6]),
    )


def client_from_row(r) -> Client:
    return Client(
        id=int(r[0]),
        name=str(r[1]),
        phone=_opt_str(r[2]),
        email=_opt_str(r[3]),
        address=_opt_str(r[4]),
        tax_id=_opt_str(r[5]),
        balance=float(r[6]),
        credit_limit=float(r[7]),
        is_active=int(r[8]),
    )


def supplier_from_row(r) -> Supplier:
    return Supplier(
        id=int(r[0]),
        name=str(r[1]),
        phone=_opt_str(r[2]),
        email=_opt_str(r[3]),
        address=_opt_str(r[4]),
        tax_id=_opt_str(r[5]),
        balance=float(r[6]),
        is_active=int(r[7]),
    )


def expense_category_from_row(r) -> ExpenseCategory:
    return ExpenseCategory(id=int(r[0]), name=str(r[1]), name_ar=_opt_str(r[2]), account_code=_opt_str(r[3]))


def expense_from_row(r) -> Expense:
    return Expense(
        id=int(r[0]),
        category_id=_opt_int(r[1]),
        amount=float(r[2]),
        description=str(r[3]),
        expense_date=str(r[4]),
        payment_method=str(r[5]),
        reference=_opt_str(r[6]),
        user_id=_opt_int(r[7]),
    )


def settings_from_row(r) -> StoreSettings:
    return StoreSettings(
        store_name=str(r[0]),
        store_name_ar=_opt_str(r[1]),
        address=_opt_str(r[2]),
        phone=_opt_str(r[3]),
        tax_id=_opt_str(r[4]),
        currency=str(r[5]),
        vat_rate=float(r[6]),
        invoice_prefix=str(r[7]),
        invoice_next_number=int(r[8]),
        purchase_next_number=int(r[9]),
    )
