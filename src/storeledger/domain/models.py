from __future__ import annotations
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Product:
    id: int
    barcode: Optional[str]
    sku: Optional[str]
    name: str
    name_ar: Optional[str]
    description: Optional[str]
    category_id: Optional[int]
    purchase_price: float
    sale_price: float
    vat_rate: float
    stock_quantity: int
    min_stock_level: int
    unit: str = "unit"
    is_active: int = 1


@dataclass(frozen=True)
class StockMovement:
    id: int
    product_id: int
    type: str
    quantity: int
    previous_stock: int
    new_stock: int
    reason: Optional[str]
    reference_type: Optional[str]
    reference_id: Optional[int]
    user_id: Optional[int]
    created_at: str


@dataclass(frozen=True)
class MovementResult:
    previous_stock: int
    new_stock: int


@dataclass(frozen=True)
class Reference:
    type: str
    id: Optional[int] = None


@dataclass(frozen=True)
class Account:
    id: int
    code: str
    name: str
    name_ar: Optional[str]
    type: str
    parent_code: Optional[str]
    balance: float
    is_system: int = 0
    is_active: int = 1


@dataclass(frozen=True)
class JournalLine:
    """One requested debit-or-credit leg, addressed by account code or id."""

    debit: float = 0.0
    credit: float = 0.0
    account_code: Optional[str] = None
    account_id: Optional[int] = None
    description: Optional[str] = None

    def mirrored(self, description: Optional[str] = None) -> "JournalLine":
        return JournalLine(
            debit=self.credit,
            credit=self.debit,
            account_code=self.account_code,
            account_id=self.account_id,
            description=description if description is not None else self.description,
        )


@dataclass(frozen=True)
class JournalEntry:
    id: int
    entry_date: str
    account_id: int
    account_code: str
    debit: float
    credit: float
    description: Optional[str]
    reference_type: Optional[str]
    reference_id: Optional[int]
    user_id: Optional[int]
    created_at: str


@dataclass(frozen=True)
class Sale:
    id: int
    invoice_number: str
    user_id: Optional[int]
    client_id: Optional[int]
    sale_date: str
    subtotal: float
    discount_amount: float
    discount_percent: float
    vat_amount: float
    total: float
    amount_paid: float
    change_amount: float
    payment_method: str
    status: str
    notes: Optional[str]
    void_reason: Optional[str]


@dataclass(frozen=True)
class SaleItem:
    id: int
    sale_id: int
    product_id: int
    product_name: str
    barcode: Optional[str]
    quantity: int
    unit_price: float
    discount: float
    vat_rate: float
    vat_amount: float
    total: float


@dataclass(frozen=True)
class SaleResult:
    sale_id: int
    invoice_number: str
    total: float
    change: float


@dataclass(frozen=True)
class Purchase:
    id: int
    reference_number: str
    supplier_id: int
    user_id: Optional[int]
    purchase_date: str
    subtotal: float
    vat_amount: float
    total: float
    amount_paid: float
    status: str
    notes: Optional[str]


@dataclass(frozen=True)
class PurchaseItem:
    id: int
    purchase_id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price: float
    vat_rate: float
    vat_amount: float
    total: float


@dataclass(frozen=True)
class PurchaseResult:
    purchase_id: int
    reference_number: str
    total: float


@dataclass(frozen=True)
class Payment:
    id: int
    reference_type: str
    reference_id: int
    amount: float
    method: str
    payment_date: str
    user_id: Optional[int]


@dataclass(frozen=True)
class Supplier:
    id: int
    name: str
    phone: Optional[str]
    email: Optional[str]
    address: Optional[str]
    tax_id: Optional[str]
    balance: float
    is_active: int = 1


@dataclass(frozen=True)
class Client:
    id: int
    name: str
    phone: Optional[str]
    email: Optional[str]
    address: Optional[str]
    tax_id: Optional[str]
    balance: float
    credit_limit: float
    is_active: int = 1


@dataclass(frozen=True)
class ExpenseCategory:
    id: int
    name: str
    name_ar: Optional[str]
    account_code: Optional[str]


@dataclass(frozen=True)
class Expense:
    id: int
    category_id: Optional[int]
    amount: float
    description: str
    expense_date: str
    payment_method: str
    reference: Optional[str]
    user_id: Optional[int]


@dataclass(frozen=True)
class StoreSettings:
    store_name: str
    store_name_ar: Optional[str]
    address: Optional[str]
    phone: Optional[str]
    tax_id: Optional[str]
    currency: str
    vat_rate: float
    invoice_prefix: str
    invoice_next_number: int
    purchase_next_number: int


@dataclass(frozen=True)
class User:
    id: int
    username: str
    role: str
    active: int = 1
    must_change_pin: int = 0
