from .models import Product, StockMovement, Account, JournalLine, JournalEntry, Sale, SaleItem, Purchase, PurchaseItem
from .errors import (
    AppError,
    ValidationError,
    NotFoundError,
    InsufficientStockError,
    UnbalancedEntryError,
    AlreadyVoidedError,
)
from .result import Ok, Err

__all__ = [
    "Product",
    "StockMovement",
    "Account",
    "JournalLine",
    "JournalEntry",
    "Sale",
    "SaleItem",
    "Purchase",
    "PurchaseItem",
    "AppError",
    "ValidationError",
    "NotFoundError",
    "InsufficientStockError",
    "UnbalancedEntryError",
    "AlreadyVoidedError",
    "Ok",
    "Err",
]
