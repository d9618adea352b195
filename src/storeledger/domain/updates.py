"""Typed partial updates.

A field left as ``UNSET`` keeps the stored value; any other value, ``None``
included, replaces it.
"""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Optional, TypeVar


class _Unset:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

E = TypeVar("E")


@dataclass(frozen=True)
class ProductUpdate:
    barcode: Optional[str] = UNSET
    sku: Optional[str] = UNSET
    name: str = UNSET
    name_ar: Optional[str] = UNSET
    description: Optional[str] = UNSET
    category_id: Optional[int] = UNSET
    purchase_price: float = UNSET
    sale_price: float = UNSET
    vat_rate: float = UNSET
    min_stock_level: int = UNSET
    unit: str = UNSET
    is_active: int = UNSET


@dataclass(frozen=True)
class ClientUpdate:
    name: str = UNSET
    phone: Optional[str] = UNSET
    email: Optional[str] = UNSET
    address: Optional[str] = UNSET
    tax_id: Optional[str] = UNSET
    credit_limit: float = UNSET
    is_active: int = UNSET


@dataclass(frozen=True)
class SupplierUpdate:
    name: str = UNSET
    phone: Optional[str] = UNSET
    email: Optional[str] = UNSET
    address: Optional[str] = UNSET
    tax_id: Optional[str] = UNSET
    is_active: int = UNSET


@dataclass(frozen=True)
class StoreSettingsUpdate:
    store_name: str = UNSET
    store_name_ar: Optional[str] = UNSET
    address: Optional[str] = UNSET
    phone: Optional[str] = UNSET
    tax_id: Optional[str] = UNSET
    currency: str = UNSET
    vat_rate: float = UNSET
    invoice_prefix: str = UNSET


def present_fields(patch: Any) -> dict[str, Any]:
    return {f.name: getattr(patch, f.name) for f in fields(patch) if getattr(patch, f.name) is not UNSET}


def apply_update(entity: E, patch: Any) -> E:
    """Return a copy of ``entity`` with the fields present in ``patch`` replaced."""
    return replace(entity, **present_fields(patch))
