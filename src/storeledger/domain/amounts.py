from __future__ import annotations

import math
from typing import Any

from storeledger.domain.errors import ValidationError


def to_amount(value: Any, label: str, default: float | None = None) -> float:
    """Parse a money amount, price or rate. NaN and infinities are refused."""
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"{label} is required.")
        return default
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{label} must be a number, got {value!r}.") from exc
    if not math.isfinite(amount):
        raise ValidationError(f"{label} must be a finite number.")
    return amount


def to_quantity(value: Any, label: str = "Qty") -> int:
    qty = to_amount(value, label)
    if qty != int(qty):
        raise ValidationError(f"{label} must be a whole number, got {value!r}.")
    return int(qty)


def to_id(value: Any, label: str) -> int:
    if value is None or value == "":
        raise ValidationError(f"{label} is required.")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{label} must be an integer id, got {value!r}.") from exc
