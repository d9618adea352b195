from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from storeledger.domain.amounts import to_quantity
from storeledger.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from storeledger.domain.models import MovementResult, Reference, StockMovement
from storeledger.repositories.unit_of_work import UnitOfWork

log = logging.getLogger(__name__)

MOVEMENT_TYPES = ("in", "out", "adjustment")


def next_stock(movement_type: str, previous: int, quantity: int) -> int:
    if movement_type == "in":
        return previous + quantity
    if movement_type == "out":
        return previous - quantity
    if movement_type == "adjustment":
        return quantity
    raise ValidationError(f"Unknown movement type '{movement_type}'.")


def replay(movements: Iterable[StockMovement]) -> int:
    """Recompute a stock level from zero by applying ``movements`` in order."""
    stock = 0
    for m in movements:
        stock = next_stock(m.type, stock, m.quantity)
    return stock


@dataclass(frozen=True)
class ChainReport:
    product_id: int
    stored_stock: int
    replayed_stock: int
    broken_links: tuple[int, ...]

    @property
    def ok(self) -> bool:
        return self.stored_stock == self.replayed_stock and not self.broken_links


def verify_chain(product_id: int, stored_stock: int, movements: Iterable[StockMovement]) -> ChainReport:
    broken: list[int] = []
    expected_previous = 0
    replayed = 0
    for m in movements:
        if m.previous_stock != expected_previous or m.new_stock != next_stock(m.type, m.previous_stock, m.quantity):
            broken.append(m.id)
        replayed = next_stock(m.type, replayed, m.quantity)
        expected_previous = m.new_stock
    return ChainReport(
        product_id=int(product_id),
        stored_stock=int(stored_stock),
        replayed_stock=replayed,
        broken_links=tuple(broken),
    )


class StockLedger:
    """Moves product stock and appends the matching movement fact.

    Always called inside the caller's unit of work; never commits and never
    posts journal lines.
    """

    def apply_movement(
        self,
        uow: UnitOfWork,
        product_id: int,
        movement_type: str,
        quantity: int,
        reason: Optional[str],
        actor_user_id: int | None = None,
        reference: Reference | None = None,
    ) -> MovementResult:
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(f"Unknown movement type '{movement_type}'.")
        quantity = to_quantity(quantity)
        if movement_type == "adjustment":
            if quantity < 0:
                raise ValidationError("Adjusted stock must be >= 0.")
        elif quantity <= 0:
            raise ValidationError("Qty must be >= 1.")

        product = uow.get_product(int(product_id))
        if not product:
            raise NotFoundError(f"Product {product_id} not found.")

        previous = int(product.stock_quantity)
        new = next_stock(movement_type, previous, quantity)
        if new < 0:
            raise InsufficientStockError(
                f"Not enough stock for {product.name}. Available: {previous}, requested: {quantity}"
            )

        uow.set_product_stock(product.id, new)
        uow.insert_movement(
            product.id,
            movement_type,
            quantity,
            previous,
            new,
            reason,
            reference.type if reference else None,
            reference.id if reference else None,
            actor_user_id,
        )
        log.debug(
            "stock_moved product_id=%s type=%s qty=%s previous=%s new=%s",
            product.id,
            movement_type,
            quantity,
            previous,
            new,
        )
        return MovementResult(previous_stock=previous, new_stock=new)
