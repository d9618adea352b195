from __future__ import annotations

import logging
from typing import Protocol

from storeledger.domain.errors import CreditLimitExceededError
from storeledger.domain.models import Client

log = logging.getLogger("storeledger.sales")


class CreditLimitPolicy(Protocol):
    def check(self, client: Client, new_balance: float) -> None: ...


class AdvisoryCreditLimitPolicy:
    """Credit limits are informative only; a breach is logged, never blocked."""

    def check(self, client: Client, new_balance: float) -> None:
        if client.credit_limit > 0 and new_balance > client.credit_limit:
            log.warning(
                "credit_limit_exceeded client_id=%s balance=%.2f limit=%.2f",
                client.id,
                new_balance,
                client.credit_limit,
            )


class StrictCreditLimitPolicy:
    def check(self, client: Client, new_balance: float) -> None:
        if client.credit_limit > 0 and new_balance > client.credit_limit:
            raise CreditLimitExceededError(
                f"Client '{client.name}' would owe {new_balance:.2f}, above the limit of {client.credit_limit:.2f}."
            )
