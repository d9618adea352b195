from __future__ import annotations

import logging
import math
import uuid
from typing import Iterable, Optional

from storeledger.config import LedgerPolicy
from storeledger.domain.errors import MissingAccountMappingError, UnbalancedEntryError, ValidationError
from storeledger.domain.models import JournalLine, Reference
from storeledger.repositories.unit_of_work import UnitOfWork, now_iso

log = logging.getLogger("storeledger.accounting")


def ensure_balanced(lines: Iterable[JournalLine], tolerance: float = 0.01) -> tuple[float, float]:
    lines = list(lines)
    if not lines:
        raise ValidationError("A journal entry needs at least one line.")
    total_debit = sum(float(line.debit) for line in lines)
    total_credit = sum(float(line.credit) for line in lines)
    if not (math.isfinite(total_debit) and math.isfinite(total_credit)):
        raise ValidationError("Journal amounts must be finite numbers.")
    if abs(total_debit - total_credit) > tolerance:
        raise UnbalancedEntryError(
            f"Debits ({total_debit:.2f}) do not equal credits ({total_credit:.2f})."
        )
    return total_debit, total_credit


class JournalPoster:
    """Appends one balanced batch of journal lines and moves account balances.

    Balances follow a single convention for every account type: a debit adds,
    a credit subtracts.
    """

    def __init__(self, policy: LedgerPolicy | None = None):
        self.policy = policy or LedgerPolicy()

    def post(
        self,
        uow: UnitOfWork,
        lines: Iterable[JournalLine],
        reference: Reference | None = None,
        entry_date: Optional[str] = None,
        actor_user_id: int | None = None,
    ) -> list[int]:
        lines = list(lines)
        for line in lines:
            if not (math.isfinite(float(line.debit)) and math.isfinite(float(line.credit))):
                raise ValidationError("Debit and credit must be finite numbers.")
        lines = [line for line in lines if not (float(line.debit) == 0 and float(line.credit) == 0)]
        for line in lines:
            if float(line.debit) < 0 or float(line.credit) < 0:
                raise ValidationError("Debit and credit must be >= 0.")
            if float(line.debit) > 0 and float(line.credit) > 0:
                raise ValidationError("A journal line is either a debit or a credit.")
        ensure_balanced(lines, self.policy.tolerance)

        resolved = []
        skipped = []
        for line in lines:
            account = self._resolve(uow, line)
            if account is None:
                label = line.account_code if line.account_code is not None else f"#{line.account_id}"
                if self.policy.missing_account == "skip":
                    skipped.append(label)
                    continue
                raise MissingAccountMappingError(f"Account {label} does not exist or is inactive.")
            resolved.append((account, line))

        if skipped:
            log.warning(
                "journal_lines_skipped accounts=%s reference=%s",
                ",".join(skipped),
                f"{reference.type}:{reference.id}" if reference else None,
            )

        batch_id = uuid.uuid4().hex
        entry_date = entry_date or now_iso()
        ids = []
        for account, line in resolved:
            ids.append(
                uow.insert_journal_entry(
                    batch_id,
                    entry_date,
                    account.id,
                    float(line.debit),
                    float(line.credit),
                    line.description,
                    reference.type if reference else None,
                    reference.id if reference else None,
                    actor_user_id,
                )
            )
            uow.adjust_account_balance(account.id, float(line.debit) - float(line.credit))
        return ids

    @staticmethod
    def _resolve(uow: UnitOfWork, line: JournalLine):
        if line.account_id is not None:
            return uow.get_account(int(line.account_id))
        if line.account_code is not None:
            return uow.get_account_by_code(str(line.account_code))
        raise ValidationError("A journal line needs an account code or an account id.")
