from __future__ import annotations

import re

from storeledger.domain.errors import ValidationError
from storeledger.domain.models import StoreSettings
from storeledger.domain.updates import StoreSettingsUpdate, apply_update

_PREFIX_RE = re.compile(r"^[A-Za-z0-9]{1,10}$")


class SettingsService:
    def __init__(self, store):
        self.store = store

    def get(self) -> StoreSettings:
        return self.store.get_settings()

    def update(self, patch: StoreSettingsUpdate) -> StoreSettings:
        updated = apply_update(self.store.get_settings(), patch)
        if not updated.store_name.strip():
            raise ValidationError("Store name is required.")
        if not _PREFIX_RE.match(updated.invoice_prefix):
            raise ValidationError("Invoice prefix must be 1-10 letters or digits.")
        if updated.vat_rate < 0:
            raise ValidationError("VAT rate must be >= 0.")
        if not updated.currency.strip():
            raise ValidationError("Currency is required.")
        self.store.save_settings(updated)
        return updated
