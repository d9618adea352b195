from __future__ import annotations

from storeledger.domain.amounts import to_amount
from storeledger.domain.errors import NotFoundError, SupplierNotFoundError, ValidationError
from storeledger.domain.models import Client, Supplier
from storeledger.domain.updates import ClientUpdate, SupplierUpdate, apply_update


class PartyService:
    """Clients and suppliers. Balances are only moved by posted sales and purchases."""

    def __init__(self, store):
        self.store = store

    # ---------- Clients ----------
    def add_client(self, name: str, phone: str | None = None, email: str | None = None,
                   address: str | None = None, tax_id: str | None = None, credit_limit: float = 0.0) -> int:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.")
        credit_limit = to_amount(credit_limit, "Credit limit", default=0.0)
        if credit_limit < 0:
            raise ValidationError("Credit limit must be >= 0.")
        return self.store.add_client(name, phone, email, address, tax_id, credit_limit)

    def get_client(self, client_id: int) -> Client:
        c = self.store.get_client(int(client_id))
        if not c:
            raise NotFoundError("Client not found.")
        return c

    def list_clients(self) -> list[Client]:
        return self.store.list_clients()

    def update_client(self, client_id: int, patch: ClientUpdate) -> Client:
        updated = apply_update(self.get_client(client_id), patch)
        if not updated.name.strip():
            raise ValidationError("Name is required.")
        if updated.credit_limit < 0:
            raise ValidationError("Credit limit must be >= 0.")
        self.store.save_client(updated)
        return updated

    def deactivate_client(self, client_id: int) -> None:
        self.update_client(client_id, ClientUpdate(is_active=0))

    def clients_with_balance(self) -> list[Client]:
        return [c for c in self.store.list_clients() if abs(c.balance) > 0.005]

    # ---------- Suppliers ----------
    def add_supplier(self, name: str, phone: str | None = None, email: str | None = None,
                     address: str | None = None, tax_id: str | None = None) -> int:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.")
        return self.store.add_supplier(name, phone, email, address, tax_id)

    def get_supplier(self, supplier_id: int) -> Supplier:
        s = self.store.get_supplier(int(supplier_id))
        if not s:
            raise SupplierNotFoundError("Supplier not found.")
        return s

    def list_suppliers(self) -> list[Supplier]:
        return self.store.list_suppliers()

    def update_supplier(self, supplier_id: int, patch: SupplierUpdate) -> Supplier:
        updated = apply_update(self.get_supplier(supplier_id), patch)
        if not updated.name.strip():
            raise ValidationError("Name is required.")
        self.store.save_supplier(updated)
        return updated

    def deactivate_supplier(self, supplier_id: int) -> None:
        self.update_supplier(supplier_id, SupplierUpdate(is_active=0))

    def suppliers_with_balance(self) -> list[Supplier]:
        return [s for s in self.store.list_suppliers() if abs(s.balance) > 0.005]
