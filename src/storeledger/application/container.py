from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from storeledger.application.shell_api import ShellApi
from storeledger.config import AppPaths, LedgerPolicy
from storeledger.domain.policies import CreditLimitPolicy
from storeledger.repositories.sqlite_repo import SqliteLedgerStore
from storeledger.services.accounting_service import AccountingService
from storeledger.services.auth_service import AuthService
from storeledger.services.backup_service import BackupService
from storeledger.services.excel_service import ExcelService
from storeledger.services.inventory_service import InventoryService
from storeledger.services.journal_poster import JournalPoster
from storeledger.services.license_service import LicenseService
from storeledger.services.machine_identity import IdentityProvider
from storeledger.services.operations_service import OperationsService
from storeledger.services.party_service import PartyService
from storeledger.services.purchase_service import PurchaseService
from storeledger.services.reporting_service import ReportingService
from storeledger.services.sales_service import SalesService
from storeledger.services.settings_service import SettingsService
from storeledger.services.stock_ledger import StockLedger


@dataclass(frozen=True)
class AppContainer:
    store: SqliteLedgerStore
    inventory: InventoryService
    parties: PartyService
    settings: SettingsService
    sales: SalesService
    purchases: PurchaseService
    accounting: AccountingService
    excel: ExcelService
    reporting: ReportingService
    auth: AuthService
    backup: BackupService
    operations: OperationsService
    license: LicenseService
    api: ShellApi


def build_container(
    paths: AppPaths,
    policy: LedgerPolicy | None = None,
    identity: IdentityProvider | None = None,
    credit_policy: CreditLimitPolicy | None = None,
) -> AppContainer:
    store = SqliteLedgerStore(paths.db_path)
    store.init_db()

    policy = policy or LedgerPolicy()
    stock = StockLedger()
    journal = JournalPoster(policy)

    inventory = InventoryService(store, stock_ledger=stock)
    sales = SalesService(store, stock_ledger=stock, journal=journal, policy=policy, credit_policy=credit_policy)
    purchases = PurchaseService(store, stock_ledger=stock, journal=journal, policy=policy)
    accounting = AccountingService(store, journal=journal, policy=policy)
    auth = AuthService(store)
    license_service = LicenseService(
        paths.license_path,
        paths.public_key_path,
        identity=identity,
        store=store,
    )

    return AppContainer(
        store=store,
        inventory=inventory,
        parties=PartyService(store),
        settings=SettingsService(store),
        sales=sales,
        purchases=purchases,
        accounting=accounting,
        excel=ExcelService(store, inventory),
        reporting=ReportingService(store),
        auth=auth,
        backup=BackupService(paths.db_path, paths.backup_dir),
        operations=OperationsService(
            store,
            db_path=paths.db_path,
            logs_dir=paths.logs_dir,
            backup_dir=paths.backup_dir,
            tolerance=policy.tolerance,
        ),
        license=license_service,
        api=ShellApi(sales, purchases, accounting, license_service, auth),
    )


def paths_for(base_dir: Path | str) -> AppPaths:
    """Application paths rooted at ``base_dir`` (portable installs and tests)."""
    base = Path(base_dir)
    base.mkdir(parents=True, exist_ok=True)
    (base / "logs").mkdir(parents=True, exist_ok=True)
    return AppPaths(
        base_dir=base,
        db_path=base / "store.db",
        logs_dir=base / "logs",
        backup_dir=base / "backups",
        license_path=base / "license.json",
        public_key_path=base / "public-key.pem",
    )
