from .stock_ledger import StockLedger
from .journal_poster import JournalPoster
from .inventory_service import InventoryService
from .sales_service import SalesService
from .purchase_service import PurchaseService
from .accounting_service import AccountingService
from .party_service import PartyService
from .settings_service import SettingsService
from .excel_service import ExcelService
from .reporting_service import ReportingService
from .backup_service import BackupService
from .operations_service import OperationsService
from .license_service import LicenseService

__all__ = [
    "StockLedger",
    "JournalPoster",
    "InventoryService",
    "SalesService",
    "PurchaseService",
    "AccountingService",
    "PartyService",
    "SettingsService",
    "ExcelService",
    "ReportingService",
    "BackupService",
    "OperationsService",
    "LicenseService",
]
