from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import os
import sys

APP_NAME = "StoreLedger"
APP_VERSION = "1.0.0"

PAYMENT_METHODS = ("cash", "card", "check", "credit", "bank_transfer")


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path
    backup_dir: Path
    license_path: Path
    public_key_path: Path


@dataclass(frozen=True)
class AccountMap:
    """Chart-of-accounts codes the posting engine writes to."""

    cash: str = "1000"
    bank: str = "1100"
    receivables: str = "1200"
    vat_input: str = "1400"
    payable: str = "2000"
    vat_output: str = "2100"
    sales: str = "4000"
    stock: str = "5000"
    default_expense: str = "6000"

    def settlement_for(self, payment_method: str) -> str:
        if payment_method == "cash":
            return self.cash
        if payment_method == "credit":
            return self.receivables
        return self.bank


@dataclass(frozen=True)
class LedgerPolicy:
    tolerance: float = 0.01
    # "raise" aborts the event, "skip" logs and drops the line
    missing_account: str = "raise"
    accounts: AccountMap = field(default_factory=AccountMap)


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = APP_NAME) -> AppPaths:
    override = os.environ.get("STORELEDGER_HOME", "").strip()
    if override:
        base = Path(override)
    elif sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    db = base / "store.db"
    public_key = Path(os.environ.get("STORELEDGER_PUBLIC_KEY", "").strip() or base / "public-key.pem")

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(
        base_dir=base,
        db_path=db,
        logs_dir=logs,
        backup_dir=base / "backups",
        license_path=base / "license.json",
        public_key_path=public_key,
    )
