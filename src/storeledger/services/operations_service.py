from __future__ import annotations

import json
import logging
import zipfile
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path

from storeledger.services.stock_ledger import verify_chain

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HealthReport:
    sqlite_integrity: str
    schema_version: int
    db_size_bytes: int
    logs_count: int
    unbalanced_batches: list[str] = field(default_factory=list)
    balance_drift: list[str] = field(default_factory=list)
    broken_stock_chains: list[int] = field(default_factory=list)
    generated_at: str = ""

    @property
    def ledger_ok(self) -> bool:
        return not (self.unbalanced_batches or self.balance_drift or self.broken_stock_chains)


class OperationsService:
    def __init__(self, store, db_path: Path | str, logs_dir: Path | str, backup_dir: Path | str,
                 tolerance: float = 0.01):
        self.store = store
        self.db_path = Path(db_path)
        self.logs_dir = Path(logs_dir)
        self.backup_dir = Path(backup_dir)
        self.tolerance = tolerance

    def run_health_check(self) -> HealthReport:
        integrity = self.store.integrity_check()
        logs_count = len(list(self.logs_dir.glob("*.log"))) if self.logs_dir.exists() else 0
        size = self.db_path.stat().st_size if self.db_path.exists() else 0

        unbalanced = [
            f"{ref_type}:{ref_id} debit={debit:.2f} credit={credit:.2f}"
            for _batch, ref_type, ref_id, debit, credit in self.store.journal_batch_totals()
            if abs(debit - credit) > self.tolerance
        ]
        drift = [
            f"{code} cached={cached:.2f} computed={computed:.2f}"
            for code, cached, computed in self.store.account_balance_drift()
        ]
        broken = []
        for product in self.store.list_products(include_inactive=True):
            report = verify_chain(product.id, product.stock_quantity, self.store.list_movements(product.id))
            if not report.ok:
                broken.append(product.id)

        report = HealthReport(
            sqlite_integrity=integrity,
            schema_version=self.store.schema_version(),
            db_size_bytes=size,
            logs_count=logs_count,
            unbalanced_batches=unbalanced,
            balance_drift=drift,
            broken_stock_chains=broken,
            generated_at=datetime.now().isoformat(timespec="seconds"),
        )
        if not report.ledger_ok:
            log.error(
                "ledger_inconsistent unbalanced=%s drift=%s broken_chains=%s",
                len(unbalanced), len(drift), len(broken),
            )
        return report

    def export_diagnostics(self, target_dir: Path | str | None = None) -> Path:
        out_dir = Path(target_dir) if target_dir else self.db_path.parent
        out_dir.mkdir(parents=True, exist_ok=True)

        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        zip_path = out_dir / f"diagnostics_{ts}.zip"
        report = self.run_health_check()

        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            if self.db_path.exists():
                zf.write(self.db_path, arcname=self.db_path.name)

            if self.logs_dir.exists():
                for f in sorted(self.logs_dir.glob("*.log")):
                    zf.write(f, arcname=f"logs/{f.name}")

            zf.writestr("health_report.json", json.dumps(asdict(report), ensure_ascii=False, indent=2))

        log.info("diagnostics_exported path=%s", zip_path)
        return zip_path

    def restore_latest_backup(self, backup_service) -> Path:
        files = backup_service.list_backups()
        if not files:
            raise FileNotFoundError("No backups available to restore")
        latest = files[-1]
        return backup_service.restore_backup(latest)
