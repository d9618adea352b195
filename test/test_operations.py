from pathlib import Path
import json
import logging
import zipfile

import pytest
from conftest import make_store

from storeledger.application.container import build_container, paths_for
from storeledger.logging_config import CHANNELS, JsonFormatter, _handler
from storeledger.services.backup_service import BackupService
from storeledger.services.inventory_service import InventoryService
from storeledger.services.operations_service import OperationsService
from storeledger.services.sales_service import SalesService


def _ops(store, tmp_path: Path) -> OperationsService:
    return OperationsService(store, db_path=store.db_path, logs_dir=tmp_path / "logs", backup_dir=tmp_path / "backups")


def test_operations_health_check_and_diagnostics_export(tmp_path: Path):
    logs = tmp_path / "logs"
    logs.mkdir(parents=True, exist_ok=True)
    (logs / "app.log").write_text("ok", encoding="utf-8")
    store = make_store(tmp_path)
    pid = InventoryService(store).add_product(name="Miel", sale_price=900.0, stock_quantity=3)
    SalesService(store).create_sale([{"product_id": pid, "quantity": 1}], "cash", 2000.0)

    ops = _ops(store, tmp_path)
    report = ops.run_health_check()

    assert report.sqlite_integrity == "ok"
    assert report.schema_version == 3
    assert report.logs_count >= 1
    assert report.ledger_ok

    z = ops.export_diagnostics()
    assert z.suffix == ".zip"
    with zipfile.ZipFile(z) as zf:
        names = zf.namelist()
        health = json.loads(zf.read("health_report.json"))
    assert "logs/app.log" in names
    assert health["unbalanced_batches"] == []


def test_health_check_flags_balance_drift_and_broken_stock_chain(tmp_path: Path):
    store = make_store(tmp_path)
    pid = InventoryService(store).add_product(name="Dattes", sale_price=500.0, vat_rate=0.0, stock_quantity=4)
    SalesService(store).create_sale([{"product_id": pid, "quantity": 1}], "cash", 500.0)

    conn = store._conn()
    conn.execute("UPDATE accounts SET balance = balance + 1 WHERE code = '1000'")
    conn.execute("UPDATE products SET stock_quantity = 99 WHERE id = ?", (pid,))
    conn.commit()
    conn.close()

    report = _ops(store, tmp_path).run_health_check()

    assert not report.ledger_ok
    assert report.unbalanced_batches == []
    assert [d.split()[0] for d in report.balance_drift] == ["1000"]
    assert report.broken_stock_chains == [pid]


def test_operations_restore_latest_backup(tmp_path: Path):
    store = make_store(tmp_path)
    cid = store.add_client("Avant sauvegarde")

    backup = BackupService(store.db_path, tmp_path / "backups")
    ops = _ops(store, tmp_path)
    with pytest.raises(FileNotFoundError):
        ops.restore_latest_backup(backup)
    backup.create_backup()

    conn = store._conn()
    conn.execute("UPDATE clients SET name = 'Après sauvegarde' WHERE id = ?", (cid,))
    conn.commit()
    conn.close()

    restored = ops.restore_latest_backup(backup)
    assert restored.exists()
    assert store.get_client(cid).name == "Avant sauvegarde"


def test_container_wires_services_on_one_store(tmp_path: Path):
    container = build_container(paths_for(tmp_path / "home"))

    assert container.store.schema_version() == 3
    assert container.sales.store is container.store
    assert container.sales.journal is container.purchases.journal
    assert container.license.validate().is_trial
    assert container.operations.run_health_check().ledger_ok


def test_json_formatter_and_channel_files(tmp_path: Path):
    record = logging.LogRecord("storeledger.sales", logging.INFO, __file__, 1, "sale_created total=%s", (10,), None)
    payload = json.loads(JsonFormatter().format(record))
    assert payload["level"] == "INFO"
    assert payload["logger"] == "storeledger.sales"
    assert payload["message"] == "sale_created total=10"

    logs = tmp_path / "logs"
    logs.mkdir()
    handler = _handler(logs / CHANNELS["storeledger.license"], logging.INFO)
    logger = logging.getLogger("storeledger.license.test")
    logger.addHandler(handler)
    try:
        logger.warning("license_invalid kind=Expired")
    finally:
        logger.removeHandler(handler)
        handler.close()

    line = json.loads((logs / "license.log").read_text(encoding="utf-8").splitlines()[0])
    assert line["level"] == "WARNING"
    assert line["message"] == "license_invalid kind=Expired"
