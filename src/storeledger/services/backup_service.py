from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from storeledger.domain.errors import PersistenceError

log = logging.getLogger(__name__)

BACKUP_GLOB = "store_backup_*.db.enc"


class BackupService:
    """Encrypted SQL-dump backups of the ledger database."""

    def __init__(self, db_path: Path | str, backup_dir: Path | str, max_backups: int = 30):
        self.db_path = Path(db_path)
        self.backup_dir = Path(backup_dir)
        self.max_backups = max_backups

    def create_backup(self) -> Path:
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        target = self.backup_dir / f"store_backup_{ts}.db.enc"
        fernet = Fernet(self._get_or_create_key())

        src = sqlite3.connect(str(self.db_path))
        dst = sqlite3.connect(":memory:")
        try:
            src.backup(dst)
            payload = "\n".join(dst.iterdump()).encode("utf-8")
            target.write_bytes(fernet.encrypt(payload))
        finally:
            dst.close()
            src.close()
        self._enforce_retention()
        log.info("backup_created path=%s", target.name)
        return target

    def restore_backup(self, backup_file: Path | str) -> Path:
        backup_path = Path(backup_file)
        fernet = Fernet(self._get_or_create_key())
        try:
            payload = fernet.decrypt(backup_path.read_bytes()).decode("utf-8")
        except InvalidToken as exc:
            raise PersistenceError("Backup integrity check failed.") from exc

        self.db_path.unlink(missing_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        try:
            conn.executescript(payload)
            conn.commit()
        finally:
            conn.close()
        log.warning("backup_restored path=%s", backup_path.name)
        return self.db_path

    def list_backups(self) -> list[Path]:
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob(BACKUP_GLOB))

    def _get_or_create_key(self) -> bytes:
        key_path = self.backup_dir / ".backup.key"
        if key_path.exists():
            return key_path.read_bytes().strip()
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        key = Fernet.generate_key()
        key_path.write_bytes(key)
        try:
            key_path.chmod(0o600)
        except OSError as exc:
            log.warning("backup_key_chmod_failed path=%s error=%s", key_path, exc)
        return key

    def _enforce_retention(self) -> None:
        files = self.list_backups()
        if len(files) <= self.max_backups:
            return
        for old in files[: len(files) - self.max_backups]:
            old.unlink(missing_ok=True)
