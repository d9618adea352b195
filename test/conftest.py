import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def set_admin_pin(store, pin: str = "Admin#1234") -> str:
    from storeledger.repositories.sqlite_repo import SqliteLedgerStore

    conn = store._conn()
    cur = conn.cursor()
    cur.execute(
        "UPDATE users SET pin=?, must_change_pin=0 WHERE username='admin'",
        (SqliteLedgerStore._hash_pin(pin),),
    )
    conn.commit()
    conn.close()
    return pin


def make_store(tmp_path: Path, name: str = "store.db"):
    from storeledger.repositories.sqlite_repo import SqliteLedgerStore

    store = SqliteLedgerStore(tmp_path / name)
    store.init_db()
    return store


def balance_of(store, code: str) -> float:
    account = store.get_account_by_code(code)
    assert account is not None
    return round(account.balance, 2)


@pytest.fixture(scope="session")
def signing_key():
    from storeledger.services.license_signer import generate_private_key

    return generate_private_key()
