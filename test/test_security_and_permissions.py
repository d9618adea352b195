from pathlib import Path

import pytest

from conftest import set_admin_pin

from storeledger.domain.errors import AuthorizationError
from storeledger.repositories.sqlite_repo import SqliteLedgerStore
from storeledger.services.auth_service import AuthService


def test_default_admin_pin_is_hashed_and_login_works(tmp_path: Path):
    store = SqliteLedgerStore(tmp_path / "sec.db")
    store.init_db()

    conn = store._conn()
    cur = conn.cursor()
    cur.execute("SELECT pin FROM users WHERE username='admin'")
    stored = str(cur.fetchone()[0])
    conn.close()

    assert stored.startswith("pbkdf2_sha256$")

    auth = AuthService(store)
    admin_pin = set_admin_pin(store)
    user = auth.login("admin", admin_pin)
    assert user.username == "admin"


def test_plain_text_pin_is_never_accepted(tmp_path: Path):
    store = SqliteLedgerStore(tmp_path / "legacy.db")
    store.init_db()

    conn = store._conn()
    cur = conn.cursor()
    cur.execute("UPDATE users SET pin='1234' WHERE username='admin'")
    conn.commit()
    conn.close()

    with pytest.raises(AuthorizationError, match="Invalid username or PIN"):
        AuthService(store).login("admin", "1234")


def test_admin_cannot_create_user_with_weak_pin(tmp_path: Path):
    store = SqliteLedgerStore(tmp_path / "weak_pin.db")
    store.init_db()
    auth = AuthService(store)

    admin_pin = set_admin_pin(store)
    admin = auth.login("admin", admin_pin)

    with pytest.raises(AuthorizationError, match="at least"):
        auth.create_user(admin, "caissew", "1234")

    with pytest.raises(AuthorizationError, match="letter"):
        auth.create_user(admin, "caissew", "12345678")

    with pytest.raises(AuthorizationError, match="number"):
        auth.create_user(admin, "caissew", "OnlyLetters")


def test_admin_can_change_own_password(tmp_path: Path):
    store = SqliteLedgerStore(tmp_path / "change_pin.db")
    store.init_db()
    auth = AuthService(store)

    admin_pin = set_admin_pin(store)
    admin = auth.login("admin", admin_pin)
    auth.change_my_pin(admin, admin_pin, "NewPass123", "NewPass123")

    with pytest.raises(AuthorizationError):
        auth.login("admin", admin_pin)

    updated = auth.login("admin", "NewPass123")
    assert updated.username == "admin"


def test_admin_cannot_change_password_with_wrong_current_pin(tmp_path: Path):
    store = SqliteLedgerStore(tmp_path / "change_pin_fail.db")
    store.init_db()
    auth = AuthService(store)

    admin_pin = set_admin_pin(store)
    admin = auth.login("admin", admin_pin)
    with pytest.raises(AuthorizationError):
        auth.change_my_pin(admin, "bad-current", "NewPass123", "NewPass123")


def test_change_password_clears_must_change_flag(tmp_path: Path):
    store = SqliteLedgerStore(tmp_path / "must_change_pin.db")
    store.init_db()
    auth = AuthService(store)

    admin_pin = set_admin_pin(store)
    conn = store._conn()
    conn.execute("UPDATE users SET must_change_pin=1 WHERE username='admin'")
    conn.commit()
    conn.close()

    admin = auth.login("admin", admin_pin)
    assert admin.must_change_pin == 1
    auth.change_my_pin(admin, admin_pin, "NewPass123", "NewPass123")

    assert auth.login("admin", "NewPass123").must_change_pin == 0


def test_bootstrap_admin_pin_is_written_to_restricted_file(tmp_path: Path):
    store = SqliteLedgerStore(tmp_path / "bootstrap.db")
    store.init_db()

    pin_file = tmp_path / ".admin_bootstrap_pin"
    assert pin_file.exists()
    pin = pin_file.read_text(encoding="utf-8").strip()
    assert pin

    admin = AuthService(store).login("admin", pin)
    assert admin.must_change_pin == 1


def test_bootstrap_pin_can_come_from_environment(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("STORELEDGER_BOOTSTRAP_ADMIN_PIN", "Boot1234pin")
    store = SqliteLedgerStore(tmp_path / "env.db")
    store.init_db()

    assert AuthService(store).login("admin", "Boot1234pin").role == "admin"


def test_bootstrap_admin_is_reactivated_with_new_provisional_pin(tmp_path: Path):
    store = SqliteLedgerStore(tmp_path / "bootstrap_inactive_admin.db")
    store.init_db()

    conn = store._conn()
    cur = conn.cursor()
    cur.execute("UPDATE users SET active=0, must_change_pin=0 WHERE username='admin'")
    conn.commit()
    conn.close()

    pin_file = tmp_path / ".admin_bootstrap_pin"
    before = pin_file.read_text(encoding="utf-8").strip()

    store.init_db()

    after = pin_file.read_text(encoding="utf-8").strip()
    assert after
    assert after != before

    admin = AuthService(store).login("admin", after)
    assert admin.username == "admin"
    assert int(admin.must_change_pin) == 1
