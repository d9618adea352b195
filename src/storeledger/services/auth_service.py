from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import re
import sqlite3

from storeledger.domain.errors import AuthorizationError
from storeledger.domain.models import User

@dataclass(frozen=True)
class LoginPolicy:
    min_pin_length: int = 8
    max_failed_attempts: int = 5
    lockout_seconds: int = 60

def _validate_secret_strength(secret: str, *, min_len: int) -> None:
    if len(secret) < min_len:
        raise AuthorizationError(f"PIN must have at least {min_len} characters.")
    if not re.search(r"[A-Za-z]", secret):
        raise AuthorizationError("PIN must include at least one letter.")
    if not re.search(r"\d", secret):
        raise AuthorizationError("PIN must include at least one number.")


def _utcnow_naive() -> datetime:
    # locked_until is written by SQLite's datetime('now'): UTC without offset
    return datetime.now(timezone.utc).replace(tzinfo=None)


PERMISSIONS: dict[str, set[str]] = {
    "create_sale": {"admin", "user"},
    "void_sale": {"admin"},
    "create_purchase": {"admin", "user"},
    "manage_products": {"admin"},
    "adjust_stock": {"admin"},
    "manage_parties": {"admin", "user"},
    "record_expense": {"admin", "user"},
    "post_manual_entry": {"admin"},
    "import_excel": {"admin"},
    "export_report": {"admin", "user"},
    "manage_settings": {"admin"},
    "manage_license": {"admin"},
    "manage_backups": {"admin"},
    "manage_users": {"admin"},
}

class AuthService:
    def __init__(self, store, policy: LoginPolicy | None = None):
        self.store = store
        self.policy = policy or LoginPolicy()

    def list_users(self) -> list[User]:
        return self.store.list_users()

    def login(self, username: str, pin: str) -> User:
        username_clean = username.strip()
        if not username_clean:
            raise AuthorizationError("Username is required.")

        state = self.store.get_user_security_state(username_clean)
        if state:
            _attempts, locked_until = state
            if locked_until:
                until = datetime.fromisoformat(locked_until)
                now = _utcnow_naive()
                if now < until:
                    remaining = int((until - now).total_seconds())
                    raise AuthorizationError(f"User is temporarily locked. Retry in {remaining}s.")

        user = self.store.authenticate_user(username_clean, pin.strip())
        if not user:
            attempts, locked_until = self.store.record_login_failure(
                username_clean,
                self.policy.max_failed_attempts,
                self.policy.lockout_seconds,
            )
            if locked_until is not None:
                raise AuthorizationError("Too many failed attempts. User is temporarily locked.")
            raise AuthorizationError("Invalid username or PIN.")

        self.store.clear_login_guard(user.id)
        return user

    def can(self, user: User, action: str) -> bool:
        allowed_roles = PERMISSIONS.get(action)
        if not allowed_roles:
            return False
        return user.role in allowed_roles

    def require_action(self, user: User, action: str) -> None:
        if not self.can(user, action):
            raise AuthorizationError(f"Role '{user.role}' is not allowed to perform '{action}'.")

    def authorize(self, user_id: int | None, action: str) -> User:
        """Resolve an active user by id and check it may perform ``action``."""
        if user_id is None:
            raise AuthorizationError(f"A signed-in user is required to perform '{action}'.")
        user = self.store.get_user(int(user_id))
        if not user:
            raise AuthorizationError(f"User {user_id} is unknown or inactive.")
        self.require_action(user, action)
        return user

    def create_user(self, actor: User, username: str, pin: str) -> int:
        self.require_action(actor, "manage_users")

        user = username.strip()
        secret = pin.strip()
        if not user:
            raise AuthorizationError("Username is required.")
        _validate_secret_strength(secret, min_len=self.policy.min_pin_length)

        try:
            return self.store.create_user(user, secret, "user", must_change_pin=1)
        except sqlite3.IntegrityError as exc:
            raise AuthorizationError(f"Could not create user '{user}': {exc}") from exc

    def change_my_pin(self, actor: User, current_pin: str, new_pin: str, confirm_pin: str) -> None:
        current_secret = current_pin.strip()
        new_secret = new_pin.strip()
        confirm_secret = confirm_pin.strip()

        if not current_secret:
            raise AuthorizationError("Current PIN is required.")
        _validate_secret_strength(new_secret, min_len=self.policy.min_pin_length)
        if new_secret != confirm_secret:
            raise AuthorizationError("PIN confirmation does not match.")
        if new_secret == current_secret:
            raise AuthorizationError("New PIN must be different from the current PIN.")

        changed = self.store.change_user_pin(actor.id, current_secret, new_secret)
        if not changed:
            raise AuthorizationError("Current PIN is incorrect.")
