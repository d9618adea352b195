from __future__ import annotations

import base64
import binascii
import logging
import math
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from storeledger.config import APP_VERSION
from storeledger.domain.errors import (
    InvalidSignatureError,
    LicenseError,
    LicenseExpiredError,
    MachineMismatchError,
    NoLicenseFileError,
    ValidationError,
)
from storeledger.domain.license import License, LicenseRequest, LicenseStatus
from storeledger.services.machine_identity import HostIdentity, IdentityProvider

log = logging.getLogger("storeledger.license")

SECONDS_PER_DAY = 86_400


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_instant(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class LicenseService:
    """Node-locked license state: trial until a signed license for this machine is activated.

    A failed check never raises out of :meth:`validate`; it degrades to the
    trial status and records why.
    """

    def __init__(
        self,
        license_path: Path | str,
        public_key_path: Path | str,
        identity: IdentityProvider | None = None,
        store=None,
        app_version: str = APP_VERSION,
        clock: Callable[[], datetime] | None = None,
    ):
        self.license_path = Path(license_path)
        self.public_key_path = Path(public_key_path)
        self.identity = identity or HostIdentity()
        self.store = store
        self.app_version = app_version
        self.clock = clock or _utcnow
        self._status: LicenseStatus | None = None

    def generate_request(self, customer_name: str) -> LicenseRequest:
        name = (customer_name or "").strip()
        if not name:
            raise ValidationError("Customer name is required.")
        machine = self.identity.current()
        return LicenseRequest(
            mac_hash=machine.mac_hash,
            device_id=machine.device_id,
            customer_name=name,
            request_date=self.clock().isoformat(timespec="seconds"),
            app_version=self.app_version,
        )

    def validate(self) -> LicenseStatus:
        try:
            if not self.license_path.exists():
                raise NoLicenseFileError("No license file found.")
            lic = License.from_json(self.license_path.read_text(encoding="utf-8"))
            status = self.check(lic)
        except LicenseError as exc:
            log.warning("license_invalid kind=%s error=%s", exc.kind, exc)
            status = LicenseStatus.trial(error=str(exc), error_kind=exc.kind)
        self._status = status
        return status

    def activate(self, blob: str) -> LicenseStatus:
        """Install ``blob`` if it is a valid license for this machine.

        Nothing is written unless it validates, so a rejected blob leaves the
        previous license and status in place.
        """
        try:
            lic = License.from_json(blob)
            status = self.check(lic)
        except LicenseError as exc:
            log.warning("license_activation_rejected kind=%s error=%s", exc.kind, exc)
            self._audit("license_activation_failed", f"{exc.kind}: {exc}")
            raise

        self._write_atomically(lic.to_json())
        self._status = status
        log.info(
            "license_activated customer=%s features=%s expires_at=%s",
            lic.customer_name,
            ",".join(lic.features),
            lic.expires_at,
        )
        self._audit("license_activated", f"customer_id={lic.customer_id} features={','.join(lic.features)}")
        return status

    def get_status(self) -> LicenseStatus:
        if self._status is None:
            return self.validate()
        return self._status

    def has_feature(self, name: str) -> bool:
        return self.get_status().has_feature(name)

    def check(self, lic: License) -> LicenseStatus:
        machine = self.identity.current()
        if lic.mac_hash != machine.mac_hash:
            raise MachineMismatchError("License was issued for another machine (network adapter mismatch).")
        if lic.device_id != machine.device_id:
            raise MachineMismatchError("License was issued for another machine (device id mismatch).")

        self._verify_signature(lic)

        days_remaining = None
        if lic.expires_at is not None:
            try:
                expires = _parse_instant(lic.expires_at)
            except ValueError as exc:
                raise InvalidSignatureError(f"License expiry is unreadable: {lic.expires_at}") from exc
            remaining = (expires - self.clock()).total_seconds()
            if remaining <= 0:
                raise LicenseExpiredError(f"License expired on {lic.expires_at}.")
            days_remaining = math.ceil(remaining / SECONDS_PER_DAY)

        return LicenseStatus(
            is_valid=True,
            is_trial=False,
            features=tuple(lic.features),
            customer_name=lic.customer_name,
            expires_at=lic.expires_at,
            days_remaining=days_remaining,
        )

    def _verify_signature(self, lic: License) -> None:
        public_key = self._load_public_key()
        try:
            signature = base64.b64decode(lic.signature, validate=True)
            public_key.verify(signature, lic.canonical_payload(), padding.PKCS1v15(), hashes.SHA256())
        except (InvalidSignature, binascii.Error, ValueError) as exc:
            raise InvalidSignatureError("License signature is invalid.") from exc

    def _load_public_key(self) -> rsa.RSAPublicKey:
        if not self.public_key_path.exists():
            raise InvalidSignatureError(f"Verification key not found at {self.public_key_path}.")
        try:
            key = serialization.load_pem_public_key(self.public_key_path.read_bytes())
        except ValueError as exc:
            raise InvalidSignatureError("Verification key is unreadable.") from exc
        if not isinstance(key, rsa.RSAPublicKey):
            raise InvalidSignatureError("Verification key is not an RSA key.")
        return key

    def _write_atomically(self, text: str) -> None:
        self.license_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.license_path.with_name(self.license_path.name + ".tmp")
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, self.license_path)

    def _audit(self, action: str, details: Optional[str]) -> None:
        if self.store is None:
            return
        self.store.record_audit(action, entity_type="license", details=details)
