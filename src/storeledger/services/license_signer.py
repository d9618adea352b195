"""Offline license issuing: key pairs and request signing.

Only the public key ships with the application.
"""
from __future__ import annotations

import base64
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from storeledger.domain.errors import ValidationError
from storeledger.domain.license import ALL_FEATURES, License, LicenseRequest

KEY_SIZE = 2048
PRIVATE_KEY_FILE = "private-key.pem"
PUBLIC_KEY_FILE = "public-key.pem"


def generate_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=KEY_SIZE)


def public_pem(private_key: rsa.RSAPrivateKey) -> bytes:
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def private_pem(private_key: rsa.RSAPrivateKey) -> bytes:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def generate_keys(out_dir: Path | str) -> tuple[Path, Path]:
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    key = generate_private_key()
    private_path = out / PRIVATE_KEY_FILE
    public_path = out / PUBLIC_KEY_FILE
    private_path.write_bytes(private_pem(key))
    private_path.chmod(0o600)
    public_path.write_bytes(public_pem(key))
    return private_path, public_path


def load_private_key(path: Path | str) -> rsa.RSAPrivateKey:
    key = serialization.load_pem_private_key(Path(path).read_bytes(), password=None)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValidationError("Signing key must be an RSA private key.")
    return key


def sign_payload(private_key: rsa.RSAPrivateKey, payload: bytes) -> str:
    signature = private_key.sign(payload, padding.PKCS1v15(), hashes.SHA256())
    return base64.b64encode(signature).decode("ascii")


def sign_request(
    request: LicenseRequest,
    private_key: rsa.RSAPrivateKey,
    features: Iterable[str] | None = None,
    expires_in_days: int | None = None,
    now: datetime | None = None,
) -> License:
    features = tuple(features) if features else (ALL_FEATURES,)
    if expires_in_days is not None and int(expires_in_days) <= 0:
        raise ValidationError("Expiry must be at least one day.")
    issued = now or datetime.now(timezone.utc)
    expires_at = None
    if expires_in_days is not None:
        expires_at = (issued + timedelta(days=int(expires_in_days))).isoformat(timespec="seconds")

    unsigned = License(
        customer_id=str(uuid.uuid4()),
        customer_name=request.customer_name,
        mac_hash=request.mac_hash,
        device_id=request.device_id,
        features=features,
        issue_date=issued.isoformat(timespec="seconds"),
        expires_at=expires_at,
    )
    return replace(unsigned, signature=sign_payload(private_key, unsigned.canonical_payload()))
