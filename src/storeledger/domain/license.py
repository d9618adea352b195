from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from storeledger.domain.errors import InvalidSignatureError

TRIAL_FEATURES = ("basic",)
ALL_FEATURES = "all"

# Order is part of the signature format.
SIGNED_FIELDS = (
    "customer_id",
    "customer_name",
    "mac_hash",
    "device_id",
    "features",
    "issue_date",
    "expires_at",
)


@dataclass(frozen=True)
class LicenseRequest:
    mac_hash: str
    device_id: str
    customer_name: str
    request_date: str
    app_version: str

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False, indent=2)

    @classmethod
    def from_json(cls, blob: str) -> "LicenseRequest":
        data = json.loads(blob)
        return cls(
            mac_hash=str(data["mac_hash"]),
            device_id=str(data["device_id"]),
            customer_name=str(data["customer_name"]),
            request_date=str(data["request_date"]),
            app_version=str(data.get("app_version", "")),
        )


@dataclass(frozen=True)
class License:
    customer_id: str
    customer_name: str
    mac_hash: str
    device_id: str
    features: tuple[str, ...]
    issue_date: str
    expires_at: Optional[str] = None
    signature: str = ""

    def canonical_payload(self) -> bytes:
        values: dict[str, Any] = {
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "mac_hash": self.mac_hash,
            "device_id": self.device_id,
            "features": list(self.features),
            "issue_date": self.issue_date,
            "expires_at": self.expires_at,
        }
        ordered = {name: values[name] for name in SIGNED_FIELDS}
        return json.dumps(ordered, separators=(",", ":"), ensure_ascii=True).encode("ascii")

    def to_json(self) -> str:
        data = {name: getattr(self, name) for name in SIGNED_FIELDS}
        data["features"] = list(self.features)
        data["signature"] = self.signature
        return json.dumps(data, ensure_ascii=False, indent=2)

    @classmethod
    def from_json(cls, blob: str) -> "License":
        try:
            data = json.loads(blob)
            features = data["features"]
            if not isinstance(features, list) or not all(isinstance(f, str) for f in features):
                raise TypeError("features must be a list of strings")
            expires_at = data.get("expires_at")
            return cls(
                customer_id=str(data["customer_id"]),
                customer_name=str(data["customer_name"]),
                mac_hash=str(data["mac_hash"]),
                device_id=str(data["device_id"]),
                features=tuple(features),
                issue_date=str(data["issue_date"]),
                expires_at=str(expires_at) if expires_at is not None else None,
                signature=str(data["signature"]),
            )
        except (ValueError, KeyError, TypeError) as exc:
            raise InvalidSignatureError(f"License document is malformed: {exc}") from exc


@dataclass(frozen=True)
class LicenseStatus:
    is_valid: bool
    is_trial: bool
    features: tuple[str, ...] = field(default_factory=lambda: TRIAL_FEATURES)
    customer_name: Optional[str] = None
    expires_at: Optional[str] = None
    days_remaining: Optional[int] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @classmethod
    def trial(cls, error: Optional[str] = None, error_kind: Optional[str] = None) -> "LicenseStatus":
        return cls(is_valid=False, is_trial=True, features=TRIAL_FEATURES, error=error, error_kind=error_kind)

    def has_feature(self, name: str) -> bool:
        return name in self.features or ALL_FEATURES in self.features
