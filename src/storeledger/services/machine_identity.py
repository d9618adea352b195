from __future__ import annotations

import hashlib
import logging
import socket
from dataclasses import dataclass
from typing import Optional, Protocol

import machineid
import psutil

log = logging.getLogger("storeledger.license")

NULL_MAC = "00:00:00:00:00:00"
UNKNOWN_MAC = "unknown"
UNKNOWN_DEVICE = "unknown-device"


@dataclass(frozen=True)
class MachineIdentity:
    mac_hash: str
    device_id: str


class IdentityProvider(Protocol):
    def current(self) -> MachineIdentity: ...


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _normalize_mac(mac: str) -> str:
    return mac.strip().lower().replace("-", ":")


def first_mac_address() -> Optional[str]:
    """MAC of the first non-loopback interface that carries an IPv4 address."""
    for name, addrs in psutil.net_if_addrs().items():
        ipv4 = [a for a in addrs if a.family == socket.AF_INET]
        if not ipv4 or all(a.address.startswith("127.") for a in ipv4):
            continue
        for a in addrs:
            if a.family == psutil.AF_LINK and a.address:
                mac = _normalize_mac(a.address)
                if mac != NULL_MAC:
                    return mac
    return None


def platform_machine_id() -> Optional[str]:
    # py-machineid raises a plain Exception when the platform has no id source
    try:
        value = machineid.id()
    except Exception as exc:
        log.warning("device_id_unavailable error=%s", exc)
        return None
    return value.strip() or None


class HostIdentity:
    """Identity of the machine this process runs on."""

    def current(self) -> MachineIdentity:
        machine_id = platform_machine_id()
        return MachineIdentity(
            mac_hash=sha256_hex(first_mac_address() or UNKNOWN_MAC),
            device_id=sha256_hex(machine_id) if machine_id else UNKNOWN_DEVICE,
        )


@dataclass(frozen=True)
class FixedIdentity:
    identity: MachineIdentity

    def current(self) -> MachineIdentity:
        return self.identity
