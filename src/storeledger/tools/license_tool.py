"""Offline license tooling.

    storeledger-license keygen --out keys/
    storeledger-license sign request.json --key keys/private-key.pem --expires 365 --features basic,reports
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from storeledger.domain.license import LicenseRequest
from storeledger.services.license_signer import generate_keys, load_private_key, sign_request


def _cmd_keygen(args: argparse.Namespace) -> int:
    private_path, public_path = generate_keys(args.out)
    print(f"Private key: {private_path} (keep offline)")
    print(f"Public key : {public_path} (ship with the application)")
    return 0


def _cmd_sign(args: argparse.Namespace) -> int:
    request = LicenseRequest.from_json(Path(args.request).read_text(encoding="utf-8"))
    features = [f.strip() for f in args.features.split(",") if f.strip()] if args.features else None
    lic = sign_request(request, load_private_key(args.key), features=features, expires_in_days=args.expires)
    out = Path(args.out) if args.out else Path(args.request).with_name(f"license-{lic.customer_id[:8]}.json")
    out.write_text(lic.to_json(), encoding="utf-8")
    expiry = lic.expires_at or "never"
    print(f"License for {lic.customer_name} written to {out} (features: {', '.join(lic.features)}; expires: {expiry})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="storeledger-license", description="Issue node-locked licenses.")
    sub = parser.add_subparsers(dest="command", required=True)

    keygen = sub.add_parser("keygen", help="generate an RSA key pair")
    keygen.add_argument("--out", default="keys", help="output directory")
    keygen.set_defaults(func=_cmd_keygen)

    sign = sub.add_parser("sign", help="sign a license request")
    sign.add_argument("request", help="license request JSON produced by the application")
    sign.add_argument("--key", required=True, help="private key PEM")
    sign.add_argument("--expires", type=int, default=None, help="validity in days (omit for perpetual)")
    sign.add_argument("--features", default=None, help="comma-separated features (default: all)")
    sign.add_argument("--out", default=None, help="license file to write")
    sign.set_defaults(func=_cmd_sign)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
