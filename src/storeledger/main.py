from __future__ import annotations

import logging

from storeledger.application.container import build_container
from storeledger.config import APP_VERSION, get_app_paths
from storeledger.logging_config import setup_logging

log = logging.getLogger(__name__)


def main() -> None:
    """Open the store, check the ledger and report the license state.

    The desktop shell embeds :func:`build_container` and talks to ``container.api``.
    """
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)

    container = build_container(paths)
    health = container.operations.run_health_check()
    status = container.license.validate()
    log.info(
        "startup version=%s db=%s integrity=%s ledger_ok=%s licensed=%s",
        APP_VERSION,
        paths.db_path,
        health.sqlite_integrity,
        health.ledger_ok,
        status.is_valid,
    )
    print(f"StoreLedger {APP_VERSION}")
    print(f"  database : {paths.db_path} (integrity: {health.sqlite_integrity}, ledger ok: {health.ledger_ok})")
    if status.is_valid:
        expiry = f", {status.days_remaining} day(s) left" if status.days_remaining is not None else ""
        print(f"  license  : {status.customer_name} [{', '.join(status.features)}]{expiry}")
    else:
        print(f"  license  : trial ({status.error})")


if __name__ == "__main__":
    main()
