"""Settle credit debits that failed while orders were being created.

Run periodically (cron, k8s CronJob):

    orderhub-reconcile [--client-id CLIENT]
"""

import argparse
from orderhub.core_settings import get_settings
from orderhub.infrastructure.credits import CreditLedger
from orderhub.infrastructure.db import get_session_factory
from shared.core import get_logger, setup_logging

logger = get_logger(__name__)

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Settle owed order credit debits")
    parser.add_argument("--client-id", help="only settle debits of this tenant")
    args = parser.parse_args(argv)

    setup_logging(service_name="orderhub-reconcile", level=get_settings().LOG_LEVEL)
    result = CreditLedger(get_session_factory()).settle_owed_debits(client_id=args.client_id)
    logger.info("Owed debit settlement finished", extra={'extra_fields': result})
    return 0 if result["pending"] == 0 else 1

if __name__ == "__main__":
    raise SystemExit(main())
