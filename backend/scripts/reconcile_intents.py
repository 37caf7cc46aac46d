"""Settle stale payment intents from the gateway's recorded state.

Run periodically (cron or a scheduled task) to recover intents whose
webhook never arrived, e.g. after a crash between the gateway call and the
local write or during a webhook outage.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import timedelta

from coursepay.core.settings import get_payment_settings
from coursepay.db.session import session_scope
from coursepay.integrations import StripeGateway
from coursepay.security.logging_filters import install_sensitive_filter
from coursepay.services import reconciliation_service


async def reconcile(older_than_minutes: int, limit: int) -> dict[str, int]:
    payment_settings = get_payment_settings()
    if not payment_settings.stripe_secret_key:
        raise SystemExit("STRIPE_SECRET_KEY is required for reconciliation")
    gateway = StripeGateway(
        payment_settings.stripe_secret_key,
        webhook_secret=payment_settings.stripe_webhook_secret,
        idempotency_prefix=payment_settings.idempotency_prefix,
    )
    async with session_scope() as session:
        return await reconciliation_service.reconcile_pending_intents(
            session,
            gateway,
            older_than=timedelta(minutes=older_than_minutes),
            limit=limit,
        )


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--older-than",
        type=int,
        default=get_payment_settings().reconcile_after_minutes,
        help="Only reconcile intents created at least this many minutes ago",
    )
    parser.add_argument("--limit", type=int, default=100)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    install_sensitive_filter(("", "coursepay"))
    summary = asyncio.run(reconcile(args.older_than, args.limit))
    print(summary)


if __name__ == "__main__":
    main()
