from __future__ import annotations

import argparse
import asyncio
from datetime import datetime, timezone
import sys

from fleetcomply.core.logging import configure_logging
from fleetcomply.domain.state import SubscriptionStatus
from fleetcomply.persistence.db import SessionLocal
from fleetcomply.services.subscriptions import record_subscription


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)


def _build_parser() -> argparse.ArgumentParser:
    # Manual billing event intake for support and backfills.
    parser = argparse.ArgumentParser(description="Append a subscription record for a user")
    parser.add_argument("--user-id", required=True)
    parser.add_argument(
        "--status",
        required=True,
        choices=[status.value for status in SubscriptionStatus],
    )
    parser.add_argument("--plan-id", default=None)
    parser.add_argument("--start", type=_parse_datetime, default=None, help="ISO-8601 start")
    parser.add_argument("--end", type=_parse_datetime, default=None, help="ISO-8601 end")
    parser.add_argument("--lifetime", action="store_true")
    return parser


async def _record(args: argparse.Namespace) -> int:
    configure_logging()
    async with SessionLocal() as session:
        subscription = await record_subscription(
            session,
            user_id=args.user_id,
            status=SubscriptionStatus(args.status),
            plan_id=args.plan_id,
            start_date=args.start,
            end_date=args.end,
            is_lifetime=args.lifetime,
        )
    print(f"subscription_id={subscription.id} status={subscription.status}")
    return 0


def main() -> int:
    args = _build_parser().parse_args()
    try:
        return asyncio.run(_record(args))
    except Exception as exc:  # noqa: BLE001 - surface billing intake failures clearly
        print(f"record_subscription failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
