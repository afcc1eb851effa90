#!/usr/bin/env python3
"""Send a push message to every stored subscription.

Debug tool for checking delivery end to end without the web
server. Uses the same settings (.env, state dir) as the app.

Usage:
    uv run scripts/send_push.py <message>
"""

from __future__ import annotations

import asyncio
import sys

from dotenv import load_dotenv

from homepush.config import get_settings
from homepush.main import build_dispatcher
from homepush.push.models import DeliveryReport
from homepush.push.store import PushSubscriptionStore
from homepush.push.vapid import load_vapid_identity


async def _send(message: str) -> DeliveryReport:
    settings = get_settings()
    vapid = load_vapid_identity(
        subject=settings.vapid_subject,
        public_key=settings.vapid_public_key,
        private_key=settings.vapid_private_key,
        state_dir=settings.state_dir,
    )
    subs = PushSubscriptionStore(settings.push_subs_path).list_subscriptions()
    outcomes = await build_dispatcher(settings).send_all(subs, message, vapid)
    for outcome in outcomes:
        status = "ok" if outcome.ok else f"FAILED {outcome.error}"
        print(f"{outcome.endpoint[:60]}  {status}")
    return DeliveryReport.from_outcomes(outcomes)


def main() -> None:
    if len(sys.argv) != 2:
        raise SystemExit(__doc__)
    load_dotenv()
    report = asyncio.run(_send(sys.argv[1]))
    print(f"\nDelivered {report.delivered}/{report.total}")


if __name__ == "__main__":
    main()
