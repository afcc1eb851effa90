"""JSON-file-backed push subscription store."""

import json
from dataclasses import asdict
from pathlib import Path

import structlog

from homepush.push.models import Subscription

logger = structlog.get_logger()


class PushSubscriptionStore:
    """Minimal push subscription store backed by a JSON file.

    Subscriptions are keyed by endpoint. Meant for a household's
    handful of browsers; all access runs on the event loop so no
    locking is done.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._subs: dict[str, Subscription] = {}
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            self._subs = {}
            return
        try:
            data = json.loads(self._path.read_text())
            subs = [Subscription(**s) for s in data]
        except (json.JSONDecodeError, OSError, TypeError):
            logger.warning("subscription_store_unreadable", path=str(self._path))
            self._subs = {}
            return
        self._subs = {s.endpoint: s for s in subs}

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(
            json.dumps([asdict(s) for s in self._subs.values()], indent=2)
        )

    def subscribe(self, endpoint: str, p256dh: str, auth: str) -> Subscription:
        """Add a subscription, replacing any with the same endpoint."""
        sub = Subscription(endpoint=endpoint, p256dh=p256dh, auth=auth)
        self._subs[endpoint] = sub
        self._save()
        return sub

    def unsubscribe(self, endpoint: str) -> bool:
        """Remove a subscription. Returns False if it was unknown."""
        if self._subs.pop(endpoint, None) is None:
            return False
        self._save()
        return True

    def remove_endpoints(self, endpoints: list[str]) -> int:
        """Drop several endpoints at once (404/410 cleanup)."""
        removed = [e for e in endpoints if self._subs.pop(e, None) is not None]
        if removed:
            self._save()
        return len(removed)

    def get(self, endpoint: str) -> Subscription | None:
        return self._subs.get(endpoint)

    def list_subscriptions(self) -> list[Subscription]:
        """All subscriptions, oldest first."""
        return list(self._subs.values())
