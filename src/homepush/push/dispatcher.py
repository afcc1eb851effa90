"""Deliver encrypted Web Push messages to push services."""

import asyncio
from collections.abc import Sequence
from urllib.parse import urlsplit

import httpx
import structlog

from homepush.push.ece import PayloadEncryptor
from homepush.push.errors import (
    EndpointRejected,
    InvalidEndpoint,
    PushError,
    Transport,
)
from homepush.push.keys import b64url_decode, decode_public_key
from homepush.push.models import PushOutcome, Subscription, VapidIdentity
from homepush.push.vapid import sign, vapid_authorization

logger = structlog.get_logger()

_DEFAULT_PORTS = {"http": 80, "https": 443}


def extract_origin(endpoint: str) -> str:
    """Origin (scheme://host[:port]) of a push endpoint.

    The port is kept only when it is explicit and differs from
    the scheme's default.
    """
    try:
        httpx.URL(endpoint)
    except httpx.InvalidURL as exc:
        msg = f"malformed endpoint URL: {exc}"
        raise InvalidEndpoint(msg) from exc

    parts = urlsplit(endpoint)
    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        msg = f"unsupported endpoint scheme: {endpoint!r}"
        raise InvalidEndpoint(msg)
    host = parts.hostname
    if not host:
        msg = f"no host in endpoint URL: {endpoint!r}"
        raise InvalidEndpoint(msg)
    try:
        port = parts.port
    except ValueError as exc:
        msg = f"bad port in endpoint URL: {endpoint!r}"
        raise InvalidEndpoint(msg) from exc

    if ":" in host:
        host = f"[{host}]"
    origin = f"{scheme}://{host}"
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        origin = f"{origin}:{port}"
    return origin


class PushDispatcher:
    """Send messages to one or many push subscriptions.

    Each send owns its ephemeral key, salt and HTTP client, so
    concurrent sends share no mutable state. Batches fan out as
    independent tasks bounded by max_concurrency.
    """

    def __init__(
        self,
        *,
        timeout: float = 15.0,
        max_concurrency: int = 8,
        ttl: int = 43200,
        urgency: str = "high",
        encryptor: PayloadEncryptor | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._max_concurrency = max(1, max_concurrency)
        self._ttl = ttl
        self._urgency = urgency
        self._encryptor = encryptor or PayloadEncryptor()
        self._transport = transport
        # Batches shielded from caller cancellation stay referenced here.
        self._inflight: set[asyncio.Future] = set()

    def build_request(
        self,
        subscription: Subscription,
        message: str,
        vapid: VapidIdentity,
    ) -> tuple[dict[str, str], bytes]:
        """Encrypt the message and build headers for one endpoint.

        Raises:
            InvalidKey: Subscriber or VAPID keys are malformed.
            InvalidEndpoint: Endpoint has no usable origin.
            PayloadTooLarge: Message does not fit one push record.
            CryptoFailure: Encryption failed.
        """
        ua_key = decode_public_key(b64url_decode(subscription.p256dh))
        auth_secret = b64url_decode(subscription.auth)
        payload = self._encryptor.encrypt(message.encode(), ua_key, auth_secret)

        audience = extract_origin(subscription.endpoint)
        token = sign(audience, vapid.subject, vapid.signing_key())
        headers = {
            "Content-Type": "application/octet-stream",
            "Content-Encoding": "aes128gcm",
            "Authorization": vapid_authorization(token, vapid.public_key),
            "TTL": str(self._ttl),
            "Urgency": self._urgency,
        }
        return headers, payload.to_bytes()

    async def send_one(
        self,
        subscription: Subscription,
        message: str,
        vapid: VapidIdentity,
    ) -> None:
        """Deliver one message to one subscription.

        Raises:
            PushError: One of its subclasses; nothing else escapes.
        """
        headers, body = self.build_request(subscription, message, vapid)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                resp = await client.post(
                    subscription.endpoint,
                    content=body,
                    headers=headers,
                )
        except httpx.InvalidURL as exc:
            raise InvalidEndpoint(f"malformed endpoint URL: {exc}") from exc
        except httpx.HTTPError as exc:
            msg = f"{type(exc).__name__}: {exc}"
            raise Transport(msg) from exc

        logger.debug(
            "push_response",
            endpoint=subscription.endpoint,
            status=resp.status_code,
        )
        if not resp.is_success:
            raise EndpointRejected(resp.status_code, resp.text)

    async def _attempt(
        self,
        subscription: Subscription,
        message: str,
        vapid: VapidIdentity,
        limit: asyncio.Semaphore,
    ) -> PushOutcome:
        async with limit:
            try:
                await self.send_one(subscription, message, vapid)
            except PushError as e:
                logger.warning(
                    "push_failed",
                    endpoint=subscription.endpoint,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                return PushOutcome(endpoint=subscription.endpoint, error=e)
        logger.debug("push_sent", endpoint=subscription.endpoint)
        return PushOutcome(endpoint=subscription.endpoint)

    async def send_all(
        self,
        subscriptions: Sequence[Subscription],
        message: str,
        vapid: VapidIdentity,
    ) -> list[PushOutcome]:
        """Deliver a message to every subscription independently.

        Returns one outcome per subscription, in input order. If
        the caller is cancelled, the batch still runs to
        completion in the background.
        """
        limit = asyncio.Semaphore(self._max_concurrency)
        tasks = [
            asyncio.create_task(self._attempt(sub, message, vapid, limit))
            for sub in subscriptions
        ]
        batch = asyncio.gather(*tasks)
        self._inflight.add(batch)
        batch.add_done_callback(self._inflight.discard)
        return list(await asyncio.shield(batch))
