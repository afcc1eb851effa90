import secrets
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field

import httpx
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives.asymmetric import ec

from homepush.config import Settings, override_settings
from homepush.main import app
from homepush.push.dispatcher import PushDispatcher
from homepush.push.keys import b64url_encode, encode_public_key
from homepush.push.models import Subscription, VapidIdentity
from homepush.push.store import PushSubscriptionStore
from homepush.push.vapid import generate_vapid_keys


@pytest.fixture(autouse=True)
def _test_settings(tmp_path):
    """Override settings so tests use an isolated state dir."""
    override_settings(
        Settings(
            state_dir=str(tmp_path),
        )
    )
    yield
    override_settings(None)


@dataclass
class Browser:
    """A fake user agent holding the receiving side of a subscription."""

    private_key: ec.EllipticCurvePrivateKey
    auth_secret: bytes

    def subscription(self, endpoint: str) -> Subscription:
        return Subscription(
            endpoint=endpoint,
            p256dh=b64url_encode(encode_public_key(self.private_key.public_key())),
            auth=b64url_encode(self.auth_secret),
        )


def _new_browser() -> Browser:
    return Browser(
        private_key=ec.generate_private_key(ec.SECP256R1()),
        auth_secret=secrets.token_bytes(16),
    )


@pytest.fixture
def browser() -> Browser:
    return _new_browser()


@pytest.fixture
def browser_factory():
    """Create extra independent browsers in one test."""
    return _new_browser


@pytest.fixture
def vapid() -> VapidIdentity:
    public_key, private_key = generate_vapid_keys()
    return VapidIdentity(
        subject="mailto:ops@example.com",
        public_key=public_key,
        private_key=private_key,
    )


@dataclass
class FakePushService:
    """httpx handler standing in for push services.

    Endpoints listed in `statuses` answer with that status; all
    others answer 201. Endpoints in `broken` fail at transport level.
    """

    statuses: dict[str, int] = field(default_factory=dict)
    broken: set[str] = field(default_factory=set)
    requests: list[httpx.Request] = field(default_factory=list)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url in self.broken:
            raise httpx.ConnectError("connection refused", request=request)
        self.requests.append(request)
        status = self.statuses.get(url, 201)
        return httpx.Response(status, text="" if status < 300 else "push rejected")

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def push_service() -> FakePushService:
    return FakePushService()


@pytest.fixture
def dispatcher(push_service) -> PushDispatcher:
    return PushDispatcher(transport=push_service.transport())


@pytest_asyncio.fixture
async def client(tmp_path, vapid, dispatcher) -> AsyncGenerator[httpx.AsyncClient]:
    """Async test client with push state wired on app.state."""
    app.state.push_store = PushSubscriptionStore(tmp_path / "subs.json")
    app.state.vapid = vapid
    app.state.push_dispatcher = dispatcher

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
