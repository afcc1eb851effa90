"""Push notification API endpoints."""

import structlog
from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from pydantic import BaseModel, Field

from homepush.config import get_settings
from homepush.push.dispatcher import PushDispatcher, extract_origin
from homepush.push.ece import AUTH_SECRET_SIZE
from homepush.push.errors import InvalidEndpoint, InvalidKey, PushError
from homepush.push.keys import b64url_decode, decode_public_key
from homepush.push.models import DeliveryReport, Subscription, VapidIdentity

logger = structlog.get_logger()

router = APIRouter()


class SubscribeRequest(BaseModel):
    endpoint: str
    p256dh: str
    auth: str


class UnsubscribeRequest(BaseModel):
    endpoint: str


class SendRequest(BaseModel):
    message: str = Field(min_length=1, description="Notification text")


def _push_stack(request: Request) -> tuple[PushDispatcher, VapidIdentity]:
    """Dispatcher and identity from app state, or 503 when disabled."""
    dispatcher = getattr(request.app.state, "push_dispatcher", None)
    vapid = getattr(request.app.state, "vapid", None)
    if dispatcher is None or vapid is None:
        raise HTTPException(status_code=503, detail="push notifications disabled")
    return dispatcher, vapid


async def _send_welcome(
    dispatcher: PushDispatcher,
    sub: Subscription,
    message: str,
    vapid: VapidIdentity,
) -> None:
    """Best-effort confirmation push after subscribing."""
    try:
        await dispatcher.send_one(sub, message, vapid)
    except PushError as e:
        logger.info("welcome_push_failed", endpoint=sub.endpoint, error=str(e))


@router.get("/vapid-key")
async def vapid_key(request: Request) -> dict:
    """Return the VAPID application server key."""
    _, vapid = _push_stack(request)
    return {"public_key": vapid.public_key}


@router.post("/subscribe", status_code=201)
async def subscribe(
    body: SubscribeRequest,
    request: Request,
    background: BackgroundTasks,
) -> dict:
    """Register a push subscription and send a welcome push."""
    dispatcher, vapid = _push_stack(request)
    try:
        decode_public_key(b64url_decode(body.p256dh))
        if len(b64url_decode(body.auth)) != AUTH_SECRET_SIZE:
            raise InvalidKey(f"auth secret must be {AUTH_SECRET_SIZE} bytes")
        extract_origin(body.endpoint)
    except (InvalidKey, InvalidEndpoint) as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    store = request.app.state.push_store
    sub = store.subscribe(endpoint=body.endpoint, p256dh=body.p256dh, auth=body.auth)
    logger.info("subscription_added", endpoint=body.endpoint)

    background.add_task(
        _send_welcome,
        dispatcher,
        sub,
        get_settings().welcome_message,
        vapid,
    )
    return {"ok": True}


@router.post("/unsubscribe")
async def unsubscribe(body: UnsubscribeRequest, request: Request) -> dict:
    """Remove a push subscription."""
    store = request.app.state.push_store
    removed = store.unsubscribe(body.endpoint)
    if removed:
        logger.info("subscription_removed", endpoint=body.endpoint)
    return {"ok": True, "removed": removed}


@router.get("/subscriptions")
async def subscriptions(request: Request) -> list[str]:
    """Return the endpoints of all stored subscriptions."""
    store = request.app.state.push_store
    return [s.endpoint for s in store.list_subscriptions()]


@router.post("/send")
async def send(body: SendRequest, request: Request) -> dict:
    """Send a message to every subscriber and report the tally."""
    dispatcher, vapid = _push_stack(request)
    store = request.app.state.push_store
    subs = store.list_subscriptions()
    if not subs:
        logger.info("no_push_subscribers")

    outcomes = await dispatcher.send_all(subs, body.message, vapid)
    report = DeliveryReport.from_outcomes(outcomes)
    logger.info(
        "push_batch_sent",
        delivered=report.delivered,
        total=report.total,
    )

    if report.gone and get_settings().push_prune_gone:
        pruned = store.remove_endpoints(report.gone)
        logger.info("subscriptions_pruned", count=pruned)

    return {"ok": True, "delivered": report.delivered, "total": report.total}
