from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

import structlog
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from homepush.api.router import api_router
from homepush.config import Settings, get_settings
from homepush.push.dispatcher import PushDispatcher
from homepush.push.errors import InvalidKey
from homepush.push.models import VapidIdentity
from homepush.push.store import PushSubscriptionStore
from homepush.push.vapid import load_vapid_identity

logger = structlog.get_logger()

load_dotenv()


def _load_identity(settings: Settings) -> VapidIdentity | None:
    """VAPID identity for this process, or None to disable push."""
    try:
        return load_vapid_identity(
            subject=settings.vapid_subject,
            public_key=settings.vapid_public_key,
            private_key=settings.vapid_private_key,
            state_dir=settings.state_dir,
        )
    except InvalidKey as e:
        logger.warning("push_notifications_disabled", reason=str(e))
        return None


def build_dispatcher(settings: Settings) -> PushDispatcher:
    """Dispatcher configured from settings."""
    return PushDispatcher(
        timeout=settings.push_timeout_s,
        max_concurrency=settings.push_max_concurrency,
        ttl=settings.push_ttl_s,
        urgency=settings.push_urgency,
    )


@asynccontextmanager
async def lifespan(
    app: FastAPI,
) -> AsyncGenerator[None]:
    settings = get_settings()
    logger.info("starting_up", version=settings.app_version)

    state_dir = Path(settings.state_dir)
    state_dir.mkdir(parents=True, exist_ok=True)

    push_store = PushSubscriptionStore(settings.push_subs_path)
    vapid = _load_identity(settings)
    app.state.push_store = push_store
    app.state.vapid = vapid
    app.state.push_dispatcher = build_dispatcher(settings) if vapid else None
    if vapid:
        logger.info(
            "push_notifications_enabled",
            subject=vapid.subject,
            subscribers=len(push_store.list_subscriptions()),
        )

    yield

    logger.info("shutting_down")


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    settings = get_settings()
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    application.include_router(api_router, prefix="/api/v1")
    return application


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
