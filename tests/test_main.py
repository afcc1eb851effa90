from pathlib import Path

import pytest

from homepush.config import Settings, override_settings
from homepush.main import app, lifespan
from homepush.push.dispatcher import PushDispatcher
from homepush.push.vapid import generate_vapid_keys


@pytest.mark.asyncio
async def test_lifespan_generates_keys_when_unconfigured(tmp_path: Path) -> None:
    async with lifespan(app):
        assert app.state.vapid is not None
        assert isinstance(app.state.push_dispatcher, PushDispatcher)
        assert app.state.push_store.list_subscriptions() == []
    assert (tmp_path / "vapid_keys.json").exists()


@pytest.mark.asyncio
async def test_lifespan_uses_configured_keys(tmp_path: Path) -> None:
    public_key, private_key = generate_vapid_keys()
    override_settings(
        Settings(
            state_dir=str(tmp_path),
            vapid_subject="mailto:home@example.com",
            vapid_public_key=public_key,
            vapid_private_key=private_key,
        )
    )
    async with lifespan(app):
        assert app.state.vapid.public_key == public_key
        assert app.state.vapid.subject == "mailto:home@example.com"
    assert not (tmp_path / "vapid_keys.json").exists()


@pytest.mark.asyncio
async def test_lifespan_disables_push_on_bad_keys(tmp_path: Path) -> None:
    public_key, _ = generate_vapid_keys()
    override_settings(Settings(state_dir=str(tmp_path), vapid_public_key=public_key))
    async with lifespan(app):
        assert app.state.vapid is None
        assert app.state.push_dispatcher is None
