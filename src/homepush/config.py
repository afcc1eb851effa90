import json
from pathlib import Path

from pydantic import AliasChoices, Field, computed_field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # API
    app_name: str = "homepush"
    app_version: str = "0.3.0"
    host: str = "0.0.0.0"
    port: int = 3000

    # Paths
    state_dir: str = Field(
        default=str(Path.home() / ".homepush"),
        validation_alias=AliasChoices("state_dir", "HOMEPUSH_STATE"),
        description="Directory for state files (config.json, subscriptions, keys)",
    )

    # VAPID identity; both keys empty means load-or-create in state_dir
    vapid_subject: str = "mailto:admin@localhost"
    vapid_public_key: str = ""
    vapid_private_key: str = Field(default="", repr=False)

    # Push delivery
    push_timeout_s: float = 15.0
    push_max_concurrency: int = 8
    push_ttl_s: int = 43200
    push_urgency: str = "high"
    push_prune_gone: bool = False
    welcome_message: str = "Notifications enabled!"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def push_subs_path(self) -> Path:
        """JSON file for push subscriptions."""
        return Path(self.state_dir) / "push_subscriptions.json"

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }


_override: Settings | None = None


def get_settings() -> Settings:
    """Return the active settings instance."""
    if _override:
        return _override
    settings = Settings()
    return _load_config_file(settings)


def _load_config_file(settings: Settings) -> Settings:
    """Load and merge config.json if it exists."""
    config_path = Path(settings.state_dir) / "config.json"
    if not config_path.exists():
        return settings

    try:
        data = json.loads(config_path.read_text())
        if not isinstance(data, dict):
            return settings

        # Expand ~ in path fields
        if "state_dir" in data and isinstance(data["state_dir"], str):
            data["state_dir"] = str(Path(data["state_dir"]).expanduser())

        return settings.model_copy(update=data)
    except (json.JSONDecodeError, OSError):
        return settings


def override_settings(s: Settings | None) -> None:
    """Swap in a custom Settings (use None to reset)."""
    global _override  # noqa: PLW0603
    _override = s
