"""Agent configuration and constants.

Single source of truth for the target application identity, collector
endpoints, polling intervals and classification thresholds. Every value
has a default matching the shipped desktop agent and can be overridden
from the environment (see ``AgentConfig.from_env``) or the CLI.
"""

import os
from typing import Final, Optional

from pydantic import BaseModel, ConfigDict, Field

from . import __version__


class TargetApp:
    """Identity of the monitored desktop application."""

    BUNDLE_IDENTIFIER: Final[str] = "com.anthropic.claudefordesktop"
    # Process names used when bundle identifiers are unavailable (psutil backend)
    PROCESS_NAMES: Final[frozenset[str]] = frozenset({"Claude", "claude", "claude-desktop"})


class Sources:
    """Source tags attached to every event envelope."""

    CLAUDE_DESKTOP: Final[str] = "claude_desktop"


class APIPaths:
    """Collector endpoint paths, relative to the API base URL."""

    EVENT: Final[str] = "/event"
    CURRENT_USER: Final[str] = "/users/current"


class Headers:
    """HTTP header names used on every collector request."""

    AUTHORIZATION: Final[str] = "Authorization"
    APP_VERSION: Final[str] = "X-App-Version"
    CONTENT_TYPE: Final[str] = "Content-Type"


DEFAULT_API_BASE_URL: Final[str] = "http://localhost:3000/api"


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class AgentConfig(BaseModel):
    """Runtime configuration for the desktop agent.

    Attributes:
        api_base_url: Collector API base URL (no trailing slash).
        app_version: Value sent in the X-App-Version header.
        token: Bearer token supplied at startup, if any.
        target_bundle_id: Bundle identifier of the monitored application.
        target_process_names: Process names matched by the psutil backend.
        source: Source tag placed on every event.
        poll_interval_sec: Window content poll interval.
        focus_interval_sec: Focus accumulator tick interval.
        workspace_poll_interval_sec: Running-application snapshot interval.
        max_walk_depth: Depth cap for accessibility tree traversal.
        prompt_max_length: Prompts must be shorter than this (trimmed chars).
        response_min_length: Responses must be longer than this (trimmed chars).
        connect_timeout_sec: Transport connect timeout.
        request_timeout_sec: Total request timeout.
        auto_start_monitoring: Start a session at launch if the target is
            already running and the user is authenticated.
        shutdown_grace_sec: Time allowed for in-flight events on shutdown.
    """

    model_config = ConfigDict(
        validate_assignment=True,
        extra="forbid",
    )

    api_base_url: str = Field(default=DEFAULT_API_BASE_URL, description="Collector API base URL")
    app_version: str = Field(default=__version__, description="Agent version header value")
    token: Optional[str] = Field(default=None, description="Bearer token supplied at startup")

    target_bundle_id: str = Field(default=TargetApp.BUNDLE_IDENTIFIER)
    target_process_names: frozenset[str] = Field(default=TargetApp.PROCESS_NAMES)
    source: str = Field(default=Sources.CLAUDE_DESKTOP)

    poll_interval_sec: float = Field(default=0.5, gt=0)
    focus_interval_sec: float = Field(default=1.0, gt=0)
    workspace_poll_interval_sec: float = Field(default=1.0, gt=0)

    max_walk_depth: int = Field(default=15, gt=0)
    prompt_max_length: int = Field(default=500, gt=0)
    response_min_length: int = Field(default=100, ge=0)

    connect_timeout_sec: float = Field(default=30.0, gt=0)
    request_timeout_sec: float = Field(default=60.0, gt=0)

    auto_start_monitoring: bool = Field(default=True)
    shutdown_grace_sec: float = Field(default=5.0, ge=0)

    @property
    def event_url(self) -> str:
        """Full URL of the event ingestion endpoint."""
        return f"{self.api_base_url.rstrip('/')}{APIPaths.EVENT}"

    @property
    def current_user_url(self) -> str:
        """Full URL of the token validation endpoint."""
        return f"{self.api_base_url.rstrip('/')}{APIPaths.CURRENT_USER}"

    @classmethod
    def from_env(cls, **overrides) -> "AgentConfig":
        """Build configuration from environment variables.

        Environment Variables:
            JIFFY_API_URL: Collector API base URL
            JIFFY_APP_VERSION: Override X-App-Version header value
            JIFFY_TOKEN: Bearer token
            JIFFY_TARGET_BUNDLE_ID: Bundle identifier of the monitored app
            JIFFY_AUTO_START: Auto-start monitoring at launch (1/0)

        Args:
            **overrides: Explicit values that take precedence over the
                environment (None values are ignored).

        Returns:
            Validated AgentConfig
        """
        values = {
            "api_base_url": os.environ.get("JIFFY_API_URL", DEFAULT_API_BASE_URL),
            "app_version": os.environ.get("JIFFY_APP_VERSION", __version__),
            "token": os.environ.get("JIFFY_TOKEN") or None,
            "target_bundle_id": os.environ.get("JIFFY_TARGET_BUNDLE_ID", TargetApp.BUNDLE_IDENTIFIER),
            "auto_start_monitoring": _env_bool("JIFFY_AUTO_START", True),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
