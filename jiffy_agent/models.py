"""Pydantic data models for the Jiffy Desktop Agent.

This module defines the core data structures used throughout the agent:
- EventType: Enum of event types understood by the collector
- Event: Immutable envelope posted to the collector
- MonitoringSession: One monitoring session (identity, timing, counters)
- User / AuthState: Authenticated user as returned by the collector
- SignalKind / LifecycleSignal: Lifecycle notifications fed to the session manager
- DispatchResult: Outcome of one event delivery attempt
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from .errors import EventError


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_iso8601(value: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with second precision (``...Z``)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# =============================================================================
# Event Envelope
# =============================================================================


class EventType(str, Enum):
    """Event types accepted by the collector."""

    PROMPT_SUBMITTED = "ai_prompt_submitted"
    RESPONSE_RECEIVED = "ai_response_received"
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"
    USER_ACTIVITY = "user_activity"


class Event(BaseModel):
    """Event envelope posted to the collector.

    Constructed once per emission and never mutated. Field names on the
    wire are camelCase (``tabId``, ``sessionId``).

    Attributes:
        type: Event type string (see EventType).
        source: Source tag identifying the monitored application.
        metadata: Ordered string-to-string mapping.
        tab_id: Browser tab identifier, always None for the desktop agent.
        session_id: Monitoring session the event belongs to, if any.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        use_enum_values=True,
    )

    type: str = Field(..., description="Event type")
    source: str = Field(..., description="Source tag")
    metadata: dict[str, str] = Field(default_factory=dict, description="Event metadata")
    tab_id: Optional[int] = Field(default=None, alias="tabId")
    session_id: Optional[str] = Field(default=None, alias="sessionId")

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the collector wire format.

        ``tabId`` is omitted when absent; ``sessionId`` is always present
        (null when the event is not bound to a session).
        """
        payload = self.model_dump(by_alias=True)
        if payload.get("tabId") is None:
            payload.pop("tabId", None)
        return payload


# =============================================================================
# Monitoring Session
# =============================================================================


def _new_session_id() -> str:
    return str(uuid.uuid4()).upper()


class MonitoringSession(BaseModel):
    """One monitoring session of the target application.

    Exclusively owned and mutated by the SessionManager while active.

    Attributes:
        id: Opaque unique identifier assigned at creation.
        start_time: Creation timestamp.
        end_time: Set exactly once on termination; None while active.
        total_focus_time: Seconds accumulated while the target held focus.
        prompt_count: Prompts captured during this session.
        response_count: Responses captured during this session.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=_new_session_id, frozen=True)
    start_time: datetime = Field(default_factory=utc_now, frozen=True)
    end_time: Optional[datetime] = Field(default=None)
    total_focus_time: float = Field(default=0.0, ge=0)
    prompt_count: int = Field(default=0, ge=0)
    response_count: int = Field(default=0, ge=0)

    @property
    def is_active(self) -> bool:
        return self.end_time is None

    def duration(self, now: Optional[datetime] = None) -> float:
        """Elapsed seconds from start to end (or to now while active)."""
        end = self.end_time or now or utc_now()
        return (end - self.start_time).total_seconds()

    def end(self, at: Optional[datetime] = None) -> bool:
        """Stamp the end time.

        Returns:
            True if the session was ended by this call, False if it had
            already ended.
        """
        if self.end_time is not None:
            return False
        self.end_time = at or utc_now()
        return True

    def increment_prompt_count(self) -> None:
        self.prompt_count += 1

    def increment_response_count(self) -> None:
        self.response_count += 1

    def add_focus_time(self, seconds: float) -> None:
        if seconds > 0:
            self.total_focus_time += seconds

    def to_metadata(self) -> dict[str, str]:
        """Session summary sent with the session-ended event."""
        return {
            "sessionId": self.id,
            "duration": f"{self.duration():.0f}",
            "focusTime": f"{self.total_focus_time:.0f}",
            "promptCount": str(self.prompt_count),
            "responseCount": str(self.response_count),
            "startTime": format_iso8601(self.start_time),
            "endTime": format_iso8601(self.end_time) if self.end_time else "",
        }


# =============================================================================
# Auth Models
# =============================================================================


class User(BaseModel):
    """Authenticated user as returned by ``GET /users/current``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    email: Optional[str] = None
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    organization_id: Optional[str] = Field(default=None, alias="organizationId")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")

    @property
    def display_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        if self.first_name:
            return self.first_name
        if self.email:
            return self.email
        return "User"


class UserResponse(BaseModel):
    """Envelope of the current-user endpoint."""

    user: User


class AuthState(BaseModel):
    """Snapshot of the agent's authentication state."""

    is_authenticated: bool = False
    user: Optional[User] = None
    token: Optional[str] = None


# =============================================================================
# Lifecycle Signals
# =============================================================================


class SignalKind(str, Enum):
    """Lifecycle notifications consumed by the SessionManager.

    State Transitions:
        LAUNCHED (target) + authenticated: Idle → Active
        AUTHENTICATED + target running: Idle → Active
        TERMINATED (target): Active → Idle
        LOGGED_OUT: Active → Idle
        ACTIVATED: updates focus flag only
    """

    LAUNCHED = "launched"
    TERMINATED = "terminated"
    ACTIVATED = "activated"
    AUTHENTICATED = "authenticated"
    LOGGED_OUT = "logged_out"


class LifecycleSignal(BaseModel):
    """One lifecycle notification."""

    model_config = ConfigDict(frozen=True)

    kind: SignalKind
    bundle_id: Optional[str] = Field(default=None, description="Application the signal refers to")


# =============================================================================
# Dispatch Result
# =============================================================================


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of one event delivery attempt."""

    success: bool
    event_type: str
    error: Optional["EventError"] = None

    @classmethod
    def ok(cls, event_type: str) -> "DispatchResult":
        return cls(success=True, event_type=event_type)

    @classmethod
    def failed(cls, event_type: str, error: "EventError") -> "DispatchResult":
        return cls(success=False, event_type=event_type, error=error)
