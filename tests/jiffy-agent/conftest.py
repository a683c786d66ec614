"""Pytest configuration and fixtures for Jiffy Desktop Agent tests."""

import asyncio
import time
from typing import Any, Callable, Optional

import pytest

from jiffy_agent.auth import AuthManager
from jiffy_agent.config import AgentConfig
from jiffy_agent.errors import NotAuthenticatedError
from jiffy_agent.event_sender import EventSender
from jiffy_agent.models import Event, EventType
from jiffy_agent.workspace import ApplicationWorkspace, RunningApplication

TARGET = "com.anthropic.claudefordesktop"
OTHER_APP = "com.apple.Safari"


# ============================================================================
# Test doubles
# ============================================================================


class RecordingEventSender(EventSender):
    """EventSender that records envelopes instead of posting them."""

    def __init__(self, config: AgentConfig, auth: AuthManager) -> None:
        super().__init__(config, auth)
        self.events: list[Event] = []

    async def send_event(self, event_type, metadata, session_id=None, source=None) -> None:
        if not self.auth.token:
            raise NotAuthenticatedError()
        self.events.append(self.build_event(event_type, metadata, session_id=session_id, source=source))

    def of_type(self, event_type: EventType) -> list[Event]:
        return [e for e in self.events if e.type == event_type.value]


class FakeMonitor:
    """Content monitor stand-in that records start/stop calls."""

    def __init__(self, calls: Optional[list[str]] = None) -> None:
        self.calls = calls if calls is not None else []
        self.is_monitoring = False

    async def start(self) -> bool:
        self.calls.append("monitor.start")
        self.is_monitoring = True
        return True

    async def stop(self) -> None:
        self.calls.append("monitor.stop")
        self.is_monitoring = False


class FakeWorkspace(ApplicationWorkspace):
    """Mutable in-memory workspace."""

    def __init__(self, running: Optional[list[str]] = None, frontmost: Optional[str] = None) -> None:
        self.running = list(running or [])
        self.frontmost = frontmost

    def running_applications(self) -> list[RunningApplication]:
        return [
            RunningApplication(bundle_id=bundle_id, pid=1000 + i, name=bundle_id.rsplit(".", 1)[-1])
            for i, bundle_id in enumerate(self.running)
        ]

    def frontmost_application(self) -> Optional[RunningApplication]:
        if self.frontmost is None:
            return None
        return RunningApplication(bundle_id=self.frontmost, pid=999, name=self.frontmost)

    def launch(self, bundle_id: str, focus: bool = True) -> None:
        if bundle_id not in self.running:
            self.running.append(bundle_id)
        if focus:
            self.frontmost = bundle_id

    def terminate(self, bundle_id: str) -> None:
        self.running = [b for b in self.running if b != bundle_id]
        if self.frontmost == bundle_id:
            self.frontmost = None


class SignalCollector:
    """Stands in for the session manager where only ``post`` is used."""

    def __init__(self) -> None:
        self.signals = []

    def post(self, signal) -> None:
        self.signals.append(signal)


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def config() -> AgentConfig:
    """Configuration with fast intervals for tests."""
    return AgentConfig(
        api_base_url="http://collector.test/api",
        app_version="1.0.0-test",
        poll_interval_sec=0.01,
        focus_interval_sec=1.0,
        workspace_poll_interval_sec=0.01,
        shutdown_grace_sec=1.0,
    )


@pytest.fixture
def auth(config: AgentConfig) -> AuthManager:
    """AuthManager already holding a trusted token."""
    manager = AuthManager(config)
    manager.authenticate("test-token")
    return manager


@pytest.fixture
def anonymous_auth(config: AgentConfig) -> AuthManager:
    """AuthManager without a token."""
    return AuthManager(config)


@pytest.fixture
def sender(config: AgentConfig, auth: AuthManager) -> RecordingEventSender:
    return RecordingEventSender(config, auth)


@pytest.fixture
def call_log() -> list[str]:
    return []


@pytest.fixture
def monitor(call_log: list[str]) -> FakeMonitor:
    return FakeMonitor(call_log)


@pytest.fixture
def workspace() -> FakeWorkspace:
    return FakeWorkspace()


@pytest.fixture
def signal_collector() -> SignalCollector:
    return SignalCollector()


@pytest.fixture
def wait_until() -> Callable:
    """Async helper polling a predicate until true or timeout."""
    return _wait_until


@pytest.fixture
def make_sender() -> Callable[[AgentConfig, AuthManager], RecordingEventSender]:
    return RecordingEventSender


@pytest.fixture
def conversation_tree() -> dict[str, Any]:
    """Snapshot of a chat window with one prompt and one long response."""
    return {
        "role": "AXWindow",
        "children": [
            {
                "role": "AXGroup",
                "children": [
                    {"role": "AXStaticText", "value": "Claude"},
                    {"role": "AXButton", "description": "New chat"},
                ],
            },
            {
                "role": "AXWebArea",
                "children": [
                    {
                        "role": "AXGroup",
                        "children": [
                            {"role": "AXStaticText", "value": "The capital of France is Paris. " * 5},
                        ],
                    },
                ],
            },
            {"role": "AXTextArea", "value": "What is the capital of France?"},
        ],
    }
