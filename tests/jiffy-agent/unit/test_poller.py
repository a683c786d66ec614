"""Unit tests for the window content poller."""

import asyncio
import threading

import pytest

from jiffy_agent.classifier import ContentClassifier, ContentKind
from jiffy_agent.element_tree import SnapshotElement
from jiffy_agent.models import EventType
from jiffy_agent.poller import AccessibilityMonitor
from jiffy_agent.session_manager import SessionManager


@pytest.fixture
def session_manager(config, auth, sender) -> SessionManager:
    return SessionManager(config, auth, sender)


def make_monitor(config, session_manager, sender, window=None, permitted=True) -> AccessibilityMonitor:
    return AccessibilityMonitor(
        config,
        ContentClassifier(),
        session_manager,
        sender,
        window_resolver=lambda: window,
        permission_check=lambda: permitted,
    )


class TestPollOnce:
    """Tests for a single poll tick."""

    @pytest.mark.asyncio
    async def test_reports_prompt_and_response(self, config, session_manager, sender, conversation_tree):
        monitor = make_monitor(config, session_manager, sender, window=SnapshotElement(conversation_tree))
        await session_manager.start_session()
        session_id = session_manager.current_session_id

        accepted = await monitor.poll_once()
        await sender.drain(1.0)

        assert [item.kind for item in accepted] == [ContentKind.RESPONSE, ContentKind.PROMPT]
        session = session_manager.current_session
        assert session.prompt_count == 1
        assert session.response_count == 1

        prompts = sender.of_type(EventType.PROMPT_SUBMITTED)
        assert len(prompts) == 1
        assert prompts[0].metadata["text"] == "What is the capital of France?"
        assert prompts[0].session_id == session_id
        assert len(sender.of_type(EventType.RESPONSE_RECEIVED)) == 1

        await session_manager.end_session()

    @pytest.mark.asyncio
    async def test_unchanged_window_reports_nothing_new(self, config, session_manager, sender, conversation_tree):
        monitor = make_monitor(config, session_manager, sender, window=SnapshotElement(conversation_tree))
        await session_manager.start_session()

        await monitor.poll_once()
        second = await monitor.poll_once()

        assert second == []
        assert session_manager.current_session.prompt_count == 1
        await session_manager.end_session()

    @pytest.mark.asyncio
    async def test_no_window_is_noop(self, config, session_manager, sender):
        monitor = make_monitor(config, session_manager, sender, window=None)

        assert await monitor.poll_once() == []
        assert sender.events == []


class TestPollLoop:
    """Tests for start/stop of the polling task."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, config, session_manager, sender, conversation_tree):
        monitor = make_monitor(config, session_manager, sender, window=SnapshotElement(conversation_tree))

        assert await monitor.start() is True
        assert await monitor.start() is True
        assert monitor.is_monitoring
        await asyncio.sleep(0.1)
        await monitor.stop()

        assert not monitor.is_monitoring
        assert monitor.tick_count >= 1

    @pytest.mark.asyncio
    async def test_no_ticks_after_stop(self, config, session_manager, sender, conversation_tree):
        monitor = make_monitor(config, session_manager, sender, window=SnapshotElement(conversation_tree))

        await monitor.start()
        await asyncio.sleep(0.05)
        await monitor.stop()
        ticks = monitor.tick_count
        await asyncio.sleep(3 * config.poll_interval_sec)

        assert monitor.tick_count == ticks

    @pytest.mark.asyncio
    async def test_permission_denied(self, config, session_manager, sender):
        monitor = make_monitor(config, session_manager, sender, permitted=False)

        assert await monitor.start() is False
        assert not monitor.is_monitoring

    @pytest.mark.asyncio
    async def test_stop_when_not_started(self, config, session_manager, sender):
        monitor = make_monitor(config, session_manager, sender)

        await monitor.stop()

        assert not monitor.is_monitoring

    @pytest.mark.asyncio
    async def test_loop_survives_resolver_errors(self, config, session_manager, sender):
        calls = []

        def failing_resolver():
            calls.append(1)
            raise RuntimeError("window vanished")

        monitor = AccessibilityMonitor(
            config, ContentClassifier(), session_manager, sender, window_resolver=failing_resolver
        )

        await monitor.start()
        await asyncio.sleep(0.1)
        assert monitor.is_monitoring
        await monitor.stop()

        assert len(calls) >= 2


class TestPermissionRequest:
    """Tests for the accessibility permission prompt on start."""

    @pytest.mark.asyncio
    async def test_request_fires_when_check_fails(self, config, session_manager, sender):
        requests = []

        def request() -> bool:
            requests.append(1)
            return False

        monitor = AccessibilityMonitor(
            config,
            ContentClassifier(),
            session_manager,
            sender,
            window_resolver=lambda: None,
            permission_check=lambda: False,
            permission_request=request,
        )

        assert await monitor.start() is False
        assert requests == [1]
        assert not monitor.is_monitoring

    @pytest.mark.asyncio
    async def test_granted_request_starts_polling(self, config, session_manager, sender):
        monitor = AccessibilityMonitor(
            config,
            ContentClassifier(),
            session_manager,
            sender,
            window_resolver=lambda: None,
            permission_check=lambda: False,
            permission_request=lambda: True,
        )

        assert await monitor.start() is True
        assert monitor.is_monitoring
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_no_request_when_permitted(self, config, session_manager, sender):
        requests = []
        monitor = AccessibilityMonitor(
            config,
            ContentClassifier(),
            session_manager,
            sender,
            window_resolver=lambda: None,
            permission_check=lambda: True,
            permission_request=lambda: requests.append(1) or True,
        )

        await monitor.start()
        await monitor.stop()

        assert requests == []


class TestSessionEndDuringTick:
    """Tests for ending a session while a tick is walking the tree."""

    @pytest.mark.asyncio
    async def test_ended_session_gets_no_content_events(
        self, config, session_manager, sender, conversation_tree, wait_until
    ):
        entered = threading.Event()
        release = threading.Event()

        def blocking_resolver():
            entered.set()
            release.wait(2.0)
            return SnapshotElement(conversation_tree)

        monitor = AccessibilityMonitor(
            config, ContentClassifier(), session_manager, sender, window_resolver=blocking_resolver
        )
        session_manager.monitor = monitor

        await session_manager.start_session()
        try:
            assert await wait_until(entered.is_set)
            ended = await session_manager.end_session()
        finally:
            release.set()
        await asyncio.sleep(0.05)
        await sender.drain(1.0)

        assert ended is not None
        assert ended.prompt_count == 0
        assert ended.response_count == 0
        assert not monitor.is_monitoring
        assert sender.of_type(EventType.PROMPT_SUBMITTED) == []
        assert sender.of_type(EventType.RESPONSE_RECEIVED) == []
        assert len(sender.of_type(EventType.SESSION_ENDED)) == 1
