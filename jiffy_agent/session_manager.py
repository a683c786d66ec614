"""Session lifecycle controller for the desktop agent.

This module owns the single monitoring session and the state machine
that decides when monitoring runs at all.

State Machine:
    IDLE → ACTIVE (target running AND user authenticated AND no session)
        fired on target launch, on authentication while the target runs,
        or at startup when both already hold (auto-start)
    ACTIVE → IDLE (target terminated, logout, 401, shutdown)
    ACTIVE → ACTIVE (activation signal updates the focus flag only)

Lifecycle signals arrive on one queue consumed by a single task, so they
are handled strictly in order. Poll ticks and focus ticks run on their
own schedules and reach the session only through the lock-protected
methods below; nothing else holds a reference to the live session.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Iterable, Optional, Protocol

from .config import AgentConfig
from .models import LifecycleSignal, MonitoringSession, SignalKind

if TYPE_CHECKING:
    from .auth import AuthManager
    from .event_sender import EventSender

logger = logging.getLogger(__name__)


class ContentMonitor(Protocol):
    """Poller started and stopped with the session."""

    async def start(self) -> bool:
        ...

    async def stop(self) -> None:
        ...


class SessionManager:
    """Owns zero-or-one active MonitoringSession.

    Thread-safe session management using an asyncio lock. Start and end
    are idempotent: starting while active and ending while idle are
    silent no-ops.
    """

    def __init__(
        self,
        config: AgentConfig,
        auth: "AuthManager",
        event_sender: "EventSender",
        monitor: Optional[ContentMonitor] = None,
    ) -> None:
        """Initialize the session manager.

        Args:
            config: Agent configuration (target bundle id, focus interval)
            auth: Auth collaborator consulted before starting a session
            event_sender: Dispatcher for session start/end events
            monitor: Content poller started/stopped with the session
        """
        self.config = config
        self.auth = auth
        self.event_sender = event_sender
        self.monitor = monitor

        self.is_target_running = False
        self.is_target_focused = False

        self._session: Optional[MonitoringSession] = None
        self._lock = asyncio.Lock()

        self._signals: asyncio.Queue[LifecycleSignal] = asyncio.Queue()
        self._signal_task: Optional[asyncio.Task] = None
        self._focus_task: Optional[asyncio.Task] = None

        self.sessions_started = 0
        self.sessions_ended = 0

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._session is not None

    @property
    def current_session_id(self) -> Optional[str]:
        return self._session.id if self._session else None

    @property
    def current_session(self) -> Optional[MonitoringSession]:
        """Copy of the active session (mutating it has no effect)."""
        return self._session.model_copy() if self._session else None

    @property
    def total_focus_time(self) -> float:
        return self._session.total_focus_time if self._session else 0.0

    # ------------------------------------------------------------------
    # Service lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start consuming lifecycle signals and subscribe to auth changes."""
        self.auth.add_listener(self._on_auth_changed)
        self._signal_task = asyncio.create_task(self._signal_loop())
        logger.info("Session manager started")

    async def stop(self) -> None:
        """Stop consuming signals and end any active session."""
        if self._signal_task:
            self._signal_task.cancel()
            try:
                await self._signal_task
            except asyncio.CancelledError:
                pass
            self._signal_task = None

        await self.end_session()
        logger.info("Session manager stopped")

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def post(self, signal: LifecycleSignal) -> None:
        """Queue a lifecycle signal for in-order handling."""
        self._signals.put_nowait(signal)

    async def wait_for_signals(self) -> None:
        """Block until every queued signal has been handled."""
        await self._signals.join()

    def _on_auth_changed(self, authenticated: bool) -> None:
        kind = SignalKind.AUTHENTICATED if authenticated else SignalKind.LOGGED_OUT
        self.post(LifecycleSignal(kind=kind))

    async def _signal_loop(self) -> None:
        while True:
            signal = await self._signals.get()
            try:
                await self.handle_signal(signal)
            except Exception as e:
                logger.error(f"Error handling {signal.kind} signal: {e}")
            finally:
                self._signals.task_done()

    def _is_target(self, bundle_id: Optional[str]) -> bool:
        return bundle_id is not None and bundle_id == self.config.target_bundle_id

    async def handle_signal(self, signal: LifecycleSignal) -> None:
        """Apply one lifecycle signal to the state machine."""
        kind = signal.kind

        if kind == SignalKind.LAUNCHED:
            if not self._is_target(signal.bundle_id):
                return
            self.is_target_running = True
            logger.info("Target app launched")
            if self.auth.is_authenticated:
                await self.start_session()

        elif kind == SignalKind.TERMINATED:
            if not self._is_target(signal.bundle_id):
                return
            self.is_target_running = False
            self.is_target_focused = False
            logger.info("Target app terminated")
            await self.end_session()

        elif kind == SignalKind.ACTIVATED:
            self.is_target_focused = self._is_target(signal.bundle_id)

        elif kind == SignalKind.AUTHENTICATED:
            if self.is_target_running:
                await self.start_session()

        elif kind == SignalKind.LOGGED_OUT:
            await self.end_session()

    async def resolve_initial_state(
        self,
        running_bundle_ids: Iterable[str],
        frontmost_bundle_id: Optional[str],
        auto_start: bool = True,
    ) -> None:
        """Seed running/focus flags from a startup snapshot.

        Starts a session when the target already runs, the user is
        authenticated and auto-start is enabled.
        """
        self.is_target_running = any(self._is_target(b) for b in running_bundle_ids)
        self.is_target_focused = self._is_target(frontmost_bundle_id)
        logger.info(
            f"Initial state: target running={self.is_target_running}, "
            f"focused={self.is_target_focused}"
        )

        if auto_start and self.is_target_running and self.auth.is_authenticated:
            await self.start_session()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start_session(self) -> bool:
        """IDLE → ACTIVE.

        Returns:
            True if a session was created, False if one was already active
        """
        async with self._lock:
            if self._session is not None:
                return False

            session = MonitoringSession()
            self._session = session
            self.sessions_started += 1

            if self.monitor is not None:
                await self.monitor.start()
            self._start_focus_tracking()

            self.event_sender.fire_and_forget(
                self.event_sender.send_session_start_event(session.id)
            )
            logger.info(f"Session started: {session.id}")
            return True

    async def end_session(self) -> Optional[MonitoringSession]:
        """ACTIVE → IDLE.

        The poller and focus accumulator are stopped before the session
        is stamped and discarded, so no tick observes a discarded session.

        Returns:
            Snapshot of the ended session, or None if none was active
        """
        async with self._lock:
            session = self._session
            if session is None:
                return None

            if self.monitor is not None:
                await self.monitor.stop()
            await self._stop_focus_tracking()

            session.end()
            snapshot = session.model_copy()
            self._session = None
            self.sessions_ended += 1

            self.event_sender.fire_and_forget(
                self.event_sender.send_session_end_event(snapshot)
            )
            logger.info(
                f"Session ended: {snapshot.id}, duration: {snapshot.duration():.0f}s, "
                f"focus: {snapshot.total_focus_time:.0f}s"
            )
            return snapshot

    async def increment_prompt_count(self) -> None:
        async with self._lock:
            if self._session is not None:
                self._session.increment_prompt_count()

    async def increment_response_count(self) -> None:
        async with self._lock:
            if self._session is not None:
                self._session.increment_response_count()

    # ------------------------------------------------------------------
    # Focus tracking
    # ------------------------------------------------------------------

    def _start_focus_tracking(self) -> None:
        if self._focus_task is not None:
            self._focus_task.cancel()
        self._focus_task = asyncio.create_task(self._focus_loop())

    async def _stop_focus_tracking(self) -> None:
        task, self._focus_task = self._focus_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            # Propagate when the caller itself is being cancelled
            if asyncio.current_task().cancelling():
                raise

    async def _focus_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.focus_interval_sec)
            try:
                await self.tick_focus()
            except Exception as e:
                logger.error(f"Focus tick error: {e}")

    async def tick_focus(self) -> float:
        """Add one tick of focus time while the target holds focus.

        Returns:
            Seconds added (0 when unfocused or idle)
        """
        async with self._lock:
            if self._session is None or not self.is_target_focused:
                return 0.0
            self._session.add_focus_time(self.config.focus_interval_sec)
            return self.config.focus_interval_sec
