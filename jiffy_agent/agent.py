"""Process-wide agent context.

``JiffyAgent`` owns one instance of every collaborator and wires them
together explicitly: auth, event sender, classifier, session manager,
content poller and workspace watcher. Nothing in the package reaches
for a global; tests build an agent with fake backends.

Startup:
    1. Validate the startup token (if any) against the collector
    2. Start the session manager's signal loop and subscribe to auth
    3. Snapshot running applications and resolve the initial state
       (auto-start a session when the target already runs)
    4. Start watching the workspace for launch/terminate/activate

Shutdown:
    1. Stop the workspace watcher
    2. End any active session (session-ended sent best effort)
    3. Drain in-flight event sends for up to ``shutdown_grace_sec``
    4. Close HTTP sessions
"""

import logging
from pathlib import Path
from typing import Any, Optional, Union

import aiohttp

from . import __version__
from .auth import AuthManager
from .classifier import ClassifiedContent, ContentClassifier
from .config import AgentConfig
from .element_tree import ElementNode, SnapshotElement, walk_text_nodes
from .event_sender import EventSender
from .macos import (
    MACOS_AVAILABLE,
    AXWindowResolver,
    CocoaWorkspace,
    has_accessibility_permission,
    request_accessibility_permission,
)
from .poller import AccessibilityMonitor, PermissionCheck, PermissionRequest, WindowResolver
from .session_manager import SessionManager
from .workspace import ApplicationWorkspace, ProcessWorkspace, WorkspaceWatcher

logger = logging.getLogger(__name__)


def _no_window() -> Optional[ElementNode]:
    return None


def default_workspace(config: AgentConfig) -> ApplicationWorkspace:
    """NSWorkspace on macOS, the psutil process table elsewhere."""
    if MACOS_AVAILABLE:
        return CocoaWorkspace()
    return ProcessWorkspace(config)


def default_window_resolver(config: AgentConfig) -> WindowResolver:
    if MACOS_AVAILABLE:
        return AXWindowResolver(config.target_bundle_id)
    return _no_window


def default_permission_check() -> bool:
    if MACOS_AVAILABLE:
        return has_accessibility_permission()
    return True


def default_permission_request() -> bool:
    if MACOS_AVAILABLE:
        return request_accessibility_permission()
    return False


class JiffyAgent:
    """Long-lived context object for one agent process."""

    def __init__(
        self,
        config: AgentConfig,
        workspace: Optional[ApplicationWorkspace] = None,
        window_resolver: Optional[WindowResolver] = None,
        permission_check: Optional[PermissionCheck] = None,
        permission_request: Optional[PermissionRequest] = None,
        http_session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """Wire collaborators.

        Args:
            config: Agent configuration
            workspace: Running-application backend (platform default if None)
            window_resolver: Target window lookup (platform default if None)
            permission_check: Accessibility permission probe (platform default if None)
            permission_request: Accessibility permission prompt (platform default if None)
            http_session: Shared HTTP session for auth and event delivery
        """
        self.config = config

        self.auth = AuthManager(config, token=config.token, session=http_session)
        self.event_sender = EventSender(config, self.auth, session=http_session)
        self.classifier = ContentClassifier(
            prompt_max_length=config.prompt_max_length,
            response_min_length=config.response_min_length,
        )
        self.session_manager = SessionManager(config, self.auth, self.event_sender)
        self.monitor = AccessibilityMonitor(
            config,
            self.classifier,
            self.session_manager,
            self.event_sender,
            window_resolver=window_resolver or default_window_resolver(config),
            permission_check=permission_check or default_permission_check,
            permission_request=permission_request or default_permission_request,
        )
        self.session_manager.monitor = self.monitor

        self.workspace = workspace or default_workspace(config)
        self.watcher = WorkspaceWatcher(
            self.workspace,
            self.session_manager,
            interval_sec=config.workspace_poll_interval_sec,
        )

        self._started = False

    @property
    def is_running(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        logger.info(f"Starting Jiffy agent v{__version__}")
        logger.info(f"Collector: {self.config.api_base_url}, target: {self.config.target_bundle_id}")

        # Validate before subscribing so the startup result does not post a signal
        if self.auth.token:
            await self.auth.validate()
        else:
            logger.warning("No token configured, events will not be sent until authenticated")

        try:
            await self.session_manager.start()

            running, frontmost = await self.watcher.snapshot()
            await self.session_manager.resolve_initial_state(
                running,
                frontmost,
                auto_start=self.config.auto_start_monitoring,
            )

            await self.watcher.start()
        except Exception as e:
            logger.error(f"Agent startup failed: {e}")
            await self._shutdown()
            raise

        self._started = True
        logger.info("Agent started")

    async def stop(self) -> None:
        if not self._started:
            return
        logger.info("Stopping agent...")
        await self._shutdown()
        self._started = False

    async def _shutdown(self) -> None:
        # Every step is a no-op for components that never started
        await self.watcher.stop()
        await self.session_manager.stop()
        await self.event_sender.drain(self.config.shutdown_grace_sec)
        await self.event_sender.close()
        await self.auth.close()

        logger.info(
            f"Agent stopped (events sent: {self.event_sender.sent_count}, "
            f"failed: {self.event_sender.failed_count})"
        )

    def status(self) -> dict[str, Any]:
        """Snapshot of agent state for display and diagnostics."""
        session = self.session_manager.current_session
        auth_state = self.auth.state
        return {
            "version": __version__,
            "authenticated": auth_state.is_authenticated,
            "user": auth_state.user.display_name if auth_state.user else None,
            "target_running": self.session_manager.is_target_running,
            "target_focused": self.session_manager.is_target_focused,
            "monitoring": self.monitor.is_monitoring,
            "session_id": session.id if session else None,
            "focus_time": session.total_focus_time if session else 0.0,
            "prompt_count": session.prompt_count if session else 0,
            "response_count": session.response_count if session else 0,
            "last_prompt": self.classifier.last_prompt,
            "last_response": self.classifier.last_response,
            "events_sent": self.event_sender.sent_count,
            "events_failed": self.event_sender.failed_count,
        }


def replay_tree(
    source: Union[str, Path, ElementNode],
    config: Optional[AgentConfig] = None,
    classifier: Optional[ContentClassifier] = None,
) -> list[ClassifiedContent]:
    """Run one walk + classify pass over a tree snapshot, offline.

    Args:
        source: Path to a JSON snapshot or an already built node
        config: Thresholds and depth cap (defaults when None)
        classifier: Classifier to continue from (fresh when None)

    Returns:
        Accepted items in walk order
    """
    config = config or AgentConfig()
    classifier = classifier or ContentClassifier(
        prompt_max_length=config.prompt_max_length,
        response_min_length=config.response_min_length,
    )
    root = SnapshotElement.load(source) if isinstance(source, (str, Path)) else source

    accepted: list[ClassifiedContent] = []
    for node in walk_text_nodes(root, max_depth=config.max_walk_depth):
        accepted.extend(classifier.classify(node.text, node.role))
    return accepted
