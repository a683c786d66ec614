"""Periodic window content poller.

While a session is active the monitor resolves the target application's
first window every ``poll_interval_sec``, walks its accessibility tree,
classifies each text fragment and reports new prompts and responses.

The tree walk talks to another process and can block, so it runs on a
worker thread; classification, counting and event dispatch stay on the
event loop. Events are sent fire-and-forget so a slow collector never
delays the next tick.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Optional

from .classifier import ClassifiedContent, ContentClassifier, ContentKind
from .config import AgentConfig
from .element_tree import ElementNode, TextNode, walk_text_nodes

if TYPE_CHECKING:
    from .event_sender import EventSender
    from .session_manager import SessionManager

logger = logging.getLogger(__name__)

WindowResolver = Callable[[], Optional[ElementNode]]
PermissionCheck = Callable[[], bool]
PermissionRequest = Callable[[], bool]


def _always_permitted() -> bool:
    return True


def _no_request() -> bool:
    return False


class AccessibilityMonitor:
    """Polls the target window and feeds the classifier."""

    def __init__(
        self,
        config: AgentConfig,
        classifier: ContentClassifier,
        session_manager: "SessionManager",
        event_sender: "EventSender",
        window_resolver: WindowResolver,
        permission_check: PermissionCheck = _always_permitted,
        permission_request: PermissionRequest = _no_request,
    ) -> None:
        """Initialize the monitor.

        Args:
            config: Agent configuration (poll interval, depth cap)
            classifier: Dedup-aware prompt/response classifier
            session_manager: Receives prompt/response count increments
            event_sender: Dispatcher for prompt/response events
            window_resolver: Returns the target's first window, or None
            permission_check: Returns False when the OS denies tree access
            permission_request: Asks the OS to grant access, returns whether it is
                granted now
        """
        self.config = config
        self.classifier = classifier
        self.session_manager = session_manager
        self.event_sender = event_sender
        self.window_resolver = window_resolver
        self.permission_check = permission_check
        self.permission_request = permission_request

        self._task: Optional[asyncio.Task] = None
        self.tick_count = 0

    @property
    def is_monitoring(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> bool:
        """Start polling.

        Returns:
            True if polling runs after the call, False if accessibility
            permission is missing
        """
        if self.is_monitoring:
            return True

        if not self.permission_check() and not self.permission_request():
            logger.warning("Accessibility permission not granted, content monitoring disabled")
            return False

        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Content monitoring started (every {self.config.poll_interval_sec}s)")
        return True

    async def stop(self) -> None:
        """Stop polling and wait for an in-progress tick to unwind."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            # Propagate when the caller itself is being cancelled
            if asyncio.current_task().cancelling():
                raise
        logger.info("Content monitoring stopped")

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.poll_interval_sec)
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Poll tick error: {e}")

    def _collect_text_nodes(self) -> list[TextNode]:
        window = self.window_resolver()
        if window is None:
            return []
        return list(walk_text_nodes(window, max_depth=self.config.max_walk_depth))

    async def poll_once(self) -> list[ClassifiedContent]:
        """Run one poll tick.

        Returns:
            Items accepted by the classifier during this tick
        """
        self.tick_count += 1
        nodes = await asyncio.to_thread(self._collect_text_nodes)

        accepted: list[ClassifiedContent] = []
        for node in nodes:
            accepted.extend(self.classifier.classify(node.text, node.role))

        for item in accepted:
            await self._report(item)
        return accepted

    async def _report(self, item: ClassifiedContent) -> None:
        session_id = self.session_manager.current_session_id
        if item.kind == ContentKind.PROMPT:
            await self.session_manager.increment_prompt_count()
            send = self.event_sender.send_prompt_event(item.text, item.correlation_id, session_id)
        else:
            await self.session_manager.increment_response_count()
            send = self.event_sender.send_response_event(item.text, item.correlation_id, session_id)
        self.event_sender.fire_and_forget(send)
