"""Authenticated event delivery to the Jiffy collector.

One POST per event, no queue, no retry. ``send_event`` raises an
EventError subclass on failure; ``dispatch`` turns that into a
DispatchResult. The convenience senders (prompt, response, session
start/end, activity) log failures and return the result, and callers
that do not wait for delivery hand them to ``fire_and_forget`` so the
poll and lifecycle paths never block on the network.

Status handling:
    2xx: success
    401: de-authenticate (clear token, flip flag) and fail NOT_AUTHENTICATED
    other: fail SEND_FAILED
    transport error / timeout: fail NETWORK_ERROR wrapping the cause
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Optional

import aiohttp

from .config import AgentConfig, Headers
from .errors import EventError, NetworkError, NotAuthenticatedError, SendFailedError
from .models import DispatchResult, Event, EventType, MonitoringSession, format_iso8601, utc_now

if TYPE_CHECKING:
    from .auth import AuthManager

logger = logging.getLogger(__name__)


class EventSender:
    """Builds event envelopes and posts them to the collector.

    Multiple sends may be in flight at once with no ordering guarantee.
    """

    def __init__(
        self,
        config: AgentConfig,
        auth: "AuthManager",
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """Initialize event sender.

        Args:
            config: Agent configuration (event URL, version, timeouts, source)
            auth: Auth collaborator read per call for the bearer token
            session: Shared HTTP session, created lazily when omitted
        """
        self.config = config
        self.auth = auth
        self._session = session
        self._owns_session = session is None
        self._pending: set[asyncio.Task] = set()

        self.sent_count = 0
        self.failed_count = 0

    @property
    def pending_count(self) -> int:
        """Number of fire-and-forget sends still in flight."""
        return len(self._pending)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(
                total=self.config.request_timeout_sec,
                sock_connect=self.config.connect_timeout_sec,
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    def build_event(
        self,
        event_type: EventType | str,
        metadata: dict[str, str],
        session_id: Optional[str] = None,
        source: Optional[str] = None,
    ) -> Event:
        return Event(
            type=event_type,
            source=source or self.config.source,
            metadata=metadata,
            tab_id=None,
            session_id=session_id,
        )

    async def send_event(
        self,
        event_type: EventType | str,
        metadata: dict[str, str],
        session_id: Optional[str] = None,
        source: Optional[str] = None,
    ) -> None:
        """POST one event.

        Raises:
            NotAuthenticatedError: no token (no request made) or 401
            SendFailedError: any other non-2xx status
            NetworkError: transport failure or timeout
        """
        token = self.auth.token
        if not token:
            raise NotAuthenticatedError()

        event = self.build_event(event_type, metadata, session_id=session_id, source=source)
        headers = {
            Headers.CONTENT_TYPE: "application/json",
            Headers.AUTHORIZATION: f"Bearer {token}",
            Headers.APP_VERSION: self.config.app_version,
        }

        try:
            session = self._get_session()
            async with session.post(self.config.event_url, json=event.to_payload(), headers=headers) as response:
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(e) from e

        if status == 401:
            # Token expired, trigger re-auth
            self.auth.deauthenticate()
            raise NotAuthenticatedError(status=status)

        if not 200 <= status < 300:
            raise SendFailedError(status=status)

        logger.debug(f"Event sent: type={event.type}, source={event.source}")

    async def dispatch(
        self,
        event_type: EventType | str,
        metadata: dict[str, str],
        session_id: Optional[str] = None,
    ) -> DispatchResult:
        """Send one event and report the outcome instead of raising."""
        type_value = event_type.value if isinstance(event_type, EventType) else event_type
        try:
            await self.send_event(event_type, metadata, session_id=session_id)
        except EventError as e:
            self.failed_count += 1
            return DispatchResult.failed(type_value, e)
        self.sent_count += 1
        return DispatchResult.ok(type_value)

    async def _dispatch_logged(
        self,
        label: str,
        event_type: EventType,
        metadata: dict[str, str],
        session_id: Optional[str],
    ) -> DispatchResult:
        result = await self.dispatch(event_type, metadata, session_id=session_id)
        if not result.success:
            logger.warning(f"Failed to send {label} event: {result.error.to_dict()}")
        return result

    # Convenience senders

    async def send_prompt_event(
        self, text: str, correlation_id: str, session_id: Optional[str]
    ) -> DispatchResult:
        return await self._dispatch_logged(
            "prompt",
            EventType.PROMPT_SUBMITTED,
            {"text": text, "correlationId": correlation_id},
            session_id,
        )

    async def send_response_event(
        self, text: str, correlation_id: str, session_id: Optional[str]
    ) -> DispatchResult:
        return await self._dispatch_logged(
            "response",
            EventType.RESPONSE_RECEIVED,
            {"text": text, "correlationId": correlation_id},
            session_id,
        )

    async def send_session_start_event(self, session_id: str) -> DispatchResult:
        return await self._dispatch_logged(
            "session start",
            EventType.SESSION_STARTED,
            {"startTime": format_iso8601(utc_now())},
            session_id,
        )

    async def send_session_end_event(self, session: MonitoringSession) -> DispatchResult:
        """Send the session summary. ``session`` is a snapshot taken before discard."""
        return await self._dispatch_logged(
            "session end",
            EventType.SESSION_ENDED,
            session.to_metadata(),
            session.id,
        )

    async def send_activity_event(self, session_id: Optional[str]) -> DispatchResult:
        return await self._dispatch_logged(
            "activity",
            EventType.USER_ACTIVITY,
            {"timestamp": format_iso8601(utc_now())},
            session_id,
        )

    # Fire-and-forget

    def fire_and_forget(self, send: Awaitable[DispatchResult]) -> asyncio.Task:
        """Run a send in the background; its result is intentionally ignored.

        The task is tracked until it completes so shutdown can drain it.
        """
        task = asyncio.ensure_future(send)
        self._pending.add(task)
        task.add_done_callback(self._on_fire_and_forget_done)
        return task

    def _on_fire_and_forget_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background event send crashed: {exc!r}")

    async def drain(self, timeout: float) -> None:
        """Wait up to ``timeout`` seconds for in-flight sends, then cancel the rest."""
        if not self._pending:
            return
        pending = list(self._pending)
        _, not_done = await asyncio.wait(pending, timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            logger.warning(f"Dropped {len(not_done)} in-flight events on shutdown")
            await asyncio.gather(*not_done, return_exceptions=True)

    async def close(self) -> None:
        """Close the HTTP session if this sender created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
