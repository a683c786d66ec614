"""Authentication state for the desktop agent.

Holds the bearer token and authenticated flag read by the event sender
and session manager. Token persistence and the browser login handshake
live outside this package; a token arrives through the CLI/environment
or ``handle_auth_callback``.

Listeners are notified synchronously whenever the authenticated flag
flips so the session manager can start or end monitoring.
"""

import asyncio
import logging
from typing import Callable, Optional

import aiohttp

from .config import AgentConfig, Headers
from .errors import AuthError, AuthErrorCode
from .models import AuthState, User, UserResponse

logger = logging.getLogger(__name__)

AuthListener = Callable[[bool], None]

SESSION_EXPIRED_MESSAGE = "Session expired. Please log in again."


class AuthManager:
    """Bearer token and authenticated flag, with change listeners."""

    def __init__(
        self,
        config: AgentConfig,
        token: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """Initialize auth manager.

        Args:
            config: Agent configuration (API URL, version header)
            token: Initial bearer token; not trusted until validated
            session: Shared HTTP session, created lazily when omitted
        """
        self.config = config
        self._token: Optional[str] = token
        self._authenticated = False
        self.user: Optional[User] = None
        self.error: Optional[str] = None
        self.is_loading = False

        self._session = session
        self._owns_session = session is None
        self._listeners: list[AuthListener] = []

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    @property
    def state(self) -> AuthState:
        return AuthState(
            is_authenticated=self._authenticated,
            user=self.user,
            token=self._token,
        )

    def add_listener(self, listener: AuthListener) -> None:
        """Register a callback invoked with the new flag on every change."""
        self._listeners.append(listener)

    def _set_authenticated(self, value: bool) -> None:
        changed = value != self._authenticated
        self._authenticated = value
        if not changed:
            return
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as e:
                logger.error(f"Auth listener failed: {e}")

    def authenticate(self, token: str, user: Optional[User] = None) -> None:
        """Trust a token without validating it against the collector."""
        self._token = token
        self.user = user
        self.error = None
        self._set_authenticated(True)
        logger.info(f"Authenticated as {user.display_name if user else 'unknown user'}")

    def deauthenticate(self) -> None:
        """Clear token and flip the flag (collector answered 401)."""
        had_token = self._token is not None
        self._token = None
        self.user = None
        self._set_authenticated(False)
        if had_token:
            logger.warning("Token rejected by collector, de-authenticated")

    def logout(self) -> None:
        """Explicit user logout."""
        self._token = None
        self.user = None
        self.error = None
        self._set_authenticated(False)
        logger.info("Logged out")

    async def validate(self) -> bool:
        """Validate the current token by fetching the current user.

        Returns:
            True if the token is valid; on failure the token is cleared
        """
        token = self._token
        if not token:
            self._set_authenticated(False)
            return False

        self.is_loading = True
        try:
            user = await self.fetch_current_user(token)
        except (AuthError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Token validation failed: {e}")
            self._token = None
            self.user = None
            self.error = SESSION_EXPIRED_MESSAGE
            self._set_authenticated(False)
            return False
        finally:
            self.is_loading = False

        self.user = user
        self.error = None
        self._set_authenticated(True)
        logger.info(f"Token valid for {user.display_name}")
        return True

    async def handle_auth_callback(self, token: str) -> bool:
        """Store a token delivered by the login handshake and validate it."""
        self._token = token
        ok = await self.validate()
        if not ok:
            self.error = "Failed to authenticate: token rejected"
        return ok

    async def fetch_current_user(self, token: str) -> User:
        """GET the current user for ``token``.

        Raises:
            AuthError: 401 (UNAUTHORIZED), other non-200 (SERVER_ERROR) or
                an undecodable body (INVALID_RESPONSE)
            aiohttp.ClientError: transport failure
        """
        headers = {
            Headers.CONTENT_TYPE: "application/json",
            Headers.AUTHORIZATION: f"Bearer {token}",
            Headers.APP_VERSION: self.config.app_version,
        }
        session = self._get_session()
        async with session.get(self.config.current_user_url, headers=headers) as response:
            if response.status == 401:
                raise AuthError.unauthorized()
            if response.status != 200:
                raise AuthError.server_error(response.status)
            try:
                body = await response.json(content_type=None)
                return UserResponse.model_validate(body).user
            except ValueError as e:
                raise AuthError(AuthErrorCode.INVALID_RESPONSE, f"Invalid server response: {e}")

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(
                total=self.config.request_timeout_sec,
                sock_connect=self.config.connect_timeout_sec,
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this manager created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
