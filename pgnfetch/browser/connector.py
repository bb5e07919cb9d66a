"""
Session connector for the remote browser.

Owns the single shared connection to the remote browser-control endpoint:
- Connects over CDP through Playwright, retrying with linear backoff
- Concurrent callers share one in-flight connect attempt and its outcome
- Clears the connection on the browser's "disconnected" event so the next
  caller reconnects
- Replaces a connection that reports itself dead without the event firing

The connect callable is injected, so tests drive the connector with fakes
and the service owns the instance (no module-level browser state).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from pgnfetch.errors import BrowserConnectionError
from pgnfetch.utils.backoff import BackoffConfig, BackoffStrategy
from pgnfetch.utils.logging import get_logger
from pgnfetch.utils.retry import RetryExhaustedError, RetryPolicy, retry_async

if TYPE_CHECKING:
    from playwright.async_api import Browser, Playwright

    from pgnfetch.utils.config import Settings

logger = get_logger(__name__)

ConnectFn = Callable[[], Awaitable["Browser"]]


class ConnectionState(str, Enum):
    """Connectivity of the shared browser session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(eq=False)
class BrowserConnection:
    """Handle to a live remote browser session.

    Attributes:
        browser: Playwright Browser connected over CDP.
        endpoint: Token-free endpoint, safe to log.
        created_at: When the connection was established.
        state: CONNECTED until the disconnect event fires.
    """

    browser: Browser
    endpoint: str
    created_at: datetime
    state: ConnectionState = ConnectionState.CONNECTED

    def is_alive(self) -> bool:
        if self.state is not ConnectionState.CONNECTED:
            return False
        try:
            return bool(self.browser.is_connected())
        except Exception:
            return False


class PlaywrightDriver:
    """Starts Playwright lazily and connects to a CDP endpoint."""

    def __init__(self, cdp_url: str, timeout_ms: int = 30000) -> None:
        self._cdp_url = cdp_url
        self._timeout_ms = timeout_ms
        self._playwright: Playwright | None = None

    async def connect(self) -> Browser:
        from playwright.async_api import async_playwright

        if self._playwright is None:
            self._playwright = await async_playwright().start()
            logger.info("Playwright initialized")

        # Playwright's own timeout covers the handshake; wait_for is a safety net
        return await asyncio.wait_for(
            self._playwright.chromium.connect_over_cdp(self._cdp_url, timeout=self._timeout_ms),
            timeout=self._timeout_ms / 1000 + 1.0,
        )

    async def stop(self) -> None:
        if self._playwright is None:
            return
        try:
            await self._playwright.stop()
        except Exception as e:
            logger.debug("Error stopping Playwright", error=str(e))
        self._playwright = None


class SessionConnector:
    """Maintains the one shared connection to the remote browser.

    Example:
        connector = SessionConnector.from_settings(get_settings())
        connection = await connector.ensure_connected()
        context = await connection.browser.new_context()

    Args:
        connect_fn: Coroutine function returning a connected Browser.
        endpoint: Token-free endpoint for logs and stats.
        retry_policy: Attempts and backoff for connecting.
        on_close: Optional coroutine run after the browser is closed (driver shutdown).
    """

    def __init__(
        self,
        connect_fn: ConnectFn,
        *,
        endpoint: str = "remote",
        retry_policy: RetryPolicy | None = None,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._connect_fn = connect_fn
        self._endpoint = endpoint
        self._retry_policy = retry_policy or RetryPolicy(
            max_attempts=3,
            backoff=BackoffConfig(base_delay=1.0, strategy=BackoffStrategy.LINEAR),
        )
        self._on_close = on_close

        self._connection: BrowserConnection | None = None
        self._connect_task: asyncio.Task[BrowserConnection] | None = None
        self._closed = False

        self._connect_attempts = 0
        self._connections_made = 0
        self._disconnects = 0
        self._last_error: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> SessionConnector:
        """Build a connector for the configured Browserless/CDP endpoint.

        Raises:
            ConfigurationError: If the endpoint token is missing.
        """
        browser_settings = settings.browser
        retry_settings = settings.retry
        driver = PlaywrightDriver(
            browser_settings.cdp_url(),
            timeout_ms=browser_settings.connect_timeout_ms,
        )
        policy = RetryPolicy(
            max_attempts=retry_settings.connect_max_attempts,
            backoff=BackoffConfig(
                base_delay=retry_settings.connect_base_delay_seconds,
                max_delay=max(
                    retry_settings.connect_max_delay_seconds,
                    retry_settings.connect_base_delay_seconds,
                ),
                strategy=BackoffStrategy.LINEAR,
            ),
        )
        return cls(
            driver.connect,
            endpoint=browser_settings.redacted_endpoint(),
            retry_policy=policy,
            on_close=driver.stop,
        )

    @property
    def state(self) -> ConnectionState:
        if self._connect_task is not None and not self._connect_task.done():
            return ConnectionState.CONNECTING
        if self._connection is not None and self._connection.is_alive():
            return ConnectionState.CONNECTED
        return ConnectionState.DISCONNECTED

    @property
    def last_error(self) -> str | None:
        return self._last_error

    async def ensure_connected(self) -> BrowserConnection:
        """Return the live connection, connecting first if needed.

        Callers arriving while a connect attempt is running wait for that
        attempt instead of starting another one.

        Raises:
            BrowserConnectionError: If every connect attempt failed.
            RuntimeError: If the connector is closed.
        """
        if self._closed:
            raise RuntimeError("SessionConnector is closed")

        connection = self._connection
        if connection is not None:
            if connection.is_alive():
                return connection
            logger.warning(
                "Browser connection is stale, reconnecting",
                endpoint=self._endpoint,
            )
            self._connection = None
            await self._close_browser(connection)

        # The done-callback clearing a finished task runs one loop step later
        if self._connect_task is None or self._connect_task.done():
            self._connect_task = asyncio.create_task(self._connect_with_retry())
            self._connect_task.add_done_callback(self._on_connect_done)

        # shield: one impatient caller must not cancel the shared attempt
        return await asyncio.shield(self._connect_task)

    def _on_connect_done(self, task: asyncio.Task[BrowserConnection]) -> None:
        if self._connect_task is task:
            self._connect_task = None
        if not task.cancelled():
            # Retrieved here so an attempt nobody awaits does not warn
            task.exception()

    async def _connect_with_retry(self) -> BrowserConnection:
        async def attempt(index: int) -> Browser:
            self._connect_attempts += 1
            logger.info(
                "Connecting to remote browser",
                endpoint=self._endpoint,
                attempt=index + 1,
                max_attempts=self._retry_policy.max_attempts,
            )
            return await self._connect_fn()

        try:
            browser = await retry_async(
                attempt,
                policy=self._retry_policy,
                operation_name="browser_connect",
            )
        except RetryExhaustedError as e:
            self._last_error = str(e.last_error) if e.last_error else str(e)
            logger.error(
                "Remote browser unreachable",
                endpoint=self._endpoint,
                attempts=e.attempts,
                error=self._last_error,
            )
            raise BrowserConnectionError(
                self._endpoint,
                attempts=e.attempts,
                last_error=e.last_error,
            ) from e.last_error

        connection = BrowserConnection(
            browser=browser,
            endpoint=self._endpoint,
            created_at=datetime.now(UTC),
        )

        if self._closed:
            await self._close_browser(connection)
            raise RuntimeError("SessionConnector closed while connecting")

        browser.on("disconnected", lambda _browser: self._on_disconnected(connection))
        self._connection = connection
        self._connections_made += 1
        self._last_error = None

        logger.info(
            "Connected to remote browser",
            endpoint=self._endpoint,
            connections_made=self._connections_made,
        )
        return connection

    def _on_disconnected(self, connection: BrowserConnection) -> None:
        connection.state = ConnectionState.DISCONNECTED
        self._disconnects += 1
        if self._connection is connection:
            self._connection = None
        logger.warning(
            "Remote browser disconnected",
            endpoint=self._endpoint,
            connected_since=connection.created_at.isoformat(),
        )

    async def _close_browser(self, connection: BrowserConnection) -> None:
        connection.state = ConnectionState.DISCONNECTED
        try:
            await connection.browser.close()
        except Exception as e:
            logger.debug("Error closing stale browser", error=str(e))

    async def close(self) -> None:
        """Close the connection and the driver. Safe to call twice."""
        if self._closed:
            return
        self._closed = True

        task = self._connect_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        if self._connection is not None:
            connection, self._connection = self._connection, None
            await self._close_browser(connection)

        if self._on_close is not None:
            await self._on_close()

        logger.info("Session connector closed", endpoint=self._endpoint)

    def stats(self) -> dict[str, Any]:
        connection = self._connection
        return {
            "state": self.state.value,
            "endpoint": self._endpoint,
            "connected_since": connection.created_at.isoformat() if connection else None,
            "connect_attempts": self._connect_attempts,
            "connections_made": self._connections_made,
            "disconnects": self._disconnects,
            "last_error": self._last_error,
        }
