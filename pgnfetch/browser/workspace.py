"""
Per-request page workspace.

Each request gets its own BrowserContext and Page on the shared connection:
- Realistic user agent and viewport
- Resource filtering through a ResourcePolicy (images, stylesheets, fonts
  and media are aborted)
- Navigation with a network-idle criterion, retried once with the looser
  "load" criterion, then a short settle delay for client-side rendering
- close() is idempotent and never raises
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pgnfetch.browser.policy import ResourcePolicy
from pgnfetch.errors import InvalidInputError, NavigationError
from pgnfetch.utils.backoff import BackoffConfig
from pgnfetch.utils.logging import get_logger
from pgnfetch.utils.retry import RetryExhaustedError, RetryPolicy, retry_async

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, Page, Response

    from pgnfetch.browser.connector import BrowserConnection
    from pgnfetch.extractor.chain import ExtractionChain, ExtractionResult
    from pgnfetch.utils.config import Settings

logger = get_logger(__name__)

# Wait criteria per navigation attempt, strictest first
NAVIGATION_WAIT_CRITERIA = ("networkidle", "load")

ROUTE_PATTERN = "**/*"


def validate_url(url: Any) -> str:
    """Return the URL stripped, or fail fast for anything but http(s).

    Raises:
        InvalidInputError: If url is missing, not a string, or not http(s).
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidInputError("Missing URL", received=url)
    url = url.strip()
    parts = urlsplit(url)
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        raise InvalidInputError("Invalid URL", received=url)
    return url


def navigation_retry_policy(max_attempts: int = 2) -> RetryPolicy:
    """Policy for the navigation fallback: no delay between attempts."""
    return RetryPolicy(
        max_attempts=min(max_attempts, len(NAVIGATION_WAIT_CRITERIA)),
        backoff=BackoffConfig(base_delay=0.0, max_delay=0.0),
    )


class PageWorkspace:
    """One isolated browsing context bound to one connection.

    Use open() to create; always close() (or use ``async with``).

    Example:
        async with await PageWorkspace.open(connection, settings) as workspace:
            await workspace.navigate(url)
            result = await workspace.extract(chain)
    """

    def __init__(
        self,
        connection: BrowserConnection,
        context: BrowserContext,
        page: Page,
        *,
        settings: Settings,
        policy: ResourcePolicy,
    ) -> None:
        self._connection = connection
        self._context = context
        self._page = page
        self._settings = settings
        self._policy = policy
        self._route_handler = policy.handle_route
        self._route_installed = False
        self._closed = False
        self._url: str | None = None
        self._navigation_policy = navigation_retry_policy(settings.retry.navigation_max_attempts)

    @classmethod
    async def open(
        cls,
        connection: BrowserConnection,
        settings: Settings,
        *,
        policy: ResourcePolicy | None = None,
    ) -> PageWorkspace:
        """Create a fresh context and page on the shared connection."""
        browser_settings = settings.browser
        if policy is None:
            policy = ResourcePolicy.blocking(browser_settings.blocked_resource_types)

        context = await connection.browser.new_context(
            user_agent=browser_settings.user_agent,
            viewport={
                "width": browser_settings.viewport_width,
                "height": browser_settings.viewport_height,
            },
        )
        try:
            page = await context.new_page()
        except Exception:
            try:
                await context.close()
            except Exception as close_error:
                logger.debug("Error closing context after failed open", error=str(close_error))
            raise

        page.set_default_navigation_timeout(browser_settings.navigation_timeout_ms)
        page.set_default_timeout(browser_settings.navigation_timeout_ms)

        workspace = cls(connection, context, page, settings=settings, policy=policy)
        await workspace._install_resource_filter()
        logger.debug("Workspace opened", blocked=policy.denied_types)
        return workspace

    async def _install_resource_filter(self) -> None:
        try:
            await self._page.route(ROUTE_PATTERN, self._route_handler)
            self._route_installed = True
        except Exception as e:
            # Some endpoints refuse interception; pages still load, only slower
            logger.warning("Resource filtering not enabled", error=str(e))

    @property
    def page(self) -> Page:
        return self._page

    @property
    def closed(self) -> bool:
        return self._closed

    async def navigate(self, url: str, timeout_ms: int | None = None) -> Response | None:
        """Load url, falling back to a looser wait criterion once.

        Args:
            url: http(s) URL to load.
            timeout_ms: Per-attempt timeout (defaults to settings).

        Returns:
            The main-resource response (may be None for same-document loads).

        Raises:
            InvalidInputError: If url is not http(s).
            NavigationError: If every attempt failed.
        """
        if self._closed:
            raise RuntimeError("Workspace is closed")
        url = validate_url(url)
        self._url = url
        timeout = timeout_ms or self._settings.browser.navigation_timeout_ms

        async def attempt(index: int) -> Response | None:
            wait_until = NAVIGATION_WAIT_CRITERIA[index]
            logger.debug("Navigating", url=url[:80], wait_until=wait_until, timeout_ms=timeout)
            return await self._page.goto(url, wait_until=wait_until, timeout=timeout)

        try:
            response = await retry_async(
                attempt,
                policy=self._navigation_policy,
                operation_name="navigate",
            )
        except RetryExhaustedError as e:
            logger.warning(
                "Navigation failed",
                url=url[:80],
                attempts=e.attempts,
                error=str(e.last_error),
            )
            raise NavigationError(url, attempts=e.attempts, last_error=e.last_error) from e.last_error

        logger.info(
            "Navigation complete",
            url=url[:80],
            status=response.status if response is not None else None,
        )
        await self.settle()
        return response

    async def settle(self) -> None:
        """Fixed pause letting client-side rendering populate the move list."""
        delay_ms = self._settings.browser.settle_delay_ms
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)

    async def wait_for_moves(self, selector: str, timeout_ms: int | None = None) -> bool:
        """Wait for any move-list element to appear.

        A timeout is not an error here; the extraction chain decides.

        Returns:
            True if the selector appeared before the timeout.

        Raises:
            NavigationError: If the page, context or connection failed while
                waiting (target closed, renderer crash).
        """
        timeout = self._settings.browser.selector_timeout_ms if timeout_ms is None else timeout_ms
        if timeout <= 0:
            return False
        try:
            await self._page.wait_for_selector(selector, timeout=timeout)
            return True
        except PlaywrightTimeoutError:
            logger.info("Move list selector did not appear", timeout_ms=timeout)
            return False
        except PlaywrightError as e:
            url = self._url or ""
            logger.warning("Page failed while waiting for moves", url=url[:80], error=str(e))
            raise NavigationError(url, attempts=1, last_error=e) from e

    async def extract(self, chain: ExtractionChain) -> ExtractionResult | None:
        """Run the extraction chain on this page.

        Returns:
            ExtractionResult with tokens, or None when nothing was found.
        """
        if self._closed:
            raise RuntimeError("Workspace is closed")
        result = await chain.extract(self._page)
        return result if result.found else None

    async def close(self) -> None:
        """Release the page and context. Idempotent; errors are logged only."""
        if self._closed:
            return
        self._closed = True

        if self._route_installed:
            try:
                await self._page.unroute(ROUTE_PATTERN, self._route_handler)
            except Exception as e:
                logger.debug("Error removing route", error=str(e))
        try:
            await self._page.close()
        except Exception as e:
            logger.debug("Error closing page", error=str(e))
        try:
            await self._context.close()
        except Exception as e:
            logger.debug("Error closing context", error=str(e))

        logger.debug("Workspace closed")

    async def __aenter__(self) -> PageWorkspace:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
