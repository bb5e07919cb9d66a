"""
Pytest fixtures and configuration for pgnfetch tests.

=============================================================================
Test Classification
=============================================================================

Primary Markers:
- @pytest.mark.unit: Single class/function, no external dependencies
  - DEFAULT: Tests without marker are auto-classified as unit

- @pytest.mark.integration: Several components wired together, remote
  browser replaced by in-process fakes

- @pytest.mark.e2e: Real remote browser endpoint and network access
  - DEFAULT EXCLUDED: Must use `pytest -m e2e` to run
  - Requires PGNFETCH_BROWSER__TOKEN

- @pytest.mark.slow: Tests taking more than 5 seconds (excluded by default)

=============================================================================
Mock Strategy
=============================================================================

- Remote browser: FakeBrowser / FakeContext / FakePage below. FakePage
  answers the Playwright calls the extraction chain makes by running the
  same selectors against an HTML fixture parsed with BeautifulSoup.
- Settings: built directly, never read from the developer's environment.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

# Set test environment before importing anything else
os.environ["PGNFETCH_CONFIG_DIR"] = str(Path(__file__).parent.parent / "config")
os.environ["PGNFETCH_GENERAL__LOG_LEVEL"] = "DEBUG"

from pgnfetch.extractor.strategies import GENERIC_TEXT_SCRIPT, ROW_TOKENS_SCRIPT  # noqa: E402
from pgnfetch.utils.config import (  # noqa: E402
    BrowserConfig,
    ConcurrencyConfig,
    GeneralConfig,
    RetryConfig,
    Settings,
)

# =============================================================================
# HTML fixtures
# =============================================================================

MAIN_LINE_HTML = """
<html><body>
  <div class="main-line-row">
    <div class="white-move"><span class="node-highlight-content">e4</span></div>
    <div class="black-move"><span class="node-highlight-content">e5</span></div>
  </div>
  <div class="main-line-row">
    <div class="white-move"><span class="node-highlight-content">Nf3</span></div>
    <div class="black-move"><span class="node-highlight-content">Nc6</span></div>
  </div>
  <div class="main-line-row">
    <div class="white-move"><span class="node-highlight-content">Bb5</span></div>
    <div class="black-move"><span class="node-highlight-content">  </span></div>
  </div>
</body></html>
"""

VERTICAL_LIST_HTML = """
<html><body>
  <div class="vertical-move-list">
    <div class="move"><span class="white node">d4</span><span class="black node">Nf6</span></div>
    <div class="move"><span class="white node">c4</span><span class="black node">g6</span></div>
  </div>
</body></html>
"""

GENERIC_ONLY_HTML = """
<html><body>
  <section>
    <span class="san-move">e4</span>
    <span class="san-move">c5</span>
    <span class="san-move"> </span>
    <span class="san-move">Nf3</span>
  </section>
</body></html>
"""

NO_MOVES_HTML = """
<html><body><h1>Game archive</h1><p>Nothing to see here.</p></body></html>
"""


# =============================================================================
# Fake Playwright objects
# =============================================================================


class SoupPage:
    """Page stand-in answering DOM queries from an HTML fixture."""

    def __init__(self, html: str) -> None:
        self.soup = BeautifulSoup(html, "html.parser")
        self.evaluated: list[str] = []

    async def query_selector(self, selector: str) -> Any:
        return self.soup.select_one(selector)

    async def eval_on_selector_all(self, selector: str, expression: str, arg: Any = None) -> Any:
        self.evaluated.append(selector)
        elements = self.soup.select(selector)

        if expression == ROW_TOKENS_SCRIPT:
            white_selector, black_selector = arg
            tokens = []
            for row in elements:
                for sub in (white_selector, black_selector):
                    node = row.select_one(sub)
                    text = node.get_text().strip() if node is not None else ""
                    if text:
                        tokens.append(text)
            return tokens

        if expression == GENERIC_TEXT_SCRIPT:
            texts = (element.get_text().strip() for element in elements)
            return [text for text in texts if text]

        raise AssertionError(f"Unexpected page script for {selector}")


class FakePage(SoupPage):
    """SoupPage with navigation, routing and lifecycle calls recorded.

    Args:
        html: Document served after any successful goto().
        goto_errors: wait_until value -> exception raised for that criterion.
    """

    def __init__(self, html: str = NO_MOVES_HTML, goto_errors: dict[str, Exception] | None = None):
        super().__init__(html)
        self.goto_errors = goto_errors or {}
        self.goto_calls: list[dict[str, Any]] = []
        self.routes: list[tuple[str, Callable]] = []
        self.unroutes: list[tuple[str, Callable]] = []
        self.route_error: Exception | None = None
        self.close_error: Exception | None = None
        self.wait_error: Exception | None = None
        self.close_calls = 0
        self.default_timeout: int | None = None
        self.default_navigation_timeout: int | None = None

    def set_default_timeout(self, timeout: int) -> None:
        self.default_timeout = timeout

    def set_default_navigation_timeout(self, timeout: int) -> None:
        self.default_navigation_timeout = timeout

    async def route(self, pattern: str, handler: Callable) -> None:
        if self.route_error is not None:
            raise self.route_error
        self.routes.append((pattern, handler))

    async def unroute(self, pattern: str, handler: Callable) -> None:
        self.unroutes.append((pattern, handler))

    async def goto(self, url: str, *, wait_until: str, timeout: int) -> Any:
        self.goto_calls.append({"url": url, "wait_until": wait_until, "timeout": timeout})
        error = self.goto_errors.get(wait_until)
        if error is not None:
            raise error
        response = MagicMock()
        response.status = 200
        return response

    async def wait_for_selector(self, selector: str, *, timeout: int) -> Any:
        if self.wait_error is not None:
            raise self.wait_error
        element = self.soup.select_one(selector)
        if element is None:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")
        return element

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_error is not None:
            raise self.close_error

    @property
    def closed(self) -> bool:
        return self.close_calls > 0


class FakeContext:
    """BrowserContext stand-in serving one page."""

    def __init__(self, page: FakePage, **options: Any) -> None:
        self.page = page
        self.options = options
        self.new_page_error: Exception | None = None
        self.close_error: Exception | None = None
        self.close_calls = 0

    async def new_page(self) -> FakePage:
        if self.new_page_error is not None:
            raise self.new_page_error
        return self.page

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_error is not None:
            raise self.close_error


class FakeBrowser:
    """Browser stand-in with the disconnected event and context creation.

    Args:
        page_factory: Called once per new_context() to build that context's page.
    """

    def __init__(self, page_factory: Callable[[], FakePage] | None = None) -> None:
        self.page_factory = page_factory or FakePage
        self.connected = True
        self.close_calls = 0
        self.contexts: list[FakeContext] = []
        self._handlers: dict[str, list[Callable]] = {}

    def is_connected(self) -> bool:
        return self.connected

    def on(self, event: str, handler: Callable) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def emit_disconnected(self) -> None:
        self.connected = False
        for handler in self._handlers.get("disconnected", []):
            handler(self)

    async def new_context(self, **options: Any) -> FakeContext:
        context = FakeContext(self.page_factory(), **options)
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.close_calls += 1
        self.connected = False


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a token, no settle delay and no retry waits."""
    return Settings(
        general=GeneralConfig(log_level="DEBUG", json_logs=False),
        browser=BrowserConfig(
            endpoint="wss://browser.test/chromium?stealth=true",
            token="test-token",
            navigation_timeout_ms=5000,
            selector_timeout_ms=50,
            settle_delay_ms=0,
        ),
        concurrency=ConcurrencyConfig(max_slots=2, max_waiters=4),
        retry=RetryConfig(
            connect_max_attempts=3,
            connect_base_delay_seconds=0.0,
            connect_max_delay_seconds=0.0,
            navigation_max_attempts=2,
        ),
    )


# =============================================================================
# Marker registration
# =============================================================================


def pytest_configure(config):
    """Register custom markers for test classification."""
    config.addinivalue_line(
        "markers", "unit: Unit tests with no external dependencies (fast, <1s/test)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests with in-process fakes (<5s/test)"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests requiring a real remote browser (excluded by default)"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds (excluded by default)"
    )


def pytest_collection_modifyitems(config, items):
    """
    Auto-apply markers.

    Tests without explicit markers are assumed to be unit tests.
    """
    for item in items:
        has_classification = any(
            marker.name in ("unit", "integration", "e2e") for marker in item.iter_markers()
        )
        if not has_classification:
            item.add_marker(pytest.mark.unit)
