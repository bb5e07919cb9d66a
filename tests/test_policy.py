"""
Tests for ResourcePolicy.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from pgnfetch.browser.policy import DEFAULT_BLOCKED_TYPES, ResourceAction, ResourcePolicy


def _route(resource_type: str) -> MagicMock:
    route = MagicMock()
    route.request.resource_type = resource_type
    route.continue_ = AsyncMock()
    route.abort = AsyncMock()
    return route


class TestResourcePolicy:
    """Tests for the allow/deny table."""

    @pytest.mark.parametrize("resource_type", DEFAULT_BLOCKED_TYPES)
    def test_default_blocking_denies_heavy_types(self, resource_type: str) -> None:
        """Given the default blocking policy, When a heavy type is checked, Then it is denied."""
        assert ResourcePolicy.blocking().decide(resource_type) is ResourceAction.DENY

    @pytest.mark.parametrize("resource_type", ["document", "script", "xhr", "fetch", "websocket"])
    def test_other_types_allowed(self, resource_type: str) -> None:
        """Given the default blocking policy, When a page-critical type is checked, Then it is allowed."""
        assert ResourcePolicy.blocking().is_allowed(resource_type)

    def test_case_insensitive(self) -> None:
        """Given mixed-case types, When decided, Then matching ignores case."""
        policy = ResourcePolicy.blocking(["Image"])
        assert policy.decide("IMAGE") is ResourceAction.DENY

    def test_denied_types_sorted(self) -> None:
        """Given a blocking policy, When denied_types is read, Then it lists the types sorted."""
        assert ResourcePolicy.blocking().denied_types == ["font", "image", "media", "stylesheet"]

    def test_deny_by_default_table(self) -> None:
        """Given default DENY with script allowed, When checked, Then only script passes."""
        policy = ResourcePolicy(
            rules={"script": ResourceAction.ALLOW, "document": ResourceAction.ALLOW},
            default=ResourceAction.DENY,
        )

        assert policy.is_allowed("script")
        assert not policy.is_allowed("xhr")


class TestHandleRoute:
    """Tests for ResourcePolicy.handle_route()."""

    @pytest.mark.asyncio
    async def test_denied_request_aborted(self) -> None:
        """Given an image request, When routed, Then it is aborted."""
        route = _route("image")

        await ResourcePolicy.blocking().handle_route(route)

        route.abort.assert_awaited_once()
        route.continue_.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_allowed_request_continued(self) -> None:
        """Given a document request, When routed, Then it is continued."""
        route = _route("document")

        await ResourcePolicy.blocking().handle_route(route)

        route.continue_.assert_awaited_once()
        route.abort.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_falls_back_to_continue(self) -> None:
        """
        Given: abort() raises
        When: A denied request is routed
        Then: The request is continued instead of left hanging
        """
        route = _route("font")
        route.abort.side_effect = RuntimeError("target closed")

        await ResourcePolicy.blocking().handle_route(route)

        route.continue_.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_continue_failure_is_not_raised(self) -> None:
        """Given both abort and continue failing, When routed, Then no error escapes."""
        route = _route("media")
        route.abort.side_effect = RuntimeError("target closed")
        route.continue_.side_effect = RuntimeError("target closed")

        await ResourcePolicy.blocking().handle_route(route)
