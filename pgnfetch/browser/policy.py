"""
Declarative resource filtering for page workspaces.

A ResourcePolicy maps Playwright resource types to allow/deny. The workspace
installs a single catch-all route and asks the policy about every request,
so the filtering rules stay independent of the route API.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from pgnfetch.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Route

logger = get_logger(__name__)


class ResourceAction(str, Enum):
    """What to do with an intercepted request."""

    ALLOW = "allow"
    DENY = "deny"


# Playwright resource types (Request.resource_type)
DEFAULT_BLOCKED_TYPES = ("image", "stylesheet", "font", "media")


@dataclass(frozen=True)
class ResourcePolicy:
    """Resource-type → action table.

    Types missing from the table get the default action.

    Example:
        >>> policy = ResourcePolicy.blocking(["image", "font"])
        >>> policy.decide("image")
        <ResourceAction.DENY: 'deny'>
        >>> policy.decide("script")
        <ResourceAction.ALLOW: 'allow'>
    """

    rules: Mapping[str, ResourceAction] = field(default_factory=dict)
    default: ResourceAction = ResourceAction.ALLOW

    @classmethod
    def blocking(cls, resource_types: Iterable[str] = DEFAULT_BLOCKED_TYPES) -> ResourcePolicy:
        """Policy denying the given types and allowing everything else."""
        return cls(rules={t.lower(): ResourceAction.DENY for t in resource_types})

    def decide(self, resource_type: str) -> ResourceAction:
        return self.rules.get(resource_type.lower(), self.default)

    def is_allowed(self, resource_type: str) -> bool:
        return self.decide(resource_type) is ResourceAction.ALLOW

    @property
    def denied_types(self) -> list[str]:
        return sorted(t for t, a in self.rules.items() if a is ResourceAction.DENY)

    async def handle_route(self, route: Route) -> None:
        """Route handler applying the policy.

        If the decision itself fails the request is continued rather than
        left hanging.
        """
        try:
            if self.is_allowed(route.request.resource_type):
                await route.continue_()
            else:
                await route.abort()
        except Exception as e:
            logger.debug("Resource policy evaluation failed, continuing request", error=str(e))
            try:
                await route.continue_()
            except Exception as continue_error:
                logger.debug("Route continue failed", error=str(continue_error))
