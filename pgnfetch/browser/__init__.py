"""
Remote browser session management.

Provides:
- SessionConnector: shared CDP connection with reconnect and retry
- ConcurrencyGate: FIFO admission control for extractions
- PageWorkspace: per-request context and page
- ResourcePolicy: resource-type filtering for workspaces
"""

from pgnfetch.browser.connector import (
    BrowserConnection,
    ConnectionState,
    PlaywrightDriver,
    SessionConnector,
)
from pgnfetch.browser.gate import ConcurrencyGate, Slot
from pgnfetch.browser.policy import ResourceAction, ResourcePolicy
from pgnfetch.browser.workspace import PageWorkspace, validate_url

__all__ = [
    "BrowserConnection",
    "ConnectionState",
    "PlaywrightDriver",
    "SessionConnector",
    "ConcurrencyGate",
    "Slot",
    "ResourceAction",
    "ResourcePolicy",
    "PageWorkspace",
    "validate_url",
]
