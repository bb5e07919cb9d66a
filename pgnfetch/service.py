"""
Per-request fetch orchestration.

PgnFetchService owns the gate, the connector, the extraction chain and the
settings. One fetch runs strictly in order:

    acquire slot → ensure connected → open workspace → navigate → settle
    → wait for move list → extract → close workspace → release slot
    → assemble

A caller queued in the gate never triggers a connection attempt, and the
workspace is closed on every exit path.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pgnfetch.browser.connector import ConnectionState, SessionConnector
from pgnfetch.browser.gate import ConcurrencyGate
from pgnfetch.browser.policy import ResourcePolicy
from pgnfetch.browser.workspace import PageWorkspace, validate_url
from pgnfetch.extractor.chain import ExtractionChain
from pgnfetch.notation.assembler import assemble
from pgnfetch.utils.logging import get_logger

if TYPE_CHECKING:
    from pgnfetch.browser.connector import BrowserConnection
    from pgnfetch.utils.config import Settings

logger = get_logger(__name__)

WorkspaceFactory = Callable[..., Awaitable[PageWorkspace]]


@dataclass
class FetchTrace:
    """Progress of one fetch, readable by the caller after a failure.

    Attributes:
        url: URL as received.
        phase: Last phase entered (accepted, acquire, connect, open,
            navigate, extract, assemble, done).
    """

    url: Any
    phase: str = "accepted"
    started_at: float = field(default_factory=time.monotonic)

    def enter(self, phase: str) -> None:
        self.phase = phase
        logger.debug("Fetch phase", phase=phase)

    @property
    def elapsed_ms(self) -> float:
        return round((time.monotonic() - self.started_at) * 1000, 1)


@dataclass
class FetchOutcome:
    """Result of one fetch. pgn is None when no move list was found."""

    pgn: str | None
    tokens: list[str] = field(default_factory=list)
    strategy: str | None = None
    elapsed_ms: float = 0.0

    @property
    def found(self) -> bool:
        return self.pgn is not None


class PgnFetchService:
    """Fetches move lists through the shared remote browser.

    Example:
        service = PgnFetchService.from_settings(get_settings())
        outcome = await service.fetch("https://example.com/game/1")
        print(outcome.pgn)
        await service.close()
    """

    def __init__(
        self,
        settings: Settings,
        *,
        connector: SessionConnector,
        gate: ConcurrencyGate | None = None,
        chain: ExtractionChain | None = None,
        policy: ResourcePolicy | None = None,
        workspace_factory: WorkspaceFactory = PageWorkspace.open,
    ) -> None:
        self._settings = settings
        self._connector = connector
        self._gate = gate or ConcurrencyGate(
            settings.concurrency.max_slots,
            max_waiters=settings.concurrency.max_waiters,
            acquire_timeout=settings.concurrency.acquire_timeout_seconds,
        )
        self._chain = chain or ExtractionChain()
        self._policy = policy or ResourcePolicy.blocking(settings.browser.blocked_resource_types)
        self._open_workspace = workspace_factory
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings) -> PgnFetchService:
        """Build the service and its connector from settings.

        Raises:
            ConfigurationError: If the remote browser token is missing.
        """
        return cls(settings, connector=SessionConnector.from_settings(settings))

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def gate(self) -> ConcurrencyGate:
        return self._gate

    @property
    def connector(self) -> SessionConnector:
        return self._connector

    async def fetch(self, url: Any, *, trace: FetchTrace | None = None) -> FetchOutcome:
        """Render url and return its move list as numbered-pair notation.

        Args:
            url: http(s) URL of a game page.
            trace: Optional progress record updated as phases are entered.

        Returns:
            FetchOutcome; outcome.pgn is None when no moves were found.

        Raises:
            InvalidInputError: If url is missing or not http(s).
            GateOverloadedError: If no slot could be granted.
            BrowserConnectionError: If the remote browser is unreachable.
            NavigationError: If the page failed to load.
        """
        if self._closed:
            raise RuntimeError("PgnFetchService is closed")
        if trace is None:
            trace = FetchTrace(url=url)

        # Fail fast before queueing for a slot
        url = validate_url(url)

        trace.enter("acquire")
        async with self._gate.slot() as slot:
            if slot.waited_seconds > 0.1:
                logger.info("Browser slot granted", waited_seconds=round(slot.waited_seconds, 2))

            trace.enter("connect")
            connection = await self._connector.ensure_connected()

            trace.enter("open")
            result = await self._run_in_workspace(connection, url, trace)

        trace.enter("assemble")
        if result is None:
            trace.enter("done")
            logger.info("No moves found", elapsed_ms=trace.elapsed_ms)
            return FetchOutcome(pgn=None, elapsed_ms=trace.elapsed_ms)

        pgn = assemble(result.tokens)
        trace.enter("done")
        logger.info(
            "Moves extracted",
            strategy=result.strategy,
            token_count=len(result.tokens),
            elapsed_ms=trace.elapsed_ms,
        )
        return FetchOutcome(
            pgn=pgn,
            tokens=result.tokens,
            strategy=result.strategy,
            elapsed_ms=trace.elapsed_ms,
        )

    async def _run_in_workspace(
        self,
        connection: BrowserConnection,
        url: str,
        trace: FetchTrace,
    ):
        workspace = await self._open_workspace(connection, self._settings, policy=self._policy)
        try:
            trace.enter("navigate")
            await workspace.navigate(url)
            await workspace.wait_for_moves(self._chain.wait_selector)

            trace.enter("extract")
            return await workspace.extract(self._chain)
        finally:
            await workspace.close()

    def health(self) -> dict[str, Any]:
        """Snapshot for the health endpoint.

        Status is "degraded" while the last connect attempt has failed.
        """
        connection = self._connector.stats()
        return {
            "ok": True,
            "status": "degraded" if self._connector.last_error else "ok",
            "running": self._connector.state is ConnectionState.CONNECTED,
            "in_flight": self._gate.in_flight,
            "waiting": self._gate.waiting,
            "max_slots": self._gate.max_slots,
            "connection": connection,
        }

    async def close(self) -> None:
        """Close the shared browser connection. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        await self._connector.close()
        logger.info("Fetch service closed")
