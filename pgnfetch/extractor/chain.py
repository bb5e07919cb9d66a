"""
Extraction strategy chain.

Tries each SelectorStrategy in order and returns the tokens of the first one
that yields any, falling back to a generic class-contains-"move" scan when
none does. Precision is preferred, but the chain degrades instead of failing
when page markup drifts.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pgnfetch.extractor.strategies import (
    DEFAULT_STRATEGIES,
    GENERIC_MOVE_SELECTOR,
    GENERIC_TEXT_SCRIPT,
    ROW_TOKENS_SCRIPT,
    SelectorStrategy,
)
from pgnfetch.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = get_logger(__name__)

GENERIC_STRATEGY_NAME = "generic_move_class"


@dataclass
class ExtractionResult:
    """Tokens extracted from a page and the strategy that produced them."""

    tokens: list[str] = field(default_factory=list)
    strategy: str | None = None

    @property
    def found(self) -> bool:
        return bool(self.tokens)


def _clean_tokens(values: Any) -> list[str]:
    """Trim and drop empty or non-string values, preserving order."""
    if not isinstance(values, list):
        return []
    tokens = []
    for value in values:
        if not isinstance(value, str):
            continue
        text = value.strip()
        if text:
            tokens.append(text)
    return tokens


class ExtractionChain:
    """Ordered DOM strategies with a generic last resort.

    Args:
        strategies: Row-based strategies, most precise first.
        generic_selector: Selector for the last-resort scan (None disables it).
    """

    def __init__(
        self,
        strategies: Iterable[SelectorStrategy] = DEFAULT_STRATEGIES,
        *,
        generic_selector: str | None = GENERIC_MOVE_SELECTOR,
    ) -> None:
        self._strategies: tuple[SelectorStrategy, ...] = tuple(strategies)
        if not self._strategies:
            raise ValueError("at least one strategy is required")
        self._generic_selector = generic_selector

    @property
    def strategies(self) -> Sequence[SelectorStrategy]:
        return self._strategies

    @property
    def wait_selector(self) -> str:
        """Selector matching any strategy's rows, for waiting on render."""
        return ", ".join(s.row_selector for s in self._strategies)

    async def _run_strategy(self, page: Page, strategy: SelectorStrategy) -> list[str]:
        if await page.query_selector(strategy.row_selector) is None:
            return []
        raw = await page.eval_on_selector_all(
            strategy.row_selector,
            ROW_TOKENS_SCRIPT,
            [strategy.white_selector, strategy.black_selector],
        )
        return _clean_tokens(raw)

    async def _run_generic(self, page: Page) -> list[str]:
        if self._generic_selector is None:
            return []
        raw = await page.eval_on_selector_all(self._generic_selector, GENERIC_TEXT_SCRIPT)
        return _clean_tokens(raw)

    async def extract(self, page: Page) -> ExtractionResult:
        """Extract move tokens from a rendered page.

        Args:
            page: Playwright page after navigation.

        Returns:
            ExtractionResult; tokens is empty when nothing matched.
        """
        for strategy in self._strategies:
            tokens = await self._run_strategy(page, strategy)
            if tokens:
                logger.debug(
                    "Move list extracted",
                    strategy=strategy.name,
                    token_count=len(tokens),
                )
                return ExtractionResult(tokens=tokens, strategy=strategy.name)

        tokens = await self._run_generic(page)
        if tokens:
            logger.info(
                "Move list extracted by generic fallback",
                strategy=GENERIC_STRATEGY_NAME,
                token_count=len(tokens),
            )
            return ExtractionResult(tokens=tokens, strategy=GENERIC_STRATEGY_NAME)

        logger.info("No move list found", strategies_tried=len(self._strategies))
        return ExtractionResult()
