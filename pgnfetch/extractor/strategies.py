"""
DOM selector strategies for move-list extraction.

Game-page markup is not stable, so several known layouts are tried in order.
Each row-based strategy names a row selector and the white/black move
selectors relative to a row.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SelectorStrategy:
    """One known move-list layout.

    Attributes:
        name: Identifier used in logs and responses.
        row_selector: Selects one element per move pair.
        white_selector: First-player move, relative to the row.
        black_selector: Second-player move, relative to the row.
    """

    name: str
    row_selector: str
    white_selector: str
    black_selector: str


MAIN_LINE_ROW = SelectorStrategy(
    name="main_line_row",
    row_selector=".main-line-row",
    white_selector=".white-move .node-highlight-content",
    black_selector=".black-move .node-highlight-content",
)

MOVE_LIST_ROW = SelectorStrategy(
    name="move_list_row",
    row_selector=".move-list-row",
    white_selector=".white-move",
    black_selector=".black-move",
)

VERTICAL_MOVE_LIST = SelectorStrategy(
    name="vertical_move_list",
    row_selector="vertical-move-list .move, .vertical-move-list .move",
    white_selector=".white.node",
    black_selector=".black.node",
)

WHOLE_MOVE_NUMBER = SelectorStrategy(
    name="whole_move_number",
    row_selector="[data-whole-move-number]",
    white_selector=".white",
    black_selector=".black",
)

DEFAULT_STRATEGIES: tuple[SelectorStrategy, ...] = (
    MAIN_LINE_ROW,
    MOVE_LIST_ROW,
    VERTICAL_MOVE_LIST,
    WHOLE_MOVE_NUMBER,
)

# Last resort: any element whose class attribute contains "move"
GENERIC_MOVE_SELECTOR = '[class*="move"]'

# Evaluated in the page with (rows, [whiteSelector, blackSelector])
ROW_TOKENS_SCRIPT = """
(rows, [whiteSelector, blackSelector]) => rows.flatMap((row) => {
  const read = (selector) => row.querySelector(selector)?.innerText?.trim();
  return [read(whiteSelector), read(blackSelector)].filter(Boolean);
})
"""

# Evaluated in the page with (elements)
GENERIC_TEXT_SCRIPT = """
(elements) => elements
  .map((element) => (element.textContent || "").trim())
  .filter((text) => text.length > 0)
"""
