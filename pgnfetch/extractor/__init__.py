"""
Move-list extraction from rendered pages.
"""

from pgnfetch.extractor.chain import ExtractionChain, ExtractionResult
from pgnfetch.extractor.strategies import DEFAULT_STRATEGIES, SelectorStrategy

__all__ = [
    "ExtractionChain",
    "ExtractionResult",
    "DEFAULT_STRATEGIES",
    "SelectorStrategy",
]
