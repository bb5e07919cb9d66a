"""
Move notation assembly.
"""

from pgnfetch.notation.assembler import assemble

__all__ = ["assemble"]
