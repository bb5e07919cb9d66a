"""
pgnfetch: extract chess move lists from rendered game pages as PGN move text.
"""

__version__ = "0.1.0"
