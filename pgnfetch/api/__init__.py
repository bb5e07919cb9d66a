"""
HTTP boundary for pgnfetch.
"""

from pgnfetch.api.server import create_app, run_server

__all__ = ["create_app", "run_server"]
