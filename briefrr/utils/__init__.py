"""Utility functions and helpers"""

from .async_helpers import sync_wrapper, ensure_async, wait_with_default

__all__ = [
    "sync_wrapper",
    "ensure_async",
    "wait_with_default"
]
