"""Storage backends for persisted state"""

from .base import BaseStateStore, StorageError
from .local import LocalStateStore
from .memory import InMemoryStateStore

__all__ = [
    "BaseStateStore",
    "StorageError",
    "LocalStateStore",
    "InMemoryStateStore"
]
