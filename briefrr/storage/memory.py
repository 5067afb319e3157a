"""
In-memory state storage backend for testing
"""

import copy
from datetime import datetime
from typing import Any, Dict, Optional
import logging

from .base import BaseStateStore

logger = logging.getLogger(__name__)


class InMemoryStateStore(BaseStateStore):
    """In-memory state backend for testing and development"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._values: Dict[str, Any] = dict(initial or {})
        self._created_at = datetime.now()
        logger.info("Initialized in-memory state storage")

    async def get(self, key: str) -> Optional[Any]:
        # Copy to avoid external modifications
        return copy.deepcopy(self._values.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._values[key] = copy.deepcopy(value)
        logger.debug(f"Set {key} in memory")

    async def remove(self, key: str) -> None:
        self._values.pop(key, None)

    def get_storage_stats(self) -> Dict[str, Any]:
        """Get storage statistics"""
        return {
            'backend': 'InMemoryStateStore',
            'total_keys': len(self._values),
            'created_at': self._created_at.isoformat(),
            'features': ['in_memory', 'testing']
        }

    def clear_all(self):
        """Clear all values (useful for testing)"""
        self._values.clear()
        logger.info("Cleared all state from memory")

    def snapshot(self) -> Dict[str, Any]:
        """Copy of all stored values"""
        return copy.deepcopy(self._values)
