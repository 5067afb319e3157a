"""
Local file system state storage backend
All values live in a single JSON document, rewritten atomically on each change
"""

import asyncio
import json
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional
import logging

from .base import BaseStateStore, StorageError

logger = logging.getLogger(__name__)


class LocalStateStore(BaseStateStore):
    """JSON file state backend"""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        logger.info(f"Initialized local state storage at: {self.path}")

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, 'r') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("State file must contain a JSON object")
        return data

    def _write_all(self, data: Dict[str, Any]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, 'w') as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)

    def _update(self, key: str, value: Any, remove: bool) -> None:
        with self._lock:
            data = self._read_all()
            if remove:
                if key not in data:
                    return
                data.pop(key)
            else:
                data[key] = value
            self._write_all(data)

    async def get(self, key: str) -> Optional[Any]:
        """Read a value from the state file"""
        try:
            data = await asyncio.get_running_loop().run_in_executor(None, self._read_all)
            return data.get(key)
        except Exception as e:
            logger.error(f"Failed to read {key} from {self.path}: {e}")
            raise StorageError(f"Failed to read state: {e}", key)

    async def set(self, key: str, value: Any) -> None:
        """Write a value to the state file"""
        try:
            await asyncio.get_running_loop().run_in_executor(
                None, self._update, key, value, False
            )
            logger.debug(f"Saved {key} to {self.path}")
        except Exception as e:
            logger.error(f"Failed to save {key} to {self.path}: {e}")
            raise StorageError(f"Failed to save state: {e}", key)

    async def remove(self, key: str) -> None:
        """Delete a value from the state file"""
        try:
            await asyncio.get_running_loop().run_in_executor(
                None, self._update, key, None, True
            )
        except Exception as e:
            logger.error(f"Failed to remove {key} from {self.path}: {e}")
            raise StorageError(f"Failed to remove state: {e}", key)

    def get_storage_stats(self) -> Dict[str, Any]:
        """Get storage statistics"""
        try:
            return {
                'backend': 'LocalStateStore',
                'path': str(self.path),
                'total_keys': len(self._read_all()),
                'features': ['local_storage', 'persistent']
            }
        except Exception as e:
            return {
                'backend': 'LocalStateStore',
                'error': str(e)
            }
