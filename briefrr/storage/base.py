"""
Base storage interface for persisted key-value state
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


# Persisted keys
API_KEY = "geminiApiKey"
ONBOARDING_COMPLETE = "onboardingComplete"
LAST_REQUEST_TIME = "lastRequestTime"
RETRY_BACKOFF = "retryBackoff"


class BaseStateStore(ABC):
    """
    Base class for state storage backends

    Durable named values with async get/set/remove. No transactions,
    last write wins.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """
        Read a value

        Args:
            key: Name of the value

        Returns:
            Stored value or None if absent
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """
        Write a value

        Args:
            key: Name of the value
            value: JSON-serializable value
        """
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        """
        Delete a value (no-op when absent)

        Args:
            key: Name of the value
        """
        pass

    # API key

    async def get_api_key(self) -> Optional[str]:
        """Stored Gemini API key or None"""
        return (await self.get(API_KEY)) or None

    async def set_api_key(self, api_key: str) -> None:
        await self.set(API_KEY, api_key)

    async def remove_api_key(self) -> None:
        await self.remove(API_KEY)

    # Onboarding

    async def is_onboarded(self) -> bool:
        return (await self.get(ONBOARDING_COMPLETE)) is True

    async def set_onboarded(self, complete: bool = True) -> None:
        await self.set(ONBOARDING_COMPLETE, complete)

    # Rate limiting

    async def get_last_request_time(self) -> Optional[int]:
        """Timestamp of the last upstream request in epoch ms, or None"""
        return (await self.get(LAST_REQUEST_TIME)) or None

    async def set_last_request_time(self, timestamp: int) -> None:
        await self.set(LAST_REQUEST_TIME, timestamp)

    async def get_retry_backoff(self) -> int:
        """Current backoff delay in ms, 0 when inactive"""
        return (await self.get(RETRY_BACKOFF)) or 0

    async def set_retry_backoff(self, delay: int) -> None:
        await self.set(RETRY_BACKOFF, delay)

    async def clear_retry_backoff(self) -> None:
        await self.remove(RETRY_BACKOFF)

    def get_storage_stats(self) -> Dict[str, Any]:
        """
        Get storage statistics
        Default implementation - subclasses can override
        """
        return {
            'backend': self.__class__.__name__,
            'features': ['basic_storage']
        }


class StorageError(Exception):
    """Exception raised by storage operations"""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message)
