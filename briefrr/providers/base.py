"""
Base provider interface for streaming generation
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncContextManager, AsyncIterator, Optional

from ..core.config import BriefrrConfig
from ..models.messages import GenerationRequest


@dataclass
class KeyValidation:
    """Result of validating an API key"""
    valid: bool
    error: Optional[str] = None


class GenerationStream(ABC):
    """An upstream response that has been accepted (2xx) and is being streamed"""

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[str]:
        """Iterate over incremental text chunks"""
        pass


class BaseProvider(ABC):
    """Base class for upstream language-model providers"""

    name: str = "base"

    def __init__(self, config: BriefrrConfig):
        self.config = config

    @abstractmethod
    def open_stream(self, request: GenerationRequest) -> AsyncContextManager[GenerationStream]:
        """
        Issue a streaming generation call

        Entering the context performs the request. It raises before any text
        is streamed when upstream rejects the call.

        Raises:
            UpstreamError: Non-2xx response, with status code and server message
            NetworkFailureError: Upstream could not be reached
        """
        pass

    @abstractmethod
    async def validate_api_key(self, api_key: str) -> KeyValidation:
        """
        Check a key without consuming generation quota

        Returns:
            KeyValidation with error INVALID_KEY, RATE_LIMITED, NETWORK_ERROR
            or a server message when invalid
        """
        pass

    async def aclose(self) -> None:
        """Release network resources"""
        pass
