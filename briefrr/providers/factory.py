"""
Provider factory for creating upstream providers
"""

from typing import Optional

import httpx

from .base import BaseProvider
from .gemini import GeminiProvider
from ..core.config import BriefrrConfig


def create_provider(config: BriefrrConfig, client: Optional[httpx.AsyncClient] = None) -> BaseProvider:
    """
    Create upstream provider based on configuration

    Args:
        config: Briefrr configuration
        client: Optional shared HTTP client

    Returns:
        Configured provider instance

    Raises:
        ValueError: If provider is not supported
    """
    if config.provider == "gemini":
        return GeminiProvider(config, client=client)
    else:
        raise ValueError(f"Unsupported provider: {config.provider}")