"""Upstream language-model providers for Briefrr"""

from .base import BaseProvider, GenerationStream, KeyValidation
from .gemini import GeminiProvider
from .factory import create_provider
from .sse import SSEFrameDecoder, iter_sse_text

__all__ = [
    "BaseProvider",
    "GenerationStream",
    "KeyValidation",
    "GeminiProvider",
    "create_provider",
    "SSEFrameDecoder",
    "iter_sse_text"
]
