"""
Google Gemini REST provider
Streams responses from streamGenerateContent using server-sent events
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from .base import BaseProvider, GenerationStream, KeyValidation
from .sse import iter_sse_text
from ..core.config import BriefrrConfig
from ..exceptions import NetworkFailureError, UpstreamError
from ..models.messages import GenerationRequest, INVALID_KEY, RATE_LIMITED, NETWORK_ERROR

logger = logging.getLogger(__name__)

VALIDATION_TIMEOUT = 10.0


class GeminiGenerationStream(GenerationStream):
    """Text chunks of an accepted Gemini streaming response"""

    def __init__(self, response: httpx.Response):
        self.response = response

    async def __aiter__(self) -> AsyncIterator[str]:
        try:
            async for chunk in iter_sse_text(self.response.aiter_bytes()):
                yield chunk
        except httpx.HTTPError as e:
            logger.error(f"Gemini stream interrupted: {e}")
            raise NetworkFailureError(f"NetworkError: {e}") from e


class GeminiProvider(BaseProvider):
    """Gemini provider for streaming generation and key validation"""

    name = "gemini"

    def __init__(self, config: BriefrrConfig, client: Optional[httpx.AsyncClient] = None):
        """
        Args:
            config: Briefrr configuration (model, endpoint, generation settings)
            client: Shared HTTP client; a short-lived one is created per call if None
        """
        super().__init__(config)
        self._client = client

    def build_request_body(self, request: GenerationRequest) -> Dict[str, Any]:
        """System instruction + single-turn prompt + fixed generation parameters"""
        return {
            "system_instruction": {
                "parts": [{"text": request.system_prompt}]
            },
            "contents": [{
                "parts": [{"text": request.prompt}]
            }],
            "generationConfig": self.config.get_generation_config()
        }

    @asynccontextmanager
    async def open_stream(self, request: GenerationRequest) -> AsyncIterator[GeminiGenerationStream]:
        """POST the generation request and yield the accepted stream"""
        client = self._client or httpx.AsyncClient(timeout=None)
        try:
            logger.info(f"Requesting stream from {self.config.model}")
            async with client.stream(
                "POST",
                self.config.stream_endpoint,
                params={"alt": "sse", "key": request.credential},
                json=self.build_request_body(request),
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise UpstreamError(
                        self._error_message(response),
                        status_code=response.status_code
                    )
                yield GeminiGenerationStream(response)
        except httpx.HTTPError as e:
            logger.error(f"Gemini request failed: {e}")
            raise NetworkFailureError(f"Failed to fetch: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()

    async def validate_api_key(self, api_key: str) -> KeyValidation:
        """Fetch model metadata with the key (no generation tokens, but counts toward RPM/RPD)"""
        client = self._client or httpx.AsyncClient(timeout=VALIDATION_TIMEOUT)
        try:
            response = await client.get(self.config.model_endpoint, params={"key": api_key})
        except httpx.HTTPError as e:
            logger.error(f"Key validation network error: {e}")
            return KeyValidation(valid=False, error=NETWORK_ERROR)
        finally:
            if self._client is None:
                await client.aclose()

        if response.is_success:
            return KeyValidation(valid=True)

        if response.status_code == 429:
            return KeyValidation(valid=False, error=RATE_LIMITED)
        if response.status_code in (400, 403):
            return KeyValidation(valid=False, error=INVALID_KEY)
        return KeyValidation(valid=False, error=self._error_message(response))

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Server-provided error message, or a generic one"""
        default = f"API error ({response.status_code})"
        try:
            body = response.json()
        except ValueError:
            return default
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            return body["error"].get("message") or default
        return default
