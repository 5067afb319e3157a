"""
Briefrr Configuration
Rate limiting, relay and session timing settings with sensible defaults
"""

import os
from dataclasses import dataclass
from typing import Optional, Dict, Any
from pathlib import Path


@dataclass
class BriefrrConfig:
    """Briefrr configuration with sensible defaults"""

    # Upstream (Gemini)
    provider: str = "gemini"
    model: str = "gemini-2.5-flash-lite"
    api_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    temperature: float = 0.3
    max_output_tokens: int = 4096
    gemini_api_key: Optional[str] = None  # Loaded from environment when not provided

    # Rate limiting (free tier: 15 RPM, 1500 RPD)
    min_request_delay_ms: int = 4000      # 15 requests / 60 seconds
    initial_backoff_ms: int = 60000       # First 429
    max_backoff_ms: int = 300000          # 5 minutes
    storage_timeout_ms: int = 2000        # Fail-open bound on state reads

    # Session timing
    debounce_ms: int = 500
    countdown_tick_ms: int = 100          # 10 Hz countdown refresh

    # Content
    min_content_length: int = 50
    max_content_length: int = 50000

    # Relay
    channel_name: str = "briefrr-stream"

    # Storage
    storage_type: str = "local"  # local, memory
    local_storage_path: str = "./.briefrr"

    # Logging
    log_level: str = "INFO"

    def __post_init__(self):
        """Initialize and validate configuration"""
        if not self.gemini_api_key:
            self.gemini_api_key = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")

        if self.storage_type == "local":
            Path(self.local_storage_path).mkdir(parents=True, exist_ok=True)
        elif self.storage_type != "memory":
            raise ValueError(f"Unsupported storage type: {self.storage_type}")

        if self.provider != "gemini":
            raise ValueError(f"Unsupported provider: {self.provider}")

        if self.temperature < 0 or self.temperature > 2:
            raise ValueError("Temperature must be between 0 and 2")

        if self.max_output_tokens <= 0:
            raise ValueError("Max output tokens must be positive")

        if self.min_request_delay_ms < 0:
            raise ValueError("Minimum request delay cannot be negative")

        if self.initial_backoff_ms <= 0 or self.max_backoff_ms < self.initial_backoff_ms:
            raise ValueError("Backoff must be positive and max backoff >= initial backoff")

        if self.storage_timeout_ms <= 0:
            raise ValueError("Storage timeout must be positive")

        if self.debounce_ms < 0 or self.countdown_tick_ms <= 0:
            raise ValueError("Debounce must be non-negative and countdown tick positive")

        if self.min_content_length < 0 or self.max_content_length < self.min_content_length:
            raise ValueError("Content length bounds are invalid")

    @property
    def stream_endpoint(self) -> str:
        """Streaming generation endpoint for the configured model"""
        return f"{self.api_base_url}/models/{self.model}:streamGenerateContent"

    @property
    def model_endpoint(self) -> str:
        """Model metadata endpoint (used for key validation)"""
        return f"{self.api_base_url}/models/{self.model}"

    @property
    def state_file(self) -> Path:
        """Path of the persisted key-value state for local storage"""
        return Path(self.local_storage_path) / "state.json"

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'BriefrrConfig':
        """Create config from dictionary"""
        return cls(**config_dict)

    @classmethod
    def from_env(cls) -> 'BriefrrConfig':
        """Create config from environment variables"""
        config_dict = {}

        env_mapping = {
            'BRIEFRR_MODEL': 'model',
            'BRIEFRR_STORAGE': 'storage_type',
            'BRIEFRR_STORAGE_PATH': 'local_storage_path',
            'BRIEFRR_DEBOUNCE_MS': 'debounce_ms',
            'BRIEFRR_MIN_REQUEST_DELAY_MS': 'min_request_delay_ms',
            'BRIEFRR_LOG_LEVEL': 'log_level',
        }

        for env_var, config_field in env_mapping.items():
            value = os.getenv(env_var)
            if value is not None:
                if config_field in ['debounce_ms', 'min_request_delay_ms']:
                    config_dict[config_field] = int(value)
                else:
                    config_dict[config_field] = value

        return cls(**config_dict)

    def get_generation_config(self) -> Dict[str, Any]:
        """Fixed generation parameters sent with every request"""
        return {
            'temperature': self.temperature,
            'maxOutputTokens': self.max_output_tokens
        }
