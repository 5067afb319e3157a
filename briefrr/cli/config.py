"""
Global configuration manager for the Briefrr CLI
Handles model preference, default mode and where persisted state lives
"""

import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass, asdict, fields

from ..core.config import BriefrrConfig
from ..models.session import Mode

logger = logging.getLogger(__name__)

MODELS = [
    "gemini-2.5-flash-lite",
    "gemini-2.5-flash",
    "gemini-2.0-flash",
]


@dataclass
class CLIConfig:
    """CLI configuration stored globally in ~/.briefrr/"""

    model: str = "gemini-2.5-flash-lite"
    default_mode: str = Mode.BRIEF.value
    log_level: str = "WARNING"

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for JSON serialization"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CLIConfig':
        """Create config from dictionary, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


class ConfigManager:
    """Manages global Briefrr CLI configuration"""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize config manager with global config directory"""
        self.config_dir = Path(config_dir) if config_dir else Path.home() / ".briefrr"
        self.config_file = self.config_dir / "config.json"

        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.config = self.load_config()

    def load_config(self) -> CLIConfig:
        """Load configuration from file or create default"""
        if not self.config_file.exists():
            return CLIConfig()
        try:
            with open(self.config_file, 'r') as f:
                return CLIConfig.from_dict(json.load(f))
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load config, using defaults: {e}")
            return CLIConfig()

    def save_config(self):
        """Save current configuration to file"""
        with open(self.config_file, 'w') as f:
            json.dump(self.config.to_dict(), f, indent=2)

    def get_default_mode(self) -> Mode:
        try:
            return Mode(self.config.default_mode)
        except ValueError:
            return Mode.BRIEF

    def set_default_mode(self, mode: Mode):
        self.config.default_mode = Mode(mode).value
        self.save_config()

    def set_model(self, model: str):
        """Update model configuration"""
        self.config.model = model
        self.save_config()

    def build_briefrr_config(self, **overrides) -> BriefrrConfig:
        """Library configuration with state persisted next to the CLI config"""
        values = {
            "model": self.config.model,
            "storage_type": "local",
            "local_storage_path": str(self.config_dir),
            "log_level": self.config.log_level,
        }
        values.update(overrides)
        return BriefrrConfig(**values)


_config_manager = None


def get_config_manager() -> ConfigManager:
    """Get or create the global config manager instance"""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager
