"""Core configuration and utilities"""

from .config import BriefrrConfig

__all__ = ["BriefrrConfig"]
