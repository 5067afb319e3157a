"""Prompt construction for Briefrr modes"""

from .prompts import get_system_prompt, build_user_prompt

__all__ = ["get_system_prompt", "build_user_prompt"]
