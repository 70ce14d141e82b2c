"""Prompt builders for the portfolio assistant."""

from .portfolio_prompt import HISTORY_WINDOW, SYSTEM_PROMPT, build_messages

__all__ = ["HISTORY_WINDOW", "SYSTEM_PROMPT", "build_messages"]
