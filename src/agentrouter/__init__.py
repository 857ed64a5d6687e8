"""AgentRouter — provider protocol translation for Anthropic, OpenAI and Gemini style APIs."""

from __future__ import annotations

__version__ = "0.1.0"
