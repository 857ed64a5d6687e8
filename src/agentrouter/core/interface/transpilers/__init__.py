"""Provider-specific transpiler implementations."""

from agentrouter.core.interface.transpilers.anthropic import AnthropicTranspiler
from agentrouter.core.interface.transpilers.gemini import GeminiTranspiler
from agentrouter.core.interface.transpilers.openai import OpenAITranspiler

__all__ = ["AnthropicTranspiler", "GeminiTranspiler", "OpenAITranspiler"]
