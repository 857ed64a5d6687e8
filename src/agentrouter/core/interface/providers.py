"""Provider names and the wire protocol each one speaks."""

from typing import Literal

from agentrouter.errors import TranslationError

WireProtocol = Literal["anthropic", "openai", "gemini"]

PROVIDER_PROTOCOLS: dict[str, WireProtocol] = {
    "anthropic": "anthropic",
    "openai": "openai",
    "openrouter": "openai",
    "zai": "openai",
    "ollama": "openai",
    "deepseek": "openai",
    "kimi": "openai",
    "gemini": "gemini",
    "google": "gemini",
    "vertex_ai": "gemini",
}


def normalize_provider(provider: str) -> WireProtocol:
    """Map a provider name to the wire protocol it speaks.

    Raises:
        TranslationError: If the provider is unknown.
    """
    protocol = PROVIDER_PROTOCOLS.get(provider.strip().lower())
    if protocol is None:
        msg = f"Unknown provider: {provider}"
        raise TranslationError(msg, "internal", provider)
    return protocol
