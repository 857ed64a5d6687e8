"""Provider protocol translation — canonical model, transpilers, streaming and errors."""

from agentrouter.core.interface.client import ModelClient
from agentrouter.core.interface.config import ModelConfig, load_model_config, parse_model_config
from agentrouter.core.interface.error_translator import (
    get_retry_delay,
    is_retryable_error,
    translate_provider_error,
    with_error_translation,
)
from agentrouter.core.interface.models import (
    ContentBlock,
    ContentBlockDelta,
    ContentBlockStart,
    InputJsonDelta,
    Message,
    MessageStop,
    StreamChunk,
    TextBlock,
    TextDelta,
    Tool,
    ToolInputSchema,
    ToolResultBlock,
    ToolUseBlock,
)
from agentrouter.core.interface.providers import normalize_provider
from agentrouter.core.interface.streaming import StreamAccumulator, normalize_stream
from agentrouter.core.interface.tools import from_provider_tools, to_provider_tools
from agentrouter.core.interface.transpiler import Transpiler, get_transpiler

__all__ = [
    "ContentBlock",
    "ContentBlockDelta",
    "ContentBlockStart",
    "InputJsonDelta",
    "Message",
    "MessageStop",
    "ModelClient",
    "ModelConfig",
    "StreamAccumulator",
    "StreamChunk",
    "TextBlock",
    "TextDelta",
    "Tool",
    "ToolInputSchema",
    "ToolResultBlock",
    "ToolUseBlock",
    "Transpiler",
    "from_provider_tools",
    "get_retry_delay",
    "get_transpiler",
    "is_retryable_error",
    "load_model_config",
    "normalize_provider",
    "normalize_stream",
    "parse_model_config",
    "to_provider_tools",
    "translate_provider_error",
    "with_error_translation",
]
