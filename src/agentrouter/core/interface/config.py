"""Model configuration — provider, model name, credentials, sampling defaults.

Typical usage::

    config = load_model_config(Path("models/claude.yaml"))
    async with ModelClient(config) as client:
        message = await client.generate([Message.user("Hi")])
"""

from __future__ import annotations

import json
import os
from pathlib import Path  # noqa: TC003
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from agentrouter.errors import ConfigurationError


class ModelConfig(BaseModel):
    """Configuration for a specific model/provider combination.

    The ``model`` field uses the ``provider/model_name`` convention
    (e.g. ``openai/gpt-4o``, ``anthropic/claude-sonnet-4-5``). A bare name
    is treated as an OpenAI model.
    """

    model: str
    api_key: str | None = None
    api_key_env: str | None = None
    api_base: str | None = None
    timeout: float = 60.0
    max_tokens: int | None = None
    temperature: float | None = None
    headers: dict[str, str] = Field(default_factory=lambda: dict[str, str]())
    extra: dict[str, Any] = Field(default_factory=lambda: dict[str, Any]())

    @property
    def provider(self) -> str:
        """Extract the provider prefix from the model string."""
        if "/" in self.model:
            return self.model.split("/", 1)[0]
        return "openai"

    @property
    def model_name(self) -> str:
        """The model string without its provider prefix."""
        if "/" in self.model:
            return self.model.split("/", 1)[1]
        return self.model

    @property
    def resolved_api_key(self) -> str | None:
        """``api_key``, else the value of the ``api_key_env`` variable."""
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return None


def parse_model_config(raw: str, *, format: str = "yaml") -> ModelConfig:
    """Parse a YAML or JSON document into a :class:`ModelConfig`.

    Raises:
        ConfigurationError: If the document is malformed or fails validation.
    """
    try:
        data = json.loads(raw) if format == "json" else yaml.safe_load(raw)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        msg = f"Could not parse model config: {exc}"
        raise ConfigurationError(msg, cause=exc) from exc

    if not isinstance(data, dict):
        msg = "Model config must be a mapping"
        raise ConfigurationError(msg)

    try:
        return ModelConfig.model_validate(data)
    except ValidationError as exc:
        msg = f"Invalid model config: {exc}"
        raise ConfigurationError(msg, cause=exc) from exc


def load_model_config(path: Path) -> ModelConfig:
    """Load a model config file; ``.json`` is parsed as JSON, anything else as YAML."""
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Could not read model config {path}: {exc}"
        raise ConfigurationError(msg, cause=exc) from exc
    fmt = "json" if path.suffix == ".json" else "yaml"
    return parse_model_config(raw, format=fmt)
