"""Tool schema translation — re-nest canonical tools into each provider's shape.

| Feature     | Anthropic    | OpenAI                | Gemini                    |
|-------------|--------------|-----------------------|---------------------------|
| Schema key  | input_schema | parameters            | parameters                |
| Wrapper     | none         | {type, function: {}}  | one {functionDeclarations} |

Translation never summarizes: name, description, properties and required
survive unchanged in both directions.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from agentrouter.core.interface.models import Tool, ToolInputSchema
from agentrouter.core.interface.providers import normalize_provider
from agentrouter.errors import TranslationError

ToolLike = Tool | Mapping[str, Any]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_tool(tool: ToolLike | None, index: int) -> Tool:
    """Return *tool* as a :class:`Tool`, raising if it cannot be sent to a provider.

    Raises:
        TranslationError: Naming the offending index (and tool, when named).
    """
    if tool is None:
        raise TranslationError(f"Tool at index {index} is null", "internal", "provider", index=index)

    if not isinstance(tool, Tool):
        try:
            tool = Tool.model_validate(tool)
        except ValidationError as exc:
            raise TranslationError(
                f"Tool at index {index} is not a valid tool definition",
                "internal",
                "provider",
                index=index,
                cause=exc,
            ) from exc

    if not tool.name:
        raise TranslationError(
            f"Tool at index {index} is missing a valid name", "internal", "provider", index=index
        )
    if not tool.description:
        raise TranslationError(
            f'Tool "{tool.name}" at index {index} is missing a valid description',
            "internal",
            "provider",
            index=index,
        )
    if tool.input_schema.type != "object":
        raise TranslationError(
            f'Tool "{tool.name}" at index {index} has invalid input_schema type (expected "object")',
            "internal",
            "provider",
            index=index,
        )
    if tool.input_schema.properties is None:
        raise TranslationError(
            f'Tool "{tool.name}" at index {index} is missing input_schema.properties',
            "internal",
            "provider",
            index=index,
        )
    return tool


def _schema(tool: Tool) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": tool.input_schema.properties}
    if tool.input_schema.required is not None:
        schema["required"] = list(tool.input_schema.required)
    return schema


def _declaration(tool: Tool) -> dict[str, Any]:
    return {"name": tool.name, "description": tool.description, "parameters": _schema(tool)}


# ---------------------------------------------------------------------------
# Canonical -> provider
# ---------------------------------------------------------------------------


def to_anthropic_tools(tools: Sequence[ToolLike] | None) -> list[dict[str, Any]]:
    """Flat list with an ``input_schema`` key — a validated pass-through."""
    result: list[dict[str, Any]] = []
    for index, raw in enumerate(tools or []):
        tool = validate_tool(raw, index)
        result.append(
            {"name": tool.name, "description": tool.description, "input_schema": _schema(tool)}
        )
    return result


def to_openai_tools(tools: Sequence[ToolLike] | None) -> list[dict[str, Any]]:
    """Each tool wrapped as ``{"type": "function", "function": {...}}``."""
    return [{"type": "function", "function": decl} for decl in to_openai_functions(tools)]


def to_openai_functions(tools: Sequence[ToolLike] | None) -> list[dict[str, Any]]:
    """Bare function definitions, for OpenAI-compatible APIs that skip the wrapper."""
    return [_declaration(validate_tool(raw, index)) for index, raw in enumerate(tools or [])]


def to_gemini_tools(tools: Sequence[ToolLike] | None) -> dict[str, Any]:
    """ONE object holding every declaration — not one wrapper per tool."""
    declarations = [_declaration(validate_tool(raw, index)) for index, raw in enumerate(tools or [])]
    return {"functionDeclarations": declarations}


def to_gemini_tools_array(tools: Sequence[ToolLike] | None) -> list[dict[str, Any]]:
    """The ``tools`` request field: a one-element list around :func:`to_gemini_tools`."""
    if not tools:
        return []
    return [to_gemini_tools(tools)]


# ---------------------------------------------------------------------------
# Provider -> canonical
# ---------------------------------------------------------------------------


def _from_declaration(decl: Mapping[str, Any], schema_key: str) -> Tool:
    schema = decl.get(schema_key) or {}
    return Tool(
        name=decl["name"],
        description=decl.get("description") or "",
        input_schema=ToolInputSchema(
            type="object",
            properties=dict(schema.get("properties") or {}),
            required=list(schema["required"]) if schema.get("required") is not None else None,
        ),
    )


def _require_name(decl: Any, message: str, provider: str, index: int) -> None:
    if not isinstance(decl, Mapping) or not isinstance(decl.get("name"), str) or not decl["name"]:
        raise TranslationError(message, provider, "internal", index=index)


def from_anthropic_tools(tools: Sequence[Mapping[str, Any]] | None) -> list[Tool]:
    result: list[Tool] = []
    for index, tool in enumerate(tools or []):
        _require_name(tool, f"Anthropic tool at index {index} is missing a valid name", "anthropic", index)
        result.append(_from_declaration(tool, "input_schema"))
    return result


def from_openai_tools(tools: Sequence[Mapping[str, Any]] | None) -> list[Tool]:
    result: list[Tool] = []
    for index, tool in enumerate(tools or []):
        if tool.get("type") != "function" or not isinstance(tool.get("function"), Mapping):
            raise TranslationError(
                f"OpenAI tool at index {index} is not a function tool or is missing function definition",
                "openai",
                "internal",
                index=index,
            )
        func = tool["function"]
        _require_name(func, f"OpenAI tool at index {index} is missing a valid function name", "openai", index)
        result.append(_from_declaration(func, "parameters"))
    return result


def from_gemini_tools(
    payload: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None,
) -> list[Tool]:
    """Accepts the single wrapper object or the request-field list of wrappers."""
    if not payload:
        return []
    wrappers = [payload] if isinstance(payload, Mapping) else list(payload)

    declarations: list[Any] = []
    for wrapper in wrappers:
        declarations.extend(wrapper.get("functionDeclarations") or [])

    result: list[Tool] = []
    for index, decl in enumerate(declarations):
        _require_name(decl, f"Gemini function declaration at index {index} is missing a valid name", "gemini", index)
        result.append(_from_declaration(decl, "parameters"))
    return result


# ---------------------------------------------------------------------------
# Dispatch by provider name
# ---------------------------------------------------------------------------


def to_provider_tools(tools: Sequence[ToolLike] | None, provider: str) -> Any:
    """Translate canonical tools for *provider*.

    Returns a list for Anthropic/OpenAI and a single wrapper object for
    Gemini; callers must not assume list-per-tool parity.
    """
    protocol = normalize_provider(provider)
    if protocol == "anthropic":
        return to_anthropic_tools(tools)
    if protocol == "openai":
        return to_openai_tools(tools)
    return to_gemini_tools(tools)


def from_provider_tools(payload: Any, provider: str) -> list[Tool]:
    """Inverse of :func:`to_provider_tools`."""
    protocol = normalize_provider(provider)
    if protocol == "anthropic":
        return from_anthropic_tools(payload)
    if protocol == "openai":
        return from_openai_tools(payload)
    return from_gemini_tools(payload)
