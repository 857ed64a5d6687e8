"""OpenTelemetry tracing helpers for provider calls.

Only the OpenTelemetry API is a hard dependency: until an SDK tracer
provider is installed every span is a no-op. Call
:func:`configure_telemetry` once at startup to export spans (requires the
``otel`` extra: ``pip install agentrouter[otel]``).

Usage::

    from agentrouter.utils.telemetry import ATTR_PROVIDER, get_tracer

    _tracer = get_tracer(__name__)

    with _tracer.start_as_current_span("model.generate") as span:
        span.set_attribute(ATTR_PROVIDER, "anthropic")
"""

from __future__ import annotations

from typing import Any

from opentelemetry import trace

# ---------------------------------------------------------------------------
# Span attribute keys
# ---------------------------------------------------------------------------

ATTR_PROVIDER = "agentrouter.provider"
ATTR_PROTOCOL = "agentrouter.protocol"
ATTR_MODEL = "agentrouter.model"
ATTR_STREAM = "agentrouter.stream"
ATTR_CHUNK_COUNT = "agentrouter.stream.chunks"
ATTR_STOP_REASON = "agentrouter.stop_reason"
ATTR_ERROR_KIND = "agentrouter.error.kind"
ATTR_STATUS_CODE = "agentrouter.http.status_code"
ATTR_TOKENS_INPUT = "agentrouter.tokens.input"
ATTR_TOKENS_OUTPUT = "agentrouter.tokens.output"

_INSTRUMENTATION_NAME = "agentrouter"

# Usage keys per wire protocol, as (input, output).
_USAGE_KEYS = (
    ("input_tokens", "output_tokens"),
    ("prompt_tokens", "completion_tokens"),
    ("promptTokenCount", "candidatesTokenCount"),
)


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return a tracer for *name*; a no-op tracer when no SDK is configured."""
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def record_usage(span: trace.Span, usage: dict[str, Any] | None) -> None:
    """Set token-count attributes from any provider's usage payload."""
    if not usage:
        return
    for input_key, output_key in _USAGE_KEYS:
        if input_key in usage or output_key in usage:
            span.set_attribute(ATTR_TOKENS_INPUT, int(usage.get(input_key) or 0))
            span.set_attribute(ATTR_TOKENS_OUTPUT, int(usage.get(output_key) or 0))
            return


def configure_telemetry(
    *,
    service_name: str = "agentrouter",
    export_to_console: bool = True,
    otlp_endpoint: str | None = None,
) -> None:
    """Install an SDK tracer provider (requires ``agentrouter[otel]``).

    Parameters
    ----------
    service_name:
        The ``service.name`` resource attribute.
    export_to_console:
        If ``True``, export spans as JSON to stdout.
    otlp_endpoint:
        If set, export spans via OTLP/gRPC to this endpoint.

    Raises
    ------
    ImportError
        If the ``opentelemetry-sdk`` package is not installed.
    """
    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
        from opentelemetry.sdk.trace.export import (  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
            BatchSpanProcessor,
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )
    except ImportError as exc:
        msg = (
            "opentelemetry-sdk is required for configure_telemetry(). "
            "Install it with: pip install agentrouter[otel]"
        )
        raise ImportError(msg) from exc

    provider: Any = TracerProvider(resource=Resource.create({"service.name": service_name}))

    if export_to_console:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    if otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
        except ImportError as exc:
            msg = (
                "opentelemetry-exporter-otlp is required for OTLP export. "
                "Install it with: pip install agentrouter[otel]"
            )
            raise ImportError(msg) from exc
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))

    trace.set_tracer_provider(provider)
