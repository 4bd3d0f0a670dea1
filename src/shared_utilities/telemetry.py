"""
OpenTelemetry tracing for compile runs, repair iterations and batch execution.
"""

import functools
import os
import time
from collections.abc import Callable
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace as otel_trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

# The gRPC exporter is an optional extra
try:
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (  # type: ignore
        OTLPSpanExporter,
    )

    OTLP_AVAILABLE = True
except ImportError:
    OTLP_AVAILABLE = False


class TelemetryManager:
    """Manages the tracer provider and span helpers."""

    def __init__(self, service_name: str = "build-resurrection", enabled: bool = True):
        """
        Initialize telemetry manager.

        Args:
            service_name: Name of the service reported on every span
            enabled: Set False to turn every helper into a no-op
        """
        self.service_name = service_name
        self.tracer = None
        self.enabled = enabled

        if self.enabled:
            self._setup_telemetry()

    def _setup_telemetry(self) -> None:
        resource = Resource.create(
            {
                "service.name": self.service_name,
                "service.version": "0.1.0",
            }
        )
        provider = TracerProvider(resource=resource)

        if OTLP_AVAILABLE:
            endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
            if endpoint:
                provider.add_span_processor(
                    BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint))
                )

        self.tracer = provider.get_tracer(__name__)

    @contextmanager
    def trace_operation(
        self, operation_name: str, attributes: dict[str, Any] | None = None
    ):
        """
        Context manager for tracing operations.

        Args:
            operation_name: Name of the operation being traced
            attributes: Additional attributes to add to the span

        Yields:
            The current span, or None when tracing is disabled
        """
        if not self.enabled or not self.tracer:
            yield None
            return

        with self.tracer.start_as_current_span(operation_name) as span:
            for key, value in (attributes or {}).items():
                span.set_attribute(key, str(value))

            try:
                yield span
            except Exception as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                span.record_exception(e)
                raise

    def trace_function(
        self,
        operation_name: str | None = None,
        include_args: bool = False,
    ):
        """
        Decorator for tracing function calls.

        Args:
            operation_name: Custom operation name (defaults to module.function)
            include_args: Record positional and keyword arguments on the span
        """

        def decorator(func: Callable) -> Callable:
            if not self.enabled:
                return func

            @functools.wraps(func)
            def wrapper(*args, **kwargs):
                name = operation_name or f"{func.__module__}.{func.__name__}"

                with self.trace_operation(name) as span:
                    if span and include_args:
                        for i, arg in enumerate(args):
                            span.set_attribute(f"arg.{i}", str(arg)[:100])
                        for key, value in kwargs.items():
                            span.set_attribute(f"kwarg.{key}", str(value)[:100])

                    start_time = time.time()
                    result = func(*args, **kwargs)
                    if span:
                        span.set_attribute(
                            "duration_seconds", time.time() - start_time
                        )
                    return result

            return wrapper

        return decorator

    def add_event(
        self, span, event_name: str, attributes: dict[str, Any] | None = None
    ) -> None:
        """Add an event to a span if tracing is active."""
        if span and self.enabled:
            span.add_event(event_name, attributes or {})


_telemetry_manager: TelemetryManager | None = None


def get_telemetry_manager() -> TelemetryManager:
    """Get or create the global telemetry manager instance."""
    global _telemetry_manager
    if _telemetry_manager is None:
        enabled = os.getenv("RESURRECTION_TRACING", "true").lower() != "false"
        _telemetry_manager = TelemetryManager(enabled=enabled)
    return _telemetry_manager


def trace_operation(operation_name: str, attributes: dict[str, Any] | None = None):
    """Convenience wrapper around ``TelemetryManager.trace_operation``."""
    return get_telemetry_manager().trace_operation(operation_name, attributes)


def trace_function(operation_name: str | None = None, include_args: bool = False):
    """Convenience wrapper around ``TelemetryManager.trace_function``."""
    return get_telemetry_manager().trace_function(operation_name, include_args)
