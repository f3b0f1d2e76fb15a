"""OpenTelemetry configuration for distributed tracing.

Spans are exported over OTLP (gRPC) to a collector.
"""

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased


def configure_tracing(
    service_name: str,
    service_version: str,
    otlp_endpoint: str,
    sampling_rate: float = 0.1,
) -> TracerProvider:
    """Configure OpenTelemetry tracing for the service.

    Args:
        service_name: Name of the service
        service_version: Version reported on the resource
        otlp_endpoint: OTLP collector endpoint
        sampling_rate: Sampling rate (0.0 to 1.0)

    Returns:
        Configured TracerProvider
    """
    resource = Resource(
        attributes={
            "service.name": service_name,
            "service.namespace": "pubportal",
            "service.version": service_version,
        }
    )

    provider = TracerProvider(resource=resource, sampler=TraceIdRatioBased(sampling_rate))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)))
    trace.set_tracer_provider(provider)

    return provider


def instrument_app(app: FastAPI) -> None:
    """Attach the FastAPI auto-instrumentation."""
    FastAPIInstrumentor.instrument_app(app)


def shutdown_tracing() -> None:
    provider = trace.get_tracer_provider()
    if isinstance(provider, TracerProvider):
        provider.shutdown()
