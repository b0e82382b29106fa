from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from vod_intake.config import settings

_tracing_initialized = False


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name, settings.app_version)


def setup_tracing(app) -> bool:
    global _tracing_initialized
    if _tracing_initialized or not settings.tracing_enabled:
        return _tracing_initialized

    resource = Resource.create(
        {SERVICE_NAME: settings.tracing_service_name, SERVICE_VERSION: settings.app_version}
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=settings.otlp_insecure))
    )

    trace.set_tracer_provider(provider)
    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider, excluded_urls="health,metrics")
    _tracing_initialized = True
    return True
