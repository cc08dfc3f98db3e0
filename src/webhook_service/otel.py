"""OpenTelemetry instrumentation for webhook-service.

Activated only when ``otel_exporter_endpoint`` is set in settings. Installs a
TracerProvider with the OTLP HTTP exporter and auto-instruments the aiohttp
server. ``get_tracer`` hands out tracers for manual spans (the delivery
worker opens one per delivery attempt).
"""
from __future__ import annotations

import structlog
from aiohttp import web
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.aiohttp_server import AioHttpServerInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from webhook_service.settings import settings

logger = structlog.get_logger(__name__)

_provider: TracerProvider | None = None


def setup_otel(app: web.Application) -> None:
    global _provider

    endpoint = settings.otel_exporter_endpoint
    if not endpoint:
        logger.info("otel_exporter_endpoint not set, tracing disabled")
        return
    if _provider is not None:
        return

    _provider = TracerProvider(resource=Resource.create({SERVICE_NAME: settings.app_name}))
    _provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{str(endpoint).rstrip('/')}/v1/traces"))
    )
    trace.set_tracer_provider(_provider)
    AioHttpServerInstrumentor().instrument()
    logger.info("OpenTelemetry tracing enabled", endpoint=str(endpoint))


async def shutdown_otel(_app: web.Application) -> None:
    """Flush pending spans."""
    global _provider
    if _provider is not None:
        _provider.shutdown()
        _provider = None


def get_tracer(name: str = __name__) -> trace.Tracer:
    """Tracer for manual spans; a no-op tracer while tracing is disabled."""
    return trace.get_tracer(name)
