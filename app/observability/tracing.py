"""
Distributed Tracing with OpenTelemetry.

Traces requests through FastAPI and the SQLAlchemy engines, and wraps
each read batch in a span naming its operations.
"""

from collections.abc import Collection, Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode, Tracer

from app.config import settings
from app.exceptions import QueryError


def setup_tracing() -> None:
    """
    Configure OpenTelemetry tracing with OTLP export.

    Sets up a TracerProvider carrying the service resource and a batched
    OTLP exporter. No-op when tracing is disabled.
    """
    if not settings.tracing_enabled:
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": settings.api_version,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(resource=resource)
    otlp_exporter = OTLPSpanExporter(
        endpoint=settings.otlp_endpoint,
        insecure=settings.otlp_insecure,
    )
    provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

    trace.set_tracer_provider(provider)


def instrument_fastapi(app: Any) -> None:
    """
    Instrument FastAPI application for automatic tracing.

    Must be called after app creation.
    """
    if not settings.tracing_enabled:
        return

    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine: Any) -> None:
    """
    Instrument SQLAlchemy engine for automatic query tracing.

    Must be called for each database engine.
    """
    if not settings.tracing_enabled:
        return

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


@contextmanager
def read_batch_span(operations: Collection[str], tracer: Tracer | None = None) -> Iterator[Span]:
    """
    Span around one read batch.

    Carries the batch size and operation names. A QueryError leaving the
    block marks the span failed and names the operation that broke the batch.
    """
    tracer = tracer or trace.get_tracer("app.db.batch")
    with tracer.start_as_current_span(
        "dashboard.read_batch", record_exception=False, set_status_on_exception=False
    ) as span:
        span.set_attribute("dashboard.batch.size", len(operations))
        span.set_attribute("dashboard.batch.operations", list(operations))
        try:
            yield span
        except QueryError as e:
            span.set_attribute("dashboard.batch.failed_operation", e.operation)
            span.set_status(Status(StatusCode.ERROR, f"{e.operation} failed"))
            span.record_exception(e.cause)
            raise
