"""Observability setup for OpenTelemetry, Prometheus metrics, and structured logging."""

import logging

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, generate_latest

from .config import settings

SERVICE_NAME = "booking-lifecycle-api"
SERVICE_VERSION = "1.0.0"

# Prometheus metrics
REGISTRY = CollectorRegistry()

BOOKINGS_CREATED = Counter(
    'bookings_created_total',
    'Total bookings created',
    ['reference_type'],
    registry=REGISTRY
)

DUPLICATE_BOOKINGS_REJECTED = Counter(
    'bookings_duplicate_rejected_total',
    'Booking requests rejected by the duplicate guard',
    ['layer'],
    registry=REGISTRY
)

BOOKINGS_CANCELLED = Counter(
    'bookings_cancelled_total',
    'Bookings cancelled, by whether the linked payment was still in flight',
    ['payment_in_flight'],
    registry=REGISTRY
)

BOOKING_TRANSITIONS = Counter(
    'booking_status_transitions_total',
    'Booking status transitions',
    ['from_status', 'to_status'],
    registry=REGISTRY
)

PAYMENT_TRANSITIONS = Counter(
    'payment_status_transitions_total',
    'Payment status transitions',
    ['from_status', 'to_status'],
    registry=REGISTRY
)

PAYMENT_MIRROR_FAILURES = Counter(
    'payment_status_mirror_failures_total',
    'Payment status changes that could not be mirrored onto the booking',
    registry=REGISTRY
)

ITINERARY_DESTINATIONS_ADDED = Counter(
    'itinerary_destinations_added_total',
    'Destinations appended to itineraries',
    registry=REGISTRY
)

ORDER_ASSIGNMENT_RETRIES = Counter(
    'itinerary_order_assignment_retries_total',
    'Itinerary destination inserts retried after an order conflict',
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def setup_tracing(app_name: str = SERVICE_NAME):
    """Setup OpenTelemetry tracing; spans are exported only when an OTLP endpoint is configured."""
    resource = Resource.create({
        "service.name": app_name,
        "service.version": SERVICE_VERSION,
        "environment": settings.environment,
    })

    provider = TracerProvider(resource=resource)
    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))
    trace.set_tracer_provider(provider)

    return trace.get_tracer(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine):
    """Instrument the async engine's sync core with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


class MetricsCollector:
    """Collector for lifecycle business metrics."""

    @staticmethod
    def record_booking_created(reference_type: str):
        BOOKINGS_CREATED.labels(reference_type=reference_type).inc()

    @staticmethod
    def record_duplicate_rejected(layer: str):
        """Record a duplicate-guard trip; layer is 'application' or 'storage'."""
        DUPLICATE_BOOKINGS_REJECTED.labels(layer=layer).inc()

    @staticmethod
    def record_booking_cancelled(payment_in_flight: bool):
        BOOKINGS_CANCELLED.labels(payment_in_flight=str(payment_in_flight).lower()).inc()

    @staticmethod
    def record_booking_transition(from_status: str, to_status: str):
        BOOKING_TRANSITIONS.labels(from_status=from_status, to_status=to_status).inc()

    @staticmethod
    def record_payment_transition(from_status: str, to_status: str):
        PAYMENT_TRANSITIONS.labels(from_status=from_status, to_status=to_status).inc()

    @staticmethod
    def record_mirror_failure():
        PAYMENT_MIRROR_FAILURES.inc()

    @staticmethod
    def record_destination_added():
        ITINERARY_DESTINATIONS_ADDED.inc()

    @staticmethod
    def record_order_retry():
        ORDER_ASSIGNMENT_RETRIES.inc()


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
