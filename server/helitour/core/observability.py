"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, generate_latest

from .config import settings

SERVICE_NAME = "helitour-booking-api"
SERVICE_VERSION = "1.0.0"

# Prometheus metrics
REGISTRY = CollectorRegistry()

BOOKINGS_CREATED = Counter(
    'bookings_created_total',
    'Total bookings created',
    ['booking_type'],
    registry=REGISTRY
)

BOOKING_TRANSITIONS = Counter(
    'booking_status_transitions_total',
    'Booking status transitions applied',
    ['from_status', 'to_status', 'kind'],
    registry=REGISTRY
)

BOOKINGS_DELETED = Counter(
    'bookings_deleted_total',
    'Bookings hard-deleted by admins',
    registry=REGISTRY
)

REFUNDS_ISSUED = Counter(
    'booking_refunds_issued_total',
    'Refunds issued against bookings',
    ['refund_status'],
    registry=REGISTRY
)

REFUNDED_AMOUNT = Counter(
    'booking_refunded_minor_units_total',
    'Refunded amount in minor currency units',
    registry=REGISTRY
)

AUTHORIZATION_DENIALS = Counter(
    'booking_authorization_denials_total',
    'Booking requests rejected by the authorization policy',
    ['reason'],
    registry=REGISTRY
)

UPDATE_CONFLICTS = Counter(
    'booking_update_conflicts_total',
    'Conditional booking updates that lost a race and were re-evaluated',
    ['operation'],
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


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": SERVICE_VERSION,
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource())

    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))

    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def setup_metrics():
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        exporter = OTLPMetricExporter(endpoint=settings.otlp_endpoint)
        reader = PeriodicExportingMetricReader(exporter=exporter, export_interval_millis=60000)
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))

    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy():
    """Instrument SQLAlchemy with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument()


class MetricsCollector:
    """Collector for booking lifecycle metrics."""

    @staticmethod
    def record_booking_created(booking_type: str):
        BOOKINGS_CREATED.labels(booking_type=booking_type).inc()

    @staticmethod
    def record_transition(from_status: str, to_status: str, kind: str):
        BOOKING_TRANSITIONS.labels(from_status=from_status, to_status=to_status, kind=kind).inc()

    @staticmethod
    def record_booking_deleted():
        BOOKINGS_DELETED.inc()

    @staticmethod
    def record_refund(refund_status: str, amount: int):
        REFUNDS_ISSUED.labels(refund_status=refund_status).inc()
        REFUNDED_AMOUNT.inc(amount)

    @staticmethod
    def record_authorization_denied(reason: str):
        AUTHORIZATION_DENIALS.labels(reason=reason).inc()

    @staticmethod
    def record_update_conflict(operation: str):
        UPDATE_CONFLICTS.labels(operation=operation).inc()


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()


class StructuredLogger:
    """Structured logger with business context."""

    def __init__(self, name_or_logger):
        if isinstance(name_or_logger, str):
            self.logger = structlog.get_logger(name_or_logger)
        else:
            self.logger = name_or_logger

    def info(self, message: str, **kwargs):
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        self.logger.error(message, **kwargs)

    def debug(self, message: str, **kwargs):
        self.logger.debug(message, **kwargs)

    def with_context(self, **kwargs):
        """Add context to logger."""
        return StructuredLogger(self.logger.bind(**kwargs))


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)
