"""
OpenTelemetry Configuration

Sets up distributed tracing and structured logging for the ReliefNet
credibility and allocation engine.
"""

import json
import os
import logging
from datetime import datetime
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter


SERVICE_NAME = 'reliefnet-engine'

logger = logging.getLogger(__name__)


def sampler_for(environment: str) -> TraceIdRatioBased:
    """Environment-specific trace sampling."""
    if environment == 'production':
        return TraceIdRatioBased(0.1)  # 10% sampling in production
    if environment == 'staging':
        return TraceIdRatioBased(0.5)  # 50% sampling in staging
    return TraceIdRatioBased(1.0)  # 100% sampling in development


def setup_observability() -> bool:
    """
    Initialize OpenTelemetry tracing and structured logging from environment.

    Returns:
        True when a tracer provider was installed
    """
    environment = os.getenv('ENVIRONMENT', 'development')
    otel_enabled = os.getenv('OTEL_ENABLED', 'true').lower() == 'true'
    service_version = os.getenv('SERVICE_VERSION', '1.0.0')

    setup_structured_logging(environment)

    if not otel_enabled:
        return False

    resource = Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": service_version,
        "deployment.environment": environment
    })

    tracer_provider = TracerProvider(
        sampler=sampler_for(environment),
        resource=resource
    )

    otlp_endpoint = os.getenv('OTEL_EXPORTER_OTLP_ENDPOINT')

    if environment == 'production':
        # Production: Export to OTLP collector only
        if otlp_endpoint:
            otlp_exporter = OTLPSpanExporter(
                endpoint=otlp_endpoint,
                headers={"Authorization": f"Bearer {os.getenv('OTEL_API_KEY', '')}"}
            )
            tracer_provider.add_span_processor(
                BatchSpanProcessor(otlp_exporter, max_export_batch_size=512)
            )
        else:
            logger.warning("OTEL_EXPORTER_OTLP_ENDPOINT not set, traces will not be exported")

    else:
        if environment == 'development':
            tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

        if otlp_endpoint:
            try:
                otlp_exporter = OTLPSpanExporter(endpoint=otlp_endpoint)
                tracer_provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
            except Exception as e:
                logger.warning(f"OTLP exporter unavailable at {otlp_endpoint}: {e}")

    trace.set_tracer_provider(tracer_provider)
    logger.info(f"Tracing enabled for {SERVICE_NAME} ({environment})")
    return True


class StructuredFormatter(logging.Formatter):
    """Render log records as single-line JSON with trace correlation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.utcfromtimestamp(record.created).isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage()
        }

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            entry["trace_id"] = format(span_context.trace_id, '032x')
            entry["span_id"] = format(span_context.span_id, '016x')

        extra_fields = getattr(record, 'extra_fields', None)
        if extra_fields:
            entry.update(extra_fields)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_structured_logging(environment: str):
    """Configure structured JSON logging with trace correlation."""
    log_level = {
        'production': logging.WARNING,
        'staging': logging.INFO,
        'development': logging.DEBUG
    }.get(environment, logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())

    logging.basicConfig(
        level=log_level,
        handlers=[handler],
        force=True
    )

    # Environment-specific logger configuration
    if environment == 'production':
        # Production: Reduce noise, focus on errors and allocation events
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('pymongo').setLevel(logging.WARNING)
        logging.getLogger('pika').setLevel(logging.ERROR)
    else:
        logging.getLogger('pika').setLevel(logging.WARNING)
        logging.getLogger('pymongo').setLevel(logging.INFO)
