"""
Observability setup:
  - OpenTelemetry distributed tracing → Jaeger (via OTLP gRPC)
  - Prometheus metrics: recorder throughput, dedup hits, query latency

Both are initialised once at startup and injected into FastAPI via middleware.
"""
import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import Counter, Histogram

from engagement.config import settings

logger = logging.getLogger(__name__)

# ─────────────────────────── Prometheus Metrics ───────────────────────────
EVENTS_RECORDED_TOTAL = Counter(
    "engagement_events_recorded_total",
    "Engagement events written to the raw event log",
    ["kind"],  # view | like | comment | follow
)

VIEWS_DEDUPLICATED_TOTAL = Counter(
    "engagement_views_deduplicated_total",
    "Views suppressed because the same actor viewed the entity within the dedup window",
)

AGGREGATE_UPDATE_FAILURES_TOTAL = Counter(
    "aggregate_update_failures_total",
    "Aggregate summary updates that failed after the raw event was committed",
)

ROLLUP_CHILD_FAILURES_TOTAL = Counter(
    "rollup_child_failures_total",
    "Child summaries skipped while building an owner rollup",
)

RANGE_QUERY_FALLBACKS_TOTAL = Counter(
    "range_query_fallbacks_total",
    "Range queries answered by clipping rolled-up series after the primary strategy failed",
)

QUERY_LATENCY = Histogram(
    "analytics_query_latency_seconds",
    "Latency of dashboard analytics queries",
    ["query"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0],
)


# ─────────────────────────── OpenTelemetry Setup ──────────────────────────
def setup_tracing() -> None:
    """Configure the global OTel TracerProvider with OTLP/Jaeger export."""
    if not settings.otel_enabled:
        logger.info("OTel tracing disabled")
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(resource=resource)

    try:
        otlp_exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        logger.info(
            "OTel tracing configured → %s", settings.otel_exporter_otlp_endpoint
        )
    except Exception as exc:
        logger.warning("Could not connect to OTLP exporter: %s — traces disabled", exc)

    trace.set_tracer_provider(provider)

    # Auto-instrument popular libraries so their spans appear in traces
    RedisInstrumentor().instrument()
    SQLAlchemyInstrumentor().instrument()


def instrument_app(app) -> None:  # noqa: ANN001
    """Call after app is created to add FastAPI request spans."""
    if settings.otel_enabled:
        FastAPIInstrumentor.instrument_app(app)
