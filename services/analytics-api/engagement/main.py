"""
Engagement Analytics API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Initialise DB connection pool (TiDB) and create tables if not present
  3. Connect to Redis (aggregate summaries)
  4. Start Kafka producer (engagement event stream)
  5. Wire recorder + query services, selecting the range-query strategy
  6. Expose Prometheus /metrics endpoint
"""
import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from engagement.config import settings
from engagement.database import close_db, get_session_factory, init_db
from engagement.dependencies import build_services, set_services
from engagement.telemetry import setup_tracing, instrument_app
from engagement.clients.kafka_producer import init_kafka, publish_engagement_event, stop_kafka
from engagement.clients.redis_client import close_redis, get_redis, init_redis
from engagement.routers import analytics, events

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
setup_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of all external connections."""
    logger.info("Starting Engagement Analytics API (env=%s)", settings.environment)

    await init_db()
    await init_redis()
    publisher = None
    if settings.kafka_enabled:
        await init_kafka()
        publisher = publish_engagement_event

    set_services(
        await build_services(get_session_factory(), get_redis(), publisher=publisher)
    )

    logger.info("All services connected. API ready.")
    yield

    logger.info("Shutting down...")
    if settings.kafka_enabled:
        await stop_kafka()
    await close_redis()
    await close_db()


app = FastAPI(
    title="Engagement Analytics API",
    description=(
        "Records views, likes, comments and follows; serves per-item, "
        "per-profile and owner-level roll-ups to the creator dashboard."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(events.router, prefix="/events", tags=["Ingestion"])
app.include_router(analytics.router, prefix="/analytics", tags=["Analytics"])

# ── Prometheus metrics endpoint ────────────────────────────────────────────
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}
