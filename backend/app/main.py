"""FastAPI application entry point"""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.middleware import access_log_middleware, register_exception_handlers, setup_cors_middleware
from app.core.otel import initialize_otel, instrument_app, setup_otel_logging
from app.db.redis import get_redis_client
from app.db.session import engine, init_db

# Import routers
from app.api import cart, checkout, games, orders, shipping, webhooks

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    # Startup
    otel_initialized = initialize_otel()
    if otel_initialized:
        if setup_otel_logging():
            logger.info(f"OpenTelemetry fully initialized, exporting to {settings.OTEL_EXPORTER_OTLP_ENDPOINT}")
        else:
            logger.warning("OpenTelemetry metrics/traces initialized but logging setup failed")
    else:
        logger.info("OpenTelemetry not configured - running without distributed tracing")

    logger.info("Initializing database...")
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    logger.info("Testing Redis connection...")
    try:
        get_redis_client().ping()
        logger.info("Redis connection successful")
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        raise

    reconciliation = None
    if settings.RECONCILIATION_INTERVAL_SECONDS > 0:
        from app.tasks.reconciliation import reconciliation_task

        reconciliation = asyncio.create_task(reconciliation_task())
        logger.info(f"Reconciliation sweep started (every {settings.RECONCILIATION_INTERVAL_SECONDS}s)")

    yield

    # Shutdown
    logger.info("Shutting down...")
    if reconciliation is not None:
        reconciliation.cancel()


# Create FastAPI app
app = FastAPI(
    title="Caterpillar Ranch Storefront",
    description="Order settlement and game discount backend",
    version="1.0.0",
    lifespan=lifespan
)

instrument_app(app, engine)
setup_cors_middleware(app)
app.middleware("http")(access_log_middleware)
register_exception_handlers(app)

# Include routers
app.include_router(games.router)
app.include_router(cart.router)
app.include_router(checkout.router)
app.include_router(orders.router)
app.include_router(shipping.router)
app.include_router(webhooks.router)


# Prometheus metrics endpoint
@app.get("/metrics")
def metrics_endpoint():
    """Prometheus metrics endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Health check endpoint
@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}
