"""FastAPI application factory"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from collections_desk.api.errors import register_exception_handlers
from collections_desk.api.middleware import RequestIDMiddleware, MetricsMiddleware
from collections_desk.api.v1 import cases, dashboard
from collections_desk.infrastructure.observability.logging import setup_logging
from collections_desk.infrastructure.rules.catalog import get_rule_catalog
from collections_desk.config import settings

# Setup structured logging
setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # A missing or malformed rules file must stop startup
    get_rule_catalog().load()
    yield


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Collections Desk",
        description="Delinquent case assignment and reconciliation service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(cases.router, prefix="/v1", tags=["cases"])
    app.include_router(dashboard.router, prefix="/v1", tags=["dashboard"])

    return app


app = create_app()
