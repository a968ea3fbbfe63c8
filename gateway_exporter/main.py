"""
FastAPI application entry point
Metrics exposition for the gateway node
"""

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from gateway_exporter.api.endpoints import api_router
from gateway_exporter.services.exporter import PrometheusExporter, create_exporter
from gateway_exporter.services.node_stats import ProcessNodeStats
from gateway_exporter.utils.logging import setup_logging, get_logger
from gateway_exporter.config import settings

# Initialize logging
setup_logging()
logger = get_logger(__name__)


# ============================================================================
# Application Lifecycle Management
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events
    """
    exporter: PrometheusExporter = app.state.exporter

    # Startup
    logger.info(
        "application_starting",
        env=settings.app_env,
        role=settings.role.value,
        subsystem=settings.subsystem.value,
    )

    if not exporter.initialized:
        exporter.init()
    exporter.configure(settings.plugin_configs)

    logger.info("application_ready")

    yield

    # Shutdown
    logger.info("application_shutting_down")
    await exporter.close()
    logger.info("application_stopped")


# ============================================================================
# Application Factory
# ============================================================================


def create_app(exporter: Optional[PrometheusExporter] = None) -> FastAPI:
    """
    Create and configure FastAPI application
    """
    app = FastAPI(
        title="Gateway Metrics Exporter",
        description="Prometheus metrics for gateway traffic, upstream health and hybrid mode",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.exporter = exporter or create_exporter(settings)

    # ========================================================================
    # Connection Accounting
    # ========================================================================

    node_stats = app.state.exporter.node_stats
    if isinstance(node_stats, ProcessNodeStats):

        @app.middleware("http")
        async def account_requests(request: Request, call_next):
            node_stats.request_started()
            try:
                return await call_next(request)
            finally:
                node_stats.request_finished()

    # ========================================================================
    # Route Registration
    # ========================================================================

    app.include_router(api_router, tags=["metrics"])

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "service": "Gateway Metrics Exporter",
            "version": "1.0.0",
            "node_id": app.state.exporter.node_id,
            "initialized": app.state.exporter.initialized,
        }

    return app


# ============================================================================
# Application Instance
# ============================================================================

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "gateway_exporter.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
