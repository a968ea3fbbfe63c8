"""
API endpoints for metrics exposition
"""

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from gateway_exporter.utils.errors import ExporterNotInitialized
from gateway_exporter.utils.logging import get_logger

logger = get_logger(__name__)

# Create API router
api_router = APIRouter()


@api_router.get("/metrics")
async def metrics(request: Request) -> Response:
    """
    Prometheus metrics endpoint
    Refreshes live gauges and returns the registry in Prometheus text format
    """
    exporter = request.app.state.exporter

    try:
        body, content_type = await exporter.collect()
    except ExporterNotInitialized:
        return JSONResponse(
            status_code=500,
            content={"message": "An unexpected error occurred"},
        )

    return Response(content=body, media_type=content_type)
