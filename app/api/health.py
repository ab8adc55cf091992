"""
Health check endpoint.
"""

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel
from datetime import datetime

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: datetime
    scanner_running: bool
    failure_count: int
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, response: Response):
    """
    Health check endpoint.

    Verifies:
    - Hot folder scanner is running
    - Circuit breaker is not close to tripping

    Answers 503 once the circuit breaker has aborted ingest.
    """
    ingester = request.app.state.ingester
    ingest_status = ingester.status()

    if ingest_status.aborted:
        state = "aborted"
        response.status_code = 503
    elif not ingest_status.running:
        state = "stopped"
    elif ingest_status.failure_count > 0:
        state = "degraded"
    else:
        state = "healthy"

    return HealthResponse(
        status=state,
        timestamp=datetime.now(),
        scanner_running=ingest_status.running,
        failure_count=ingest_status.failure_count,
        version=request.app.version
    )
