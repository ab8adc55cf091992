"""
Ingest status and control endpoints.
"""

from fastapi import APIRouter, Request
from loguru import logger

from app.models.schemas import IngestStatus, OperationStatus

router = APIRouter()


@router.get("/status", response_model=IngestStatus)
async def ingest_status(request: Request):
    """Counters and last outcome of the ingester."""
    return request.app.state.ingester.status()


@router.post("/stop", response_model=OperationStatus, status_code=202)
async def stop_ingester(request: Request):
    """
    Ask the ingester to stop.

    Drops a marker in the stop folder; the scanner halts at its next tick
    after finishing the file in progress.
    """
    logger.info("Stop requested through the API")
    request.app.state.ingester.request_stop("requested through the API")
    return OperationStatus(status="stopping", message="Stop marker written; scanner halts at its next tick")
