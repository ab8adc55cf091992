"""
Pydantic models for the Radio/TV ingester.

Shared data models across the application.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


# =====================================================
# Repository Models
# =====================================================

class FileInfo(BaseModel):
    """Physical file attached to a repository object."""
    model_config = ConfigDict(frozen=True)

    file_name: str
    file_url: str
    checksum: str = ""  # md5, optional in the source document
    format_uri: str


class Relation(BaseModel):
    """Directed, typed edge between two repository objects."""
    model_config = ConfigDict(frozen=True)

    subject_pid: str
    predicate: str
    object_pid: str


# =====================================================
# Response Models
# =====================================================

class IngestStatus(BaseModel):
    """Ingester state reported by the status API."""
    running: bool
    aborted: bool = False  # stopped by the circuit breaker
    hot_folder: str
    failure_count: int
    max_fail_count: int
    processed: int = 0
    failed: int = 0
    last_file: Optional[str] = None
    last_error: Optional[str] = None
    last_activity: Optional[datetime] = None


class OperationStatus(BaseModel):
    """Generic operation status."""
    status: str
    message: str
