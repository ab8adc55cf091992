"""
Long-lived state shared by every ingest.

Holds the lazily created repository client, the consecutive failure
counter behind the circuit breaker and the counters reported by the
status API. One context lives for the whole process and is handed to
the metadata processor.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, FrozenSet, Optional

from loguru import logger

from app.models.errors import ErrorKind, IngestAborted, IngestError
from app.utils.repository import RepositoryClient

# Failures that point at systemic trouble (broken schema, unreachable
# repository) rather than one bad file
BREAKER_KINDS: FrozenSet[ErrorKind] = frozenset(
    {ErrorKind.VALIDATION, ErrorKind.CONTRACT, ErrorKind.REMOTE}
)


@dataclass
class IngestContext:
    """Process-wide ingest state."""

    client_factory: Callable[[], RepositoryClient]
    max_fail_count: int = 3
    breaker_kinds: FrozenSet[ErrorKind] = BREAKER_KINDS

    failure_count: int = 0
    processed: int = 0
    failed: int = 0
    last_file: Optional[str] = None
    last_error: Optional[str] = None
    last_activity: Optional[datetime] = None

    _client: Optional[RepositoryClient] = field(default=None, repr=False)

    @property
    def client(self) -> RepositoryClient:
        """Repository client, created on first use and reused afterwards."""
        if self._client is None:
            self._client = self.client_factory()
        return self._client

    @property
    def has_client(self) -> bool:
        return self._client is not None

    def close(self):
        """Close the repository client if it was ever created."""
        if self._client is not None:
            close = getattr(self._client, "close", None)
            if callable(close):
                close()
            self._client = None

    def record_success(self, source_file: Path):
        """Count a successful ingest and reset the consecutive failure counter."""
        self.processed += 1
        self.failure_count = 0
        self.last_file = source_file.name
        self.last_activity = datetime.now(timezone.utc)

    def record_failure(self, source_file: Path, error: IngestError):
        """
        Count a failed ingest.

        Raises:
            IngestAborted: when the failure trips the circuit breaker
        """
        self.failed += 1
        self.last_file = source_file.name
        self.last_error = str(error)
        self.last_activity = datetime.now(timezone.utc)

        if error.kind not in self.breaker_kinds:
            return

        self.failure_count += 1
        if self.failure_count >= self.max_fail_count:
            logger.critical(
                f"Too many errors in ingest ({self.failure_count} in a row). Stopping ingester."
            )
            raise IngestAborted(self.failure_count, error)
