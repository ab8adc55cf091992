"""
Error values for the ingest pipeline.

A single exception type carries an ``ErrorKind`` tag so the fault barrier
can branch on the kind of failure instead of on exception classes.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Kinds of per-file ingest failures."""

    VALIDATION = "validation"  # schema or required-field extraction
    REMOTE = "remote"  # repository call failed
    IO = "io"  # marker write, file move
    CONTRACT = "contract"  # expected XML structure absent


class IngestError(Exception):
    """Failure raised anywhere in the ingest pipeline."""

    def __init__(self, kind: ErrorKind, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"

    @classmethod
    def validation(cls, message: str, cause: Optional[BaseException] = None) -> "IngestError":
        return cls(ErrorKind.VALIDATION, message, cause)

    @classmethod
    def remote(cls, message: str, cause: Optional[BaseException] = None) -> "IngestError":
        return cls(ErrorKind.REMOTE, message, cause)

    @classmethod
    def io(cls, message: str, cause: Optional[BaseException] = None) -> "IngestError":
        return cls(ErrorKind.IO, message, cause)

    @classmethod
    def contract(cls, message: str, cause: Optional[BaseException] = None) -> "IngestError":
        return cls(ErrorKind.CONTRACT, message, cause)

    @classmethod
    def classify(cls, exc: BaseException) -> "IngestError":
        """
        Convert any exception into an ``IngestError``.

        Errors that already carry a kind are returned unchanged. Foreign
        exceptions are tagged by where they come from: the filesystem,
        the XML toolchain or the repository driver. Anything else points
        at broken code or an unexpected document shape.

        Args:
            exc: Exception caught by the fault barrier

        Returns:
            Tagged ingest error
        """
        if isinstance(exc, IngestError):
            return exc

        # Imported lazily so this module stays free of heavy dependencies
        from lxml import etree
        from neo4j.exceptions import DriverError, Neo4jError

        if isinstance(exc, (etree.XMLSyntaxError, etree.DocumentInvalid)):
            return cls.validation(str(exc), exc)
        if isinstance(exc, (Neo4jError, DriverError)):
            return cls.remote(str(exc), exc)
        if isinstance(exc, OSError):
            return cls.io(str(exc), exc)
        return cls.contract(f"{type(exc).__name__}: {exc}", exc)


class IngestAborted(RuntimeError):
    """Raised when too many consecutive files fail; stops the ingester."""

    def __init__(self, failure_count: int, last_error: IngestError):
        super().__init__(
            f"Too many errors in ingest ({failure_count} consecutive failures), "
            f"last: {last_error}"
        )
        self.failure_count = failure_count
        self.last_error = last_error
