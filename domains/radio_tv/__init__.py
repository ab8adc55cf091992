"""
Radio/TV Ingestion Domain

Watches a hot folder for exported Radio/TV program metadata and ingests
each file into the digital object repository:
- scanner.py - Polling hot folder scanner with stop-folder shutdown
- processor.py - Per-file ingest pipeline and fault barrier
- reconciler.py - Relation reconciliation
- tracker.py - PID recovery markers
- metadata.py - Pre-ingest document parsing and validation
- context.py - Client, failure counter and circuit breaker
- ingester.py - Folder layout and wiring
"""

__all__ = ["context", "ingester", "metadata", "processor", "reconciler", "scanner", "tracker"]
