"""
Recovery markers for in-flight ingests.

For every source file being processed a marker named
``<source name>.InProcessPIDs`` lists, one per line, the PIDs the ingest
has touched so far. It is renamed to ``<source name>.failedPIDs`` when the
ingest is rolled back and deleted when it succeeds, so after a crash the
markers left behind tell an operator which objects to inspect.

When a file is picked up again after a crash, the PIDs its old marker
listed are first merged into ``<source name>.crashedPIDs``. That marker is
never removed by the ingester, whatever the outcome of the new attempt.
"""

from pathlib import Path
from typing import Sequence

from loguru import logger

from app.utils.helpers import atomic_write_text

IN_PROCESS_SUFFIX = ".InProcessPIDs"
FAILED_SUFFIX = ".failedPIDs"
CRASHED_SUFFIX = ".crashedPIDs"


class RecoveryTracker:
    """Reads and writes PID markers in a single marker directory."""

    def __init__(self, marker_dir: Path):
        """
        Initialize tracker.

        Args:
            marker_dir: Directory holding the markers (the failed-files folder)
        """
        self.marker_dir = marker_dir

    def in_process_path(self, source_file: Path) -> Path:
        return self.marker_dir / f"{source_file.name}{IN_PROCESS_SUFFIX}"

    def failed_path(self, source_file: Path) -> Path:
        return self.marker_dir / f"{source_file.name}{FAILED_SUFFIX}"

    def crashed_path(self, source_file: Path) -> Path:
        return self.marker_dir / f"{source_file.name}{CRASHED_SUFFIX}"

    def record(self, source_file: Path, pids: Sequence[str]) -> Path:
        """
        Overwrite the in-process marker with the full PID list.

        Args:
            source_file: Source document being ingested
            pids: Every PID accumulated so far, in order

        Returns:
            Path of the marker
        """
        marker = self.in_process_path(source_file)
        atomic_write_text(marker, "".join(f"{pid}\n" for pid in pids))
        logger.debug(f"Recorded {len(pids)} PIDs in {marker.name}")
        return marker

    def mark_failed(self, source_file: Path, pids: Sequence[str] = ()) -> Path:
        """
        Turn the in-process marker into a failed marker.

        When no in-process marker exists, ``pids`` is written to the failed
        marker instead so a failed file always leaves one behind.
        """
        marker = self.in_process_path(source_file)
        failed = self.failed_path(source_file)
        if marker.exists():
            marker.replace(failed)
        else:
            atomic_write_text(failed, "".join(f"{pid}\n" for pid in pids))
        return failed

    def preserve_crashed(self, source_file: Path) -> list[str]:
        """
        Save the PIDs of an in-process marker left by an interrupted ingest.

        The PIDs are merged into the crashed marker before a new attempt
        overwrites the in-process marker.

        Returns:
            PIDs found in the leftover in-process marker, empty if there was none
        """
        pids = self.read(source_file)
        if not pids:
            return []

        crashed = self.crashed_path(source_file)
        merged = list(dict.fromkeys(self._read_marker(crashed) + pids))
        atomic_write_text(crashed, "".join(f"{pid}\n" for pid in merged))
        logger.warning(
            f"{source_file.name} was interrupted before; kept its {len(pids)} PIDs in {crashed.name}"
        )
        return pids

    def clear(self, source_file: Path) -> None:
        """Delete the in-process marker after a successful ingest."""
        self.in_process_path(source_file).unlink(missing_ok=True)

    def read(self, source_file: Path) -> list[str]:
        """PIDs in the in-process marker, empty if there is none."""
        return self._read_marker(self.in_process_path(source_file))

    def read_failed(self, source_file: Path) -> list[str]:
        """PIDs in the failed marker, empty if there is none."""
        return self._read_marker(self.failed_path(source_file))

    def read_crashed(self, source_file: Path) -> list[str]:
        """PIDs in the crashed marker, empty if there is none."""
        return self._read_marker(self.crashed_path(source_file))

    def in_process_markers(self) -> list[Path]:
        """In-process markers currently on disk (left over by a crash when idle)."""
        if not self.marker_dir.is_dir():
            return []
        return sorted(self.marker_dir.glob(f"*{IN_PROCESS_SUFFIX}"))

    @staticmethod
    def _read_marker(marker: Path) -> list[str]:
        if not marker.exists():
            return []
        return [line.strip() for line in marker.read_text(encoding="utf-8").splitlines() if line.strip()]
