"""
Hot folder scanner for the Radio/TV domain.

Polls a directory at a fixed period and turns differences between two
listings into added / modified / deleted events, delivered one at a time
to a single handler on the scanner thread. A file dropped into the stop
folder ends scanning for good.
"""

import os
import stat
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Optional

from loguru import logger
from watchdog.utils.dirsnapshot import DirectorySnapshot

from app.models.errors import IngestAborted
from app.utils.helpers import now_iso

STOP_MARKER_NAME = "stop"


class FolderEvent(str, Enum):
    """Kinds of hot folder changes."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class ScanEvent:
    """A change detected in the hot folder."""

    kind: FolderEvent
    path: Path


ScanHandler = Callable[[ScanEvent], None]
FatalHandler = Callable[[IngestAborted], None]


def request_stop(stop_dir: Path, reason: str = "") -> Path:
    """
    Drop a stop marker into ``stop_dir``.

    Returns:
        Path of the marker file
    """
    stop_dir.mkdir(parents=True, exist_ok=True)
    marker = stop_dir / STOP_MARKER_NAME
    marker.write_text(f"{now_iso()} {reason}".strip() + "\n", encoding="utf-8")
    return marker


class HotFolderScanner:
    """Polling scanner for one hot folder."""

    def __init__(
        self,
        initial_delay: float = 5.0,
        period: float = 5.0,
        extension: str = ".xml",
        on_fatal: Optional[FatalHandler] = None,
    ):
        """
        Initialize scanner.

        Args:
            initial_delay: Seconds before the first scan
            period: Seconds between scans
            extension: Only files with this suffix are reported
            on_fatal: Called on the scanner thread when an ingest aborts scanning
        """
        self.initial_delay = initial_delay
        self.period = period
        self.extension = extension.lower()
        self.on_fatal = on_fatal

        self.watch_dir: Optional[Path] = None
        self.stop_dir: Optional[Path] = None
        self.fatal_error: Optional[IngestAborted] = None

        self._handler: Optional[ScanHandler] = None
        self._previous: Dict[str, int] = {}
        self._cancelled = threading.Event()
        self._finished = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and not self._finished.is_set()

    @property
    def is_stopped(self) -> bool:
        return self._cancelled.is_set()

    def start_scanning(self, watch_dir: Path, stop_dir: Path, handler: ScanHandler):
        """
        Start polling ``watch_dir`` on a background thread.

        Args:
            watch_dir: Hot folder to watch
            stop_dir: Folder checked for a stop marker before every scan
            handler: Receives every detected event
        """
        if self._thread is not None:
            raise RuntimeError("Scanner already started")

        self.attach(watch_dir, stop_dir, handler)
        self._thread = threading.Thread(target=self._run, name="hot-folder-scanner", daemon=True)
        self._thread.start()
        logger.success(
            f"Started scanning {watch_dir} every {self.period}s (first scan in {self.initial_delay}s)"
        )

    def attach(self, watch_dir: Path, stop_dir: Path, handler: ScanHandler):
        """Set the folders and handler without starting the timer (used by ``scan_once``)."""
        self.watch_dir = watch_dir
        self.stop_dir = stop_dir
        self._handler = handler

    def stop(self):
        """Cancel scanning. A scan in progress finishes first."""
        self._cancelled.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until scanning has terminated.

        Returns:
            True if the scanner has stopped, False on timeout
        """
        if self._thread is None:
            return True
        return self._finished.wait(timeout)

    def _run(self):
        try:
            if self._cancelled.wait(self.initial_delay):
                return
            while self.scan_once():
                if self._cancelled.wait(self.period):
                    return
        finally:
            self._finished.set()
            logger.info("Hot folder scanner stopped")

    def stop_requested(self) -> bool:
        """True if the stop folder holds a stop marker."""
        if self.stop_dir is None:
            return False
        try:
            return any(True for _ in self.stop_dir.iterdir())
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Cannot read stop folder {self.stop_dir}: {e}")
            return False

    def list_files(self) -> Dict[str, int]:
        """
        Current matching files in the hot folder.

        Symlinks are followed, so a link to a regular file counts as that
        file; dangling links are left out.

        Returns:
            Mapping of file name to modification time in nanoseconds

        Raises:
            OSError: if the folder cannot be listed
        """
        root = str(self.watch_dir)
        snapshot = DirectorySnapshot(root, recursive=False, stat=os.stat)
        files = {}
        for path in snapshot.paths:
            if path == root:
                continue
            info = snapshot.stat_info(path)
            name = Path(path).name
            if stat.S_ISREG(info.st_mode) and name.lower().endswith(self.extension):
                files[name] = info.st_mtime_ns
        return files

    def scan_once(self) -> bool:
        """
        Run one scan: check for a stop marker, list the folder, deliver events.

        Returns:
            False once scanning has terminated, True otherwise
        """
        if self._cancelled.is_set():
            return False

        if self.stop_requested():
            logger.info(f"Stop marker found in {self.stop_dir}. Cancelling scanner.")
            self.stop()
            return False

        try:
            current = self.list_files()
        except OSError as e:
            logger.warning(f"Skipping scan of {self.watch_dir}: {e}")
            return True

        previous = self._previous
        self._previous = current

        events = [
            ScanEvent(FolderEvent.ADDED, self.watch_dir / name)
            for name in sorted(current.keys() - previous.keys())
        ]
        events += [
            ScanEvent(FolderEvent.MODIFIED, self.watch_dir / name)
            for name in sorted(current.keys() & previous.keys())
            if current[name] != previous[name]
        ]
        events += [
            ScanEvent(FolderEvent.DELETED, self.watch_dir / name)
            for name in sorted(previous.keys() - current.keys())
        ]

        for event in events:
            if not self._deliver(event):
                return False

        return True

    def _deliver(self, event: ScanEvent) -> bool:
        logger.debug(f"Hot folder event: {event.kind.value} {event.path.name}")
        try:
            self._handler(event)
        except IngestAborted as e:
            self.fatal_error = e
            self.stop()
            if self.on_fatal is not None:
                self.on_fatal(e)
            return False
        except Exception as e:
            logger.exception(f"Handler failed for {event.kind.value} {event.path}: {e}")
        return True
