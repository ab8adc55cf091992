"""
Ingester bootstrap.

Prepares the folder layout, loads the pre-ingest schema and wires the
hot folder scanner to the metadata processor.
"""

from typing import Callable, Optional

from loguru import logger

from app.models.errors import IngestAborted
from app.models.schemas import IngestStatus
from app.utils.config import Settings
from app.utils.helpers import ensure_directory, normalise_path
from app.utils.repository import Neo4jRepositoryClient, RepositoryClient
from domains.radio_tv.context import IngestContext
from domains.radio_tv.metadata import PreIngestParser
from domains.radio_tv.processor import RadioTVMetadataProcessor
from domains.radio_tv.scanner import FatalHandler, HotFolderScanner, request_stop
from domains.radio_tv.tracker import RecoveryTracker


def prepare_folders(settings: Settings):
    """Create any missing hot, failed, processed and stop folders."""
    for name, folder in settings.folders().items():
        if ensure_directory(folder):
            logger.info(f"{name}: {folder} did not exist. Has been created.")


def repository_client_factory(settings: Settings) -> Callable[[], RepositoryClient]:
    """Factory building the repository client from settings on first use."""

    def _create() -> RepositoryClient:
        client = Neo4jRepositoryClient(settings.wsdl, settings.username, settings.password)
        client.connect()
        return client

    return _create


class Ingester:
    """Scanner and processor for one hot folder."""

    def __init__(
        self,
        settings: Settings,
        client_factory: Optional[Callable[[], RepositoryClient]] = None,
        on_fatal: Optional[FatalHandler] = None,
    ):
        """
        Initialize ingester.

        Args:
            settings: Folder layout, repository and scanner settings
            client_factory: Builds the repository client; defaults to Neo4j from settings
            on_fatal: Called once the circuit breaker has stopped scanning

        Raises:
            OSError, lxml.etree.XMLSchemaParseError: if the pre-ingest schema cannot be loaded
        """
        self.settings = settings
        self.on_fatal = on_fatal

        self.context = IngestContext(
            client_factory=client_factory or repository_client_factory(settings),
            max_fail_count=settings.max_fail_count,
        )
        self.tracker = RecoveryTracker(settings.lukefolder)
        self.processor = RadioTVMetadataProcessor(
            context=self.context,
            parser=PreIngestParser(settings.preingestschema),
            tracker=self.tracker,
            failed_folder=settings.lukefolder,
            processed_folder=settings.coldfolder,
            shard_url_prefix=settings.shard_url_prefix,
        )
        self.scanner = HotFolderScanner(
            initial_delay=settings.scanner_initial_delay,
            period=settings.scanner_period,
            extension=settings.file_extension,
            on_fatal=self._aborted,
        )

    def _aborted(self, error: IngestAborted):
        logger.critical(f"Ingester aborted: {error}")
        if self.on_fatal is not None:
            self.on_fatal(error)

    def log_configuration(self):
        settings = self.settings
        logger.info("Ingester started with the following configuration:")
        for name, folder in settings.folders().items():
            logger.info(f"  {name} = {normalise_path(folder)}")
        logger.info(f"  preingestschema = {normalise_path(settings.preingestschema)}")
        logger.info(f"  wsdl = {settings.wsdl}")
        logger.info(f"  username = {settings.username}")
        logger.info(f"  overwrite = {settings.overwrite}")

    def start(self):
        """Start scanning the hot folder in the background."""
        for marker in self.tracker.in_process_markers():
            logger.warning(
                f"Found PID marker from an interrupted ingest: {marker}. "
                "Its PIDs are kept in a .crashedPIDs marker when the file is ingested again."
            )

        self.scanner.start_scanning(
            self.settings.hotfolder,
            self.settings.stopfolder,
            self.processor.on_event,
        )

    def request_stop(self, reason: str = ""):
        """Ask the scanner to stop at its next tick."""
        marker = request_stop(self.settings.stopfolder, reason)
        logger.info(f"Stop requested via {marker}")

    def stop(self):
        """Stop scanning without a stop marker and release the repository client."""
        self.scanner.stop()
        self.scanner.wait()
        self.context.close()

    def run(self) -> int:
        """
        Scan until a stop marker appears or the circuit breaker trips.

        Returns:
            Process exit code
        """
        self.log_configuration()
        self.start()
        try:
            self.scanner.wait()
        finally:
            self.scanner.stop()
            self.context.close()

        if self.scanner.fatal_error is not None:
            return 1

        logger.success("Ingester stopped")
        return 0

    def status(self) -> IngestStatus:
        context = self.context
        return IngestStatus(
            running=self.scanner.is_running,
            aborted=self.scanner.fatal_error is not None,
            hot_folder=str(self.settings.hotfolder),
            failure_count=context.failure_count,
            max_fail_count=context.max_fail_count,
            processed=context.processed,
            failed=context.failed,
            last_file=context.last_file,
            last_error=context.last_error,
            last_activity=context.last_activity,
        )
