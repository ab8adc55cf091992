"""
Radio/TV metadata processor.

Turns each pre-ingest file added to the hot folder into repository
objects: one file object per recording file, a shard (metafile) object
assembling them and a program object carrying the descriptive metadata.
A program already known under the document's legacy identifier is
updated in place instead of being created again.

``on_file_added`` is the fault barrier for one file. Whatever goes wrong
inside the pipeline, the file is rolled back (moved to the failed folder,
its PID marker turned into a failed marker and the objects it created
deleted) and the scanner carries on with the next file.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from loguru import logger

from app.models.errors import IngestError
from app.models.schemas import FileInfo
from app.utils.helpers import move_file
from app.utils.repository import RepositoryClient
from domains.radio_tv.context import IngestContext
from domains.radio_tv.metadata import PreIngestParser, RadioTVDocument
from domains.radio_tv.reconciler import RelationReconciler
from domains.radio_tv.scanner import FolderEvent, ScanEvent
from domains.radio_tv.tracker import RecoveryTracker

HAS_SHARD_RELATION = "http://doms.statsbiblioteket.dk/relations/default/0/1/#hasShard"
CONSISTS_OF_RELATION = "http://doms.statsbiblioteket.dk/relations/default/0/1/#consistsOf"

PROGRAM_TEMPLATE_PID = "doms:Template_Program"
META_FILE_TEMPLATE_PID = "doms:Template_Shard"
RADIO_TV_FILE_TEMPLATE_PID = "doms:Template_RadioTVFile"

PROGRAM_PBCORE_DS_ID = "PBCORE"
RITZAU_ORIGINAL_DS_ID = "RITZAU_ORIGINAL"
GALLUP_ORIGINAL_DS_ID = "GALLUP_ORIGINAL"
META_FILE_METADATA_DS_ID = "SHARD_METADATA"

SHARD_FORMAT_URI = "info:pronom/fmt/199"

COMMENT = "Ingest of Radio/TV data"
FAILED_COMMENT = COMMENT + ": Something failed, rolling back"


@dataclass
class IngestRun:
    """Bookkeeping for one source file while it is being ingested."""

    source_file: Path
    pids: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    recovered: list[str] = field(default_factory=list)
    completed: bool = False

    def add(self, pid: str, created: bool = False):
        self.pids.append(pid)
        if created:
            self.created.append(pid)

    @property
    def pids_to_publish(self) -> list[str]:
        return list(dict.fromkeys(self.pids))

    @property
    def marker_pids(self) -> list[str]:
        """PIDs left by an interrupted earlier attempt, then those of this run."""
        return list(dict.fromkeys(self.recovered + self.pids))


class RadioTVMetadataProcessor:
    """Ingests pre-ingest files reported by the hot folder scanner."""

    def __init__(
        self,
        context: IngestContext,
        parser: PreIngestParser,
        tracker: RecoveryTracker,
        failed_folder: Path,
        processed_folder: Path,
        shard_url_prefix: str = "http://www.statsbiblioteket.dk/doms/shard/",
    ):
        """
        Initialize processor.

        Args:
            context: Process-wide ingest state (client, failure counter)
            parser: Parser validating the pre-ingest files
            tracker: Writes the PID markers
            failed_folder: Destination of files that failed
            processed_folder: Destination of files ingested successfully
            shard_url_prefix: URL prefix of the placeholder file attached to new shards
        """
        self.context = context
        self.parser = parser
        self.tracker = tracker
        self.failed_folder = failed_folder
        self.processed_folder = processed_folder
        self.shard_url_prefix = shard_url_prefix

    def on_event(self, event: ScanEvent):
        """Dispatch a hot folder event. Only added files are ingested."""
        if event.kind is FolderEvent.ADDED:
            self.on_file_added(event.path)
        else:
            # Modified and deleted files are not acted upon
            logger.debug(f"Ignoring {event.kind.value} file: {event.path.name}")

    def on_file_added(self, source_file: Path) -> bool:
        """
        Ingest one pre-ingest file. Never raises for per-file failures.

        Returns:
            True if the file was ingested and archived, False if it was rolled back

        Raises:
            IngestAborted: if this failure trips the circuit breaker
        """
        logger.info(f"Ingesting {source_file.name}")
        run = IngestRun(source_file=source_file)
        error: Optional[IngestError] = None

        try:
            self._ingest(run)
        except Exception as e:
            error = IngestError.classify(e)
            logger.error(f"Ingest of {source_file.name} failed: {error}")
        finally:
            if not run.completed:
                self._rollback(run)

        if error is None:
            self.context.record_success(source_file)
            logger.success(f"Ingested {source_file.name} ({len(run.pids_to_publish)} objects published)")
            return True

        self.context.record_failure(source_file, error)
        return False

    # Pipeline ----------------------------------------------------------------

    def _ingest(self, run: IngestRun):
        try:
            run.recovered = self.tracker.preserve_crashed(run.source_file)
        except OSError as e:
            raise IngestError.io(f"Cannot preserve leftover PID marker of {run.source_file.name}: {e}", e) from e
        self._record(run)
        document = self.parser.parse(run.source_file)
        client = self.context.client

        program_pid = self._find_existing_program(document, client)
        if program_pid is None:
            logger.info(f"{run.source_file.name} describes a new program")
        else:
            logger.info(f"{run.source_file.name} updates existing program {program_pid}")

        file_pids = self._ingest_files(run, document, client)
        self._record(run)

        shard_pid = self._ingest_meta_file(run, document, file_pids, program_pid, client)
        self._record(run)

        self._ingest_program(run, document, shard_pid, program_pid, client)
        self._record(run)

        client.publish_objects(COMMENT, run.pids_to_publish)

        try:
            move_file(run.source_file, self.processed_folder)
        except OSError as e:
            raise IngestError.io(f"Cannot move {run.source_file.name} to {self.processed_folder}: {e}", e) from e
        run.completed = True

        try:
            self.tracker.clear(run.source_file)
        except OSError as e:
            logger.warning(f"Ingested {run.source_file.name} but could not delete its PID marker: {e}")

    def _record(self, run: IngestRun):
        try:
            self.tracker.record(run.source_file, run.marker_pids)
        except OSError as e:
            raise IngestError.io(f"Cannot write PID marker for {run.source_file.name}: {e}", e) from e

    def _find_existing_program(self, document: RadioTVDocument, client: RepositoryClient) -> Optional[str]:
        """PID of the program already registered under the document's old identifier."""
        old_identifier = document.old_identifier()
        if old_identifier is None:
            return None

        pids = client.get_pids_from_old_identifier(old_identifier)
        if len(pids) > 1:
            logger.warning(f"Old identifier {old_identifier} resolves to several objects {pids}, using {pids[0]}")
        return pids[0] if pids else None

    def _ingest_files(self, run: IngestRun, document: RadioTVDocument, client: RepositoryClient) -> list[str]:
        """
        Ensure a file object exists for every recording file in the document.

        Returns:
            File object PIDs in document order
        """
        file_pids = []
        for file_info in document.file_descriptors():
            file_pid = client.get_file_object_by_url(file_info.file_url)
            if file_pid is None:
                file_pid = client.create_object_from_template(RADIO_TV_FILE_TEMPLATE_PID, comment=COMMENT)
                run.add(file_pid, created=True)
                self._record(run)
                client.add_file_to_object(file_pid, file_info, COMMENT)
                logger.debug(f"Created file object {file_pid} for {file_info.file_url}")
            else:
                run.add(file_pid)
                logger.debug(f"Reusing file object {file_pid} for {file_info.file_url}")
            file_pids.append(file_pid)
        return file_pids

    def _ingest_meta_file(
        self,
        run: IngestRun,
        document: RadioTVDocument,
        file_pids: list[str],
        program_pid: Optional[str],
        client: RepositoryClient,
    ) -> str:
        """
        Create or update the shard of the program and point it at ``file_pids``.

        Returns:
            PID of the shard
        """
        shard_pid = None
        if program_pid is not None:
            shard_pid = self._find_shard(program_pid, client)

        if shard_pid is None:
            shard_pid = client.create_object_from_template(META_FILE_TEMPLATE_PID, comment=COMMENT)
            run.add(shard_pid, created=True)
            self._record(run)
            placeholder = FileInfo(
                file_name=f"shard/{shard_pid}",
                file_url=f"{self.shard_url_prefix}{shard_pid}",
                checksum="",
                format_uri=SHARD_FORMAT_URI,
            )
            client.add_file_to_object(shard_pid, placeholder, COMMENT)
        else:
            run.add(shard_pid)
            client.unpublish_objects(COMMENT, [shard_pid])

        client.update_datastream(shard_pid, META_FILE_METADATA_DS_ID, document.shard_metadata_datastream(), COMMENT)
        RelationReconciler(client, COMMENT).reconcile(shard_pid, CONSISTS_OF_RELATION, file_pids)
        return shard_pid

    @staticmethod
    def _find_shard(program_pid: str, client: RepositoryClient) -> Optional[str]:
        relations = client.list_object_relations(program_pid, HAS_SHARD_RELATION)
        return relations[0].object_pid if relations else None

    def _ingest_program(
        self,
        run: IngestRun,
        document: RadioTVDocument,
        shard_pid: str,
        program_pid: Optional[str],
        client: RepositoryClient,
    ) -> str:
        """
        Create or update the program object and its datastreams.

        Returns:
            PID of the program
        """
        # Extract everything first so a contract error leaves no half-written program
        title = document.program_title()
        pbcore = document.pbcore_datastream()
        ritzau = document.ritzau_datastream()
        gallup = document.gallup_datastream()

        if program_pid is None:
            old_identifier = document.old_identifier()
            program_pid = client.create_object_from_template(
                PROGRAM_TEMPLATE_PID,
                [old_identifier] if old_identifier else [],
                COMMENT,
            )
            run.add(program_pid, created=True)
            self._record(run)
            client.add_object_relation(program_pid, HAS_SHARD_RELATION, shard_pid, COMMENT)
        else:
            run.add(program_pid)
            client.unpublish_objects(COMMENT, [program_pid])
            RelationReconciler(client, COMMENT).reconcile(program_pid, HAS_SHARD_RELATION, [shard_pid])

        client.update_datastream(program_pid, PROGRAM_PBCORE_DS_ID, pbcore, COMMENT)
        client.set_object_label(program_pid, title, COMMENT)
        client.update_datastream(program_pid, RITZAU_ORIGINAL_DS_ID, ritzau, COMMENT)
        client.update_datastream(program_pid, GALLUP_ORIGINAL_DS_ID, gallup, COMMENT)
        return program_pid

    # Rollback ----------------------------------------------------------------

    def _rollback(self, run: IngestRun):
        """
        Undo a failed ingest as far as possible.

        Each step runs even if the one before it failed; failures here are
        logged and swallowed since nothing further can be attempted safely.
        """
        source = run.source_file
        logger.warning(f"Rolling back {source.name} ({len(run.created)} created objects)")

        if source.exists():
            try:
                move_file(source, self.failed_folder)
            except Exception as e:
                logger.exception(f"Could not move {source.name} to {self.failed_folder}: {e}")

        try:
            self.tracker.mark_failed(source, run.marker_pids)
        except Exception as e:
            logger.exception(f"Could not write failed PID marker for {source.name}: {e}")

        if run.created:
            try:
                self.context.client.delete_objects(FAILED_COMMENT, run.created)
            except Exception as e:
                logger.exception(f"Could not delete objects {run.created} created for {source.name}: {e}")
