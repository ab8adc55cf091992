"""
Repository client for the digital object repository.

Provides:
- The ``RepositoryClient`` capability interface used by the ingest pipeline
- A Neo4j-backed implementation with lazy connection management

Objects are ``DomsObject`` nodes keyed by PID, datastreams are
``Datastream`` nodes attached to their object, and relations are
``RELATION`` edges carrying their predicate. Object state follows the
Fedora convention: ``I`` inactive, ``A`` published, ``D`` deleted.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence

from loguru import logger
from neo4j import GraphDatabase, Session
from neo4j.exceptions import DriverError, Neo4jError

from app.models.errors import IngestError
from app.models.schemas import FileInfo, Relation
from app.utils.helpers import generate_pid, now_iso

STATE_INACTIVE = "I"
STATE_ACTIVE = "A"
STATE_DELETED = "D"


class RepositoryClient(Protocol):
    """Remote object lifecycle operations consumed by the ingest pipeline."""

    def create_object_from_template(
        self, template_pid: str, old_identifiers: Optional[Sequence[str]] = None, comment: str = ""
    ) -> str: ...

    def add_file_to_object(self, pid: str, file_info: FileInfo, comment: str) -> None: ...

    def get_file_object_by_url(self, url: str) -> Optional[str]: ...

    def get_pids_from_old_identifier(self, old_identifier: str) -> List[str]: ...

    def list_object_relations(self, pid: str, predicate: str) -> List[Relation]: ...

    def add_object_relation(self, subject_pid: str, predicate: str, object_pid: str, comment: str) -> None: ...

    def remove_object_relation(self, relation: Relation, comment: str) -> None: ...

    def update_datastream(self, pid: str, datastream_id: str, document: str, comment: str) -> None: ...

    def set_object_label(self, pid: str, label: str, comment: str) -> None: ...

    def publish_objects(self, comment: str, pids: Sequence[str]) -> None: ...

    def unpublish_objects(self, comment: str, pids: Sequence[str]) -> None: ...

    def delete_objects(self, comment: str, pids: Sequence[str]) -> None: ...


class Neo4jRepositoryClient:
    """Repository client storing objects, datastreams and relations in Neo4j."""

    def __init__(self, uri: str, user: str, password: str):
        """Initialize repository client."""
        self.uri = uri
        self.user = user
        self.password = password

        self._driver = None

    def connect(self):
        """Establish connection to the repository."""
        if self._driver is None:
            logger.info(f"Connecting to repository at {self.uri}...")
            try:
                self._driver = GraphDatabase.driver(
                    self.uri,
                    auth=(self.user, self.password),
                    max_connection_lifetime=3600,
                    max_connection_pool_size=10,
                    connection_acquisition_timeout=120
                )
                self._driver.verify_connectivity()
            except (Neo4jError, DriverError) as e:
                self._driver = None
                raise IngestError.remote(f"Cannot connect to repository at {self.uri}: {e}", e) from e
            logger.success("Connected to repository successfully")

    def close(self):
        """Close repository connection."""
        if self._driver:
            logger.info("Closing repository connection...")
            self._driver.close()
            self._driver = None

    @property
    def driver(self):
        """Get driver, connecting if necessary."""
        if self._driver is None:
            self.connect()
        return self._driver

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context manager for Neo4j session."""
        session = self.driver.session()
        try:
            yield session
        finally:
            session.close()

    def _run(self, description: str, query: str, parameters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Run a query and return its records, tagging driver failures as remote errors."""
        logger.debug(f"Repository call: {description}")
        try:
            with self.session() as session:
                result = session.run(query, parameters)
                return [dict(record) for record in result]
        except (Neo4jError, DriverError) as e:
            raise IngestError.remote(f"Failed {description}: {e}", e) from e

    def _run_on_object(self, description: str, query: str, parameters: Dict[str, Any]):
        """Run a mutation that must match the object identified by ``$pid``."""
        records = self._run(description, query, parameters)
        if not records:
            raise IngestError.remote(
                f"Failed {description}: no object with PID {parameters.get('pid')}"
            )

    # Object lifecycle --------------------------------------------------------

    def create_object_from_template(
        self, template_pid: str, old_identifiers: Optional[Sequence[str]] = None, comment: str = ""
    ) -> str:
        """
        Create a new object from a template object.

        Args:
            template_pid: PID of the template to instantiate
            old_identifiers: Legacy identifiers to index the object under
            comment: Audit comment

        Returns:
            PID of the created object
        """
        pid = generate_pid()
        query = """
        CREATE (o:DomsObject {
            pid: $pid,
            template: $template,
            state: $state,
            label: '',
            old_identifiers: $old_identifiers,
            created_at: datetime($ts),
            last_modified: datetime($ts),
            last_comment: $comment
        })
        RETURN o.pid AS pid
        """
        self._run(
            f"creating object from template {template_pid}",
            query,
            {
                "pid": pid,
                "template": template_pid,
                "state": STATE_INACTIVE,
                "old_identifiers": list(old_identifiers or []),
                "ts": now_iso(),
                "comment": comment,
            },
        )
        return pid

    def add_file_to_object(self, pid: str, file_info: FileInfo, comment: str) -> None:
        """Attach a physical file, addressed by URL, to an object."""
        query = """
        MATCH (o:DomsObject {pid: $pid})
        SET o.file_name = $file_name,
            o.file_url = $file_url,
            o.checksum = $checksum,
            o.format_uri = $format_uri,
            o.last_modified = datetime($ts),
            o.last_comment = $comment
        RETURN o.pid AS pid
        """
        self._run_on_object(
            f"adding file {file_info.file_url} to {pid}",
            query,
            {"pid": pid, "ts": now_iso(), "comment": comment, **file_info.model_dump()},
        )

    def get_file_object_by_url(self, url: str) -> Optional[str]:
        """Return the PID of the live file object for ``url``, or None."""
        query = """
        MATCH (o:DomsObject {file_url: $url})
        WHERE o.state <> $deleted
        RETURN o.pid AS pid
        ORDER BY o.created_at
        LIMIT 1
        """
        records = self._run(f"looking up file object {url}", query, {"url": url, "deleted": STATE_DELETED})
        return records[0]["pid"] if records else None

    def get_pids_from_old_identifier(self, old_identifier: str) -> List[str]:
        """Return PIDs of live objects indexed under a legacy identifier."""
        query = """
        MATCH (o:DomsObject)
        WHERE $old_identifier IN o.old_identifiers AND o.state <> $deleted
        RETURN o.pid AS pid
        ORDER BY o.created_at
        """
        records = self._run(
            f"looking up old identifier {old_identifier}",
            query,
            {"old_identifier": old_identifier, "deleted": STATE_DELETED},
        )
        return [record["pid"] for record in records]

    # Relations ---------------------------------------------------------------

    def list_object_relations(self, pid: str, predicate: str) -> List[Relation]:
        """List outbound relations of one predicate, oldest first."""
        query = """
        MATCH (s:DomsObject {pid: $pid})-[r:RELATION {predicate: $predicate}]->(t:DomsObject)
        RETURN t.pid AS object_pid
        ORDER BY r.created_at
        """
        records = self._run(
            f"listing {predicate} relations of {pid}", query, {"pid": pid, "predicate": predicate}
        )
        return [
            Relation(subject_pid=pid, predicate=predicate, object_pid=record["object_pid"])
            for record in records
        ]

    def add_object_relation(self, subject_pid: str, predicate: str, object_pid: str, comment: str) -> None:
        """Add a relation between two existing objects."""
        query = """
        MATCH (s:DomsObject {pid: $pid})
        MATCH (t:DomsObject {pid: $object_pid})
        CREATE (s)-[r:RELATION {predicate: $predicate, created_at: datetime($ts)}]->(t)
        SET s.last_modified = datetime($ts), s.last_comment = $comment
        RETURN s.pid AS pid
        """
        self._run_on_object(
            f"adding {predicate} relation {subject_pid} -> {object_pid}",
            query,
            {
                "pid": subject_pid,
                "object_pid": object_pid,
                "predicate": predicate,
                "ts": now_iso(),
                "comment": comment,
            },
        )

    def remove_object_relation(self, relation: Relation, comment: str) -> None:
        """Remove one edge matching ``relation``."""
        query = """
        MATCH (s:DomsObject {pid: $pid})-[r:RELATION {predicate: $predicate}]->(t:DomsObject {pid: $object_pid})
        WITH s, r LIMIT 1
        DELETE r
        SET s.last_modified = datetime($ts), s.last_comment = $comment
        RETURN s.pid AS pid
        """
        self._run_on_object(
            f"removing {relation.predicate} relation {relation.subject_pid} -> {relation.object_pid}",
            query,
            {
                "pid": relation.subject_pid,
                "object_pid": relation.object_pid,
                "predicate": relation.predicate,
                "ts": now_iso(),
                "comment": comment,
            },
        )

    # Content -----------------------------------------------------------------

    def update_datastream(self, pid: str, datastream_id: str, document: str, comment: str) -> None:
        """Create or overwrite an XML datastream of an object."""
        query = """
        MATCH (o:DomsObject {pid: $pid})
        MERGE (o)-[:HAS_DATASTREAM]->(d:Datastream {object_pid: $pid, id: $datastream_id})
        SET d.content = $document,
            d.last_modified = datetime($ts),
            o.last_modified = datetime($ts),
            o.last_comment = $comment
        RETURN o.pid AS pid
        """
        self._run_on_object(
            f"updating datastream {datastream_id} of {pid}",
            query,
            {
                "pid": pid,
                "datastream_id": datastream_id,
                "document": document,
                "ts": now_iso(),
                "comment": comment,
            },
        )

    def get_datastream(self, pid: str, datastream_id: str) -> Optional[str]:
        """Return the contents of a datastream, or None if it was never written."""
        query = """
        MATCH (o:DomsObject {pid: $pid})-[:HAS_DATASTREAM]->(d:Datastream {id: $datastream_id})
        RETURN d.content AS content
        """
        records = self._run(
            f"reading datastream {datastream_id} of {pid}",
            query,
            {"pid": pid, "datastream_id": datastream_id},
        )
        return records[0]["content"] if records else None

    def set_object_label(self, pid: str, label: str, comment: str) -> None:
        """Set the human readable label of an object."""
        query = """
        MATCH (o:DomsObject {pid: $pid})
        SET o.label = $label, o.last_modified = datetime($ts), o.last_comment = $comment
        RETURN o.pid AS pid
        """
        self._run_on_object(
            f"setting label of {pid}",
            query,
            {"pid": pid, "label": label, "ts": now_iso(), "comment": comment},
        )

    # State -------------------------------------------------------------------

    def _set_state(self, state: str, comment: str, pids: Sequence[str]):
        query = """
        UNWIND $pids AS pid
        MATCH (o:DomsObject {pid: pid})
        SET o.state = $state, o.last_modified = datetime($ts), o.last_comment = $comment
        RETURN o.pid AS pid
        """
        wanted = list(dict.fromkeys(pids))
        if not wanted:
            return
        records = self._run(
            f"setting state {state} on {len(wanted)} objects",
            query,
            {"pids": wanted, "state": state, "ts": now_iso(), "comment": comment},
        )
        missing = set(wanted) - {record["pid"] for record in records}
        if missing:
            raise IngestError.remote(f"Failed setting state {state}: unknown PIDs {sorted(missing)}")

    def publish_objects(self, comment: str, pids: Sequence[str]) -> None:
        """Mark objects as published."""
        self._set_state(STATE_ACTIVE, comment, pids)

    def unpublish_objects(self, comment: str, pids: Sequence[str]) -> None:
        """Mark objects as inactive."""
        self._set_state(STATE_INACTIVE, comment, pids)

    def delete_objects(self, comment: str, pids: Sequence[str]) -> None:
        """Mark objects as deleted."""
        self._set_state(STATE_DELETED, comment, pids)

    def get_object(self, pid: str) -> Optional[Dict[str, Any]]:
        """Return the properties of an object, or None."""
        records = self._run(
            f"reading object {pid}",
            "MATCH (o:DomsObject {pid: $pid}) RETURN o",
            {"pid": pid},
        )
        return dict(records[0]["o"]) if records else None
