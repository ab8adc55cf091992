"""
Service-level test for the Neo4j repository client.

Runs the real client against a throwaway Neo4j started with
Testcontainers, then drives a complete ingest through it and checks the
resulting graph: objects, their state, datastreams and relations.
Skipped when no Docker daemon is available.
"""

import pytest
from testcontainers.neo4j import Neo4jContainer

from app.models.errors import IngestError
from app.models.schemas import FileInfo, Relation
from app.utils.repository import Neo4jRepositoryClient
from domains.radio_tv.context import IngestContext
from domains.radio_tv.metadata import PreIngestParser
from domains.radio_tv.processor import (
    CONSISTS_OF_RELATION,
    HAS_SHARD_RELATION,
    PROGRAM_PBCORE_DS_ID,
    PROGRAM_TEMPLATE_PID,
    RadioTVMetadataProcessor,
)
from domains.radio_tv.tracker import RecoveryTracker

pytestmark = pytest.mark.service

NEO4J_IMAGE = "neo4j:5.14-community"


@pytest.fixture(scope="module")
def neo4j():
    container = Neo4jContainer(NEO4J_IMAGE)
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"Docker is not available: {e}")
    yield container
    container.stop()


@pytest.fixture
def repository(neo4j):
    client = Neo4jRepositoryClient(
        uri=neo4j.get_connection_url(),
        user=neo4j.username,
        password=neo4j.password,
    )
    client.connect()
    with client.session() as session:
        session.run("MATCH (n) DETACH DELETE n").consume()
    yield client
    client.close()


def test_object_lifecycle(repository):
    pid = repository.create_object_from_template("doms:Template_RadioTVFile", ["legacy-1"], "test")
    assert pid.startswith("uuid:")

    file_info = FileInfo(file_name="a.mp3", file_url="http://example/a.mp3", checksum="abc", format_uri="fmt")
    repository.add_file_to_object(pid, file_info, "test")
    repository.set_object_label(pid, "A file", "test")

    assert repository.get_file_object_by_url("http://example/a.mp3") == pid
    assert repository.get_pids_from_old_identifier("legacy-1") == [pid]

    obj = repository.get_object(pid)
    assert obj["state"] == "I"
    assert obj["label"] == "A file"
    assert obj["checksum"] == "abc"

    repository.publish_objects("test", [pid, pid])
    assert repository.get_object(pid)["state"] == "A"

    repository.delete_objects("test", [pid])
    assert repository.get_object(pid)["state"] == "D"
    assert repository.get_file_object_by_url("http://example/a.mp3") is None
    assert repository.get_pids_from_old_identifier("legacy-1") == []


def test_datastreams_are_overwritten(repository):
    pid = repository.create_object_from_template("doms:Template_Program", comment="test")

    repository.update_datastream(pid, "PBCORE", "<first/>", "test")
    repository.update_datastream(pid, "PBCORE", "<second/>", "test")

    assert repository.get_datastream(pid, "PBCORE") == "<second/>"
    assert repository.get_datastream(pid, "OTHER") is None


def test_relations_are_listed_and_removed(repository):
    shard = repository.create_object_from_template("doms:Template_Shard", comment="test")
    a = repository.create_object_from_template("doms:Template_RadioTVFile", comment="test")
    b = repository.create_object_from_template("doms:Template_RadioTVFile", comment="test")

    repository.add_object_relation(shard, CONSISTS_OF_RELATION, a, "test")
    repository.add_object_relation(shard, CONSISTS_OF_RELATION, b, "test")
    repository.add_object_relation(shard, HAS_SHARD_RELATION, a, "test")

    relations = repository.list_object_relations(shard, CONSISTS_OF_RELATION)
    assert sorted(r.object_pid for r in relations) == sorted([a, b])

    repository.remove_object_relation(Relation(subject_pid=shard, predicate=CONSISTS_OF_RELATION, object_pid=a), "test")

    assert [r.object_pid for r in repository.list_object_relations(shard, CONSISTS_OF_RELATION)] == [b]
    assert [r.object_pid for r in repository.list_object_relations(shard, HAS_SHARD_RELATION)] == [a]


def test_unknown_pids_are_remote_errors(repository):
    with pytest.raises(IngestError) as excinfo:
        repository.set_object_label("uuid:missing", "label", "test")
    assert excinfo.value.kind.value == "remote"

    with pytest.raises(IngestError):
        repository.publish_objects("test", ["uuid:missing"])


def test_ingest_builds_program_graph(repository, folders, schema_path, program_xml, media):
    context = IngestContext(client_factory=lambda: repository)
    processor = RadioTVMetadataProcessor(
        context=context,
        parser=PreIngestParser(schema_path),
        tracker=RecoveryTracker(folders["failed"]),
        failed_folder=folders["failed"],
        processed_folder=folders["processed"],
    )
    source = folders["hot"] / "program.xml"
    source.write_text(program_xml([media(1), media(2)]), encoding="utf-8")

    assert processor.on_file_added(source) is True

    [program_pid] = repository.get_pids_from_old_identifier("ritzau-1234")
    program = repository.get_object(program_pid)
    assert program["template"] == PROGRAM_TEMPLATE_PID
    assert program["state"] == "A"
    assert program["label"] == "Aftenshowet"
    assert "PBCoreDescriptionDocument" in repository.get_datastream(program_pid, PROGRAM_PBCORE_DS_ID)

    [shard] = repository.list_object_relations(program_pid, HAS_SHARD_RELATION)
    files = repository.list_object_relations(shard.object_pid, CONSISTS_OF_RELATION)
    assert sorted(r.object_pid for r in files) == sorted([
        repository.get_file_object_by_url(media(1)["url"]),
        repository.get_file_object_by_url(media(2)["url"]),
    ])
    assert all(repository.get_object(r.object_pid)["state"] == "A" for r in files)

    # Re-ingest with one file dropped
    source.write_text(program_xml([media(2)]), encoding="utf-8")
    assert processor.on_file_added(source) is True

    assert repository.get_pids_from_old_identifier("ritzau-1234") == [program_pid]
    assert repository.list_object_relations(program_pid, HAS_SHARD_RELATION) == [shard]
    remaining = repository.list_object_relations(shard.object_pid, CONSISTS_OF_RELATION)
    assert [r.object_pid for r in remaining] == [repository.get_file_object_by_url(media(2)["url"])]
