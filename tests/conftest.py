"""Shared fixtures: an in-memory repository and pre-ingest documents."""

from pathlib import Path
from typing import Optional, Sequence

import pytest

from app.models.errors import IngestError
from app.models.schemas import FileInfo, Relation

SCHEMA_PATH = Path(__file__).parent.parent / "schemas" / "exportedRadioTVProgram.xsd"

PBCORE_NS = "http://www.pbcore.org/PBCore/PBCoreNamespace.html"


class FakeRepositoryClient:
    """In-memory repository recording every call made to it."""

    def __init__(self):
        self.objects: dict[str, dict] = {}
        self.relations: list[Relation] = []
        self.calls: list[tuple] = []
        self.fail_on: dict[str, Exception] = {}
        self.on_call = None
        self._counter = 0

    def _call(self, name: str, *args):
        self.calls.append((name, *args))
        if self.on_call is not None:
            self.on_call(name, args)
        if name in self.fail_on:
            raise self.fail_on[name]

    def calls_named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    def create_object_from_template(
        self, template_pid: str, old_identifiers: Optional[Sequence[str]] = None, comment: str = ""
    ) -> str:
        self._call("create_object_from_template", template_pid, list(old_identifiers or []), comment)
        self._counter += 1
        pid = f"uuid:test-{self._counter}"
        self.objects[pid] = {
            "template": template_pid,
            "old_identifiers": list(old_identifiers or []),
            "state": "I",
            "label": "",
            "datastreams": {},
            "file": None,
        }
        return pid

    def add_file_to_object(self, pid: str, file_info: FileInfo, comment: str) -> None:
        self._call("add_file_to_object", pid, file_info, comment)
        self.objects[pid]["file"] = file_info

    def get_file_object_by_url(self, url: str) -> Optional[str]:
        self._call("get_file_object_by_url", url)
        for pid, obj in self.objects.items():
            if obj["file"] is not None and obj["file"].file_url == url and obj["state"] != "D":
                return pid
        return None

    def get_pids_from_old_identifier(self, old_identifier: str) -> list[str]:
        self._call("get_pids_from_old_identifier", old_identifier)
        return [
            pid for pid, obj in self.objects.items()
            if old_identifier in obj["old_identifiers"] and obj["state"] != "D"
        ]

    def list_object_relations(self, pid: str, predicate: str) -> list[Relation]:
        self._call("list_object_relations", pid, predicate)
        return [r for r in self.relations if r.subject_pid == pid and r.predicate == predicate]

    def add_object_relation(self, subject_pid: str, predicate: str, object_pid: str, comment: str) -> None:
        self._call("add_object_relation", subject_pid, predicate, object_pid, comment)
        self.relations.append(Relation(subject_pid=subject_pid, predicate=predicate, object_pid=object_pid))

    def remove_object_relation(self, relation: Relation, comment: str) -> None:
        self._call("remove_object_relation", relation, comment)
        self.relations.remove(relation)

    def update_datastream(self, pid: str, datastream_id: str, document: str, comment: str) -> None:
        self._call("update_datastream", pid, datastream_id, document, comment)
        self.objects[pid]["datastreams"][datastream_id] = document

    def set_object_label(self, pid: str, label: str, comment: str) -> None:
        self._call("set_object_label", pid, label, comment)
        self.objects[pid]["label"] = label

    def _set_state(self, name: str, state: str, comment: str, pids: Sequence[str]):
        self._call(name, comment, list(pids))
        for pid in pids:
            if pid not in self.objects:
                raise IngestError.remote(f"Unknown PID {pid}")
            self.objects[pid]["state"] = state

    def publish_objects(self, comment: str, pids: Sequence[str]) -> None:
        self._set_state("publish_objects", "A", comment, pids)

    def unpublish_objects(self, comment: str, pids: Sequence[str]) -> None:
        self._set_state("unpublish_objects", "I", comment, pids)

    def delete_objects(self, comment: str, pids: Sequence[str]) -> None:
        self._set_state("delete_objects", "D", comment, pids)


def build_program_xml(
    files: Sequence[dict],
    old_identifier: Optional[str] = "ritzau-1234",
    title: Optional[str] = "Aftenshowet",
    ritzau: str = "ritzau record",
    gallup: str = "gallup record",
) -> str:
    """Build a pre-ingest document; ``files`` holds url/name/format and optional md5 keys."""
    identifier = ""
    if old_identifier is not None:
        identifier = (
            "<pbc:pbcoreIdentifier>"
            f"<pbc:identifier>{old_identifier}</pbc:identifier>"
            "<pbc:identifierSource>id</pbc:identifierSource>"
            "</pbc:pbcoreIdentifier>"
        )
    title_xml = ""
    if title is not None:
        title_xml = (
            "<pbc:pbcoreTitle>"
            f"<pbc:title>{title}</pbc:title>"
            "<pbc:titleType>titel</pbc:titleType>"
            "</pbc:pbcoreTitle>"
        )

    file_xml = ""
    for descriptor in files:
        md5 = f"<md5_sum>{descriptor['md5']}</md5_sum>" if descriptor.get("md5") else ""
        file_xml += (
            "<file>"
            f"<file_url>{descriptor['url']}</file_url>"
            f"<file_name>{descriptor['name']}</file_name>"
            f"<format_uri>{descriptor.get('format', 'info:pronom/fmt/199')}</format_uri>"
            f"{md5}"
            "</file>"
        )

    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        "<program>"
        f'<pbcore><pbc:PBCoreDescriptionDocument xmlns:pbc="{PBCORE_NS}">'
        f"{identifier}{title_xml}"
        "</pbc:PBCoreDescriptionDocument></pbcore>"
        "<originals>"
        f"<ritzau_original>{ritzau}</ritzau_original>"
        f"<gallup_original>{gallup}</gallup_original>"
        "</originals>"
        f"<program_recording_files>{file_xml}</program_recording_files>"
        "</program>\n"
    )


def media_file(n: int, md5: Optional[str] = None) -> dict:
    descriptor = {"url": f"http://bitfinder.example/radio/file{n}.mp3", "name": f"file{n}.mp3"}
    if md5:
        descriptor["md5"] = md5
    return descriptor


@pytest.fixture
def repository() -> FakeRepositoryClient:
    return FakeRepositoryClient()


@pytest.fixture
def schema_path() -> Path:
    return SCHEMA_PATH


@pytest.fixture
def folders(tmp_path) -> dict[str, Path]:
    layout = {name: tmp_path / name for name in ("hot", "failed", "processed", "stop")}
    for folder in layout.values():
        folder.mkdir()
    return layout


@pytest.fixture
def program_xml():
    """Factory building pre-ingest documents."""
    return build_program_xml


@pytest.fixture
def media():
    """Factory building recording file descriptions."""
    return media_file
