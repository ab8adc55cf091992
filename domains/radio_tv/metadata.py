"""
Pre-ingest metadata documents.

Parses and validates the Radio/TV export files dropped in the hot folder
and extracts everything the ingest pipeline writes to the repository:
the legacy identifier, the recording file descriptors, the program title
and the datastream documents for program and shard objects.
"""

import copy
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from loguru import logger
from lxml import etree

from app.models.errors import IngestError
from app.models.schemas import FileInfo

PBCORE_NAMESPACE = "http://www.pbcore.org/PBCore/PBCoreNamespace.html"
NAMESPACES = {"pbc": PBCORE_NAMESPACE}

PBCORE_DESCRIPTION_DOCUMENT = "//program/pbcore/pbc:PBCoreDescriptionDocument"
OLD_IDENTIFIER = 'pbc:pbcoreIdentifier[pbc:identifierSource="id"]/pbc:identifier'
PROGRAM_TITLE = 'pbc:pbcoreTitle[pbc:titleType="titel"]/pbc:title'
RITZAU_ORIGINAL = "//program/originals/ritzau_original"
GALLUP_ORIGINAL = "//program/originals/gallup_original"
RECORDING_FILES = "//program/program_recording_files/file"

FILE_URL = "file_url"
FILE_NAME = "file_name"
FORMAT_URI = "format_uri"
MD5_SUM = "md5_sum"

RITZAU_ORIGINAL_NAMESPACE = "http://doms.statsbiblioteket.dk/types/ritzau_original/0/1/#"
GALLUP_ORIGINAL_NAMESPACE = "http://doms.statsbiblioteket.dk/types/gallup_original/0/1/#"


class PreIngestParser:
    """Parses pre-ingest files, validating them against an XML schema."""

    def __init__(self, schema_path: Optional[Path] = None):
        """
        Initialize parser.

        Args:
            schema_path: XSD the documents must conform to; None disables validation

        Raises:
            OSError, etree.XMLSchemaParseError: if the schema cannot be loaded
        """
        self.schema_path = schema_path
        self._schema = None
        if schema_path is not None:
            self._schema = etree.XMLSchema(etree.parse(str(schema_path)))
            logger.info(f"Loaded pre-ingest schema: {schema_path}")

        self._parser = etree.XMLParser(resolve_entities=False, no_network=True)

    def parse(self, path: Path) -> "RadioTVDocument":
        """
        Parse and validate a pre-ingest file.

        Raises:
            IngestError: validation error if the file is not well-formed or not schema-valid
        """
        try:
            tree = etree.parse(str(path), self._parser)
        except etree.XMLSyntaxError as e:
            raise IngestError.validation(f"{path.name} is not well-formed XML: {e}", e) from e

        if self._schema is not None and not self._schema.validate(tree):
            error = self._schema.error_log.last_error
            raise IngestError.validation(f"{path.name} does not conform to the pre-ingest schema: {error}")

        return RadioTVDocument(tree, source=path)


class RadioTVDocument:
    """A parsed pre-ingest file describing one broadcast program."""

    def __init__(self, tree: etree._ElementTree, source: Optional[Path] = None):
        self.tree = tree
        self.source = source

    @classmethod
    def from_string(cls, text: str) -> "RadioTVDocument":
        """Build a document from XML text without schema validation."""
        return cls(etree.ElementTree(etree.fromstring(text.encode("utf-8"))))

    def _select(self, xpath: str, context=None):
        """First node matching ``xpath``, or None."""
        nodes = (context if context is not None else self.tree).xpath(xpath, namespaces=NAMESPACES)
        return nodes[0] if nodes else None

    def _require(self, xpath: str, context=None):
        node = self._select(xpath, context)
        if node is None:
            raise IngestError.contract(f"Expected element missing from pre-ingest document: {xpath}")
        return node

    @staticmethod
    def _text(node) -> str:
        return "".join(node.itertext()).strip()

    @property
    def pbcore(self):
        """The PBCore description document element."""
        return self._require(PBCORE_DESCRIPTION_DOCUMENT)

    def old_identifier(self) -> Optional[str]:
        """Legacy identifier of the program, or None when the document has none."""
        node = self._select(OLD_IDENTIFIER, self.pbcore)
        if node is None:
            return None
        return self._text(node) or None

    def program_title(self) -> str:
        """Title used as the program object's label."""
        return self._text(self._require(PROGRAM_TITLE, self.pbcore))

    def file_descriptors(self) -> list[FileInfo]:
        """
        Descriptions of the recording files, in document order.

        The MD5 sum is optional and left empty when absent.

        Raises:
            IngestError: validation error for a malformed file URL, contract
                error for a descriptor lacking a required element
        """
        descriptors = []
        for file_node in self.tree.xpath(RECORDING_FILES, namespaces=NAMESPACES):
            file_url = self._text(self._require(FILE_URL, file_node))
            parsed = urlparse(file_url)
            if not parsed.scheme or not (parsed.netloc or parsed.path):
                raise IngestError.validation(f"Invalid file URL in pre-ingest document: {file_url!r}")

            md5_node = self._select(MD5_SUM, file_node)
            descriptors.append(
                FileInfo(
                    file_name=self._text(self._require(FILE_NAME, file_node)),
                    file_url=file_url,
                    checksum=self._text(md5_node) if md5_node is not None else "",
                    format_uri=self._text(self._require(FORMAT_URI, file_node)),
                )
            )
        return descriptors

    # Datastream documents ----------------------------------------------------

    def pbcore_datastream(self) -> str:
        """The PBCore element as a document of its own."""
        return _serialize(copy.deepcopy(self.pbcore))

    def ritzau_datastream(self) -> str:
        return self._original_datastream(RITZAU_ORIGINAL, "ritzau_original", RITZAU_ORIGINAL_NAMESPACE)

    def gallup_datastream(self) -> str:
        return self._original_datastream(GALLUP_ORIGINAL, "gallup_original", GALLUP_ORIGINAL_NAMESPACE)

    def _original_datastream(self, xpath: str, root_name: str, namespace: str) -> str:
        # Provenance documents keep only the text content of the source element
        source = self._require(xpath)
        root = etree.Element(f"{{{namespace}}}{root_name}", nsmap={None: namespace})
        root.text = "".join(source.itertext())
        return _serialize(root)

    def shard_metadata_datastream(self) -> str:
        """Shard metadata: a copy of every recording file element."""
        root = etree.Element("shard_metadata")
        for file_node in self.tree.xpath(RECORDING_FILES, namespaces=NAMESPACES):
            root.append(copy.deepcopy(file_node))
        return _serialize(root)


def _serialize(element) -> str:
    return etree.tostring(element, encoding="unicode")
