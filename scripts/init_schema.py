#!/usr/bin/env python3
"""
Apply the repository schema the ingester relies on.

Reads the Cypher statements from ``schemas/repository.cypher`` (or the
file given as first argument), applies them through the repository
client and then checks that every named constraint and index exists.

Usage:
    python scripts/init_schema.py [path/to/schema.cypher]
"""

import re
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

sys.path.insert(0, str(Path(__file__).parent.parent))

from app.models.errors import IngestError
from app.utils.config import get_settings
from app.utils.helpers import configure_logging
from app.utils.repository import Neo4jRepositoryClient

DEFAULT_SCHEMA = Path(__file__).parent.parent / "schemas" / "repository.cypher"

SCHEMA_OBJECT_NAME = re.compile(r"CREATE\s+(CONSTRAINT|INDEX)\s+(\w+)", re.IGNORECASE)


def read_schema_file(filepath: Path) -> list[str]:
    """
    Split a Cypher file into statements.

    ``//`` comment lines and blank statements are dropped.
    """
    statements = []
    for chunk in filepath.read_text(encoding="utf-8").split(";"):
        lines = [line for line in chunk.splitlines() if not line.strip().startswith("//")]
        statement = "\n".join(lines).strip()
        if statement:
            statements.append(statement)
    return statements


def expected_names(statements: list[str]) -> dict[str, set[str]]:
    """Names of the constraints and indexes the statements create."""
    names: dict[str, set[str]] = {"CONSTRAINT": set(), "INDEX": set()}
    for statement in statements:
        match = SCHEMA_OBJECT_NAME.search(statement)
        if match:
            names[match.group(1).upper()].add(match.group(2))
    return names


def apply_schema(client: Neo4jRepositoryClient, statements: list[str]) -> list[str]:
    """
    Run each statement in its own transaction.

    Returns:
        Statements that failed
    """
    failed = []
    with client.session() as session:
        for i, statement in enumerate(statements, 1):
            logger.debug(f"Statement {i}/{len(statements)}: {statement.splitlines()[0]}")
            try:
                session.run(statement).consume()
            except Exception as e:
                logger.error(f"Statement {i} failed: {e}")
                failed.append(statement)
    return failed


def missing_schema_objects(client: Neo4jRepositoryClient, statements: list[str]) -> list[str]:
    """Constraints and indexes named in ``statements`` that the database lacks."""
    expected = expected_names(statements)
    with client.session() as session:
        present = {
            "CONSTRAINT": {record["name"] for record in session.run("SHOW CONSTRAINTS")},
            "INDEX": {record["name"] for record in session.run("SHOW INDEXES")},
        }
    return sorted(
        f"{kind.lower()} {name}"
        for kind, names in expected.items()
        for name in names - present[kind]
    )


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the CLI script."""
    argv = sys.argv[1:] if argv is None else argv
    schema_path = Path(argv[0]) if argv else DEFAULT_SCHEMA

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_file)

    statements = read_schema_file(schema_path)
    logger.info(f"Applying {len(statements)} statements from {schema_path}")

    client = Neo4jRepositoryClient(settings.wsdl, settings.username, settings.password)
    try:
        client.connect()
        failed = apply_schema(client, statements)
        missing = missing_schema_objects(client, statements)
    except IngestError as e:
        logger.error(f"Schema initialization failed: {e}")
        return 1
    finally:
        client.close()

    if missing:
        logger.error(f"Schema incomplete, missing: {', '.join(missing)}")
        return 1
    if failed:
        logger.warning(f"{len(failed)} statements failed but every schema object is present")
    logger.success("Repository schema is in place")
    return 0


if __name__ == "__main__":
    sys.exit(main())
