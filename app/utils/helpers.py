"""
Helper utilities for the Radio/TV ingester.

Common functions used across domains.
"""

import os
import shutil
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from uuid import uuid4

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", log_file: Optional[Path] = None):
    """
    Configure loguru sinks.

    Args:
        level: Minimum level for all sinks
        log_file: Optional file receiving a rotated copy of the log
    """
    logger.remove()
    logger.add(sys.stdout, format=LOG_FORMAT, level=level)

    if log_file is not None:
        logger.add(
            str(log_file),
            format=LOG_FORMAT,
            level=level,
            rotation="10 MB",
            retention=10,
            encoding="utf-8",
        )


def generate_pid() -> str:
    """Mint a new repository PID."""
    return f"uuid:{uuid4()}"


def now_iso() -> str:
    """Get current timestamp as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def normalise_path(path: Path) -> Path:
    """Return a resolved version of ``path`` without forcing existence."""
    try:
        return path.expanduser().resolve()
    except FileNotFoundError:
        return path.expanduser().absolute()


def ensure_directory(path: Path) -> bool:
    """
    Create ``path`` (and parents) if missing.

    Returns:
        True if the directory was created, False if it already existed
    """
    if path.is_dir():
        return False
    path.mkdir(parents=True, exist_ok=True)
    return True


def atomic_write_text(path: Path, content: str):
    """
    Replace ``path`` with ``content`` in one rename.

    Readers see either the previous file or the new one, never a
    partially written file. Both the file and the rename are flushed to
    disk before returning.
    """
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.parent.mkdir(parents=True, exist_ok=True)
    with open(tmp_path, "w", encoding="utf-8") as f:
        f.write(content)
        f.flush()
        os.fsync(f.fileno())
    tmp_path.replace(path)
    _fsync_directory(path.parent)


def _fsync_directory(directory: Path):
    # Directories cannot be opened for fsync on Windows
    if os.name != "posix":
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def move_file(path: Path, destination_dir: Path) -> Path:
    """
    Move ``path`` into ``destination_dir``, keeping its name.

    An existing file of the same name in the destination is replaced.

    Returns:
        New location of the file
    """
    destination_dir.mkdir(parents=True, exist_ok=True)
    target = destination_dir / path.name
    shutil.move(str(path), str(target))
    return target
