"""Offset store module (sincedb).

Persists the cursor map, unit-of-work identifier to resume timestamp in
milliseconds, as one ``"<identifier> <cursor>"`` line per entry.

Persistence is best effort. A missing or unreadable file means starting
fresh; a write that fails because no file handles are left is logged and
retried implicitly on the next page, since the in-memory map stays
authoritative. Identifiers must not contain spaces.
"""

import errno
import hashlib
import logging
import os
from typing import Dict, Iterable

logger = logging.getLogger(__name__)

# Write failures that are logged and absorbed rather than raised
RECOVERABLE_WRITE_ERRNOS = frozenset({errno.EMFILE, errno.ENFILE, errno.EACCES})

SINCEDB_SUBDIR = os.path.join("plugins", "inputs", "cloudwatch_logs")


def serialize(cursors: Dict[str, int]) -> str:
    """Render a cursor map in the on-disk line format."""
    return "\n".join(f"{unit} {cursor}" for unit, cursor in cursors.items()) + "\n"


def parse(text: str) -> Dict[str, int]:
    """Parse the on-disk line format into a cursor map.

    Blank lines are ignored; malformed lines are logged and skipped.
    """
    cursors: Dict[str, int] = {}
    for line_no, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        unit, _, raw_cursor = line.partition(" ")
        try:
            cursors[unit] = int(raw_cursor)
        except ValueError:
            logger.warning(f"Skipping malformed sincedb line {line_no}: {line!r}")
    return cursors


def default_sincedb_path(identifiers: Iterable[str], data_dir: str) -> str:
    """Derive a stable sincedb path from the configured identifiers.

    Identical configurations map to the same file, so restarts resume
    without an explicit sincedb_path. The directory is created if needed.

    Args:
        identifiers: Configured stream or group identifiers
        data_dir: Root data directory

    Returns:
        Path of the sincedb file
    """
    logger.info("sincedb_path not specified. Creating default location...")
    root_path = os.path.join(data_dir, SINCEDB_SUBDIR)
    os.makedirs(root_path, exist_ok=True)

    digest = hashlib.sha256(",".join(identifiers).encode("utf-8")).hexdigest()
    path = os.path.join(root_path, f".sincedb_{digest}")
    logger.info(f"Created sincedb_path: {path}")
    return path


class OffsetStore:
    """File-backed storage for the cursor map."""

    def __init__(self, path: str) -> None:
        self.path = path

    def load(self) -> Dict[str, int]:
        """Read the cursor map from disk.

        Returns:
            The persisted cursor map, or an empty map if the file is missing
            or cannot be read
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                text = f.read()
        except FileNotFoundError:
            logger.debug(f"No sincedb at {self.path}, starting fresh")
            return {}
        except OSError as e:
            logger.error(f"Failed to read sincedb {self.path}: {e}")
            return {}

        cursors = parse(text)
        logger.debug(f"Loaded {len(cursors)} cursor(s) from {self.path}")
        return cursors

    def save(self, cursors: Dict[str, int]) -> None:
        """Write the full cursor map, replacing the previous file atomically.

        Writes to a temp file first, then uses os.replace() for atomic rename.

        Args:
            cursors: Cursor map to persist

        Raises:
            OSError: For write failures other than handle exhaustion or
                permission errors
        """
        tmp_path = f"{self.path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(serialize(cursors))
            os.replace(tmp_path, self.path)
        except OSError as e:
            try:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
            except OSError:
                pass
            if e.errno in RECOVERABLE_WRITE_ERRNOS:
                # probably no file handles free, maybe it will work next time
                logger.error(f"Failed to write sincedb {self.path}: {e}")
                return
            raise
