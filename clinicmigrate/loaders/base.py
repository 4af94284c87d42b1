"""Base writer for export archives."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import IO, List, Optional, Tuple, Union
import logging
import zipfile

logger = logging.getLogger(__name__)

ArchiveTarget = Union[str, IO[bytes]]

COMPRESSION_LEVEL = 6


def format_bytes(size: int) -> str:
    """Human-readable size (1024-based)."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {units[unit]}"


class BaseArchiveWriter(ABC):
    """
    Base class for archive writers.

    Subclasses collect outcomes and describe the archive members in
    ``members``; ``build`` writes them to a deflate zip.
    """

    def __init__(self, name: str):
        """
        Initialize the writer.

        Args:
            name: What the archive holds (used in logs)
        """
        self.name = name

    @abstractmethod
    def members(self, exported_at: datetime) -> List[Tuple[str, Union[str, bytes]]]:
        """
        Archive members in write order.

        Returns:
            List of (archive path, content) pairs
        """
        pass

    def build(self, target: ArchiveTarget, exported_at: Optional[datetime] = None) -> int:
        """
        Write the archive.

        Args:
            target: File path or writable binary buffer
            exported_at: Timestamp written into the metadata files

        Returns:
            Number of members written
        """
        exported_at = exported_at or datetime.utcnow()
        members = self.members(exported_at)

        with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=COMPRESSION_LEVEL) as zf:
            for path, content in members:
                if isinstance(content, str):
                    content = content.encode("utf-8")
                zf.writestr(path, content)

        logger.info(f"Wrote {self.name} archive with {len(members)} files")
        return len(members)
