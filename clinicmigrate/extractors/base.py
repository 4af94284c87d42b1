"""Base extractor interface."""

from abc import ABC, abstractmethod
from datetime import datetime
from threading import Event
from typing import Any, Dict, Iterator, List, Optional
import logging

from ..exceptions import ExportCancelled

logger = logging.getLogger(__name__)


class BaseExtractor(ABC):
    """
    Base class for extractors that read the source system page by page.

    Subclasses fetch one page with ``extract_batch``; ``stream`` walks the
    offsets and stops on the first short or empty page.
    """

    def __init__(self, page_size: int = 1000):
        """
        Initialize the extractor.

        Args:
            page_size: Rows or entries requested per page
        """
        self.page_size = page_size
        self._errors: List[Dict[str, Any]] = []
        self._warnings: List[str] = []

    @abstractmethod
    def extract_batch(self, source: Any, offset: int = 0, limit: int = 1000) -> List[Dict[str, Any]]:
        """
        Extract one page.

        Args:
            source: What to read (a table name, a bucket prefix)
            offset: Starting offset
            limit: Maximum entries to return

        Returns:
            List of entries; fewer than ``limit`` means the last page
        """
        pass

    def stream(
        self,
        source: Any,
        batch_size: Optional[int] = None,
        cancel_event: Optional[Event] = None,
    ) -> Iterator[List[Dict[str, Any]]]:
        """
        Stream a source in pages.

        Args:
            source: What to read
            batch_size: Page size (defaults to self.page_size)
            cancel_event: When set, no further page is requested

        Yields:
            Pages of entries

        Raises:
            ExportCancelled: If cancel_event is set before a page request
        """
        batch_size = batch_size or self.page_size
        offset = 0

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise ExportCancelled(str(source))

            batch = self.extract_batch(source, offset=offset, limit=batch_size)
            if not batch:
                break

            yield batch
            offset += len(batch)

            if len(batch) < batch_size:
                break

    @property
    def errors(self) -> List[Dict[str, Any]]:
        return list(self._errors)

    @property
    def warnings(self) -> List[str]:
        return list(self._warnings)

    def add_error(self, message: str, subject: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        """Record a per-unit failure."""
        error = {
            "message": message,
            "subject": subject,
            "timestamp": datetime.utcnow().isoformat(),
        }
        if details:
            error.update(details)
        self._errors.append(error)
        logger.error(f"Extraction error: {message}")

    def add_warning(self, message: str) -> None:
        """Record a recoverable problem."""
        self._warnings.append(message)
        logger.warning(f"Extraction warning: {message}")

    def reset(self) -> None:
        """Reset the extractor state."""
        self._errors = []
        self._warnings = []
