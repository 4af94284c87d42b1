"""Paginated export of database tables through the row API."""

import logging
from datetime import datetime
from threading import Event
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .base import BaseExtractor
from ..exceptions import AuthenticationError, ExportCancelled, MigrationToolError, TableExportError
from ..models.migration import ExportStatus, ProgressEvent, TableExportResult
from ..models.record import ExportedTable
from ..models.schema import TableDefinition
from ..services.schema_registry import SchemaRegistry

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class TableExporter(BaseExtractor):
    """
    Retrieves every row of a table with sequential offset pagination.

    The row API caps a response at a fixed number of rows, so pages are
    requested at offsets 0, page_size, 2 * page_size, ... until a page
    comes back shorter than page_size. Pages are ordered by the table's
    primary key so offsets are stable while the table is read.
    """

    def __init__(self, client: Any, registry: SchemaRegistry, page_size: int = 1000):
        """
        Initialize the exporter.

        Args:
            client: Row API client (fetch_page / count_rows)
            registry: Schema registry used to resolve table names
            page_size: Rows per request
        """
        super().__init__(page_size=page_size)
        self.client = client
        self.registry = registry
        self._order_by: Dict[str, Optional[str]] = {}

    def extract_batch(self, source: str, offset: int = 0, limit: int = 1000) -> List[Dict[str, Any]]:
        """Fetch one page of a table."""
        return self.client.fetch_page(source, offset=offset, limit=limit, order_by=self._order_by.get(source))

    def export(
        self,
        table: Union[str, TableDefinition],
        cancel_event: Optional[Event] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ExportedTable:
        """
        Export all rows of a table.

        Args:
            table: Table name or definition
            cancel_event: When set, no further page is requested
            on_progress: Optional progress callback

        Returns:
            ExportedTable with every row

        Raises:
            TableExportError: If a page request fails
            ExportCancelled: If cancelled between pages
        """
        exported, _ = self._collect(self.registry.resolve(table), cancel_event, on_progress)
        return exported

    def export_result(
        self,
        table: Union[str, TableDefinition],
        cancel_event: Optional[Event] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TableExportResult:
        """
        Export a table and record the outcome instead of raising.

        Cancellation and authentication failures still propagate, since
        they end the whole run.
        """
        definition = self.registry.resolve(table)
        result = TableExportResult(table=definition.name, status=ExportStatus.EXPORTING)
        result.started_at = datetime.utcnow()

        try:
            result.data, result.pages = self._collect(definition, cancel_event, on_progress)
            result.row_count = result.data.row_count
            result.status = ExportStatus.COMPLETED
        except TableExportError as e:
            if isinstance(e.cause, AuthenticationError):
                raise e.cause
            result.status = ExportStatus.FAILED
            result.row_count = e.rows_fetched
            result.error = str(e.cause)
            self.add_error(str(e), subject=definition.name, details={"rows_fetched": e.rows_fetched})
        finally:
            result.completed_at = datetime.utcnow()

        return result

    def _collect(
        self,
        definition: TableDefinition,
        cancel_event: Optional[Event],
        on_progress: Optional[ProgressCallback],
    ) -> Tuple[ExportedTable, int]:
        name = definition.name
        self._order_by[name] = definition.primary_key
        rows: List[Dict[str, Any]] = []
        pages = 0

        try:
            for page in self.stream(name, cancel_event=cancel_event):
                rows.extend(page)
                pages += 1
                logger.debug(f"{name}: page {pages}, {len(rows)} rows so far")
                if on_progress:
                    on_progress(ProgressEvent("table", name, len(rows), 0, f"Exportando {name}: {len(rows)} registros"))
        except ExportCancelled:
            logger.warning(f"Export of {name} cancelled after {len(rows)} rows")
            raise
        except (MigrationToolError, ValueError) as e:
            raise TableExportError(name, e, rows_fetched=len(rows)) from e

        logger.info(f"Exported {name}: {len(rows)} rows in {pages} pages")
        return ExportedTable(name=name, rows=tuple(rows)), pages

    def count(self, table: Union[str, TableDefinition]) -> int:
        """Row count of a table without fetching its rows."""
        return self.client.count_rows(self.registry.resolve(table).name)
