"""Dry-run referential-integrity validation of exported tables."""

import logging
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from ..models.migration import ProgressEvent
from ..models.record import ExternalRef, FkViolation, ValidationResult
from ..models.schema import ForeignKeyEdge
from .schema_registry import SchemaRegistry

logger = logging.getLogger(__name__)

ParsedTables = Mapping[str, Sequence[Mapping[str, Optional[str]]]]
LineNumbers = Mapping[str, Sequence[int]]

NULL_MARKERS = frozenset({"", "null", "NULL"})


def is_null_reference(value: Optional[str]) -> bool:
    """Empty, None and the literal strings null/NULL are not references."""
    return value is None or value in NULL_MARKERS


class ReferentialValidator:
    """
    Classifies every foreign-key value of every loaded row.

    Each non-null FK value ends up in exactly one of:
    - valid: the referenced row is present
    - external reference: it points at the identity store
    - pending: the parent is not loaded, or is imported at the same stage
      or later, so the value may still resolve
    - invalid: the parent is imported earlier and the value is missing

    The declared import order stands in for "will exist at import time";
    the validator never talks to a database.
    """

    def __init__(self, registry: SchemaRegistry):
        """
        Initialize the validator.

        Args:
            registry: Schema registry with FK edges and import order
        """
        self.registry = registry

    def validate(
        self,
        tables: ParsedTables,
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
        line_numbers: Optional[LineNumbers] = None,
    ) -> List[ValidationResult]:
        """
        Validate a set of parsed tables.

        Args:
            tables: Table name -> rows (string-keyed maps of string values)
            on_progress: Optional progress callback
            line_numbers: Optional table name -> file line of each row, used
                in place of the row position when reporting

        Returns:
            One ValidationResult per loaded table, in import order
        """
        index = _ValueIndex(tables)
        names = self._ordered_names(tables)
        results = []

        for i, name in enumerate(names, start=1):
            if on_progress:
                on_progress(ProgressEvent("validate", name, i, len(names), f"Validando {name}..."))
            lines = line_numbers.get(name) if line_numbers else None
            result = self.validate_table(name, tables[name], index, lines)
            results.append(result)
            logger.info(
                f"Validated {name}: {result.valid_records}/{result.total_records} valid, "
                f"{len(result.pending_records)} pending, {len(result.invalid_records)} invalid, "
                f"{len(result.auth_user_refs)} identity refs"
            )

        return results

    def validate_table(
        self,
        name: str,
        rows: Sequence[Mapping[str, Optional[str]]],
        index: "_ValueIndex",
        lines: Optional[Sequence[int]] = None,
    ) -> ValidationResult:
        """Validate the rows of one table against the loaded session."""
        result = ValidationResult(
            table_name=name,
            total_records=len(rows),
            known_table=name in self.registry,
        )
        if not result.known_table:
            logger.warning(f"Table {name} is not declared in the schema registry; no FK checks applied")

        edges = self.registry.edges_of(name)

        for row_index, row in enumerate(rows):
            row_valid = True
            line = lines[row_index] if lines is not None and row_index < len(lines) else None

            for edge in edges:
                value = row.get(edge.source_column)
                if is_null_reference(value):
                    continue

                if edge.is_external:
                    result.auth_user_refs.append(ExternalRef(row_index, edge.source_column, value, line))
                    continue

                category = self.classify(name, edge, value, index)
                if category == "valid":
                    continue

                violation = FkViolation(
                    row_index=row_index,
                    column=edge.source_column,
                    target_table=edge.target_table,
                    missing_value=value,
                    line=line,
                )
                if category == "invalid":
                    result.invalid_records.append(violation)
                else:
                    result.pending_records.append(violation)
                row_valid = False

            if row_valid:
                result.valid_records += 1

        return result

    def classify(self, table: str, edge: ForeignKeyEdge, value: str, index: "_ValueIndex") -> str:
        """Classify one non-null, internal FK value as valid, pending or invalid."""
        if not index.has_table(edge.target_table):
            return "pending"

        if index.contains(edge.target_table, edge.target_column, value):
            return "valid"

        source_order = self.registry.order_of(table)
        target_order = self.registry.order_of(edge.target_table)
        if target_order is None or source_order is None or target_order >= source_order:
            return "pending"
        return "invalid"

    def _ordered_names(self, tables: ParsedTables) -> List[str]:
        known = [t.name for t in self.registry.tables if t.name in tables]
        unknown = sorted(name for name in tables if name not in self.registry)
        return known + unknown


class _ValueIndex:
    """Lazily built sets of column values per loaded table."""

    def __init__(self, tables: ParsedTables):
        self._tables = tables
        self._cache: Dict[Tuple[str, str], Set[str]] = {}

    def has_table(self, table: str) -> bool:
        return table in self._tables

    def contains(self, table: str, column: str, value: str) -> bool:
        key = (table, column)
        values = self._cache.get(key)
        if values is None:
            values = {row.get(column) for row in self._tables[table]}
            values.discard(None)
            self._cache[key] = values
        return value in values
