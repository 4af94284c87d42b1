"""Record models for exported data and validation findings."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

# Value of one exported column: None, str, int, float, bool or a
# structured (JSON-like) dict/list.
RowValue = Union[None, str, int, float, bool, Dict[str, Any], List[Any]]
ExportedRow = Dict[str, RowValue]


@dataclass(frozen=True)
class ExportedTable:
    """All rows of one table, as retrieved during one export run."""
    name: str
    rows: Tuple[ExportedRow, ...] = ()

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def columns(self) -> List[str]:
        """Union of row keys, in first-seen order."""
        seen: Dict[str, None] = {}
        for row in self.rows:
            for key in row:
                seen.setdefault(key, None)
        return list(seen)

    @property
    def is_empty(self) -> bool:
        return not self.rows


@dataclass(frozen=True)
class DownloadOutcome:
    """Result of downloading one storage object (after retries)."""
    path: str
    size_bytes: Optional[int] = None
    error_message: Optional[str] = None
    attempts: int = 1

    @property
    def success(self) -> bool:
        return self.error_message is None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "path": self.path,
            "size_bytes": self.size_bytes,
            "error_message": self.error_message,
            "attempts": self.attempts,
        }


@dataclass(frozen=True)
class FkViolation:
    """A foreign-key value that could not be resolved."""
    row_index: int
    column: str
    target_table: str
    missing_value: str
    line: Optional[int] = None

    @property
    def line_number(self) -> int:
        """Line in the CSV file where the row starts (1-indexed, header is line 1)."""
        return self.line if self.line is not None else self.row_index + 2

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_index": self.row_index,
            "line_number": self.line_number,
            "column": self.column,
            "target_table": self.target_table,
            "missing_value": self.missing_value,
        }


@dataclass(frozen=True)
class ExternalRef:
    """A column value that points at the external identity store."""
    row_index: int
    column: str
    value: str
    line: Optional[int] = None

    @property
    def line_number(self) -> int:
        return self.line if self.line is not None else self.row_index + 2

    def to_dict(self) -> Dict[str, Any]:
        return {"row_index": self.row_index, "line_number": self.line_number, "column": self.column, "value": self.value}


@dataclass
class ValidationResult:
    """Referential-integrity findings for one table."""
    table_name: str
    total_records: int = 0
    valid_records: int = 0
    pending_records: List[FkViolation] = field(default_factory=list)
    invalid_records: List[FkViolation] = field(default_factory=list)
    auth_user_refs: List[ExternalRef] = field(default_factory=list)
    known_table: bool = True

    @property
    def has_invalid(self) -> bool:
        return bool(self.invalid_records)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "table_name": self.table_name,
            "total_records": self.total_records,
            "valid_records": self.valid_records,
            "pending_records": [v.to_dict() for v in self.pending_records],
            "invalid_records": [v.to_dict() for v in self.invalid_records],
            "auth_user_refs": [r.to_dict() for r in self.auth_user_refs],
            "known_table": self.known_table,
        }
