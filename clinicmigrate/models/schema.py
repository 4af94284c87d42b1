"""Schema models for table definitions and foreign-key edges."""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional

# Target of FK columns that point at the identity store (auth users),
# which lives outside the exported relational schema.
EXTERNAL_IDENTITY = "auth.users"


@dataclass(frozen=True)
class TableDefinition:
    """Static description of one exported table."""
    name: str
    label: str
    category: str
    order: int
    dependencies: FrozenSet[str] = field(default_factory=frozenset)
    primary_key: Optional[str] = "id"

    @property
    def file_prefix(self) -> str:
        """Zero-padded order used as archive file name prefix."""
        return f"{self.order:02d}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "label": self.label,
            "category": self.category,
            "order": self.order,
            "dependencies": sorted(self.dependencies),
            "primary_key": self.primary_key,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TableDefinition":
        """Create from dictionary representation."""
        return cls(
            name=data["name"],
            label=data.get("label", data["name"]),
            category=data.get("category", ""),
            order=int(data["order"]),
            dependencies=frozenset(data.get("dependencies", data.get("deps", []))),
            primary_key=data.get("primary_key", "id"),
        )


@dataclass(frozen=True)
class ForeignKeyEdge:
    """A foreign-key column of a table and the column it references."""
    source_table: str
    source_column: str
    target_table: str
    target_column: str = "id"
    nullable: bool = True

    @property
    def is_external(self) -> bool:
        """True when the edge points at the external identity store."""
        return self.target_table == EXTERNAL_IDENTITY

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "source_table": self.source_table,
            "source_column": self.source_column,
            "target_table": self.target_table,
            "target_column": self.target_column,
            "nullable": self.nullable,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ForeignKeyEdge":
        """Create from dictionary representation."""
        return cls(
            source_table=data["source_table"],
            source_column=data["source_column"],
            target_table=data["target_table"],
            target_column=data.get("target_column", "id"),
            nullable=data.get("nullable", True),
        )
