"""Schema registry: table declarations, FK edges and import order."""

import json
import logging
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple
from pathlib import Path

from ..exceptions import SchemaRegistryError
from ..models.schema import TableDefinition, ForeignKeyEdge

logger = logging.getLogger(__name__)


class SchemaRegistry:
    """
    Immutable description of every exported table.

    Holds:
    - One TableDefinition per table (label, category, order, dependencies)
    - The foreign-key edges of each table
    - The total import order, checked against the dependency graph

    The registry is built once at startup and passed to every component.
    Construction fails if any dependency or FK target that is itself a
    registered table has a greater order than the table depending on it.
    """

    def __init__(self, tables: Iterable[TableDefinition], edges: Iterable[ForeignKeyEdge] = ()):
        """
        Initialize and validate the registry.

        Args:
            tables: Table definitions
            edges: Foreign-key edges; their source tables must be registered

        Raises:
            SchemaRegistryError: If the declarations are inconsistent
        """
        tables = list(tables)
        edges = list(edges)

        self._tables: Dict[str, TableDefinition] = {}
        problems: List[str] = []

        for table in tables:
            if table.name in self._tables:
                problems.append(f"Duplicate table: {table.name}")
                continue
            self._tables[table.name] = table

        orders: Dict[int, str] = {}
        for table in self._tables.values():
            if table.order in orders:
                problems.append(
                    f"Tables {orders[table.order]} and {table.name} share order {table.order}"
                )
            orders[table.order] = table.name

        self._edges: Dict[str, Tuple[ForeignKeyEdge, ...]] = {}
        grouped: Dict[str, List[ForeignKeyEdge]] = {}
        for edge in edges:
            if edge.source_table not in self._tables:
                problems.append(
                    f"FK {edge.source_table}.{edge.source_column} declared on unknown table"
                )
                continue
            grouped.setdefault(edge.source_table, []).append(edge)
        for name, table_edges in grouped.items():
            self._edges[name] = tuple(table_edges)

        problems.extend(self._order_violations())

        if problems:
            raise SchemaRegistryError(
                f"Invalid schema declaration ({len(problems)} problems): " + "; ".join(problems),
                details={"problems": problems},
            )

        self._ordered = tuple(sorted(self._tables.values(), key=lambda t: t.order))
        logger.debug(f"Schema registry loaded: {len(self._tables)} tables, {len(edges)} FK edges")

    def _order_violations(self) -> List[str]:
        """Dependencies and FK targets that would be imported after their dependents."""
        problems = []

        for table in self._tables.values():
            for dep in sorted(table.dependencies):
                parent = self._tables.get(dep)
                if parent is not None and parent.order > table.order:
                    problems.append(
                        f"{table.name} (order {table.order}) depends on {dep} (order {parent.order})"
                    )

            for edge in self._edges.get(table.name, ()):
                parent = self._tables.get(edge.target_table)
                if parent is not None and parent.order > table.order:
                    problems.append(
                        f"{table.name}.{edge.source_column} references {parent.name} "
                        f"(order {parent.order}) but {table.name} has order {table.order}"
                    )

        return problems

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchemaRegistry":
        """Create from a {"tables": [...], "edges": [...]} dictionary."""
        tables = [TableDefinition.from_dict(t) for t in data.get("tables", [])]
        edges = [ForeignKeyEdge.from_dict(e) for e in data.get("edges", [])]
        return cls(tables, edges)

    @classmethod
    def from_json_file(cls, file_path: str) -> "SchemaRegistry":
        """Load a registry declaration from a JSON file."""
        with open(file_path, encoding="utf-8") as f:
            data = json.load(f)
        registry = cls.from_dict(data)
        logger.info(f"Loaded schema registry from {file_path}: {len(registry)} tables")
        return registry

    @classmethod
    def default(cls) -> "SchemaRegistry":
        """The clinical records schema."""
        from .clinical_schema import build_clinical_registry

        return build_clinical_registry()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "tables": [t.to_dict() for t in self._ordered],
            "edges": [e.to_dict() for t in self._ordered for e in self.edges_of(t.name)],
        }

    def export_json(self, file_path: str) -> None:
        """Write the declaration to a JSON file."""
        Path(file_path).write_text(json.dumps(self.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def __contains__(self, table: str) -> bool:
        return table in self._tables

    def __len__(self) -> int:
        return len(self._tables)

    def __iter__(self) -> Iterator[TableDefinition]:
        return iter(self._ordered)

    @property
    def tables(self) -> Tuple[TableDefinition, ...]:
        """All tables in import order."""
        return self._ordered

    def get_table(self, name: str) -> TableDefinition:
        """Get a table definition; raises KeyError for unknown tables."""
        try:
            return self._tables[name]
        except KeyError:
            raise KeyError(f"Unknown table: {name}") from None

    def resolve(self, table: Any) -> TableDefinition:
        """Accept a table name or a TableDefinition."""
        if isinstance(table, TableDefinition):
            return table
        return self.get_table(table)

    def dependencies_of(self, table: str) -> FrozenSet[str]:
        """Declared dependencies of a table."""
        return self.get_table(table).dependencies

    def order_of(self, table: str) -> Optional[int]:
        """Position of a table in the import order, None if not registered."""
        definition = self._tables.get(table)
        return definition.order if definition else None

    def edges_of(self, table: str) -> Tuple[ForeignKeyEdge, ...]:
        """FK edges whose source is the table (empty for unknown tables)."""
        return self._edges.get(table, ())

    def external_identity_edges(self) -> List[ForeignKeyEdge]:
        """Edges pointing directly at the external identity store."""
        return [e for t in self._ordered for e in self.edges_of(t.name) if e.is_external]

    def identity_columns(self) -> Set[Tuple[str, str]]:
        """(table, column) pairs holding external identity values."""
        return {(e.source_table, e.source_column) for e in self.external_identity_edges()}

    def indirect_identity_edges(self) -> List[ForeignKeyEdge]:
        """Edges referencing an identity column of another table (e.g. profiles.user_id)."""
        identity = self.identity_columns()
        return [
            e for t in self._ordered for e in self.edges_of(t.name)
            if not e.is_external and (e.target_table, e.target_column) in identity
        ]

    def list_categories(self) -> Dict[str, List[str]]:
        """Table names grouped by category, in import order."""
        categories: Dict[str, List[str]] = {}
        for table in self._ordered:
            categories.setdefault(table.category, []).append(table.name)
        return categories
