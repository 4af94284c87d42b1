"""Service layer: schema registry, serialization, validation and reporting."""

from .schema_registry import SchemaRegistry
from .retry import RetryPolicy
from .validator import ReferentialValidator
from .report import ReportGenerator

__all__ = [
    "SchemaRegistry",
    "RetryPolicy",
    "ReferentialValidator",
    "ReportGenerator",
]
