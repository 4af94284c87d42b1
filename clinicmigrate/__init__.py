"""
Clinic Data Migration Tool

Exports the clinical records database and its file storage to portable
archives, and validates exported data offline before it is imported into a
new backend.

Supports:
- Paginated export of every table in foreign-key-safe import order (CSV or SQL)
- Concurrent, retried export of storage buckets with manifest and error list
- Offline referential-integrity validation of an export (valid, pending, invalid)
- Validation reports and safe-import SQL templates generated from the schema
"""

__version__ = "0.1.0"
