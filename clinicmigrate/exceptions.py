"""Exceptions raised by the export and validation engine.

Errors carry a short code and, where there is one, a suggestion telling the
operator how to fix the problem. Referential findings (pending, invalid,
external references) are data and never raised.
"""

from typing import Any, Dict, Optional


class MigrationToolError(Exception):
    """Base exception for all engine errors."""

    def __init__(
        self,
        message: str,
        code: str = "MIGRATION_TOOL_ERROR",
        suggestion: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        result = f"[{self.code}] {self.message}"
        if self.suggestion:
            result += f" Suggestion: {self.suggestion}"
        return result

    def to_dict(self) -> Dict[str, Any]:
        result = {"error": self.message, "code": self.code}
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


class SchemaRegistryError(MigrationToolError):
    """The declared tables and edges are inconsistent."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            code="INVALID_SCHEMA_REGISTRY",
            suggestion="Fix the table order or dependency declarations before exporting",
            details=details,
        )


# =============================================================================
# Backend client errors
# =============================================================================

class ClientError(MigrationToolError):
    """A request to the row API or object storage failed."""

    def __init__(
        self,
        message: str,
        code: str = "CLIENT_ERROR",
        status_code: Optional[int] = None,
        suggestion: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code=code, suggestion=suggestion, details=details)
        self.status_code = status_code


class TransientNetworkError(ClientError):
    """Connection failure, timeout, rate limit or server error; worth retrying."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            code="TRANSIENT_NETWORK_ERROR",
            status_code=status_code,
            suggestion="Retry the export; the backend may be rate limiting or temporarily unavailable",
            details=details,
        )


class AuthenticationError(ClientError):
    """The session token was rejected."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            code="AUTHENTICATION_FAILED",
            status_code=status_code,
            suggestion="Check SUPABASE_SERVICE_KEY / SUPABASE_ACCESS_TOKEN",
            details=details,
        )


class RequestError(ClientError):
    """The backend rejected the request (not retryable)."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="REQUEST_REJECTED", status_code=status_code, details=details)


# =============================================================================
# Export errors
# =============================================================================

class TableExportError(MigrationToolError):
    """A page fetch failed; the table is reported as failed."""

    def __init__(self, table: str, cause: Exception, rows_fetched: int = 0):
        super().__init__(
            f"Export of {table} failed after {rows_fetched} rows: {cause}",
            code="TABLE_EXPORT_FAILED",
            details={"table": table, "rows_fetched": rows_fetched},
        )
        self.table = table
        self.cause = cause
        self.rows_fetched = rows_fetched


class BucketListingError(MigrationToolError):
    """The top-level listing of a bucket failed; nothing can be exported."""

    def __init__(self, bucket: str, cause: Exception):
        super().__init__(
            f"Could not list bucket {bucket}: {cause}",
            code="BUCKET_LISTING_FAILED",
            suggestion="Check that the bucket exists and the token can read it",
            details={"bucket": bucket},
        )
        self.bucket = bucket
        self.cause = cause


class ExportCancelled(MigrationToolError):
    """The operator aborted the run."""

    def __init__(self, subject: str = ""):
        super().__init__(f"Export cancelled{f' during {subject}' if subject else ''}", code="EXPORT_CANCELLED")
        self.subject = subject


class RetryExhausted(MigrationToolError):
    """An operation failed on every allowed attempt."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(
            f"Failed after {attempts} attempts: {last_error}",
            code="RETRIES_EXHAUSTED",
            details={"attempts": attempts},
        )
        self.attempts = attempts
        self.last_error = last_error


class ArchiveReadError(MigrationToolError):
    """An export archive or CSV file could not be read."""

    def __init__(self, path: str, cause: Exception):
        super().__init__(
            f"Could not read {path}: {cause}",
            code="ARCHIVE_READ_FAILED",
            suggestion="Pass the .zip produced by the export or a single .csv file",
            details={"path": path},
        )
        self.path = path
        self.cause = cause
