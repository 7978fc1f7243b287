"""Error taxonomy for a reconciliation run."""

from typing import Optional


class ReconciliationError(Exception):
    """Base class for errors surfaced by a reconciliation run."""

    code = "INTERNAL_ERROR"


class SourceUnavailableError(ReconciliationError):
    """Raised when an upstream order or settlement provider is unreachable or returns malformed data."""

    code = "SOURCE_UNAVAILABLE"

    def __init__(self, message: str, source: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.source = source
        self.status_code = status_code


class AuthError(ReconciliationError):
    """Raised when a provider rejects the configured credentials, or none are configured."""

    code = "AUTH_ERROR"

    def __init__(self, message: str, source: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.source = source
        self.status_code = status_code


class RowProcessingError(ReconciliationError):
    """Raised for a single malformed order or settlement row; the row is skipped, never the batch."""

    code = "ROW_PROCESSING_ERROR"

    def __init__(self, message: str, record_id: Optional[str] = None, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.record_id = record_id
        self.field = field


class ReconciliationTimeoutError(ReconciliationError):
    """Raised when a run exceeds its caller-imposed deadline."""

    code = "TIMEOUT"

    def __init__(self, message: str, stage: Optional[str] = None, deadline_seconds: Optional[float] = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.deadline_seconds = deadline_seconds


class PersistenceError(ReconciliationError):
    """Raised when the sink rejects a table write. Tables already written are not rolled back."""

    code = "PERSISTENCE_ERROR"

    def __init__(self, message: str, table_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.table_name = table_name
