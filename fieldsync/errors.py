# ==============================================
# Errors
# ==============================================
#
# PURPOSE:
#   One exception hierarchy for the whole engine so callers (the CLI,
#   the sync engine) can tell a fatal configuration problem from a
#   storage rejection from a bad operator action.
#
# HIERARCHY:
# ----------
#   FieldSyncError
#   ├── CollisionExhaustedError   → suffix walk ran out of candidates
#   ├── SchemaRegistryError       → illegal registry mutation
#   ├── SchemaApplyError          → DDL rejected by the storage engine
#   ├── MissingColumnError        → write referenced an unknown column
#   ├── ValueCoercionError        → value cannot be stored in its column type
#   ├── PatchNotFoundError        → unknown patch id
#   ├── PatchTransitionError      → illegal patch state change
#   ├── SourceError               → upstream API failure
#   └── UnhandledWriteError       → any other write failure (stops the sync)
#
# ==============================================

from typing import Any, Dict, Optional


class FieldSyncError(Exception):
    """
    Base exception for the engine.

    Every error carries a human-readable message plus a details dict
    (table, field, record id, ...) so failures are reported with context.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class CollisionExhaustedError(FieldSyncError):
    """No free safe name left within the bounded suffix space."""


class SchemaRegistryError(FieldSyncError):
    """Registry mutation that would break an invariant."""


class SchemaApplyError(FieldSyncError):
    """DDL statement rejected by the storage engine."""

    def __init__(self, message: str, table: str, column: Optional[str] = None, cause: Optional[str] = None):
        super().__init__(message, {"table": table, "column": column, "cause": cause})
        self.table = table
        self.column = column
        self.cause = cause


class MissingColumnError(FieldSyncError):
    """The storage engine reported that a column does not exist."""

    def __init__(self, message: str, table: str, column: Optional[str] = None):
        super().__init__(message, {"table": table, "column": column})
        self.table = table
        self.column = column


class ValueCoercionError(FieldSyncError):
    """A raw value does not fit the column type fixed at discovery time."""


class PatchNotFoundError(FieldSyncError):
    """No patch with the given id."""


class PatchTransitionError(FieldSyncError):
    """The requested patch transition is not allowed from its current status."""


class SourceError(FieldSyncError):
    """Upstream data source failure."""


class UnhandledWriteError(FieldSyncError):
    """A record write failed for a reason the engine cannot handle."""

    def __init__(self, table: str, record_id: Optional[str], cause: BaseException):
        message = f"Write failed for table '{table}', record '{record_id}': {cause}"
        super().__init__(message, {"table": table, "record_id": record_id, "cause": str(cause)})
        self.table = table
        self.record_id = record_id
        self.cause = cause
