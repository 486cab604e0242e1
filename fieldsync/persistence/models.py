# ==============================================
# Models (Data Classes)
# ==============================================
#
# PURPOSE:
#   Data classes for everything the engine persists: name mappings,
#   table shapes, schema patches and per-table sync progress.
#
# WHY THIS FILE EXISTS:
#   Separating data classes from logic keeps the registry and the
#   patch workflow clean. Each class knows how to serialize itself
#   to_dict() and back from_dict() so the MetadataStore only ever
#   deals with plain JSON documents.
#
# ENUMS:
# ------
# - ColumnType(Enum): TEXT, NUMBER, BOOLEAN, TIMESTAMP, TEXT_ARRAY
#     Closed set of logical column types. There is deliberately no
#     JSON/object type.
#
# - PatchStatus(Enum): PENDING, APPROVED, APPLIED, REJECTED, FAILED
#
# - SyncStatus(Enum): IDLE, RUNNING, COMPLETED, INCOMPLETE, FAILED, CANCELLED
#
# CLASSES:
# --------
# - FieldMapping       → (namespace, raw_name, safe_name, created_at)
# - ColumnDefinition   → one dynamic column of a table
# - StandardColumns    → names of the fixed per-table columns
# - TableDefinition    → full shape of one table
# - PendingPatch       → one proposed ADD COLUMN awaiting a human
# - SyncState          → resumable progress of one table's sync
#
# ==============================================

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _dt_from_str(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class ColumnType(Enum):
    """
    Logical column types.

    - TEXT: any string (also the fallback for unknown shapes)
    - NUMBER: int or float
    - BOOLEAN: true/false
    - TIMESTAMP: strict ISO-8601 date-time strings
    - TEXT_ARRAY: any list value, regardless of element types
    """
    TEXT = "TEXT"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    TIMESTAMP = "TIMESTAMP"
    TEXT_ARRAY = "TEXT_ARRAY"

    @classmethod
    def parse(cls, value: str) -> "ColumnType":
        """Case-insensitive lookup used by the CLI (`--type number`)."""
        try:
            return cls(value.strip().upper())
        except ValueError:
            allowed = ", ".join(t.value for t in cls)
            raise ValueError(f"Unknown column type '{value}'. Expected one of: {allowed}")


class PatchStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    APPLIED = "applied"
    REJECTED = "rejected"
    FAILED = "failed"


class SyncStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class FieldMapping:
    """
    Link between a raw source field name and its storage identifier.

    The raw name is kept byte-for-byte (whitespace, punctuation and all)
    so the original can always be recovered from the safe name.

    A provisional mapping was made for a column whose source field was
    not known yet (a patch created from a storage error alone). Its raw
    name is a placeholder until the first source field that resolves to
    the same safe name claims it.
    """
    namespace: str
    raw_name: str
    safe_name: str
    created_at: datetime = field(default_factory=utc_now)
    provisional: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "raw_name": self.raw_name,
            "safe_name": self.safe_name,
            "created_at": _dt_to_str(self.created_at),
            "provisional": self.provisional,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldMapping":
        return cls(
            namespace=data["namespace"],
            raw_name=data["raw_name"],
            safe_name=data["safe_name"],
            created_at=_dt_from_str(data.get("created_at")) or utc_now(),
            provisional=data.get("provisional", False),
        )


@dataclass
class ColumnDefinition:
    """One dynamic (discovered) column."""
    safe_name: str
    raw_name: str
    type: ColumnType
    nullable: bool = True
    added_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "safe_name": self.safe_name,
            "raw_name": self.raw_name,
            "type": self.type.value,
            "nullable": self.nullable,
            "added_at": _dt_to_str(self.added_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColumnDefinition":
        return cls(
            safe_name=data["safe_name"],
            raw_name=data["raw_name"],
            type=ColumnType(data["type"]),
            nullable=data.get("nullable", True),
            added_at=_dt_from_str(data.get("added_at")) or utc_now(),
        )


@dataclass(frozen=True)
class StandardColumns:
    """
    Fixed columns carried by every table.

    These never appear among the dynamic columns and their names are
    reserved in every namespace.
    """
    external_id: str = "externalId"
    created_at: str = "createdAt"
    updated_at: str = "updatedAt"
    is_deleted: str = "isDeleted"

    def names(self) -> List[str]:
        return [self.external_id, self.created_at, self.updated_at, self.is_deleted]

    def to_dict(self) -> Dict[str, str]:
        return {
            "external_id": self.external_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "is_deleted": self.is_deleted,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, str]]) -> "StandardColumns":
        return cls(**data) if data else cls()


STANDARD_COLUMNS = StandardColumns()

# Auto-increment surrogate key of every physical table
SURROGATE_KEY = "id"


@dataclass
class TableDefinition:
    """
    Shape of one table as the registry knows it.

    `columns` only holds materialized dynamic columns, in the order
    they were added.
    """
    name: str
    source_name: Optional[str] = None
    columns: List[ColumnDefinition] = field(default_factory=list)
    standard_columns: StandardColumns = field(default_factory=StandardColumns)
    created_at: datetime = field(default_factory=utc_now)

    def column(self, safe_name: str) -> Optional[ColumnDefinition]:
        lowered = safe_name.lower()
        for column in self.columns:
            if column.safe_name.lower() == lowered:
                return column
        return None

    def has_column(self, safe_name: str) -> bool:
        return self.column(safe_name) is not None

    def column_names(self) -> List[str]:
        return [column.safe_name for column in self.columns]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "source_name": self.source_name,
            "columns": [column.to_dict() for column in self.columns],
            "standard_columns": self.standard_columns.to_dict(),
            "created_at": _dt_to_str(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TableDefinition":
        return cls(
            name=data["name"],
            source_name=data.get("source_name"),
            columns=[ColumnDefinition.from_dict(c) for c in data.get("columns", [])],
            standard_columns=StandardColumns.from_dict(data.get("standard_columns")),
            created_at=_dt_from_str(data.get("created_at")) or utc_now(),
        )


@dataclass
class PendingPatch:
    """
    A proposed schema extension (one new column) awaiting a human decision.

    Lifecycle:
        pending → approved → applied
        pending → rejected
        approved → failed → (re-approval) approved
    """
    id: int
    table: str
    field_name: str
    raw_name: str
    suggested_type: ColumnType
    reason: str = ""
    error_message: Optional[str] = None
    status: PatchStatus = PatchStatus.PENDING
    created_at: datetime = field(default_factory=utc_now)
    requested_by: str = "sync"
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    executed_at: Optional[datetime] = None
    execution_result: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    sync_run_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "table": self.table,
            "field_name": self.field_name,
            "raw_name": self.raw_name,
            "suggested_type": self.suggested_type.value,
            "reason": self.reason,
            "error_message": self.error_message,
            "status": self.status.value,
            "created_at": _dt_to_str(self.created_at),
            "requested_by": self.requested_by,
            "approved_at": _dt_to_str(self.approved_at),
            "approved_by": self.approved_by,
            "executed_at": _dt_to_str(self.executed_at),
            "execution_result": self.execution_result,
            "rejected_at": _dt_to_str(self.rejected_at),
            "rejected_by": self.rejected_by,
            "sync_run_id": self.sync_run_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingPatch":
        return cls(
            id=int(data["id"]),
            table=data["table"],
            field_name=data["field_name"],
            raw_name=data["raw_name"],
            suggested_type=ColumnType(data["suggested_type"]),
            reason=data.get("reason", ""),
            error_message=data.get("error_message"),
            status=PatchStatus(data.get("status", "pending")),
            created_at=_dt_from_str(data.get("created_at")) or utc_now(),
            requested_by=data.get("requested_by", "sync"),
            approved_at=_dt_from_str(data.get("approved_at")),
            approved_by=data.get("approved_by"),
            executed_at=_dt_from_str(data.get("executed_at")),
            execution_result=data.get("execution_result"),
            rejected_at=_dt_from_str(data.get("rejected_at")),
            rejected_by=data.get("rejected_by"),
            sync_run_id=data.get("sync_run_id"),
        )


@dataclass
class SyncState:
    """
    Resumable progress for one table.

    `cursor` is the source offset of the first record that has not been
    durably written yet; a failed run never moves it past the failure.
    """
    table: str
    source_name: Optional[str] = None
    cursor: int = 0
    records_synced: int = 0
    status: SyncStatus = SyncStatus.IDLE
    last_error: Optional[str] = None
    last_record_id: Optional[str] = None
    run_id: Optional[str] = None
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "source_name": self.source_name,
            "cursor": self.cursor,
            "records_synced": self.records_synced,
            "status": self.status.value,
            "last_error": self.last_error,
            "last_record_id": self.last_record_id,
            "run_id": self.run_id,
            "updated_at": _dt_to_str(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncState":
        return cls(
            table=data["table"],
            source_name=data.get("source_name"),
            cursor=int(data.get("cursor", 0)),
            records_synced=int(data.get("records_synced", 0)),
            status=SyncStatus(data.get("status", "idle")),
            last_error=data.get("last_error"),
            last_record_id=data.get("last_record_id"),
            run_id=data.get("run_id"),
            updated_at=_dt_from_str(data.get("updated_at")) or utc_now(),
        )
