# ==============================================
# PatchWorkflow
# ==============================================
#
# PURPOSE:
#   Turns "this column does not exist" into a reviewable request to
#   add the column, and executes the request once a human approves it.
#
# WHY THIS CLASS EXISTS:
#   New upstream fields must never reach the schema silently. The sync
#   engine only proposes; an operator decides. Approval runs the DDL
#   synchronously through the SchemaApplier and records the outcome on
#   the patch itself, so the patch list doubles as a schema change log.
#
# CLASS: PatchWorkflow
# --------------------
#   Constructor:
#   ------------
#   - __init__(store, registry, resolver, applier, type_inferrer=None)
#
#   Methods:
#   --------
#   CREATE:
#   - create_from_error(table, error_message, record=None, sync_run_id=None)
#   - request_column(table, raw_name, safe_name, suggested_type=None, ...)
#   - create_manual(table, raw_name, suggested_type=TEXT, reason, requested_by)
#
#   DECIDE:
#   - approve(patch_id, approver, column_type=None) -> PendingPatch
#   - reject(patch_id, approver, reason=None) -> PendingPatch
#
#   READ:
#   - get(patch_id) / list_pending(table=None) / list_history(limit=50)
#   - list_all(table=None)
#
# STATE MACHINE:
# --------------
#   pending ──approve──► approved ──DDL ok──► applied
#      │                    └──────DDL error──► failed ──approve──► approved
#      └──reject──► rejected
#
# ==============================================

import re
from typing import Any, Dict, List, Optional

from loguru import logger

from fieldsync.errors import (
    PatchNotFoundError,
    PatchTransitionError,
    SchemaApplyError,
    SchemaRegistryError,
)
from fieldsync.normalization.collision_resolver import CollisionResolver
from fieldsync.normalization.type_inferrer import TypeInferrer
from fieldsync.persistence.metadata_store import MetadataStore
from fieldsync.persistence.models import (
    ColumnDefinition,
    ColumnType,
    PatchStatus,
    PendingPatch,
    utc_now,
)
from fieldsync.persistence.schema_registry import SchemaRegistry
from fieldsync.storage.schema_applier import SchemaApplier


# Storage engine messages that mean "column is missing"
MISSING_COLUMN_PATTERNS = [
    # MySQL: (1054, "Unknown column 'x' in 'field list'")
    re.compile(r"Unknown column '([^']+)'"),
    # PostgreSQL: column "x" of relation "t" does not exist
    re.compile(r'column "([^"]+)" of relation "[^"]+" does not exist'),
    # Generic: column `x` does not exist / column "x" does not exist
    re.compile(r'column [`"]([^`"]+)[`"] does not exist'),
]

APPROVABLE = (PatchStatus.PENDING, PatchStatus.FAILED)


def parse_missing_column_error(error_message: str) -> Optional[str]:
    """
    Extract the column name from a missing-column error message.

    Returns:
        The column name, or None if the message is some other error
    """
    for pattern in MISSING_COLUMN_PATTERNS:
        match = pattern.search(error_message)
        if match:
            # MySQL may qualify the column: 'perf.tierBonus'
            return match.group(1).split(".")[-1]
    return None


class PatchWorkflow:
    """
    Pending schema patches: creation, approval, rejection, history.
    """

    def __init__(
        self,
        store: MetadataStore,
        registry: SchemaRegistry,
        resolver: CollisionResolver,
        applier: SchemaApplier,
        type_inferrer: Optional[TypeInferrer] = None
    ):
        self._store = store
        self.registry = registry
        self.resolver = resolver
        self.applier = applier
        self.type_inferrer = type_inferrer or TypeInferrer()
        self._patches: List[PendingPatch] = []
        self._next_id = 1
        self._load()

    # ------------------------------------------
    # Create
    # ------------------------------------------

    def create_from_error(
        self,
        table: str,
        error_message: str,
        record: Optional[Dict[str, Any]] = None,
        sync_run_id: Optional[str] = None
    ) -> Optional[PendingPatch]:
        """
        Create (or reuse) a patch from a storage "missing column" error.

        Args:
            table: Table the failed write targeted
            error_message: Driver error text
            record: Raw source record being written; used to find the raw
                field behind the column and to suggest a type
            sync_run_id: Run that hit the error

        Returns:
            The pending patch, or None if the error is not about a
            missing column
        """
        field_name = parse_missing_column_error(error_message)
        if field_name is None:
            return None

        raw_name = self.resolver.reverse(table, field_name)
        if raw_name is None and record is not None:
            raw_name = self._match_raw_name(field_name, record)
            if raw_name is not None:
                field_name = self.resolver.resolve_raw(table, raw_name)
        if raw_name is None:
            # Placeholder until a source field claims the column
            raw_name = field_name

        suggested_type = ColumnType.TEXT
        if record is not None and record.get(raw_name) is not None:
            suggested_type = self.type_inferrer.infer([record[raw_name]])

        logger.warning(f"Missing column '{table}.{field_name}' detected from storage error")
        return self._create(
            table=table,
            field_name=field_name,
            raw_name=raw_name,
            suggested_type=suggested_type,
            reason=f"Storage rejected write: column '{field_name}' does not exist",
            error_message=error_message,
            requested_by="sync",
            sync_run_id=sync_run_id,
        )

    def request_column(
        self,
        table: str,
        raw_name: str,
        safe_name: str,
        suggested_type: Optional[ColumnType] = None,
        reason: str = "",
        error_message: Optional[str] = None,
        sample: Any = None,
        sync_run_id: Optional[str] = None
    ) -> PendingPatch:
        """
        Request a column for a field the engine found unmaterialized.

        When no type is given it is inferred from `sample`.
        """
        if suggested_type is None:
            suggested_type = self.type_inferrer.infer([sample])
        return self._create(
            table=table,
            field_name=safe_name,
            raw_name=raw_name,
            suggested_type=suggested_type,
            reason=reason or f"New field '{raw_name}' found in source records",
            error_message=error_message,
            requested_by="sync",
            sync_run_id=sync_run_id,
        )

    def create_manual(
        self,
        table: str,
        raw_name: str,
        suggested_type: ColumnType = ColumnType.TEXT,
        reason: str = "",
        requested_by: str = "operator"
    ) -> PendingPatch:
        """Operator-initiated patch; the safe name comes from the resolver."""
        safe_name = self.resolver.resolve_raw(table, raw_name)
        return self._create(
            table=table,
            field_name=safe_name,
            raw_name=raw_name,
            suggested_type=suggested_type,
            reason=reason or "Manual column request",
            error_message=None,
            requested_by=requested_by,
            sync_run_id=None,
        )

    # ------------------------------------------
    # Decide
    # ------------------------------------------

    def approve(self, patch_id: int, approver: str, column_type: Optional[ColumnType] = None) -> PendingPatch:
        """
        Approve a patch and execute its DDL.

        Args:
            patch_id: Patch to approve (pending or failed)
            approver: Who approved it
            column_type: Overrides the suggested type

        Returns:
            The patch, now applied or failed

        Raises:
            PatchNotFoundError: unknown id
            PatchTransitionError: patch is not pending or failed
            Exception: anything unexpected from the applier, re-raised
                after the patch is marked failed
        """
        patch = self.get(patch_id)
        if patch.status not in APPROVABLE:
            raise PatchTransitionError(
                f"Patch {patch_id} is {patch.status.value}; only pending or failed patches can be approved",
                {"patch_id": patch_id, "status": patch.status.value},
            )

        if column_type is not None:
            patch.suggested_type = column_type

        patch.status = PatchStatus.APPROVED
        patch.approved_at = utc_now()
        patch.approved_by = approver
        self._save()
        logger.info(f"Patch {patch_id} approved by {approver}: {patch.table}.{patch.field_name}")

        column = ColumnDefinition(
            safe_name=patch.field_name,
            raw_name=patch.raw_name,
            type=patch.suggested_type,
        )
        try:
            # Source field unknown: hold the name for the first raw field that resolves to it
            if self.resolver.reverse(patch.table, patch.field_name) is None and patch.raw_name == patch.field_name:
                self.registry.record_mapping(patch.table, patch.raw_name, patch.field_name, provisional=True)
            self.applier.add_column(patch.table, column)
        except (SchemaApplyError, SchemaRegistryError) as e:
            self._fail(patch, e)
            return patch
        except Exception as e:
            # Anything else still leaves the patch re-approvable
            self._fail(patch, e)
            raise

        patch.status = PatchStatus.APPLIED
        patch.executed_at = utc_now()
        patch.execution_result = (
            f"Added column {patch.field_name} ({patch.suggested_type.value}) to {patch.table}"
        )
        self._save()
        logger.info(f"Patch {patch_id} applied: {patch.execution_result}")
        return patch

    def reject(self, patch_id: int, approver: str, reason: Optional[str] = None) -> PendingPatch:
        """
        Reject a pending patch. No DDL is run.

        Raises:
            PatchNotFoundError: unknown id
            PatchTransitionError: patch is not pending
        """
        patch = self.get(patch_id)
        if patch.status != PatchStatus.PENDING:
            raise PatchTransitionError(
                f"Patch {patch_id} is {patch.status.value}; only pending patches can be rejected",
                {"patch_id": patch_id, "status": patch.status.value},
            )

        patch.status = PatchStatus.REJECTED
        patch.rejected_at = utc_now()
        patch.rejected_by = approver
        if reason:
            patch.execution_result = f"Rejected: {reason}"
        self._save()
        logger.info(f"Patch {patch_id} rejected by {approver}")
        return patch

    # ------------------------------------------
    # Read
    # ------------------------------------------

    def get(self, patch_id: int) -> PendingPatch:
        for patch in self._patches:
            if patch.id == patch_id:
                return patch
        raise PatchNotFoundError(f"Patch {patch_id} not found", {"patch_id": patch_id})

    def list_pending(self, table: Optional[str] = None) -> List[PendingPatch]:
        return [
            p for p in self._patches
            if p.status == PatchStatus.PENDING and (table is None or p.table == table)
        ]

    def list_history(self, limit: int = 50) -> List[PendingPatch]:
        """Decided patches, most recent decision first."""
        decided = [p for p in self._patches if p.status != PatchStatus.PENDING]
        decided.sort(key=self._last_activity, reverse=True)
        return decided[:limit]

    def list_all(self, table: Optional[str] = None) -> List[PendingPatch]:
        return [p for p in self._patches if table is None or p.table == table]

    # ------------------------------------------
    # Internals
    # ------------------------------------------

    def _create(
        self,
        table: str,
        field_name: str,
        raw_name: str,
        suggested_type: ColumnType,
        reason: str,
        error_message: Optional[str],
        requested_by: str,
        sync_run_id: Optional[str]
    ) -> PendingPatch:
        existing = self._find_pending(table, field_name)
        if existing is not None:
            logger.debug(f"Patch {existing.id} already pending for {table}.{field_name}")
            return existing

        patch = PendingPatch(
            id=self._next_id,
            table=table,
            field_name=field_name,
            raw_name=raw_name,
            suggested_type=suggested_type,
            reason=reason,
            error_message=error_message,
            requested_by=requested_by,
            sync_run_id=sync_run_id,
        )
        self._next_id += 1
        self._patches.append(patch)
        self._save()
        logger.info(
            f"Created patch {patch.id}: add {table}.{field_name} "
            f"({suggested_type.value}) for raw field '{raw_name}'"
        )
        return patch

    def _fail(self, patch: PendingPatch, error: Exception) -> None:
        patch.status = PatchStatus.FAILED
        patch.executed_at = utc_now()
        patch.execution_result = str(error) or type(error).__name__
        self._save()
        logger.error(f"Patch {patch.id} failed: {error!r}")

    def _match_raw_name(self, field_name: str, record: Dict[str, Any]) -> Optional[str]:
        lowered = field_name.lower()
        for raw_name in record:
            if self.resolver.normalizer.normalize(raw_name).lower() == lowered:
                return raw_name
        return None

    def _find_pending(self, table: str, field_name: str) -> Optional[PendingPatch]:
        lowered = field_name.lower()
        for patch in self._patches:
            if (patch.status == PatchStatus.PENDING
                    and patch.table == table
                    and patch.field_name.lower() == lowered):
                return patch
        return None

    @staticmethod
    def _last_activity(patch: PendingPatch):
        return patch.executed_at or patch.rejected_at or patch.approved_at or patch.created_at

    def _load(self) -> None:
        data = self._store.load("patches")
        self._patches = [PendingPatch.from_dict(p) for p in data.get("items", [])]
        highest = max((p.id for p in self._patches), default=0)
        self._next_id = max(int(data.get("next_id", 1)), highest + 1)

    def _save(self) -> None:
        self._store.save("patches", {
            "next_id": self._next_id,
            "items": [p.to_dict() for p in self._patches],
        })
