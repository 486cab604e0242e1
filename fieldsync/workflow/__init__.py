# ==============================================
# WORKFLOW (Human-approved schema patches)
# ==============================================
#
# Modules:
# --------
# - patch_workflow.py  → PendingPatch lifecycle: create, approve, reject
#
# ==============================================

from .patch_workflow import PatchWorkflow, parse_missing_column_error

__all__ = [
    "PatchWorkflow",
    "parse_missing_column_error"
]
