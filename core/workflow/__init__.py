"""Publication workflow collaborator (process variables + last-published state)."""

from .service import METADATA_COMPLETE_VAR, WorkflowService

__all__ = ["METADATA_COMPLETE_VAR", "WorkflowService"]
