"""Persistence of workflow definitions and run records"""

from typing import List, Optional

from src.utils.config import WORKFLOW_DEFINITION_NAMESPACE, WORKFLOW_RUN_NAMESPACE
from src.utils.logging import get_smart_logger
from src.utils.storage import AsyncStoreAdapter
from .models import WorkflowDefinition
from .runner import WorkflowRun
from .serialization import DocumentSource, load_definition, to_document

logger = get_smart_logger("storage")


class WorkflowRepository:
    """Stores each definition as one whole document.

    There are no partial updates: an edit is a new tree, and saving writes
    the full step list under the workflow id.
    """

    def __init__(self, storage: AsyncStoreAdapter):
        self.storage = storage
        self.definition_namespace = WORKFLOW_DEFINITION_NAMESPACE
        self.run_namespace = WORKFLOW_RUN_NAMESPACE

    async def save(self, workflow_id: str, definition: DocumentSource) -> WorkflowDefinition:
        """Validate and store a definition, returning the stored model"""
        definition = load_definition(definition)
        try:
            await self.storage.put(
                self.definition_namespace,
                workflow_id,
                {"steps": to_document(definition)}
            )
        except Exception as e:
            logger.error("workflow_definition_save_failed",
                         workflow_id=workflow_id,
                         error=str(e),
                         error_type=type(e).__name__)
            raise

        logger.info("workflow_definition_saved",
                    workflow_id=workflow_id,
                    root_steps=len(definition.steps))
        return definition

    async def load(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        """Load a stored definition, applying load-time repairs. None if absent."""
        data = await self.storage.get(self.definition_namespace, workflow_id)
        if data is None:
            logger.info("workflow_definition_not_found", workflow_id=workflow_id)
            return None
        return load_definition(data)

    async def delete(self, workflow_id: str) -> bool:
        deleted = await self.storage.delete(self.definition_namespace, workflow_id)
        logger.info("workflow_definition_deleted", workflow_id=workflow_id, deleted=deleted)
        return deleted

    async def list_ids(self) -> List[str]:
        return await self.storage.list_keys(self.definition_namespace)

    async def save_run(self, run: WorkflowRun):
        """Store a run record (history, outputs, unresolved variables)"""
        await self.storage.put(self.run_namespace, run.id, run.model_dump(mode="json"))
        logger.info("workflow_run_saved",
                    run_id=run.id,
                    workflow_id=run.workflow_id,
                    status=run.status.value)

    async def load_run(self, run_id: str) -> Optional[WorkflowRun]:
        data = await self.storage.get(self.run_namespace, run_id)
        if data is None:
            return None
        return WorkflowRun.model_validate(data)
