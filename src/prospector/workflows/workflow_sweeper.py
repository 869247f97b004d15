from datetime import datetime, timedelta, timezone
from uuid import UUID

from prospector.main.logging import get_logger
from prospector.workflows.workflow_repo import WorkflowRepository

logger = get_logger(__name__)


class WorkflowSweeper:
    """Closes workflows left RUNNING by a consumer that died mid-job."""

    def __init__(self, workflow_repo: WorkflowRepository, timeout_minutes: int):
        self.workflow_repo = workflow_repo
        self.timeout_minutes = timeout_minutes

    async def sweep(self) -> list[UUID]:
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=self.timeout_minutes)
        workflow_ids = await self.workflow_repo.mark_stuck_running_finished(cutoff)

        if workflow_ids:
            logger.warning(
                f"Marked {len(workflow_ids)} stuck workflows as FINISHED",
                extra={
                    "workflow_ids": [str(workflow_id) for workflow_id in workflow_ids],
                    "timeout_minutes": self.timeout_minutes,
                },
            )
        else:
            logger.debug("No stuck workflows found")

        return workflow_ids
