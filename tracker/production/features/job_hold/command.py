from dataclasses import dataclass
from typing import Optional

from tracker.errors import InvalidInput, NotFound
from tracker.logging_config import OperationContext, get_logger
from tracker.models import JobStatus, UpdateType
from tracker.production.engine import ProgressionEngine, derive_job_aggregate
from tracker.production.services.system_update_service import SystemUpdateService

logger = get_logger(__name__)


def _load_job(store, job_id):
    job = store.find_job(job_id)
    if job is None:
        raise NotFound(f"Job {job_id} not found", job_id=str(job_id))
    return job


@dataclass
class HoldJobCommand:
    """Manually park a job. on_hold is the only status ever set by hand."""
    job_id: str
    reason: Optional[str]
    held_by: Optional[str] = None

    def execute(self, store, system_updates: Optional[SystemUpdateService] = None) -> dict:
        reason = ProgressionEngine.validate_required_text(self.reason)
        if reason is None:
            raise InvalidInput("A hold reason is required")
        system_updates = system_updates or SystemUpdateService(store)

        with OperationContext("hold_job", job_id=self.job_id):
            job = _load_job(store, self.job_id)
            if job.status is JobStatus.COMPLETED:
                raise InvalidInput(f"Job {job.job_number} is completed and cannot be put on hold")

            previous_status = job.status
            job.status = JobStatus.ON_HOLD
            job.hold_reason = reason
            store.update_job(job)

            snapshot = job.to_dict()
            logger.info("Job put on hold", job_id=job.id, from_status=previous_status.value, reason=reason)
            system_updates.append(UpdateType.UPDATED, "job", job.id, snapshot, self.held_by)
        return snapshot


@dataclass
class ResumeJobCommand:
    """Release a held job; its status is re-derived from the full step set."""
    job_id: str
    resumed_by: Optional[str] = None

    def execute(self, store, system_updates: Optional[SystemUpdateService] = None) -> dict:
        system_updates = system_updates or SystemUpdateService(store)

        with OperationContext("resume_job", job_id=self.job_id):
            job = _load_job(store, self.job_id)
            if job.status is not JobStatus.ON_HOLD:
                raise InvalidInput(f"Job {job.job_number} is not on hold")

            aggregate = derive_job_aggregate(store.list_steps(job.id), job.total_stages)
            job.hold_reason = None
            store.update_job(job)
            store.update_job_aggregate_if_advanced(job.id, aggregate.status, aggregate.current_stage)

            snapshot = job.to_dict()
            logger.info(
                "Job resumed",
                job_id=job.id,
                status=snapshot["status"],
                current_stage=snapshot["currentStage"],
            )
            system_updates.append(UpdateType.UPDATED, "job", job.id, snapshot, self.resumed_by)
        return snapshot
