import json
from dataclasses import dataclass
from typing import Any, Optional

from tracker.datetime_utils import utcnow
from tracker.errors import InvalidInput, NotFound
from tracker.logging_config import OperationContext, get_logger
from tracker.models import JobStatus, ProductionStep, StepStatus, UpdateType
from tracker.production.engine import ProgressionEngine, derive_job_aggregate
from tracker.production.features.payloads import UpdateStepRequest, pick
from tracker.production.features.update_step.results import StepUpdateResult
from tracker.production.services.system_update_service import SystemUpdateService

logger = get_logger(__name__)


@dataclass
class UpdateStepCommand:
    """
    Apply one step status change and re-derive the owning job's aggregate.

    - Resolves the step by step_id, else by (job_id, step_number)
    - Persists status; completion stamps completed_by/completed_at, anything else clears them
    - Recomputes {status, current_stage} from the full step set and writes it in one
      UPDATE that never moves current_stage backward
    - Appends an updated/step system update keyed to completed_by
    """
    status: Any
    completed_by: Optional[str] = None
    job_id: Optional[str] = None
    step_number: Any = None
    step_id: Optional[str] = None
    data: Any = None
    # Compatibility branch for terminals that address steps the factory never created
    allow_implicit_create: bool = False

    @classmethod
    def from_payload(cls, payload: UpdateStepRequest, allow_implicit_create: bool = False) -> "UpdateStepCommand":
        return cls(
            status=pick(payload, "status"),
            completed_by=pick(payload, "completedBy", "completed_by"),
            job_id=pick(payload, "jobId", "job_id"),
            step_number=pick(payload, "stepNumber", "step_number"),
            step_id=pick(payload, "stepId", "step_id"),
            data=payload.get("data"),
            allow_implicit_create=allow_implicit_create,
        )

    def _validated_status(self):
        is_valid, status, error = ProgressionEngine.validate_step_status(self.status)
        if not is_valid:
            raise InvalidInput(error)
        completed_by = ProgressionEngine.validate_required_text(self.completed_by)
        if status is StepStatus.COMPLETED and completed_by is None:
            raise InvalidInput("completedBy is required when marking a step completed")
        if not self.step_id and (not self.job_id or self.step_number is None):
            raise InvalidInput("Either stepId or (jobId + stepNumber) is required")
        return status, completed_by

    def _resolve(self, store):
        """
        Returns:
            (job, step or None, step_number) - step is None only when it must be created
        """
        if self.step_id:
            step = store.find_step_by_id(self.step_id)
            if step is None:
                raise NotFound(f"Production step {self.step_id} not found", step_id=str(self.step_id))
            if self.job_id and str(self.job_id) != step.job_id:
                raise InvalidInput(
                    f"Step {self.step_id} does not belong to job {self.job_id}",
                    step_id=str(self.step_id),
                    job_id=str(self.job_id),
                )
            job = store.find_job(step.job_id)
            if job is None:
                raise NotFound(f"Job {step.job_id} not found", job_id=step.job_id)
            return job, step, step.step_number

        job = store.find_job(self.job_id)
        if job is None:
            raise NotFound(f"Job {self.job_id} not found", job_id=str(self.job_id))

        is_valid, step_number, error = ProgressionEngine.validate_step_number(self.step_number, job.total_stages)
        if not is_valid:
            raise InvalidInput(error)

        step = store.find_step(job.id, step_number)
        if step is None and not self.allow_implicit_create:
            raise NotFound(
                f"Production step {step_number} not found for job {job.id}",
                job_id=job.id,
                step_number=step_number,
            )
        return job, step, step_number

    def _apply(self, step: ProductionStep, status: StepStatus, completed_by: Optional[str]) -> None:
        step.status = status
        if status is StepStatus.COMPLETED:
            step.completed_by = completed_by
            step.completed_at = utcnow()
        else:
            step.completed_by = None
            step.completed_at = None
        if self.data is not None:
            step.data = self.data if isinstance(self.data, str) else json.dumps(self.data, default=str)

    def execute(self, store, system_updates: Optional[SystemUpdateService] = None) -> StepUpdateResult:
        """
        Raises:
            InvalidInput: unknown status, missing addressing fields or completedBy
            NotFound: job or step does not exist
            StoreUnavailable: persistence failure (not retried here)
        """
        status, completed_by = self._validated_status()
        system_updates = system_updates or SystemUpdateService(store)

        with OperationContext("update_step", step_id=self.step_id, job_id=self.job_id,
                              step_number=self.step_number, status=status.value):
            job, step, step_number = self._resolve(store)

            step_created = step is None
            if step_created:
                logger.warning(
                    "Creating missing production step on update",
                    job_id=job.id,
                    job_number=job.job_number,
                    step_number=step_number,
                )
                step = ProductionStep(
                    job_id=job.id,
                    step_number=step_number,
                    step_name=f"Step {step_number}",
                    description=f"Production step {step_number}",
                )
                self._apply(step, status, completed_by)
                store.insert_step(step)
            else:
                self._apply(step, status, completed_by)
                store.update_step(step)

            # Always derive from the full step set so a stale aggregate heals itself
            aggregate = derive_job_aggregate(store.list_steps(job.id), job.total_stages)
            target_status = aggregate.status
            if job.status is JobStatus.ON_HOLD:
                target_status = JobStatus.ON_HOLD

            previous_status, previous_stage = job.status, job.current_stage
            aggregate_changed = False
            if (target_status, aggregate.current_stage) != (previous_status, previous_stage):
                store.update_job_aggregate_if_advanced(job.id, target_status, aggregate.current_stage)
                # The commit expired the job; these reads return the stored row
                aggregate_changed = (job.status, job.current_stage) != (previous_status, previous_stage)
                logger.info(
                    "Job aggregate derived",
                    job_id=job.id,
                    from_status=previous_status.value,
                    from_stage=previous_stage,
                    to_status=job.status.value,
                    to_stage=job.current_stage,
                    derived_stage=aggregate.current_stage,
                )

            job_snapshot = job.to_dict()
            step_snapshot = step.to_dict()
            event_payload = dict(step_snapshot)
            event_payload.update({
                "jobNumber": job_snapshot["jobNumber"],
                "jobStatus": job_snapshot["status"],
                "currentStage": job_snapshot["currentStage"],
                "totalStages": job_snapshot["totalStages"],
            })
            record = system_updates.append(UpdateType.UPDATED, "step", step.id, event_payload, completed_by)

        return StepUpdateResult(
            step=step_snapshot,
            job=job_snapshot,
            aggregate_changed=aggregate_changed,
            step_created=step_created,
            update_id=record.id if record else None,
        )
