from dataclasses import dataclass
from typing import Any, Optional

from tracker.errors import InvalidInput
from tracker.logging_config import OperationContext, get_logger
from tracker.models import Job, JobStatus, ProductionStep, StepStatus, UpdateType
from tracker.production.engine import ProgressionEngine
from tracker.production.features.create_job.results import JobCreateResult
from tracker.production.features.payloads import CreateJobRequest, pick
from tracker.production.services.system_update_service import SystemUpdateService

logger = get_logger(__name__)

DEFAULT_TOTAL_STAGES = 5
DEFAULT_PRODUCT_TYPE = "Custom"


@dataclass
class CreateJobCommand:
    """
    Create a job together with its ordered default steps.

    - Flushes the job row first so the job_number constraint fires before any step exists
    - Adds min(total_stages, 5) pending steps and commits job + steps together
    - Appends a created/job system update carrying the full job snapshot, last
    """
    job_number: Optional[str]
    title: Optional[str]
    created_by: Optional[str]
    total_stages: Any = DEFAULT_TOTAL_STAGES
    product_type: Optional[str] = None
    assigned_to: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: CreateJobRequest) -> "CreateJobCommand":
        return cls(
            job_number=pick(payload, "jobNumber", "job_number"),
            title=pick(payload, "title"),
            created_by=pick(payload, "createdBy", "created_by"),
            total_stages=pick(payload, "totalStages", "total_stages", default=DEFAULT_TOTAL_STAGES),
            product_type=pick(payload, "productType", "product_type"),
            assigned_to=pick(payload, "assignedTo", "assigned_to"),
        )

    def _validated(self):
        job_number = ProgressionEngine.validate_required_text(self.job_number)
        title = ProgressionEngine.validate_required_text(self.title)
        created_by = ProgressionEngine.validate_required_text(self.created_by)

        missing = [
            name for name, value in (
                ("jobNumber", job_number), ("title", title), ("createdBy", created_by)
            ) if value is None
        ]
        if missing:
            raise InvalidInput(f"Missing required fields: {', '.join(missing)}", missing=missing)

        is_valid, total_stages, error = ProgressionEngine.validate_total_stages(self.total_stages)
        if not is_valid:
            raise InvalidInput(error)

        return job_number, title, created_by, total_stages

    def execute(self, store, system_updates: Optional[SystemUpdateService] = None) -> JobCreateResult:
        """
        Returns:
            JobCreateResult with the job snapshot and its steps

        Raises:
            InvalidInput: required field missing or totalStages < 1
            DuplicateJobNumber: job_number already taken (no steps are written)
            StoreUnavailable: persistence failure
        """
        job_number, title, created_by, total_stages = self._validated()
        system_updates = system_updates or SystemUpdateService(store)

        with OperationContext("create_job", job_number=job_number):
            job = Job(
                job_number=job_number,
                title=title,
                product_type=ProgressionEngine.validate_required_text(self.product_type) or DEFAULT_PRODUCT_TYPE,
                status=JobStatus.DRAFT,
                current_stage=1,
                total_stages=total_stages,
                created_by=created_by,
                assigned_to=ProgressionEngine.validate_required_text(self.assigned_to) or created_by,
            )
            store.insert_job(job)

            steps = [
                ProductionStep(
                    job_id=job.id,
                    step_number=number,
                    step_name=name,
                    description=f"Complete {name}",
                    status=StepStatus.PENDING,
                )
                for number, name in enumerate(ProgressionEngine.default_step_names(total_stages), start=1)
            ]
            store.insert_steps(steps)
            store.commit()

            snapshot = job.to_dict()
            step_snapshots = [step.to_dict() for step in steps]
            logger.info(
                "Job created",
                job_id=job.id,
                job_number=job_number,
                total_stages=total_stages,
                steps_created=len(steps),
            )

            record = system_updates.append(UpdateType.CREATED, "job", job.id, snapshot, created_by)

        return JobCreateResult(
            job=snapshot,
            steps=step_snapshots,
            update_id=record.id if record else None,
        )
