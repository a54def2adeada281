"""
Relational store for jobs, steps and the system update log.

A ProductionStore wraps one SQLAlchemy session and is built per request; nothing
here holds module-level connection state.
"""
from contextlib import contextmanager
from typing import List, Optional

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from tracker.datetime_utils import utcnow
from tracker.errors import DuplicateJobNumber, EventLogAppendFailed, StoreUnavailable
from tracker.logging_config import get_logger
from tracker.models import Job, JobStatus, ProductionStep, SystemUpdate

logger = get_logger(__name__)


class ProductionStore:
    """Query interface the progression core talks to."""

    def __init__(self, session):
        self.session = session

    @contextmanager
    def _guard(self, operation):
        """Roll back and translate driver failures into StoreUnavailable."""
        try:
            yield
        except (DuplicateJobNumber, EventLogAppendFailed):
            raise
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Store operation failed", operation=operation, error=str(exc))
            raise StoreUnavailable(f"{operation} failed: {exc}") from exc

    def commit(self):
        with self._guard("commit"):
            self.session.commit()

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def insert_job(self, job: Job) -> Job:
        """Flush a new job row so the uniqueness constraint fires before steps are added."""
        with self._guard("insert_job"):
            self.session.add(job)
            try:
                self.session.flush()
            except IntegrityError as exc:
                self.session.rollback()
                raise DuplicateJobNumber(
                    f"Job number {job.job_number} already exists",
                    job_number=job.job_number,
                ) from exc
        return job

    def find_job(self, job_id) -> Optional[Job]:
        if not job_id:
            return None
        with self._guard("find_job"):
            return self.session.get(Job, str(job_id))

    def list_jobs(self) -> List[Job]:
        with self._guard("list_jobs"):
            return (
                self.session.query(Job)
                .order_by(Job.created_at.desc(), Job.id.desc())
                .all()
            )

    def update_job(self, job: Job) -> Job:
        """Persist manual edits to a job row (hold/resume)."""
        with self._guard("update_job"):
            job.updated_at = utcnow()
            self.session.add(job)
            self.session.commit()
        return job

    def update_job_aggregate_if_advanced(self, job_id, status: JobStatus, current_stage: int) -> bool:
        """
        Write a derived aggregate onto the job row.

        Status and completion timestamps are always written. current_stage is
        max(stored, current_stage), computed in the UPDATE itself, so a late or
        reopened step update can never move the pointer backward.

        Returns:
            bool: True if the job row exists and was written
        """
        now = utcnow()
        values = {
            "status": status,
            "current_stage": case(
                (Job.current_stage < current_stage, current_stage),
                else_=Job.current_stage,
            ),
            "updated_at": now,
        }
        if status in (JobStatus.IN_PROGRESS, JobStatus.COMPLETED):
            values["started_at"] = func.coalesce(Job.started_at, now)
        if status is JobStatus.COMPLETED:
            values["completed_at"] = func.coalesce(Job.completed_at, now)
        elif status is not JobStatus.ON_HOLD:
            values["completed_at"] = None

        stmt = (
            update(Job)
            .where(Job.id == str(job_id))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self._guard("update_job_aggregate_if_advanced"):
            result = self.session.execute(stmt)
            self.session.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def insert_steps(self, steps) -> None:
        with self._guard("insert_steps"):
            self.session.add_all(list(steps))
            self.session.flush()

    def insert_step(self, step: ProductionStep) -> ProductionStep:
        with self._guard("insert_step"):
            self.session.add(step)
            self.session.commit()
        return step

    def find_step(self, job_id, step_number: int) -> Optional[ProductionStep]:
        with self._guard("find_step"):
            return (
                self.session.query(ProductionStep)
                .filter_by(job_id=str(job_id), step_number=step_number)
                .first()
            )

    def find_step_by_id(self, step_id) -> Optional[ProductionStep]:
        if not step_id:
            return None
        with self._guard("find_step_by_id"):
            return self.session.get(ProductionStep, str(step_id))

    def list_steps(self, job_id) -> List[ProductionStep]:
        with self._guard("list_steps"):
            return (
                self.session.query(ProductionStep)
                .filter_by(job_id=str(job_id))
                .order_by(ProductionStep.step_number.asc())
                .all()
            )

    def update_step(self, step: ProductionStep) -> ProductionStep:
        with self._guard("update_step"):
            step.updated_at = utcnow()
            self.session.add(step)
            self.session.commit()
        return step

    # ------------------------------------------------------------------
    # System update log
    # ------------------------------------------------------------------

    def append_event_log(self, record: SystemUpdate) -> SystemUpdate:
        """Write one immutable record in its own commit."""
        try:
            self.session.add(record)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise EventLogAppendFailed(str(exc)) from exc
        return record

    def list_event_log_since(self, timestamp, limit: int) -> List[SystemUpdate]:
        """Records created strictly after timestamp, newest first (ties by id)."""
        with self._guard("list_event_log_since"):
            return (
                self.session.query(SystemUpdate)
                .filter(SystemUpdate.created_at > timestamp)
                .order_by(SystemUpdate.created_at.desc(), SystemUpdate.id.desc())
                .limit(limit)
                .all()
            )
