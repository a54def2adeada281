from flask_sqlalchemy import SQLAlchemy
import json
import uuid
from enum import Enum

from tracker.datetime_utils import utcnow, format_timestamp

db = SQLAlchemy()


def new_id():
    return str(uuid.uuid4())


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class JobStatus(Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"


class StepStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class UpdateType(Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class Job(db.Model):
    """A manufacturing job moving through a fixed number of production stages."""
    __tablename__ = "manufacturing_jobs"
    __table_args__ = (
        db.UniqueConstraint("job_number", name="_job_number_uc"),
        db.Index("idx_manufacturing_jobs_status", "status"),
        db.Index("idx_manufacturing_jobs_created_at", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    job_number = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    product_type = db.Column(db.String(100), nullable=False, default="Custom")

    # Derived from step state; only ON_HOLD is ever set by hand
    status = db.Column(
        db.Enum(JobStatus, name="job_status", values_callable=_enum_values),
        nullable=False,
        default=JobStatus.DRAFT,
    )
    current_stage = db.Column(db.Integer, nullable=False, default=1)
    total_stages = db.Column(db.Integer, nullable=False, default=5)

    created_by = db.Column(db.String(255), nullable=False)
    assigned_to = db.Column(db.String(255), nullable=True)
    hold_reason = db.Column(db.String(500), nullable=True)

    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    steps = db.relationship(
        "ProductionStep",
        back_populates="job",
        order_by="ProductionStep.step_number",
        lazy="select",
    )

    def __repr__(self):
        return f"<Job {self.job_number} - {self.status.value if self.status else None} - stage {self.current_stage}/{self.total_stages}>"

    @property
    def progress(self):
        completed = max(0, min((self.current_stage or 1) - 1, self.total_stages))
        return {"completed": completed, "total": self.total_stages}

    def to_dict(self):
        return {
            "id": self.id,
            "jobNumber": self.job_number,
            "title": self.title,
            "productType": self.product_type,
            "status": self.status.value if self.status else None,
            "currentStage": self.current_stage,
            "totalStages": self.total_stages,
            "createdBy": self.created_by,
            "assignedTo": self.assigned_to,
            "holdReason": self.hold_reason,
            "startedAt": format_timestamp(self.started_at),
            "completedAt": format_timestamp(self.completed_at),
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }


class ProductionStep(db.Model):
    """One ordered step of a job. completed_by/completed_at are set only while completed."""
    __tablename__ = "production_steps"
    __table_args__ = (
        db.UniqueConstraint("job_id", "step_number", name="_job_step_number_uc"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    job_id = db.Column(db.String(36), db.ForeignKey("manufacturing_jobs.id"), nullable=False, index=True)
    step_number = db.Column(db.Integer, nullable=False)
    step_name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    status = db.Column(
        db.Enum(StepStatus, name="step_status", values_callable=_enum_values),
        nullable=False,
        default=StepStatus.PENDING,
    )
    assigned_to = db.Column(db.String(255), nullable=True)
    completed_by = db.Column(db.String(255), nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    # Opaque JSON text, e.g. inspection form fields
    data = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    job = db.relationship("Job", back_populates="steps")

    def __repr__(self):
        return f"<ProductionStep {self.job_id}#{self.step_number} - {self.status.value if self.status else None}>"

    @property
    def payload(self):
        if not self.data:
            return {}
        try:
            return json.loads(self.data)
        except ValueError:
            return self.data

    def to_dict(self):
        return {
            "id": self.id,
            "jobId": self.job_id,
            "stepNumber": self.step_number,
            "stepName": self.step_name,
            "description": self.description,
            "status": self.status.value if self.status else None,
            "assignedTo": self.assigned_to,
            "completedBy": self.completed_by,
            "completedAt": format_timestamp(self.completed_at),
            "data": self.payload,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }


class SystemUpdate(db.Model):
    """Append-only log of state changes consumed by pollers and the push relay."""
    __tablename__ = "system_updates"
    __table_args__ = (
        db.Index("idx_system_updates_created_at", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    update_type = db.Column(db.String(100), nullable=False)
    entity_type = db.Column(db.String(100), nullable=False)
    entity_id = db.Column(db.String(36), nullable=False, index=True)
    data = db.Column(db.Text, nullable=False)
    created_by = db.Column(db.String(255), nullable=True)
    # Stamped at INSERT from the writing worker's clock, not the database's: SQLite's
    # CURRENT_TIMESTAMP has one-second resolution and `since` polling needs microseconds.
    # Feed order across workers is only as good as their NTP sync.
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<SystemUpdate {self.update_type}/{self.entity_type} {self.entity_id}>"
