"""
Pure business logic for job/step progression.
Contains no database dependencies - works with plain objects exposing
step_number and status.
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from tracker.models import JobStatus, StepStatus


DEFAULT_STEP_NAMES = [
    "Material Preparation",
    "Production Setup",
    "Manufacturing Process",
    "Quality Control",
    "Final Inspection",
]

COMPLETED_STAGE_LABEL = "Completed"


@dataclass(frozen=True)
class JobAggregate:
    """Derived job state: aggregate status plus the current-stage pointer."""
    status: JobStatus
    current_stage: int

    def is_terminal(self, total_stages: int) -> bool:
        return self.current_stage > total_stages


def _step_status(step) -> StepStatus:
    return StepStatus(step.status)


def derive_job_aggregate(steps: Iterable, total_stages: int) -> JobAggregate:
    """
    Map a job's full step collection to its aggregate status and current stage.

    Declared positions 1..total_stages without a step row count as not completed.
    current_stage is the first position not completed, or total_stages + 1 once
    every position is.

    Args:
        steps: Step-like objects (step_number, status); any order
        total_stages: Declared stage count of the job

    Returns:
        JobAggregate
    """
    by_number = {}
    for step in sorted(steps, key=lambda s: s.step_number):
        by_number[step.step_number] = _step_status(step)

    current_stage = total_stages + 1
    for position in range(1, total_stages + 1):
        if by_number.get(position) is not StepStatus.COMPLETED:
            current_stage = position
            break

    if current_stage > total_stages:
        return JobAggregate(JobStatus.COMPLETED, current_stage)

    worked_on = any(
        status in (StepStatus.COMPLETED, StepStatus.IN_PROGRESS)
        for status in by_number.values()
    )
    return JobAggregate(JobStatus.IN_PROGRESS if worked_on else JobStatus.DRAFT, current_stage)


def current_stage_label(steps: Iterable, current_stage: int, total_stages: int) -> Optional[str]:
    """Human label for the active step, or "Completed" past the last stage."""
    if current_stage > total_stages:
        return COMPLETED_STAGE_LABEL
    for step in steps:
        if step.step_number == current_stage:
            return step.step_name
    return f"Step {current_stage}"


class ProgressionEngine:
    """Validation rules for job and step inputs."""

    VALID_STEP_STATUSES = [status.value for status in StepStatus]

    @staticmethod
    def default_step_names(total_stages: int) -> List[str]:
        """Names of the steps the factory materializes for a new job."""
        return DEFAULT_STEP_NAMES[:min(total_stages, len(DEFAULT_STEP_NAMES))]

    @staticmethod
    def validate_required_text(value) -> Optional[str]:
        """Normalize a required text field: stripped string, or None when blank."""
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned if cleaned else None

    @staticmethod
    def validate_total_stages(total_stages) -> Tuple[bool, Optional[int], Optional[str]]:
        """
        Validate totalStages.

        Returns:
            (is_valid, normalized_value, error_message)
        """
        if isinstance(total_stages, bool):
            return False, None, "totalStages must be an integer >= 1"
        if isinstance(total_stages, float) and not total_stages.is_integer():
            return False, None, "totalStages must be an integer >= 1"
        try:
            value = int(total_stages)
        except (TypeError, ValueError):
            return False, None, "totalStages must be an integer >= 1"
        if value < 1:
            return False, None, "totalStages must be an integer >= 1"
        return True, value, None

    @staticmethod
    def validate_step_status(status) -> Tuple[bool, Optional[StepStatus], Optional[str]]:
        """
        Validate a requested step status.

        Returns:
            (is_valid, normalized_status, error_message)
        """
        try:
            return True, StepStatus(status), None
        except ValueError:
            valid_display = ", ".join(ProgressionEngine.VALID_STEP_STATUSES)
            return False, None, f"status must be one of: {valid_display}"

    @staticmethod
    def validate_step_number(step_number, total_stages: int) -> Tuple[bool, Optional[int], Optional[str]]:
        """stepNumber must be an integer within 1..total_stages."""
        if isinstance(step_number, bool):
            return False, None, "stepNumber must be an integer"
        if isinstance(step_number, float) and not step_number.is_integer():
            return False, None, "stepNumber must be an integer"
        try:
            value = int(step_number)
        except (TypeError, ValueError):
            return False, None, "stepNumber must be an integer"
        if value < 1 or value > total_stages:
            return False, None, f"stepNumber must be between 1 and {total_stages}"
        return True, value, None
