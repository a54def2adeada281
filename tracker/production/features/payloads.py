"""Request body shapes accepted at the HTTP boundary (camelCase or snake_case keys)."""
from typing import Any, Dict, Optional, TypedDict


class CreateJobRequest(TypedDict, total=False):
    jobNumber: str
    title: str
    productType: Optional[str]
    createdBy: str
    assignedTo: Optional[str]
    totalStages: int


class UpdateStepRequest(TypedDict, total=False):
    jobId: Optional[str]
    stepNumber: Optional[int]
    stepId: Optional[str]
    status: str
    completedBy: Optional[str]
    data: Optional[Dict[str, Any]]


class HoldJobRequest(TypedDict, total=False):
    reason: str
    heldBy: Optional[str]


def pick(payload: dict, *keys, default=None):
    """First present, non-None value among alternative spellings of a field."""
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return default
