"""
Tests for the progression engine (pure business logic).
These tests have no database or Flask dependencies - steps are plain objects.
"""
import itertools
from types import SimpleNamespace

import pytest

from tracker.models import JobStatus, StepStatus
from tracker.production.engine import (
    DEFAULT_STEP_NAMES,
    JobAggregate,
    ProgressionEngine,
    current_stage_label,
    derive_job_aggregate,
)


def make_steps(statuses, names=None):
    """Build step-like objects numbered 1..N from a list of status values."""
    names = names or [f"Step {i}" for i in range(1, len(statuses) + 1)]
    return [
        SimpleNamespace(step_number=number, status=status, step_name=name)
        for number, (status, name) in enumerate(zip(statuses, names), start=1)
    ]


# ==============================================================================
# AGGREGATE DERIVATION TESTS
# ==============================================================================

class TestDeriveJobAggregate:
    """Tests for derive_job_aggregate."""

    def test_all_pending_is_draft_at_stage_one(self):
        steps = make_steps(["pending"] * 3)
        assert derive_job_aggregate(steps, 3) == JobAggregate(JobStatus.DRAFT, 1)

    @pytest.mark.parametrize("total,k", [(3, 1), (3, 2), (5, 1), (5, 4), (8, 3)])
    def test_completing_prefix_points_at_next_stage(self, total, k):
        """After steps 1..k are completed, current stage is k+1 and the job is in progress."""
        steps = make_steps(["completed"] * k + ["pending"] * (total - k))
        aggregate = derive_job_aggregate(steps, total)
        assert aggregate.current_stage == k + 1
        assert aggregate.status is JobStatus.IN_PROGRESS

    def test_all_completed_is_terminal(self):
        steps = make_steps(["completed"] * 3)
        aggregate = derive_job_aggregate(steps, 3)
        assert aggregate == JobAggregate(JobStatus.COMPLETED, 4)
        assert aggregate.is_terminal(3)

    def test_completion_order_does_not_matter(self):
        """Every completion order of the same steps ends completed."""
        for order in itertools.permutations([1, 2, 3, 4]):
            statuses = {n: "pending" for n in range(1, 5)}
            for number in order:
                statuses[number] = "completed"
            steps = make_steps([statuses[n] for n in range(1, 5)])
            assert derive_job_aggregate(steps, 4).status is JobStatus.COMPLETED

    def test_in_progress_step_without_completion_moves_out_of_draft(self):
        steps = make_steps(["in_progress", "pending", "pending"])
        assert derive_job_aggregate(steps, 3) == JobAggregate(JobStatus.IN_PROGRESS, 1)

    def test_out_of_order_completion_keeps_pointer_on_first_gap(self):
        steps = make_steps(["pending", "completed", "completed", "completed"])
        assert derive_job_aggregate(steps, 4) == JobAggregate(JobStatus.IN_PROGRESS, 1)

    def test_missing_rows_count_as_not_completed(self):
        """Declared stages without a step row block completion."""
        steps = make_steps(["completed"] * 5)
        aggregate = derive_job_aggregate(steps, 8)
        assert aggregate.status is JobStatus.IN_PROGRESS
        assert aggregate.current_stage == 6

    def test_unsorted_input_is_accepted(self):
        steps = list(reversed(make_steps(["completed", "completed", "pending"])))
        assert derive_job_aggregate(steps, 3).current_stage == 3

    def test_accepts_enum_statuses(self):
        steps = make_steps([StepStatus.COMPLETED, StepStatus.PENDING])
        assert derive_job_aggregate(steps, 2) == JobAggregate(JobStatus.IN_PROGRESS, 2)

    def test_is_idempotent(self):
        steps = make_steps(["completed", "in_progress", "pending"])
        assert derive_job_aggregate(steps, 3) == derive_job_aggregate(steps, 3)

    def test_unknown_status_raises(self):
        steps = make_steps(["done"])
        with pytest.raises(ValueError):
            derive_job_aggregate(steps, 1)


class TestCurrentStageLabel:
    def test_label_is_active_step_name(self):
        steps = make_steps(["completed", "pending"], names=["Material Preparation", "Production Setup"])
        assert current_stage_label(steps, 2, 2) == "Production Setup"

    def test_terminal_label(self):
        steps = make_steps(["completed"])
        assert current_stage_label(steps, 2, 1) == "Completed"

    def test_missing_row_falls_back_to_step_number(self):
        assert current_stage_label([], 3, 5) == "Step 3"


# ==============================================================================
# VALIDATION TESTS
# ==============================================================================

class TestProgressionEngine:
    """Tests for ProgressionEngine validation methods."""

    @pytest.mark.parametrize("total,expected", [(1, 1), (3, 3), (5, 5), (8, 5)])
    def test_default_step_names_are_capped_at_five(self, total, expected):
        names = ProgressionEngine.default_step_names(total)
        assert len(names) == expected
        assert names == DEFAULT_STEP_NAMES[:expected]

    def test_validate_required_text(self):
        assert ProgressionEngine.validate_required_text("  J-100 ") == "J-100"
        assert ProgressionEngine.validate_required_text("   ") is None
        assert ProgressionEngine.validate_required_text(None) is None

    @pytest.mark.parametrize("value,expected", [(1, 1), (5, 5), ("3", 3), (4.0, 4)])
    def test_validate_total_stages_accepts_integers(self, value, expected):
        is_valid, normalized, error = ProgressionEngine.validate_total_stages(value)
        assert is_valid is True
        assert normalized == expected
        assert error is None

    @pytest.mark.parametrize("value", [0, -1, "abc", None, 2.5, True])
    def test_validate_total_stages_rejects_invalid(self, value):
        is_valid, normalized, error = ProgressionEngine.validate_total_stages(value)
        assert is_valid is False
        assert normalized is None
        assert ">= 1" in error

    def test_validate_step_status(self):
        is_valid, status, error = ProgressionEngine.validate_step_status("completed")
        assert is_valid is True
        assert status is StepStatus.COMPLETED
        assert error is None

    def test_validate_step_status_rejects_unknown(self):
        is_valid, status, error = ProgressionEngine.validate_step_status("skipped")
        assert is_valid is False
        assert status is None
        assert "must be one of" in error

    def test_validate_step_number_range(self):
        assert ProgressionEngine.validate_step_number(3, 3) == (True, 3, None)
        assert ProgressionEngine.validate_step_number("2", 3) == (True, 2, None)
        assert ProgressionEngine.validate_step_number(0, 3)[0] is False
        assert ProgressionEngine.validate_step_number(4, 3)[0] is False
        assert ProgressionEngine.validate_step_number("x", 3)[0] is False

    @pytest.mark.parametrize("step_number", [2.7, 1.5, True])
    def test_validate_step_number_rejects_non_integers(self, step_number):
        assert ProgressionEngine.validate_step_number(step_number, 3) == (False, None, "stepNumber must be an integer")

    def test_validate_step_number_accepts_integral_float(self):
        assert ProgressionEngine.validate_step_number(2.0, 3) == (True, 2, None)
