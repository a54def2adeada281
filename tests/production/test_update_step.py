"""
Tests for UpdateStepCommand: step transitions and the derived job aggregate.
"""
import itertools
from datetime import timedelta

import pytest

from tracker.datetime_utils import utcnow
from tracker.errors import InvalidInput, NotFound
from tracker.models import Job, JobStatus, ProductionStep, SystemUpdate, db
from tracker.production.features.create_job.command import CreateJobCommand
from tracker.production.features.update_step.command import UpdateStepCommand
from tracker.production.services.system_update_service import SystemUpdateService


@pytest.fixture
def job(store):
    result = CreateJobCommand(
        job_number="J-100", title="Bracket", created_by="alice", total_stages=3
    ).execute(store)
    return result.job


def complete(store, job_id, step_number, by="bob"):
    return UpdateStepCommand(
        status="completed", completed_by=by, job_id=job_id, step_number=step_number
    ).execute(store)


def stored_job(job_id):
    db.session.expire_all()
    return db.session.get(Job, job_id)


# ==============================================================================
# PROGRESSION SCENARIOS
# ==============================================================================

class TestProgression:
    def test_completing_steps_in_order(self, store, job):
        result = complete(store, job["id"], 1)
        assert result.job["status"] == "in_progress"
        assert result.job["currentStage"] == 2
        assert result.aggregate_changed is True
        assert result.job["startedAt"] is not None

        complete(store, job["id"], 2)
        result = complete(store, job["id"], 3)
        assert result.job["status"] == "completed"
        assert result.job["currentStage"] == 4
        assert result.job["completedAt"] is not None

    def test_completed_step_records_actor_and_time(self, store, job):
        result = complete(store, job["id"], 1, by="bob")
        assert result.step["status"] == "completed"
        assert result.step["completedBy"] == "bob"
        assert result.step["completedAt"] is not None

    def test_starting_a_step_moves_job_out_of_draft(self, store, job):
        result = UpdateStepCommand(status="in_progress", job_id=job["id"], step_number=1).execute(store)
        assert result.job["status"] == "in_progress"
        assert result.job["currentStage"] == 1

    @pytest.mark.parametrize("order", list(itertools.permutations([1, 2, 3])))
    def test_any_completion_order_ends_completed(self, store, job, order):
        for step_number in order:
            result = complete(store, job["id"], step_number)
        assert result.job["status"] == "completed"
        assert result.job["currentStage"] == 4

    def test_out_of_order_completion_keeps_pointer_on_gap(self, store, job):
        result = complete(store, job["id"], 2)
        assert result.job["status"] == "in_progress"
        assert result.job["currentStage"] == 1

    def test_stage_never_moves_backward(self, store, job):
        complete(store, job["id"], 1)
        complete(store, job["id"], 2)

        result = UpdateStepCommand(status="pending", job_id=job["id"], step_number=1).execute(store)
        assert result.aggregate_changed is False
        assert stored_job(job["id"]).current_stage == 3

    def test_reopening_step_of_completed_job_demotes_status(self, store, job):
        for step_number in (1, 2, 3):
            complete(store, job["id"], step_number)

        result = UpdateStepCommand(status="pending", job_id=job["id"], step_number=2).execute(store)
        assert result.aggregate_changed is True
        assert result.job["status"] == "in_progress"
        assert result.job["completedAt"] is None
        assert result.job["currentStage"] == 4

        stored = stored_job(job["id"])
        assert stored.status is JobStatus.IN_PROGRESS
        assert stored.completed_at is None

        result = complete(store, job["id"], 2)
        assert result.job["status"] == "completed"
        assert result.job["completedAt"] is not None

    def test_reopening_clears_completion_fields(self, store, job):
        complete(store, job["id"], 1)
        result = UpdateStepCommand(status="in_progress", job_id=job["id"], step_number=1).execute(store)
        assert result.step["completedBy"] is None
        assert result.step["completedAt"] is None

    def test_repeat_update_does_not_change_aggregate(self, store, job):
        complete(store, job["id"], 1)
        result = complete(store, job["id"], 1)
        assert result.aggregate_changed is False
        assert result.job["currentStage"] == 2

    def test_heals_stale_aggregate(self, store, job):
        complete(store, job["id"], 1)
        # Simulate an aggregate that fell behind the step rows
        db.session.query(Job).filter_by(id=job["id"]).update({"current_stage": 1, "status": JobStatus.DRAFT})
        db.session.commit()

        result = complete(store, job["id"], 2)
        assert result.job["currentStage"] == 3

    def test_update_by_step_id(self, store, job):
        step = db.session.query(ProductionStep).filter_by(job_id=job["id"], step_number=1).one()
        result = UpdateStepCommand(status="completed", completed_by="bob", step_id=step.id).execute(store)
        assert result.step["id"] == step.id
        assert result.job["currentStage"] == 2

    def test_data_payload_is_stored(self, store, job):
        result = UpdateStepCommand(
            status="completed", completed_by="bob", job_id=job["id"], step_number=1,
            data={"torque": 42, "notes": "ok"},
        ).execute(store)
        assert result.step["data"] == {"torque": 42, "notes": "ok"}

    def test_on_hold_job_keeps_status_but_advances(self, store, job):
        stored = stored_job(job["id"])
        stored.status = JobStatus.ON_HOLD
        db.session.commit()

        result = complete(store, job["id"], 1)
        assert result.job["status"] == "on_hold"
        assert result.job["currentStage"] == 2


# ==============================================================================
# VALIDATION AND LOOKUP ERRORS
# ==============================================================================

class TestUpdateStepErrors:
    def test_unknown_status(self, store, job):
        with pytest.raises(InvalidInput):
            UpdateStepCommand(status="done", job_id=job["id"], step_number=1).execute(store)

    def test_completed_requires_completed_by(self, store, job):
        with pytest.raises(InvalidInput):
            UpdateStepCommand(status="completed", completed_by="  ", job_id=job["id"], step_number=1).execute(store)

    def test_requires_step_addressing(self, store, job):
        with pytest.raises(InvalidInput):
            UpdateStepCommand(status="in_progress", job_id=job["id"]).execute(store)

    def test_missing_job(self, store):
        with pytest.raises(NotFound):
            complete(store, "no-such-job", 1)

    def test_missing_step_id(self, store, job):
        with pytest.raises(NotFound):
            UpdateStepCommand(status="in_progress", step_id="no-such-step").execute(store)

    def test_step_id_from_another_job(self, store, job):
        other = CreateJobCommand(job_number="J-200", title="Other", created_by="alice", total_stages=1).execute(store)
        step = db.session.query(ProductionStep).filter_by(job_id=other.job["id"]).one()
        with pytest.raises(InvalidInput):
            UpdateStepCommand(status="in_progress", step_id=step.id, job_id=job["id"]).execute(store)

    @pytest.mark.parametrize("step_number", [0, 4, "x", 2.7])
    def test_step_number_out_of_range(self, store, job, step_number):
        with pytest.raises(InvalidInput):
            complete(store, job["id"], step_number)

    def test_no_system_update_on_failure(self, store, job):
        before = db.session.query(SystemUpdate).count()
        with pytest.raises(NotFound):
            complete(store, "no-such-job", 1)
        assert db.session.query(SystemUpdate).count() == before


# ==============================================================================
# IMPLICIT STEP CREATION
# ==============================================================================

class TestImplicitStepCreation:
    @pytest.fixture
    def long_job(self, store):
        """Eight declared stages but only five step rows."""
        return CreateJobCommand(
            job_number="J-800", title="Long", created_by="alice", total_stages=8
        ).execute(store).job

    def test_missing_row_is_not_found_by_default(self, store, long_job):
        with pytest.raises(NotFound):
            complete(store, long_job["id"], 6)

    def test_missing_row_is_created_when_allowed(self, store, long_job):
        result = UpdateStepCommand(
            status="completed", completed_by="bob", job_id=long_job["id"], step_number=6,
            allow_implicit_create=True,
        ).execute(store)

        assert result.step_created is True
        assert result.step["stepName"] == "Step 6"
        assert result.step["description"] == "Production step 6"
        assert db.session.query(ProductionStep).filter_by(job_id=long_job["id"]).count() == 6

    def test_job_completes_only_when_every_stage_has_a_completed_row(self, store, long_job):
        for step_number in range(1, 6):
            result = complete(store, long_job["id"], step_number)
        assert result.job["status"] == "in_progress"
        assert result.job["currentStage"] == 6

        for step_number in range(6, 9):
            result = UpdateStepCommand(
                status="completed", completed_by="bob", job_id=long_job["id"], step_number=step_number,
                allow_implicit_create=True,
            ).execute(store)
        assert result.job["status"] == "completed"
        assert result.job["currentStage"] == 9


# ==============================================================================
# SYSTEM UPDATES
# ==============================================================================

class TestStepSystemUpdate:
    def test_appends_updated_step_record(self, store, job):
        t0 = utcnow() - timedelta(milliseconds=1)
        result = complete(store, job["id"], 1, by="bob")

        updates = SystemUpdateService(store).list_since(t0)
        step_updates = [u for u in updates if u["entityType"] == "step"]
        assert len(step_updates) == 1
        update = step_updates[0]
        assert update["id"] == result.update_id
        assert update["type"] == "updated"
        assert update["entityId"] == result.step["id"]
        assert update["createdBy"] == "bob"
        assert update["data"]["jobId"] == job["id"]
        assert update["data"]["jobNumber"] == "J-100"
        assert update["data"]["currentStage"] == 2
        assert update["data"]["jobStatus"] == "in_progress"
