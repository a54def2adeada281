"""Read-side queries over jobs and their steps."""
from typing import List

from tracker.errors import NotFound
from tracker.production.engine import current_stage_label


class JobQueryService:
    """Read-only views served to operator terminals."""

    def __init__(self, store):
        self.store = store

    def list_jobs(self) -> List[dict]:
        jobs = []
        for job in self.store.list_jobs():
            data = job.to_dict()
            data["progress"] = job.progress
            jobs.append(data)
        return jobs

    def get_job(self, job_id) -> dict:
        job = self.store.find_job(job_id)
        if job is None:
            raise NotFound(f"Job {job_id} not found", job_id=str(job_id))
        steps = self.store.list_steps(job.id)
        data = job.to_dict()
        data["progress"] = job.progress
        data["currentStageName"] = current_stage_label(steps, job.current_stage, job.total_stages)
        data["steps"] = [step.to_dict() for step in steps]
        return data

    def list_steps(self, job_id) -> List[dict]:
        if self.store.find_job(job_id) is None:
            raise NotFound(f"Job {job_id} not found", job_id=str(job_id))
        return [step.to_dict() for step in self.store.list_steps(job_id)]
