from dataclasses import dataclass


@dataclass
class StepUpdateResult:
    step: dict
    job: dict
    aggregate_changed: bool
    step_created: bool = False
    update_id: str = None

    def to_dict(self) -> dict:
        """Serialize for JSON response"""
        data = dict(self.step)
        data["job"] = {
            "id": self.job["id"],
            "jobNumber": self.job["jobNumber"],
            "title": self.job["title"],
            "status": self.job["status"],
            "currentStage": self.job["currentStage"],
            "totalStages": self.job["totalStages"],
        }
        data["aggregateChanged"] = self.aggregate_changed
        data["stepCreated"] = self.step_created
        return data
