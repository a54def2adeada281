from dataclasses import dataclass, field
from typing import List


@dataclass
class JobCreateResult:
    job: dict
    steps: List[dict] = field(default_factory=list)
    update_id: str = None

    def to_dict(self) -> dict:
        """Serialize for JSON response"""
        data = dict(self.job)
        data["steps"] = self.steps
        data["stages"] = [step["stepName"] for step in self.steps]
        return data
