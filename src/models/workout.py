from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field
from ulid import ULID


class WorkoutMetrics(BaseModel):
    weightBefore: float = Field(gt=0)
    weightAfter: float = Field(gt=0)
    heartRateBefore: int = Field(gt=0)
    heartRateAfter: int = Field(gt=0)


class WorkoutRecord(BaseModel):
    """A saved workout. Never edited in place; the collection is replaced."""
    model_config = {"frozen": True}

    id: str = Field(default_factory=lambda: f"r_{ULID.from_datetime(datetime.now())}")
    date: datetime
    duration: int = Field(ge=0)
    metrics: WorkoutMetrics
    notes: str = ""
    media: List[str] = Field(default_factory=list)
    userId: Optional[str] = None


def workouts_to_payload(records: Iterable[WorkoutRecord]) -> Dict[str, Any]:
    return {"workouts": [record.model_dump(mode="json") for record in records]}


def workouts_from_payload(payload: Any) -> List[WorkoutRecord]:
    raw = payload.get("workouts", []) if isinstance(payload, dict) else payload
    records = [WorkoutRecord.model_validate(item) for item in raw or []]
    records.sort(key=lambda record: record.date, reverse=True)
    return records
