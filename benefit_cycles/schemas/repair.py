from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class RepairSample(BaseModel):
    """One duplicate group as shown in a dry-run report."""
    benefit_id: int
    user_id: int
    cycle_date: str  # YYYY-MM-DD
    occurrence_index: int
    kept_id: int
    kept_cycle_start: datetime
    kept_reason: Literal["completed", "midnight_utc", "most_recent"]
    deleted_ids: list[int]


class NormalizationSample(BaseModel):
    status_id: int
    current: datetime
    normalized: datetime


class RepairReport(BaseModel):
    dry_run: bool
    total_records: int = 0
    duplicate_groups: int = 0
    rows_to_delete: int = 0
    rows_to_normalize: int = 0
    kept_because_completed: int = 0
    kept_because_midnight: int = 0
    kept_because_recent: int = 0
    deleted: int = 0
    normalized: int = 0
    batches_committed: int = 0
    cancelled: bool = False
    samples: list[RepairSample] = []
    normalization_samples: list[NormalizationSample] = []
