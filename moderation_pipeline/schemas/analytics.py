from datetime import datetime
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel

GroupBy = Literal["day", "target_kind", "model_used"]


class ClassificationReport(BaseModel):
    classification_type: str
    group_by: GroupBy
    start: datetime
    end: datetime
    label: Optional[str] = None
    threshold: Optional[float] = None
    total: int
    breakdown: Dict[str, int]


class AccuracySummary(BaseModel):
    classification_type: str
    flags_agreed: int
    flags_disagreed: int
    accuracy: int


class AccuracyReport(BaseModel):
    classifiers: List[AccuracySummary]
