from datetime import datetime
from typing import Optional, Dict, Any
import enum
from pydantic import BaseModel

from moderation_pipeline.models.classification_result import TargetKind
from moderation_pipeline.models.reviewable_item import ReviewStatus


class Decision(str, enum.Enum):
    agree = "agree"
    disagree = "disagree"

    @property
    def terminal_status(self) -> ReviewStatus:
        return ReviewStatus.agreed if self is Decision.agree else ReviewStatus.disagreed


class ModerationDecision(BaseModel):
    """Raised when a review item leaves ``pending``; consumed by the accuracy tracker."""

    target_kind: TargetKind
    target_id: int
    classification_type: str
    decision: Decision

    class Config:
        frozen = True


# ---- Requests ----
class ReviewDecisionRequest(BaseModel):
    decision: Decision


# ---- Responses ----
class ReviewableItemResponse(BaseModel):
    id: int
    target_kind: TargetKind
    target_id: int
    classification_type: str
    status: ReviewStatus
    payload: Optional[Dict[str, Any]] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DecisionOutcome(BaseModel):
    item: ReviewableItemResponse
    applied: bool
