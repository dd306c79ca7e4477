from datetime import datetime
from typing import Optional, Literal, Dict, List, NamedTuple
from pydantic import BaseModel, Field

from moderation_pipeline.models.classification_result import TargetKind


class TargetRef(NamedTuple):
    kind: TargetKind
    id: int

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


class ContentTarget(BaseModel):
    """Snapshot of a post or chat message, owned by the forum/chat system."""

    target_id: int
    target_kind: TargetKind
    raw: str = ""
    title: Optional[str] = None
    post_number: Optional[int] = None
    post_type: str = "regular"
    upload_urls: List[str] = Field(default_factory=list)

    @property
    def ref(self) -> TargetRef:
        return TargetRef(self.target_kind, self.target_id)


# ---- Requests ----
class ClassificationJob(BaseModel):
    target_id: int
    target_kind: TargetKind
    classifier_type: str
    # Dispatchers that already hold the content may embed it
    target: Optional[ContentTarget] = None


# ---- Responses ----
class ClassificationResultResponse(BaseModel):
    id: int
    target_kind: TargetKind
    target_id: int
    classification_type: str
    scores: Dict[str, float]
    model_used: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ClassificationJobOutcome(BaseModel):
    status: Literal["classified", "skipped"]
    reason: Optional[str] = None
    result: Optional[ClassificationResultResponse] = None
