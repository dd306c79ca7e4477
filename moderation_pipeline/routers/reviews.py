from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from moderation_pipeline.db.session import get_db
from moderation_pipeline.models.reviewable_item import ReviewStatus
from moderation_pipeline.schemas.classification import TargetRef
from moderation_pipeline.schemas.review import (
    DecisionOutcome,
    ModerationDecision,
    ReviewDecisionRequest,
    ReviewableItemResponse,
)
from moderation_pipeline.services.pipeline import ClassificationPipeline, get_pipeline
from moderation_pipeline.core.exceptions import NotFoundException
from moderation_pipeline.core.security import require_api_key
from moderation_pipeline.core.logger import logger

router = APIRouter(prefix="/api/v1", tags=["reviews"], dependencies=[Depends(require_api_key)])


@router.get("/reviews", response_model=List[ReviewableItemResponse])
async def list_reviews(
    status: Optional[ReviewStatus] = None,
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    pipeline: ClassificationPipeline = Depends(get_pipeline),
):
    """Review items raised by automated flags, newest first."""
    return pipeline.review_queue.list_items(db, status=status, limit=limit)


def _apply(db: Session, pipeline: ClassificationPipeline, item_id: int, decision) -> DecisionOutcome:
    item, event = pipeline.review_queue.apply_decision(db, item_id, decision)
    if item is None:
        raise NotFoundException(f"Review item {item_id} not found", resource="reviewable_item")

    if event is None:
        logger.info(
            "Review item already resolved, decision ignored",
            extra={"item_id": item_id, "status": item.status.value}
        )

    return DecisionOutcome(
        item=ReviewableItemResponse.model_validate(item),
        applied=event is not None,
    )


@router.post("/reviews/{item_id}/decision", response_model=DecisionOutcome)
async def decide_review(
    item_id: int,
    payload: ReviewDecisionRequest,
    db: Session = Depends(get_db),
    pipeline: ClassificationPipeline = Depends(get_pipeline),
):
    """
    Record a moderator's decision on a review item.

    A pending item moves to ``agreed`` or ``disagreed`` and the classifier's
    accuracy counters are updated. Decisions on resolved items are ignored.
    """
    return _apply(db, pipeline, item_id, payload.decision)


@router.post("/moderation-decisions", response_model=DecisionOutcome)
async def receive_moderation_decision(
    event: ModerationDecision,
    db: Session = Depends(get_db),
    pipeline: ClassificationPipeline = Depends(get_pipeline),
):
    """Decision event from the review collaborator, addressed by target and classifier type."""
    item = pipeline.review_queue.find_item(
        db, TargetRef(event.target_kind, event.target_id), event.classification_type
    )
    if item is None:
        raise NotFoundException(
            f"No review item for {event.target_kind.value}:{event.target_id} ({event.classification_type})",
            resource="reviewable_item",
        )
    return _apply(db, pipeline, item.id, event.decision)
