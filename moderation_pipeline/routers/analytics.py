from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from moderation_pipeline.db.session import get_db
from moderation_pipeline.schemas.analytics import AccuracyReport, ClassificationReport, GroupBy
from moderation_pipeline.services.analytics_service import get_classification_report
from moderation_pipeline.services.pipeline import ClassificationPipeline, get_pipeline
from moderation_pipeline.core.security import require_api_key

router = APIRouter(prefix="/api/v1/analytics", tags=["analytics"], dependencies=[Depends(require_api_key)])


@router.get("/classifications", response_model=ClassificationReport, status_code=200)
async def classification_report(
    classification_type: str,
    start: datetime,
    end: datetime,
    group_by: GroupBy = "day",
    label: Optional[str] = None,
    threshold: Optional[float] = Query(default=None, ge=0.0, le=1.0),
    db: Session = Depends(get_db),
):
    return get_classification_report(db, classification_type, group_by, start, end, label, threshold)


@router.get("/accuracy", response_model=AccuracyReport, status_code=200)
async def accuracy_report(
    db: Session = Depends(get_db),
    pipeline: ClassificationPipeline = Depends(get_pipeline),
):
    return AccuracyReport(classifiers=pipeline.accuracy_tracker.summary(db))
