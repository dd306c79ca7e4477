from collections import Counter
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from moderation_pipeline.core.exceptions import ValidationException
from moderation_pipeline.models.classification_result import ClassificationResult
from moderation_pipeline.schemas.analytics import ClassificationReport, GroupBy


def _bucket(result: ClassificationResult, group_by: GroupBy) -> str:
    if group_by == "day":
        return result.created_at.date().isoformat()
    if group_by == "target_kind":
        return result.target_kind.value
    return result.model_used


def get_classification_report(
    db: Session,
    classification_type: str,
    group_by: GroupBy,
    start: datetime,
    end: datetime,
    label: Optional[str] = None,
    threshold: Optional[float] = None,
) -> ClassificationReport:
    """Count stored results in a date range, optionally above a score threshold."""
    if start > end:
        raise ValidationException("start must not be after end", field="start")
    if threshold is not None and label is None:
        raise ValidationException("threshold requires a label", field="label")

    rows = db.query(ClassificationResult).filter(
        ClassificationResult.classification_type == classification_type,
        ClassificationResult.created_at >= start,
        ClassificationResult.created_at <= end,
    ).all()

    # Scores are JSON, so the threshold is applied here to stay database-agnostic
    if label is not None:
        floor = threshold if threshold is not None else 0.0
        rows = [r for r in rows if label in (r.scores or {}) and r.scores[label] >= floor]

    breakdown = Counter(_bucket(r, group_by) for r in rows)

    return ClassificationReport(
        classification_type=classification_type,
        group_by=group_by,
        start=start,
        end=end,
        label=label,
        threshold=threshold,
        total=len(rows),
        breakdown=dict(sorted(breakdown.items())),
    )
