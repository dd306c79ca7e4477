from datetime import datetime
from typing import Dict, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from moderation_pipeline.core.exceptions import PersistenceConflict
from moderation_pipeline.models.classification_result import ClassificationResult
from moderation_pipeline.schemas.classification import TargetRef


class ClassificationResultStore:
    """One row per (target, classification type); re-classification updates it in place.

    Nothing here commits. The caller owns the transaction so the upsert and
    any escalation land together.
    """

    def find(self, db: Session, target_ref: TargetRef, classification_type: str):
        return db.query(ClassificationResult).filter(
            ClassificationResult.target_kind == target_ref.kind,
            ClassificationResult.target_id == target_ref.id,
            ClassificationResult.classification_type == classification_type,
        ).with_for_update().one_or_none()

    def upsert(
        self,
        db: Session,
        target_ref: TargetRef,
        classification_type: str,
        scores: Dict[str, float],
        model_used: str,
    ) -> ClassificationResult:
        existing = self.find(db, target_ref, classification_type)
        if existing is not None:
            existing.scores = dict(scores)
            existing.model_used = model_used
            existing.updated_at = datetime.utcnow()
            db.flush()
            return existing

        result = ClassificationResult(
            target_kind=target_ref.kind,
            target_id=target_ref.id,
            classification_type=classification_type,
            scores=dict(scores),
            model_used=model_used,
        )
        db.add(result)
        try:
            db.flush()
        except IntegrityError as e:
            raise PersistenceConflict(
                f"Classification result for {target_ref} was inserted concurrently",
                table=ClassificationResult.__tablename__,
                details={"error": str(e.orig)},
            )
        return result

    def list_for_target(self, db: Session, target_ref: TargetRef) -> List[ClassificationResult]:
        return db.query(ClassificationResult).filter(
            ClassificationResult.target_kind == target_ref.kind,
            ClassificationResult.target_id == target_ref.id,
        ).order_by(ClassificationResult.classification_type).all()
