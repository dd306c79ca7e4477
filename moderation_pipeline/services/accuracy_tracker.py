from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from moderation_pipeline.core.exceptions import PersistenceConflict
from moderation_pipeline.core.logger import logger
from moderation_pipeline.models.accuracy_record import AccuracyRecord
from moderation_pipeline.schemas.analytics import AccuracySummary
from moderation_pipeline.schemas.review import Decision, ModerationDecision


class AccuracyTracker:
    """Counts how often moderators agree with each classifier's automated flags."""

    def get_record(self, db: Session, classification_type: str) -> Optional[AccuracyRecord]:
        return db.query(AccuracyRecord).filter(
            AccuracyRecord.classification_type == classification_type
        ).one_or_none()

    def get_accuracy(self, db: Session, classification_type: str) -> int:
        record = self.get_record(db, classification_type)
        return record.calculate_accuracy() if record else 0

    def _ensure_record(self, db: Session, classification_type: str) -> AccuracyRecord:
        record = self.get_record(db, classification_type)
        if record is not None:
            return record

        record = AccuracyRecord(
            classification_type=classification_type,
            flags_agreed=0,
            flags_disagreed=0,
        )
        db.add(record)
        try:
            db.flush()
        except IntegrityError as e:
            raise PersistenceConflict(
                f"Accuracy record for {classification_type} was created concurrently",
                table=AccuracyRecord.__tablename__,
                details={"error": str(e.orig)},
            )
        return record

    def record(self, db: Session, event: ModerationDecision) -> None:
        """Apply one moderation decision. The caller commits."""
        record = self._ensure_record(db, event.classification_type)

        column = (
            AccuracyRecord.flags_agreed
            if event.decision == Decision.agree
            else AccuracyRecord.flags_disagreed
        )
        # Increment in SQL so concurrent decisions never lose an update
        db.execute(
            update(AccuracyRecord)
            .where(AccuracyRecord.id == record.id)
            .values({column: column + 1})
            .execution_options(synchronize_session=False)
        )
        db.expire(record)

        logger.info(
            f"Recorded moderator decision '{event.decision.value}'",
            extra={
                "classification_type": event.classification_type,
                "target_ref": f"{event.target_kind.value}:{event.target_id}"
            }
        )

    def summary(self, db: Session) -> List[AccuracySummary]:
        records = db.query(AccuracyRecord).order_by(AccuracyRecord.classification_type).all()
        return [
            AccuracySummary(
                classification_type=r.classification_type,
                flags_agreed=r.flags_agreed,
                flags_disagreed=r.flags_disagreed,
                accuracy=r.calculate_accuracy(),
            )
            for r in records
        ]
