from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from moderation_pipeline.core.exceptions import DatabaseException, PersistenceConflict
from moderation_pipeline.core.logger import logger
from moderation_pipeline.models.reviewable_item import ReviewableItem, ReviewStatus
from moderation_pipeline.schemas.classification import TargetRef
from moderation_pipeline.schemas.review import Decision, ModerationDecision

DecisionSubscriber = Callable[[Session, ModerationDecision], None]

MAX_CONFLICT_RETRIES = 1


class ReviewQueue:
    """Human review items raised by automated flags.

    Items are unique per (target, classification type) and leave ``pending``
    exactly once. Each transition produces a ``ModerationDecision`` that is
    handed to the subscribers inside the same transaction.
    """

    def __init__(self, subscribers: Optional[List[DecisionSubscriber]] = None):
        self.subscribers: List[DecisionSubscriber] = list(subscribers or [])

    def subscribe(self, subscriber: DecisionSubscriber) -> None:
        self.subscribers.append(subscriber)

    def find_item(self, db: Session, target_ref: TargetRef, classification_type: str) -> Optional[ReviewableItem]:
        return db.query(ReviewableItem).filter(
            ReviewableItem.target_kind == target_ref.kind,
            ReviewableItem.target_id == target_ref.id,
            ReviewableItem.classification_type == classification_type,
        ).with_for_update().one_or_none()

    def get_item(self, db: Session, item_id: int) -> Optional[ReviewableItem]:
        return db.get(ReviewableItem, item_id)

    def list_items(self, db: Session, status: Optional[ReviewStatus] = None, limit: int = 100) -> List[ReviewableItem]:
        query = db.query(ReviewableItem)
        if status is not None:
            query = query.filter(ReviewableItem.status == status)
        return query.order_by(ReviewableItem.created_at.desc(), ReviewableItem.id.desc()).limit(limit).all()

    def escalate(
        self,
        db: Session,
        target_ref: TargetRef,
        classification_type: str,
        payload: Dict[str, Any],
    ) -> Tuple[ReviewableItem, bool]:
        """
        Create a pending item unless one already exists for the pair. The caller commits.

        Returns:
            The item and whether this call created it

        Raises:
            PersistenceConflict: If a concurrent run inserted the item first
        """
        existing = self.find_item(db, target_ref, classification_type)
        if existing is not None:
            return existing, False

        item = ReviewableItem(
            target_kind=target_ref.kind,
            target_id=target_ref.id,
            classification_type=classification_type,
            status=ReviewStatus.pending,
            payload=payload,
        )
        db.add(item)
        try:
            db.flush()
        except IntegrityError as e:
            raise PersistenceConflict(
                f"Review item for {target_ref} was created concurrently",
                table=ReviewableItem.__tablename__,
                details={"error": str(e.orig)},
            )
        return item, True

    def resolve_item(self, db: Session, item: ReviewableItem, decision: Decision) -> Optional[ModerationDecision]:
        """
        Move a pending item to its terminal state and notify subscribers. The caller commits.

        Returns:
            The decision event, or None if the item had already been resolved
        """
        result = db.execute(
            update(ReviewableItem)
            .where(
                ReviewableItem.id == item.id,
                ReviewableItem.status == ReviewStatus.pending,
            )
            .values(status=decision.terminal_status, resolved_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        db.expire(item)

        if result.rowcount != 1:
            return None

        event = ModerationDecision(
            target_kind=item.target_kind,
            target_id=item.target_id,
            classification_type=item.classification_type,
            decision=decision,
        )
        for subscriber in self.subscribers:
            subscriber(db, event)
        return event

    def apply_decision(self, db: Session, item_id: int, decision: Decision) -> Tuple[Optional[ReviewableItem], Optional[ModerationDecision]]:
        """
        Resolve an item and commit the transition together with its subscribers' writes.

        Returns:
            The refreshed item (None if it does not exist) and the event, which
            is None when the decision was a redelivery

        Raises:
            DatabaseException: If the transaction cannot be committed
        """
        for attempt in range(MAX_CONFLICT_RETRIES + 1):
            try:
                item = self.get_item(db, item_id)
                if item is None:
                    return None, None

                event = self.resolve_item(db, item, decision)
                db.commit()
                db.refresh(item)
                return item, event

            except PersistenceConflict as e:
                db.rollback()
                logger.info(
                    "Conflict while applying moderation decision, retrying",
                    extra={"item_id": item_id, "table": e.details.get("table"), "attempt": attempt + 1}
                )
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(
                    "Database error applying moderation decision",
                    extra={"item_id": item_id, "error": str(e)},
                    exc_info=True
                )
                raise DatabaseException(
                    f"Failed to apply moderation decision: {str(e)}",
                    operation="apply_decision"
                )

        raise DatabaseException(
            "Moderation decision kept conflicting with concurrent writes",
            operation="apply_decision"
        )
