from datetime import datetime
from sqlalchemy import Column, Integer, String, Enum, DateTime, JSON, UniqueConstraint
import enum

from moderation_pipeline.db.session import Base
from moderation_pipeline.models.classification_result import TargetKind


class ReviewStatus(str, enum.Enum):
    pending = "pending"
    agreed = "agreed"
    disagreed = "disagreed"


class ReviewableItem(Base):
    __tablename__ = "reviewable_items"
    __table_args__ = (
        UniqueConstraint(
            "target_kind", "target_id", "classification_type",
            name="uq_reviewable_items_target_type",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    target_kind = Column(Enum(TargetKind), nullable=False)
    target_id = Column(Integer, nullable=False, index=True)
    classification_type = Column(String, nullable=False)

    status = Column(Enum(ReviewStatus), default=ReviewStatus.pending, nullable=False, index=True)
    payload = Column(JSON, nullable=True)  # snapshot taken when the item was flagged
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    resolved_at = Column(DateTime, nullable=True)
