from datetime import datetime
from sqlalchemy import Column, Integer, String, Enum, DateTime, JSON, UniqueConstraint
import enum

from moderation_pipeline.db.session import Base


class TargetKind(str, enum.Enum):
    post = "post"
    chat_message = "chat_message"


class ClassificationResult(Base):
    __tablename__ = "classification_results"
    __table_args__ = (
        UniqueConstraint(
            "target_kind", "target_id", "classification_type",
            name="uq_classification_results_target_type",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    target_kind = Column(Enum(TargetKind), nullable=False)
    target_id = Column(Integer, nullable=False, index=True)
    classification_type = Column(String, nullable=False, index=True)  # toxicity, sentiment, emotion, nsfw

    scores = Column(JSON, nullable=False, default=dict)  # label -> score on [0, 1]
    model_used = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
