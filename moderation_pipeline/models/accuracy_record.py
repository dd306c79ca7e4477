from sqlalchemy import Column, Integer, String

from moderation_pipeline.db.session import Base


class AccuracyRecord(Base):
    __tablename__ = "accuracy_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    classification_type = Column(String, nullable=False, unique=True)

    # Only ever incremented by moderation decisions
    flags_agreed = Column(Integer, nullable=False, default=0)
    flags_disagreed = Column(Integer, nullable=False, default=0)

    def calculate_accuracy(self) -> int:
        """Percentage of automated flags moderators agreed with, 0 when undecided."""
        agreed = self.flags_agreed or 0
        total = agreed + (self.flags_disagreed or 0)
        if total == 0:
            return 0
        return round(agreed / total * 100)
