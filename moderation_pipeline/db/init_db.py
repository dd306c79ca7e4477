from moderation_pipeline.db.session import engine, Base
from moderation_pipeline.core.logger import logger
from moderation_pipeline.models.classification_result import ClassificationResult
from moderation_pipeline.models.reviewable_item import ReviewableItem
from moderation_pipeline.models.accuracy_record import AccuracyRecord


def init_db(bind=engine):
    logger.info("Creating tables...")
    Base.metadata.create_all(bind=bind)
    logger.info("Tables created successfully!")

if __name__ == "__main__":
    init_db()
