from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from moderation_pipeline.core.config import settings

engine = create_engine(settings.database_url, future=True, echo=settings.sql_echo)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()

# Dependency
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
