from fastapi import FastAPI, Request, HTTPException, Depends
from fastapi.responses import JSONResponse
import time
import uuid
from contextlib import asynccontextmanager

from sqlalchemy import func, text
from sqlalchemy.orm import Session

from moderation_pipeline.db.session import get_db
from moderation_pipeline.models.classification_result import ClassificationResult
from moderation_pipeline.models.reviewable_item import ReviewableItem
from moderation_pipeline.routers import classification, reviews, analytics
from moderation_pipeline.core.logger import logger
from moderation_pipeline.core.exceptions import ModerationPipelineException, status_code_for
from moderation_pipeline.core.config import settings
from moderation_pipeline.core.security import require_api_key
from moderation_pipeline.services.pipeline import ClassificationPipeline

VERSION = "1.0.0"


# Application lifespan management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and the process-scoped pipeline at startup; close it at shutdown."""
    logger.info("Starting classification pipeline", extra={"version": VERSION})

    try:
        from moderation_pipeline.db.init_db import init_db
        init_db()
    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}", exc_info=True)

    # Tests may install their own pipeline before startup
    if getattr(app.state, "pipeline", None) is None:
        app.state.pipeline = ClassificationPipeline.from_settings(settings)

    yield

    logger.info("Shutting down classification pipeline")
    app.state.pipeline.close()
    app.state.pipeline = None


app = FastAPI(
    title=settings.app_name,
    description="""
    Classifies forum posts and chat messages with external inference services
    (toxicity, sentiment, emotion, NSFW), stores normalized scores, escalates
    high-risk content to a human review queue and tracks how often moderators
    agree with each classifier.

    ## Error Handling

    All errors return structured JSON responses with:
    - `error_code`: Machine-readable error identifier
    - `message`: Human-readable error description
    - `details`: Additional error context
    """,
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)


# Request ID middleware
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add unique request ID to all requests for tracing."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    logger.info(
        "Request started",
        extra={
            "request_id": request_id,
            "method": request.method,
            "url": str(request.url),
            "client_ip": request.client.host if request.client else "unknown"
        }
    )

    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = str(process_time)

    logger.info(
        "Request completed",
        extra={
            "request_id": request_id,
            "status_code": response.status_code,
            "process_time": process_time
        }
    )

    return response


# Global exception handler
@app.exception_handler(ModerationPipelineException)
async def pipeline_exception_handler(request: Request, exc: ModerationPipelineException):
    """Handle pipeline exceptions raised outside the routers' own handling."""
    logger.error(
        f"Pipeline exception: {exc.message}",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "error_code": exc.error_code,
            "details": exc.details
        }
    )

    return JSONResponse(
        status_code=status_code_for(exc),
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
            "request_id": getattr(request.state, "request_id", "unknown")
        }
    )


app.include_router(classification.router)
app.include_router(reviews.router)
app.include_router(analytics.router)


@app.get("/health", tags=["monitoring"])
def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint for monitoring and load balancers.

    Returns:
        Health status and basic system information
    """
    try:
        db.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "timestamp": time.time(),
            "version": VERSION,
            "services": {
                "database": "healthy",
                "api": "healthy"
            }
        }
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=503,
            detail={
                "status": "unhealthy",
                "timestamp": time.time(),
                "error": str(e)
            }
        )


@app.get("/metrics", tags=["monitoring"])
def get_metrics(request: Request, db: Session = Depends(get_db)):
    """
    Basic metrics endpoint for monitoring.

    Returns:
        Stored result counts per classifier, review queue sizes and enabled classifiers
    """
    try:
        classification_stats = db.query(
            ClassificationResult.classification_type,
            func.count(ClassificationResult.id)
        ).group_by(ClassificationResult.classification_type).all()

        review_stats = db.query(
            ReviewableItem.status,
            func.count(ReviewableItem.id)
        ).group_by(ReviewableItem.status).all()

        pipeline = request.app.state.pipeline
        return {
            "timestamp": time.time(),
            "classification_breakdown": dict(classification_stats),
            "review_breakdown": {status.value: count for status, count in review_stats},
            "enabled_classifiers": [t for t in pipeline.registry.types() if pipeline.registry.is_enabled(t)],
        }
    except Exception as e:
        logger.error(f"Metrics collection failed: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Failed to collect metrics",
                "message": str(e)
            }
        )


@app.post("/api/v1/init-db", tags=["admin"], dependencies=[Depends(require_api_key)])
def init_database():
    """
    Create all tables.

    Intended for development and first setup; production should run migrations.
    """
    from moderation_pipeline.db.init_db import init_db
    try:
        init_db()
        return {
            "message": "Database tables created successfully!",
            "timestamp": time.time()
        }
    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}", exc_info=True)
        return {
            "error": f"Failed to create tables: {str(e)}",
            "timestamp": time.time()
        }


@app.get("/", tags=["general"])
async def root():
    """API information and links."""
    return {
        "message": settings.app_name,
        "version": VERSION,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics",
        "endpoints": {
            "classify": "/api/v1/classify",
            "reviews": "/api/v1/reviews",
            "classification_report": "/api/v1/analytics/classifications",
            "accuracy": "/api/v1/analytics/accuracy"
        }
    }
