from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from moderation_pipeline.db.session import get_db
from moderation_pipeline.models.classification_result import TargetKind
from moderation_pipeline.schemas.classification import (
    ClassificationJob,
    ClassificationJobOutcome,
    ClassificationResultResponse,
    TargetRef,
)
from moderation_pipeline.services.job_handler import handle_classification_job
from moderation_pipeline.services.pipeline import ClassificationPipeline, get_pipeline
from moderation_pipeline.core.exceptions import (
    ModerationPipelineException,
    TransientInferenceError,
    MalformedResponseError,
    create_http_exception,
)
from moderation_pipeline.core.security import require_api_key
from moderation_pipeline.core.logger import logger

router = APIRouter(prefix="/api/v1", tags=["classification"], dependencies=[Depends(require_api_key)])


@router.post("/classify", response_model=ClassificationJobOutcome, status_code=200)
def classify_target(
    job: ClassificationJob,
    request: Request,
    db: Session = Depends(get_db),
    pipeline: ClassificationPipeline = Depends(get_pipeline),
):
    """
    Run one classification job delivered by the job dispatcher.

    Jobs may be redelivered; running the same job twice leaves one stored
    result and at most one review item.

    Returns:
        ClassificationJobOutcome: ``classified`` with the stored result, or ``skipped`` with a reason

    Raises:
        HTTPException: 503 for retryable inference failures, 422 for malformed backend output
    """
    log_context = {
        "request_id": getattr(request.state, "request_id", "unknown"),
        "target_ref": f"{job.target_kind.value}:{job.target_id}",
        "classification_type": job.classifier_type
    }
    logger.info("Classification job received", extra=log_context)

    try:
        return handle_classification_job(db, pipeline, job)

    except TransientInferenceError as e:
        logger.warning(
            "Classification job failed, dispatcher should retry",
            extra={**log_context, "error": str(e), "backend": e.details.get("backend", "unknown")}
        )
        raise create_http_exception(e, 503)

    except MalformedResponseError as e:
        logger.error(
            "Classification job failed on malformed backend output",
            extra={**log_context, "error": str(e)}
        )
        raise create_http_exception(e, 422)

    except ModerationPipelineException as e:
        raise create_http_exception(e)

    except Exception as e:
        logger.error(
            "Unexpected error in classification job",
            extra={**log_context, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(
            status_code=500,
            detail={
                "error_code": "INTERNAL_SERVER_ERROR",
                "message": "An unexpected error occurred during classification",
                "details": {"error": str(e)}
            }
        )


@router.get(
    "/classifications/{target_kind}/{target_id}",
    response_model=List[ClassificationResultResponse],
)
async def list_classifications(
    target_kind: TargetKind,
    target_id: int,
    db: Session = Depends(get_db),
    pipeline: ClassificationPipeline = Depends(get_pipeline),
):
    """Stored classification results for one post or chat message."""
    return pipeline.store.list_for_target(db, TargetRef(target_kind, target_id))
