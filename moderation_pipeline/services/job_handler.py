from sqlalchemy.orm import Session

from moderation_pipeline.core.exceptions import ConfigurationError, UnsupportedContentError
from moderation_pipeline.core.logger import logger
from moderation_pipeline.schemas.classification import (
    ClassificationJob,
    ClassificationJobOutcome,
    ClassificationResultResponse,
)
from moderation_pipeline.services.pipeline import ClassificationPipeline


def _skipped(job: ClassificationJob, reason: str) -> ClassificationJobOutcome:
    logger.info(
        f"Skipping classification job: {reason}",
        extra={
            "target_ref": f"{job.target_kind.value}:{job.target_id}",
            "classification_type": job.classifier_type
        }
    )
    return ClassificationJobOutcome(status="skipped", reason=reason)


def handle_classification_job(
    db: Session,
    pipeline: ClassificationPipeline,
    job: ClassificationJob,
) -> ClassificationJobOutcome:
    """
    Entry point for jobs from the dispatcher. Safe to redeliver.

    Disabled classifiers, missing endpoints, missing targets, ineligible
    targets and content the backend cannot handle are skipped without error.
    Inference failures propagate so the dispatcher can apply its retry policy.

    Raises:
        ValidationException: If the classifier type is unknown
        TransientInferenceError: On retryable inference failures
        MalformedResponseError: If the backend output cannot be interpreted
        DatabaseException: If the result cannot be stored
    """
    classifier = pipeline.registry.get(job.classifier_type)

    if not pipeline.registry.is_enabled(classifier.type):
        return _skipped(job, "disabled")

    target = job.target
    if target is None:
        target = pipeline.content_source.fetch(job.target_kind, job.target_id)
    elif target.ref != (job.target_kind, job.target_id):
        target = target.model_copy(update={"target_kind": job.target_kind, "target_id": job.target_id})

    if target is None:
        return _skipped(job, "target_missing")

    if not classifier.target_eligible(target):
        return _skipped(job, "ineligible")

    try:
        result = pipeline.orchestrator.classify(db, target, classifier.type)
    except ConfigurationError:
        return _skipped(job, "not_configured")
    except UnsupportedContentError:
        return _skipped(job, "unsupported")

    return ClassificationJobOutcome(
        status="classified",
        result=ClassificationResultResponse.model_validate(result),
    )
