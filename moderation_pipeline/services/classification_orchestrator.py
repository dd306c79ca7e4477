from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from moderation_pipeline.classifiers.base import ContentClassifier, Scores
from moderation_pipeline.classifiers.registry import ClassifierRegistry
from moderation_pipeline.clients.inference_client import InferenceClient
from moderation_pipeline.core.exceptions import (
    ConfigurationError,
    DatabaseException,
    MalformedResponseError,
    PersistenceConflict,
    TransientInferenceError,
    UnsupportedContentError,
)
from moderation_pipeline.core.logger import logger
from moderation_pipeline.core.security import create_content_hash
from moderation_pipeline.models.classification_result import ClassificationResult
from moderation_pipeline.schemas.classification import ContentTarget
from moderation_pipeline.services.accuracy_tracker import AccuracyTracker
from moderation_pipeline.services.endpoint_resolver import InferenceEndpointResolver
from moderation_pipeline.services.result_store import ClassificationResultStore
from moderation_pipeline.services.review_queue import MAX_CONFLICT_RETRIES, ReviewQueue


class ClassificationOrchestrator:
    """Runs one classifier against one target and stores the outcome.

    Feature enablement and target eligibility are checked by the caller.
    """

    def __init__(
        self,
        registry: ClassifierRegistry,
        resolver: InferenceEndpointResolver,
        client: InferenceClient,
        store: ClassificationResultStore,
        review_queue: ReviewQueue,
        accuracy_tracker: AccuracyTracker,
        inference_scheme: str = "https",
    ):
        self.registry = registry
        self.resolver = resolver
        self.client = client
        self.store = store
        self.review_queue = review_queue
        self.accuracy_tracker = accuracy_tracker
        self.inference_scheme = inference_scheme

    def base_url_for(self, classifier: ContentClassifier) -> str:
        """
        Pick the backend base URL, preferring SRV discovery over a static endpoint.

        Raises:
            ConfigurationError: If the classifier has neither
            TransientInferenceError: If discovery fails
        """
        config = classifier.endpoint
        if config.endpoint_srv:
            backend = self.resolver.resolve(config.endpoint_srv)
            return backend.base_url(self.inference_scheme)
        if config.endpoint:
            return config.endpoint
        raise ConfigurationError(
            f"No inference endpoint configured for {classifier.type}",
            classification_type=classifier.type,
        )

    def request_scores(self, classifier: ContentClassifier, target: ContentTarget) -> Scores:
        """
        Send every request the classifier builds and combine the parsed scores.

        Requests the backend rejects as unsupported are dropped.

        Raises:
            UnsupportedContentError: If the backend rejected every request
        """
        base_url = self.base_url_for(classifier)

        responses: List[Scores] = []
        rejected: List[UnsupportedContentError] = []
        for request in classifier.build_requests(target):
            try:
                raw = self.client.classify(
                    base_url,
                    request,
                    api_key=classifier.endpoint.api_key,
                    classification_type=classifier.type,
                )
            except UnsupportedContentError as e:
                logger.info(
                    "Backend does not support content, skipping it",
                    extra={
                        "target_ref": str(target.ref),
                        "classification_type": classifier.type,
                        "backend": e.details.get("backend"),
                    }
                )
                rejected.append(e)
                continue
            responses.append(classifier.parse_response(raw))

        if rejected and not responses:
            raise rejected[-1]
        return classifier.combine_scores(responses)

    def classify(self, db: Session, target: ContentTarget, classifier_type: str) -> ClassificationResult:
        """
        Classify ``target`` with ``classifier_type`` and persist the result.

        Raises:
            ConfigurationError: If the classifier has no endpoint
            TransientInferenceError: On discovery, network, timeout or server failures
            MalformedResponseError: If the backend output cannot be interpreted
            UnsupportedContentError: If the backend supports none of the content
            DatabaseException: If the result cannot be stored
        """
        classifier = self.registry.get(classifier_type)
        log_context = {"target_ref": str(target.ref), "classification_type": classifier.type}

        logger.info(
            "Classifying target",
            extra={**log_context, "content_hash": create_content_hash(target.raw)}
        )

        try:
            scores = self.request_scores(classifier, target)
        except TransientInferenceError as e:
            logger.warning(
                f"Inference unavailable: {e.message}",
                extra={**log_context, "error_code": e.error_code, "backend": e.details.get("backend")}
            )
            raise
        except MalformedResponseError as e:
            logger.error(
                f"Malformed inference response: {e.message}",
                extra={**log_context, "error_code": e.error_code}
            )
            raise
        except UnsupportedContentError:
            logger.info("Backend supports none of the target's content", extra=log_context)
            raise

        flagged = classifier.should_flag(scores)

        for attempt in range(MAX_CONFLICT_RETRIES + 1):
            try:
                result = self.store.upsert(db, target.ref, classifier.type, scores, classifier.model_name)

                if flagged:
                    item, created = self.review_queue.escalate(
                        db,
                        target.ref,
                        classifier.type,
                        payload={
                            "scores": scores,
                            "model_used": classifier.model_name,
                            "accuracy": self.accuracy_tracker.get_accuracy(db, classifier.type),
                        },
                    )
                    if created:
                        logger.info("Escalated target for human review", extra=log_context)

                db.commit()
                db.refresh(result)
                return result

            except PersistenceConflict as e:
                # The other writer's rows exist now; the retry takes the update path.
                db.rollback()
                logger.info(
                    "Concurrent classification detected, retrying persistence",
                    extra={**log_context, "table": e.details.get("table"), "attempt": attempt + 1}
                )
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(
                    "Database error saving classification result",
                    extra={**log_context, "error": str(e)},
                    exc_info=True
                )
                raise DatabaseException(
                    f"Failed to save classification result: {str(e)}",
                    operation="save_result"
                )

        raise DatabaseException(
            "Classification result kept conflicting with concurrent writes",
            operation="save_result"
        )
