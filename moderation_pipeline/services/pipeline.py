"""Process-scoped pipeline state, created at startup and closed at shutdown."""

from typing import Optional

from fastapi import Request

from moderation_pipeline.classifiers.registry import ClassifierRegistry, build_registry
from moderation_pipeline.clients.content_client import ContentSource, RemoteContentSource
from moderation_pipeline.clients.inference_client import InferenceClient
from moderation_pipeline.core.config import Settings
from moderation_pipeline.core.logger import logger
from moderation_pipeline.services.accuracy_tracker import AccuracyTracker
from moderation_pipeline.services.classification_orchestrator import ClassificationOrchestrator
from moderation_pipeline.services.endpoint_resolver import InferenceEndpointResolver
from moderation_pipeline.services.result_store import ClassificationResultStore
from moderation_pipeline.services.review_queue import ReviewQueue


class ClassificationPipeline:
    def __init__(
        self,
        registry: ClassifierRegistry,
        resolver: InferenceEndpointResolver,
        client: InferenceClient,
        content_source: ContentSource,
        store: Optional[ClassificationResultStore] = None,
        accuracy_tracker: Optional[AccuracyTracker] = None,
        inference_scheme: str = "https",
    ):
        self.registry = registry
        self.resolver = resolver
        self.client = client
        self.content_source = content_source
        self.store = store or ClassificationResultStore()
        self.accuracy_tracker = accuracy_tracker or AccuracyTracker()
        self.review_queue = ReviewQueue(subscribers=[self.accuracy_tracker.record])
        self.orchestrator = ClassificationOrchestrator(
            registry=registry,
            resolver=resolver,
            client=client,
            store=self.store,
            review_queue=self.review_queue,
            accuracy_tracker=self.accuracy_tracker,
            inference_scheme=inference_scheme,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClassificationPipeline":
        return cls(
            registry=build_registry(settings),
            resolver=InferenceEndpointResolver(ttl=settings.endpoint_cache_ttl),
            client=InferenceClient(timeout=settings.inference_timeout),
            content_source=RemoteContentSource(
                settings.content_api_url,
                api_key=settings.content_api_key,
                timeout=settings.inference_timeout,
            ),
            inference_scheme=settings.inference_scheme,
        )

    def close(self) -> None:
        self.resolver.clear()
        self.client.close()
        self.content_source.close()
        logger.info("Classification pipeline closed")


def get_pipeline(request: Request) -> ClassificationPipeline:
    """FastAPI dependency returning the pipeline built in the app lifespan."""
    return request.app.state.pipeline
