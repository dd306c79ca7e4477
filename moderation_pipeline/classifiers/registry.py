from typing import Dict, Optional

from moderation_pipeline.classifiers.base import ContentClassifier, EndpointConfig
from moderation_pipeline.classifiers.nsfw import NSFWClassifier
from moderation_pipeline.classifiers.sentiment import EmotionClassifier, SentimentClassifier
from moderation_pipeline.classifiers.toxicity import ToxicityClassifier
from moderation_pipeline.core.config import Settings
from moderation_pipeline.core.exceptions import ValidationException


class ClassifierRegistry:
    """Classifiers keyed by classification type, with their enablement flags."""

    def __init__(self):
        self._classifiers: Dict[str, ContentClassifier] = {}
        self._enabled: Dict[str, bool] = {}

    def register(self, classifier: ContentClassifier, enabled: bool = True) -> None:
        self._classifiers[classifier.type] = classifier
        self._enabled[classifier.type] = enabled

    def get(self, classification_type: str) -> ContentClassifier:
        try:
            return self._classifiers[classification_type]
        except KeyError:
            raise ValidationException(
                f"Unknown classifier type '{classification_type}'",
                field="classifier_type",
                details={"known_types": sorted(self._classifiers)},
            )

    def is_enabled(self, classification_type: str) -> bool:
        return self._enabled.get(classification_type, False)

    def types(self) -> list:
        return sorted(self._classifiers)

    def __contains__(self, classification_type: str) -> bool:
        return classification_type in self._classifiers


def _endpoint(settings: Settings, prefix: str) -> EndpointConfig:
    return EndpointConfig(
        endpoint=getattr(settings, f"{prefix}_endpoint"),
        endpoint_srv=getattr(settings, f"{prefix}_endpoint_srv"),
        api_key=getattr(settings, f"{prefix}_api_key"),
    )


def build_registry(settings: Settings, registry: Optional[ClassifierRegistry] = None) -> ClassifierRegistry:
    """Instantiate every classifier variant from settings."""
    registry = registry or ClassifierRegistry()

    registry.register(
        ToxicityClassifier(
            model_name=settings.toxicity_model,
            flag_threshold=settings.toxicity_flag_threshold,
            endpoint=_endpoint(settings, "toxicity"),
            max_content_chars=settings.max_content_chars,
            label_thresholds=settings.toxicity_label_thresholds,
        ),
        enabled=settings.toxicity_enabled,
    )
    registry.register(
        SentimentClassifier(
            model_name=settings.sentiment_model,
            flag_threshold=settings.sentiment_flag_threshold,
            endpoint=_endpoint(settings, "sentiment"),
            max_content_chars=settings.max_content_chars,
        ),
        enabled=settings.sentiment_enabled,
    )
    registry.register(
        EmotionClassifier(
            model_name=settings.emotion_model,
            flag_threshold=settings.emotion_flag_threshold,
            endpoint=_endpoint(settings, "emotion"),
            max_content_chars=settings.max_content_chars,
        ),
        enabled=settings.emotion_enabled,
    )
    registry.register(
        NSFWClassifier(
            model_name=settings.nsfw_model,
            flag_threshold=settings.nsfw_flag_threshold,
            endpoint=_endpoint(settings, "nsfw"),
            max_content_chars=settings.max_content_chars,
            label_thresholds=settings.nsfw_label_thresholds,
        ),
        enabled=settings.nsfw_enabled,
    )
    return registry
