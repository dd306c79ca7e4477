from typing import Any, Dict, List, Optional

from moderation_pipeline.classifiers.base import ContentClassifier, EndpointConfig, InferenceRequest, Scores
from moderation_pipeline.core.exceptions import MalformedResponseError
from moderation_pipeline.core.security import is_supported_image_url
from moderation_pipeline.schemas.classification import ContentTarget

# Labels that describe safe content and never count towards a verdict
NON_FLAGGING_LABELS = frozenset({"neutral"})


class NSFWClassifier(ContentClassifier):
    """Image classifier for the uploads attached to a post or message.

    Backends report percentages (``{"porn": 90, "sexy": 79, ...}`` or
    ``{"nsfw_probability": 90}``); they are divided by 100 so stored scores
    share the ``[0, 1]`` range. One request is sent per image and the
    stored score for each label is its maximum across images. Per-label
    thresholds (``{"porn": 0.5}``) override the classifier-wide one.
    """

    type = "nsfw"

    def __init__(
        self,
        model_name: str,
        flag_threshold: Optional[float] = None,
        endpoint: Optional[EndpointConfig] = None,
        max_content_chars: int = 2000,
        label_thresholds: Optional[Dict[str, float]] = None,
    ):
        super().__init__(model_name, flag_threshold, endpoint, max_content_chars)
        self.label_thresholds = dict(label_thresholds or {})

    def supported_uploads(self, target: ContentTarget) -> List[str]:
        return [url for url in target.upload_urls if is_supported_image_url(url)]

    def target_eligible(self, target: ContentTarget) -> bool:
        return bool(self.supported_uploads(target))

    def build_requests(self, target: ContentTarget) -> List[InferenceRequest]:
        return [
            InferenceRequest(
                path="/api/v1/classify",
                body={"model": self.model_name, "content": url},
            )
            for url in self.supported_uploads(target)
        ]

    def parse_response(self, raw: Any) -> Scores:
        if not isinstance(raw, dict) or not raw:
            raise MalformedResponseError(
                "Expected a non-empty mapping of label to percentage",
                classification_type=self.type,
            )
        return {
            str(label): self._score(str(label), value, scale=100.0)
            for label, value in raw.items()
        }

    def combine_scores(self, responses: List[Scores]) -> Scores:
        if not responses:
            raise MalformedResponseError(
                "No image was classified",
                classification_type=self.type,
            )
        combined: Scores = {}
        for scores in responses:
            for label, value in scores.items():
                combined[label] = max(value, combined.get(label, 0.0))
        return combined

    def threshold_for(self, label: str) -> Optional[float]:
        return self.label_thresholds.get(label, self.flag_threshold)

    def should_flag(self, scores: Scores) -> bool:
        for label, value in scores.items():
            if label in NON_FLAGGING_LABELS:
                continue
            threshold = self.threshold_for(label)
            if threshold is not None and value >= threshold:
                return True
        return False
