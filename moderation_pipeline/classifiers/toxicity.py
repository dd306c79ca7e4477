from typing import Any, Dict, List, Optional

from moderation_pipeline.classifiers.base import (
    ContentClassifier,
    EndpointConfig,
    InferenceRequest,
    Scores,
)
from moderation_pipeline.core.exceptions import MalformedResponseError
from moderation_pipeline.schemas.classification import ContentTarget

TOXICITY_LABELS = (
    "toxic",
    "severe_toxic",
    "obscene",
    "identity_attack",
    "insult",
    "threat",
    "sexual_explicit",
)


class ToxicityClassifier(ContentClassifier):
    """Detoxify-style classifier.

    The backend returns ``{label: probability}`` with probabilities already on
    ``[0, 1]``. Any known label at or above its threshold flags the target;
    per-label thresholds override the classifier-wide one.
    """

    type = "toxicity"

    def __init__(
        self,
        model_name: str,
        flag_threshold: Optional[float] = 0.8,
        endpoint: Optional[EndpointConfig] = None,
        max_content_chars: int = 2000,
        label_thresholds: Optional[Dict[str, float]] = None,
    ):
        super().__init__(model_name, flag_threshold, endpoint, max_content_chars)
        self.label_thresholds = dict(label_thresholds or {})

    def target_eligible(self, target: ContentTarget) -> bool:
        return self.is_regular_text(target)

    def build_requests(self, target: ContentTarget) -> List[InferenceRequest]:
        return [
            InferenceRequest(
                path="/api/v1/classify",
                body={"model": self.model_name, "content": self.content_of(target)},
            )
        ]

    def parse_response(self, raw: Any) -> Scores:
        if not isinstance(raw, dict) or not raw:
            raise MalformedResponseError(
                "Expected a non-empty mapping of label to probability",
                classification_type=self.type,
            )
        return {str(label): self._score(str(label), value) for label, value in raw.items()}

    def threshold_for(self, label: str) -> Optional[float]:
        return self.label_thresholds.get(label, self.flag_threshold)

    def should_flag(self, scores: Scores) -> bool:
        for label in TOXICITY_LABELS:
            threshold = self.threshold_for(label)
            if threshold is not None and label in scores and scores[label] >= threshold:
                return True
        return False
