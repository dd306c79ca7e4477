"""Strategy interface shared by every content classifier.

Classifiers are pure: they decide eligibility, shape inference requests,
normalize backend output and apply the flag threshold. Network access and
persistence belong to the orchestrator.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from numbers import Real
from typing import Any, Dict, List, Optional

from moderation_pipeline.core.exceptions import MalformedResponseError
from moderation_pipeline.core.security import sanitize_input, truncate_content
from moderation_pipeline.models.classification_result import TargetKind
from moderation_pipeline.schemas.classification import ContentTarget

Scores = Dict[str, float]


@dataclass(frozen=True)
class InferenceRequest:
    path: str
    body: Dict[str, Any]


@dataclass(frozen=True)
class EndpointConfig:
    """Where a classifier's backend lives: a static URL, an SRV domain, or both."""

    endpoint: Optional[str] = None
    endpoint_srv: Optional[str] = None
    api_key: Optional[str] = field(default=None, repr=False)


class ContentClassifier(ABC):
    """Base class for the toxicity, sentiment, emotion and NSFW strategies."""

    type: str = "base"

    def __init__(
        self,
        model_name: str,
        flag_threshold: Optional[float] = None,
        endpoint: Optional[EndpointConfig] = None,
        max_content_chars: int = 2000,
    ):
        self.model_name = model_name
        self.flag_threshold = flag_threshold
        self.endpoint = endpoint or EndpointConfig()
        self.max_content_chars = max_content_chars

    @abstractmethod
    def target_eligible(self, target: ContentTarget) -> bool:
        ...

    @abstractmethod
    def build_requests(self, target: ContentTarget) -> List[InferenceRequest]:
        ...

    @abstractmethod
    def parse_response(self, raw: Any) -> Scores:
        ...

    @abstractmethod
    def should_flag(self, scores: Scores) -> bool:
        ...

    def combine_scores(self, responses: List[Scores]) -> Scores:
        """Merge per-request scores into one result. Text classifiers send one request."""
        if len(responses) != 1:
            raise MalformedResponseError(
                f"Expected exactly one response, got {len(responses)}",
                classification_type=self.type,
            )
        return responses[0]

    def content_of(self, target: ContentTarget) -> str:
        """Text sent for classification; the first post of a topic includes its title."""
        if target.target_kind == TargetKind.post and target.post_number == 1 and target.title:
            content = f"{target.title}\n{target.raw}"
        else:
            content = target.raw
        return truncate_content(sanitize_input(content), self.max_content_chars)

    def is_regular_text(self, target: ContentTarget) -> bool:
        if target.target_kind == TargetKind.post and target.post_type != "regular":
            return False
        return bool(self.content_of(target))

    def _score(self, label: str, value: Any, scale: float = 1.0) -> float:
        # bool is a Real subclass but never a valid score
        if isinstance(value, bool) or not isinstance(value, Real):
            raise MalformedResponseError(
                f"Score for label '{label}' is not numeric",
                classification_type=self.type,
                details={"label": label, "value": repr(value)[:100]},
            )
        if not 0 <= value <= scale:
            raise MalformedResponseError(
                f"Score for label '{label}' is outside [0, {scale:g}]",
                classification_type=self.type,
                details={"label": label, "value": value},
            )
        return float(value) / scale


class HuggingFaceTextClassifier(ContentClassifier):
    """Shared shape for text-classification models served behind ``/predict``.

    Backends answer with ``[{"label": ..., "score": ...}, ...]``, sometimes
    wrapped in one more list; scores are probabilities on ``[0, 1]``.
    """

    flag_labels: tuple = ()

    def target_eligible(self, target: ContentTarget) -> bool:
        return target.target_kind == TargetKind.post and self.is_regular_text(target)

    def build_requests(self, target: ContentTarget) -> List[InferenceRequest]:
        return [
            InferenceRequest(
                path="/predict",
                body={"inputs": self.content_of(target), "truncate": True},
            )
        ]

    def parse_response(self, raw: Any) -> Scores:
        if isinstance(raw, list) and len(raw) == 1 and isinstance(raw[0], list):
            raw = raw[0]
        if not isinstance(raw, list) or not raw:
            raise MalformedResponseError(
                "Expected a non-empty list of label scores",
                classification_type=self.type,
            )

        scores: Scores = {}
        for entry in raw:
            if not isinstance(entry, dict) or not isinstance(entry.get("label"), str):
                raise MalformedResponseError(
                    "Label score entry is missing its label",
                    classification_type=self.type,
                )
            label = entry["label"].lower()
            scores[label] = self._score(label, entry.get("score"))
        return scores

    def should_flag(self, scores: Scores) -> bool:
        if self.flag_threshold is None:
            return False
        return any(scores.get(label, 0.0) >= self.flag_threshold for label in self.flag_labels)
