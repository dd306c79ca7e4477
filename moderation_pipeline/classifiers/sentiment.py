from moderation_pipeline.classifiers.base import HuggingFaceTextClassifier


class SentimentClassifier(HuggingFaceTextClassifier):
    """Positive/neutral/negative probabilities; escalates strongly negative posts."""

    type = "sentiment"
    flag_labels = ("negative",)


class EmotionClassifier(HuggingFaceTextClassifier):
    """Seven-way emotion probabilities (anger, disgust, fear, joy, neutral, sadness, surprise)."""

    type = "emotion"
    flag_labels = ("anger", "disgust")
