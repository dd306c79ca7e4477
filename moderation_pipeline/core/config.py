from typing import Dict

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Content Classification Pipeline"
    database_url: str = "postgresql+psycopg2://postgres:postgres@db:5432/moderation"
    sql_echo: bool = False
    log_level: str = "INFO"
    log_file: str | None = None
    api_key: str | None = None

    # Inference transport
    inference_timeout: float = 10.0
    inference_scheme: str = "https"
    endpoint_cache_ttl: int = 300
    max_content_chars: int = 2000

    # Forum/chat content API used to load job targets
    content_api_url: str | None = None
    content_api_key: str | None = None

    toxicity_enabled: bool = False
    toxicity_endpoint: str | None = None
    toxicity_endpoint_srv: str | None = None
    toxicity_api_key: str | None = None
    toxicity_model: str = "unbiased"
    toxicity_flag_threshold: float | None = 0.8
    toxicity_label_thresholds: Dict[str, float] = {}

    sentiment_enabled: bool = False
    sentiment_endpoint: str | None = None
    sentiment_endpoint_srv: str | None = None
    sentiment_api_key: str | None = None
    sentiment_model: str = "cardiffnlp/twitter-roberta-base-sentiment-latest"
    sentiment_flag_threshold: float | None = None

    emotion_enabled: bool = False
    emotion_endpoint: str | None = None
    emotion_endpoint_srv: str | None = None
    emotion_api_key: str | None = None
    emotion_model: str = "j-hartmann/emotion-english-distilroberta-base"
    emotion_flag_threshold: float | None = None

    nsfw_enabled: bool = False
    nsfw_endpoint: str | None = None
    nsfw_endpoint_srv: str | None = None
    nsfw_api_key: str | None = None
    nsfw_model: str = "nsfw_detector"
    nsfw_flag_threshold: float | None = 0.6
    nsfw_label_thresholds: Dict[str, float] = {}

    class Config:
        env_file = ".env"

settings = Settings()
