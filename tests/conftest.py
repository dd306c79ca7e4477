"""
Shared fixtures: an in-memory SQLite database in place of Postgres and
stub collaborators in place of the network.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("API_KEY", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from moderation_pipeline.classifiers.registry import build_registry
from moderation_pipeline.clients.content_client import ContentSource
from moderation_pipeline.core.config import Settings
from moderation_pipeline.db.session import Base, get_db
from moderation_pipeline.models.accuracy_record import AccuracyRecord
from moderation_pipeline.models.classification_result import ClassificationResult, TargetKind
from moderation_pipeline.models.reviewable_item import ReviewableItem
from moderation_pipeline.schemas.classification import ContentTarget
from moderation_pipeline.services.endpoint_resolver import InferenceBackend, InferenceEndpointResolver
from moderation_pipeline.services.pipeline import ClassificationPipeline


class StubInferenceClient:
    """Returns canned responses keyed by classification type and records every call."""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []
        self.closed = False

    def classify(self, base_url, request, api_key=None, classification_type="unknown"):
        self.calls.append(
            {
                "base_url": base_url,
                "path": request.path,
                "body": request.body,
                "api_key": api_key,
                "classification_type": classification_type,
            }
        )
        response = self.responses[classification_type]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        return response

    def close(self):
        self.closed = True


class StubContentSource(ContentSource):
    def __init__(self, targets=None):
        self.targets = {t.ref: t for t in (targets or [])}
        self.fetched = []

    def fetch(self, target_kind, target_id):
        self.fetched.append((target_kind, target_id))
        return self.targets.get((target_kind, target_id))


class StubSrvLookup:
    def __init__(self, records=None):
        self.records = {} if records is None else records
        self.queries = []

    def __call__(self, domain):
        self.queries.append(domain)
        return list(self.records.get(domain, []))


def make_settings(**overrides) -> Settings:
    values = {
        "toxicity_enabled": True,
        "toxicity_endpoint": "http://toxicity.test",
        "sentiment_enabled": True,
        "sentiment_endpoint": "http://sentiment.test",
        "sentiment_flag_threshold": 0.9,
        "emotion_enabled": False,
        "emotion_endpoint": "http://emotion.test",
        "nsfw_enabled": True,
        "nsfw_endpoint_srv": "_nsfw._tcp.inference.test",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_post(target_id=1, raw="You are a complete idiot", **kwargs) -> ContentTarget:
    return ContentTarget(
        target_id=target_id,
        target_kind=TargetKind.post,
        raw=raw,
        post_number=kwargs.pop("post_number", 2),
        **kwargs,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def inference_client():
    return StubInferenceClient(
        {
            "toxicity": {"toxic": 0.91, "insult": 0.4, "threat": 0.01},
            "sentiment": [{"label": "negative", "score": 0.7}, {"label": "neutral", "score": 0.2}, {"label": "positive", "score": 0.1}],
            "emotion": [[{"label": "anger", "score": 0.6}, {"label": "joy", "score": 0.4}]],
            "nsfw": {"porn": 12, "sexy": 5, "neutral": 83},
        }
    )


@pytest.fixture
def srv_lookup():
    return StubSrvLookup(
        {"_nsfw._tcp.inference.test": [InferenceBackend("nsfw-1.inference.test", 8443, 10, 1)]}
    )


@pytest.fixture
def content_source():
    return StubContentSource([make_post(target_id=7, raw="Fetched from the forum, you idiot")])


@pytest.fixture
def settings_overrides():
    return {}


@pytest.fixture
def pipeline(inference_client, srv_lookup, content_source, settings_overrides):
    settings = make_settings(**settings_overrides)
    return ClassificationPipeline(
        registry=build_registry(settings),
        resolver=InferenceEndpointResolver(lookup=srv_lookup),
        client=inference_client,
        content_source=content_source,
    )


@pytest.fixture
def client(session_factory, pipeline):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.pipeline = pipeline
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def count_rows(db, model) -> int:
    return db.query(model).count()
