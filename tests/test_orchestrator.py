"""Tests for running a classifier end to end: inference, storage and escalation."""

from unittest.mock import patch

import pytest

from conftest import count_rows, make_post
from moderation_pipeline.core.exceptions import (
    ConfigurationError,
    DatabaseException,
    DiscoveryError,
    MalformedResponseError,
    PersistenceConflict,
    TransientInferenceError,
    UnsupportedContentError,
)
from moderation_pipeline.models.accuracy_record import AccuracyRecord
from moderation_pipeline.models.classification_result import ClassificationResult, TargetKind
from moderation_pipeline.models.reviewable_item import ReviewableItem, ReviewStatus
from moderation_pipeline.schemas.review import Decision
from moderation_pipeline.services.endpoint_resolver import InferenceBackend


def reject_bitmaps(request):
    if request.body["content"].endswith(".bmp"):
        raise UnsupportedContentError("Unsupported image type", backend="https://nsfw-1.inference.test:8443")
    return {"porn": 90, "neutral": 10}


class TestClassification:

    def test_stores_normalized_scores(self, db_session, pipeline, inference_client):
        result = pipeline.orchestrator.classify(db_session, make_post(), "toxicity")

        assert result.id is not None
        assert result.target_kind == TargetKind.post
        assert result.target_id == 1
        assert result.scores == {"toxic": 0.91, "insult": 0.4, "threat": 0.01}
        assert result.model_used == "unbiased"

        call = inference_client.calls[0]
        assert call["base_url"] == "http://toxicity.test"
        assert call["path"] == "/api/v1/classify"
        assert call["body"] == {"model": "unbiased", "content": "You are a complete idiot"}

    def test_reclassification_updates_in_place(self, db_session, pipeline, inference_client):
        first = pipeline.orchestrator.classify(db_session, make_post(), "toxicity")
        first_id, created_at = first.id, first.created_at

        inference_client.responses["toxicity"] = {"toxic": 0.2}
        second = pipeline.orchestrator.classify(db_session, make_post(), "toxicity")

        assert second.id == first_id
        assert second.created_at == created_at
        assert second.scores == {"toxic": 0.2}
        assert count_rows(db_session, ClassificationResult) == 1

    def test_classifier_types_are_stored_separately(self, db_session, pipeline):
        pipeline.orchestrator.classify(db_session, make_post(), "toxicity")
        pipeline.orchestrator.classify(db_session, make_post(), "sentiment")

        stored = pipeline.store.list_for_target(db_session, make_post().ref)

        assert [r.classification_type for r in stored] == ["sentiment", "toxicity"]
        assert stored[0].scores == {"negative": 0.7, "neutral": 0.2, "positive": 0.1}

    def test_nsfw_combines_every_image(self, db_session, pipeline, inference_client):
        inference_client.responses["nsfw"] = lambda request: (
            {"porn": 90, "neutral": 10}
            if request.body["content"].endswith("b.png")
            else {"porn": 10, "neutral": 90}
        )
        target = make_post(upload_urls=["https://cdn.test/a.png", "https://cdn.test/b.png"])

        result = pipeline.orchestrator.classify(db_session, target, "nsfw")

        assert len(inference_client.calls) == 2
        assert result.scores == {"porn": 0.9, "neutral": 0.9}
        assert count_rows(db_session, ReviewableItem) == 1

    def test_unsupported_image_is_skipped(self, db_session, pipeline, inference_client):
        inference_client.responses["nsfw"] = reject_bitmaps
        target = make_post(upload_urls=["https://cdn.test/a.png", "https://cdn.test/b.bmp"])

        result = pipeline.orchestrator.classify(db_session, target, "nsfw")

        assert len(inference_client.calls) == 2
        assert result.scores == {"porn": 0.9, "neutral": 0.1}
        assert count_rows(db_session, ClassificationResult) == 1


class TestEscalation:

    def test_flagged_result_creates_pending_item(self, db_session, pipeline):
        pipeline.orchestrator.classify(db_session, make_post(), "toxicity")

        item = db_session.query(ReviewableItem).one()
        assert item.status == ReviewStatus.pending
        assert item.classification_type == "toxicity"
        assert item.payload == {
            "scores": {"toxic": 0.91, "insult": 0.4, "threat": 0.01},
            "model_used": "unbiased",
            "accuracy": 0,
        }

    def test_redelivered_job_does_not_duplicate_item(self, db_session, pipeline):
        pipeline.orchestrator.classify(db_session, make_post(), "toxicity")
        pipeline.orchestrator.classify(db_session, make_post(), "toxicity")

        assert count_rows(db_session, ClassificationResult) == 1
        assert count_rows(db_session, ReviewableItem) == 1

    def test_scores_below_threshold_are_not_escalated(self, db_session, pipeline, inference_client):
        inference_client.responses["toxicity"] = {"toxic": 0.1, "insult": 0.3}

        pipeline.orchestrator.classify(db_session, make_post(), "toxicity")

        assert count_rows(db_session, ClassificationResult) == 1
        assert count_rows(db_session, ReviewableItem) == 0

    def test_payload_carries_accuracy_at_flag_time(self, db_session, pipeline):
        db_session.add(AccuracyRecord(classification_type="toxicity", flags_agreed=3, flags_disagreed=1))
        db_session.commit()

        pipeline.orchestrator.classify(db_session, make_post(), "toxicity")

        assert db_session.query(ReviewableItem).one().payload["accuracy"] == 75

    def test_agreeing_with_flag_updates_accuracy(self, db_session, pipeline):
        pipeline.orchestrator.classify(db_session, make_post(), "toxicity")
        item = db_session.query(ReviewableItem).one()

        item, event = pipeline.review_queue.apply_decision(db_session, item.id, Decision.agree)

        assert item.status == ReviewStatus.agreed
        assert event.decision == Decision.agree
        record = pipeline.accuracy_tracker.get_record(db_session, "toxicity")
        assert (record.flags_agreed, record.flags_disagreed) == (1, 0)
        assert record.calculate_accuracy() == 100


class TestInferenceFailures:

    def test_transient_failure_stores_nothing(self, db_session, pipeline, inference_client):
        inference_client.responses["toxicity"] = TransientInferenceError(
            "Inference backend returned status 503", backend="http://toxicity.test"
        )

        with pytest.raises(TransientInferenceError):
            pipeline.orchestrator.classify(db_session, make_post(), "toxicity")

        assert count_rows(db_session, ClassificationResult) == 0
        assert count_rows(db_session, ReviewableItem) == 0

    def test_malformed_response_stores_nothing(self, db_session, pipeline, inference_client):
        inference_client.responses["toxicity"] = {"toxic": "very"}

        with pytest.raises(MalformedResponseError):
            pipeline.orchestrator.classify(db_session, make_post(), "toxicity")

        assert count_rows(db_session, ClassificationResult) == 0

    def test_fully_unsupported_target_stores_nothing(self, db_session, pipeline, inference_client):
        inference_client.responses["nsfw"] = reject_bitmaps
        target = make_post(upload_urls=["https://cdn.test/a.bmp", "https://cdn.test/b.bmp"])

        with pytest.raises(UnsupportedContentError):
            pipeline.orchestrator.classify(db_session, target, "nsfw")

        assert len(inference_client.calls) == 2
        assert count_rows(db_session, ClassificationResult) == 0
        assert count_rows(db_session, ReviewableItem) == 0

    @pytest.mark.parametrize("settings_overrides", [{"toxicity_endpoint": None}])
    def test_missing_endpoint_is_a_configuration_error(self, db_session, pipeline, inference_client):
        with pytest.raises(ConfigurationError):
            pipeline.orchestrator.classify(db_session, make_post(), "toxicity")

        assert inference_client.calls == []


class TestServiceDiscovery:

    def test_srv_endpoint_is_resolved_and_cached(self, db_session, pipeline, inference_client, srv_lookup):
        for target_id in (1, 2):
            target = make_post(target_id=target_id, upload_urls=["https://cdn.test/a.jpg"])
            pipeline.orchestrator.classify(db_session, target, "nsfw")

        assert {c["base_url"] for c in inference_client.calls} == {"https://nsfw-1.inference.test:8443"}
        assert srv_lookup.queries == ["_nsfw._tcp.inference.test"]

    def test_empty_discovery_is_retryable(self, db_session, pipeline, inference_client, srv_lookup):
        srv_lookup.records.clear()
        target = make_post(upload_urls=["https://cdn.test/a.jpg"])

        with pytest.raises(TransientInferenceError) as exc_info:
            pipeline.orchestrator.classify(db_session, target, "nsfw")

        assert isinstance(exc_info.value, DiscoveryError)
        assert inference_client.calls == []
        assert count_rows(db_session, ClassificationResult) == 0

    @pytest.mark.parametrize(
        "settings_overrides",
        [{"toxicity_endpoint_srv": "_toxicity._tcp.inference.test"}],
    )
    def test_srv_takes_precedence_over_static_endpoint(self, db_session, pipeline, inference_client, srv_lookup):
        srv_lookup.records["_toxicity._tcp.inference.test"] = [
            InferenceBackend("tox-1.inference.test", 8443, 10, 1)
        ]

        pipeline.orchestrator.classify(db_session, make_post(), "toxicity")

        assert inference_client.calls[0]["base_url"] == "https://tox-1.inference.test:8443"


class TestPersistenceConflicts:

    def test_conflict_is_retried_once(self, db_session, pipeline):
        real_upsert = pipeline.store.upsert
        attempts = []

        def flaky_upsert(*args, **kwargs):
            attempts.append(1)
            if len(attempts) == 1:
                raise PersistenceConflict("inserted concurrently", table="classification_results")
            return real_upsert(*args, **kwargs)

        with patch.object(pipeline.store, "upsert", side_effect=flaky_upsert):
            result = pipeline.orchestrator.classify(db_session, make_post(), "toxicity")

        assert len(attempts) == 2
        assert result.scores["toxic"] == 0.91
        assert count_rows(db_session, ClassificationResult) == 1

    def test_concurrent_insert_takes_update_path(self, db_session, session_factory, pipeline):
        other = session_factory()
        other.add(
            ClassificationResult(
                target_kind=TargetKind.post,
                target_id=1,
                classification_type="toxicity",
                scores={"toxic": 0.05},
                model_used="unbiased",
            )
        )
        other.commit()
        other.close()

        real_find = pipeline.store.find
        lookups = []

        def stale_find(*args, **kwargs):
            lookups.append(1)
            if len(lookups) == 1:
                return None
            return real_find(*args, **kwargs)

        with patch.object(pipeline.store, "find", side_effect=stale_find):
            result = pipeline.orchestrator.classify(db_session, make_post(), "toxicity")

        assert len(lookups) == 2
        assert result.scores["toxic"] == 0.91
        assert count_rows(db_session, ClassificationResult) == 1

    def test_repeated_conflicts_raise_database_exception(self, db_session, pipeline):
        conflict = PersistenceConflict("inserted concurrently", table="classification_results")

        with patch.object(pipeline.store, "upsert", side_effect=conflict):
            with pytest.raises(DatabaseException):
                pipeline.orchestrator.classify(db_session, make_post(), "toxicity")
