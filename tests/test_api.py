"""
API tests for the classification pipeline.

Requests go through the FastAPI app with the database dependency pointed at
in-memory SQLite and the pipeline wired to stub inference and content
collaborators.
"""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from moderation_pipeline.core.config import settings
from moderation_pipeline.core.exceptions import TransientInferenceError, UnsupportedContentError


def classify_payload(classifier_type="toxicity", target_id=1, raw="You are a complete idiot", **target):
    return {
        "target_id": target_id,
        "target_kind": "post",
        "classifier_type": classifier_type,
        "target": {
            "target_id": target_id,
            "target_kind": "post",
            "raw": raw,
            "post_number": 2,
            **target,
        },
    }


class TestMonitoringEndpoints:

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["services"]["database"] == "healthy"
        assert "X-Request-ID" in response.headers

    def test_metrics_endpoint(self, client):
        client.post("/api/v1/classify", json=classify_payload())

        response = client.get("/metrics")

        assert response.status_code == 200
        data = response.json()
        assert data["classification_breakdown"] == {"toxicity": 1}
        assert data["review_breakdown"] == {"pending": 1}
        assert data["enabled_classifiers"] == ["nsfw", "sentiment", "toxicity"]

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["endpoints"]["classify"] == "/api/v1/classify"


class TestClassificationEndpoints:

    def test_classify_success(self, client):
        response = client.post("/api/v1/classify", json=classify_payload())

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "classified"
        assert data["result"]["scores"]["toxic"] == 0.91
        assert data["result"]["model_used"] == "unbiased"

    def test_classify_skips_blank_target(self, client):
        response = client.post("/api/v1/classify", json=classify_payload(raw=""))

        assert response.status_code == 200
        assert response.json() == {"status": "skipped", "reason": "ineligible", "result": None}

    def test_classify_unknown_type(self, client):
        response = client.post("/api/v1/classify", json=classify_payload("spam"))

        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "VALIDATION_ERROR"

    def test_classify_invalid_target_kind(self, client):
        payload = classify_payload()
        payload["target_kind"] = "topic"

        response = client.post("/api/v1/classify", json=payload)

        assert response.status_code == 422

    def test_transient_failure_returns_503(self, client, inference_client):
        inference_client.responses["toxicity"] = TransientInferenceError("timed out", backend="http://toxicity.test")

        response = client.post("/api/v1/classify", json=classify_payload())

        assert response.status_code == 503
        assert response.json()["detail"]["error_code"] == "TRANSIENT_INFERENCE_ERROR"

    def test_malformed_response_returns_422(self, client, inference_client):
        inference_client.responses["toxicity"] = ["not", "a", "mapping"]

        response = client.post("/api/v1/classify", json=classify_payload())

        assert response.status_code == 422
        assert response.json()["detail"]["error_code"] == "MALFORMED_RESPONSE"

    def test_unsupported_images_are_skipped(self, client, inference_client):
        inference_client.responses["nsfw"] = UnsupportedContentError("Unsupported image type")

        response = client.post(
            "/api/v1/classify",
            json=classify_payload("nsfw", upload_urls=["https://cdn.test/scan.bmp"]),
        )

        assert response.status_code == 200
        assert response.json() == {"status": "skipped", "reason": "unsupported", "result": None}

    def test_list_classifications_for_target(self, client):
        client.post("/api/v1/classify", json=classify_payload("toxicity"))
        client.post("/api/v1/classify", json=classify_payload("sentiment"))

        response = client.get("/api/v1/classifications/post/1")

        assert response.status_code == 200
        assert [r["classification_type"] for r in response.json()] == ["sentiment", "toxicity"]


class TestReviewEndpoints:

    def test_review_flow_updates_accuracy(self, client):
        client.post("/api/v1/classify", json=classify_payload())

        items = client.get("/api/v1/reviews", params={"status": "pending"}).json()
        assert len(items) == 1
        assert items[0]["payload"]["accuracy"] == 0

        response = client.post(f"/api/v1/reviews/{items[0]['id']}/decision", json={"decision": "agree"})

        assert response.status_code == 200
        data = response.json()
        assert data["applied"] is True
        assert data["item"]["status"] == "agreed"

        accuracy = client.get("/api/v1/analytics/accuracy").json()
        assert accuracy["classifiers"] == [
            {"classification_type": "toxicity", "flags_agreed": 1, "flags_disagreed": 0, "accuracy": 100}
        ]

    def test_repeated_decision_is_ignored(self, client):
        client.post("/api/v1/classify", json=classify_payload())
        item_id = client.get("/api/v1/reviews").json()[0]["id"]

        client.post(f"/api/v1/reviews/{item_id}/decision", json={"decision": "disagree"})
        response = client.post(f"/api/v1/reviews/{item_id}/decision", json={"decision": "agree"})

        assert response.status_code == 200
        assert response.json()["applied"] is False
        assert response.json()["item"]["status"] == "disagreed"

    def test_decision_event_by_target(self, client):
        client.post("/api/v1/classify", json=classify_payload())

        response = client.post(
            "/api/v1/moderation-decisions",
            json={"target_kind": "post", "target_id": 1, "classification_type": "toxicity", "decision": "disagree"},
        )

        assert response.status_code == 200
        assert response.json()["item"]["status"] == "disagreed"

    def test_decision_for_unknown_item(self, client):
        response = client.post("/api/v1/reviews/999/decision", json={"decision": "agree"})

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_decision_event_without_item(self, client):
        response = client.post(
            "/api/v1/moderation-decisions",
            json={"target_kind": "post", "target_id": 42, "classification_type": "toxicity", "decision": "agree"},
        )

        assert response.status_code == 404


class TestAnalyticsEndpoints:

    def test_classification_report(self, client):
        client.post("/api/v1/classify", json=classify_payload(target_id=1))
        client.post("/api/v1/classify", json=classify_payload(target_id=2))
        now = datetime.utcnow()

        response = client.get(
            "/api/v1/analytics/classifications",
            params={
                "classification_type": "toxicity",
                "start": (now - timedelta(days=1)).isoformat(),
                "end": (now + timedelta(days=1)).isoformat(),
                "group_by": "target_kind",
                "label": "toxic",
                "threshold": 0.9,
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["breakdown"] == {"post": 2}

    def test_report_rejects_inverted_range(self, client):
        response = client.get(
            "/api/v1/analytics/classifications",
            params={"classification_type": "toxicity", "start": "2026-03-02T00:00:00", "end": "2026-03-01T00:00:00"},
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_report_rejects_out_of_range_threshold(self, client):
        response = client.get(
            "/api/v1/analytics/classifications",
            params={
                "classification_type": "toxicity",
                "start": "2026-03-01T00:00:00",
                "end": "2026-03-02T00:00:00",
                "label": "toxic",
                "threshold": 1.5,
            },
        )

        assert response.status_code == 422


class TestApiKey:

    def test_missing_key_is_rejected_when_configured(self, client):
        with patch.object(settings, "api_key", "secret"):
            response = client.get("/api/v1/reviews")

        assert response.status_code == 401
        assert response.json()["error_code"] == "INVALID_API_KEY"

    def test_matching_key_is_accepted(self, client):
        with patch.object(settings, "api_key", "secret"):
            response = client.get("/api/v1/reviews", headers={"X-API-Key": "secret"})

        assert response.status_code == 200

    @pytest.mark.parametrize("path", ["/health", "/"])
    def test_monitoring_endpoints_are_open(self, client, path):
        with patch.object(settings, "api_key", "secret"):
            response = client.get(path)

        assert response.status_code == 200
