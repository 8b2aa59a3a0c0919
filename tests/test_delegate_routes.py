"""
Delegate endpoint tests

Drives POST /clippio/delegate through FastAPI's TestClient with a scripted
Replicate client, covering validation, configuration, every upstream
failure mode and the full success response.
"""

import pytest
from fastapi.testclient import TestClient

from clippio import metrics
from clippio.main import app
from clippio.pipeline.models import OutcomeKind, PipelineOutcome, Stage
from clippio.pipeline.routes import (
    build_service,
    get_client_factory,
    get_service_factory,
    outcome_body,
    parse_delegate_request,
)

from conftest import FakeReplicateClient, failed, processing, succeeded

URL = "/clippio/delegate"


@pytest.fixture
def wire(fake_sleep):
    """Install a fake Replicate client; returns a function that does so and records tokens."""
    tokens = []

    def install(client):
        def factory(token):
            tokens.append(token)
            return client

        app.dependency_overrides[get_client_factory] = lambda: factory
        app.dependency_overrides[get_service_factory] = (
            lambda: lambda c: build_service(c, sleep=fake_sleep)
        )
        return tokens

    yield install
    app.dependency_overrides.clear()


@pytest.fixture
def http():
    return TestClient(app)


# ─────────────────────────────────────────────────────
# Validation
# ─────────────────────────────────────────────────────


class TestValidation:
    @pytest.mark.parametrize("body", [
        {},
        {"task_description": ""},
        {"task_description": "   "},
        {"task_description": None, "priority": "high"},
    ])
    def test_missing_task_description_is_400_without_network(self, http, wire, replicate_token, body):
        client = FakeReplicateClient()
        tokens = wire(client)

        resp = http.post(URL, json=body)

        assert resp.status_code == 400
        assert resp.json()["error"] == "task_description is required"
        assert "message" in resp.json()
        assert tokens == []
        assert client.submitted == [] and client.polls == []

    def test_invalid_priority_is_400(self, http, wire, replicate_token):
        client = FakeReplicateClient()
        wire(client)

        resp = http.post(URL, json={"task_description": "a cat", "priority": "urgent"})

        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid request"
        assert "priority" in resp.json()["message"]
        assert client.submitted == []

    def test_non_object_body_is_400(self, http, wire, replicate_token):
        wire(FakeReplicateClient())
        resp = http.post(URL, json=["a dancing cat"])
        assert resp.status_code == 400

    def test_malformed_json_is_unexpected_error(self, http, wire, replicate_token):
        wire(FakeReplicateClient())
        resp = http.post(URL, content=b"{not json", headers={"Content-Type": "application/json"})
        assert resp.status_code == 500
        assert resp.json()["error"] == "Unexpected error"

    def test_missing_token_is_500_without_network(self, http, wire, monkeypatch):
        monkeypatch.delenv("REPLICATE_API_TOKEN", raising=False)
        client = FakeReplicateClient()
        tokens = wire(client)

        resp = http.post(URL, json={"task_description": "a dancing cat"})

        assert resp.status_code == 500
        assert resp.json()["error"] == "REPLICATE_API_TOKEN not configured"
        assert "Replicate API token" in resp.json()["message"]
        assert tokens == []
        assert client.submitted == []


# ─────────────────────────────────────────────────────
# Success
# ─────────────────────────────────────────────────────


class TestSuccess:
    def test_dancing_cat_end_to_end(self, http, wire, replicate_token, dancing_cat_client):
        tokens = wire(dancing_cat_client)

        resp = http.post(URL, json={"task_description": "a dancing cat"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["status"] == "completed"
        assert body["result"] == {"video_url": "https://vid/y.mp4", "image_url": "https://img/x.png"}
        assert body["priority"] == "medium"
        assert body["user_id"] is None
        assert body["message"] == "Video generated successfully"
        assert body["task_id"] == dancing_cat_client.handles[1].id
        assert tokens == [replicate_token]
        assert dancing_cat_client.closed

    def test_priority_and_user_id_are_echoed(self, http, wire, replicate_token):
        wire(FakeReplicateClient(image=[succeeded(["https://img/a.png"])], video=[succeeded("https://vid/a.mp4")]))

        resp = http.post(URL, json={
            "task_description": "a rocket to the moon",
            "priority": "critical",
            "expected_duration": "30s",
            "user_id": "tg-4242",
        })

        assert resp.status_code == 200
        assert resp.json()["priority"] == "critical"
        assert resp.json()["user_id"] == "tg-4242"

    def test_two_requests_do_not_share_handles(self, http, wire, replicate_token):
        task_ids = []
        for _ in range(2):
            wire(FakeReplicateClient(image=[succeeded("https://img/x.png")], video=[succeeded("https://vid/y.mp4")]))
            resp = http.post(URL, json={"task_description": "a dancing cat"})
            assert resp.status_code == 200
            task_ids.append(resp.json()["task_id"])

        assert task_ids[0] != task_ids[1]

    def test_null_optionals_fall_back_to_defaults(self, http, wire, replicate_token):
        wire(FakeReplicateClient(image=[succeeded("https://img/x.png")], video=[succeeded("https://vid/y.mp4")]))

        resp = http.post(URL, json={"task_description": "a dancing cat", "priority": None, "user_id": None})

        assert resp.status_code == 200
        assert resp.json()["priority"] == "medium"
        assert resp.json()["user_id"] is None

    def test_configured_preset_styles_the_prompts(self, http, wire, replicate_token, monkeypatch):
        monkeypatch.setattr("clippio.config.CLIPPIO_PRESET", "cinematic")
        client = FakeReplicateClient(image=[succeeded("https://img/x.png")], video=[succeeded("https://vid/y.mp4")])
        wire(client)

        resp = http.post(URL, json={"task_description": "a dancing cat"})

        assert resp.status_code == 200
        (_, image_spec), (_, video_spec) = client.submitted
        assert image_spec.input["prompt"].startswith("a dancing cat, cinematic still")
        assert video_spec.input["motion_bucket_id"] == 90

    def test_unknown_preset_is_unexpected_error(self, http, wire, replicate_token, monkeypatch):
        monkeypatch.setattr("clippio.config.CLIPPIO_PRESET", "vaporwave")
        client = FakeReplicateClient()
        wire(client)

        resp = http.post(URL, json={"task_description": "a dancing cat"})

        assert resp.status_code == 500
        assert resp.json()["error"] == "Unexpected error"
        assert "Unknown preset: vaporwave" in resp.json()["message"]
        assert client.submitted == []


# ─────────────────────────────────────────────────────
# Upstream failures
# ─────────────────────────────────────────────────────


class TestUpstreamFailures:
    def test_image_submit_rejected_is_500(self, http, wire, replicate_token):
        client = FakeReplicateClient(reject={"image"})
        wire(client)

        resp = http.post(URL, json={"task_description": "a dancing cat"})

        assert resp.status_code == 500
        assert resp.json()["error"] == "Image generation failed"
        assert resp.json()["message"].startswith("Replicate API error: ")
        assert [stage for stage, _ in client.submitted] == ["image"]

    def test_video_submit_rejected_is_500(self, http, wire, replicate_token):
        wire(FakeReplicateClient(image=[succeeded("i")], reject={"video"}))
        resp = http.post(URL, json={"task_description": "a dancing cat"})
        assert resp.status_code == 500
        assert resp.json()["error"] == "Video generation failed"

    def test_image_failed_carries_provider_text(self, http, wire, replicate_token):
        wire(FakeReplicateClient(image=[processing(), failed("NSFW content detected")]))

        resp = http.post(URL, json={"task_description": "a dancing cat"})

        assert resp.status_code == 500
        assert resp.json() == {"error": "Image generation failed", "message": "NSFW content detected"}

    def test_video_failed_without_text_uses_default_message(self, http, wire, replicate_token):
        wire(FakeReplicateClient(image=[succeeded("i")], video=[failed()]))

        resp = http.post(URL, json={"task_description": "a dancing cat"})

        assert resp.status_code == 500
        assert resp.json()["message"] == "Unknown error during video generation"

    def test_image_timeout_is_408(self, http, wire, replicate_token):
        client = FakeReplicateClient()
        wire(client)

        resp = http.post(URL, json={"task_description": "a dancing cat"})

        assert resp.status_code == 408
        assert resp.json() == {
            "error": "Image generation timed out",
            "message": "Image generation took longer than 90 seconds",
        }
        assert client.poll_count("image") == 45
        assert client.poll_count("video") == 0

    def test_video_timeout_is_408(self, http, wire, replicate_token):
        wire(FakeReplicateClient(image=[succeeded("i")]))

        resp = http.post(URL, json={"task_description": "a dancing cat"})

        assert resp.status_code == 408
        assert resp.json()["message"] == "Video generation took longer than 180 seconds"

    def test_client_construction_error_is_unexpected(self, http, replicate_token):
        def broken_factory(token):
            raise RuntimeError("boom")

        app.dependency_overrides[get_client_factory] = lambda: broken_factory
        try:
            resp = http.post(URL, json={"task_description": "a dancing cat"})
        finally:
            app.dependency_overrides.clear()

        assert resp.status_code == 500
        assert resp.json() == {"error": "Unexpected error", "message": "boom"}


# ─────────────────────────────────────────────────────
# Helpers and metrics
# ─────────────────────────────────────────────────────


class TestHelpers:
    def test_parse_valid_request_defaults(self):
        req, invalid = parse_delegate_request({"task_description": "a cat"})
        assert invalid is None
        assert req.priority == "medium"
        assert req.user_id is None

    def test_submit_error_message_is_truncated(self):
        outcome = PipelineOutcome.submit_error(Stage.VIDEO, "x" * 500)
        body = outcome_body(outcome)
        assert body["message"] == "Replicate API error: " + "x" * 100

    def test_outcomes_are_counted(self, http, wire, replicate_token):
        wire(FakeReplicateClient())
        http.post(URL, json={"task_description": "a dancing cat"})

        snapshot = metrics.get_snapshot()
        assert snapshot["counters"]["requests.delegate"] == 1
        assert snapshot["counters"][f"outcomes.{OutcomeKind.UPSTREAM_TIMEOUT.value}"] == 1
        assert snapshot["counters"]["errors.image_upstream_timeout"] == 1
        assert snapshot["stage_failures"] == {"image_upstream_timeout": 1}
        assert snapshot["latency"]["stage.image"]["count"] == 1
        assert snapshot["latency"]["delegate"]["count"] == 1


class TestServiceEndpoints:
    def test_health_reports_token(self, http, replicate_token):
        resp = http.get("/health")
        assert resp.status_code == 200
        assert resp.json()["replicate_token_set"] is True

    def test_metrics_endpoint(self, http):
        resp = http.get("/metrics")
        assert resp.status_code == 200
        assert "counters" in resp.json()


class TestDelegateAuth:
    def test_wrong_secret_is_401(self, http, wire, replicate_token, monkeypatch):
        monkeypatch.setenv("DELEGATE_SHARED_SECRET", "s3cret")
        client = FakeReplicateClient()
        wire(client)

        resp = http.post(URL, json={"task_description": "a cat"}, headers={"X-Delegate-Secret": "nope"})

        assert resp.status_code == 401
        assert client.submitted == []

    def test_correct_secret_passes(self, http, wire, replicate_token, monkeypatch):
        monkeypatch.setenv("DELEGATE_SHARED_SECRET", "s3cret")
        wire(FakeReplicateClient(image=[succeeded("i")], video=[succeeded("v")]))

        resp = http.post(URL, json={"task_description": "a cat"}, headers={"X-Delegate-Secret": "s3cret"})

        assert resp.status_code == 200

    def test_unset_secret_outside_development_is_500(self, http, wire, replicate_token, monkeypatch):
        monkeypatch.setattr("clippio.config.ENVIRONMENT", "production")
        wire(FakeReplicateClient())

        resp = http.post(URL, json={"task_description": "a cat"})

        assert resp.status_code == 500
        assert resp.json()["error"] == "DELEGATE_SHARED_SECRET not configured"

    def test_health_is_public(self, http, monkeypatch):
        monkeypatch.setenv("DELEGATE_SHARED_SECRET", "s3cret")
        assert http.get("/health").status_code == 200
