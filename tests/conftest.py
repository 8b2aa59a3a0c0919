"""Pytest configuration and fixtures."""

import sys
import uuid
from pathlib import Path

import pytest

# Add project root to sys.path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from clippio import metrics  # noqa: E402
from clippio.pipeline.errors import SubmitError  # noqa: E402
from clippio.pipeline.models import JobHandle, JobState, JobStatus  # noqa: E402


# ─────────────────────────────────────────────────────
# Status helpers
# ─────────────────────────────────────────────────────


def processing():
    return JobStatus(state=JobState.PROCESSING)


def starting():
    return JobStatus(state=JobState.STARTING)


def succeeded(output):
    return JobStatus(state=JobState.SUCCEEDED, output=output)


def failed(error=None):
    return JobStatus(state=JobState.FAILED, error=error)


# ─────────────────────────────────────────────────────
# Fakes
# ─────────────────────────────────────────────────────


class FakeReplicateClient:
    """
    Scripted stand-in for ReplicateClient.

    `image` / `video` are the statuses returned by successive polls of that
    stage's prediction; once a script runs out every further poll reports
    `processing`. Stages listed in `reject` fail at submit time.
    """

    def __init__(self, image=(), video=(), reject=()):
        self.scripts = {"image": list(image), "video": list(video)}
        self.reject = set(reject)
        self.submitted = []   # (stage, JobSpec)
        self.handles = []     # JobHandle per successful submit
        self.polls = []       # (stage, handle id)
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True

    @staticmethod
    def _stage_of(spec):
        return "video" if "input_image" in spec.input else "image"

    async def submit(self, spec):
        stage = self._stage_of(spec)
        self.submitted.append((stage, spec))
        if stage in self.reject:
            raise SubmitError(422, f'{{"detail": "{stage} version rejected"}}')
        handle = JobHandle(
            id=f"{stage}-{uuid.uuid4().hex[:8]}",
            status_url=f"https://api.replicate.test/v1/predictions/{stage}",
        )
        self.handles.append(handle)
        return handle

    async def poll(self, handle):
        stage = handle.id.split("-", 1)[0]
        self.polls.append((stage, handle.id))
        script = self.scripts[stage]
        return script.pop(0) if script else processing()

    def poll_count(self, stage):
        return sum(1 for s, _ in self.polls if s == stage)


class RecordingSleep:
    """Async sleep replacement that records requested delays and returns at once."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


# ─────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


@pytest.fixture
def dancing_cat_client():
    """Image ready on the 3rd poll, video ready on the 10th."""
    return FakeReplicateClient(
        image=[starting(), processing(), succeeded("https://img/x.png")],
        video=[processing()] * 9 + [succeeded("https://vid/y.mp4")],
    )


@pytest.fixture(autouse=True)
def clean_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def replicate_token(monkeypatch):
    monkeypatch.setenv("REPLICATE_API_TOKEN", "r8_test_token")
    monkeypatch.delenv("DELEGATE_SHARED_SECRET", raising=False)
    return "r8_test_token"
