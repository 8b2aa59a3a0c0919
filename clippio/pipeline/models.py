"""
Pydantic models and enums for the image → video delegate pipeline.
"""

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Stages ───────────────────────────────────────────────────────────────────

class Stage(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


# ── Provider jobs ────────────────────────────────────────────────────────────

class JobSpec(BaseModel):
    """One prediction request: which model version to run and its input."""
    model_config = ConfigDict(frozen=True)

    provider_model_id: str
    input: dict[str, Any] = Field(default_factory=dict)


class JobHandle(BaseModel):
    """Reference to a submitted prediction, valid until it reaches a terminal state."""
    model_config = ConfigDict(frozen=True)

    id: str
    status_url: str


class JobState(str, Enum):
    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_JOB_STATES = {JobState.SUCCEEDED, JobState.FAILED}


class JobStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    state: JobState
    output: Any = None          # only set when SUCCEEDED
    error: Optional[str] = None  # only set when FAILED

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_JOB_STATES

    @classmethod
    def processing(cls) -> "JobStatus":
        return cls(state=JobState.PROCESSING)


def primary_output(raw: Any) -> Any:
    """Replicate returns either a single value or a list of values; we want the first."""
    if isinstance(raw, (list, tuple)):
        return raw[0] if raw else None
    return raw


class StageResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    primary_output: str
    job_id: str


# ── Pipeline outcome ─────────────────────────────────────────────────────────

class OutcomeKind(str, Enum):
    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    CONFIGURATION_ERROR = "configuration_error"
    UPSTREAM_SUBMIT_ERROR = "upstream_submit_error"
    UPSTREAM_TIMEOUT = "upstream_timeout"
    UPSTREAM_FAILURE = "upstream_failure"
    UNEXPECTED_ERROR = "unexpected_error"


class PipelineOutcome(BaseModel):
    """
    Terminal result of one delegate request.

    Which fields are populated depends on `kind`:
      SUCCESS               → image_url, video_url, task_id
      UPSTREAM_*            → stage, detail (and elapsed for timeouts)
      the remaining errors  → detail
    """
    model_config = ConfigDict(frozen=True)

    kind: OutcomeKind
    stage: Optional[Stage] = None
    detail: str = ""
    elapsed: Optional[float] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    task_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    @classmethod
    def success(cls, image_url: str, video_url: str, task_id: str) -> "PipelineOutcome":
        return cls(kind=OutcomeKind.SUCCESS, image_url=image_url, video_url=video_url, task_id=task_id)

    @classmethod
    def validation_error(cls, detail: str) -> "PipelineOutcome":
        return cls(kind=OutcomeKind.VALIDATION_ERROR, detail=detail)

    @classmethod
    def configuration_error(cls, detail: str) -> "PipelineOutcome":
        return cls(kind=OutcomeKind.CONFIGURATION_ERROR, detail=detail)

    @classmethod
    def submit_error(cls, stage: Stage, detail: str) -> "PipelineOutcome":
        return cls(kind=OutcomeKind.UPSTREAM_SUBMIT_ERROR, stage=stage, detail=detail)

    @classmethod
    def timeout(cls, stage: Stage, elapsed: float) -> "PipelineOutcome":
        return cls(kind=OutcomeKind.UPSTREAM_TIMEOUT, stage=stage, elapsed=elapsed)

    @classmethod
    def failure(cls, stage: Stage, detail: str) -> "PipelineOutcome":
        return cls(kind=OutcomeKind.UPSTREAM_FAILURE, stage=stage, detail=detail)

    @classmethod
    def unexpected(cls, detail: str) -> "PipelineOutcome":
        return cls(kind=OutcomeKind.UNEXPECTED_ERROR, detail=detail)


# ── API Request Models ───────────────────────────────────────────────────────

Priority = Literal["low", "medium", "high", "critical"]


class DelegateRequest(BaseModel):
    """Video generation request delegated by the chat bot."""
    task_description: Optional[str] = Field(None, description="What the video should show")
    priority: Priority = "medium"
    expected_duration: Optional[str] = None  # echoed in logs only
    user_id: Optional[str] = None

    @field_validator("priority", mode="before")
    @classmethod
    def _null_priority_is_medium(cls, v):
        # the bot sends "priority": null when the user didn't pick one
        return "medium" if v is None else v
