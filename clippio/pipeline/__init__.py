"""
Image → Video Delegate Pipeline

  Stage 1, SDXL:                   task description → still image (90s budget)
  Stage 2, Stable Video Diffusion: still image → short clip      (180s budget)
"""

from .models import (
    JobHandle,
    JobSpec,
    JobState,
    JobStatus,
    OutcomeKind,
    PipelineOutcome,
    Stage,
    StageResult,
)
from .errors import PollFailedError, PollTimeoutError, SubmitError

__all__ = [
    "JobHandle",
    "JobSpec",
    "JobState",
    "JobStatus",
    "OutcomeKind",
    "PipelineOutcome",
    "Stage",
    "StageResult",
    "PollFailedError",
    "PollTimeoutError",
    "SubmitError",
]
