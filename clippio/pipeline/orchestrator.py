"""
VideoGenerationService: two-stage delegate pipeline.

  Stage 1: SDXL text-to-image   (submit → poll, 90s budget)
  Stage 2: SVD image-to-video   (submit → poll, 180s budget)

The run is an explicit state machine. `next_state` is a pure transition
function over (PipelineState, StageEvent); the service performs the side
effect for the current state, turns its result into an event, and moves on
until it reaches VIDEO_READY, FAILED or TIMED_OUT.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .. import config, metrics
from ..presets import GenerationConfig, build_image_spec, build_video_spec
from .errors import PollFailedError, PollTimeoutError, SubmitError, TransitionError
from .models import JobHandle, PipelineOutcome, Stage, StageResult
from .poller import Sleep, wait_for_output

logger = logging.getLogger(__name__)


# ── State machine ────────────────────────────────────────────────────────────

class PipelineState(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IMAGE_SUBMITTED = "IMAGE_SUBMITTED"
    IMAGE_POLLING = "IMAGE_POLLING"
    IMAGE_READY = "IMAGE_READY"
    VIDEO_SUBMITTED = "VIDEO_SUBMITTED"
    VIDEO_POLLING = "VIDEO_POLLING"
    VIDEO_READY = "VIDEO_READY"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"


class StageEvent(str, Enum):
    SUBMITTED = "SUBMITTED"
    SUBMIT_FAILED = "SUBMIT_FAILED"
    POLLING_STARTED = "POLLING_STARTED"
    SUCCEEDED = "SUCCEEDED"
    JOB_FAILED = "JOB_FAILED"
    TIMED_OUT = "TIMED_OUT"


TERMINAL_STATES = {PipelineState.VIDEO_READY, PipelineState.FAILED, PipelineState.TIMED_OUT}

_TRANSITIONS: dict[tuple[PipelineState, StageEvent], PipelineState] = {
    (PipelineState.NOT_STARTED, StageEvent.SUBMITTED): PipelineState.IMAGE_SUBMITTED,
    (PipelineState.NOT_STARTED, StageEvent.SUBMIT_FAILED): PipelineState.FAILED,
    (PipelineState.IMAGE_SUBMITTED, StageEvent.POLLING_STARTED): PipelineState.IMAGE_POLLING,
    (PipelineState.IMAGE_POLLING, StageEvent.SUCCEEDED): PipelineState.IMAGE_READY,
    (PipelineState.IMAGE_POLLING, StageEvent.JOB_FAILED): PipelineState.FAILED,
    (PipelineState.IMAGE_POLLING, StageEvent.TIMED_OUT): PipelineState.TIMED_OUT,
    (PipelineState.IMAGE_READY, StageEvent.SUBMITTED): PipelineState.VIDEO_SUBMITTED,
    (PipelineState.IMAGE_READY, StageEvent.SUBMIT_FAILED): PipelineState.FAILED,
    (PipelineState.VIDEO_SUBMITTED, StageEvent.POLLING_STARTED): PipelineState.VIDEO_POLLING,
    (PipelineState.VIDEO_POLLING, StageEvent.SUCCEEDED): PipelineState.VIDEO_READY,
    (PipelineState.VIDEO_POLLING, StageEvent.JOB_FAILED): PipelineState.FAILED,
    (PipelineState.VIDEO_POLLING, StageEvent.TIMED_OUT): PipelineState.TIMED_OUT,
}


def next_state(state: PipelineState, event: StageEvent) -> PipelineState:
    """Pure transition function. Raises TransitionError for undefined moves."""
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise TransitionError(state, event) from None


@dataclass(frozen=True)
class StageBudget:
    interval: float
    max_attempts: int


IMAGE_BUDGET = StageBudget(config.POLL_INTERVAL_SECONDS, config.IMAGE_MAX_POLL_ATTEMPTS)
VIDEO_BUDGET = StageBudget(config.POLL_INTERVAL_SECONDS, config.VIDEO_MAX_POLL_ATTEMPTS)


@dataclass
class _Run:
    """Mutable scratch space for a single run. Never shared between runs."""
    task_description: str
    state: PipelineState = PipelineState.NOT_STARTED
    handle: Optional[JobHandle] = None
    image: Optional[StageResult] = None
    video: Optional[StageResult] = None
    failed_stage: Optional[Stage] = None
    error: Optional[Exception] = None


# ── Service ──────────────────────────────────────────────────────────────────

class VideoGenerationService:
    """
    Runs the image → video pipeline for one task description.

    Usage:
        async with ReplicateClient(token) as client:
            service = VideoGenerationService(client)
            outcome = await service.run("a dancing cat")
    """

    def __init__(
        self,
        client,
        generation: Optional[GenerationConfig] = None,
        image_budget: StageBudget = IMAGE_BUDGET,
        video_budget: StageBudget = VIDEO_BUDGET,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.generation = generation or GenerationConfig()
        self.image_budget = image_budget
        self.video_budget = video_budget
        self._sleep = sleep
        self._clock = clock

    async def run(self, task_description: str) -> PipelineOutcome:
        run = _Run(task_description=task_description)
        try:
            while run.state not in TERMINAL_STATES:
                event = await self._advance(run)
                new_state = next_state(run.state, event)
                logger.info(f"Pipeline {run.state.value} → {new_state.value}")
                run.state = new_state
        except Exception as e:
            logger.error(f"Pipeline crashed in state {run.state.value}: {e}", exc_info=True)
            return PipelineOutcome.unexpected(str(e) or type(e).__name__)

        return self._outcome(run)

    # ── Side effects per state ───────────────────────────────────────────

    async def _advance(self, run: _Run) -> StageEvent:
        state = run.state

        if state == PipelineState.NOT_STARTED:
            spec = build_image_spec(run.task_description, self.generation)
            return await self._submit(run, Stage.IMAGE, spec)

        if state == PipelineState.IMAGE_READY:
            spec = build_video_spec(run.image.primary_output, self.generation)
            return await self._submit(run, Stage.VIDEO, spec)

        if state in (PipelineState.IMAGE_SUBMITTED, PipelineState.VIDEO_SUBMITTED):
            return StageEvent.POLLING_STARTED

        if state == PipelineState.IMAGE_POLLING:
            return await self._wait(run, Stage.IMAGE, self.image_budget)

        if state == PipelineState.VIDEO_POLLING:
            return await self._wait(run, Stage.VIDEO, self.video_budget)

        raise TransitionError(state, None)

    async def _submit(self, run: _Run, stage: Stage, spec) -> StageEvent:
        try:
            run.handle = await self.client.submit(spec)
        except SubmitError as e:
            logger.error(f"{stage.value.capitalize()} generation API error: {e.raw_body[:200]}")
            run.failed_stage, run.error = stage, e
            return StageEvent.SUBMIT_FAILED
        return StageEvent.SUBMITTED

    async def _wait(self, run: _Run, stage: Stage, budget: StageBudget) -> StageEvent:
        handle, run.handle = run.handle, None
        started = self._clock()
        try:
            output = await wait_for_output(
                self.client,
                handle,
                interval=budget.interval,
                max_attempts=budget.max_attempts,
                sleep=self._sleep,
                label=f"{stage.value} stage",
            )
        except (PollFailedError, PollTimeoutError) as e:
            waited = self._stage_waited(stage, started)
            run.failed_stage, run.error = stage, e
            if isinstance(e, PollTimeoutError):
                logger.error(
                    f"{stage.value.capitalize()} stage gave up after {waited:.1f}s "
                    f"({e.attempts} polls, {e.budget_seconds:g}s budget)"
                )
                return StageEvent.TIMED_OUT
            return StageEvent.JOB_FAILED

        waited = self._stage_waited(stage, started)
        logger.info(f"{stage.value.capitalize()} stage finished polling in {waited:.1f}s")

        result = StageResult(primary_output=str(output), job_id=handle.id)
        if stage == Stage.IMAGE:
            run.image = result
            logger.info(f"Image generated successfully: {result.primary_output[:50]}...")
        else:
            run.video = result
            logger.info(f"Video generated successfully: {result.primary_output}")
        return StageEvent.SUCCEEDED

    def _stage_waited(self, stage: Stage, started: float) -> float:
        waited = self._clock() - started
        metrics.record_latency(f"stage.{stage.value}", waited * 1000)
        return waited

    # ── Outcome mapping ──────────────────────────────────────────────────

    def _outcome(self, run: _Run) -> PipelineOutcome:
        if run.state == PipelineState.VIDEO_READY:
            return PipelineOutcome.success(
                image_url=run.image.primary_output,
                video_url=run.video.primary_output,
                task_id=run.video.job_id,
            )

        err = run.error
        if isinstance(err, SubmitError):
            return PipelineOutcome.submit_error(run.failed_stage, err.raw_body)
        if isinstance(err, PollTimeoutError):
            return PipelineOutcome.timeout(run.failed_stage, err.budget_seconds)
        if isinstance(err, PollFailedError):
            return PipelineOutcome.failure(run.failed_stage, err.message)
        return PipelineOutcome.unexpected(f"Pipeline stopped in state {run.state.value}")
