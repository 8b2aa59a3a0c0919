"""
FastAPI routes for the Clippio delegate endpoint.

  POST /clippio/delegate: generate an image with SDXL, animate it with
                          Stable Video Diffusion, return both URLs.

The request is handled inline: the HTTP response is sent only once the
pipeline has reached a terminal outcome.
"""

import asyncio
import time
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .. import config, metrics
from ..presets import GenerationConfig
from ..replicate import ReplicateClient
from .models import DelegateRequest, OutcomeKind, PipelineOutcome
from .orchestrator import VideoGenerationService

logger = logging.getLogger(__name__)

delegate_router = APIRouter(prefix="/clippio", tags=["clippio"])

TASK_REQUIRED = "task_description is required"
TASK_REQUIRED_MESSAGE = "Describe the video to generate in task_description"
MISSING_TOKEN_MESSAGE = (
    "Video generation requires Replicate API token to be set in environment variables"
)

_STATUS_CODES = {
    OutcomeKind.SUCCESS: 200,
    OutcomeKind.VALIDATION_ERROR: 400,
    OutcomeKind.CONFIGURATION_ERROR: 500,
    OutcomeKind.UPSTREAM_SUBMIT_ERROR: 500,
    OutcomeKind.UPSTREAM_FAILURE: 500,
    OutcomeKind.UPSTREAM_TIMEOUT: 408,
    OutcomeKind.UNEXPECTED_ERROR: 500,
}


# ── Dependencies (overridden in tests) ───────────────────────────────────────

def get_client_factory():
    return ReplicateClient


def build_service(client, sleep=asyncio.sleep) -> VideoGenerationService:
    """Pipeline for one request, styled by the preset named in CLIPPIO_PRESET."""
    generation = GenerationConfig.from_preset(config.CLIPPIO_PRESET)
    return VideoGenerationService(client, generation=generation, sleep=sleep)


def get_service_factory():
    return build_service


# ── Validation ───────────────────────────────────────────────────────────────

def parse_delegate_request(payload) -> tuple[DelegateRequest | None, PipelineOutcome | None]:
    """Validate the raw JSON body. Returns (request, None) or (None, validation outcome)."""
    if not isinstance(payload, dict):
        return None, PipelineOutcome.validation_error("Request body must be a JSON object")

    try:
        req = DelegateRequest.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first["loc"])
        return None, PipelineOutcome.validation_error(f"{field}: {first['msg']}")

    if not req.task_description or not req.task_description.strip():
        return None, PipelineOutcome.validation_error(TASK_REQUIRED)

    return req, None


# ── Outcome → HTTP ───────────────────────────────────────────────────────────

def outcome_body(outcome: PipelineOutcome, req: DelegateRequest | None = None) -> dict:
    kind = outcome.kind

    if kind == OutcomeKind.SUCCESS:
        return {
            "success": True,
            "task_id": outcome.task_id,
            "status": "completed",
            "result": {
                "video_url": outcome.video_url,
                "image_url": outcome.image_url,
            },
            "message": "Video generated successfully",
            "priority": req.priority if req else "medium",
            "user_id": req.user_id if req else None,
        }

    if kind == OutcomeKind.VALIDATION_ERROR:
        if outcome.detail == TASK_REQUIRED:
            return {"error": TASK_REQUIRED, "message": TASK_REQUIRED_MESSAGE}
        return {"error": "Invalid request", "message": outcome.detail}

    if kind == OutcomeKind.CONFIGURATION_ERROR:
        return {"error": outcome.detail, "message": MISSING_TOKEN_MESSAGE}

    if kind == OutcomeKind.UNEXPECTED_ERROR:
        return {"error": "Unexpected error", "message": outcome.detail}

    what = outcome.stage.value.capitalize()  # "Image" / "Video"

    if kind == OutcomeKind.UPSTREAM_SUBMIT_ERROR:
        return {
            "error": f"{what} generation failed",
            "message": f"Replicate API error: {outcome.detail[:100]}",
        }

    if kind == OutcomeKind.UPSTREAM_FAILURE:
        return {
            "error": f"{what} generation failed",
            "message": outcome.detail or f"Unknown error during {outcome.stage.value} generation",
        }

    # UPSTREAM_TIMEOUT
    return {
        "error": f"{what} generation timed out",
        "message": f"{what} generation took longer than {outcome.elapsed:g} seconds",
    }


def outcome_response(outcome: PipelineOutcome, req: DelegateRequest | None = None) -> JSONResponse:
    return JSONResponse(status_code=_STATUS_CODES[outcome.kind], content=outcome_body(outcome, req))


def _record(outcome: PipelineOutcome, started: float, user_id: str = ""):
    metrics.inc_counter(f"outcomes.{outcome.kind.value}")
    metrics.record_latency("delegate", (time.time() - started) * 1000)
    if not outcome.ok:
        error_type = f"{outcome.stage.value}_{outcome.kind.value}" if outcome.stage else outcome.kind.value
        metrics.inc_counter(f"errors.{error_type}")
        metrics.record_error("delegate", error_type, outcome.detail, user_id)


# ── Route ────────────────────────────────────────────────────────────────────

@delegate_router.post("/delegate")
async def delegate(
    request: Request,
    client_factory=Depends(get_client_factory),
    service_factory=Depends(get_service_factory),
):
    """Handle a video generation request delegated by the bot."""
    started = time.time()
    metrics.inc_counter("requests.delegate")
    req = None

    try:
        payload = await request.json()

        req, invalid = parse_delegate_request(payload)
        if invalid:
            _record(invalid, started)
            return outcome_response(invalid)

        token = config.get_replicate_token()
        if not token:
            outcome = PipelineOutcome.configuration_error("REPLICATE_API_TOKEN not configured")
            _record(outcome, started, req.user_id or "")
            return outcome_response(outcome, req)

        logger.info(
            f'Video generation request: "{req.task_description[:50]}..." '
            f"from user {req.user_id or 'unknown'} "
            f"(priority={req.priority}, expected_duration={req.expected_duration or 'n/a'})"
        )

        async with client_factory(token) as client:
            outcome = await service_factory(client).run(req.task_description)

    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        outcome = PipelineOutcome.unexpected(str(e) or type(e).__name__)

    if not outcome.ok:
        stage = outcome.stage.value if outcome.stage else "-"
        logger.error(f"Delegate request failed: {outcome.kind.value} stage={stage} {outcome.detail[:100]}")

    _record(outcome, started, (req.user_id if req else "") or "")
    return outcome_response(outcome, req)
