"""
Preset Library: style qualifiers and model parameters for delegate videos.
The bot sends a bare task description, we decorate it before it reaches SDXL.
"""

from pydantic import BaseModel, ConfigDict

from .pipeline.models import JobSpec

SDXL_VERSION = "39ed52f2a78e934b3ba6e2a89f5b1c712de7dfea535525255b1aa35c5565e08b"
SVD_VERSION = "3f0457e4619daac51203dedb472816fd4af51f3149fa7a9e0b5ffcf1b8172438"

NEGATIVE_PROMPT = "low quality, blurry, distorted, ugly, text, watermark, deformed"

PRESETS = {
    "memecoin": {
        "id": "memecoin",
        "name": "Memecoin",
        "style": "memecoin style, digital art, vibrant colors, masterpiece quality, 16:9 aspect ratio",
        "motion_bucket_id": 127,
    },
    "cinematic": {
        "id": "cinematic",
        "name": "Cinematic",
        "style": (
            "cinematic still, anamorphic lens, dramatic lighting, shallow depth of field, "
            "film grain, 16:9 aspect ratio"
        ),
        "motion_bucket_id": 90,
    },
    "cartoon": {
        "id": "cartoon",
        "name": "Cartoon",
        "style": "bold cartoon illustration, clean outlines, flat saturated colors, 16:9 aspect ratio",
        "motion_bucket_id": 160,
    },
}

DEFAULT_PRESET = "memecoin"


def get_preset(preset_id: str) -> dict:
    """Get full preset config. Raises if preset not found."""
    preset = PRESETS.get(preset_id)
    if not preset:
        raise ValueError(f"Unknown preset: {preset_id}. Available: {list(PRESETS.keys())}")
    return preset


class GenerationConfig(BaseModel):
    """Model versions and tunables for both stages."""
    model_config = ConfigDict(frozen=True)

    image_model_version: str = SDXL_VERSION
    video_model_version: str = SVD_VERSION

    style: str = PRESETS[DEFAULT_PRESET]["style"]
    negative_prompt: str = NEGATIVE_PROMPT
    width: int = 1024
    height: int = 576  # 16:9 for video
    num_inference_steps: int = 25
    guidance_scale: float = 7.5

    motion_bucket_id: int = PRESETS[DEFAULT_PRESET]["motion_bucket_id"]  # amount of motion
    fps: int = 6
    cond_aug: float = 0.02

    @classmethod
    def from_preset(cls, preset_id: str, **overrides) -> "GenerationConfig":
        preset = get_preset(preset_id)
        values = {"style": preset["style"], "motion_bucket_id": preset["motion_bucket_id"]}
        values.update(overrides)
        return cls(**values)


def image_prompt(task_description: str, config: GenerationConfig) -> str:
    return f"{task_description}, {config.style}"


def build_image_spec(task_description: str, config: GenerationConfig) -> JobSpec:
    """Stage 1: SDXL text-to-image."""
    return JobSpec(
        provider_model_id=config.image_model_version,
        input={
            "prompt": image_prompt(task_description, config),
            "negative_prompt": config.negative_prompt,
            "width": config.width,
            "height": config.height,
            "num_outputs": 1,
            "num_inference_steps": config.num_inference_steps,
            "guidance_scale": config.guidance_scale,
        },
    )


def build_video_spec(image_url: str, config: GenerationConfig) -> JobSpec:
    """Stage 2: Stable Video Diffusion image-to-video."""
    return JobSpec(
        provider_model_id=config.video_model_version,
        input={
            "input_image": image_url,
            "motion_bucket_id": config.motion_bucket_id,
            "fps": config.fps,
            "cond_aug": config.cond_aug,
        },
    )
