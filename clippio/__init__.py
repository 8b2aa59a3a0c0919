"""
Clippio delegate worker.

Turns a chat bot's task description into a short video by chaining two
Replicate predictions: SDXL text-to-image, then Stable Video Diffusion.
"""
