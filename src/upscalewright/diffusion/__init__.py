"""Latent diffusion helpers."""

from .img2img import NoiseScheduler, get_img2img_timesteps, latent_shape, prepare_img2img_latents

__all__ = [
    "NoiseScheduler",
    "get_img2img_timesteps",
    "latent_shape",
    "prepare_img2img_latents",
]
