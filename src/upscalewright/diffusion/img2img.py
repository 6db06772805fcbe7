"""Image-to-image initialization for latent diffusion.

Two steps run before the denoising loop:

1. The scheduler's timesteps are truncated by ``strength``: a strength of
   1.0 keeps every step (the input image is fully re-noised), 0.0 keeps
   none.
2. The input image is encoded into latent space by the VAE encoder, scaled
   by the encoder's latent scale factor, and noised to the first kept
   timestep.
"""
from abc import ABC, abstractmethod
from typing import List, Sequence, Tuple

import numpy as np

from ..exceptions import ConfigurationError
from ..inference.base import InferenceEngine


class NoiseScheduler(ABC):
    """The part of a diffusion scheduler used during initialization."""

    @abstractmethod
    def create_random_sample(self, shape: Sequence[int]) -> np.ndarray:
        """Return a noise tensor of the given shape."""

    @abstractmethod
    def add_noise(
        self,
        original: np.ndarray,
        noise: np.ndarray,
        timesteps: Sequence[int],
    ) -> np.ndarray:
        """Noise ``original`` to the level of the first of ``timesteps``."""


def get_img2img_timesteps(
    timesteps: Sequence[int],
    inference_steps: int,
    strength: float,
) -> List[int]:
    """Drop the leading timesteps an image-to-image run skips.

    Example:
        >>> get_img2img_timesteps([900, 600, 300, 0], 4, 0.5)
        [300, 0]
    """
    if not 0.0 <= strength <= 1.0:
        raise ConfigurationError(
            "strength must be between 0.0 and 1.0",
            config_key="strength",
            config_value=strength,
        )
    if inference_steps < 1:
        raise ConfigurationError(
            "inference_steps must be at least 1",
            config_key="inference_steps",
            config_value=inference_steps,
        )
    init_timestep = min(int(inference_steps * strength), inference_steps)
    start = max(inference_steps - init_timestep, 0)
    return list(timesteps[start:])


def latent_shape(height: int, width: int, latent_channels: int = 4, vae_scale: int = 8) -> Tuple[int, int, int, int]:
    """Shape of the encoder output for a ``height x width`` image."""
    return 1, latent_channels, height // vae_scale, width // vae_scale


async def prepare_img2img_latents(
    image_tensor: np.ndarray,
    encoder: InferenceEngine,
    scheduler: NoiseScheduler,
    timesteps: Sequence[int],
    output_shape: Sequence[int],
    latent_scale_factor: float,
    unload_encoder: bool = False,
) -> np.ndarray:
    """Encode an image and noise it to the first timestep.

    Args:
        image_tensor: Input image as a [1, C, H, W] tensor in [-1, 1]
        encoder: Loaded VAE encoder engine
        scheduler: Scheduler providing noise
        timesteps: Timesteps kept by :func:`get_img2img_timesteps`
        output_shape: Shape of the latent buffer to bind
        latent_scale_factor: Multiplier applied to the encoder output
        unload_encoder: Release the encoder right after use (minimum memory mode)
    """
    latents = await encoder.run_inference(image_tensor, output_shape)
    if unload_encoder:
        await encoder.unload()

    scaled = np.asarray(latents, dtype=np.float32) * latent_scale_factor
    noise = scheduler.create_random_sample(scaled.shape)
    return scheduler.add_noise(scaled, noise, timesteps)
