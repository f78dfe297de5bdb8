from __future__ import annotations

import math
from typing import Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict

from supersay.config import ModelConfig
from supersay.text import make_mask


class Latent(BaseModel):
    """Noise tensor ``[batch, latent_dim_total, length]`` and mask ``[batch, 1, length]``."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    values: np.ndarray
    mask: np.ndarray

    @property
    def length(self) -> int:
        return int(self.values.shape[-1])


def standard_normal(rng: np.random.Generator, shape: Sequence[int]) -> np.ndarray:
    """Box-Muller draw; ``u1`` lies in ``(0, 1]`` so the log never sees zero."""
    u1 = 1.0 - rng.random(shape)
    u2 = rng.random(shape)
    return (np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * math.pi * u2)).astype(np.float32)


def sample_noisy_latent(
    duration: Sequence[float] | np.ndarray,
    config: ModelConfig,
    rng: np.random.Generator,
) -> Latent:
    durations = np.asarray(duration, dtype=np.float32).reshape(-1)
    chunk_size = config.chunk_size
    wav_lengths = [int(float(value) * config.sample_rate) for value in durations]
    max_wav_length = max(wav_lengths, default=0)
    latent_length = (max_wav_length + chunk_size - 1) // chunk_size

    values = standard_normal(
        rng, (len(durations), config.latent_dim_total, latent_length)
    )
    latent_lengths = [(length + chunk_size - 1) // chunk_size for length in wav_lengths]
    mask = make_mask(latent_lengths, latent_length)
    return Latent(values=values * mask, mask=mask)
