from __future__ import annotations

from pathlib import Path
from typing import List, Sequence, Tuple

import numpy as np
import soundfile as sf
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field


class Audio(BaseModel):
    """Mono float32 samples in [-1, 1] with their sample rate and duration."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    samples: np.ndarray
    sample_rate: int = Field(gt=0)
    duration: float


def sample_count(duration: float, sample_rate: int) -> int:
    return max(0, int(round(duration * sample_rate)))


def concatenate_chunks(
    chunks: Sequence[Tuple[np.ndarray, float]],
    sample_rate: int,
    silence_duration: float,
) -> Audio:
    """Join per-chunk waveforms in order with a fixed silence between neighbours.

    Each waveform is cut to ``round(duration * sample_rate)`` samples first.
    """
    silence = np.zeros(sample_count(silence_duration, sample_rate), dtype=np.float32)
    pieces: List[np.ndarray] = []
    total = 0.0
    for index, (wav, duration) in enumerate(chunks):
        if index:
            pieces.append(silence)
            total += silence_duration
        wav = np.asarray(wav, dtype=np.float32).reshape(-1)
        pieces.append(wav[: sample_count(duration, sample_rate)])
        total += float(duration)

    samples = np.concatenate(pieces) if pieces else np.zeros(0, dtype=np.float32)
    return Audio(samples=samples, sample_rate=sample_rate, duration=total)


def split_batch(
    wav: np.ndarray, durations: Sequence[float], sample_rate: int
) -> List[Audio]:
    """Slice a flat batched vocoder buffer into one ``Audio`` per item."""
    flat = np.asarray(wav, dtype=np.float32).reshape(-1)
    batch = len(durations)
    if batch == 0:
        return []
    capacity = flat.size // batch
    results: List[Audio] = []
    for index, duration in enumerate(durations):
        start = index * capacity
        length = min(sample_count(duration, sample_rate), capacity)
        results.append(
            Audio(
                samples=flat[start : start + length].copy(),
                sample_rate=sample_rate,
                duration=float(duration),
            )
        )
    return results


def write_wav(path: Path | str, audio: Audio) -> Path:
    """Write ``audio`` as 16-bit PCM mono WAV."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    sf.write(
        str(path),
        np.clip(audio.samples, -1.0, 1.0),
        audio.sample_rate,
        subtype="PCM_16",
    )
    logger.debug(
        "audio.saved path={path} samples={samples} duration={duration:.2f}s",
        path=path,
        samples=audio.samples.size,
        duration=audio.duration,
    )
    return path
