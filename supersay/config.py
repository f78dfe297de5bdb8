from __future__ import annotations

import os
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from supersay.errors import ConfigLoadError

MODEL_DIR = Path(os.environ.get("SUPERSAY_MODEL_DIR", "assets/onnx"))
DEFAULT_VOICE = Path(
    os.environ.get("SUPERSAY_VOICE", "assets/voice_styles/M1.json")
)

CONFIG_FILENAME = "tts.json"
INDEXER_FILENAME = "unicode_indexer.json"


class AutoEncoderConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    sample_rate: int = Field(gt=0)
    base_chunk_size: int = Field(gt=0)


class TextToLatentConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    chunk_compress_factor: int = Field(gt=0)
    latent_dim: int = Field(gt=0)


class ModelConfig(BaseModel):
    """Pipeline constants read from ``tts.json`` (``{ae: {...}, ttl: {...}}``)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    auto_encoder: AutoEncoderConfig = Field(alias="ae")
    text_to_latent: TextToLatentConfig = Field(alias="ttl")

    @property
    def sample_rate(self) -> int:
        return self.auto_encoder.sample_rate

    @property
    def chunk_size(self) -> int:
        """Waveform samples covered by one latent frame."""
        return self.auto_encoder.base_chunk_size * self.text_to_latent.chunk_compress_factor

    @property
    def latent_dim_total(self) -> int:
        return self.text_to_latent.latent_dim * self.text_to_latent.chunk_compress_factor


def load_model_config(path: Path | str) -> ModelConfig:
    """Parse the pipeline configuration, failing with ``ConfigLoadError``."""
    path = Path(path)
    if not path.exists():
        raise ConfigLoadError(f"Model config {path} does not exist.")
    try:
        config = ModelConfig.model_validate_json(path.read_text())
    except ValidationError as exc:
        raise ConfigLoadError(f"Model config {path} is malformed: {exc}") from exc
    logger.debug(
        "config.loaded path={path} sample_rate={sample_rate} chunk_size={chunk_size}",
        path=path,
        sample_rate=config.sample_rate,
        chunk_size=config.chunk_size,
    )
    return config
