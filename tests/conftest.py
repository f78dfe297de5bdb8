from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pytest

from supersay.config import ModelConfig
from supersay.inference import TextToSpeech
from supersay.text import TextProcessor

SMALL_CONFIG = {
    "ae": {"sample_rate": 1000, "base_chunk_size": 10},
    "ttl": {"chunk_compress_factor": 2, "latent_dim": 3},
}
SPEECH_CONFIG = {
    "ae": {"sample_rate": 24000, "base_chunk_size": 512},
    "ttl": {"chunk_compress_factor": 6, "latent_dim": 24},
}


class FakeSession:
    """Records every call and answers with ``respond(input_feed)``."""

    def __init__(self, respond: Callable[[Dict[str, np.ndarray]], np.ndarray]) -> None:
        self.respond = respond
        self.calls: List[Tuple[Optional[List[str]], Dict[str, np.ndarray]]] = []

    def run(
        self, output_names: Optional[List[str]], input_feed: Dict[str, np.ndarray]
    ) -> List[np.ndarray]:
        self.calls.append(
            (output_names, {key: np.array(value, copy=True) for key, value in input_feed.items()})
        )
        return [self.respond(input_feed)]


def constant_durations(seconds: float) -> Callable[[Dict[str, np.ndarray]], np.ndarray]:
    def respond(feed: Dict[str, np.ndarray]) -> np.ndarray:
        return np.full(feed["text_ids"].shape[0], seconds, dtype=np.float32)

    return respond


def text_embedding(feed: Dict[str, np.ndarray]) -> np.ndarray:
    batch, length = feed["text_ids"].shape
    return np.zeros((batch, 4, length), dtype=np.float32)


def shift_latent(feed: Dict[str, np.ndarray]) -> np.ndarray:
    return feed["noisy_latent"] + 1.0


def make_vocoder(config: ModelConfig) -> Callable[[Dict[str, np.ndarray]], np.ndarray]:
    def respond(feed: Dict[str, np.ndarray]) -> np.ndarray:
        batch, _, length = feed["latent"].shape
        return np.ones((batch, length * config.chunk_size), dtype=np.float32)

    return respond


class FakePipeline:
    def __init__(
        self,
        config: ModelConfig,
        durations: Callable[[Dict[str, np.ndarray]], np.ndarray],
        seed: int = 0,
    ) -> None:
        self.duration_predictor = FakeSession(durations)
        self.text_encoder = FakeSession(text_embedding)
        self.vector_estimator = FakeSession(shift_latent)
        self.vocoder = FakeSession(make_vocoder(config))
        self.engine = TextToSpeech(
            config=config,
            text_processor=TextProcessor(list(range(256))),
            duration_predictor=self.duration_predictor,
            text_encoder=self.text_encoder,
            vector_estimator=self.vector_estimator,
            vocoder=self.vocoder,
            rng=np.random.default_rng(seed),
        )

    @property
    def sessions(self) -> Sequence[FakeSession]:
        return (
            self.duration_predictor,
            self.text_encoder,
            self.vector_estimator,
            self.vocoder,
        )


def write_style(
    path: Path,
    ttl_dims: Sequence[int] = (1, 4, 8),
    dp_dims: Sequence[int] = (1, 2, 3),
    offset: float = 0.0,
) -> Path:
    def component(dims: Sequence[int]) -> dict:
        values = (np.arange(int(np.prod(dims)), dtype=np.float32) + offset).reshape(dims)
        return {"data": values.tolist(), "dims": list(dims), "type": "float32"}

    path.write_text(
        json.dumps({"style_ttl": component(ttl_dims), "style_dp": component(dp_dims)})
    )
    return path


@pytest.fixture()
def small_config() -> ModelConfig:
    return ModelConfig.model_validate(SMALL_CONFIG)


@pytest.fixture()
def speech_config() -> ModelConfig:
    return ModelConfig.model_validate(SPEECH_CONFIG)


@pytest.fixture()
def voice_paths(tmp_path: Path) -> List[Path]:
    return [
        write_style(tmp_path / "M1.json"),
        write_style(tmp_path / "F1.json", offset=100.0),
    ]


@pytest.fixture()
def model_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "onnx"
    directory.mkdir()
    (directory / "tts.json").write_text(json.dumps(SPEECH_CONFIG))
    (directory / "unicode_indexer.json").write_text(json.dumps(list(range(128))))
    return directory
