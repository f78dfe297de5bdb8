"""
Inference orchestration for the four-model ONNX text-to-speech pipeline.

duration predictor → text encoder → vector estimator (× steps) → vocoder

Every session is an externally owned handle that is not safe for concurrent
calls; ``Synthesizer`` serialises access to a ``TextToSpeech`` instance.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np
import onnxruntime as ort
from loguru import logger

from supersay.audio import Audio, concatenate_chunks, split_batch
from supersay.config import (
    CONFIG_FILENAME,
    INDEXER_FILENAME,
    ModelConfig,
    load_model_config,
)
from supersay.errors import (
    ConfigLoadError,
    InputMismatchError,
    ModelExecutionError,
    UnsupportedAccelerationError,
)
from supersay.latent import sample_noisy_latent
from supersay.style import VoiceStyle
from supersay.text import DEFAULT_MAX_CHUNK_LENGTH, TextProcessor, chunk_text

DURATION_PREDICTOR = "duration_predictor"
TEXT_ENCODER = "text_encoder"
VECTOR_ESTIMATOR = "vector_estimator"
VOCODER = "vocoder"
SESSION_NAMES = (DURATION_PREDICTOR, TEXT_ENCODER, VECTOR_ESTIMATOR, VOCODER)


class ModelSession(Protocol):
    """The slice of ``onnxruntime.InferenceSession`` the pipeline relies on."""

    def run(
        self, output_names: Optional[List[str]], input_feed: Dict[str, np.ndarray]
    ) -> Sequence[np.ndarray]: ...


class TextToSpeech:
    """Runs the model sessions for one batch of texts at a time."""

    def __init__(
        self,
        config: ModelConfig,
        text_processor: TextProcessor,
        duration_predictor: ModelSession,
        text_encoder: ModelSession,
        vector_estimator: ModelSession,
        vocoder: ModelSession,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.config = config
        self.text_processor = text_processor
        self.sample_rate = config.sample_rate
        self.duration_predictor = duration_predictor
        self.text_encoder = text_encoder
        self.vector_estimator = vector_estimator
        self.vocoder = vocoder
        self.rng = rng if rng is not None else np.random.default_rng()

    @staticmethod
    def _run(
        name: str,
        session: ModelSession,
        inputs: Dict[str, np.ndarray],
        output: str,
    ) -> np.ndarray:
        try:
            outputs = session.run([output], inputs)
        except ModelExecutionError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ModelExecutionError(name, f"{type(exc).__name__}: {exc}") from exc
        if not outputs:
            raise ModelExecutionError(name, f"returned no '{output}' output")
        return np.asarray(outputs[0])

    def infer(
        self,
        texts: Sequence[str],
        style: VoiceStyle,
        steps: int,
        speed: float = 1.05,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Return the flat vocoder buffer and per-item durations (seconds)."""
        encoded = self.text_processor.process(texts)
        batch_size = encoded.batch_size
        if style.batch_size != batch_size:
            raise InputMismatchError(batch_size, style.batch_size)

        text_ids = encoded.ids
        text_mask = encoded.mask
        logger.debug(
            "infer.start batch={batch} text_len={length} steps={steps} speed={speed}",
            batch=batch_size,
            length=text_ids.shape[1],
            steps=steps,
            speed=speed,
        )

        duration = self._run(
            DURATION_PREDICTOR,
            self.duration_predictor,
            {"text_ids": text_ids, "style_dp": style.dp, "text_mask": text_mask},
            "duration",
        )
        duration = duration.astype(np.float32).reshape(-1)
        if duration.size != batch_size:
            raise ModelExecutionError(
                DURATION_PREDICTOR,
                f"expected {batch_size} durations, got shape {duration.shape}",
            )
        duration = duration / np.float32(speed)

        text_emb = self._run(
            TEXT_ENCODER,
            self.text_encoder,
            {"text_ids": text_ids, "style_ttl": style.ttl, "text_mask": text_mask},
            "text_emb",
        )

        latent = sample_noisy_latent(duration, self.config, self.rng)
        xt = latent.values
        total_step = np.full(batch_size, steps, dtype=np.float32)
        for step in range(steps):
            current_step = np.full(batch_size, step, dtype=np.float32)
            denoised = self._run(
                VECTOR_ESTIMATOR,
                self.vector_estimator,
                {
                    "noisy_latent": xt,
                    "text_emb": text_emb,
                    "style_ttl": style.ttl,
                    "latent_mask": latent.mask,
                    "text_mask": text_mask,
                    "current_step": current_step,
                    "total_step": total_step,
                },
                "denoised_latent",
            )
            if denoised.size != xt.size:
                raise ModelExecutionError(
                    VECTOR_ESTIMATOR,
                    f"expected latent of shape {xt.shape}, got {denoised.shape}",
                )
            xt = denoised.astype(np.float32).reshape(xt.shape)
            logger.debug("infer.step {} / {}", step + 1, steps)

        wav = self._run(VOCODER, self.vocoder, {"latent": xt}, "wav_tts")
        wav = wav.astype(np.float32).reshape(-1)
        logger.debug(
            "infer.done samples={samples} durations={durations}",
            samples=wav.size,
            durations=duration.tolist(),
        )
        return wav, duration

    def call(
        self,
        text: str,
        style: VoiceStyle,
        steps: int,
        speed: float = 1.05,
        silence_duration: float = 0.3,
        max_chunk_length: int = DEFAULT_MAX_CHUNK_LENGTH,
    ) -> Audio:
        """Synthesize one text chunk by chunk and join the pieces with silence."""
        chunks = chunk_text(text, max_chunk_length)
        pieces: List[Tuple[np.ndarray, float]] = []
        for index, chunk in enumerate(chunks, start=1):
            logger.info(
                "Chunk {idx} / {count}: size={size}",
                idx=index,
                count=len(chunks),
                size=len(chunk),
            )
            wav, duration = self.infer([chunk], style, steps, speed=speed)
            pieces.append((wav, float(duration[0])))
        return concatenate_chunks(pieces, self.sample_rate, silence_duration)

    def batch(
        self,
        texts: Sequence[str],
        style: VoiceStyle,
        steps: int,
        speed: float = 1.05,
    ) -> List[Audio]:
        """Synthesize independent texts in one pass, one voice per batch slot."""
        wav, duration = self.infer(texts, style, steps, speed=speed)
        return split_batch(wav, duration.tolist(), self.sample_rate)


# ─────────────────────────────────────────────────────────────────────────────
# Model loading
# ─────────────────────────────────────────────────────────────────────────────


def load_session(path: Path) -> ort.InferenceSession:
    if not path.exists():
        raise ConfigLoadError(f"Model file {path} does not exist.")
    options = ort.SessionOptions()
    try:
        session = ort.InferenceSession(
            str(path), sess_options=options, providers=["CPUExecutionProvider"]
        )
    except Exception as exc:  # noqa: BLE001
        raise ConfigLoadError(f"Unable to load model {path}: {exc}") from exc
    logger.debug("session.loaded path={path}", path=path)
    return session


def load_text_to_speech(
    model_dir: Path | str,
    use_gpu: bool = False,
    seed: Optional[int] = None,
) -> TextToSpeech:
    """Load configuration, unicode index and the four sessions from ``model_dir``."""
    if use_gpu:
        raise UnsupportedAccelerationError()
    model_dir = Path(model_dir)
    logger.info("load.start model_dir={model_dir} device=cpu", model_dir=model_dir)

    config = load_model_config(model_dir / CONFIG_FILENAME)
    text_processor = TextProcessor.from_file(model_dir / INDEXER_FILENAME)
    sessions = {name: load_session(model_dir / f"{name}.onnx") for name in SESSION_NAMES}

    logger.info("load.done model_dir={model_dir}", model_dir=model_dir)
    return TextToSpeech(
        config=config,
        text_processor=text_processor,
        rng=np.random.default_rng(seed),
        **sessions,
    )
