from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from supersay.audio import Audio
from supersay.config import MODEL_DIR
from supersay.errors import InputMismatchError, UnsupportedAccelerationError
from supersay.inference import TextToSpeech, load_text_to_speech
from supersay.style import load_voice_style
from supersay.text import DEFAULT_MAX_CHUNK_LENGTH


class Options(BaseModel):
    """Per-request synthesis knobs."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    steps: int = Field(
        default=5, ge=1, le=20, description="Denoising steps; higher is slower."
    )
    speed: float = Field(default=1.05, gt=0, description="> 1.0 speaks faster.")
    silence_duration: float = Field(
        default=0.3, ge=0, description="Seconds of silence between text chunks."
    )
    max_chunk_length: int = Field(default=DEFAULT_MAX_CHUNK_LENGTH, ge=1)


class Synthesizer:
    """Thread-safe front door to one loaded ``TextToSpeech`` pipeline.

    Models load on a background worker as soon as the instance is created;
    the first request waits for that to finish. Requests against the same
    instance run one at a time. Separate instances share nothing.
    """

    def __init__(
        self,
        model_dir: Path | str = MODEL_DIR,
        use_gpu: bool = False,
        seed: Optional[int] = None,
        engine: Optional[TextToSpeech] = None,
    ) -> None:
        if use_gpu:
            raise UnsupportedAccelerationError()
        self.model_dir = Path(model_dir)
        self._lock = threading.Lock()
        self._loader: Optional[ThreadPoolExecutor] = None
        if engine is not None:
            self._engine: Future[TextToSpeech] = Future()
            self._engine.set_result(engine)
        else:
            self._loader = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="supersay-load"
            )
            self._engine = self._loader.submit(
                load_text_to_speech, self.model_dir, use_gpu, seed
            )
            self._engine.add_done_callback(lambda _: self._loader.shutdown(wait=False))

    def ready(self, timeout: Optional[float] = None) -> TextToSpeech:
        """Block until the models are loaded; re-raises any loading error."""
        return self._engine.result(timeout=timeout)

    @property
    def sample_rate(self) -> int:
        return self.ready().sample_rate

    def synthesize(
        self,
        text: str,
        voice_style_paths: Sequence[Path | str],
        options: Optional[Options] = None,
    ) -> Audio:
        """Synthesize one text, chunked and joined with silence."""
        options = options or Options()
        engine = self.ready()
        with self._lock:
            style = load_voice_style(voice_style_paths)
            logger.info(
                "synthesize.start chars={chars} voices={voices} steps={steps}",
                chars=len(text),
                voices=len(voice_style_paths),
                steps=options.steps,
            )
            audio = engine.call(
                text,
                style,
                options.steps,
                speed=options.speed,
                silence_duration=options.silence_duration,
                max_chunk_length=options.max_chunk_length,
            )
        logger.info("synthesize.done duration={duration:.2f}s", duration=audio.duration)
        return audio

    def synthesize_batch(
        self,
        texts: Sequence[str],
        voice_style_paths: Sequence[Path | str],
        options: Optional[Options] = None,
    ) -> List[Audio]:
        """Synthesize independent texts in one batch; ``texts[i]`` uses voice ``i``."""
        if not texts:
            return []
        if len(texts) != len(voice_style_paths):
            raise InputMismatchError(len(texts), len(voice_style_paths))

        options = options or Options()
        engine = self.ready()
        with self._lock:
            style = load_voice_style(voice_style_paths)
            logger.info(
                "synthesize_batch.start texts={count} steps={steps}",
                count=len(texts),
                steps=options.steps,
            )
            outputs = engine.batch(texts, style, options.steps, speed=options.speed)
        logger.info(
            "synthesize_batch.done durations={durations}",
            durations=[round(audio.duration, 2) for audio in outputs],
        )
        return outputs
