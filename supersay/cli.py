"""
supersay: generate speech from text with the ONNX text-to-speech pipeline.

    supersay say "Hello, world!"
    echo "Hello from stdin" | supersay say
    supersay say "Hello, world!" --output=greeting.wav
    supersay say "A long passage..." --max_chunk=120
    supersay batch "Hi there." "Good morning." --voice=M1.json,F1.json
"""

from __future__ import annotations

import sys
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import fire
from loguru import logger
from pydantic import ValidationError

from supersay.audio import Audio, write_wav
from supersay.config import DEFAULT_VOICE, MODEL_DIR
from supersay.errors import InputMismatchError
from supersay.synthesizer import Options, Synthesizer
from supersay.text import DEFAULT_MAX_CHUNK_LENGTH


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    level = "DEBUG" if verbose else "WARNING" if quiet else "INFO"
    logger.remove()
    logger.add(sys.stderr, level=level)


class Supersay:
    """Text-to-speech commands over one lazily loaded synthesizer."""

    def __init__(
        self,
        model: Path | str = MODEL_DIR,
        verbose: bool = False,
        quiet: bool = False,
        seed: Optional[int] = None,
    ) -> None:
        configure_logging(verbose=verbose, quiet=quiet)
        self.model_dir = Path(model)
        self.seed = seed
        self._synthesizer: Optional[Synthesizer] = None

    # —————————————————— Utilities ——————————————————

    @property
    def synthesizer(self) -> Synthesizer:
        if self._synthesizer is None:
            logger.info("Loading models from {model_dir}", model_dir=self.model_dir)
            self._synthesizer = Synthesizer(self.model_dir, seed=self.seed)
        return self._synthesizer

    @staticmethod
    def voices_from_spec(voice: str | Sequence[str]) -> List[Path]:
        """Split a comma-separated voice list into style file paths."""
        specs = voice.split(",") if isinstance(voice, str) else list(voice)
        paths = [Path(str(spec).strip()) for spec in specs if str(spec).strip()]
        if not paths:
            raise ValueError("At least one voice style file is required.")
        return paths

    @staticmethod
    def resolve_text(text: Tuple[str, ...]) -> List[str]:
        """Texts from arguments, else from piped stdin."""
        if text:
            return [str(item) for item in text]
        if sys.stdin.isatty():
            raise ValueError(
                'No text provided. Usage: supersay say "Hello, world!" or '
                'echo "Hello" | supersay say'
            )
        content = sys.stdin.read().strip()
        if not content:
            raise ValueError("No text received from stdin.")
        return [content]

    @staticmethod
    def output_path(
        output: Optional[str], voices: Sequence[Path], index: int, total: int
    ) -> Path:
        suffix = f"_{index + 1}" if total > 1 else ""
        if output:
            path = Path(output)
            if total > 1:
                path = path.with_name(f"{path.stem}{suffix}{path.suffix or '.wav'}")
            return path
        name = voices[0].stem if voices else "output"
        return Path(tempfile.gettempdir()) / f"{name}{suffix}.wav"

    def _options(
        self,
        steps: int,
        speed: float,
        silence: float,
        max_chunk: int = DEFAULT_MAX_CHUNK_LENGTH,
    ) -> Options:
        try:
            return Options(
                steps=steps,
                speed=speed,
                silence_duration=silence,
                max_chunk_length=max_chunk,
            )
        except ValidationError as exc:
            raise ValueError(f"Invalid synthesis options: {exc}") from exc

    def _save(
        self, outputs: Sequence[Audio], output: Optional[str], voices: Sequence[Path]
    ) -> List[str]:
        written: List[str] = []
        for index, audio in enumerate(outputs):
            path = write_wav(self.output_path(output, voices, index, len(outputs)), audio)
            logger.info(
                "Wrote {path} ({duration:.1f}s)", path=path, duration=audio.duration
            )
            written.append(str(path))
        return written

    # —————————————————— Commands ——————————————————

    def say(
        self,
        *text: str,
        voice: str = str(DEFAULT_VOICE),
        output: Optional[str] = None,
        steps: int = 5,
        speed: float = 1.05,
        silence: float = 0.3,
        max_chunk: int = DEFAULT_MAX_CHUNK_LENGTH,
    ) -> List[str]:
        """Synthesize all texts joined into one utterance and write a WAV file."""
        options = self._options(steps, speed, silence, max_chunk)
        voices = self.voices_from_spec(voice)
        combined = " ".join(self.resolve_text(text))
        logger.info("Synthesizing {chars} characters...", chars=len(combined))
        audio = self.synthesizer.synthesize(combined, voices, options)
        return self._save([audio], output, voices)

    def batch(
        self,
        *text: str,
        voice: str = str(DEFAULT_VOICE),
        output: Optional[str] = None,
        steps: int = 5,
        speed: float = 1.05,
    ) -> List[str]:
        """Synthesize each text with its matching voice and write one WAV per text."""
        options = self._options(steps, speed, 0.0)
        voices = self.voices_from_spec(voice)
        texts = self.resolve_text(text)
        if len(texts) != len(voices):
            raise InputMismatchError(len(texts), len(voices))
        logger.info("Synthesizing {count} texts in batch mode...", count=len(texts))
        outputs = self.synthesizer.synthesize_batch(texts, voices, options)
        return self._save(outputs, output, voices)


def main() -> None:
    fire.Fire(Supersay)


if __name__ == "__main__":
    main()
