from __future__ import annotations

import tempfile
from pathlib import Path
from typing import List

import pytest
import soundfile as sf

from conftest import FakePipeline, constant_durations
from supersay.cli import Supersay
from supersay.config import ModelConfig
from supersay.errors import InputMismatchError
from supersay.synthesizer import Synthesizer


def test_voices_from_spec() -> None:
    assert Supersay.voices_from_spec("a.json, b.json,") == [Path("a.json"), Path("b.json")]
    assert Supersay.voices_from_spec(("a.json", "b.json")) == [Path("a.json"), Path("b.json")]
    with pytest.raises(ValueError):
        Supersay.voices_from_spec(" , ")


def test_output_path() -> None:
    voices = [Path("styles/M1.json")]
    assert Supersay.output_path("out.wav", voices, 0, 1) == Path("out.wav")
    assert Supersay.output_path("dir/out.wav", voices, 1, 3) == Path("dir/out_2.wav")
    assert Supersay.output_path("out", voices, 0, 2) == Path("out_1.wav")
    assert Supersay.output_path(None, voices, 0, 1) == Path(tempfile.gettempdir()) / "M1.wav"


def test_batch_rejects_count_mismatch_before_loading(tmp_path: Path) -> None:
    cli = Supersay(model=tmp_path / "missing")
    with pytest.raises(InputMismatchError):
        cli.batch("one", "two", voice="a.json")
    assert cli._synthesizer is None


def test_invalid_options_are_rejected(tmp_path: Path) -> None:
    cli = Supersay(model=tmp_path / "missing")
    with pytest.raises(ValueError, match="Invalid synthesis options"):
        cli.say("hello", steps=0)


def test_say_writes_wav(
    tmp_path: Path, speech_config: ModelConfig, voice_paths: List[Path]
) -> None:
    pipeline = FakePipeline(speech_config, constant_durations(0.5))
    cli = Supersay(model=tmp_path, quiet=True)
    cli._synthesizer = Synthesizer(engine=pipeline.engine)

    written = cli.say(
        "Hello", "world", voice=str(voice_paths[0]), output=str(tmp_path / "hi.wav"), steps=2
    )

    assert written == [str(tmp_path / "hi.wav")]
    data, rate = sf.read(written[0])
    assert rate == 24000
    assert len(data) == round(0.5 / 1.05 * 24000)
    (_, feed), = pipeline.text_encoder.calls
    assert feed["text_ids"].shape == (1, len("Hello world."))


def test_batch_writes_one_file_per_text(
    tmp_path: Path, speech_config: ModelConfig, voice_paths: List[Path]
) -> None:
    pipeline = FakePipeline(speech_config, constant_durations(0.25))
    cli = Supersay(model=tmp_path, quiet=True)
    cli._synthesizer = Synthesizer(engine=pipeline.engine)

    written = cli.batch(
        "Hi.",
        "Bye.",
        voice=",".join(str(path) for path in voice_paths),
        output=str(tmp_path / "batch.wav"),
        steps=1,
        speed=1.0,
    )

    assert written == [str(tmp_path / "batch_1.wav"), str(tmp_path / "batch_2.wav")]
    assert all(Path(path).exists() for path in written)


def test_say_max_chunk_controls_chunking(
    tmp_path: Path, speech_config: ModelConfig, voice_paths: List[Path]
) -> None:
    pipeline = FakePipeline(speech_config, constant_durations(0.25))
    cli = Supersay(model=tmp_path, quiet=True)
    cli._synthesizer = Synthesizer(engine=pipeline.engine)

    cli.say(
        "First sentence here. Second sentence here.",
        voice=str(voice_paths[0]),
        output=str(tmp_path / "chunked.wav"),
        steps=1,
        max_chunk=25,
    )

    assert len(pipeline.text_encoder.calls) == 2
    with pytest.raises(ValueError, match="Invalid synthesis options"):
        cli.say("hello", voice=str(voice_paths[0]), max_chunk=0)
