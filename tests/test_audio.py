from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

from supersay.audio import Audio, concatenate_chunks, split_batch, write_wav


def _zero_runs(samples: np.ndarray) -> list:
    runs = []
    length = 0
    for value in samples:
        if value == 0:
            length += 1
        elif length:
            runs.append(length)
            length = 0
    if length:
        runs.append(length)
    return runs


def test_concatenate_chunks_inserts_silence() -> None:
    chunks = [(np.ones(30000, dtype=np.float32), 1.0), (np.ones(30000), 0.5), (np.ones(30000), 0.25)]
    audio = concatenate_chunks(chunks, 24000, 0.3)

    assert audio.duration == pytest.approx(1.75 + 0.6)
    assert audio.samples.size == 24000 + 12000 + 6000 + 2 * 7200
    assert _zero_runs(audio.samples) == [7200, 7200]


def test_concatenate_single_chunk_has_no_silence() -> None:
    audio = concatenate_chunks([(np.ones(10), 0.005)], 1000, 0.3)
    assert audio.samples.tolist() == [1.0] * 5
    assert audio.duration == pytest.approx(0.005)


def test_split_batch_slices_and_clips_to_capacity() -> None:
    wav = np.arange(200, dtype=np.float32)
    first, second = split_batch(wav, [0.05, 0.2], 1000)

    np.testing.assert_array_equal(first.samples, np.arange(50))
    np.testing.assert_array_equal(second.samples, np.arange(100, 200))
    assert first.duration == pytest.approx(0.05)
    assert second.sample_rate == 1000


def test_split_batch_empty() -> None:
    assert split_batch(np.zeros(0), [], 1000) == []


def test_write_wav_round_trip(tmp_path: Path) -> None:
    audio = Audio(
        samples=np.array([0.0, 0.5, -0.5, 2.0], dtype=np.float32),
        sample_rate=8000,
        duration=0.0005,
    )
    path = write_wav(tmp_path / "out" / "voice.wav", audio)

    data, rate = sf.read(str(path), dtype="float32")
    info = sf.info(str(path))
    assert rate == 8000
    assert info.subtype == "PCM_16"
    assert data.shape == (4,)
    assert data[3] == pytest.approx(1.0, abs=1e-3)
