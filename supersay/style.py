from __future__ import annotations

from pathlib import Path
from typing import List, Sequence, Tuple

import numpy as np
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from supersay.errors import StyleFormatError


class StyleComponent(BaseModel):
    """One named style tensor as stored on disk."""

    model_config = ConfigDict(frozen=True)

    data: List[List[List[float]]]
    dims: List[int] = Field(min_length=3, max_length=3)
    type: str = "float32"

    def flatten(self) -> np.ndarray:
        """Row-major contents; must fill exactly one ``dims[1] x dims[2]`` slot."""
        flat = np.asarray(
            [value for plane in self.data for row in plane for value in row],
            dtype=np.float32,
        )
        expected = self.dims[1] * self.dims[2]
        if flat.size != expected:
            raise StyleFormatError(
                f"Style component holds {flat.size} values, dims {self.dims} expect {expected}."
            )
        return flat


class VoiceStyleFile(BaseModel):
    """Voice style JSON document with ``style_ttl`` and ``style_dp`` components."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    ttl: StyleComponent = Field(alias="style_ttl")
    dp: StyleComponent = Field(alias="style_dp")


class VoiceStyle(BaseModel):
    """Batched style tensors; batch slot ``i`` belongs to the ``i``-th voice."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    ttl: np.ndarray
    dp: np.ndarray

    @property
    def batch_size(self) -> int:
        return int(self.ttl.shape[0])


def read_style_file(path: Path | str) -> VoiceStyleFile:
    path = Path(path)
    if not path.exists():
        raise StyleFormatError(f"Voice style file {path} does not exist.")
    try:
        return VoiceStyleFile.model_validate_json(path.read_text())
    except ValidationError as exc:
        raise StyleFormatError(f"Voice style file {path} is malformed: {exc}") from exc


def _slot_shape(component: StyleComponent) -> Tuple[int, int]:
    return component.dims[1], component.dims[2]


def load_voice_style(paths: Sequence[Path | str]) -> VoiceStyle:
    """Stack per-voice style files along the batch axis, in caller order."""
    if not paths:
        raise StyleFormatError("At least one voice style file is required.")

    styles = [read_style_file(path) for path in paths]
    ttl_shape = _slot_shape(styles[0].ttl)
    dp_shape = _slot_shape(styles[0].dp)

    batch = len(styles)
    ttl = np.zeros(batch * ttl_shape[0] * ttl_shape[1], dtype=np.float32)
    dp = np.zeros(batch * dp_shape[0] * dp_shape[1], dtype=np.float32)
    ttl_slot = ttl_shape[0] * ttl_shape[1]
    dp_slot = dp_shape[0] * dp_shape[1]

    for index, (path, style) in enumerate(zip(paths, styles)):
        if _slot_shape(style.ttl) != ttl_shape or _slot_shape(style.dp) != dp_shape:
            raise StyleFormatError(
                f"Voice style {path} has dims ttl={style.ttl.dims} dp={style.dp.dims}; "
                f"expected ttl={list(ttl_shape)} dp={list(dp_shape)} from {paths[0]}."
            )
        ttl[index * ttl_slot : (index + 1) * ttl_slot] = style.ttl.flatten()
        dp[index * dp_slot : (index + 1) * dp_slot] = style.dp.flatten()

    logger.debug(
        "style.loaded voices={count} ttl={ttl} dp={dp}",
        count=batch,
        ttl=(batch, *ttl_shape),
        dp=(batch, *dp_shape),
    )
    return VoiceStyle(
        ttl=ttl.reshape(batch, *ttl_shape),
        dp=dp.reshape(batch, *dp_shape),
    )
