from __future__ import annotations


class SupersayError(Exception):
    """Base class for every failure raised by the synthesis pipeline."""


class InputMismatchError(SupersayError, ValueError):
    """Batch synthesis received a different number of texts and voice styles."""

    def __init__(self, texts: int, styles: int) -> None:
        super().__init__(
            f"Number of texts ({texts}) must match number of voice styles ({styles})"
        )
        self.texts = texts
        self.styles = styles


class StyleFormatError(SupersayError, ValueError):
    """A voice style file is malformed or disagrees with the rest of the batch."""


class ModelExecutionError(SupersayError, RuntimeError):
    """An external model session failed or returned an unexpected shape."""

    def __init__(self, model: str, message: str) -> None:
        super().__init__(f"{model}: {message}")
        self.model = model


class ConfigLoadError(SupersayError):
    """Pipeline configuration or the unicode index could not be loaded."""


class UnsupportedAccelerationError(SupersayError):
    """GPU execution was requested but is not implemented."""

    def __init__(self) -> None:
        super().__init__("GPU acceleration is not yet supported")
