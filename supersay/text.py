from __future__ import annotations

import json
import re
import unicodedata
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import numpy as np
from loguru import logger
from pydantic import BaseModel, ConfigDict

from supersay.errors import ConfigLoadError

DEFAULT_MAX_CHUNK_LENGTH = 300
PAD_ID = 0
UNKNOWN_ID = -1

# ─────────────────────────────────────────────────────────────────────────────
# Normalization tables
# ─────────────────────────────────────────────────────────────────────────────

_EMOJI_RANGES = (
    (0x1F600, 0x1F64F),  # emoticons
    (0x1F300, 0x1F5FF),  # misc symbols and pictographs
    (0x1F680, 0x1F6FF),  # transport and map
    (0x1F700, 0x1F77F),  # alchemical symbols
    (0x1F780, 0x1F7FF),  # geometric shapes extended
    (0x1F800, 0x1F8FF),  # supplemental arrows-c
    (0x1F900, 0x1F9FF),  # supplemental symbols and pictographs
    (0x1FA00, 0x1FA6F),  # chess symbols
    (0x1FA70, 0x1FAFF),  # symbols and pictographs extended-a
    (0x2600, 0x26FF),  # misc symbols
    (0x2700, 0x27BF),  # dingbats
    (0x1F1E6, 0x1F1FF),  # flags
)

_CHAR_TABLE = {
    ord(src): dst
    for src, dst in {
        "–": "-",
        "‑": "-",
        "—": "-",
        "¯": " ",
        "_": " ",
        "“": '"',
        "”": '"',
        "‘": "'",
        "’": "'",
        "´": "'",
        "`": "'",
        "[": " ",
        "]": " ",
        "|": " ",
        "/": " ",
        "#": " ",
        "→": " ",
        "←": " ",
    }.items()
}
_CHAR_TABLE.update({ord(ch): None for ch in ("♥", "☆", "♡", "©", "\\")})

_DIACRITICS_RE = re.compile(
    "[\u0302\u0303\u0304\u0305\u0306\u0307\u0308\u030A\u030B\u030C"
    "\u0327\u0328\u0329\u032A\u032B\u032C\u032D\u032E\u032F]"
)
_EXPRESSIONS = (
    ("@", " at "),
    ("e.g.,", "for example, "),
    ("i.e.,", "that is, "),
)
_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+(?=[,.!?;:'])")
_DUPLICATE_QUOTES_RE = re.compile(r"([\"'`])\1+")
_WHITESPACE_RE = re.compile(r"\s+")
_TERMINAL_PUNCTUATION = frozenset(
    ".!?;:,'\"“”‘’)]}…。」』】〉》›»"
)

# ─────────────────────────────────────────────────────────────────────────────
# Chunking tables
# ─────────────────────────────────────────────────────────────────────────────

_ABBREVIATIONS = (
    "Dr.",
    "Mr.",
    "Mrs.",
    "Ms.",
    "Prof.",
    "Sr.",
    "Jr.",
    "St.",
    "Ave.",
    "Rd.",
    "Blvd.",
    "Dept.",
    "Inc.",
    "Ltd.",
    "Co.",
    "Corp.",
    "etc.",
    "vs.",
    "i.e.",
    "e.g.",
    "Ph.D.",
)
_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_SENTENCE_END_RE = re.compile(r"([.!?])\s+")


def _is_emoji(ch: str) -> bool:
    value = ord(ch)
    return any(low <= value <= high for low, high in _EMOJI_RANGES)


def normalize_text(text: str) -> str:
    """Canonicalize raw text for the unicode indexer.

    Steps run in a fixed order because each one can produce characters or
    whitespace consumed by a later one.
    """
    result = unicodedata.normalize("NFKC", text)
    result = "".join(ch for ch in result if not _is_emoji(ch))
    result = result.translate(_CHAR_TABLE)
    result = _DIACRITICS_RE.sub("", result)
    for old, new in _EXPRESSIONS:
        result = result.replace(old, new)
    result = _SPACE_BEFORE_PUNCT_RE.sub("", result)
    result = _DUPLICATE_QUOTES_RE.sub(r"\1", result)
    result = _WHITESPACE_RE.sub(" ", result).strip()
    if result and result[-1] not in _TERMINAL_PUNCTUATION:
        result += "."
    return result


# ─────────────────────────────────────────────────────────────────────────────
# Chunking
# ─────────────────────────────────────────────────────────────────────────────


def _split_on_pattern(text: str, pattern: re.Pattern[str]) -> List[str]:
    parts: List[str] = []
    last = 0
    for match in pattern.finditer(text):
        parts.append(text[last : match.start()])
        last = match.end()
    if last < len(text):
        parts.append(text[last:])
    return parts or [text]


def _split_sentences(text: str) -> List[str]:
    """Split after ``. ! ?`` + whitespace unless the period closes an abbreviation."""
    sentences: List[str] = []
    last = 0
    for match in _SENTENCE_END_RE.finditer(text):
        combined = text[last : match.start()].strip() + match.group(1)
        if combined.endswith(_ABBREVIATIONS):
            continue
        sentences.append(text[last : match.end()])
        last = match.end()
    if last < len(text):
        sentences.append(text[last:])
    return sentences or [text]


def _pack(
    pieces: Sequence[str],
    limit: int,
    joiner: str,
    oversize: Optional[Callable[[str, int], List[str]]],
) -> List[str]:
    """Greedily join pieces up to ``limit``; oversize pieces go to ``oversize``."""
    chunks: List[str] = []
    current = ""
    for piece in pieces:
        piece = piece.strip()
        if not piece:
            continue
        if oversize is not None and len(piece) > limit:
            if current:
                chunks.append(current.strip())
                current = ""
            chunks.extend(oversize(piece, limit))
            continue
        if current and len(current) + len(piece) + len(joiner) > limit:
            chunks.append(current.strip())
            current = ""
        current = f"{current}{joiner}{piece}" if current else piece
    if current:
        chunks.append(current.strip())
    return chunks


def _chunk_by_words(text: str, limit: int) -> List[str]:
    return _pack(text.split(), limit, " ", None)


def _chunk_long_sentence(sentence: str, limit: int) -> List[str]:
    return _pack(sentence.split(","), limit, ", ", _chunk_by_words)


def _chunk_paragraph(paragraph: str, limit: int) -> List[str]:
    return _pack(_split_sentences(paragraph), limit, " ", _chunk_long_sentence)


def chunk_text(text: str, max_length: int = DEFAULT_MAX_CHUNK_LENGTH) -> List[str]:
    """Split text into ordered chunks of at most ``max_length`` characters.

    Paragraphs are tried first, then sentences, then comma clauses, then
    words. A single word longer than the limit is emitted whole. The result is
    never empty: blank input yields ``[""]``.
    """
    limit = max_length if max_length > 0 else DEFAULT_MAX_CHUNK_LENGTH
    trimmed = text.strip()
    if not trimmed:
        return [""]

    chunks: List[str] = []
    for paragraph in _split_on_pattern(trimmed, _PARAGRAPH_RE):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        if len(paragraph) <= limit:
            chunks.append(paragraph)
            continue
        chunks.extend(_chunk_paragraph(paragraph, limit))

    logger.debug(
        "chunk.done chars={chars} limit={limit} chunks={count}",
        chars=len(trimmed),
        limit=limit,
        count=len(chunks),
    )
    return chunks or [""]


# ─────────────────────────────────────────────────────────────────────────────
# Tensorization
# ─────────────────────────────────────────────────────────────────────────────


def make_mask(lengths: Sequence[int], max_length: Optional[int] = None) -> np.ndarray:
    """Return a ``[batch, 1, max_length]`` float32 mask of ones up to each length."""
    lengths_arr = np.asarray(lengths, dtype=np.int64).reshape(-1)
    if max_length is None:
        max_length = int(lengths_arr.max()) if lengths_arr.size else 0
    positions = np.arange(max_length, dtype=np.int64)
    mask = (positions[None, :] < lengths_arr[:, None]).astype(np.float32)
    return mask[:, None, :]


class EncodedBatch(BaseModel):
    """Padded token ids ``[batch, max_len]`` with their ``[batch, 1, max_len]`` mask."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    texts: List[str]
    lengths: List[int]
    ids: np.ndarray
    mask: np.ndarray

    @property
    def batch_size(self) -> int:
        return len(self.texts)


class TextProcessor:
    """Map normalized text onto the fixed unicode index used by the models."""

    def __init__(self, indexer: Sequence[int]) -> None:
        self.indexer = np.asarray(indexer, dtype=np.int64)

    @classmethod
    def from_file(cls, path: Path | str) -> "TextProcessor":
        path = Path(path)
        if not path.exists():
            raise ConfigLoadError(f"Unicode indexer {path} does not exist.")
        try:
            payload = json.loads(path.read_text())
        except json.JSONDecodeError as exc:
            raise ConfigLoadError(f"Unicode indexer {path} is not valid JSON.") from exc
        if not isinstance(payload, list) or not all(
            isinstance(value, int) for value in payload
        ):
            raise ConfigLoadError(
                f"Unicode indexer {path} must be a flat array of integers."
            )
        logger.debug("indexer.loaded path={path} size={size}", path=path, size=len(payload))
        return cls(payload)

    def encode(self, text: str) -> np.ndarray:
        """Look up each scalar; values outside the table map to ``UNKNOWN_ID``."""
        size = len(self.indexer)
        return np.array(
            [self.indexer[cp] if cp < size else UNKNOWN_ID for cp in map(ord, text)],
            dtype=np.int64,
        )

    def process(self, texts: Sequence[str]) -> EncodedBatch:
        normalized = [normalize_text(text) for text in texts]
        lengths = [len(text) for text in normalized]
        max_length = max(lengths, default=0)

        ids = np.full((len(normalized), max_length), PAD_ID, dtype=np.int64)
        for row, text in enumerate(normalized):
            ids[row, : lengths[row]] = self.encode(text)

        return EncodedBatch(
            texts=normalized,
            lengths=lengths,
            ids=ids,
            mask=make_mask(lengths, max_length),
        )
