"""Feature-hashing embedder. The default provider: numpy only, no model download.

Identifier-aware tokens (camelCase and snake_case are split, the whole
identifier kept too) and character trigrams are hashed into a fixed number
of signed buckets. Deterministic across processes and platforms.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterator

import numpy as np
import numpy.typing as npt

from tessera.embedding.interface import EmbeddingInterface, normalize

DEFAULT_DIMENSIONS = 384

_TOKEN_RE = re.compile(r"[A-Za-z0-9_]+")
_CAMEL_RE = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+")

_WORD_WEIGHT = 1.0
_PART_WEIGHT = 0.6
_TRIGRAM_WEIGHT = 0.25


def split_identifier(raw: str) -> list[str]:
    """``parseHTTPResponse_v2`` -> ``["parse", "http", "response", "v", "2"]``."""
    return [p.lower() for chunk in raw.split("_") if chunk for p in _CAMEL_RE.findall(chunk)]


def features(text: str) -> Iterator[tuple[str, float]]:
    """Yield (feature, weight) pairs for *text*."""
    for raw in _TOKEN_RE.findall(text):
        word = raw.lower()
        yield "w:" + word, _WORD_WEIGHT
        parts = split_identifier(raw)
        if len(parts) > 1:
            for part in parts:
                yield "w:" + part, _PART_WEIGHT
        padded = f"#{word}#"
        for i in range(len(padded) - 2):
            yield "t:" + padded[i : i + 3], _TRIGRAM_WEIGHT


class HashingEmbedding(EmbeddingInterface):
    name = "hashing"

    def __init__(self, dimensions: int = DEFAULT_DIMENSIONS) -> None:
        if dimensions <= 0:
            msg = f"dimensions must be positive, got {dimensions}"
            raise ValueError(msg)
        self._dimensions = dimensions

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def _bucket(self, feature: str) -> tuple[int, float]:
        digest = hashlib.blake2b(feature.encode("utf-8"), digest_size=8).digest()
        value = int.from_bytes(digest, "little")
        sign = 1.0 if value & 1 else -1.0
        return (value >> 1) % self._dimensions, sign

    def embed(self, text: str) -> npt.NDArray[np.float32]:
        vec = np.zeros(self._dimensions, dtype=np.float32)
        for feature, weight in features(text):
            idx, sign = self._bucket(feature)
            vec[idx] += sign * weight
        # Dampen very frequent features so long chunks do not drown short queries.
        vec = np.sign(vec) * np.log1p(np.abs(vec))
        return normalize(vec.astype(np.float32))
