"""Embedding engine ABC. Implementations must provide embed() and embed_batch()."""

from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np
import numpy.typing as npt


class EmbeddingInterface(ABC):
    """Abstract base for embedding backends.

    Vectors are L2-normalized float32 arrays, so cosine similarity is a dot
    product. The dimensionality must stay fixed for the life of an index.
    """

    name: str = "custom"

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Return the embedding vector dimensionality."""

    @abstractmethod
    def embed(self, text: str) -> npt.NDArray[np.float32]:
        """Embed a single text string. Returns a normalized vector."""

    def embed_batch(self, texts: list[str]) -> npt.NDArray[np.float32]:
        """Embed multiple texts. Returns a (len(texts), dimensions) matrix."""
        if not texts:
            return np.zeros((0, self.dimensions), dtype=np.float32)
        return np.vstack([self.embed(t) for t in texts]).astype(np.float32, copy=False)


def normalize(matrix: npt.NDArray[np.float32]) -> npt.NDArray[np.float32]:
    """L2-normalize rows (or a single vector); zero rows stay zero."""
    norms = np.linalg.norm(matrix, axis=-1, keepdims=True)
    norms[norms == 0] = 1.0
    return (matrix / norms).astype(np.float32, copy=False)
