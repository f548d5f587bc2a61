"""SentenceTransformer embedding engine. Needs the ``semantic`` extra."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
import numpy.typing as npt

from tessera.embedding.interface import EmbeddingInterface

if TYPE_CHECKING:
    from sentence_transformers import SentenceTransformer

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "all-MiniLM-L6-v2"


class SentenceTransformerEmbedding(EmbeddingInterface):
    """Wraps SentenceTransformer for text -> vector conversion.

    Runs on CPU, loads lazily on first embed call.
    """

    name = "sentence-transformers"

    def __init__(self, model_name: str = DEFAULT_MODEL) -> None:
        self.model_name = model_name
        self._model: SentenceTransformer | None = None

    @property
    def model(self) -> SentenceTransformer:
        """Lazy-load the model on first use."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.info("Loading embedding model: %s", self.model_name)
            self._model = SentenceTransformer(self.model_name)
            logger.info("Embedding model loaded. Dimensions: %s", self._model.get_sentence_embedding_dimension())
        return self._model

    @property
    def dimensions(self) -> int:
        dims = self.model.get_sentence_embedding_dimension()
        if dims is None:
            msg = f"Model {self.model_name} does not report an embedding dimension"
            raise RuntimeError(msg)
        return int(dims)

    def embed(self, text: str) -> npt.NDArray[np.float32]:
        vector = self.model.encode(text, normalize_embeddings=True)
        return np.asarray(vector, dtype=np.float32)

    def embed_batch(self, texts: list[str]) -> npt.NDArray[np.float32]:
        if not texts:
            return np.zeros((0, self.dimensions), dtype=np.float32)
        vectors = self.model.encode(texts, normalize_embeddings=True, batch_size=32)
        return np.asarray(vectors, dtype=np.float32)
