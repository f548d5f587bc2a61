"""Embedding backend factory with pluggable provider registry.

Built-in providers: hashing (numpy feature hashing, the default) and
sentence-transformers (needs the ``semantic`` extra).
Register custom providers via ``register_embedding_provider(name, factory_fn)``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from tessera.embedding.hashing import HashingEmbedding
from tessera.embedding.interface import EmbeddingInterface

logger = logging.getLogger(__name__)

__all__ = [
    "EmbeddingInterface",
    "HashingEmbedding",
    "get_embedding_engine",
    "register_embedding_provider",
]

# Provider registry: name -> factory function(config) -> EmbeddingInterface
_providers: dict[str, Callable[[dict[str, Any]], EmbeddingInterface]] = {}

BUILTIN_BACKENDS = ("hashing", "sentence-transformers")


def register_embedding_provider(name: str, factory: Callable[[dict[str, Any]], EmbeddingInterface]) -> None:
    """Register a custom embedding provider.

    Args:
        name: Backend name, as used in the ``embedding_backend`` config key.
        factory: Callable taking the project config and returning an EmbeddingInterface.
    """
    _providers[name] = factory
    logger.info("Registered embedding provider: %s", name)


def get_embedding_engine(config: dict[str, Any] | Any) -> EmbeddingInterface:
    """Return the configured embedding backend.

    Checks the plugin registry first, then falls back to the built-in engines.
    """
    cfg = dict(config or {})
    backend = cfg.get("embedding_backend", "hashing")

    if backend in _providers:
        return _providers[backend](cfg)

    if backend == "hashing":
        return HashingEmbedding(int(cfg.get("embedding_dimensions", 384)))
    if backend == "sentence-transformers":
        from tessera.embedding.engine import DEFAULT_MODEL, SentenceTransformerEmbedding

        return SentenceTransformerEmbedding(cfg.get("embedding_model") or DEFAULT_MODEL)
    available = sorted({*BUILTIN_BACKENDS, *_providers})
    msg = f"Unknown embedding backend: {backend!r}. Available: {', '.join(available)}"
    raise ValueError(msg)
