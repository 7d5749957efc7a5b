"""
Embedding Service

On-device embedding generation using fastembed.
One instance is created at startup and passed to everything that embeds text.
"""

import logging
import threading
from typing import List, Optional

import numpy as np

from .errors import EmbeddingUnavailableError

logger = logging.getLogger("relay.common.embedding_service")

DEFAULT_MODEL = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"


class EmbeddingService:
    """
    Shared embedding model for Relay.

    Uses fastembed (ONNX) so embeddings are computed locally, without
    external API calls. The model is loaded once, either eagerly via load()
    or lazily by the first embed call; concurrent first callers wait for a
    single load.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        dimension: int = 384,
        cache_dir: Optional[str] = None,
    ):
        """
        Initialize embedding service (does not load the model).

        Args:
            model: fastembed model name
            dimension: Expected vector size
            cache_dir: Where fastembed stores downloaded model files
        """
        self._model_name = model
        self._dimension = dimension
        self._cache_dir = cache_dir
        self._model = None
        self._load_lock = threading.Lock()

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def is_loaded(self) -> bool:
        """Check if the model has been loaded"""
        return self._model is not None

    def load(self) -> None:
        """Load the model if it is not loaded yet."""
        if self._model is not None:
            return

        with self._load_lock:
            if self._model is not None:
                return
            try:
                from fastembed import TextEmbedding

                kwargs = {"model_name": self._model_name}
                if self._cache_dir:
                    kwargs["cache_dir"] = self._cache_dir
                self._model = TextEmbedding(**kwargs)
                logger.info("Embedding model loaded: %s", self._model_name)
            except Exception as e:
                logger.error("Failed to load embedding model %s: %s", self._model_name, e)
                raise EmbeddingUnavailableError(
                    f"Embedding model {self._model_name} could not be loaded: {e}"
                ) from e

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed

        Returns:
            List of embedding vectors (L2 normalized)
        """
        if not texts:
            return []

        self.load()

        try:
            raw = list(self._model.embed(texts))
        except Exception as e:
            raise EmbeddingUnavailableError(f"Embedding failed: {e}") from e

        matrix = np.asarray(raw, dtype=np.float32)
        if matrix.ndim != 2 or matrix.shape[1] != self._dimension:
            raise EmbeddingUnavailableError(
                f"Expected {self._dimension}-dimension vectors, got shape {matrix.shape}"
            )

        norms = np.linalg.norm(matrix, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return (matrix / norms).tolist()

    def embed_single(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: String to embed

        Returns:
            Embedding vector (L2 normalized)
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        return self.embed([text])[0]
