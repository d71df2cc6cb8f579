"""Embedding backends used by the similarity selector."""

from typing import Protocol
import hashlib
import math
import random


class EmbeddingBackend(Protocol):
    """Protocol for embedding backends."""

    def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        ...

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed multiple texts."""
        ...

    @property
    def dimensions(self) -> int:
        """Return the dimensionality of embeddings."""
        ...


class LocalEmbedding:
    """Local embedding using sentence-transformers."""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        from sentence_transformers import SentenceTransformer

        self.model = SentenceTransformer(model_name)
        self._dimensions = self.model.get_sentence_embedding_dimension()

    def embed(self, text: str) -> list[float]:
        return self.model.encode(text).tolist()

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return self.model.encode(texts).tolist()

    @property
    def dimensions(self) -> int:
        return self._dimensions


class OpenAIEmbedding:
    """OpenAI API embedding backend."""

    # Known dimensions for OpenAI models
    _MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(self, model: str = "text-embedding-3-small"):
        from openai import OpenAI

        self.model = model
        self.client = OpenAI()
        self._dimensions = self._MODEL_DIMENSIONS.get(model, 1536)

    def embed(self, text: str) -> list[float]:
        response = self.client.embeddings.create(input=text, model=self.model)
        return response.data[0].embedding

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        response = self.client.embeddings.create(input=texts, model=self.model)
        return [d.embedding for d in response.data]

    @property
    def dimensions(self) -> int:
        return self._dimensions


class HashEmbedding:
    """Deterministic, dependency-free embedding backend.

    Each lower-cased word is hashed to a pseudo-random vector and the text
    vector is their sum, so texts sharing words land close together. Intended
    for tests and environments without torch or network access.
    """

    def __init__(self, dimensions: int = 384):
        self._dimensions = dimensions

    def _rng_for_token(self, token: str) -> random.Random:
        digest = hashlib.sha256(token.encode("utf-8")).digest()
        seed = int.from_bytes(digest[:8], "big", signed=False)
        return random.Random(seed)

    def embed(self, text: str) -> list[float]:
        vec = [0.0] * self._dimensions
        for token in text.lower().split():
            rng = self._rng_for_token(token.strip(".,!?;:\"'()"))
            for i in range(self._dimensions):
                vec[i] += rng.uniform(-1.0, 1.0)
        return vec

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(t) for t in texts]

    @property
    def dimensions(self) -> int:
        return self._dimensions


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either is all zeros."""
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


def build_embedding_backend(
    backend: str,
    embedding_model: str = "all-MiniLM-L6-v2",
    openai_model: str = "text-embedding-3-small",
) -> EmbeddingBackend:
    """Create an embedding backend by name ("local" | "openai" | "hash")."""
    if backend == "openai":
        return OpenAIEmbedding(model=openai_model)
    if backend == "hash":
        return HashEmbedding()
    if backend == "local":
        return LocalEmbedding(model_name=embedding_model)
    raise ValueError(f"Unknown embedding backend: {backend}")
