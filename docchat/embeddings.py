"""
Embedding Service Module

Provides an abstraction layer for embedding generation, supporting:
- Hugging Face Inference API (sentence-transformers/all-MiniLM-L6-v2) - Requires API key
- Cloud: OpenAI (text-embedding-3-small) - Requires API key
- Local: Sentence Transformers running in-process
- Hash: deterministic pseudo-embeddings, no dependencies at all

Design Rationale:
- One provider is selected at construction from EmbeddingConfig
- Remote providers are wrapped in FallbackEmbeddingProvider, so a failed or
  unconfigured remote call degrades to the hash embedding instead of failing
- Hash embeddings are reproducible but NOT semantically meaningful; they keep
  the pipeline usable offline, they make no quality claim

Embedding Dimensions:
- all-MiniLM-L6-v2: 384 dimensions
- all-mpnet-base-v2: 768 dimensions
- text-embedding-3-small: 1536 dimensions
"""

import asyncio
import logging
import struct
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import numpy as np
from huggingface_hub import InferenceClient

from config.settings import get_settings, EmbeddingConfig
from docchat.exceptions import (
    DimensionMismatchError,
    InputError,
    ProviderUnavailableError,
)

# Configure logging
logger = logging.getLogger(__name__)

# Prime used to spread hash seeds across dimensions
HASH_SLOT_PRIME = 7919


def _fold_hash(text: str) -> int:
    """Fold UTF-16 code units into a signed 32-bit rolling hash (h * 31 + c)."""
    data = text.encode("utf-16-le")
    units = struct.unpack(f"<{len(data) // 2}H", data)

    value = 0
    for unit in units:
        value = (value * 31 + unit) & 0xFFFFFFFF

    if value >= 0x80000000:
        value -= 0x100000000
    return value


def hash_embedding(text: str, dimension: int = 384) -> List[float]:
    """
    Compute a deterministic pseudo-embedding for text.

    For each slot i the value is the fractional part of
    sin(hash + i * 7919) * 10000, mapped to [-1, 1].

    Args:
        text: Input text
        dimension: Length of the returned vector

    Returns:
        List of floats in [-1, 1]
    """
    seed = _fold_hash(text)
    slots = seed + np.arange(dimension, dtype=np.float64) * HASH_SLOT_PRIME
    values = np.sin(slots) * 10000
    return ((values - np.floor(values)) * 2 - 1).tolist()


def to_flat_vector(response: Any) -> List[float]:
    """
    Normalize a remote embedding response to a flat list of floats.

    Some APIs wrap the vector in an extra layer ([[...]]); the first row
    is used in that case.
    """
    vector = np.asarray(response, dtype=np.float64)
    while vector.ndim > 1:
        if vector.shape[0] == 0:
            break
        vector = vector[0]

    if vector.ndim != 1 or vector.size == 0:
        raise ProviderUnavailableError("Embedding response contained no vector")

    return vector.tolist()


class BaseEmbeddingProvider(ABC):
    """
    Abstract base class for embedding providers.

    All embedding providers must implement:
    - embed_text: Embed a single text string
    - dimension: Return the embedding dimension
    - model_name: Return the model identifier
    """

    @abstractmethod
    def embed_text(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Input text to embed

        Returns:
            List of floats representing the embedding vector
        """
        pass

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts, in input order.

        Providers with native batching override this.
        """
        return [self.embed_text(text) for text in texts]

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the dimension of embeddings produced."""
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the name of the embedding model."""
        pass

    @property
    def is_remote(self) -> bool:
        """Whether calls leave the process (and should run off the event loop)."""
        return True


class HashEmbeddingProvider(BaseEmbeddingProvider):
    """
    Deterministic fallback provider.

    Same text always yields the same vector. Useful for tests and for running
    without any embedding service; similarity scores carry no meaning.
    """

    def __init__(self, dimension: int = 384):
        self._dimension = dimension

    def embed_text(self, text: str) -> List[float]:
        return hash_embedding(text, self._dimension)

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return f"hash-{self._dimension}"

    @property
    def is_remote(self) -> bool:
        return False


class HuggingFaceEmbeddingProvider(BaseEmbeddingProvider):
    """
    Hugging Face Inference API provider (feature extraction).

    Models:
    - sentence-transformers/all-MiniLM-L6-v2: Fast, 384 dims (default)
    - sentence-transformers/multi-qa-MiniLM-L6-cos-v1: Tuned for Q&A, 384 dims
    - sentence-transformers/all-mpnet-base-v2: Better quality, 768 dims
    """

    def __init__(
        self,
        model_name: str = "sentence-transformers/all-MiniLM-L6-v2",
        api_key: Optional[str] = None,
        dimension: int = 384,
    ):
        """
        Initialize the Hugging Face embedding provider.

        Args:
            model_name: Hub model id used for feature extraction
            api_key: Hugging Face access token
            dimension: Declared embedding dimension of the model
        """
        self._model_name = model_name
        self._api_key = api_key
        self._dimension = dimension
        self._client = None

        logger.info(f"Initializing HuggingFaceEmbeddingProvider with model: {model_name}")

    def _get_client(self) -> InferenceClient:
        """Get or create the inference client."""
        if self._client is None:
            if not self._api_key:
                raise ProviderUnavailableError(
                    "Hugging Face API key not configured. Set HUGGINGFACE_API_KEY.",
                    provider_name="huggingface",
                )
            self._client = InferenceClient(token=self._api_key)
            logger.info("Hugging Face inference client initialized")
        return self._client

    def embed_text(self, text: str) -> List[float]:
        client = self._get_client()
        response = client.feature_extraction(text, model=self._model_name)
        vector = to_flat_vector(response)
        # The configured dimension is a guess for models outside the lookup table
        self._dimension = len(vector)
        return vector

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model_name


class LocalEmbeddingProvider(BaseEmbeddingProvider):
    """
    sentence-transformers model running in this process.

    The model is loaded on the first call; its dimension is whatever the
    loaded model reports.
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self._model_name = model_name
        self._model = None
        self._dimension: Optional[int] = None

        logger.info(f"LocalEmbeddingProvider configured for {model_name}")

    def _load_model(self):
        if self._model is not None:
            return
        from sentence_transformers import SentenceTransformer

        logger.info(f"Loading {self._model_name}")
        self._model = SentenceTransformer(self._model_name)
        self._dimension = self._model.get_sentence_embedding_dimension()
        logger.info(f"{self._model_name} loaded, dimension={self._dimension}")

    def embed_text(self, text: str) -> List[float]:
        self._load_model()
        return self._model.encode(text, convert_to_numpy=True).tolist()

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        self._load_model()
        vectors = self._model.encode(
            texts,
            convert_to_numpy=True,
            batch_size=32,
            show_progress_bar=False,
        )
        return vectors.tolist()

    @property
    def dimension(self) -> int:
        self._load_model()
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model_name


class OpenAIEmbeddingProvider(BaseEmbeddingProvider):
    """OpenAI embeddings endpoint; unknown models are assumed to be 1536-d."""

    MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }
    # Inputs per request in embed_batch
    REQUEST_SIZE = 100

    def __init__(
        self,
        model_name: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
    ):
        self._model_name = model_name
        self._api_key = api_key
        self._client = None

        if model_name not in self.MODEL_DIMENSIONS:
            logger.warning(f"No known dimension for {model_name}, using 1536")

    def _get_client(self):
        if self._client is None:
            if not self._api_key:
                raise ProviderUnavailableError(
                    "No API key configured, set OPENAI_API_KEY",
                    provider_name="openai",
                )
            from openai import OpenAI

            self._client = OpenAI(api_key=self._api_key)
        return self._client

    def embed_text(self, text: str) -> List[float]:
        response = self._get_client().embeddings.create(input=text, model=self._model_name)
        return response.data[0].embedding

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        vectors: List[List[float]] = []
        for offset in range(0, len(texts), self.REQUEST_SIZE):
            response = self._get_client().embeddings.create(
                input=texts[offset:offset + self.REQUEST_SIZE],
                model=self._model_name,
            )
            # Items carry their input position; the API does not promise order
            vectors.extend(item.embedding for item in sorted(response.data, key=lambda d: d.index))
        return vectors

    @property
    def dimension(self) -> int:
        return self.MODEL_DIMENSIONS.get(self._model_name, 1536)

    @property
    def model_name(self) -> str:
        return self._model_name


class FallbackEmbeddingProvider(BaseEmbeddingProvider):
    """
    Wraps a provider with a degradation policy.

    Every call goes to the primary provider first; if it raises for any
    reason, the failure is logged and the fallback provider answers instead.
    The policy is applied per text, so a batch is handled uniformly.

    Without an explicit fallback, hash embeddings are used, sized to the
    length of the last vector the primary returned. Before any success the
    `dimension` hint (or the primary's declared dimension) is used.
    """

    def __init__(
        self,
        primary: BaseEmbeddingProvider,
        fallback: Optional[BaseEmbeddingProvider] = None,
        dimension: Optional[int] = None,
    ):
        self.primary = primary
        self._fallback = fallback
        self._dimension_hint = dimension
        self._observed_dimension: Optional[int] = None
        self._hash_provider: Optional[HashEmbeddingProvider] = None
        self.fallback_count = 0

    def _fallback_dimension(self) -> int:
        if self._observed_dimension is not None:
            return self._observed_dimension
        if self._dimension_hint is not None:
            return self._dimension_hint
        return self.primary.dimension

    @property
    def fallback(self) -> BaseEmbeddingProvider:
        if self._fallback is not None:
            return self._fallback
        dimension = self._fallback_dimension()
        if self._hash_provider is None or self._hash_provider.dimension != dimension:
            self._hash_provider = HashEmbeddingProvider(dimension)
        return self._hash_provider

    def embed_text(self, text: str) -> List[float]:
        try:
            vector = self.primary.embed_text(text)
        except Exception as e:
            self.fallback_count += 1
            fallback = self.fallback
            logger.warning(
                f"{self.primary.model_name} embedding failed, "
                f"falling back to {fallback.model_name}: {e}"
            )
            return fallback.embed_text(text)

        self._observed_dimension = len(vector)
        return vector

    @property
    def dimension(self) -> int:
        if self._observed_dimension is not None:
            return self._observed_dimension
        return self.primary.dimension

    @property
    def model_name(self) -> str:
        return self.primary.model_name

    @property
    def is_remote(self) -> bool:
        return self.primary.is_remote


class EmbeddingService:
    """
    Async front for whichever embedding provider the config selects.

    Blocking remote calls run in the default executor; the hash provider
    runs inline.

    Example:
        service = EmbeddingService()  # Uses config
        embedding = await service.embed("Hello world")
        embeddings = await service.embed_batch(["text1", "text2"])

        # Or specify provider explicitly
        service = EmbeddingService(provider="hash")
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        config: Optional[EmbeddingConfig] = None,
        embedding_provider: Optional[BaseEmbeddingProvider] = None,
    ):
        """
        Initialize the embedding service.

        Args:
            provider: "huggingface", "openai", "local" or "hash" (default from config)
            config: Optional EmbeddingConfig instance
            embedding_provider: Ready-made provider, bypasses selection
        """
        self.config = config or get_settings().embedding
        self._provider_name = provider or self.config.provider
        self.batch_delay = self.config.batch_delay

        if embedding_provider is not None:
            self._provider = embedding_provider
        else:
            self._provider = self._create_provider(self._provider_name)

        logger.info(
            f"EmbeddingService initialized with {self._provider_name} provider, "
            f"model={self._provider.model_name}"
        )

    def _create_provider(self, provider: str) -> BaseEmbeddingProvider:
        """Select the provider once, from configuration."""
        dimension = self.config.dimension

        if provider == "hash":
            return HashEmbeddingProvider(dimension)

        if provider == "huggingface":
            if not self.config.huggingface_api_key:
                logger.warning(
                    "No Hugging Face API key configured. Using hash-based embeddings."
                )
                return HashEmbeddingProvider(dimension)
            return FallbackEmbeddingProvider(
                HuggingFaceEmbeddingProvider(
                    model_name=self.config.huggingface_model,
                    api_key=self.config.huggingface_api_key,
                    dimension=dimension,
                )
            )

        if provider == "openai":
            if not self.config.openai_api_key:
                logger.warning("No OpenAI API key configured. Using hash-based embeddings.")
                return HashEmbeddingProvider(dimension)
            return FallbackEmbeddingProvider(
                OpenAIEmbeddingProvider(
                    model_name=self.config.openai_model,
                    api_key=self.config.openai_api_key,
                )
            )

        if provider == "local":
            return FallbackEmbeddingProvider(
                LocalEmbeddingProvider(model_name=self.config.local_model),
                dimension=dimension,
            )

        raise InputError(f"Unknown embedding provider: {provider}")

    async def _call(self, func, *args):
        """Run a provider call, off the event loop when it leaves the process."""
        if not self._provider.is_remote:
            return func(*args)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    @staticmethod
    def _clean(text: str) -> str:
        if not text or not text.strip():
            raise InputError("Cannot embed empty text")
        return text.strip()

    async def embed(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Input text to embed

        Returns:
            Embedding vector as list of floats

        Raises:
            InputError: If the text is empty or whitespace
        """
        return await self._call(self._provider.embed_text, self._clean(text))

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts, in input order.

        Remote providers are called one text at a time with `batch_delay`
        seconds between calls to stay under rate limits.

        Args:
            texts: List of input texts

        Returns:
            List of embedding vectors, one per input text

        Raises:
            InputError: If any text is empty or whitespace
        """
        cleaned = [self._clean(text) for text in texts]

        if not cleaned:
            return []

        if not self._provider.is_remote:
            return await self._call(self._provider.embed_batch, cleaned)

        logger.debug(f"Embedding {len(cleaned)} texts sequentially")

        vectors = []
        for position, text in enumerate(cleaned):
            if position and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)
            vectors.append(await self._call(self._provider.embed_text, text))
        return vectors

    async def embed_query(self, query: str) -> List[float]:
        """
        Embed a user query for retrieval.

        Semantic alias for embed, used for clarity when embedding
        user queries vs documents.
        """
        return await self.embed(query)

    @property
    def dimension(self) -> int:
        return self._provider.dimension

    @property
    def model_name(self) -> str:
        return self._provider.model_name

    @property
    def provider_name(self) -> str:
        return self._provider_name

    @property
    def is_degraded(self) -> bool:
        """True when only hash embeddings are available."""
        return isinstance(self._provider, HashEmbeddingProvider)

    def get_info(self) -> dict:
        """Describe the active provider."""
        return {
            "provider": self._provider_name,
            "model": self.model_name,
            "dimension": self.dimension,
            "configured": not self.is_degraded,
        }


def cosine_similarity(vec1: List[float], vec2: List[float]) -> float:
    """
    Calculate cosine similarity between two vectors.

    Args:
        vec1: First embedding vector
        vec2: Second embedding vector

    Returns:
        Similarity score between -1 and 1 (1 = same direction, 0 if either is zero)

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    arr1 = np.asarray(vec1, dtype=np.float64)
    arr2 = np.asarray(vec2, dtype=np.float64)

    if arr1.shape != arr2.shape:
        raise DimensionMismatchError(arr1.size, arr2.size)

    norm1 = np.linalg.norm(arr1)
    norm2 = np.linalg.norm(arr2)

    if norm1 == 0 or norm2 == 0:
        return 0.0

    similarity = float(np.dot(arr1, arr2) / (norm1 * norm2))
    return max(-1.0, min(1.0, similarity))
