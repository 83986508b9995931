"""
Shared fixtures for the docchat test suite.

Tests marked `provider_dependent` only make sense with a semantically
meaningful embedding provider; they are skipped when only hash embeddings
are available.
"""

import importlib.util
from typing import Dict, List

import pytest

from config.settings import (
    AgentConfig,
    ChunkingConfig,
    EmbeddingConfig,
    LLMConfig,
    RetrievalConfig,
    Settings,
    get_settings,
)
from docchat.embeddings import BaseEmbeddingProvider, EmbeddingService, hash_embedding


def real_embedding_provider_available() -> bool:
    config = get_settings().embedding
    if config.provider == "huggingface":
        return bool(config.huggingface_api_key)
    if config.provider == "openai":
        return bool(config.openai_api_key)
    if config.provider == "local":
        return importlib.util.find_spec("sentence_transformers") is not None
    return False


def pytest_collection_modifyitems(config, items):
    if real_embedding_provider_available():
        return
    skip = pytest.mark.skip(reason="needs a configured embedding provider")
    for item in items:
        if "provider_dependent" in item.keywords:
            item.add_marker(skip)


class StaticEmbeddingProvider(BaseEmbeddingProvider):
    """Returns preset vectors for known texts, hash embeddings otherwise."""

    def __init__(self, vectors: Dict[str, List[float]], dimension: int = 3, remote: bool = False):
        self.vectors = vectors
        self._dimension = dimension
        self._remote = remote
        self.calls: List[str] = []

    def embed_text(self, text: str) -> List[float]:
        self.calls.append(text)
        if text in self.vectors:
            return list(self.vectors[text])
        return hash_embedding(text, self._dimension)

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return "static"

    @property
    def is_remote(self) -> bool:
        return self._remote


@pytest.fixture
def hash_config():
    return EmbeddingConfig(provider="hash", batch_delay=0)


@pytest.fixture
def hash_service(hash_config):
    return EmbeddingService(config=hash_config)


@pytest.fixture
def make_static_service(hash_config):
    def factory(vectors, dimension=3, remote=False):
        provider = StaticEmbeddingProvider(vectors, dimension=dimension, remote=remote)
        return EmbeddingService(config=hash_config, embedding_provider=provider)
    return factory


@pytest.fixture
def offline_settings(hash_config):
    """Hash embeddings and an LLM provider without credentials."""
    return Settings(
        embedding=hash_config,
        llm=LLMConfig(provider="gemini", gemini_api_key=None, retry_initial_wait=0),
        chunking=ChunkingConfig(chunk_size=1000, chunk_overlap=100),
        retrieval=RetrievalConfig(top_k=3, max_context_length=4000),
        agent=AgentConfig(enable_shortcuts=True),
    )
