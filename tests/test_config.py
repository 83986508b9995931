"""
Tests for configuration loading.
"""

import pytest

from config.settings import EmbeddingConfig, Settings, clean_api_key


class TestCleanApiKey:
    """Tests for API key normalization."""

    @pytest.mark.parametrize("value", [None, "", "   ", "your_gemini_api_key_here", '""'])
    def test_unusable_values(self, value):
        assert clean_api_key(value) is None

    def test_strips_quotes_and_whitespace(self):
        assert clean_api_key(' "hf_abc123" ') == "hf_abc123"


class TestEmbeddingDimension:
    """Tests for the dimension property."""

    def test_huggingface_default(self):
        assert EmbeddingConfig(provider="huggingface").dimension == 384

    def test_openai_models(self):
        assert EmbeddingConfig(provider="openai").dimension == 1536
        config = EmbeddingConfig(provider="openai", openai_model="text-embedding-3-large")
        assert config.dimension == 3072

    def test_unknown_model_uses_fallback(self):
        config = EmbeddingConfig(
            provider="local", local_model="custom-model", fallback_dimension=256
        )
        assert config.dimension == 256

    def test_hash_provider(self):
        assert EmbeddingConfig(provider="hash", fallback_dimension=64).dimension == 64


class TestFromEnv:
    """Tests for Settings.from_env."""

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("EMBEDDING_PROVIDER", "hash")
        monkeypatch.setenv("LLM_PROVIDER", "ollama")
        monkeypatch.setenv("CHUNK_SIZE", "500")
        monkeypatch.setenv("CHUNK_OVERLAP", "50")
        monkeypatch.setenv("TOP_K_RESULTS", "5")
        monkeypatch.setenv("ENABLE_SHORTCUTS", "false")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        settings = Settings.from_env()

        assert settings.embedding.provider == "hash"
        assert settings.llm.provider == "ollama"
        assert settings.chunking.chunk_size == 500
        assert settings.chunking.chunk_overlap == 50
        assert settings.retrieval.top_k == 5
        assert settings.agent.enable_shortcuts is False
        assert settings.log_level == "DEBUG"

    def test_placeholder_keys_are_ignored(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "your_gemini_api_key_here")
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)

        assert Settings.from_env().llm.gemini_api_key is None

    def test_hf_token_alias(self, monkeypatch):
        monkeypatch.delenv("HUGGINGFACE_API_KEY", raising=False)
        monkeypatch.setenv("HF_TOKEN", "hf_from_alias")

        assert Settings.from_env().embedding.huggingface_api_key == "hf_from_alias"

    def test_defaults(self):
        settings = Settings()

        assert settings.chunking.chunk_size == 1000
        assert settings.chunking.chunk_overlap == 100
        assert settings.retrieval.top_k == 3
        assert settings.agent.max_file_size == 10 * 1024 * 1024
        assert settings.llm.temperature == 0.1
