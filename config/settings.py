"""
Configuration settings for the Document Chat RAG core.

This module handles all configuration management using environment variables.
No hardcoded secrets - everything is configurable via .env file.
"""

import os
from dataclasses import dataclass, field
from typing import Literal, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Values shipped in .env templates that mean "not configured"
PLACEHOLDER_KEYS = {
    "your_huggingface_api_key_here",
    "your_openai_api_key_here",
    "your_google_api_key_here",
    "your_gemini_api_key_here",
    "your_mistral_api_key_here",
}


def clean_api_key(value: Optional[str]) -> Optional[str]:
    """Return a usable API key or None for empty/placeholder values."""
    if value is None:
        return None
    value = value.strip().strip('"').strip("'")
    if not value or value in PLACEHOLDER_KEYS:
        return None
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class EmbeddingConfig:
    """Configuration for embedding providers."""

    provider: Literal["huggingface", "openai", "local", "hash"] = "huggingface"

    # Hugging Face Inference API
    huggingface_api_key: Optional[str] = None
    huggingface_model: str = "sentence-transformers/all-MiniLM-L6-v2"

    # sentence-transformers running in-process
    local_model: str = "all-MiniLM-L6-v2"

    # OpenAI
    openai_api_key: Optional[str] = None
    openai_model: str = "text-embedding-3-small"

    # Fallback (hash) embeddings use this size when the provider
    # does not declare one. all-MiniLM-L6-v2: 384
    fallback_dimension: int = 384

    # Pause between sequential remote calls (seconds), respects rate limits
    batch_delay: float = 0.1

    @property
    def dimension(self) -> int:
        """Return embedding dimension based on selected model."""
        if self.provider == "openai":
            model_dimensions = {
                "text-embedding-3-small": 1536,
                "text-embedding-3-large": 3072,
                "text-embedding-ada-002": 1536,
            }
            return model_dimensions.get(self.openai_model, 1536)

        model_dimensions = {
            "all-MiniLM-L6-v2": 384,
            "sentence-transformers/all-MiniLM-L6-v2": 384,
            "sentence-transformers/multi-qa-MiniLM-L6-cos-v1": 384,
            "all-mpnet-base-v2": 768,
            "sentence-transformers/all-mpnet-base-v2": 768,
        }
        if self.provider == "huggingface":
            return model_dimensions.get(self.huggingface_model, self.fallback_dimension)
        if self.provider == "local":
            return model_dimensions.get(self.local_model, self.fallback_dimension)
        return self.fallback_dimension


@dataclass
class LLMConfig:
    """Configuration for LLM providers."""

    provider: Literal["gemini", "openai", "ollama", "mistral"] = "gemini"

    # Gemini settings
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"

    # OpenAI settings
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-3.5-turbo"

    # Ollama settings
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama2"

    # Mistral settings
    mistral_api_key: Optional[str] = None
    mistral_model: str = "mistral-small-latest"

    # Generation behaviour
    temperature: float = 0.1
    max_tokens: int = 2048
    max_retries: int = 3
    retry_initial_wait: float = 1.0  # Seconds before the first retry, doubles after


@dataclass
class ChunkingConfig:
    """Configuration for document chunking."""

    chunk_size: int = 1000  # Max characters per chunk
    chunk_overlap: int = 100  # Characters shared by adjacent chunks


@dataclass
class RetrievalConfig:
    """Configuration for retrieval settings."""

    top_k: int = 3  # Number of chunks to retrieve per question
    max_context_length: int = 4000  # Max characters of context sent to the LLM


@dataclass
class AgentConfig:
    """Configuration for the chat orchestration layer."""

    enable_shortcuts: bool = True  # Answer greetings/date/time locally
    max_file_size: int = 10 * 1024 * 1024  # 10MB upload limit
    max_history_turns: int = 10


@dataclass
class Settings:
    """
    Main settings class that aggregates all configurations.

    Usage:
        settings = get_settings()
        print(settings.embedding.provider)
        print(settings.llm.gemini_model)
    """

    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Create Settings instance from environment variables.

        This is the primary way to instantiate Settings.
        """
        embedding = EmbeddingConfig(
            provider=os.getenv("EMBEDDING_PROVIDER", "huggingface"),  # type: ignore
            huggingface_api_key=clean_api_key(
                os.getenv("HUGGINGFACE_API_KEY") or os.getenv("HF_TOKEN")
            ),
            huggingface_model=os.getenv(
                "HF_EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2"
            ),
            local_model=os.getenv("LOCAL_EMBEDDING_MODEL", "all-MiniLM-L6-v2"),
            openai_api_key=clean_api_key(os.getenv("OPENAI_API_KEY")),
            openai_model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
            fallback_dimension=int(os.getenv("EMBEDDING_DIMENSION", "384")),
            batch_delay=float(os.getenv("EMBEDDING_BATCH_DELAY", "0.1")),
        )

        llm = LLMConfig(
            provider=os.getenv("LLM_PROVIDER", "gemini"),  # type: ignore
            gemini_api_key=clean_api_key(
                os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
            ),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-1.5-flash"),
            openai_api_key=clean_api_key(os.getenv("OPENAI_API_KEY")),
            openai_model=os.getenv("OPENAI_LLM_MODEL", "gpt-3.5-turbo"),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            ollama_model=os.getenv("OLLAMA_MODEL", "llama2"),
            mistral_api_key=clean_api_key(os.getenv("MISTRAL_API_KEY")),
            mistral_model=os.getenv("MISTRAL_MODEL", "mistral-small-latest"),
            temperature=float(os.getenv("LLM_TEMPERATURE", "0.1")),
            max_tokens=int(os.getenv("LLM_MAX_TOKENS", "2048")),
            max_retries=int(os.getenv("LLM_MAX_RETRIES", "3")),
            retry_initial_wait=float(os.getenv("LLM_RETRY_WAIT", "1.0")),
        )

        chunking = ChunkingConfig(
            chunk_size=int(os.getenv("CHUNK_SIZE", "1000")),
            chunk_overlap=int(os.getenv("CHUNK_OVERLAP", "100")),
        )

        retrieval = RetrievalConfig(
            top_k=int(os.getenv("TOP_K_RESULTS", "3")),
            max_context_length=int(os.getenv("MAX_CONTEXT_LENGTH", "4000")),
        )

        agent = AgentConfig(
            enable_shortcuts=_env_bool("ENABLE_SHORTCUTS", True),
            max_file_size=int(os.getenv("MAX_FILE_SIZE", str(10 * 1024 * 1024))),
            max_history_turns=int(os.getenv("MAX_HISTORY_TURNS", "10")),
        )

        return cls(
            embedding=embedding,
            llm=llm,
            chunking=chunking,
            retrieval=retrieval,
            agent=agent,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


# Singleton pattern for settings
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the singleton Settings instance.

    Returns:
        Settings: The application settings loaded from environment.
    """
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reload_settings() -> Settings:
    """
    Reload settings from environment (useful for testing).

    Returns:
        Settings: Fresh settings instance.
    """
    global _settings
    load_dotenv(override=True)
    _settings = Settings.from_env()
    return _settings
