"""
Document Chat - RAG core for chatting with uploaded documents

This module contains the core RAG components:
- chunk_text / TextChunker: Boundary-aware overlapping chunking
- EmbeddingService: Embedding generation with hash-embedding fallback
- VectorStore: In-memory vector index with cosine search
- LLMService: LLM provider abstraction (Gemini/OpenAI/Ollama/Mistral)
- RAGChain: Prompt building and answer generation
- RAGAgent: Ingestion and question answering entry point
"""

from .chunker import Chunk, TextChunker, chunk_text
from .embeddings import EmbeddingService, cosine_similarity, hash_embedding
from .exceptions import (
    DocChatError,
    DimensionMismatchError,
    ExtractionError,
    InputError,
    ProviderUnavailableError,
)
from .extractors import extract_text, is_supported_type
from .llm_service import LLMService, LLMResponse
from .memory import ConversationMemory, ConversationManager, Message
from .rag_chain import RAGChain
from .rag_agent import AskResult, RAGAgent, create_agent
from .vector_store import Document, SearchResult, VectorStore

__all__ = [
    # Retrieval
    "Chunk",
    "TextChunker",
    "chunk_text",
    "EmbeddingService",
    "cosine_similarity",
    "hash_embedding",
    "Document",
    "SearchResult",
    "VectorStore",
    # Generation
    "LLMService",
    "LLMResponse",
    "RAGChain",
    "ConversationMemory",
    "ConversationManager",
    "Message",
    # Orchestration
    "AskResult",
    "RAGAgent",
    "create_agent",
    "extract_text",
    "is_supported_type",
    # Errors
    "DocChatError",
    "DimensionMismatchError",
    "ExtractionError",
    "InputError",
    "ProviderUnavailableError",
]
