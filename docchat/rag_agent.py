"""
RAG Agent Module

The public entry point of the document chat core. Wires chunker, embedding
service, vector store, RAG chain and conversation memory together.

API:
    class RAGAgent:
        async def ingest_document(self, document_id, metadata, text) -> int
        async def ingest_file(self, raw_bytes, name, declared_type=None) -> Document
        async def ask(self, question, conversation_history=None) -> AskResult
        def remove_document(self, document_id) -> bool
        def list_documents(self) -> list
        def get_stats(self) -> dict

Design Rationale:
- The agent owns its vector store; several agents never share an index
- Always retrieve first, then decide how to answer
- Greeting/date/time shortcuts are an optional pre-filter in front of that
- ask() never raises: generation failures fall back to raw search results
"""

import asyncio
import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import List, Optional, Dict, Any

from config.settings import get_settings, Settings
from docchat.chunker import TextChunker
from docchat.embeddings import EmbeddingService
from docchat.exceptions import DocChatError, InputError, ProviderUnavailableError
from docchat.extractors import extract_text, resolve_type
from docchat.llm_service import LLMService
from docchat.memory import ConversationManager
from docchat.rag_chain import RAGChain, format_date
from docchat.vector_store import Document, SearchResult, VectorStore

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 200

DATE_PATTERN = re.compile(r"\bwhat(?:'s| is)? (?:the )?(?:day|date)\b|\bwhat(?:'s| is) today\b")
TIME_PATTERN = re.compile(r"\bwhat time\b|\bcurrent time\b|\bwhat(?:'s| is) the time\b")
GREETING_PATTERN = re.compile(r"^(?:hello|hi|hey)\b")


@dataclass
class AskResult:
    """
    Outcome of a question.

    Attributes:
        answer: Text shown to the user
        chunks_found: Number of chunks retrieved for the question
        sources: Retrieved chunks as dicts (document, chunk id, score)
        generated: True when the answer came from the LLM
        error: Message of the failure that forced a fallback, if any
    """
    answer: str
    chunks_found: int = 0
    sources: List[Dict[str, Any]] = field(default_factory=list)
    generated: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "chunks_found": self.chunks_found,
            "sources": self.sources,
            "generated": self.generated,
            "error": self.error,
        }


class RAGAgent:
    """
    Document chat agent.

    Example:
        agent = RAGAgent()

        await agent.ingest_document("d1", {"name": "notes.txt"}, text)
        result = await agent.ask("What do my notes say about deadlines?")
        print(result.answer, result.chunks_found)

        agent.remove_document("d1")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        embedding_service: Optional[EmbeddingService] = None,
        llm_service: Optional[LLMService] = None,
        vector_store: Optional[VectorStore] = None,
        embedding_provider: Optional[str] = None,
        llm_provider: Optional[str] = None,
    ):
        """
        Initialize the RAG Agent.

        Args:
            settings: Settings instance (default: get_settings())
            embedding_service: Ready-made embedding service
            llm_service: Ready-made LLM service
            vector_store: Ready-made vector store (must share embedding_service)
            embedding_provider: Overrides the configured embedding provider
            llm_provider: Overrides the configured LLM provider
        """
        self.settings = settings or get_settings()

        logger.info("Initializing RAG Agent...")

        if vector_store is not None:
            self._embedding_service = vector_store.embedding_service
        else:
            self._embedding_service = embedding_service or EmbeddingService(
                provider=embedding_provider,
                config=self.settings.embedding,
            )
        self._vector_store = vector_store or VectorStore(self._embedding_service)

        self._llm_service = llm_service or LLMService(
            provider=llm_provider,
            config=self.settings.llm,
        )
        self._chunker = TextChunker(config=self.settings.chunking)
        self._rag_chain = RAGChain(
            llm_service=self._llm_service,
            max_context_length=self.settings.retrieval.max_context_length,
        )
        self._conversation_manager = ConversationManager(
            default_max_turns=self.settings.agent.max_history_turns,
        )

        self.top_k = self.settings.retrieval.top_k
        self.enable_shortcuts = self.settings.agent.enable_shortcuts

        logger.info(
            f"RAG Agent initialized: "
            f"embedding={self._embedding_service.provider_name}, "
            f"llm={self._llm_service.provider_name}"
        )

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest_document(
        self,
        document_id: str,
        metadata: Optional[Dict[str, Any]],
        text: str,
    ) -> int:
        """
        Chunk, embed and index extracted text.

        Returns:
            Number of chunks indexed

        Raises:
            InputError: Blank text or missing id
            DimensionMismatchError: Embeddings do not fit the index
        """
        metadata = dict(metadata or {})
        name = metadata.setdefault("name", document_id)

        if not text or not text.strip():
            raise InputError(f"No text content found in {name}")

        segments = self._chunker.split(text, source_name=name)
        await self._vector_store.add_document(document_id, metadata, segments)

        logger.info(f"Ingested {len(segments)} chunks from {name}")
        return len(segments)

    async def ingest_file(
        self,
        raw_bytes: bytes,
        name: str,
        declared_type: Optional[str] = None,
        document_id: Optional[str] = None,
    ) -> Document:
        """
        Extract text from an uploaded file and ingest it.

        Args:
            raw_bytes: File content
            name: Original file name
            declared_type: MIME type from the uploader
            document_id: Identity to use (a random id by default)

        Returns:
            The indexed Document

        Raises:
            InputError: Unsupported type, too large, or no text
            ExtractionError: The parser failed
        """
        document_id = document_id or uuid.uuid4().hex[:12]

        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(
            None,
            partial(
                extract_text,
                raw_bytes,
                declared_type,
                name,
                self.settings.agent.max_file_size,
            ),
        )

        metadata = {
            "name": name,
            "size": len(raw_bytes),
            "type": declared_type or resolve_type(None, name) or "",
            "extension": Path(name).suffix.lower(),
        }
        await self.ingest_document(document_id, metadata, text)
        return self._vector_store.get_document(document_id)

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------

    async def ask(
        self,
        question: str,
        conversation_history: Optional[List[Dict[str, str]]] = None,
        conversation_id: Optional[str] = None,
    ) -> AskResult:
        """
        Answer a question from the indexed documents.

        Args:
            question: User's question
            conversation_history: Prior turns as [{"role", "content"}]
            conversation_id: Keep history in the agent's memory under this id

        Returns:
            AskResult; never raises
        """
        try:
            if not question or not question.strip():
                raise InputError("Question cannot be empty")
            return await self._ask(question.strip(), conversation_history, conversation_id)

        except InputError as e:
            return AskResult(answer=str(e), error=str(e))
        except Exception as e:
            logger.error(f"Query error: {e}")
            return AskResult(
                answer=(
                    "Sorry, I encountered an error while processing your question. "
                    "Please try again."
                ),
                error=str(e),
            )

    async def _ask(
        self,
        question: str,
        conversation_history: Optional[List[Dict[str, str]]],
        conversation_id: Optional[str],
    ) -> AskResult:
        start_time = time.time()

        memory = None
        if conversation_id:
            memory = self._conversation_manager.get_memory(conversation_id)
        if conversation_history is None and memory is not None:
            conversation_history = memory.get_history()

        shortcut = self._shortcut_answer(question) if self.enable_shortcuts else None
        if shortcut is not None:
            result = AskResult(answer=shortcut)
            self._remember(memory, question, result)
            return result

        results = await self._retrieve(question)
        retrieval_time = time.time() - start_time

        answer = None
        error = None
        if self._llm_service.is_configured:
            try:
                answer = await self._rag_chain.answer(question, results, conversation_history)
            except ProviderUnavailableError as e:
                logger.warning(f"Generation failed, returning search results: {e}")
                error = str(e)
        else:
            error = f"LLM provider {self._llm_service.provider_name} is not configured"

        result = AskResult(
            answer=answer if answer is not None else self._fallback_answer(question, results),
            chunks_found=len(results),
            sources=[self._source(r) for r in results],
            generated=answer is not None,
            error=error,
        )
        self._remember(memory, question, result)

        logger.info(
            f"Query completed in {time.time() - start_time:.2f}s "
            f"(retrieval: {retrieval_time:.2f}s, chunks: {len(results)}, "
            f"generated: {result.generated})"
        )
        return result

    async def _retrieve(self, question: str) -> List[SearchResult]:
        if self._vector_store.count() == 0:
            return []
        try:
            return await self._vector_store.search(question, top_k=self.top_k)
        except DocChatError as e:
            logger.warning(f"Document search failed: {e}")
            return []

    def _document_note(self) -> str:
        count = len(self._vector_store.list_documents())
        if not count:
            return ""
        return (
            f"\n\nI also have access to {count} document(s) "
            f"if you'd like to ask about them."
        )

    def _shortcut_answer(self, question: str) -> Optional[str]:
        """Answer greetings and date/time questions without retrieval."""
        lowered = question.lower()
        now = datetime.now()

        if DATE_PATTERN.search(lowered):
            return f"Today is {format_date(now)}." + self._document_note()

        if TIME_PATTERN.search(lowered):
            return f"The current time is {now:%H:%M}." + self._document_note()

        if GREETING_PATTERN.search(lowered) and len(lowered.split()) <= 4:
            count = len(self._vector_store.list_documents())
            if count:
                return (
                    f"Hello! I have access to {count} document(s) and can help you "
                    f"analyze them, or answer general questions!"
                )
            return (
                "Hello! Upload some files and I'll help you analyze them, "
                "or ask me general questions!"
            )

        return None

    @staticmethod
    def _fallback_answer(question: str, results: List[SearchResult]) -> str:
        """Raw search results, used when no answer could be generated."""
        if not results:
            return (
                f'I don\'t have specific information about "{question}": '
                f"no relevant documents were found and no answer could be generated. "
                f"You can:\n\n"
                f"- Upload documents for me to analyze\n"
                f"- Ask general questions like the date or time"
            )

        lines = ["Here's what I found in your documents:", ""]
        for result in results:
            text = result.chunk.text
            preview = text[:PREVIEW_LENGTH] + ("..." if len(text) > PREVIEW_LENGTH else "")
            lines.append(f"**{result.document.name}** (similarity: {result.score * 100:.1f}%)")
            lines.append(preview)
            lines.append("")
        return "\n".join(lines).rstrip()

    @staticmethod
    def _source(result: SearchResult) -> Dict[str, Any]:
        return {
            "document_id": result.document.document_id,
            "name": result.document.name,
            "chunk_id": result.chunk.chunk_id,
            "chunk_index": result.chunk.chunk_index,
            "score": result.score,
        }

    @staticmethod
    def _remember(memory, question: str, result: AskResult) -> None:
        if memory is None:
            return
        memory.add_user_message(question)
        memory.add_assistant_message(
            result.answer,
            metadata={"sources": [s["name"] for s in result.sources]},
        )

    # ------------------------------------------------------------------
    # Knowledge base management
    # ------------------------------------------------------------------

    def remove_document(self, document_id: str) -> bool:
        """Remove a document; False for unknown ids."""
        return self._vector_store.remove_document(document_id)

    def list_documents(self) -> List[Document]:
        return self._vector_store.list_documents()

    async def search_similar(
        self,
        query: str,
        top_k: Optional[int] = None,
        document_id: Optional[str] = None,
    ) -> List[SearchResult]:
        """Search without generating an answer."""
        return await self._vector_store.search(
            query, top_k=top_k or self.top_k, document_id=document_id
        )

    def get_stats(self) -> Dict[str, Any]:
        """Index statistics plus provider info."""
        stats = self._vector_store.get_stats()
        stats.update({
            "embedding_provider": self._embedding_service.provider_name,
            "embedding_model": self._embedding_service.model_name,
            "embedding_degraded": self._embedding_service.is_degraded,
            "llm_provider": self._llm_service.provider_name,
            "llm_model": self._llm_service.model_name,
            "llm_configured": self._llm_service.is_configured,
            "active_conversations": len(self._conversation_manager),
        })
        return stats

    def clear_knowledge_base(self) -> None:
        """Remove every document from the index."""
        self._vector_store.clear()
        logger.warning("Knowledge base cleared")

    def export_index(self) -> Dict[str, Any]:
        return self._vector_store.export()

    def import_index(self, snapshot: Dict[str, Any]) -> int:
        """Replace the index with a snapshot; returns the document count."""
        return self._vector_store.import_snapshot(snapshot)

    def clear_conversation(self, conversation_id: str) -> bool:
        return self._conversation_manager.delete_memory(conversation_id)

    @property
    def vector_store(self) -> VectorStore:
        return self._vector_store


def create_agent(**kwargs) -> RAGAgent:
    """
    Factory function to create a RAG agent.

    Accepts the RAGAgent constructor arguments, e.g.
    create_agent(embedding_provider="hash", llm_provider="ollama").
    """
    return RAGAgent(**kwargs)
