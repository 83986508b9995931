"""
RAG Chain Module

Turns a question plus retrieved chunks into a grounded prompt and asks the
LLM for an answer.

Prompt layout:
    instructions -> current date -> document context -> previous
    conversation -> question -> "Answer:"

Design Rationale:
- Retrieval happens before this layer; the chain only formats and generates
- Exactly one generation call per answer, retries belong to LLMService
- With no retrieved chunks the model is told so and still answers from
  general knowledge instead of refusing
"""

import logging
import time
from datetime import datetime
from typing import List, Optional, Dict, Any

from config.settings import get_settings
from docchat.exceptions import ProviderUnavailableError
from docchat.llm_service import LLMService
from docchat.vector_store import SearchResult

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"

NO_CONTEXT_TEXT = "No relevant documents were found for this question."

DEFAULT_INSTRUCTIONS = """You are a helpful AI assistant that answers questions about the user's uploaded documents.

Guidelines:
1. Use the document context below when it is relevant to the question
2. Mention which document the information comes from
3. If the documents do not cover the question, answer from your general knowledge
4. Never refuse to answer only because the documents lack the information
5. Be concise but thorough"""


def format_date(now: Optional[datetime] = None) -> str:
    """Format a date as 'Weekday, Month D, YYYY'."""
    now = now or datetime.now()
    return f"{now:%A}, {now:%B} {now.day}, {now.year}"


class RAGChain:
    """
    Builds RAG prompts and generates answers.

    Example:
        chain = RAGChain(llm_service=LLMService())
        results = await vector_store.search(question, top_k=3)
        answer = await chain.answer(question, results, memory.get_history())
    """

    def __init__(
        self,
        llm_service: LLMService,
        max_context_length: Optional[int] = None,
        instructions: Optional[str] = None,
    ):
        """
        Initialize the RAG Chain.

        Args:
            llm_service: LLM service for generation
            max_context_length: Max chars of document context (default from config)
            instructions: Replaces the default instruction block
        """
        self.llm_service = llm_service
        self.max_context_length = (
            max_context_length or get_settings().retrieval.max_context_length
        )
        self.instructions = instructions or DEFAULT_INSTRUCTIONS

        logger.info(f"RAGChain initialized: max_context_length={self.max_context_length}")

    def build_context(self, results: List[SearchResult]) -> str:
        """
        Build the context block from search results.

        Each chunk becomes "[Document n: name]" followed by its text. Blocks
        are dropped whole once max_context_length would be exceeded; only a
        first block that is too long on its own gets cut.
        """
        if not results:
            return NO_CONTEXT_TEXT

        blocks = []
        current_length = 0

        for index, result in enumerate(results, 1):
            block = f"[Document {index}: {result.document.name}]\n{result.chunk.text.strip()}"
            added = len(block) + (len(CONTEXT_SEPARATOR) if blocks else 0)

            if current_length + added > self.max_context_length:
                if not blocks:
                    blocks.append(block[:self.max_context_length])
                break

            blocks.append(block)
            current_length += added

        if len(blocks) < len(results):
            logger.debug(f"Context truncated to {len(blocks)} of {len(results)} chunks")
        return CONTEXT_SEPARATOR.join(blocks)

    @staticmethod
    def format_history(history: Optional[List[Dict[str, Any]]]) -> str:
        """Render prior turns as 'User: ...' / 'Assistant: ...' lines."""
        if not history:
            return ""

        lines = []
        for message in history:
            role = message.get("role", "user")
            label = "User" if role == "user" else "Assistant"
            lines.append(f"{label}: {message.get('content', '')}")
        return "\n".join(lines)

    def build_prompt(
        self,
        question: str,
        results: List[SearchResult],
        conversation_history: Optional[List[Dict[str, Any]]] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """Assemble the full prompt sent to the LLM."""
        sections = [
            self.instructions,
            f"Current date: {format_date(now)}",
            f"Document context:\n{self.build_context(results)}",
        ]

        history = self.format_history(conversation_history)
        if history:
            sections.append(f"Previous conversation:\n{history}")

        sections.append(f"Question: {question.strip()}")
        sections.append("Answer:")
        return "\n\n".join(sections)

    async def answer(
        self,
        question: str,
        retrieved_chunks: List[SearchResult],
        conversation_history: Optional[List[Dict[str, Any]]] = None,
    ) -> str:
        """
        Generate an answer grounded in the retrieved chunks.

        Args:
            question: User's question
            retrieved_chunks: Search results, best first
            conversation_history: Prior turns as {"role", "content"} dicts

        Returns:
            The generated text

        Raises:
            ProviderUnavailableError: Generation failed or returned nothing
        """
        start_time = time.time()
        prompt = self.build_prompt(question, retrieved_chunks, conversation_history)

        response = await self.llm_service.generate(prompt)

        content = (response.content or "").strip()
        if not content:
            raise ProviderUnavailableError(
                "Model returned an empty answer",
                provider_name=self.llm_service.provider_name,
            )

        logger.info(
            f"RAG answer generated in {time.time() - start_time:.2f}s "
            f"from {len(retrieved_chunks)} chunks"
        )
        return content
