"""
Document Chunker Module

Splits extracted document text into overlapping, bounded segments.

Chunking Strategy:
- Fixed-size character window (default 1000 chars)
- Boundary-aware cut: the window end moves back to the last sentence
  terminator, newline or space when that point lies beyond 70% of the window
- Overlap: the next window starts `overlap` characters before the previous end
- Metadata: document name, chunk index and total chunk count are copied onto
  every chunk so search results can be shown without a lookup
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any

from config.settings import get_settings, ChunkingConfig
from docchat.exceptions import InputError

# Configure logging
logger = logging.getLogger(__name__)

# Characters that make an acceptable place to end a chunk
BREAK_CHARACTERS = (".", "\n", " ")

# A breakpoint is only used when it lies beyond this share of the window
MIN_BREAK_RATIO = 0.7


def make_chunk_id(document_id: str, chunk_index: int) -> str:
    """Build the deterministic identity of a chunk."""
    return f"{document_id}_chunk_{chunk_index}"


@dataclass
class Chunk:
    """
    Represents a single chunk of text with metadata.

    Attributes:
        text: The actual text content of the chunk
        chunk_id: Unique identifier derived from document id + position
        document_id: Identity of the owning document
        chunk_index: Position of this chunk in the document (0-indexed)
        total_chunks: Total number of chunks from this document
        metadata: Denormalized document info (name, chunk index, totals)
    """

    text: str
    chunk_id: str
    document_id: str
    chunk_index: int
    total_chunks: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Generate chunk_id if not provided."""
        if not self.chunk_id:
            self.chunk_id = make_chunk_id(self.document_id, self.chunk_index)

    @property
    def document_name(self) -> str:
        return self.metadata.get("name", self.document_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert chunk to dictionary for export."""
        return {
            "text": self.text,
            "chunk_id": self.chunk_id,
            "document_id": self.document_id,
            "chunk_index": self.chunk_index,
            "total_chunks": self.total_chunks,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Chunk":
        """Create Chunk from dictionary."""
        return cls(
            text=data["text"],
            chunk_id=data["chunk_id"],
            document_id=data["document_id"],
            chunk_index=data["chunk_index"],
            total_chunks=data.get("total_chunks", 0),
            metadata=data.get("metadata", {}),
        )


def _find_breakpoint(text: str, end: int) -> int:
    """Return the right-most break character at or before `end`, or -1."""
    return max(text.rfind(char, 0, end + 1) for char in BREAK_CHARACTERS)


def chunk_text(text: str, max_size: int = 1000, overlap: int = 100) -> List[str]:
    """
    Split text into overlapping segments of at most `max_size + 1` characters.

    A segment reaches `max_size + 1` only when a break character sits exactly
    at index `start + max_size`, since the cut keeps that character.

    Text no longer than `max_size` comes back as a single segment, even when
    empty. Longer text is walked with a window; each cut prefers the last
    '.', newline or space when it lies beyond 70% of the window, and the next
    window starts `overlap` characters before the cut. Empty segments are
    dropped.

    Args:
        text: Text to split
        max_size: Maximum characters per segment
        overlap: Characters shared by adjacent segments

    Returns:
        Ordered list of text segments

    Raises:
        InputError: If max_size is not positive or overlap is negative
    """
    if max_size <= 0:
        raise InputError(f"Invalid chunk size: {max_size}")
    if overlap < 0:
        raise InputError(f"Invalid chunk overlap: {overlap}")

    if len(text) <= max_size:
        return [text]

    segments: List[str] = []
    length = len(text)
    start = 0

    while start < length:
        end = start + max_size

        if end < length:
            cut = _find_breakpoint(text, end)
            if cut > start + max_size * MIN_BREAK_RATIO:
                end = cut + 1

        segments.append(text[start:end].strip())

        if end >= length:
            break

        # overlap >= max_size would stall the window
        start = max(end - overlap, start + 1)

    return [segment for segment in segments if segment.strip()]


def build_chunks(
    document_id: str,
    segments: List[str],
    metadata: Optional[Dict[str, Any]] = None,
) -> List[Chunk]:
    """
    Wrap a document's text segments in Chunk objects.

    Args:
        document_id: Identity of the owning document
        segments: Text segments in document order
        metadata: Document metadata; "name" is copied onto every chunk

    Returns:
        List of Chunk objects in document order
    """
    metadata = metadata or {}
    total = len(segments)
    name = metadata.get("name", document_id)

    return [
        Chunk(
            text=segment,
            chunk_id=make_chunk_id(document_id, index),
            document_id=document_id,
            chunk_index=index,
            total_chunks=total,
            metadata={
                "name": name,
                "chunk_index": index,
                "total_chunks": total,
            },
        )
        for index, segment in enumerate(segments)
    ]


class TextChunker:
    """
    Splits document text using configured window settings.

    Example:
        chunker = TextChunker(chunk_size=800, chunk_overlap=100)
        segments = chunker.split(text)
        for index, segment in enumerate(segments):
            print(f"Chunk {index}: {segment[:100]}...")
    """

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        config: Optional[ChunkingConfig] = None,
    ):
        """
        Initialize the TextChunker.

        Args:
            chunk_size: Max characters per chunk (default from config)
            chunk_overlap: Overlap between chunks (default from config)
            config: Optional ChunkingConfig instance
        """
        self.config = config or get_settings().chunking

        self.chunk_size = chunk_size if chunk_size is not None else self.config.chunk_size
        self.chunk_overlap = (
            chunk_overlap if chunk_overlap is not None else self.config.chunk_overlap
        )

        logger.info(
            f"TextChunker initialized: chunk_size={self.chunk_size}, "
            f"overlap={self.chunk_overlap}"
        )

    def split(self, text: str, source_name: str = "direct_input") -> List[str]:
        """
        Split text with this chunker's settings.

        Args:
            text: Extracted document text
            source_name: Name used in log output

        Returns:
            Non-empty text segments in document order
        """
        segments = chunk_text(text, self.chunk_size, self.chunk_overlap)
        segments = [s for s in segments if s.strip()]

        logger.info(
            f"Created {len(segments)} chunks from {source_name} "
            f"(avg {sum(len(s) for s in segments) // max(len(segments), 1)} chars/chunk)"
        )
        return segments
