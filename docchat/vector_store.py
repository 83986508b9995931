"""
Vector Store Module

In-memory vector index for document chunks with exhaustive cosine search.

Design Rationale:
- One index instance per agent, passed in explicitly (no global store)
- Documents own their chunks; removing a document removes every chunk and
  vector it owns in a single locked mutation
- Search is a linear scan scored with numpy; fine for the in-memory document
  counts this serves, no approximate index
- Snapshots are plain dicts (and JSON files) for backup/restore only

Schema (stored per chunk):
- text: Original text content
- embedding: Vector representation (float64)
- document_id: Owning document
- chunk_id: "<document_id>_chunk_<index>"
- metadata: Document name, chunk index and total chunk count
"""

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Dict, Any, Union

import numpy as np

from docchat.chunker import Chunk, build_chunks
from docchat.embeddings import EmbeddingService
from docchat.exceptions import DimensionMismatchError, InputError

# Configure logging
logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Document:
    """
    An ingested document and the chunks it owns.

    Attributes:
        document_id: Opaque identity, unique per ingested file
        name: Display name
        size: Byte size of the original file
        mime_type: MIME type or type tag
        created_at: UTC ISO timestamp of ingestion
        chunk_ids: Owned chunk ids, in document order
        metadata: Caller-supplied metadata
    """

    document_id: str
    name: str
    size: int = 0
    mime_type: str = ""
    created_at: str = field(default_factory=_utc_now)
    chunk_ids: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_chunks(self) -> int:
        return len(self.chunk_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "name": self.name,
            "size": self.size,
            "mime_type": self.mime_type,
            "created_at": self.created_at,
            "chunk_ids": list(self.chunk_ids),
            "total_chunks": self.total_chunks,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        return cls(
            document_id=data["document_id"],
            name=data.get("name", data["document_id"]),
            size=data.get("size", 0),
            mime_type=data.get("mime_type", ""),
            created_at=data.get("created_at") or _utc_now(),
            chunk_ids=list(data.get("chunk_ids", [])),
            metadata=data.get("metadata", {}),
        )


class SearchResult:
    """
    Represents a single search result.

    Attributes:
        chunk: The retrieved Chunk object
        score: Cosine similarity in [-1, 1], higher is better
        document: The Document owning the chunk
        rank: Position in results (1-indexed)
    """

    def __init__(self, chunk: Chunk, score: float, document: Document, rank: int = 0):
        self.chunk = chunk
        self.score = score
        self.document = document
        self.rank = rank

    def __repr__(self) -> str:
        return (
            f"SearchResult(document='{self.document.name}', "
            f"chunk='{self.chunk.chunk_id}', score={self.score:.4f}, rank={self.rank})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "chunk": self.chunk.to_dict(),
            "score": self.score,
            "document_id": self.document.document_id,
            "document_name": self.document.name,
            "rank": self.rank,
        }


class VectorStore:
    """
    In-memory vector index with exhaustive cosine-similarity search.

    Example:
        store = VectorStore(embedding_service=EmbeddingService(provider="hash"))

        await store.add_document("d1", {"name": "notes.txt"}, ["chunk one", "chunk two"])
        results = await store.search("what is in chunk one?", top_k=3)

        store.remove_document("d1")
    """

    def __init__(self, embedding_service: EmbeddingService):
        """
        Initialize the vector store.

        Args:
            embedding_service: EmbeddingService used for chunks and queries
        """
        self.embedding_service = embedding_service

        self._lock = threading.RLock()
        self._documents: Dict[str, Document] = {}
        # Insertion order of these dicts is the tie-break order for search
        self._chunks: Dict[str, Chunk] = {}
        self._vectors: Dict[str, np.ndarray] = {}
        self._dimension: Optional[int] = None

        logger.info(
            f"VectorStore initialized with {embedding_service.model_name} embeddings"
        )

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    async def add_document(
        self,
        document_id: str,
        metadata: Optional[Dict[str, Any]],
        chunks: List[str],
    ) -> Document:
        """
        Embed and register a document with its chunks.

        All chunks are embedded first; the document is only registered once
        every embedding succeeded and the dimensions check out. Re-adding an
        existing id replaces the previous version.

        Args:
            document_id: Identity of the document
            metadata: Document metadata ("name", "size", "type" are recognized)
            chunks: Chunk texts in document order

        Returns:
            The registered Document

        Raises:
            InputError: Missing id, no chunks, or an empty chunk
            DimensionMismatchError: Vectors differ from each other or the index
        """
        if not document_id:
            raise InputError("Document id is required")
        if not chunks:
            raise InputError(f"Document {document_id} has no chunks to index")

        metadata = dict(metadata or {})
        metadata.setdefault("name", document_id)

        start_time = time.time()
        vectors = await self.embedding_service.embed_batch(chunks)

        matrix = self._validate_batch(vectors, len(chunks))
        chunk_objects = build_chunks(document_id, chunks, metadata)

        document = Document(
            document_id=document_id,
            name=metadata["name"],
            size=int(metadata.get("size", 0) or 0),
            mime_type=metadata.get("type", "") or "",
            chunk_ids=[chunk.chunk_id for chunk in chunk_objects],
            metadata=metadata,
        )

        with self._lock:
            dimension = matrix.shape[1]
            others = any(doc_id != document_id for doc_id in self._documents)
            if others and self._dimension is not None and dimension != self._dimension:
                raise DimensionMismatchError(self._dimension, dimension, "document")

            replaced = self._remove_locked(document_id)
            for chunk, vector in zip(chunk_objects, matrix):
                self._chunks[chunk.chunk_id] = chunk
                self._vectors[chunk.chunk_id] = vector
            self._documents[document_id] = document
            self._dimension = dimension

        elapsed = time.time() - start_time
        action = "Replaced" if replaced else "Added"
        logger.info(
            f"{action} document {document_id} ({document.name}) with "
            f"{len(chunk_objects)} chunks in {elapsed:.2f}s"
        )
        return document

    @staticmethod
    def _validate_batch(vectors: List[List[float]], expected_count: int) -> np.ndarray:
        if len(vectors) != expected_count:
            raise InputError(
                f"Embedding count {len(vectors)} does not match chunk count {expected_count}"
            )

        lengths = [len(vector) for vector in vectors]
        for length in lengths[1:]:
            if length != lengths[0]:
                raise DimensionMismatchError(lengths[0], length, "chunk batch")
        if lengths[0] == 0:
            raise InputError("Embedding provider returned empty vectors")

        return np.asarray(vectors, dtype=np.float64)

    def _remove_locked(self, document_id: str) -> bool:
        document = self._documents.pop(document_id, None)
        if document is None:
            return False
        for chunk_id in document.chunk_ids:
            self._chunks.pop(chunk_id, None)
            self._vectors.pop(chunk_id, None)
        if not self._documents:
            self._dimension = None
        return True

    def remove_document(self, document_id: str) -> bool:
        """
        Remove a document and every chunk it owns.

        Returns:
            True if the document existed, False for unknown ids (no-op)
        """
        with self._lock:
            removed = self._remove_locked(document_id)

        if removed:
            logger.info(f"Removed document {document_id}")
        else:
            logger.debug(f"Remove ignored, unknown document {document_id}")
        return removed

    def clear(self) -> None:
        """Remove all documents."""
        with self._lock:
            self._documents = {}
            self._chunks = {}
            self._vectors = {}
            self._dimension = None

        logger.info("Vector store cleared")

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        top_k: int = 3,
        document_id: Optional[str] = None,
    ) -> List[SearchResult]:
        """
        Search for chunks relevant to a query.

        Args:
            query: User's question/search query
            top_k: Number of results
            document_id: Restrict the search to one document

        Returns:
            Up to top_k SearchResult objects, best first. Empty when the index
            is empty or the document filter matches nothing.

        Raises:
            InputError: If the query is empty
            DimensionMismatchError: If the query vector length differs from the index
        """
        if top_k <= 0 or not self._has_candidates(document_id):
            return []

        start_time = time.time()
        query_embedding = await self.embedding_service.embed_query(query)
        results = self.search_by_vector(query_embedding, top_k, document_id)

        logger.debug(
            f"Search returned {len(results)} results in {time.time() - start_time:.3f}s"
        )
        return results

    def _has_candidates(self, document_id: Optional[str]) -> bool:
        with self._lock:
            if document_id is None:
                return bool(self._chunks)
            return document_id in self._documents

    def search_by_vector(
        self,
        query_embedding: List[float],
        top_k: int = 3,
        document_id: Optional[str] = None,
    ) -> List[SearchResult]:
        """
        Score every candidate chunk against a query vector.

        Ties keep insertion order.
        """
        if top_k <= 0:
            return []

        query_vector = np.asarray(query_embedding, dtype=np.float64)

        with self._lock:
            if document_id is None:
                chunk_ids = list(self._chunks)
            elif document_id in self._documents:
                chunk_ids = list(self._documents[document_id].chunk_ids)
            else:
                chunk_ids = []

            if not chunk_ids:
                return []

            if query_vector.ndim != 1 or query_vector.size != self._dimension:
                raise DimensionMismatchError(self._dimension, query_vector.size, "query")

            matrix = np.vstack([self._vectors[chunk_id] for chunk_id in chunk_ids])
            scores = self._cosine_scores(matrix, query_vector)

            order = np.argsort(-scores, kind="stable")[:top_k]

            results = []
            for rank, position in enumerate(order, 1):
                chunk = self._chunks[chunk_ids[position]]
                results.append(SearchResult(
                    chunk=chunk,
                    score=float(scores[position]),
                    document=self._documents[chunk.document_id],
                    rank=rank,
                ))

        return results

    @staticmethod
    def _cosine_scores(matrix: np.ndarray, query_vector: np.ndarray) -> np.ndarray:
        """Cosine similarity of each row with the query; 0 where a norm is 0."""
        denominators = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vector)
        scores = np.divide(
            matrix @ query_vector,
            denominators,
            out=np.zeros(matrix.shape[0], dtype=np.float64),
            where=denominators != 0,
        )
        return np.clip(scores, -1.0, 1.0)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        """
        Index statistics.

        approx_memory_bytes counts vector bytes plus UTF-8 chunk text bytes.
        """
        with self._lock:
            vector_bytes = sum(vector.nbytes for vector in self._vectors.values())
            text_bytes = sum(
                len(chunk.text.encode("utf-8")) for chunk in self._chunks.values()
            )
            return {
                "document_count": len(self._documents),
                "chunk_count": len(self._chunks),
                "approx_memory_bytes": vector_bytes + text_bytes,
                "dimension": self._dimension,
            }

    def list_documents(self) -> List[Document]:
        """Return documents in ingestion order."""
        with self._lock:
            return list(self._documents.values())

    def get_document(self, document_id: str) -> Optional[Document]:
        with self._lock:
            return self._documents.get(document_id)

    def has_document(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._documents

    def get_document_chunks(self, document_id: str) -> List[Chunk]:
        """Return a document's chunks in order, or [] for unknown ids."""
        with self._lock:
            document = self._documents.get(document_id)
            if document is None:
                return []
            return [self._chunks[chunk_id] for chunk_id in document.chunk_ids]

    @property
    def dimension(self) -> Optional[int]:
        """Dimension shared by all indexed vectors, None while empty."""
        return self._dimension

    def count(self) -> int:
        """Return chunk count."""
        with self._lock:
            return len(self._chunks)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def export(self) -> Dict[str, Any]:
        """Serialize documents, chunks and embeddings to a plain dict."""
        with self._lock:
            chunks = []
            for chunk_id, chunk in self._chunks.items():
                data = chunk.to_dict()
                data["embedding"] = self._vectors[chunk_id].tolist()
                chunks.append(data)

            snapshot = {
                "version": SNAPSHOT_VERSION,
                "exported_at": _utc_now(),
                "dimension": self._dimension,
                "documents": [doc.to_dict() for doc in self._documents.values()],
                "chunks": chunks,
            }

        logger.info(
            f"Exported {len(snapshot['documents'])} documents, {len(chunks)} chunks"
        )
        return snapshot

    def import_snapshot(self, snapshot: Dict[str, Any]) -> int:
        """
        Replace the index contents with a snapshot from export().

        The snapshot is validated in full before anything is replaced.

        Returns:
            Number of documents imported

        Raises:
            InputError: Malformed snapshot or dangling chunk references
            DimensionMismatchError: Embeddings of differing lengths
        """
        try:
            documents = [Document.from_dict(d) for d in snapshot.get("documents", [])]
            raw_chunks = list(snapshot.get("chunks", []))
            chunks = [Chunk.from_dict(c) for c in raw_chunks]
            vectors = [np.asarray(c["embedding"], dtype=np.float64) for c in raw_chunks]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise InputError(f"Invalid snapshot: {e}") from e

        dimension = vectors[0].size if vectors else None
        for vector in vectors:
            if vector.ndim != 1 or vector.size != dimension:
                raise DimensionMismatchError(dimension, vector.size, "snapshot")

        new_documents = {doc.document_id: doc for doc in documents}
        new_chunks = {chunk.chunk_id: chunk for chunk in chunks}
        new_vectors = {chunk.chunk_id: v for chunk, v in zip(chunks, vectors)}

        if len(new_documents) != len(documents):
            raise InputError("Invalid snapshot: duplicate document ids")
        if len(new_chunks) != len(chunks):
            raise InputError("Invalid snapshot: duplicate chunk ids")

        # Every chunk must be listed by exactly one document, its own
        owners: Dict[str, str] = {}
        for doc in documents:
            for cid in doc.chunk_ids:
                if cid in owners:
                    raise InputError(
                        f"Invalid snapshot: chunk {cid} is listed by "
                        f"{owners[cid]} and {doc.document_id}"
                    )
                if cid not in new_chunks:
                    raise InputError(
                        f"Invalid snapshot: document {doc.document_id} is missing chunk {cid}"
                    )
                owners[cid] = doc.document_id

        for chunk in chunks:
            owner = owners.get(chunk.chunk_id)
            if owner is None:
                raise InputError(
                    f"Invalid snapshot: chunk {chunk.chunk_id} is not listed by any document"
                )
            if chunk.document_id != owner:
                raise InputError(
                    f"Invalid snapshot: chunk {chunk.chunk_id} belongs to "
                    f"{chunk.document_id} but is listed by {owner}"
                )

        with self._lock:
            self._documents = new_documents
            self._chunks = new_chunks
            self._vectors = new_vectors
            self._dimension = dimension if new_documents else None

        logger.info(f"Imported {len(new_documents)} documents, {len(new_chunks)} chunks")
        return len(new_documents)

    def save(self, path: Union[str, Path]) -> Path:
        """Write a snapshot to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.export(), f)

        logger.info(f"Saved vector store snapshot to {path}")
        return path

    def load(self, path: Union[str, Path]) -> int:
        """Replace the index contents with a JSON snapshot file."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            snapshot = json.load(f)

        return self.import_snapshot(snapshot)
