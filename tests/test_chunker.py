"""
Tests for the chunker module.

Run with: pytest tests/test_chunker.py -v
"""

import string

import pytest

from config.settings import ChunkingConfig
from docchat.chunker import Chunk, TextChunker, build_chunks, chunk_text, make_chunk_id
from docchat.exceptions import InputError


def shared_overlap(left: str, right: str) -> int:
    """Length of the longest suffix of `left` that is a prefix of `right`."""
    for size in range(min(len(left), len(right)), 0, -1):
        if left[-size:] == right[:size]:
            return size
    return 0


def unbroken_text(length: int) -> str:
    """Text with no '.', space or newline, so no breakpoint can be used."""
    letters = string.ascii_letters
    return "".join(letters[i % len(letters)] for i in range(length))


def token_text(count: int) -> str:
    return " ".join(f"w{i}" for i in range(count))


class TestChunk:
    """Tests for Chunk dataclass."""

    def test_chunk_auto_id(self):
        chunk = Chunk(text="Some text", chunk_id="", document_id="doc1", chunk_index=3)

        assert chunk.chunk_id == "doc1_chunk_3"

    def test_document_name_falls_back_to_id(self):
        chunk = Chunk(text="x", chunk_id="", document_id="doc1", chunk_index=0)
        assert chunk.document_name == "doc1"

        named = Chunk(
            text="x", chunk_id="", document_id="doc1", chunk_index=0,
            metadata={"name": "report.pdf"},
        )
        assert named.document_name == "report.pdf"

    def test_chunk_serialization(self):
        chunk = Chunk(
            text="Test text",
            chunk_id="d_chunk_0",
            document_id="d",
            chunk_index=0,
            total_chunks=2,
            metadata={"name": "d.txt"},
        )

        restored = Chunk.from_dict(chunk.to_dict())

        assert restored == chunk


class TestChunkText:
    """Tests for the chunk_text function."""

    def test_short_text_is_single_chunk(self):
        assert chunk_text("Hello world", max_size=1000, overlap=100) == ["Hello world"]

    def test_empty_text_is_returned_as_is(self):
        assert chunk_text("", max_size=1000, overlap=100) == [""]

    def test_text_of_exactly_max_size(self):
        text = unbroken_text(1000)
        assert chunk_text(text, max_size=1000, overlap=100) == [text]

    @pytest.mark.parametrize("max_size,overlap", [(0, 0), (-5, 0), (100, -1)])
    def test_invalid_parameters(self, max_size, overlap):
        with pytest.raises(InputError):
            chunk_text("some text", max_size=max_size, overlap=overlap)

    def test_exact_overlap_without_breakpoints(self):
        text = unbroken_text(2500)

        chunks = chunk_text(text, max_size=1000, overlap=100)

        assert [len(c) for c in chunks] == [1000, 1000, 700]
        for left, right in zip(chunks, chunks[1:]):
            assert left[-100:] == right[:100]

    def test_overlap_bounded_with_breakpoints(self):
        text = token_text(1500)

        chunks = chunk_text(text, max_size=1000, overlap=100)

        assert len(chunks) > 1
        for left, right in zip(chunks, chunks[1:]):
            assert 0 <= shared_overlap(left, right) <= 100

    def test_chunks_never_exceed_max_size(self):
        text = token_text(3000)

        chunks = chunk_text(text, max_size=1000, overlap=100)

        assert all(len(c) <= 1000 for c in chunks)

    def test_break_character_at_window_end_is_kept(self):
        text = "a" * 1000 + "." + "b" * 500

        chunks = chunk_text(text, max_size=1000, overlap=100)

        assert [len(c) for c in chunks] == [1001, 600]
        assert chunks[0].endswith(".")
        assert all(len(c) <= 1001 for c in chunks)

    def test_every_token_is_covered(self):
        count = 2000
        text = token_text(count)

        chunks = chunk_text(text, max_size=1000, overlap=100)

        seen = set()
        for chunk in chunks:
            seen.update(chunk.split())
        missing = [f"w{i}" for i in range(count) if f"w{i}" not in seen]
        assert missing == []

    def test_every_character_is_covered_without_breakpoints(self):
        text = unbroken_text(5321)

        chunks = chunk_text(text, max_size=1000, overlap=100)

        # Rebuild the text by dropping each chunk's leading overlap
        rebuilt = chunks[0] + "".join(c[100:] for c in chunks[1:])
        assert rebuilt == text

    def test_breakpoint_after_seventy_percent_is_used(self):
        text = "a" * 800 + "." + "b" * 1500

        chunks = chunk_text(text, max_size=1000, overlap=100)

        assert chunks[0] == "a" * 800 + "."

    def test_breakpoint_before_seventy_percent_is_ignored(self):
        text = "a" * 500 + "." + "b" * 1500

        chunks = chunk_text(text, max_size=1000, overlap=100)

        assert len(chunks[0]) == 1000

    def test_newline_breakpoint(self):
        text = "x" * 900 + "\n" + "y" * 900

        chunks = chunk_text(text, max_size=1000, overlap=100)

        assert chunks[0] == "x" * 900

    def test_overlap_larger_than_window_terminates(self):
        text = unbroken_text(500)

        chunks = chunk_text(text, max_size=100, overlap=150)

        assert 1 < len(chunks) <= len(text)
        assert chunks[-1].endswith(text[-10:])

    def test_whitespace_segments_are_dropped(self):
        text = "word " * 10 + " " * 2000 + "end"

        chunks = chunk_text(text, max_size=1000, overlap=100)

        assert all(c.strip() for c in chunks)
        assert chunks[-1].endswith("end")


class TestBuildChunks:
    """Tests for wrapping segments in Chunk objects."""

    def test_ids_and_metadata(self):
        chunks = build_chunks("doc1", ["first", "second"], {"name": "notes.txt"})

        assert [c.chunk_id for c in chunks] == ["doc1_chunk_0", "doc1_chunk_1"]
        assert chunks[1].metadata == {"name": "notes.txt", "chunk_index": 1, "total_chunks": 2}
        assert all(c.total_chunks == 2 for c in chunks)
        assert chunks[0].document_name == "notes.txt"

    def test_make_chunk_id(self):
        assert make_chunk_id("abc", 7) == "abc_chunk_7"


class TestTextChunker:
    """Tests for TextChunker class."""

    def test_uses_config_defaults(self):
        chunker = TextChunker(config=ChunkingConfig(chunk_size=200, chunk_overlap=20))

        assert chunker.chunk_size == 200
        assert chunker.chunk_overlap == 20

    def test_explicit_values_override_config(self):
        chunker = TextChunker(
            chunk_size=50,
            chunk_overlap=0,
            config=ChunkingConfig(chunk_size=200, chunk_overlap=20),
        )

        assert chunker.chunk_size == 50
        assert chunker.chunk_overlap == 0

    def test_split(self):
        chunker = TextChunker(config=ChunkingConfig(chunk_size=100, chunk_overlap=10))

        segments = chunker.split(token_text(100), source_name="tokens.txt")

        assert len(segments) > 1
        assert all(len(s) <= 100 for s in segments)

    def test_split_drops_empty_text(self):
        chunker = TextChunker(config=ChunkingConfig(chunk_size=100, chunk_overlap=10))

        assert chunker.split("   ") == []
