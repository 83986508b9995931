"""
Tests for the text extraction module.

Binary fixtures (xlsx, docx, pdf) are built in memory with the same
libraries the extractors read them with.
"""

import io
import json

import pytest
from docx import Document as DocxDocument
from openpyxl import Workbook
from pypdf import PdfWriter

from docchat.exceptions import ExtractionError, InputError
from docchat.extractors import extract_text, is_supported_type, resolve_type


def make_docx(*paragraphs: str) -> bytes:
    document = DocxDocument()
    for paragraph in paragraphs:
        document.add_paragraph(paragraph)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def make_xlsx() -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Prices"
    sheet.append(["item", "price"])
    sheet.append(["apple", 3])
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def make_blank_pdf() -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=72, height=72)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


class TestResolveType:
    """Tests for MIME type and extension resolution."""

    @pytest.mark.parametrize("declared,name,expected", [
        ("application/pdf", None, "pdf"),
        ("text/plain; charset=utf-8", None, "text"),
        ("text/csv", "data.csv", "csv"),
        ("docx", None, "docx"),
        (".md", None, "text"),
        ("application/octet-stream", "report.XLSX", "xlsx"),
        (None, "notes.txt", "text"),
        (None, "config.json", "json"),
    ])
    def test_known_types(self, declared, name, expected):
        assert resolve_type(declared, name) == expected

    @pytest.mark.parametrize("declared,name", [
        ("image/png", "photo.png"),
        ("application/vnd.ms-excel", "old.xls"),
        (None, "archive.zip"),
        (None, None),
    ])
    def test_unsupported_types(self, declared, name):
        assert resolve_type(declared, name) is None
        assert is_supported_type(declared, name) is False


class TestPlainFormats:
    """Tests for text, CSV and JSON extraction."""

    def test_text(self):
        text = extract_text("Hello wörld".encode("utf-8"), "text/plain", "notes.txt")

        assert text == "Hello wörld"

    def test_markdown_with_bom(self):
        text = extract_text(b"\xef\xbb\xbf# Title\n\nBody", "text/markdown", "README.md")

        assert text == "# Title\n\nBody"

    def test_csv_becomes_json_records(self):
        raw = b"name,age\nAda,36\nAlan,41\n"

        text = extract_text(raw, "text/csv", "people.csv")

        assert json.loads(text) == [
            {"name": "Ada", "age": "36"},
            {"name": "Alan", "age": "41"},
        ]
        assert text.startswith("[\n  {")

    def test_json_is_pretty_printed(self):
        text = extract_text(b'{"a": 1, "b": [1, 2]}', "application/json", "data.json")

        assert text == json.dumps({"a": 1, "b": [1, 2]}, indent=2)

    def test_invalid_json(self):
        with pytest.raises(ExtractionError):
            extract_text(b"{not json", "application/json", "broken.json")


class TestBinaryFormats:
    """Tests for PDF, Word and Excel extraction."""

    def test_xlsx(self):
        text = extract_text(make_xlsx(), None, "prices.xlsx")

        assert "Sheet: Prices" in text
        assert "item,price" in text
        assert "apple,3" in text

    def test_docx(self):
        raw = make_docx("Quarterly results are up.", "   ", "Costs are flat.")

        text = extract_text(raw, None, "report.docx")

        assert text == "Quarterly results are up.\n\nCosts are flat."

    def test_blank_pdf(self):
        text = extract_text(make_blank_pdf(), "application/pdf", "blank.pdf")

        assert text.strip() == ""

    def test_garbage_pdf(self):
        with pytest.raises(ExtractionError):
            extract_text(b"this is not a pdf", "application/pdf", "fake.pdf")


class TestLimits:
    """Tests for rejected uploads."""

    def test_unsupported_type(self):
        with pytest.raises(InputError) as exc_info:
            extract_text(b"\x89PNG", "image/png", "photo.png")

        assert "Unsupported file type" in str(exc_info.value)

    def test_too_large(self):
        with pytest.raises(InputError):
            extract_text(b"x" * 11, "text/plain", "big.txt", max_file_size=10)

    def test_at_limit_is_accepted(self):
        assert extract_text(b"x" * 10, "text/plain", "ok.txt", max_file_size=10) == "x" * 10
