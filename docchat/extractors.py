"""
Text Extraction Module

Turns uploaded file bytes into plain text for chunking.

Supported formats:
- PDF (.pdf): pypdf, pages joined by newlines
- Word (.docx): python-docx, non-empty paragraphs joined by blank lines
- Excel (.xlsx): openpyxl, each sheet as "Sheet: <name>" plus CSV rows
- CSV (.csv): rendered as a JSON list of records
- JSON (.json): pretty-printed
- Text/Markdown (.txt, .md): UTF-8

Images and legacy binary Office formats are not supported.
"""

import csv
import io
import json
import logging
from pathlib import Path
from typing import Callable, Dict, Optional

from docx import Document as DocxDocument
from openpyxl import load_workbook
from pypdf import PdfReader

from config.settings import get_settings
from docchat.exceptions import ExtractionError, InputError

logger = logging.getLogger(__name__)

MIME_TYPES = {
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "text/csv": "csv",
    "application/csv": "csv",
    "application/json": "json",
    "text/plain": "text",
    "text/markdown": "text",
    "text/x-markdown": "text",
}

EXTENSIONS = {
    ".pdf": "pdf",
    ".docx": "docx",
    ".xlsx": "xlsx",
    ".csv": "csv",
    ".json": "json",
    ".txt": "text",
    ".md": "text",
    ".markdown": "text",
}


def resolve_type(declared_type: Optional[str], name: Optional[str] = None) -> Optional[str]:
    """
    Map a MIME type, bare extension or file name to a format key.

    The declared type wins; the file name's extension is used when the
    declared type is missing or unknown (e.g. application/octet-stream).
    """
    if declared_type:
        declared = declared_type.strip().lower().split(";")[0]
        if declared in MIME_TYPES:
            return MIME_TYPES[declared]
        extension = declared if declared.startswith(".") else f".{declared}"
        if extension in EXTENSIONS:
            return EXTENSIONS[extension]

    if name:
        return EXTENSIONS.get(Path(name).suffix.lower())
    return None


def is_supported_type(declared_type: Optional[str], name: Optional[str] = None) -> bool:
    return resolve_type(declared_type, name) is not None


def _extract_pdf(raw_bytes: bytes) -> str:
    reader = PdfReader(io.BytesIO(raw_bytes))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def _extract_docx(raw_bytes: bytes) -> str:
    document = DocxDocument(io.BytesIO(raw_bytes))
    return "\n\n".join(p.text for p in document.paragraphs if p.text.strip())


def _extract_xlsx(raw_bytes: bytes) -> str:
    workbook = load_workbook(io.BytesIO(raw_bytes), read_only=True, data_only=True)
    try:
        sections = []
        for sheet in workbook.worksheets:
            buffer = io.StringIO()
            writer = csv.writer(buffer, lineterminator="\n")
            for row in sheet.iter_rows(values_only=True):
                if any(cell is not None for cell in row):
                    writer.writerow(["" if cell is None else cell for cell in row])
            sections.append(f"Sheet: {sheet.title}\n{buffer.getvalue()}")
        return "\n".join(sections)
    finally:
        workbook.close()


def _decode(raw_bytes: bytes) -> str:
    return raw_bytes.decode("utf-8-sig", errors="replace")


def _extract_csv(raw_bytes: bytes) -> str:
    records = list(csv.DictReader(io.StringIO(_decode(raw_bytes))))
    return json.dumps(records, indent=2, ensure_ascii=False)


def _extract_json(raw_bytes: bytes) -> str:
    return json.dumps(json.loads(_decode(raw_bytes)), indent=2, ensure_ascii=False)


EXTRACTORS: Dict[str, Callable[[bytes], str]] = {
    "pdf": _extract_pdf,
    "docx": _extract_docx,
    "xlsx": _extract_xlsx,
    "csv": _extract_csv,
    "json": _extract_json,
    "text": _decode,
}


def extract_text(
    raw_bytes: bytes,
    declared_type: Optional[str] = None,
    name: Optional[str] = None,
    max_file_size: Optional[int] = None,
) -> str:
    """
    Extract plain text from file bytes.

    Args:
        raw_bytes: File content
        declared_type: MIME type or extension reported by the uploader
        name: Original file name, used for extension fallback and logs
        max_file_size: Size limit in bytes (default from config, 10MB)

    Returns:
        Extracted text (may be empty; callers decide what blank means)

    Raises:
        InputError: Unsupported type or file too large
        ExtractionError: The parser failed on the content
    """
    limit = max_file_size if max_file_size is not None else get_settings().agent.max_file_size
    display_name = name or "upload"

    if len(raw_bytes) > limit:
        raise InputError(
            f"File {display_name} is too large: {len(raw_bytes)} bytes (limit {limit})"
        )

    kind = resolve_type(declared_type, name)
    if kind is None:
        raise InputError(f"Unsupported file type: {declared_type or display_name}")

    try:
        text = EXTRACTORS[kind](raw_bytes)
    except Exception as e:
        logger.error(f"Failed to extract {kind} text from {display_name}: {e}")
        raise ExtractionError(f"Failed to parse {kind} file {display_name}: {e}") from e

    logger.info(f"Extracted {len(text)} characters from {display_name} ({kind})")
    return text
