"""
Document Unit Counter
Extracts the billable word count from an uploaded document.

- Spreadsheets: every text cell of every sheet (openpyxl).
- Word documents: every paragraph and table cell (python-docx). A merged cell
  counts once, however many grid columns or rows it spans.
- Plain text / CSV: whitespace tokens of the decoded text.
- Anything else we accept, or any parse failure: ceil(size / 100). This covers
  PDF, legacy Word (.doc) and legacy Excel (.xls, BIFF): openpyxl only reads the
  OOXML formats, so an .xls upload is priced from its size, never its cells.

The pricing flow must always get a number, so extraction never raises for a
corrupt file. Unaccepted formats and oversized files are rejected up front.
"""
import io
import logging
import math
import os
from typing import Optional

from openpyxl import load_workbook
from docx import Document

from services.errors import InvalidInput

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
BYTES_PER_ESTIMATED_WORD = 100

SPREADSHEET_EXTENSIONS = {".xlsx", ".xlsm"}
WORD_EXTENSIONS = {".docx"}
TEXT_EXTENSIONS = {".txt", ".csv"}
ESTIMATED_EXTENSIONS = {".pdf", ".doc", ".xls"}

SPREADSHEET_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

ALLOWED_CONTENT_TYPES = {
    "application/pdf",
    "application/msword",
    DOCX_CONTENT_TYPE,
    "text/plain",
    "text/csv",
    "application/vnd.ms-excel",
    SPREADSHEET_CONTENT_TYPE,
}


def count_tokens(text: Optional[str]) -> int:
    """Number of whitespace-separated tokens; blank text is 0."""
    if not text:
        return 0
    return len(text.split())


def estimate_units(size_bytes: int) -> int:
    return math.ceil(size_bytes / BYTES_PER_ESTIMATED_WORD)


def _extension(filename: Optional[str]) -> str:
    return os.path.splitext(filename or "")[1].lower()


def validate_upload(document: bytes, filename: Optional[str], content_type: Optional[str] = None) -> None:
    """Reject unaccepted formats and oversized files."""
    extension = _extension(filename)
    content_type = (content_type or "").split(";")[0].strip().lower()
    known = SPREADSHEET_EXTENSIONS | WORD_EXTENSIONS | TEXT_EXTENSIONS | ESTIMATED_EXTENSIONS
    if extension not in known and content_type not in ALLOWED_CONTENT_TYPES:
        raise InvalidInput("Invalid file type. Only PDF, Word, Excel, and text files are allowed.")
    if len(document) > MAX_UPLOAD_BYTES:
        raise InvalidInput(f"File too large - maximum size is {MAX_UPLOAD_BYTES // (1024 * 1024)}MB")


def count_spreadsheet_words(document: bytes) -> int:
    workbook = load_workbook(io.BytesIO(document), read_only=True, data_only=True)
    try:
        total = 0
        for worksheet in workbook.worksheets:
            # Rows may be ragged; missing cells come back as None
            for row in worksheet.iter_rows(values_only=True):
                for value in row:
                    if isinstance(value, str):
                        total += count_tokens(value)
        return total
    finally:
        workbook.close()


def count_docx_words(document: bytes) -> int:
    doc = Document(io.BytesIO(document))
    total = sum(count_tokens(paragraph.text) for paragraph in doc.paragraphs)
    for table in doc.tables:
        # row.cells repeats a merged cell once per spanned grid column
        seen = set()
        for row in table.rows:
            for cell in row.cells:
                if cell._tc in seen:
                    continue
                seen.add(cell._tc)
                total += count_tokens(cell.text)
    return total


def count_text_words(document: bytes) -> int:
    return count_tokens(document.decode("utf-8", errors="replace"))


def count_units(document: bytes, filename: Optional[str] = None, content_type: Optional[str] = None) -> int:
    """
    Billable unit count (word count) for a document.
    Falls back to ceil(size / 100) when the format has no extractor or parsing fails.
    """
    if not document:
        return 0

    extension = _extension(filename)
    content_type = (content_type or "").split(";")[0].strip().lower()

    if extension in SPREADSHEET_EXTENSIONS or content_type == SPREADSHEET_CONTENT_TYPE:
        counter = count_spreadsheet_words
    elif extension in WORD_EXTENSIONS or content_type == DOCX_CONTENT_TYPE:
        counter = count_docx_words
    elif extension in TEXT_EXTENSIONS or content_type.startswith("text/"):
        counter = count_text_words
    else:
        units = estimate_units(len(document))
        logger.info(f"No extractor for {filename or content_type}, estimated {units} words")
        return units

    try:
        units = counter(document)
    except Exception as e:
        units = estimate_units(len(document))
        logger.warning(f"Failed to parse {filename}: {e}. Using size estimate of {units} words")
        return units

    logger.info(f"Counted {units} words in {filename}")
    return units

