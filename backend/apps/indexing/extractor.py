"""
Text extraction from uploaded documents.

Supports:
- .txt: UTF-8 text, used verbatim (with fallback for encoding errors)
- .pdf: Best-effort text extraction using PyMuPDF
"""
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = ('.txt', '.pdf')


class ExtractionError(Exception):
    """Raised when text extraction fails."""
    pass


def get_extension(filename: str) -> str:
    """Extract file extension from filename."""
    return Path(filename).suffix.lower()


def extract_text_from_txt(data: bytes) -> str:
    """
    Decode a plain text upload.

    Args:
        data: Raw file content

    Returns:
        The text content
    """
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError:
        logger.warning("UTF-8 decode failed, replacing invalid bytes")
        return data.decode('utf-8', errors='replace')


def extract_text_from_pdf(data: bytes) -> str:
    """
    Extract text from a PDF using PyMuPDF.

    This is a best-effort extraction - some PDFs (scanned, image-based)
    may not yield text. No OCR is attempted.

    Args:
        data: Raw PDF content

    Returns:
        Extracted text from all pages

    Raises:
        ExtractionError: If the PDF cannot be opened or parsed
    """
    import fitz  # PyMuPDF

    text_parts = []

    try:
        with fitz.open(stream=data, filetype='pdf') as doc:
            for page in doc:
                page_text = page.get_text()
                if page_text.strip():
                    text_parts.append(page_text)
    except Exception as e:
        raise ExtractionError(f"Failed to extract text from PDF: {e}")

    if not text_parts:
        logger.warning("No text extracted from PDF (may be image-based)")
        return ""

    return "\n\n".join(text_parts)


def extract_text(filename: str, data: bytes) -> str:
    """
    Extract text from a document based on its file extension.

    Args:
        filename: Original filename
        data: Raw file content

    Returns:
        Extracted text content

    Raises:
        ExtractionError: If extraction fails or format not supported
    """
    suffix = get_extension(filename)

    logger.info(f"Extracting text from {filename} (suffix={suffix}, {len(data)} bytes)")

    if suffix == '.txt':
        return extract_text_from_txt(data)

    elif suffix == '.pdf':
        return extract_text_from_pdf(data)

    else:
        raise ExtractionError(f"Unsupported file format: {suffix}")
