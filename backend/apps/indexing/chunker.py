"""
Deterministic text chunking for document ingestion.

Chunks are exact slices of the input text:
- Every character belongs to at least one chunk
- Consecutive chunks overlap by exactly `chunk_overlap` characters
- No chunk is empty or longer than `chunk_size`
"""
import re
import logging
from dataclasses import dataclass
from typing import List

logger = logging.getLogger(__name__)

# Default chunking parameters
DEFAULT_CHUNK_SIZE = 1000  # characters (approximately 250 tokens)
DEFAULT_CHUNK_OVERLAP = 200  # characters of overlap between chunks

# How far back from the size limit to look for a natural boundary
DEFAULT_BREAK_WINDOW = 200

# Boundaries in order of preference
BOUNDARY_PATTERNS = [
    re.compile(r'\n[^\S\n]*\n'),        # paragraph
    re.compile(r'[.!?]["\')\]]*\s'),    # sentence
    re.compile(r'\n'),                  # line
    re.compile(r'[,;:]\s'),             # clause
    re.compile(r'\s'),                  # word
]


@dataclass
class TextChunk:
    """A chunk of text with its index and position in the source."""
    index: int
    text: str
    start_char: int
    end_char: int

    @property
    def char_count(self) -> int:
        return len(self.text)


def find_break_point(text: str, target_pos: int, min_pos: int, window: int = DEFAULT_BREAK_WINDOW) -> int:
    """
    Find a good break point at or before the target position.

    Tries to break just after:
    1. Paragraph boundary (blank line)
    2. Sentence boundary (. ! ? followed by whitespace)
    3. Line break
    4. Clause boundary (comma, semicolon, colon)
    5. Word boundary (whitespace)
    6. Falls back to the exact target position (hard cut)

    The latest boundary of the most preferred kind wins.

    Args:
        text: The text to search
        target_pos: Latest allowed break position
        min_pos: Earliest allowed break position (exclusive)
        window: How far back from target_pos to search

    Returns:
        Break position in (min_pos, target_pos]
    """
    if target_pos >= len(text):
        return len(text)

    start = max(min_pos, target_pos - window)
    search_text = text[start:target_pos]

    for pattern in BOUNDARY_PATTERNS:
        matches = list(pattern.finditer(search_text))
        if matches:
            return start + matches[-1].end()

    return target_pos


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    window: int = DEFAULT_BREAK_WINDOW,
) -> List[TextChunk]:
    """
    Split text into overlapping chunks.

    Each chunk is cut at the best boundary within the last `window`
    characters of its size limit; the next chunk starts `chunk_overlap`
    characters before that cut.

    Args:
        text: The text to chunk
        chunk_size: Maximum size of each chunk in characters
        chunk_overlap: Number of characters shared by consecutive chunks
        window: How far back from the size limit to look for a boundary

    Returns:
        List of TextChunk objects

    Raises:
        ValueError: If the size/overlap combination cannot make progress
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be between 0 and chunk_size - 1")

    if not text:
        logger.warning("Empty text provided for chunking")
        return []

    chunks = []
    current_pos = 0

    while True:
        end_pos = current_pos + chunk_size

        if end_pos >= len(text):
            # This is the last chunk
            chunks.append(TextChunk(
                index=len(chunks),
                text=text[current_pos:],
                start_char=current_pos,
                end_char=len(text)
            ))
            break

        # Break must leave room for the overlap so the next chunk moves forward
        break_pos = find_break_point(
            text,
            end_pos,
            min_pos=current_pos + chunk_overlap,
            window=window,
        )

        chunks.append(TextChunk(
            index=len(chunks),
            text=text[current_pos:break_pos],
            start_char=current_pos,
            end_char=break_pos
        ))

        current_pos = break_pos - chunk_overlap

    logger.info(f"Created {len(chunks)} chunks from {len(text)} characters")

    return chunks
