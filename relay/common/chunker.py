"""
Text Chunker

Splits a document's plain text into overlapping fixed-size character windows.
Consecutive chunks share exactly `overlap` characters, so dropping the first
`overlap` characters of every chunk after the first and concatenating gives
back the input text.
"""

import re
from typing import List, Tuple

_WHITESPACE_RE = re.compile(r"\s+")

# Crawled website content: "--- Page 3: Pricing ---\nURL: https://...\n<text>"
_PAGE_MARKER_RE = re.compile(r"--- Page \d+:.*? ---\n")
_PAGE_URL_RE = re.compile(r"^URL: (https?://[^\n]+)", re.MULTILINE)
WEBSITE_CONTENT_MARKER = "=== WEBSITE CONTENT ==="


def clean_text(text: str) -> str:
    """Collapse runs of whitespace into single spaces and trim."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def is_website_content(text: str) -> bool:
    return WEBSITE_CONTENT_MARKER in (text or "")


def split_website_pages(content: str) -> List[Tuple[str, str]]:
    """
    Split crawled website content into (page_url, page_text) sections.

    The summary that precedes the first page marker is dropped. Pages without
    a URL line get an empty URL; pages without text are skipped.
    """
    sections = _PAGE_MARKER_RE.split(content or "")
    pages = []

    for section in sections[1:]:
        url_match = _PAGE_URL_RE.search(section)
        page_url = url_match.group(1).strip() if url_match else ""

        if url_match:
            body = section[url_match.end():]
        else:
            body = section

        body = clean_text(body)
        if body:
            pages.append((page_url, body))

    return pages


class TextChunker:
    """
    Fixed-size character chunker with overlap.

    Chunk i starts at i * (chunk_size - overlap). Splitting stops at the first
    chunk that reaches the end of the text. The final chunk is dropped when it
    is shorter than the effective minimum and is not the only chunk.
    """

    def __init__(self, chunk_size: int = 500, overlap: int = 50, min_chunk_size: int = 20):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0 or overlap >= chunk_size:
            raise ValueError(
                f"overlap must satisfy 0 <= overlap < chunk_size, got {overlap} (chunk_size={chunk_size})"
            )
        if min_chunk_size < 0:
            raise ValueError(f"min_chunk_size cannot be negative, got {min_chunk_size}")

        self._chunk_size = chunk_size
        self._overlap = overlap
        self._min_chunk_size = min_chunk_size

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    @property
    def step(self) -> int:
        return self._chunk_size - self._overlap

    @property
    def effective_min_chunk_size(self) -> int:
        # Small windows would otherwise lose their whole tail.
        return min(self._min_chunk_size, self._chunk_size // 2)

    def split(self, text: str) -> List[str]:
        """
        Split text into overlapping chunks.

        Args:
            text: Plain text (callers normally pass it through clean_text first)

        Returns:
            List of chunk strings, in document order
        """
        if not text or not text.strip():
            return []

        chunks: List[str] = []
        length = len(text)
        start = 0

        while start < length:
            end = min(start + self._chunk_size, length)
            chunks.append(text[start:end])
            if end >= length:
                break
            start += self.step

        if len(chunks) > 1 and len(chunks[-1]) < self.effective_min_chunk_size:
            chunks.pop()

        return chunks

    def reconstruct(self, chunks: List[str]) -> str:
        """Join chunks back together, removing the shared overlaps."""
        if not chunks:
            return ""
        parts = [chunks[0]]
        for chunk in chunks[1:]:
            parts.append(chunk[self._overlap:])
        return "".join(parts)
