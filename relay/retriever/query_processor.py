"""
Query Processor

Prepares an inbound message for similarity search.
Function words carry little meaning in an embedding, so they are stripped
before the query is embedded.
"""

import re
from dataclasses import dataclass, field
from typing import List

_WHITESPACE_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^\w]", re.UNICODE)


@dataclass
class ParsedQuery:
    """Parsed representation of a search query"""
    original: str
    cleaned: str
    keywords: List[str] = field(default_factory=list)


class QueryProcessor:
    """
    Cleans queries for retrieval.

    Words of two characters or fewer and stop words are dropped. When nothing
    meaningful remains, the original query is searched unchanged.
    """

    # Stop words that don't add semantic value for search
    STOP_WORDS = {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "how", "where", "what", "when", "why", "who",
        "which", "this", "that", "these", "those", "is", "are", "was", "were",
        "be", "been", "being", "have", "has", "had", "do", "does", "did",
        "will", "would", "could", "should", "may", "might", "can", "must",
    }

    MIN_WORD_LENGTH = 3

    def parse(self, query: str) -> ParsedQuery:
        keywords = self._extract_keywords(query)
        cleaned = " ".join(keywords) if keywords else query
        return ParsedQuery(original=query, cleaned=cleaned, keywords=keywords)

    def clean(self, query: str) -> str:
        """Return the query reduced to its meaningful words."""
        return self.parse(query).cleaned

    def _extract_keywords(self, query: str) -> List[str]:
        words = _WHITESPACE_RE.split((query or "").lower().strip())
        keywords = []
        for word in words:
            core = _NON_WORD_RE.sub("", word)
            if len(core) >= self.MIN_WORD_LENGTH and core not in self.STOP_WORDS:
                keywords.append(word)
        return keywords
