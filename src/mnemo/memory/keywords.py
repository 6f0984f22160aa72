"""Keyword extraction used for indexing, ranking and blind indexes.

The contract is identical for both strategies: lowercase, deduplicated in
first-occurrence order, longer than 3 characters, no stop words, at most
``MAX_KEYWORDS`` entries. ``extract_keywords`` never raises.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 10
MIN_KEYWORD_LENGTH = 4

STOP_WORDS = frozenset(
    {
        "this", "that", "with", "from", "have", "been", "were", "they",
        "their", "what", "when", "where", "which", "while", "about",
        "there", "these", "those", "would", "could", "should", "into",
        "than", "then", "them", "will", "just", "also", "some", "such",
        "only", "very", "your", "yours", "ours", "does", "done", "each",
    }
)

_WORD_RE = re.compile(r"[^\W_]+(?:['\-][^\W_]+)*", re.UNICODE)
_BASIC_STRIP_RE = re.compile(r"[^a-z0-9\s]")


def _accept(word: str) -> bool:
    return len(word) >= MIN_KEYWORD_LENGTH and word not in STOP_WORDS


def _dedupe(words, limit: int) -> list[str]:
    seen: list[str] = []
    for word in words:
        if word in seen or not _accept(word):
            continue
        seen.append(word)
        if len(seen) >= limit:
            break
    return seen


def _word_tokens(text: str, limit: int) -> list[str]:
    """Unicode-aware tokenizer: keeps inner hyphens and apostrophes."""
    return _dedupe((match.group(0).lower() for match in _WORD_RE.finditer(text)), limit)


def basic_extract(text: str, limit: int = MAX_KEYWORDS) -> list[str]:
    """ASCII tokenizer: non-alphanumerics become spaces, split on whitespace."""
    cleaned = _BASIC_STRIP_RE.sub(" ", str(text).lower())
    return _dedupe(cleaned.split(), limit)


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> list[str]:
    """Return the indexable keywords of ``text``."""
    try:
        return _word_tokens(text, limit)
    except Exception as e:
        logger.debug("Keyword extraction degraded to basic tokenizer: %s", e)
        try:
            return basic_extract(text, limit)
        except Exception:
            return []
